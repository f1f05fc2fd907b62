"""Concurrency tests: per-authorization locking and storage guards"""
import threading
from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from priorauth.domain.enums import StepStatus
from priorauth.domain.errors import ConcurrencyError, ConflictError
from priorauth.domain.models import AuditQueryFilters
from priorauth.engine.keyed_lock import KeyedLock

AUTHORIZATION_ID = "A-1"


def test_concurrent_completions_of_same_step_yield_one_success(engine, initialized, audit_writer):
    num_threads = 8
    barrier = Barrier(num_threads, timeout=10)

    def attempt(actor_index):
        barrier.wait()
        try:
            engine.complete_step(AUTHORIZATION_ID, 1, {"attempt": actor_index}, f"u{actor_index}")
            return "ok"
        except ConflictError as e:
            return e.error_code

    with ThreadPoolExecutor(max_workers=num_threads) as executor:
        outcomes = list(executor.map(attempt, range(num_threads)))

    assert outcomes.count("ok") == 1
    assert set(outcomes) - {"ok"} <= {"OUT_OF_SEQUENCE", "ALREADY_COMPLETED", "CONCURRENCY_CONFLICT"}

    steps = engine.get_workflow_steps(AUTHORIZATION_ID)
    assert steps[0].status == StepStatus.COMPLETED
    assert steps[1].status == StepStatus.IN_PROGRESS
    assert engine.get_current_step(AUTHORIZATION_ID).step_number == 2
    assert audit_writer.count(AuditQueryFilters(action="STEP_COMPLETED")) == 1


def test_concurrent_initialization_creates_one_workflow(engine, authorization, step_repo, audit_writer):
    num_threads = 5
    barrier = Barrier(num_threads, timeout=10)

    def attempt(actor_index):
        barrier.wait()
        try:
            engine.initialize_workflow(AUTHORIZATION_ID, f"u{actor_index}")
            return "ok"
        except ConflictError as e:
            return e.error_code

    with ThreadPoolExecutor(max_workers=num_threads) as executor:
        outcomes = list(executor.map(attempt, range(num_threads)))

    assert outcomes.count("ok") == 1
    assert step_repo.count_steps(AUTHORIZATION_ID) == 10
    assert audit_writer.count(AuditQueryFilters(action="WORKFLOW_INITIALIZED")) == 1


def test_stale_step_update_is_rejected(initialized, step_repo):
    stale = step_repo.get_step(AUTHORIZATION_ID, 1)
    step_repo.update_step(stale, {"notes": "first writer"})

    with pytest.raises(ConcurrencyError):
        step_repo.update_step(stale, {"notes": "second writer"})
    assert step_repo.get_step(AUTHORIZATION_ID, 1).notes == "first writer"


def test_pointer_compare_and_set(initialized, authorization_repo):
    with pytest.raises(ConcurrencyError):
        authorization_repo.set_current_step_number(AUTHORIZATION_ID, 3, expected=2)
    assert authorization_repo.get_current_step_number(AUTHORIZATION_ID) == 1

    authorization_repo.set_current_step_number(AUTHORIZATION_ID, 2, expected=1)
    assert authorization_repo.get_current_step_number(AUTHORIZATION_ID) == 2


# ============================================================================
# KeyedLock
# ============================================================================

def test_lock_times_out_with_concurrency_error():
    lock = KeyedLock(timeout_seconds=0.05)
    held = threading.Event()
    release = threading.Event()

    def holder():
        with lock.hold("A-1"):
            held.set()
            release.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    held.wait(5)
    try:
        with pytest.raises(ConcurrencyError):
            with lock.hold("A-1"):
                pass
    finally:
        release.set()
        thread.join(5)


def test_different_keys_do_not_block_each_other():
    lock = KeyedLock(timeout_seconds=0.05)
    with lock.hold("A-1"):
        with lock.hold("A-2"):
            assert lock.active_keys() == 2


def test_lock_entries_are_released():
    lock = KeyedLock(timeout_seconds=1)
    with lock.hold("A-1"):
        assert lock.active_keys() == 1
    assert lock.active_keys() == 0

    with pytest.raises(RuntimeError):
        with lock.hold("A-1"):
            raise RuntimeError("boom")
    assert lock.active_keys() == 0
