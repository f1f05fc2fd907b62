"""Tests for the static step catalog"""
from dataclasses import FrozenInstanceError

import pytest

from priorauth.domain.enums import StepCategory
from priorauth.engine.step_catalog import (
    PRIOR_AUTH_WORKFLOW_STEPS, TOTAL_STEPS, WORKFLOW_COMPLETE_STEP,
    get_step_definition, is_valid_step_number
)


def test_catalog_has_ten_contiguous_steps():
    assert TOTAL_STEPS == 10
    assert WORKFLOW_COMPLETE_STEP == 11
    assert [step.step_number for step in PRIOR_AUTH_WORKFLOW_STEPS] == list(range(1, 11))


def test_every_category_is_used_once():
    categories = [step.category for step in PRIOR_AUTH_WORKFLOW_STEPS]
    assert sorted(categories, key=lambda c: c.value) == sorted(StepCategory, key=lambda c: c.value)


def test_first_and_last_definitions():
    first = get_step_definition(1)
    assert first.step_name == "Clinical Decision & Insurance Check"
    assert first.allowed_form_fields == ("treatmentType", "cptCode", "icd10Code", "clinicalJustification")

    last = get_step_definition(10)
    assert last.step_name == "Renewal & Monitoring"
    assert last.category == StepCategory.RENEWAL


@pytest.mark.parametrize("value", [0, 11, -1, "1", 1.0, True, None])
def test_invalid_step_numbers(value):
    assert not is_valid_step_number(value)
    assert get_step_definition(value) is None


def test_definitions_are_immutable():
    with pytest.raises(FrozenInstanceError):
        PRIOR_AUTH_WORKFLOW_STEPS[0].step_name = "Changed"
