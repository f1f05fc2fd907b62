"""Tests for the field-by-field change differ"""
import copy
import json
from datetime import datetime, timezone
from decimal import Decimal

from priorauth.domain.enums import ChangeType, FieldChangeType, StepStatus
from priorauth.domain.models import AuthorizationStep
from priorauth.engine.change_differ import diff, diff_document


RECORD = {
    "status": "in_progress",
    "form_data": {"treatmentType": "MRI", "codes": [1, 2, {"x": None}]},
    "notes": None,
    "version": 3,
}


def test_identical_records_produce_no_change():
    assert diff(RECORD, copy.deepcopy(RECORD)) is None


def test_key_order_does_not_matter_for_nested_values():
    before = {"form_data": {"a": 1, "b": 2}}
    after = {"form_data": {"b": 2, "a": 1}}
    assert diff(before, after) is None


def test_both_absent_is_no_change():
    assert diff(None, None) is None


def test_create_lists_new_fields():
    change_set = diff(None, {"a": 1})
    assert change_set.type == ChangeType.CREATE
    assert change_set.new_fields == ["a"]
    assert change_set.to_document() == {"type": "CREATE", "new_fields": ["a"]}


def test_delete_lists_removed_fields():
    change_set = diff({"a": 1}, None)
    assert change_set.type == ChangeType.DELETE
    assert change_set.removed_fields == ["a"]
    assert change_set.to_document() == {"type": "DELETE", "removed_fields": ["a"]}


def test_update_classifies_added_removed_and_modified():
    change_set = diff({"a": 1, "b": 2}, {"b": 3, "c": 4})

    assert change_set.type == ChangeType.UPDATE
    fields = change_set.modified_fields
    assert set(fields) == {"a", "b", "c"}
    assert fields["a"].change_type == FieldChangeType.REMOVED
    assert fields["a"].old_value == 1
    assert fields["b"].change_type == FieldChangeType.MODIFIED
    assert (fields["b"].old_value, fields["b"].new_value) == (2, 3)
    assert fields["c"].change_type == FieldChangeType.ADDED
    assert fields["c"].new_value == 4


def test_absent_and_null_are_distinguished():
    change_set = diff({}, {"notes": None})
    assert change_set.modified_fields["notes"].change_type == FieldChangeType.ADDED

    document = change_set.to_document()
    assert document["modified_fields"]["notes"] == {"new_value": None, "change_type": "ADDED"}


def test_only_changed_keys_are_reported():
    after = copy.deepcopy(RECORD)
    after["status"] = "completed"
    change_set = diff(RECORD, after)
    assert list(change_set.modified_fields) == ["status"]


def test_serialized_output_is_deterministic():
    before = {"z": 1, "a": {"k": [1, 2]}, "m": "x"}
    after = {"m": "y", "a": {"k": [2, 1]}, "n": True}

    first = json.dumps(diff_document(before, after), sort_keys=False)
    second = json.dumps(diff_document(copy.deepcopy(before), copy.deepcopy(after)), sort_keys=False)

    assert first == second
    assert list(diff_document(before, after)["modified_fields"]) == ["a", "m", "n", "z"]


def test_unserializable_values_count_as_changed_without_raising():
    marker = object()
    change_set = diff({"a": marker}, {"a": marker})
    assert change_set.modified_fields["a"].change_type == FieldChangeType.MODIFIED
    assert isinstance(change_set.modified_fields["a"].new_value, str)


def test_accepts_pydantic_models():
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    step = AuthorizationStep(
        step_id="STEP-A-1-01",
        authorization_id="A-1",
        step_number=1,
        step_name="Clinical Decision & Insurance Check",
        created_at=now,
        updated_at=now
    )
    completed = step.model_copy(update={"status": StepStatus.COMPLETED, "completed_by": "u1"})

    change_set = diff(step, completed)
    assert set(change_set.modified_fields) == {"completed_by", "status"}


def test_records_with_rich_values_equal_their_copies():
    record = {
        "decided_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "amount": Decimal("1.5"),
        "score": float("nan"),
        "nested": {"seen": [datetime(2024, 2, 1, tzinfo=timezone.utc)]},
        "version": 1,
    }
    assert diff(record, copy.deepcopy(record)) is None


def test_changed_datetime_is_stored_as_iso_text():
    before = {"decided_at": datetime(2024, 1, 1, tzinfo=timezone.utc), "amount": Decimal("1.5")}
    after = {"decided_at": datetime(2024, 1, 2, tzinfo=timezone.utc), "amount": Decimal("1.50")}

    fields = diff(before, after).modified_fields
    assert fields["decided_at"].old_value == "2024-01-01T00:00:00Z"
    assert fields["decided_at"].new_value == "2024-01-02T00:00:00Z"
    assert (fields["amount"].old_value, fields["amount"].new_value) == ("1.5", "1.50")
