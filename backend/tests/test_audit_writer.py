"""Tests for the append-only audit writer"""
import logging
from datetime import timedelta
from unittest import mock

from pymongo.errors import PyMongoError, ServerSelectionTimeoutError

from priorauth.domain.models import AuditQueryFilters
from priorauth.engine.audit_writer import describe_action
from priorauth.utils.time import format_iso


def test_append_derives_field_changes_and_description(audit_writer, clock):
    event = audit_writer.append(
        actor_id="u1",
        action="UPDATE",
        resource_type="patient",
        resource_id="P-7",
        details={"source": "intake"},
        ip_address="10.0.0.1",
        user_agent="pytest",
        before={"name": "Ann", "phone": "555"},
        after={"name": "Anne", "phone": "555"}
    )

    assert event.sequence == 1
    assert event.timestamp == clock.now()
    assert event.details["source"] == "intake"
    assert event.details["action_description"] == "Updated patient"
    assert event.field_changes == {
        "type": "UPDATE",
        "modified_fields": {
            "name": {"old_value": "Ann", "new_value": "Anne", "change_type": "MODIFIED"}
        },
    }

    stored = audit_writer.query(AuditQueryFilters(resource_id="P-7"))
    assert [e.audit_event_id for e in stored] == [event.audit_event_id]
    assert stored[0].ip_address == "10.0.0.1"
    assert stored[0].user_agent == "pytest"


def test_caller_cannot_supply_field_changes(audit_writer):
    event = audit_writer.append(
        actor_id="u1", action="CREATE", resource_type="patient", resource_id="P-1",
        details={"field_changes": "forged"}, after={"a": 1}
    )
    assert event.field_changes == {"type": "CREATE", "new_fields": ["a"]}


def test_action_descriptions():
    assert describe_action("CREATE", "patient") == "Created new patient"
    assert describe_action("EXPORT", "patient") == "Exported patient data"
    assert describe_action("LOGIN_FAILURE", "user") == "Failed login attempt"
    assert describe_action("STEP_COMPLETED", "prior_authorization") == "STEP_COMPLETED on prior_authorization"


def test_sequence_breaks_timestamp_ties(audit_writer):
    first = audit_writer.append(actor_id="u1", action="VIEW", resource_type="patient", resource_id="P-1")
    second = audit_writer.append(actor_id="u1", action="VIEW", resource_type="patient", resource_id="P-1")

    assert first.timestamp == second.timestamp
    assert second.sequence > first.sequence
    ordered = audit_writer.query(AuditQueryFilters(resource_id="P-1"))
    assert [e.sequence for e in ordered] == [second.sequence, first.sequence]


def test_timestamps_never_go_backwards(audit_writer, clock):
    first = audit_writer.append(actor_id="u1", action="VIEW", resource_type="patient")
    clock.set_time(clock.now() - timedelta(minutes=5))
    second = audit_writer.append(actor_id="u1", action="VIEW", resource_type="patient")

    assert second.timestamp == first.timestamp


def test_query_filters_and_pagination(audit_writer, clock):
    audit_writer.append(actor_id="u1", action="VIEW", resource_type="patient", resource_id="P-1")
    clock.advance(60)
    audit_writer.append(actor_id="u2", action="UPDATE", resource_type="patient", resource_id="P-1",
                        before={"a": 1}, after={"a": 2})
    clock.advance(60)
    audit_writer.append(actor_id="u1", action="VIEW", resource_type="document", resource_id="D-1")

    assert audit_writer.count() == 3
    assert [e.resource_id for e in audit_writer.query()] == ["D-1", "P-1", "P-1"]
    assert [e.actor_id for e in audit_writer.query(AuditQueryFilters(user_id="u2"))] == ["u2"]
    assert audit_writer.count(AuditQueryFilters(resource_type="patient")) == 2
    assert audit_writer.count(AuditQueryFilters(action="VIEW")) == 2

    page = audit_writer.query(skip=1, limit=1)
    assert [e.resource_id for e in page] == ["P-1"]
    assert page[0].action == "UPDATE"


def test_audit_report_uses_inclusive_window(audit_writer, clock):
    start = clock.now()
    audit_writer.append(actor_id="u1", action="VIEW", resource_type="patient", resource_id="P-1")
    clock.advance(3600)
    end = clock.now()
    audit_writer.append(actor_id="u1", action="VIEW", resource_type="patient", resource_id="P-2")
    clock.advance(3600)
    audit_writer.append(actor_id="u1", action="VIEW", resource_type="patient", resource_id="P-3")

    report = audit_writer.audit_report(start, end)
    assert sorted(e.resource_id for e in report) == ["P-1", "P-2"]
    assert audit_writer.audit_report(start, end, user_id="nobody") == []

    by_text = audit_writer.audit_report(format_iso(start), format_iso(end))
    assert sorted(e.resource_id for e in by_text) == ["P-1", "P-2"]


def test_storage_failure_is_logged_and_swallowed(audit_writer, caplog):
    with mock.patch.object(
        audit_writer.repo._audit_events, "insert_one",
        side_effect=ServerSelectionTimeoutError("no primary")
    ):
        with caplog.at_level(logging.ERROR, logger="priorauth.engine.audit_writer"):
            result = audit_writer.append(actor_id="u1", action="VIEW", resource_type="patient")

    assert result is None
    assert audit_writer.count() == 0
    records = [r for r in caplog.records if r.name == "priorauth.engine.audit_writer"]
    assert records and records[0].levelno == logging.ERROR
    assert records[0].exc_info is not None


def test_sequence_allocation_failure_is_swallowed(audit_writer):
    with mock.patch.object(audit_writer.repo, "next_sequence", side_effect=PyMongoError("down")):
        assert audit_writer.append(actor_id="u1", action="VIEW", resource_type="patient") is None


def test_prior_auth_helper_stamps_workflow_details(audit_writer):
    event = audit_writer.log_prior_auth_activity(
        actor_id="u1", authorization_id="A-9", action="STEP_COMPLETED", step="step_3",
        before={"status": "in_progress"}, after={"status": "completed"}
    )

    assert event.resource_type == "prior_authorization"
    assert event.resource_id == "A-9"
    assert event.details["type"] == "PRIOR_AUTH_WORKFLOW"
    assert event.details["workflow_step"] == "step_3"
    assert event.details["medical_necessity"] is True


def test_access_and_authentication_helpers(audit_writer):
    phi = audit_writer.log_patient_access("u1", "P-1", "VIEW")
    assert phi.details["type"] == "PHI_ACCESS"
    assert phi.details["compliance_note"] == "HIPAA-tracked PHI access"

    modification = audit_writer.log_data_modification(
        "u1", "prior_authorization", "A-1", "UPDATE", before={"a": 1}, after={"a": 2}
    )
    assert modification.details["type"] == "DATA_MODIFICATION"
    assert modification.details["medical_record_update"] is True

    document = audit_writer.log_document_access("u1", "D-1", "DOWNLOAD")
    assert document.details["action_description"] == "Downloaded document"

    failed = audit_writer.log_login("u2", success=False)
    assert failed.action == "LOGIN_FAILURE"
    assert failed.details["type"] == "AUTHENTICATION"
    assert failed.field_changes is None

    logout = audit_writer.log_logout("u2")
    assert logout.details["action_description"] == "User logged out"

    export = audit_writer.log_data_export("u1", "patient")
    assert export.action == "DATA_EXPORT"
    assert export.details["type"] == "DATA_EXPORT"
    assert export.resource_id is None


def test_authorization_access_helper(audit_writer):
    event = audit_writer.log_authorization_access("u1", "A-1", "VIEW", ip_address="10.0.0.2")

    assert event.resource_type == "authorization"
    assert event.resource_id == "A-1"
    assert event.details["type"] == "AUTHORIZATION_ACCESS"
    assert event.details["action"] == "VIEW"
    assert event.details["action_description"] == "Viewed authorization"
    assert event.field_changes is None
    assert audit_writer.count(AuditQueryFilters(resource_type="authorization")) == 1


def test_mutation_without_snapshots_is_rejected(audit_writer, caplog):
    with caplog.at_level(logging.ERROR, logger="priorauth.engine.audit_writer"):
        result = audit_writer.append(actor_id="u1", action="UPDATE", resource_type="patient", resource_id="P-1")

    assert result is None
    assert audit_writer.count() == 0
    assert any(r.levelno == logging.ERROR for r in caplog.records)

    deleted = audit_writer.append(
        actor_id="u1", action="DELETE", resource_type="patient", resource_id="P-1", before={"a": 1}
    )
    assert deleted.field_changes == {"type": "DELETE", "removed_fields": ["a"]}
