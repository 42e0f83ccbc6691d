"""Unit tests for field-level change models."""

from datetime import datetime
from uuid import uuid4

from edm_registry.domain.change_models import ChangeType, FieldChange, diff_records
from edm_registry.domain.models import Org


class TestDiffRecords:
    """Test suite for diff_records."""

    def test_no_changes(self):
        """Test that an identical rewrite reports nothing."""
        org = Org.new(name="Acme", is_active=True)
        rewritten = org.model_copy(update={"revision": 1, "updated_at": datetime(2030, 1, 1)})

        assert diff_records(org, rewritten) == []

    def test_single_field_change(self):
        """Test that one changed field is reported with old and new values."""
        org = Org.new(name="Acme", is_active=True)
        renamed = org.model_copy(update={"name": "Acme Holdings"})

        (change,) = diff_records(org, renamed)

        assert change.field_name == "name"
        assert change.old_value == "Acme"
        assert change.new_value == "Acme Holdings"
        assert change.change_type == ChangeType.UPDATE
        assert change.entity == "Org"
        assert change.record_id == org.id

    def test_multiple_field_changes(self):
        """Test that every changed field is reported."""
        org = Org.new(name="Acme", is_active=True)
        changed = org.model_copy(update={"website": "https://acme.test", "is_active": False})

        assert {c.field_name for c in diff_records(org, changed)} == {"website", "is_active"}

    def test_insert_reports_populated_fields(self):
        """Test that an insert lists populated fields except bookkeeping."""
        org = Org.new(name="Acme", is_active=True)

        changes = diff_records(None, org)
        names = {c.field_name for c in changes}

        assert {"id", "created_at", "name", "is_active"} <= names
        assert "legal_name" not in names
        assert "revision" not in names
        assert "updated_at" not in names
        assert all(c.change_type == ChangeType.INSERT and c.old_value is None for c in changes)


class TestFieldChange:
    """Test suite for FieldChange."""

    def test_to_audit_dict(self):
        """Test audit serialisation of scalar values."""
        record_id = uuid4()
        change = FieldChange(
            entity="Org", record_id=record_id, field_name="name", old_value="Acme",
            new_value="Acme Holdings", change_type=ChangeType.UPDATE, changed_at=datetime(2024, 1, 2, 3, 4, 5),
        )

        audit = change.to_audit_dict()

        assert audit == {
            "entity": "Org",
            "record_id": str(record_id),
            "field_name": "name",
            "old_value": "Acme",
            "new_value": "Acme Holdings",
            "change_type": "UPDATE",
            "changed_at": "2024-01-02T03:04:05",
        }

    def test_to_audit_dict_serialises_collections(self):
        """Test that list and dict values are rendered as JSON."""
        change = FieldChange(
            entity="CarePlan", record_id=uuid4(), field_name="goals",
            new_value=[{"description": "Walk daily"}], change_type=ChangeType.INSERT,
        )

        audit = change.to_audit_dict()

        assert audit["old_value"] is None
        assert audit["new_value"] == '[{"description": "Walk daily"}]'
