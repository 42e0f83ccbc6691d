"""Behaviour every StoragePort adapter shares, run against each adapter."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from edm_registry.domain.enums import RoleType
from edm_registry.domain.models import Employee, Org, OrgRole, PlanLimit, Provider
from edm_registry.domain.ports import ConcurrencyConflict, RelationshipViolation, StorageError


def org(name="Acme"):
    return Org.new(name=name, is_active=True)


def provider(npi=None):
    return Provider.new(person_id=uuid4(), npi=npi, is_active=True)


class TestReadsAndWrites:
    """Committed state and transaction visibility."""

    def test_insert_and_get(self, any_storage):
        """Test inserting and reading back a record."""
        record = org()
        with any_storage.transaction() as tx:
            tx.insert(record)

        assert any_storage.get("Org", record.id) == record
        assert any_storage.get("org", record.id) == record
        assert any_storage.count("Org") == 1

    def test_get_missing(self, any_storage):
        """Test that a missing id returns None."""
        assert any_storage.get("Org", uuid4()) is None

    def test_transaction_sees_own_writes(self, any_storage):
        """Test that a transaction reads its own uncommitted writes."""
        record = org()
        with any_storage.transaction() as tx:
            tx.insert(record)
            assert tx.get("Org", record.id) == record
            assert tx.find("Org", name="Acme") == [record]

    def test_exception_rolls_back(self, any_storage):
        """Test that an exception inside the transaction discards its writes."""
        with pytest.raises(RuntimeError):
            with any_storage.transaction() as tx:
                tx.insert(org())
                raise RuntimeError("abort")

        assert any_storage.count("Org") == 0

    def test_find_by_enum_and_null(self, any_storage):
        """Test find() criteria on enum values and None."""
        acme = org()
        employer = OrgRole.new(org_id=acme.id, role_type=RoleType.EMPLOYER, is_active=True, effective_date=date(2024, 1, 1))
        ended = OrgRole.new(
            org_id=acme.id, role_type=RoleType.CLIENT, is_active=False,
            effective_date=date(2023, 1, 1), termination_date=date(2023, 12, 31),
        )
        with any_storage.transaction() as tx:
            for record in (acme, employer, ended):
                tx.insert(record)

        assert any_storage.find("OrgRole", role_type=RoleType.EMPLOYER) == [employer]
        assert any_storage.find("OrgRole", role_type="CLIENT") == [ended]
        assert any_storage.find("OrgRole", org_id=acme.id, termination_date=None) == [employer]

    def test_find_unknown_field(self, any_storage):
        """Test that find() on an unknown field raises StorageError."""
        with pytest.raises(StorageError):
            any_storage.find("Org", tax_code="X")

    def test_unknown_collection(self, any_storage):
        """Test that an unknown collection raises StorageError."""
        with pytest.raises(StorageError):
            any_storage.get("Invoice", uuid4())


class TestReplace:
    """Optimistic revision checks."""

    def test_replace_with_matching_revision(self, any_storage):
        """Test replacing a record at its current revision."""
        record = org()
        with any_storage.transaction() as tx:
            tx.insert(record)
        renamed = record.model_copy(update={"name": "Acme 2", "revision": 1})

        with any_storage.transaction() as tx:
            tx.replace(renamed, expected_revision=0)

        assert any_storage.get("Org", record.id).name == "Acme 2"

    def test_stale_revision(self, any_storage):
        """Test that a stale revision raises ConcurrencyConflict."""
        record = org()
        with any_storage.transaction() as tx:
            tx.insert(record)

        with pytest.raises(ConcurrencyConflict) as exc_info:
            with any_storage.transaction() as tx:
                tx.replace(record.model_copy(update={"revision": 4}), expected_revision=3)
        assert exc_info.value.actual_revision == 0

    def test_replace_missing_record(self, any_storage):
        """Test that replacing a record that was never stored is a conflict."""
        with pytest.raises(ConcurrencyConflict):
            with any_storage.transaction() as tx:
                tx.replace(org(), expected_revision=0)


class TestUniqueIndexes:
    """Unique and sparse modifiers are enforced by the store."""

    def test_duplicate_id(self, any_storage):
        """Test that a duplicate id violates unique:_id."""
        record = org()
        with any_storage.transaction() as tx:
            tx.insert(record)

        with pytest.raises(RelationshipViolation) as exc_info:
            with any_storage.transaction() as tx:
                tx.insert(record)
        assert exc_info.value.rule == "unique:_id"

    def test_sparse_unique_allows_missing_values(self, any_storage):
        """Test that a sparse unique index ignores documents without the field."""
        with any_storage.transaction() as tx:
            tx.insert(provider())
            tx.insert(provider())

        assert any_storage.count("Provider") == 2

    def test_sparse_unique_rejects_duplicates(self, any_storage):
        """Test that a sparse unique index rejects duplicate values."""
        first = provider("1234567893")
        with any_storage.transaction() as tx:
            tx.insert(first)

        with pytest.raises(RelationshipViolation) as exc_info:
            with any_storage.transaction() as tx:
                tx.insert(provider("1234567893"))
        assert exc_info.value.rule == "unique:npi_1"
        assert exc_info.value.related_id == first.id

    def test_compound_sparse_index(self, any_storage):
        """Test a compound sparse unique index."""
        employer_id = uuid4()

        def employee(number):
            return Employee.new(
                person_id=uuid4(), employer_org_id=employer_id, employee_number=number,
                hire_date=date(2020, 1, 1), employment_status="ACTIVE", is_active=True,
            )

        with any_storage.transaction() as tx:
            tx.insert(employee(None))
            tx.insert(employee(None))
            tx.insert(employee("E-1"))

        with pytest.raises(RelationshipViolation) as exc_info:
            with any_storage.transaction() as tx:
                tx.insert(employee("E-1"))
        assert exc_info.value.rule == "unique:employer_org_id_1_employee_number_1"

    def test_list_indexes(self, any_storage):
        """Test that list_indexes reports the registry indexes."""
        names = [i.name for i in any_storage.list_indexes("PortfolioMember")]
        assert "portfolio_id_1_org_id_1" in names


class TestValueFidelity:
    """Stored values come back with their types."""

    def test_decimal_scale_survives(self, any_storage):
        """Test that decimals keep their scale."""
        limit = PlanLimit.new(
            benefit_plan_id=uuid4(), limit_type="DEDUCTIBLE", network_type="IN_NETWORK", level="INDIVIDUAL",
            limit_amount=Decimal("1500.10"), period_type="CALENDAR_YEAR", is_active=True,
            effective_date=date(2024, 1, 1),
        )
        with any_storage.transaction() as tx:
            tx.insert(limit)

        stored = any_storage.get("PlanLimit", limit.id)
        assert stored.limit_amount == Decimal("1500.10")
        assert str(stored.limit_amount) == "1500.10"
