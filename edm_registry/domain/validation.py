"""Structural validation of candidate documents.

The StructuralValidator checks one document against its entity's typed
model and reports every broken rule at once. It is a pure function of the
document: it never touches storage and never coerces a rejected document
into an accepted one.

Rules reported in FieldViolation.rule:
    required, type, enum, pattern, max_length, minimum, maximum,
    unknown_field, consistency
"""

import logging
from typing import Any, Mapping, Optional
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from edm_registry.domain.models.base import EntityRecord, utcnow
from edm_registry.domain.ports import FieldViolation, Result, StructuralViolation
from edm_registry.domain.registry import REGISTRY, SchemaRegistry

logger = logging.getLogger(__name__)

# Pydantic error type -> violation rule
_RULES = {
    "missing": "required",
    "enum": "enum",
    "string_pattern_mismatch": "pattern",
    "string_too_long": "max_length",
    "too_long": "max_length",
    "greater_than_equal": "minimum",
    "greater_than": "minimum",
    "less_than_equal": "maximum",
    "less_than": "maximum",
    "extra_forbidden": "unknown_field",
    "consistency": "consistency",
    "value_error": "consistency",
}


def _field_path(loc: tuple) -> str:
    parts = [str(p) for p in loc if not (isinstance(p, str) and p in ("org", "person", "none"))]
    path = ".".join(parts)
    return "id" if path == "_id" else path


def stamp_document(model: type[EntityRecord], document: Any) -> Any:
    """Copy of ``document`` with id and timestamps filled in where absent.

    Anything that is not a mapping is returned unchanged for the validator
    to reject.
    """
    if not isinstance(document, Mapping):
        return document
    data = dict(document)
    if "_id" not in data and "id" not in data:
        data["id"] = uuid4()
    data.setdefault("created_at", utcnow())
    if "updated_at" in model.model_fields:
        data.setdefault("updated_at", data["created_at"])
    return data


def violations_from_error(error: PydanticValidationError) -> list[FieldViolation]:
    """Translate a Pydantic ValidationError into FieldViolations."""
    violations = []
    for detail in error.errors(include_url=False):
        error_type = detail["type"]
        rule = _RULES.get(error_type, "type")
        value = detail.get("input")
        if rule == "type" and value is None:
            rule = "required"
        field = _field_path(detail["loc"])
        if error_type == "consistency":
            field = (detail.get("ctx") or {}).get("field", field) or field
            value = None
        if rule == "required" and error_type == "missing":
            value = None
        violations.append(FieldViolation(field=field or "__root__", rule=rule, message=detail["msg"], value=value))
    return violations


class StructuralValidator:
    """Validates documents against the registered entity models.

    Parameters:
        registry: Schema registry to resolve entity names (defaults to REGISTRY)

    Example:
        ```python
        validator = StructuralValidator()
        result = validator.validate("OrgContact", document)
        if result.is_failure():
            print(result.error_details["violations"])
        ```
    """

    def __init__(self, registry: Optional[SchemaRegistry] = None):
        self.registry = registry or REGISTRY

    def validate(self, entity: str, data: Mapping[str, Any]) -> Result[EntityRecord]:
        """Validate a document; never raises for bad input.

        Parameters:
            entity: Entity or collection name
            data: Candidate document (``_id`` or ``id`` accepted for the key)

        Returns:
            Result[EntityRecord]: the typed record, or a StructuralViolation failure
        """
        spec = self.registry.get(entity)
        if not isinstance(data, Mapping):
            violation = FieldViolation("__root__", "type", "document must be an object", data)
            return Result.failure_result(StructuralViolation(spec.name, [violation]))
        try:
            record = spec.model.model_validate(dict(data))
        except PydanticValidationError as e:
            violation_error = StructuralViolation(spec.name, violations_from_error(e))
            logger.warning(f"{violation_error}", extra={"violations": violation_error.details["violations"]})
            return Result.failure_result(violation_error)
        return Result.success_result(record)

    def validate_or_raise(self, entity: str, data: Mapping[str, Any]) -> EntityRecord:
        """Validate a document and return the typed record.

        Raises:
            StructuralViolation: If any rule is broken
        """
        return self.validate(entity, data).unwrap()

    def check_record(self, record: EntityRecord) -> EntityRecord:
        """Re-validate a constructed record (e.g. one built by ``model_copy``).

        Raises:
            StructuralViolation: If the record no longer satisfies its contract
        """
        spec = self.registry.for_model(type(record))
        return self.validate_or_raise(spec.name, record.to_document())
