"""Domain layer for EDM Registry.

This package contains the entity models, the schema registry, the error
taxonomy and the services that enforce cross-entity invariants. Domain
code depends on Pydantic and tenacity only; storage is reached through
the ports in ``edm_registry.domain.ports``.
"""

from edm_registry.domain.ports import (
    ConcurrencyConflict,
    FieldViolation,
    RegistryError,
    RelationshipViolation,
    Result,
    StorageError,
    StoreUnavailable,
    StructuralViolation,
)
from edm_registry.domain.registry import REGISTRY, SchemaRegistry
from edm_registry.domain.validation import StructuralValidator

__all__ = [
    "ConcurrencyConflict",
    "FieldViolation",
    "RegistryError",
    "RelationshipViolation",
    "Result",
    "StorageError",
    "StoreUnavailable",
    "StructuralViolation",
    "REGISTRY",
    "SchemaRegistry",
    "StructuralValidator",
]
