"""Domain Services.

Services that enforce the cross-entity invariants of the data model on
top of a storage transaction, without infrastructure dependencies.
"""

from edm_registry.domain.services.accumulator_service import (
    AccumulatorEvent,
    AccumulatorService,
    CoverageScope,
    MemberScope,
)
from edm_registry.domain.services.composition_versioning import CompositionVersioningService
from edm_registry.domain.services.preferred_resolution import PreferredFlagResolver
from edm_registry.domain.services.record_service import ProvenanceAgent, RecordService
from edm_registry.domain.services.relationship_validator import RelationshipValidator, ValidationMode

__all__ = [
    'AccumulatorEvent',
    'AccumulatorService',
    'CompositionVersioningService',
    'CoverageScope',
    'MemberScope',
    'PreferredFlagResolver',
    'ProvenanceAgent',
    'RecordService',
    'RelationshipValidator',
    'ValidationMode',
]
