"""Preferred / primary flag resolution.

Setting ``is_preferred`` on a contact, or ``is_primary`` on an identifier or
provider affiliation, makes that record the single winner among its
siblings: every sibling sharing the same parent and type has the flag
cleared in the same transaction as the winning write, so no reader ever
observes zero or several winners. Last write wins.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from edm_registry.domain.models.base import EntityRecord, utcnow
from edm_registry.domain.ports import StorageTransaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SingleWinnerRule:
    """At most one record per scope may carry ``flag``.

    Attributes:
        entity: Entity the rule applies to
        flag: Boolean field that marks the winner
        scope_fields: Fields whose values define a sibling group
    """
    entity: str
    flag: str
    scope_fields: tuple[str, ...]

    def siblings(self, view: StorageTransaction, candidate: EntityRecord) -> list[EntityRecord]:
        criteria = {name: getattr(candidate, name) for name in self.scope_fields}
        return [r for r in view.find(self.entity, **criteria) if r.id != candidate.id]


_RULES = (
    SingleWinnerRule("OrgContact", "is_preferred", ("org_id", "contact_type")),
    SingleWinnerRule("PersonContact", "is_preferred", ("person_id", "contact_type")),
    SingleWinnerRule("OrgIdentifier", "is_primary", ("org_id", "identifier_type")),
    SingleWinnerRule("PersonIdentifier", "is_primary", ("person_id", "identifier_type")),
    SingleWinnerRule("ProviderAffiliation", "is_primary", ("provider_id",)),
)

SINGLE_WINNER_RULES: dict[str, tuple[SingleWinnerRule, ...]] = {}
for _rule in _RULES:
    SINGLE_WINNER_RULES[_rule.entity] = SINGLE_WINNER_RULES.get(_rule.entity, ()) + (_rule,)


class PreferredFlagResolver:
    """Clears the flag on the siblings of a winning record."""

    def __init__(self, rules: Optional[dict[str, tuple[SingleWinnerRule, ...]]] = None):
        self.rules = rules if rules is not None else SINGLE_WINNER_RULES

    def resolve(self, tx: StorageTransaction, candidate: EntityRecord) -> list[EntityRecord]:
        """Clear the flag on every sibling of ``candidate`` that still carries it.

        Must run inside the transaction that writes ``candidate``.

        Returns:
            list[EntityRecord]: The sibling records rewritten
        """
        entity = type(candidate).__name__
        rewritten = []
        for rule in self.rules.get(entity, ()):
            if not getattr(candidate, rule.flag):
                continue
            for sibling in rule.siblings(tx, candidate):
                if not getattr(sibling, rule.flag):
                    continue
                cleared = sibling.model_copy(update={
                    rule.flag: False,
                    "updated_at": utcnow(),
                    "revision": sibling.revision + 1,
                })
                rewritten.append(tx.replace(cleared, expected_revision=sibling.revision))
                logger.info(f"Cleared {entity}.{rule.flag} on {sibling.id} in favour of {candidate.id}")
        return rewritten
