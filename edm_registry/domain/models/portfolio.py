"""Portfolio domain models.

A portfolio is a nestable grouping of Orgs. Its owner is either an Org, a
Person or nobody (system-owned). The owner is held as a tagged union so the
"both populated" state cannot be represented; the flat ``owner_org_id`` /
``owner_person_id`` shape of the stored document is still accepted on input
and produced on output.
"""

from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.fields import FieldInfo

from edm_registry.domain.enums import PortfolioType
from edm_registry.domain.models.base import EffectiveDatedRecord, consistency_error


class OwnedByOrg(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["org"] = "org"
    org_id: UUID


class OwnedByPerson(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["person"] = "person"
    person_id: UUID


class Unowned(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["none"] = "none"


PortfolioOwner = Annotated[Union[OwnedByOrg, OwnedByPerson, Unowned], Field(discriminator="kind")]


class Portfolio(EffectiveDatedRecord):
    """Nestable grouping of Orgs.

    Parameters:
        name: Portfolio name
        description: Free text description
        portfolio_type: Kind of portfolio (USER, BROKER, EMPLOYER, ...)
        owner: OwnedByOrg, OwnedByPerson or Unowned
        parent_portfolio_id: Enclosing portfolio, if nested
        is_active: Whether the portfolio is active
    """

    name: str
    description: Optional[str] = None
    portfolio_type: PortfolioType
    owner: PortfolioOwner = Field(default_factory=Unowned)
    parent_portfolio_id: Optional[UUID] = None
    is_active: bool

    @model_validator(mode="before")
    @classmethod
    def fold_owner_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict) or ("owner_org_id" not in data and "owner_person_id" not in data):
            return data
        data = dict(data)
        org_id = data.pop("owner_org_id", None)
        person_id = data.pop("owner_person_id", None)
        if org_id is not None and person_id is not None:
            raise consistency_error(
                "owner_person_id", "a portfolio is owned by an org or a person, not both"
            )
        if "owner" in data:
            if org_id is not None or person_id is not None:
                raise consistency_error("owner", "give either owner or owner_org_id/owner_person_id")
            return data
        if org_id is not None:
            data["owner"] = {"kind": "org", "org_id": org_id}
        elif person_id is not None:
            data["owner"] = {"kind": "person", "person_id": person_id}
        else:
            data["owner"] = {"kind": "none"}
        return data

    @model_validator(mode="after")
    def check_parent(self) -> "Portfolio":
        if self.parent_portfolio_id == self.id:
            raise consistency_error("parent_portfolio_id", "a portfolio cannot contain itself")
        return self

    @property
    def owner_org_id(self) -> Optional[UUID]:
        return self.owner.org_id if isinstance(self.owner, OwnedByOrg) else None

    @property
    def owner_person_id(self) -> Optional[UUID]:
        return self.owner.person_id if isinstance(self.owner, OwnedByPerson) else None

    @classmethod
    def document_fields(cls) -> dict[str, FieldInfo]:
        fields = {}
        for name, info in super().document_fields().items():
            if name == "owner":
                fields["owner_org_id"] = FieldInfo.from_annotated_attribute(Optional[UUID], None)
                fields["owner_person_id"] = FieldInfo.from_annotated_attribute(Optional[UUID], None)
            else:
                fields[name] = info
        return fields

    def to_document(self) -> dict[str, Any]:
        document = super().to_document()
        document.pop("owner")
        document["owner_org_id"] = self.owner_org_id
        document["owner_person_id"] = self.owner_person_id
        return document


class PortfolioMember(EffectiveDatedRecord):
    """Membership of an Org in a Portfolio (unique per pair)."""

    portfolio_id: UUID
    org_id: UUID
    is_active: bool
