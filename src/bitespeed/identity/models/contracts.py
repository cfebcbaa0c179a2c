from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class LinkPrecedence(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


_UNSAVED = datetime.max.replace(tzinfo=timezone.utc)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Contact(_CamelModel):
    """A stored contact sighting; either a cluster primary or a secondary linked to one."""

    id: Optional[int] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    linked_id: Optional[int] = None
    link_precedence: LinkPrecedence = LinkPrecedence.PRIMARY
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_primary(self) -> bool:
        return self.link_precedence == LinkPrecedence.PRIMARY

    def matches_pair(self, email: str | None, phone_number: str | None) -> bool:
        return self.email == email and self.phone_number == phone_number

    def sort_key(self) -> tuple[datetime, int]:
        # Unsaved contacts sort last; stored rows always carry both fields.
        return (self.created_at or _UNSAVED, self.id if self.id is not None else 0)


class ConsolidatedContact(_CamelModel):
    """Externally visible view of one identity cluster."""

    primary_contact_id: int
    emails: List[str] = Field(default_factory=list)
    phone_numbers: List[str] = Field(default_factory=list)
    secondary_contact_ids: List[int] = Field(default_factory=list)


def _coerce_identifier(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("identifier must be a string")
    if isinstance(value, int):
        return str(value)
    return value


class ContactPayload(_CamelModel):
    """Body accepted by ``POST /api/v1/contacts``."""

    email: Optional[str] = None
    phone_number: Optional[str] = None

    @field_validator("email", "phone_number", mode="before")
    @classmethod
    def coerce_numbers(cls, value: Any) -> Any:
        return _coerce_identifier(value)


class IdentifyContactRequest(ContactPayload):
    """Body accepted by ``POST /api/v1/identify``; both fields optional."""


class ContactCreatedResponse(_CamelModel):
    message: str = "Contact created"
    contact: Contact


class IdentifyContactResponse(_CamelModel):
    contact: ConsolidatedContact


__all__ = [
    "Contact",
    "ConsolidatedContact",
    "ContactCreatedResponse",
    "ContactPayload",
    "IdentifyContactRequest",
    "IdentifyContactResponse",
    "LinkPrecedence",
]
