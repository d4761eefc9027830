"""
Pydantic data models for the interaction tracker.

Events and batches are immutable once built. Storage and wire formats use
camelCase field names (subjectId, actorId, kind, occurredAt).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .utils import ensure_utc, generate_id, utc_now


class InteractionKind(str, Enum):
    """Tracked user actions. Cart, wishlist and purchase are recorded server side."""

    VIEW = "View"
    CLICK = "Click"


class InteractionEvent(BaseModel):
    """Single recorded user interaction with a subject (e.g. a product)."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    subject_id: int
    actor_id: str
    kind: InteractionKind
    occurred_at: datetime

    @field_validator("occurred_at")
    @classmethod
    def _to_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class InteractionBatch(BaseModel):
    """Immutable snapshot of pending events used for exactly one delivery attempt."""

    model_config = ConfigDict(frozen=True)

    events: Tuple[InteractionEvent, ...]
    batch_id: str = Field(default_factory=generate_id)
    snapshot_at: datetime = Field(default_factory=utc_now)

    def __len__(self) -> int:
        return len(self.events)

    def to_payload(self) -> dict[str, Any]:
        """JSON body expected by the ingestion endpoint."""
        return {
            "interactions": [e.to_wire() for e in self.events],
            "batchTimestamp": ensure_utc(self.snapshot_at).isoformat().replace("+00:00", "Z"),
            "batchId": self.batch_id,
        }


class AuthSession(BaseModel):
    """Current session as reported by the auth collaborator."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    expires_at: Optional[datetime] = None

    @field_validator("expires_at")
    @classmethod
    def _expiry_to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        """Token present and not expired."""
        if not self.access_token or not self.access_token.strip():
            return False
        if self.expires_at is None:
            return True
        return self.expires_at > (now or utc_now())
