"""
Untrusted inbound payloads.

Everything arriving from the webhook, the scan endpoint or the bulk ingest
is validated here before it becomes a domain object. Field names accept
both snake_case and the camelCase spellings scanner vendors send.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..domain.errors import InvalidInputError
from ..domain.models import Attendee, ScanEvent

ITEM_SCAN = "scan"
ITEM_ATTENDEE = "attendee"

_SCAN_KEYS = frozenset({"scan_id", "scanId", "scanner_actor_id", "scannerActorId", "scanner"})


def _normalize_tags(values: list[str]) -> list[str]:
    return sorted({value.strip().lower() for value in values if value and value.strip()})


class ScanPayload(BaseModel):
    """A badge scan in canonical form."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    scan_id: str = Field(
        ..., min_length=1, max_length=200, validation_alias=AliasChoices("scan_id", "scanId")
    )
    scanner_actor_id: str = Field(
        ...,
        min_length=1,
        max_length=200,
        validation_alias=AliasChoices(
            "scanner_actor_id", "scannerActorId", "scanner", "scannerId", "scanner_id"
        ),
    )
    target_actor_id: str = Field(
        ...,
        min_length=1,
        max_length=200,
        validation_alias=AliasChoices(
            "target_actor_id", "targetActorId", "target", "badgeId", "badge_id"
        ),
    )
    occurred_at: datetime = Field(
        ..., validation_alias=AliasChoices("occurred_at", "occurredAt", "timestamp", "time")
    )
    location: str | None = Field(default=None, max_length=200)

    @field_validator("occurred_at")
    @classmethod
    def require_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("occurred_at must carry a timezone offset")
        return value.astimezone(UTC)

    def to_event(self) -> ScanEvent:
        return ScanEvent(
            scan_id=self.scan_id,
            scanner_actor_id=self.scanner_actor_id,
            target_actor_id=self.target_actor_id,
            occurred_at=self.occurred_at,
            location=self.location or None,
        )


class AttendeePayload(BaseModel):
    """An attendee profile row from the bulk ingest."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    actor_id: str = Field(
        ..., min_length=1, max_length=200, validation_alias=AliasChoices("actor_id", "actorId", "id")
    )
    goals: list[str] = Field(default_factory=list, max_length=100)
    interests: list[str] = Field(default_factory=list, max_length=100)
    company: str | None = Field(default=None, max_length=200)
    role: str | None = Field(default=None, max_length=200)
    name: str | None = Field(default=None, max_length=200)
    matchmaking_consent: bool = Field(
        default=True,
        validation_alias=AliasChoices("matchmaking_consent", "matchmakingConsent", "consent"),
    )

    @field_validator("goals", "interests")
    @classmethod
    def normalize_tags(cls, value: list[str]) -> list[str]:
        return _normalize_tags(value)

    def to_attendee(self) -> Attendee:
        return Attendee(
            actor_id=self.actor_id,
            goals=frozenset(self.goals),
            interests=frozenset(self.interests),
            company=self.company,
            role=self.role,
            name=self.name,
            matchmaking_consent=self.matchmaking_consent,
        )


def classify_batch_item(item: Any) -> str:
    """Tell scans from attendees in a mixed ingest batch."""
    if not isinstance(item, dict):
        raise InvalidInputError("Batch items must be objects")
    declared = item.get("type")
    if declared in (ITEM_SCAN, ITEM_ATTENDEE):
        return declared
    if declared is not None:
        raise InvalidInputError(f"Unknown item type: {declared!r}")
    return ITEM_SCAN if _SCAN_KEYS & item.keys() else ITEM_ATTENDEE


def describe_validation_error(error: ValidationError) -> str:
    """Compact one-line summary of a pydantic ValidationError."""
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"]) or "payload"
        parts.append(f"{location}: {detail['msg']}")
    return "; ".join(parts)


def parse_scan(data: Any) -> ScanEvent:
    try:
        return ScanPayload.model_validate(data).to_event()
    except ValidationError as e:
        raise InvalidInputError(
            f"Invalid scan: {describe_validation_error(e)}", errors=e.error_count()
        ) from e


def parse_attendee(data: Any) -> Attendee:
    try:
        return AttendeePayload.model_validate(data).to_attendee()
    except ValidationError as e:
        raise InvalidInputError(
            f"Invalid attendee: {describe_validation_error(e)}", errors=e.error_count()
        ) from e
