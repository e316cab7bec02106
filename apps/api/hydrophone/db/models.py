"""SQLAlchemy model for confirmation records."""

from __future__ import annotations

import base64
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from hydrophone.core.config import settings
from hydrophone.core.errors import ValidationError
from hydrophone.db.base import Base
from hydrophone.db.enums import ConfirmationStatus, ConfirmationType
from hydrophone.schemas.context import CONTEXT_MODELS

KEY_LENGTH = 24


def generate_key() -> str:
    """Return a URL-safe key made of 24 random bytes."""
    return base64.urlsafe_b64encode(secrets.token_bytes(KEY_LENGTH)).decode("ascii")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def expiry_for(confirmation_type: str) -> timedelta:
    """Lifetime of a pending confirmation of the given type."""
    if confirmation_type == ConfirmationType.MEDICALTEAM_MONITORING_INVITATION:
        return timedelta(days=settings.EXPIRY_MONITORING_DAYS)
    if confirmation_type == ConfirmationType.PATIENT_PIN_RESET:
        return timedelta(hours=settings.EXPIRY_OTP_HOURS)
    if confirmation_type == ConfirmationType.SIGNUP:
        return timedelta(days=settings.EXPIRY_SIGNUP_DAYS)
    return timedelta(days=settings.EXPIRY_DEFAULT_DAYS)


class Confirmation(Base):
    """
    A pending action awaiting an out-of-band step.

    Stable fields live in columns; the type-specific payload is kept in
    ``context`` and decoded on demand with ``decode_context``.
    """

    __tablename__ = "confirmations"
    __table_args__ = (
        Index("idx_confirmations_email", "email"),
        Index("idx_confirmations_creator_type_status", "creator_id", "type", "status"),
        Index("idx_confirmations_user_type_status", "user_id", "type", "status"),
        Index("idx_confirmations_clinic_id", "clinic_id"),
        Index("idx_confirmations_team_id", "team_id"),
    )

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ConfirmationStatus.PENDING.value
    )
    template_name: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    creator_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    clinic_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    team_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    team_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    context: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    creator: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    modified: Mapped[datetime | None] = mapped_column(nullable=True)

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def new(
        cls,
        confirmation_type: ConfirmationType,
        template_name: str,
        creator_id: str = "",
        context: Any = None,
    ) -> "Confirmation":
        """New pending confirmation with a fresh key."""
        confirmation = cls(
            key=generate_key(),
            type=confirmation_type.value,
            template_name=str(getattr(template_name, "value", template_name)),
            creator_id=creator_id or "",
            user_id="",
            email="",
            status=ConfirmationStatus.PENDING.value,
            created=utcnow(),
            modified=None,
        )
        if context is not None:
            confirmation.add_context(context)
        return confirmation

    def add_context(self, data: Any) -> None:
        if hasattr(data, "model_dump"):
            data = data.model_dump(by_alias=True, exclude_none=True)
        self.context = data

    def decode_context(self):
        """Deserialize ``context`` into the structure expected for ``type``."""
        model = CONTEXT_MODELS.get(ConfirmationType(self.type))
        if model is None:
            return self.context
        try:
            return model.model_validate(self.context or {})
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Confirmation {self.type} has an undecodable context"
            ) from exc

    # =========================================================================
    # State
    # =========================================================================

    @property
    def status_enum(self) -> ConfirmationStatus:
        return ConfirmationStatus(self.status)

    def update_status(self, new_status: ConfirmationStatus) -> None:
        """Set a new status and bump ``modified``."""
        if self.status_enum.is_terminal:
            raise ValueError(
                f"Confirmation {self.key} is {self.status} and cannot become {new_status.value}"
            )
        self.status = new_status.value
        self.modified = utcnow()

    def reset_key(self) -> None:
        """Give the record a fresh identity while keeping its intent."""
        self.key = generate_key()
        self.status = ConfirmationStatus.PENDING.value
        self.reset_creation_attributes()

    def reset_creation_attributes(self) -> None:
        self.created = utcnow()
        self.modified = None

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return now > as_utc(self.created) + expiry_for(self.type)

    def readable_duration(self) -> str:
        """Lifetime of the record as shown in emails ("7 days", "1 hour")."""
        lifetime = expiry_for(self.type)
        if lifetime >= timedelta(days=1):
            days = lifetime.days
            return f"{days} day" if days == 1 else f"{days} days"
        hours = max(1, int(lifetime.total_seconds() // 3600))
        return f"{hours} hour" if hours == 1 else f"{hours} hours"

    # =========================================================================
    # Validation helpers: each returns mismatch messages (empty when valid)
    # =========================================================================

    def validate_creator_id(self, expected: str) -> list[str]:
        if expected != self.creator_id:
            return [f"Confirmation expected CreatorID `{expected}` but had `{self.creator_id}`"]
        return []

    def validate_user_id(self, expected: str) -> list[str]:
        if expected != self.user_id:
            return [f"Confirmation expected UserID of `{expected}` but had `{self.user_id}`"]
        return []

    def validate_clinic_id(self, expected: str) -> list[str]:
        if expected != self.clinic_id:
            return [f"Confirmation expected ClinicId of `{expected}` but had `{self.clinic_id}`"]
        return []

    def validate_status(self, expected: ConfirmationStatus) -> list[str]:
        if expected.value != self.status:
            return [f"Confirmation expected Status of `{expected.value}` but had `{self.status}`"]
        return []

    def validate_status_in(self, expected: list[ConfirmationStatus]) -> list[str]:
        if self.status not in {s.value for s in expected}:
            wanted = [s.value for s in expected]
            return [f"Confirmation expected Status in `{wanted}` but had `{self.status}`"]
        return []

    def validate_type(self, expected: ConfirmationType) -> list[str]:
        if expected.value != self.type:
            return [f"Confirmation expected Type `{expected.value}` but had `{self.type}`"]
        return []

    def __repr__(self) -> str:
        return f"<Confirmation {self.type} {self.status} key={self.key[:6]}...>"
