"""Shared confirmation engine: authorization, checks, rendering, transitions.

The per-family services (care team, clinic, team, signup, ...) build on the
helpers here. Every helper that can refuse a request raises before any state
is changed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta

from sqlalchemy.orm import Session

from hydrophone.core.config import settings
from hydrophone.core.errors import (
    ExistingInvite,
    Expired,
    Forbidden,
    MailFailed,
    NotFound,
    TooManyAttempts,
    Unauthorized,
    UpstreamUnavailable,
)
from hydrophone.core.language import resolve_language
from hydrophone.core.structured_logging import build_log_context
from hydrophone.db.enums import ConfirmationStatus, ConfirmationType
from hydrophone.db.models import Confirmation
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_store import ConfirmationFilter
from hydrophone.services.directory import Directories
from hydrophone.services.directory.models import Clinician, TokenData, User
from hydrophone.services.mail_service import STATUS_OK, Mailer
from hydrophone.services.template_service import RenderError, TemplateRegistry
from hydrophone.types import EmailContent

logger = logging.getLogger(__name__)

DEFAULT_CARETEAM_NAME = "Tidepool User"


@dataclass
class EngineContext:
    """Collaborators of one request."""

    db: Session
    directories: Directories
    mailer: Mailer
    templates: TemplateRegistry
    headers: Mapping[str, str] = field(default_factory=dict)


# =============================================================================
# Authorization
# =============================================================================

def require_user_token(token: TokenData) -> None:
    """Refuse trusted service tokens on actions a person must perform."""
    if token.is_server:
        raise Forbidden("Server tokens cannot perform this operation")


async def has_authority(ctx: EngineContext, token: TokenData, user_id: str) -> bool:
    """Server token, the user itself, or a custodian/root of the user."""
    if token.is_server or token.userid == user_id:
        return True
    return await ctx.directories.permission.is_custodian_or_root(token.userid, user_id)


async def require_authority(ctx: EngineContext, token: TokenData, user_id: str) -> None:
    if not await has_authority(ctx, token, user_id):
        raise Unauthorized()


async def require_clinic_member(
    ctx: EngineContext, token: TokenData, clinic_id: str
) -> Clinician | None:
    """The caller as a member of the clinic (None for server tokens), else Unauthorized."""
    if token.is_server:
        return None
    clinician = await ctx.directories.clinic.get_clinician(clinic_id, token.userid)
    if clinician is None:
        raise Unauthorized("Not a member of the clinic")
    return clinician


async def require_clinic_admin(
    ctx: EngineContext, token: TokenData, clinic_id: str
) -> Clinician | None:
    clinician = await require_clinic_member(ctx, token, clinic_id)
    if clinician is not None and not clinician.is_admin():
        raise Unauthorized("Clinic admin role required")
    return clinician


async def get_caller(ctx: EngineContext, token: TokenData) -> User:
    """Account behind a user token."""
    require_user_token(token)
    user = await ctx.directories.identity.get_user(token.userid)
    if user is None:
        raise Unauthorized("Unknown caller")
    return user


def is_recipient(confirmation: Confirmation, user: User) -> bool:
    if confirmation.user_id and confirmation.user_id == user.userid:
        return True
    emails = {e.lower() for e in user.emails}
    return bool(confirmation.email) and confirmation.email.lower() in emails


def require_recipient(confirmation: Confirmation, user: User) -> None:
    if not is_recipient(confirmation, user):
        raise Forbidden("Confirmation is not addressed to the caller")


# =============================================================================
# Lookups and checks
# =============================================================================

def find_pending(ctx: EngineContext, flt: ConfirmationFilter) -> Confirmation:
    """
    Pending, non-expired record matching ``flt``.

    Raises:
        NotFound: no record matches
        Forbidden: the record is no longer pending
        Expired: the record is past its lifetime
    """
    confirmation = store.find_one(ctx.db, flt)
    if confirmation is None:
        raise NotFound("Confirmation not found")
    if confirmation.status_enum.is_terminal:
        raise Forbidden(f"Confirmation is already {confirmation.status}")
    if confirmation.is_expired():
        raise Expired()
    return confirmation


def check_duplicate(ctx: EngineContext, flt: ConfirmationFilter) -> None:
    """Refuse a send when a pending, non-expired record already covers it."""
    flt.status = ConfirmationStatus.PENDING
    existing = store.find_one(ctx.db, flt)
    if existing is not None and not existing.is_expired():
        logger.info(
            "Duplicate confirmation refused",
            extra=build_log_context(
                confirmation_key=existing.key, confirmation_type=existing.type
            ),
        )
        raise ExistingInvite()


def check_throttle(ctx: EngineContext, confirmation_type: ConfirmationType, user_id: str) -> None:
    window = timedelta(hours=settings.THROTTLE_WINDOW_HOURS)
    count = store.count_recent(ctx.db, confirmation_type, user_id, window)
    if count >= settings.THROTTLE_MAX_ATTEMPTS:
        logger.warning(
            "Throttled %s send (%d in window)",
            confirmation_type.value,
            count,
            extra=build_log_context(user_id=user_id, confirmation_type=confirmation_type.value),
        )
        raise TooManyAttempts()


# =============================================================================
# Record helpers
# =============================================================================

async def add_creator(
    ctx: EngineContext,
    confirmation: Confirmation,
    clinic_id: str | None = None,
    clinic_name: str | None = None,
) -> None:
    """Capture the creator's profile on the record, as it was at send time."""
    creator: dict = {"userid": confirmation.creator_id}
    if confirmation.creator_id:
        try:
            profile = await ctx.directories.profile.get_profile(confirmation.creator_id)
        except UpstreamUnavailable:
            logger.warning("Creator profile unavailable for %s", confirmation.creator_id)
            profile = None
        if profile is not None:
            creator["profile"] = {
                "fullName": profile.full_name,
                "patient": profile.patient.model_dump(by_alias=True),
            }
    if clinic_id:
        creator["clinicId"] = clinic_id
    if clinic_name:
        creator["clinicName"] = clinic_name
    confirmation.creator = creator


def creator_name(confirmation: Confirmation) -> str:
    return ((confirmation.creator or {}).get("profile") or {}).get("fullName") or ""


def careteam_name(confirmation: Confirmation) -> str:
    """Name of the person whose data is shared, as shown in invitations."""
    profile = (confirmation.creator or {}).get("profile") or {}
    patient = profile.get("patient") or {}
    if patient.get("isOtherPerson") and patient.get("fullName"):
        return patient["fullName"]
    return profile.get("fullName") or DEFAULT_CARETEAM_NAME


def transition(ctx: EngineContext, confirmation: Confirmation, status: ConfirmationStatus) -> Confirmation:
    """Move a pending record to ``status`` and persist it."""
    if confirmation.status_enum.is_terminal:
        raise Forbidden(f"Confirmation is already {confirmation.status}")
    confirmation.update_status(status)
    confirmation = store.upsert(ctx.db, confirmation)
    logger.info(
        "Confirmation %s",
        status.value,
        extra=build_log_context(
            confirmation_key=confirmation.key, confirmation_type=confirmation.type
        ),
    )
    return confirmation


async def ensure_user_ids(ctx: EngineContext, confirmations: Iterable[Confirmation]) -> None:
    """Fill in ``user_id`` for records whose recipient now has an account."""
    for confirmation in confirmations:
        if confirmation.user_id or not confirmation.email:
            continue
        user = await ctx.directories.identity.get_user(confirmation.email)
        if user is not None:
            confirmation.user_id = user.userid
            store.upsert(ctx.db, confirmation)


# =============================================================================
# Language and email
# =============================================================================

async def recipient_language(ctx: EngineContext, user_id: str | None) -> str:
    """Display language of a known account, else the request hint, else English."""
    preferred = None
    if user_id:
        try:
            preferences = await ctx.directories.profile.get_preferences(user_id)
        except UpstreamUnavailable:
            logger.warning("Preferences unavailable for %s", user_id)
            preferences = None
        if preferences is not None:
            preferred = preferences.display_language
    return resolve_language(preferred, ctx.headers)


def link_content() -> EmailContent:
    return {
        "WebURL": settings.WEB_URL,
        "SupportURL": settings.SUPPORT_URL,
        "AssetURL": settings.ASSET_URL,
        "PatientPasswordResetURL": settings.PATIENT_PASSWORD_RESET_URL,
    }


async def send_email(
    ctx: EngineContext,
    template_name: str,
    to: str,
    content: EmailContent,
    language: str,
    tags: dict[str, str] | None = None,
) -> None:
    """Render and dispatch one email; raise MailFailed when that fails."""
    values = {**link_content(), **content}
    try:
        subject, body = ctx.templates.render(template_name, values, language)
    except RenderError as exc:
        logger.error("Rendering %s failed: %s", template_name, exc)
        raise MailFailed() from exc

    status, message = await ctx.mailer.send([to], subject, body, tags)
    if status != STATUS_OK:
        logger.error("Sending %s email failed: %s %s", template_name, status, message)
        raise MailFailed()


async def send_confirmation_email(
    ctx: EngineContext,
    confirmation: Confirmation,
    content: EmailContent,
    language: str,
) -> None:
    """Send the email of a persisted record; the record is kept on failure."""
    await send_email(
        ctx,
        confirmation.template_name,
        confirmation.email,
        content,
        language,
        tags={"type": confirmation.type, "template": confirmation.template_name},
    )
    logger.info(
        "Confirmation email sent",
        extra=build_log_context(
            user_id=confirmation.user_id,
            confirmation_key=confirmation.key,
            confirmation_type=confirmation.type,
        ),
    )
