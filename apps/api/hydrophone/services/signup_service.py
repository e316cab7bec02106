"""Sign-up confirmation: verify the email of a new account, or claim a custodial one."""

from __future__ import annotations

import logging
import re
from datetime import date

from pydantic import ValidationError as PydanticValidationError

from hydrophone.core.errors import Conflict, Forbidden, NotFound, ValidationError
from hydrophone.core.structured_logging import build_log_context
from hydrophone.db.enums import ConfirmationStatus, ConfirmationType, TemplateName
from hydrophone.db.models import Confirmation
from hydrophone.schemas.confirmation import SignupAcceptance, SignupUpsert
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_service import (
    EngineContext,
    add_creator,
    check_throttle,
    creator_name,
    recipient_language,
    require_authority,
    send_confirmation_email,
    transition,
)
from hydrophone.services.confirmation_store import ConfirmationFilter
from hydrophone.services.directory.models import TokenData, User

logger = logging.getLogger(__name__)

DEFAULT_CLINIC_NAME = "Diabetes Clinic"
DEFAULT_CREATOR_NAME = "Clinician"

# Error codes returned with 409 when a custodial account is claimed
ERROR_NO_PASSWORD = 1001
ERROR_MISSING_PASSWORD = 1002
ERROR_INVALID_PASSWORD = 1003
ERROR_MISSING_BIRTHDAY = 1004
ERROR_INVALID_BIRTHDAY = 1005
ERROR_MISMATCH_BIRTHDAY = 1006

_PASSWORD = re.compile(r"\S{8,72}")


def is_valid_password(password: str) -> bool:
    return _PASSWORD.fullmatch(password) is not None


def is_valid_date(value: str) -> bool:
    """True for a calendar date written YYYY-MM-DD."""
    if not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _signup_filter(user_id: str) -> ConfirmationFilter:
    return ConfirmationFilter(
        user_id=user_id, type=ConfirmationType.SIGNUP, status=ConfirmationStatus.PENDING
    )


async def _pick_template(
    ctx: EngineContext, token: TokenData, user: User, data: SignupUpsert
) -> tuple[TemplateName, str, str | None]:
    """Template, creator id and clinic id of a new sign-up record."""
    if user.is_clinic():
        return TemplateName.SIGNUP_CLINIC, "", None
    if not user.is_custodial():
        return TemplateName.SIGNUP, "", None

    if token.is_server:
        if data.clinic_id:
            return TemplateName.SIGNUP_CUSTODIAL_CLINIC, data.invited_by or "", data.clinic_id
        return TemplateName.SIGNUP_CUSTODIAL, "", None

    creator = await ctx.directories.identity.get_user(token.userid)
    if creator is not None and creator.is_clinic():
        return TemplateName.SIGNUP_CUSTODIAL_CLINIC, token.userid, None
    return TemplateName.SIGNUP_CUSTODIAL, token.userid, None


async def upsert_signup(
    ctx: EngineContext, token: TokenData, user_id: str, data: SignupUpsert | None = None
) -> Confirmation | None:
    """
    Create or refresh the pending sign-up of ``user_id``.

    Returns None when the account has no email: any previous sign-up is
    removed and there is nobody to write to.

    Raises:
        NotFound: unknown account
        TooManyAttempts: throttle exceeded
        Forbidden: a pending sign-up already targets the current email
    """
    data = data or SignupUpsert()
    await require_authority(ctx, token, user_id)
    user = await ctx.directories.identity.get_user(user_id)
    if user is None:
        raise NotFound("Error finding user")
    check_throttle(ctx, ConfirmationType.SIGNUP, user.userid)

    existing = store.find_one(ctx.db, _signup_filter(user.userid))
    if not user.emails:
        if existing is not None:
            store.remove(ctx.db, existing.key)
        return None

    email = user.emails[0]
    if existing is None:
        template, creator_id, clinic_id = await _pick_template(ctx, token, user, data)
        signup = Confirmation.new(ConfirmationType.SIGNUP, template, creator_id)
        signup.user_id = user.userid
        signup.email = email
        signup.clinic_id = clinic_id
        await add_creator(ctx, signup)
        return store.upsert(ctx.db, signup)

    if existing.email.lower() == email.lower():
        raise Forbidden("User already has an existing valid signup confirmation")

    existing.email = email
    if data.clinic_id:
        existing.clinic_id = data.clinic_id
        existing.creator_id = data.invited_by or existing.creator_id
    await add_creator(ctx, existing)
    return store.replace_key(ctx.db, existing)


async def _signup_content(ctx: EngineContext, signup: Confirmation) -> dict[str, str]:
    profile = await ctx.directories.profile.get_profile(signup.user_id)
    content = {
        "Key": signup.key,
        "Email": signup.email,
        "FullName": profile.full_name if profile is not None else "",
        "CreatorName": creator_name(signup) or DEFAULT_CREATOR_NAME,
    }
    if signup.clinic_id:
        clinic = await ctx.directories.clinic.get_clinic(signup.clinic_id)
        content["ClinicName"] = (clinic.name if clinic is not None else "") or DEFAULT_CLINIC_NAME
    return content


async def send_signup(
    ctx: EngineContext, token: TokenData, user_id: str, data: SignupUpsert | None = None
) -> Confirmation | None:
    signup = await upsert_signup(ctx, token, user_id, data)
    if signup is None:
        return None
    logger.info(
        "Sending signup confirmation",
        extra=build_log_context(
            user_id=signup.user_id, confirmation_key=signup.key, confirmation_type=signup.type
        ),
    )
    content = await _signup_content(ctx, signup)
    language = await recipient_language(ctx, signup.user_id)
    await send_confirmation_email(ctx, signup, content, language)
    return signup


async def resend_signup(ctx: EngineContext, email: str) -> Confirmation:
    """Re-issue the pending sign-up of ``email`` under a fresh key."""
    signup = store.find_one(
        ctx.db,
        ConfirmationFilter(
            email=email, type=ConfirmationType.SIGNUP, status=ConfirmationStatus.PENDING
        ),
    )
    if signup is None:
        raise NotFound("No matching signup confirmation was found")
    if signup.is_expired():
        raise NotFound("The signup confirmation has expired")
    check_throttle(ctx, ConfirmationType.SIGNUP, signup.user_id)

    await add_creator(ctx, signup)
    signup = store.replace_key(ctx.db, signup)
    content = await _signup_content(ctx, signup)
    language = await recipient_language(ctx, signup.user_id)
    await send_confirmation_email(ctx, signup, content, language)
    return signup


def parse_acceptance(body: bytes) -> SignupAcceptance:
    if not body or not body.strip():
        return SignupAcceptance()
    try:
        return SignupAcceptance.model_validate_json(body)
    except PydanticValidationError as exc:
        raise Conflict("User does not have a password", code=ERROR_NO_PASSWORD) from exc


async def _check_acceptance(ctx: EngineContext, user_id: str, body: bytes) -> str:
    """Validate the claim of a custodial account and return the new password."""
    acceptance = parse_acceptance(body)
    if not acceptance.password:
        raise Conflict("Password is missing", code=ERROR_MISSING_PASSWORD)
    if not is_valid_password(acceptance.password):
        raise Conflict("Password specified is invalid", code=ERROR_INVALID_PASSWORD)
    if not acceptance.birthday:
        raise Conflict("Birthday is missing", code=ERROR_MISSING_BIRTHDAY)
    if not is_valid_date(acceptance.birthday):
        raise Conflict("Birthday specified is invalid", code=ERROR_INVALID_BIRTHDAY)

    profile = await ctx.directories.profile.get_profile(user_id)
    birthday = profile.patient.birthday if profile is not None else ""
    if acceptance.birthday != birthday:
        raise Conflict(
            "Birthday specified does not match patient birthday", code=ERROR_MISMATCH_BIRTHDAY
        )
    return acceptance.password


async def accept_signup(ctx: EngineContext, user_id: str, key: str, body: bytes = b"") -> Confirmation:
    """
    Mark the email verified. Accounts without a password must also supply
    one, together with a birthday matching the patient profile.
    """
    if not key:
        raise ValidationError("Required confirmation id is missing")
    signup = store.find_one(
        ctx.db,
        ConfirmationFilter(key=key, type=ConfirmationType.SIGNUP, status=ConfirmationStatus.PENDING),
    )
    if signup is None:
        raise NotFound("No matching signup confirmation was found")
    if signup.is_expired():
        raise NotFound("The signup confirmation has expired")
    if user_id and signup.user_id != user_id:
        logger.warning("Signup %s accepted for another user", signup.key[:6])
        raise NotFound("No matching signup confirmation was found")

    user = await ctx.directories.identity.get_user(signup.user_id)
    if user is None:
        raise NotFound("Error finding user")

    updates: dict = {"emailVerified": True}
    if not user.password_exists:
        updates["password"] = await _check_acceptance(ctx, user.userid, body)

    await ctx.directories.identity.update_user(user.userid, updates)
    return transition(ctx, signup, ConfirmationStatus.COMPLETED)


async def _update_signup(
    ctx: EngineContext, user_id: str, key: str, status: ConfirmationStatus
) -> Confirmation:
    if not key:
        raise ValidationError("Required confirmation id is missing")
    signup = store.find_one(
        ctx.db,
        ConfirmationFilter(
            key=key,
            user_id=user_id,
            type=ConfirmationType.SIGNUP,
            status=ConfirmationStatus.PENDING,
        ),
    )
    if signup is None:
        raise NotFound("No matching signup confirmation was found")
    return transition(ctx, signup, status)


async def dismiss_signup(ctx: EngineContext, user_id: str, key: str) -> Confirmation:
    """The recipient states they never signed up."""
    return await _update_signup(ctx, user_id, key, ConfirmationStatus.DECLINED)


async def cancel_signup(
    ctx: EngineContext, token: TokenData, user_id: str, key: str | None = None
) -> Confirmation:
    """Cancel by key, or the user's pending sign-up when no key is given."""
    await require_authority(ctx, token, user_id)
    if not key:
        signup = store.find_one(ctx.db, _signup_filter(user_id))
        if signup is None:
            raise NotFound("No matching signup confirmation was found")
        key = signup.key
    return await _update_signup(ctx, user_id, key, ConfirmationStatus.CANCELED)


async def get_signup(ctx: EngineContext, token: TokenData, user_id: str) -> Confirmation:
    await require_authority(ctx, token, user_id)
    signup = store.find_one(ctx.db, _signup_filter(user_id))
    if signup is None:
        raise NotFound("No matching signup confirmation was found")
    return signup
