"""Lost password flow."""

from __future__ import annotations

import logging

from hydrophone.core.config import settings
from hydrophone.core.errors import NotFound, ValidationError
from hydrophone.core.structured_logging import build_log_context
from hydrophone.db.enums import ConfirmationStatus, ConfirmationType, TemplateName
from hydrophone.db.models import Confirmation
from hydrophone.schemas.confirmation import PasswordResetAccept
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_service import (
    EngineContext,
    recipient_language,
    send_confirmation_email,
    transition,
)
from hydrophone.services.confirmation_store import ConfirmationFilter
from hydrophone.services.signup_service import is_valid_password

logger = logging.getLogger(__name__)

RESET_TYPES = (ConfirmationType.PASSWORD_RESET, ConfirmationType.PATIENT_PASSWORD_RESET)


async def send_forgot(ctx: EngineContext, email: str, info: bool = False) -> Confirmation:
    """
    Answer a "forgot password" request for ``email``.

    Known accounts get a reset link. Patients get patient-specific
    instructions unless ALLOW_PATIENT_RESET_PASSWORD is set; with ``info`` the
    email only explains the procedure and nothing is stored. Unknown addresses
    are told there is no account, which is recorded as already completed.
    """
    if not email:
        raise ValidationError("Email is required")

    user = await ctx.directories.identity.get_user(email)
    persist = True
    if user is None:
        logger.info("Password reset requested for an unknown account")
        reset = Confirmation.new(ConfirmationType.NO_ACCOUNT, TemplateName.NO_ACCOUNT)
        reset.update_status(ConfirmationStatus.COMPLETED)
    elif not user.is_patient() or settings.ALLOW_PATIENT_RESET_PASSWORD:
        reset = Confirmation.new(ConfirmationType.PASSWORD_RESET, TemplateName.PASSWORD_RESET)
    elif info:
        reset = Confirmation.new(
            ConfirmationType.PATIENT_PASSWORD_INFO, TemplateName.PATIENT_PASSWORD_INFO
        )
        persist = False
    else:
        reset = Confirmation.new(
            ConfirmationType.PATIENT_PASSWORD_RESET, TemplateName.PATIENT_PASSWORD_RESET
        )

    reset.email = email
    if user is not None:
        reset.user_id = user.userid
    if persist:
        reset = store.upsert(ctx.db, reset)
        logger.info(
            "Reset confirmation created",
            extra=build_log_context(
                user_id=reset.user_id, confirmation_key=reset.key, confirmation_type=reset.type
            ),
        )

    language = await recipient_language(ctx, reset.user_id)
    await send_confirmation_email(ctx, reset, {"Key": reset.key, "Email": reset.email}, language)
    return reset


async def accept_forgot(ctx: EngineContext, data: PasswordResetAccept) -> Confirmation:
    """Replace the password of the account named in a pending reset."""
    if not data.key:
        raise ValidationError("Required confirmation key is missing")
    if not is_valid_password(data.password):
        raise ValidationError("Password specified is invalid")

    reset = store.find_one(
        ctx.db,
        ConfirmationFilter(
            key=data.key,
            email=data.email,
            types=RESET_TYPES,
            status=ConfirmationStatus.PENDING,
        ),
    )
    if reset is None:
        raise NotFound("No matching reset confirmation was found")
    if reset.is_expired():
        raise NotFound("Password reset confirmation has expired")

    user = await ctx.directories.identity.get_user(data.email)
    if user is None:
        raise NotFound("No matching account for the email was found")

    await ctx.directories.identity.update_user(user.userid, {"password": data.password})
    return transition(ctx, reset, ConfirmationStatus.COMPLETED)
