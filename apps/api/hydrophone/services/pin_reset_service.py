"""PIN reset: email a patient a one-time password bound to their handset."""

from __future__ import annotations

import logging

from hydrophone.core.errors import Forbidden, UpstreamUnavailable, ValidationError
from hydrophone.core.structured_logging import build_log_context
from hydrophone.db.enums import ConfirmationType, TemplateName
from hydrophone.db.models import Confirmation
from hydrophone.schemas.context import TOTPContext
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_service import (
    EngineContext,
    check_throttle,
    recipient_language,
    require_authority,
    send_confirmation_email,
)
from hydrophone.services.directory.models import TokenData
from hydrophone.services.otp_service import format_otp, pin_reset_generator

logger = logging.getLogger(__name__)


async def send_pin_reset(ctx: EngineContext, token: TokenData, user_id: str) -> Confirmation:
    """
    Generate the current OTP of ``user_id`` and email it.

    The handset validates the code against the last two time steps, so the
    patient has between 30 minutes and an hour to use it.
    """
    if token.is_server:
        raise Forbidden("This API cannot be requested with server token")
    if not user_id:
        raise ValidationError("Required userid is missing")
    await require_authority(ctx, token, user_id)

    user = await ctx.directories.identity.get_user(user_id)
    if user is None:
        raise ValidationError("This user does not exist")
    if user.is_clinic():
        raise Forbidden("Clinical accounts cannot receive a PIN reset")
    check_throttle(ctx, ConfirmationType.PATIENT_PIN_RESET, user.userid)

    imei = await ctx.directories.medical_data.get_device_imei(token.token)
    if not imei:
        raise UpstreamUnavailable("Error sending PIN Reset")

    totp = pin_reset_generator(user.userid, imei).now()
    language = await recipient_language(ctx, user.userid)

    record = Confirmation.new(
        ConfirmationType.PATIENT_PIN_RESET,
        TemplateName.PATIENT_PIN_RESET,
        user.userid,
        TOTPContext(timestamp=totp.timestamp, otp=totp.otp),
    )
    record.user_id = user.userid
    record.email = user.email
    record = store.upsert(ctx.db, record)

    content = {"Email": record.email, "OTP": format_otp(totp.otp)}
    await send_confirmation_email(ctx, record, content, language)
    logger.info(
        "PIN reset OTP sent",
        extra=build_log_context(user_id=user.userid, confirmation_type=record.type),
    )
    return record
