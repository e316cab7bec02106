"""Account-created information email."""

from __future__ import annotations

from hydrophone.core.errors import Forbidden, NotFound
from hydrophone.db.enums import ConfirmationStatus, ConfirmationType, TemplateName
from hydrophone.db.models import Confirmation
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_service import (
    EngineContext,
    recipient_language,
    require_authority,
    send_confirmation_email,
)
from hydrophone.services.directory.models import TokenData


async def send_information(ctx: EngineContext, token: TokenData, user_id: str) -> Confirmation:
    """Tell a verified patient their account is ready. Nothing is left to confirm."""
    await require_authority(ctx, token, user_id)
    user = await ctx.directories.identity.get_user(user_id)
    if user is None or not user.email:
        raise NotFound("Error finding user")
    if not user.email_verified:
        raise Forbidden("The email of the account is not verified")

    record = Confirmation.new(
        ConfirmationType.PATIENT_INFORMATION, TemplateName.PATIENT_INFORMATION, user.userid
    )
    record.user_id = user.userid
    record.email = user.email
    record.update_status(ConfirmationStatus.COMPLETED)
    record = store.upsert(ctx.db, record)

    profile = await ctx.directories.profile.get_profile(user.userid)
    content = {
        "Email": record.email,
        "FullName": profile.full_name if profile is not None else "",
    }
    language = await recipient_language(ctx, user.userid)
    await send_confirmation_email(ctx, record, content, language)
    return record
