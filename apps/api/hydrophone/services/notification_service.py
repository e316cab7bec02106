"""Server-issued notifications, dispatched by topic."""

from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from hydrophone.core.errors import Forbidden, NotFound, ValidationError
from hydrophone.core.structured_logging import build_log_context
from hydrophone.db.enums import ConfirmationStatus, ConfirmationType, TemplateName
from hydrophone.db.models import Confirmation
from hydrophone.schemas.confirmation import PrescriptionCreate
from hydrophone.schemas.context import PrescriptionContext
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_service import (
    EngineContext,
    add_creator,
    creator_name,
    recipient_language,
    send_confirmation_email,
)
from hydrophone.services.directory.models import TokenData
from hydrophone.types import EmailContent, JsonObject

logger = logging.getLogger(__name__)

TOPIC_APP_PRESCRIPTION = "submit_app_prescription"


def _app_prescription(payload: JsonObject) -> tuple[Confirmation, EmailContent]:
    try:
        prescription = PrescriptionCreate.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError("error decoding the prescription") from exc
    if not (prescription.id and prescription.patient_email and prescription.prescriptor_id):
        raise ValidationError("missing information in prescription body")

    notification = Confirmation.new(
        ConfirmationType.NOTIFICATION,
        TemplateName.APP_PRESCRIPTION,
        prescription.prescriptor_id,
        PrescriptionContext.model_validate(prescription.model_dump(by_alias=True)),
    )
    notification.email = prescription.patient_email
    content = {
        "Product": prescription.product or "",
        "PrescriptionCode": prescription.code or "",
        "WebPath": "prescriptions",
    }
    return notification, content


TOPICS = {
    TOPIC_APP_PRESCRIPTION: _app_prescription,
}


async def send_notification(
    ctx: EngineContext, token: TokenData, topic: str, payload: JsonObject
) -> Confirmation:
    """
    Record and email a notification on behalf of another service.

    The email goes out in the patient's language when they have an account,
    else in the prescriber's.
    """
    if not token.is_server:
        raise Forbidden("Only services can send notifications")
    builder = TOPICS.get(topic)
    if builder is None:
        raise ValidationError("wrong notification topic")
    notification, content = builder(payload)

    invitee = await ctx.directories.identity.get_user(notification.email)
    if invitee is not None:
        notification.user_id = invitee.userid
        language = await recipient_language(ctx, invitee.userid)
    else:
        language = await recipient_language(ctx, notification.creator_id)

    await add_creator(ctx, notification)
    if "profile" not in (notification.creator or {}):
        raise NotFound("Error finding the prescriber profile")
    notification.update_status(ConfirmationStatus.COMPLETED)
    notification = store.upsert(ctx.db, notification)
    logger.info(
        "Notification created",
        extra=build_log_context(
            confirmation_key=notification.key, confirmation_type=notification.type
        ),
    )

    if not notification.user_id:
        content["WebPath"] = "login"
    content.update(
        {
            "Invitor": creator_name(notification),
            "Email": notification.email,
            "Duration": notification.readable_duration(),
        }
    )
    await send_confirmation_email(ctx, notification, content, language)
    return notification
