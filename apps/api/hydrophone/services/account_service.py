"""Account events and service checks."""

from __future__ import annotations

import logging

from hydrophone.core.errors import ConfirmationError, ValidationError
from hydrophone.core.structured_logging import build_log_context
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_service import EngineContext, require_authority
from hydrophone.services.directory.models import TokenData
from hydrophone.services.mail_service import STATUS_OK, Mailer

logger = logging.getLogger(__name__)

SANITY_CHECK_SUBJECT = "Sanity Check Email"
SANITY_CHECK_BODY = (
    "<p>This is an automatic email sent from the Hydrophone service to prove all "
    "configuration is in place for sending emails.</p>"
)


class SanityCheckFailed(ConfirmationError):
    status_code = 500
    default_detail = "Error sending the sanity check email"


def remove_all(ctx: EngineContext, user_id: str) -> int:
    """Forget a deleted account: every record it created or received."""
    deleted = store.remove_all_for_user(ctx.db, user_id)
    logger.info(
        "Removed %d confirmations of deleted account",
        deleted,
        extra=build_log_context(user_id=user_id),
    )
    return deleted


async def send_test_email(mailer: Mailer, recipient: str) -> None:
    status, message = await mailer.send([recipient], SANITY_CHECK_SUBJECT, SANITY_CHECK_BODY)
    if status != STATUS_OK:
        logger.error("Sanity check email failed: %s %s", status, message)
        raise SanityCheckFailed()


async def sanity_check(ctx: EngineContext, token: TokenData, user_id: str) -> None:
    await require_authority(ctx, token, user_id)
    user = await ctx.directories.identity.get_user(user_id)
    if user is None or not user.email:
        raise ValidationError("User does not exist")
    await send_test_email(ctx.mailer, user.email)
    logger.info("Sanity check email sent", extra=build_log_context(user_id=user_id))


def status(ctx: EngineContext) -> None:
    """Raise StorageUnavailable when the store cannot be reached."""
    store.ping(ctx.db)
