"""Structured logging helpers (identifiers only, never email content or codes)."""

from typing import Any


def build_log_context(
    *,
    user_id: str | None = None,
    confirmation_key: str | None = None,
    confirmation_type: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict safe to attach with ``extra=``."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = user_id
    if confirmation_key:
        # The full key is a bearer secret
        context["confirmation_key"] = confirmation_key[:6]
    if confirmation_type:
        context["confirmation_type"] = confirmation_type
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
