"""Recipient language resolution from preferences and request headers."""

from __future__ import annotations

from collections.abc import Mapping

DEFAULT_LANGUAGE = "en"
USER_LANGUAGE_HEADERS = ("x-user-language", "x-tidepool-language")


def parse_accept_language(header: str | None) -> list[tuple[str, float]]:
    """
    Split an Accept-Language header into ``(tag, q)`` pairs, header order kept.

    A missing or malformed q-value counts as 1.
    """
    entries: list[tuple[str, float]] = []
    for item in (header or "").split(","):
        tag, _, params = item.strip().partition(";")
        tag = tag.strip()
        if not tag:
            continue
        quality = 1.0
        for param in params.split(";"):
            name, _, value = param.strip().partition("=")
            if name.strip() == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 1.0
        entries.append((tag, quality))
    return entries


def language_from_headers(headers: Mapping[str, str]) -> str | None:
    """Language hinted by the request, or None when it carries no hint."""
    for name in USER_LANGUAGE_HEADERS:
        value = (headers.get(name) or "").strip()
        if value:
            return value[:2].lower()
    entries = parse_accept_language(headers.get("accept-language"))
    if entries:
        # The first listed entry wins, as browsers list by preference
        return entries[0][0][:2].lower()
    return None


def resolve_language(
    preferred: str | None,
    headers: Mapping[str, str] | None = None,
    default: str = DEFAULT_LANGUAGE,
) -> str:
    """Profile preference, then request headers, then ``default``."""
    if preferred:
        return preferred[:2].lower()
    if headers is not None:
        hinted = language_from_headers(headers)
        if hinted:
            return hinted
    return default
