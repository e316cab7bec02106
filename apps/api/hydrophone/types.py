"""Shared type aliases for JSON-like payloads."""

from __future__ import annotations

from typing import Any, TypeAlias

JsonValue: TypeAlias = Any
JsonObject: TypeAlias = dict[str, JsonValue]
JsonArray: TypeAlias = list[JsonValue]

# {"view": {}, "note": {}, ...} as exchanged with the permission directory
Permissions: TypeAlias = dict[str, JsonObject]

# Values substituted into email templates
EmailContent: TypeAlias = dict[str, str]
