"""Precompiled email templates with localized content parts.

A template is described by ``meta/<name>.json`` and an HTML body in
``html/``. Rendering:

1. escape parts (user supplied values) are HTML-escaped into the content
2. content parts are localized, with the escaped values as data
3. the subject key is localized the same way
4. the body is rendered with the content

The registry is built once at startup. The preview refresh builds a new
registry and swaps the module reference, so in-flight renders keep using the
registry they started with.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from jinja2 import Environment, StrictUndefined, Template, TemplateError
from markupsafe import escape

from hydrophone.core.config import settings
from hydrophone.db.enums import TemplateName
from hydrophone.services.localizer import Localizer

logger = logging.getLogger(__name__)

_env = Environment(autoescape=False, undefined=StrictUndefined, keep_trailing_newline=True)


class RenderError(Exception):
    """A template could not be rendered for the requested locale."""


class TemplateLoadError(Exception):
    """A template could not be loaded or precompiled."""


# =============================================================================
# Templates
# =============================================================================

@dataclass(frozen=True)
class TemplateMeta:
    name: str
    subject: str
    template_filename: str
    content_parts: tuple[str, ...] = ()
    escape_parts: tuple[str, ...] = ()
    description: str = ""

    @classmethod
    def from_file(cls, path: Path) -> "TemplateMeta":
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise TemplateLoadError(f"failure to read template meta {path}: {exc}") from exc
        return cls(
            name=raw.get("name", ""),
            subject=raw.get("subject", ""),
            template_filename=raw.get("templateFilename", ""),
            content_parts=tuple(raw.get("contentParts") or ()),
            escape_parts=tuple(raw.get("escapeContentParts") or ()),
            description=raw.get("description", ""),
        )


@dataclass(frozen=True)
class PrecompiledTemplate:
    name: str
    subject: str
    body: Template
    content_parts: tuple[str, ...]
    escape_parts: tuple[str, ...]
    localizer: Localizer

    def execute(self, content: Mapping[str, str], locale: str) -> tuple[str, str]:
        """Render ``(subject, body)`` for ``locale``."""
        values: dict[str, str] = dict(content)
        escaped = {part: str(escape(values.get(part) or "")) for part in self.escape_parts}
        values.update(escaped)

        for part in self.content_parts:
            text, err = self.localizer.localize(part, locale, escaped)
            if err is not None:
                raise RenderError(f"template {self.name!r}: content part {part!r}: {err}")
            values[part] = text

        subject, err = self.localizer.localize(self.subject, locale, escaped)
        if err is not None:
            raise RenderError(f"template {self.name!r}: failure to generate subject: {err}")

        try:
            body = self.body.render(**values)
        except TemplateError as exc:
            raise RenderError(f"template {self.name!r}: failure to execute body: {exc}") from exc
        return subject, body


def load_template(templates_path: Path, name: str, localizer: Localizer) -> PrecompiledTemplate:
    meta = TemplateMeta.from_file(templates_path / "meta" / f"{name}.json")
    if not meta.subject:
        raise TemplateLoadError(f"template {name!r}: subject template is missing")
    if not meta.template_filename:
        raise TemplateLoadError(f"template {name!r}: body template is missing")

    body_path = templates_path / "html" / meta.template_filename
    try:
        source = body_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TemplateLoadError(f"template {name!r}: failure to get body: {exc}") from exc
    try:
        compiled = _env.from_string(source)
    except TemplateError as exc:
        raise TemplateLoadError(f"template {name!r}: failure to precompile body: {exc}") from exc

    logger.info("Loaded template %s from %s", name, body_path.name)
    return PrecompiledTemplate(
        name=name,
        subject=meta.subject,
        body=compiled,
        content_parts=meta.content_parts,
        escape_parts=meta.escape_parts,
        localizer=localizer,
    )


# =============================================================================
# Registry
# =============================================================================

@dataclass(frozen=True)
class TemplateRegistry:
    templates: dict[str, PrecompiledTemplate] = field(default_factory=dict)
    localizer: Localizer | None = None

    @classmethod
    def build(cls, templates_path: str | Path) -> "TemplateRegistry":
        path = Path(templates_path)
        localizer = Localizer.from_directory(path / "locales")
        templates = {
            name.value: load_template(path, name.value, localizer) for name in TemplateName
        }
        return cls(templates=templates, localizer=localizer)

    def get(self, name: str) -> PrecompiledTemplate:
        key = getattr(name, "value", name)
        try:
            return self.templates[key]
        except KeyError:
            raise RenderError(f"Unknown template type {key}") from None

    def render(self, name: str, content: Mapping[str, str], locale: str) -> tuple[str, str]:
        return self.get(name).execute(content, locale)


_registry: TemplateRegistry | None = None
_lock = threading.Lock()


def get_registry() -> TemplateRegistry:
    """Process-wide registry, built from TEMPLATE_PATH on first use."""
    global _registry
    registry = _registry
    if registry is None:
        with _lock:
            if _registry is None:
                _registry = TemplateRegistry.build(settings.TEMPLATE_PATH)
            registry = _registry
    return registry


def refresh_registry(templates_path: str | Path | None = None) -> TemplateRegistry:
    """Rebuild templates and locales, then swap the registry reference."""
    global _registry
    fresh = TemplateRegistry.build(templates_path or settings.TEMPLATE_PATH)
    with _lock:
        _registry = fresh
    logger.info("Template registry refreshed (%d templates)", len(fresh.templates))
    return fresh


# =============================================================================
# Preview
# =============================================================================

# Placeholder values covering every part any template reads
SAMPLE_CONTENT: dict[str, str] = {
    "Key": "123456789123456789123456789123456789",
    "Email": "john@example.com",
    "FullName": "John Doe",
    "CareteamName": "John Doe",
    "CreatorName": "John Doe",
    "Invitor": "Dr John Doe",
    "Nickname": "John",
    "ClinicName": "Diabetes Clinic",
    "WebPath": "login",
    "OTP": "165-236-984",
    "Duration": "7 days",
    "Product": "DBLG1",
    "PrescriptionCode": "AB12CD",
    "MedicalteamName": "Central Hospital",
    "MedicalteamAddress": "1 Main Street, 38000 Grenoble, France",
    "MedicalteamPhone": "+33 4 00 00 00 00",
    "MedicalteamIentification": "123-456-789",
}


def sample_content() -> dict[str, str]:
    return {
        **SAMPLE_CONTENT,
        "WebURL": settings.WEB_URL,
        "SupportURL": settings.SUPPORT_URL,
        "AssetURL": settings.ASSET_URL,
        "PatientPasswordResetURL": settings.PATIENT_PASSWORD_RESET_URL,
    }


def render_preview(registry: TemplateRegistry, name: str, locale: str) -> str:
    """HTML page showing the subject and body of ``name`` with sample values."""
    subject, body = registry.render(name, sample_content(), locale)
    return f'<div align="center" id="subject">Subject: {escape(subject)}</div><div id="body">{body}</div>'
