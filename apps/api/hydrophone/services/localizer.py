"""Key + locale → localized string, loaded from YAML translation bundles.

Bundle files are named ``<name>.<lang>.yaml`` (or ``.yml``) and hold a flat
mapping of message keys to message texts. Texts may reference data with
jinja2 expressions, e.g. ``"{{ CreatorName }} invited you"``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

import yaml
from jinja2 import Environment, StrictUndefined, TemplateError

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"
SKIPPED_FILES = {"test.en.yaml"}
MISSING_TEMPLATE = "<< Cannot find translation for item {key} >>"


class LocalizerError(Exception):
    """Translation bundles could not be loaded."""


class TranslationMissing(Exception):
    """No message for a key in the requested (or default) language."""

    def __init__(self, key: str, locale: str):
        self.key = key
        self.locale = locale
        super().__init__(f"message {key!r} not found for language {locale!r}")


class Localizer:
    """Immutable set of translation bundles indexed by language."""

    def __init__(self, messages: dict[str, dict[str, str]], default_language: str = DEFAULT_LANGUAGE):
        self._messages = messages
        self.default_language = default_language
        self._env = Environment(autoescape=False, undefined=StrictUndefined)

    @classmethod
    def from_directory(cls, path: str | Path) -> "Localizer":
        directory = Path(path)
        if not directory.is_dir():
            raise LocalizerError(f"Can't read locales directory {directory}")

        files = sorted(
            f for f in directory.iterdir()
            if f.is_file() and f.suffix in (".yaml", ".yml") and f.name not in SKIPPED_FILES
        )
        if not files:
            raise LocalizerError(f"No locale files (yml or yaml extension) found in {directory}")

        messages: dict[str, dict[str, str]] = {}
        for file in files:
            language = _language_of(file)
            with file.open(encoding="utf-8") as handle:
                try:
                    content = yaml.safe_load(handle) or {}
                except yaml.YAMLError as exc:
                    raise LocalizerError(f"Translation file {file} is not valid YAML: {exc}") from exc
            if not isinstance(content, dict):
                raise LocalizerError(f"Translation file {file} must contain a mapping")
            bundle = messages.setdefault(language, {})
            bundle.update({str(k): str(v) for k, v in content.items() if v is not None})
            logger.info("Loaded localization file %s (%s)", file.name, language)
        return cls(messages)

    @property
    def languages(self) -> set[str]:
        return set(self._messages)

    def localize(
        self, key: str, locale: str, data: Mapping[str, object] | None = None
    ) -> tuple[str, Exception | None]:
        """
        Return ``(text, error)`` for ``key`` in ``locale``.

        Falls back to the default language. When the key is unknown the text
        is a visible placeholder and ``error`` is a ``TranslationMissing``.
        """
        message = self._lookup(key, locale)
        if message is None:
            return MISSING_TEMPLATE.format(key=key), TranslationMissing(key, locale)
        try:
            return self._env.from_string(message).render(**(data or {})), None
        except TemplateError as exc:
            return MISSING_TEMPLATE.format(key=key), exc

    def _lookup(self, key: str, locale: str) -> str | None:
        for language in (locale, self.default_language):
            bundle = self._messages.get((language or "").lower()[:2])
            if bundle and key in bundle:
                return bundle[key]
        return None


def _language_of(file: Path) -> str:
    # "hydrophone.fr.yaml" -> "fr"; "en.yml" -> "en"
    parts = file.name.split(".")
    return parts[-2].lower() if len(parts) >= 2 else DEFAULT_LANGUAGE
