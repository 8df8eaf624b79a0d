"""
Links to the same page in every supported language.
"""

from typing import Dict, Iterable, List, Mapping, Optional

LANGUAGE_NAMES = {
    "en": "English",
    "ja": "日本語",
    "es": "Español",
    "pt": "Português do Brasil",
    "cn": "简体中文",
    "de": "Deutsch",
    "fr": "Français",
    "ko": "한국어",
    "ru": "Русский",
}


class LanguageVariantResolver:
    """Swap the language prefix of a path across the configured languages."""

    def __init__(self, languages: Iterable[str], names: Optional[Mapping[str, str]] = None):
        self.languages = list(languages)
        self.names = dict(LANGUAGE_NAMES)
        if names:
            self.names.update(names)

    def split_language(self, path: str):
        """Return ``(code, rest)`` for ``/<code>/rest`` paths, else ``(None, path)``."""
        segments = path.lstrip("/").split("/", 1)
        code = segments[0]
        if code not in self.languages:
            return None, path
        rest = segments[1] if len(segments) > 1 else ""
        return code, rest

    def get_language_variants(self, path: str) -> List[Dict[str, str]]:
        code, rest = self.split_language(path)
        if code is None:
            return []

        suffix = f"/{rest}" if rest else ""
        return [
            {
                "name": self.names.get(language, language),
                "code": language,
                "href": f"/{language}{suffix}",
            }
            for language in self.languages
        ]
