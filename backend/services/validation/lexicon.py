"""
Per-locale keyword and pattern tables.

Each supported locale is one JSON file under lexicons/. Adding a locale
means adding a file; detectors read the merged tables through this module.
"""
import json
import logging
import re
from functools import lru_cache
from typing import Any, Dict, List, Optional, Pattern, Tuple

from core.config import LEXICONS_DIR

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en"


@lru_cache(maxsize=1)
def load_lexicons() -> Dict[str, Dict[str, Any]]:
    """Load every lexicon file, keyed by locale code."""
    lexicons: Dict[str, Dict[str, Any]] = {}
    for path in sorted(LEXICONS_DIR.glob("*.json")):
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        locale = data.get("locale", path.stem)
        lexicons[locale] = data
    if not lexicons:
        raise FileNotFoundError(f"No lexicon files found in {LEXICONS_DIR}")
    logger.debug(f"Loaded lexicons: {', '.join(lexicons)}")
    return lexicons


def supported_locales() -> List[str]:
    # English first, then the rest in file order
    locales = list(load_lexicons())
    if DEFAULT_LOCALE in locales:
        locales.remove(DEFAULT_LOCALE)
        locales.insert(0, DEFAULT_LOCALE)
    return locales


def get_lexicon(locale: Optional[str] = None) -> Dict[str, Any]:
    """Lexicon for one locale, falling back to English."""
    lexicons = load_lexicons()
    key = (locale or DEFAULT_LOCALE).lower()
    return lexicons.get(key) or lexicons[DEFAULT_LOCALE]


def table(key: str, locale: Optional[str] = None) -> Any:
    """A single table for one locale."""
    return get_lexicon(locale).get(key, [])


@lru_cache(maxsize=None)
def merged(key: str) -> Tuple[str, ...]:
    """Union of a list table across all locales, first occurrence wins."""
    seen = {}
    for locale in supported_locales():
        for item in load_lexicons()[locale].get(key, []):
            seen.setdefault(item, None)
    return tuple(seen)


@lru_cache(maxsize=None)
def per_locale(key: str) -> Tuple[Tuple[str, Tuple[Any, ...]], ...]:
    """(locale, entries) pairs for a list table, in locale order."""
    return tuple(
        (locale, tuple(load_lexicons()[locale].get(key, [])))
        for locale in supported_locales()
    )


@lru_cache(maxsize=None)
def merged_groups(key: str) -> Tuple[Tuple[str, ...], ...]:
    """List-of-lists tables (e.g. synonym groups) across all locales."""
    groups = []
    for locale in supported_locales():
        for group in load_lexicons()[locale].get(key, []):
            groups.append(tuple(group))
    return tuple(groups)


@lru_cache(maxsize=None)
def compiled_patterns(key: str) -> Tuple[Pattern, ...]:
    """Case-insensitive compiled regexes for a pattern table across all locales."""
    return tuple(re.compile(p, re.IGNORECASE) for p in merged(key))


@lru_cache(maxsize=None)
def word_alternation(key: str) -> Pattern:
    """One regex matching any entry of a word table as a whole word or phrase."""
    words = sorted(merged(key), key=len, reverse=True)
    body = "|".join(re.escape(w) for w in words)
    return re.compile(rf"(?<!\w)(?:{body})(?!\w)", re.IGNORECASE)


def contains_term(text: str, term: str) -> bool:
    """Whole-word, case-insensitive containment."""
    return re.search(rf"(?<!\w){re.escape(term)}(?!\w)", text, re.IGNORECASE) is not None


def starts_with_term(text: str, term: str) -> bool:
    """True if a word in text begins with term (plural/inflected forms match)."""
    return re.search(rf"(?<!\w){re.escape(term)}", text, re.IGNORECASE) is not None


def all_stopwords() -> frozenset:
    return _stopwords()


@lru_cache(maxsize=1)
def _stopwords() -> frozenset:
    return frozenset(merged("stopwords"))
