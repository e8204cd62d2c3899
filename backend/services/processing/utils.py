"""
Shared text utilities for validation, segmentation and auditing.
"""
import json
import re
import unicodedata
from dataclasses import dataclass
from typing import Any, List, Optional, Set

from services.validation.lexicon import all_stopwords

LETTERS = "a-zA-ZÀ-ÿ"


@dataclass
class SourceLookup:
    """Where (and how confidently) a phrase was located in source text."""
    found: bool
    confidence: int  # 0-100
    matched_text: Optional[str] = None
    position: Optional[int] = None


def clean_text(text: str) -> str:
    """
    Normalize text.

    Operations:
        - Fix typographic quotes and dashes
        - Collapse whitespace
    """
    text = text.replace('’', "'")
    text = text.replace('“', '"')
    text = text.replace('”', '"')
    text = text.replace('–', '-')
    text = text.replace('—', '--')
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(c for c in decomposed if unicodedata.category(c) != "Mn")


def normalize_for_matching(text: str) -> str:
    """Lowercase, accent-free, single-spaced."""
    return re.sub(r'\s+', ' ', strip_accents(text.lower())).strip()


def tokenize(text: str) -> Set[str]:
    """Whitespace-split lowercase tokens longer than 2 characters."""
    return {w for w in text.lower().split() if len(w) > 2}


def jaccard_similarity(text1: str, text2: str) -> float:
    """
    Token-set Jaccard similarity in [0, 1].

    Two texts with no tokens are identical (1.0); one empty side gives 0.0.
    """
    set1 = tokenize(text1)
    set2 = tokenize(text2)

    if not set1 and not set2:
        return 1.0
    if not set1 or not set2:
        return 0.0

    intersection = len(set1 & set2)
    union = len(set1 | set2)
    return intersection / union


def extract_keywords(text: str, min_length: int = 2) -> Set[str]:
    """Letter-only words longer than min_length, minus stopwords of every locale."""
    stopwords = all_stopwords()
    cleaned = re.sub(rf'[^{LETTERS}\s]', ' ', text.lower())
    return {w for w in cleaned.split() if len(w) > min_length and w not in stopwords}


def extract_significant_words(text: str) -> List[str]:
    """Ordered non-stopword words longer than 3 characters, accent-normalized."""
    stopwords = {normalize_for_matching(w) for w in all_stopwords()}
    normalized = normalize_for_matching(text)
    words = re.findall(r'[a-z0-9]+', normalized)
    return [w for w in words if len(w) > 3 and w not in stopwords]


def keyword_similarity(text1: str, text2: str) -> float:
    """Jaccard over extracted keywords, as a percentage (0-100)."""
    keywords1 = extract_keywords(text1)
    keywords2 = extract_keywords(text2)
    if not keywords1 or not keywords2:
        return 0.0
    overlap = len(keywords1 & keywords2)
    union = len(keywords1 | keywords2)
    return overlap / union * 100 if union else 0.0


def find_in_source(phrase: str, source_text: str, min_match_ratio: float = 0.5) -> SourceLookup:
    """
    Locate a phrase in source text.

    An exact (case-insensitive) hit scores 100. Otherwise the score is the
    share of the phrase's keywords present in the source, and the phrase
    counts as found when that share reaches min_match_ratio.
    """
    if not phrase or not source_text:
        return SourceLookup(found=False, confidence=0)

    lower_source = source_text.lower()
    lower_phrase = phrase.lower()

    exact_pos = lower_source.find(lower_phrase)
    if exact_pos != -1:
        return SourceLookup(
            found=True,
            confidence=100,
            matched_text=source_text[exact_pos:exact_pos + len(phrase)],
            position=exact_pos,
        )

    keywords = sorted(extract_keywords(phrase))
    if not keywords:
        return SourceLookup(found=False, confidence=0)

    matched = 0
    first_pos = -1
    for keyword in keywords:
        pos = lower_source.find(keyword)
        if pos != -1:
            matched += 1
            if first_pos == -1 or pos < first_pos:
                first_pos = pos

    ratio = matched / len(keywords)
    confidence = round(ratio * 100)

    if ratio >= min_match_ratio:
        start = max(0, first_pos - 50)
        end = min(len(source_text), first_pos + 100)
        return SourceLookup(
            found=True,
            confidence=confidence,
            matched_text=source_text[start:end],
            position=first_pos,
        )

    return SourceLookup(found=False, confidence=confidence)


def is_numeric_option(option: str) -> bool:
    """True if an option is mostly digits once currency and separators are removed."""
    cleaned = re.sub(r'[%€$£¥,.\s]', '', option or '')
    if not cleaned:
        return False
    digits = len(re.sub(r'[^0-9]', '', cleaned))
    return digits / len(cleaned) >= 0.5


def truncate_text(text: str, max_chars: int) -> str:
    """Cut text to max_chars, preferring the last sentence end in the final 20%."""
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    last_end = max(cut.rfind('. '), cut.rfind('.\n'), cut.rfind('! '), cut.rfind('? '))
    if last_end >= int(max_chars * 0.8):
        return cut[:last_end + 1]
    return cut


def parse_json_response(response: str, expect: str = "object") -> Optional[Any]:
    """
    Pull the first JSON object (or array) out of a model response.

    Returns None when nothing parseable is found.
    """
    if not response:
        return None

    text = re.sub(r'```(?:json)?', '', response).strip()
    pattern = r'\{.*\}' if expect == "object" else r'\[.*\]'
    match = re.search(pattern, text, re.DOTALL)
    if not match:
        return None

    try:
        return json.loads(match.group())
    except json.JSONDecodeError:
        return None
