"""
Deterministic fallback content derived from the course text itself.

Used when generation yields nothing usable: chapters come from detected
section titles (or frequent keywords), questions from per-language
templates filled with the chapter's own keywords.
"""
import hashlib
import re
from collections import Counter
from typing import Dict, List

from models.question_models import Question
from models.segment_models import ChapterSpec
from services.validation.lexicon import all_stopwords, get_lexicon, starts_with_term, supported_locales

SECTION_TITLE_PATTERNS = (
    re.compile(r'^(\d+\.?\d*\.?)\s+([A-Z][^\n]{5,50})$', re.MULTILINE),
    re.compile(
        r'^(Chapter|Section|Part|Chapitre|Partie|Kapitel|Abschnitt)\s*\d*[:\s]+([^\n]{5,50})$',
        re.MULTILINE | re.IGNORECASE,
    ),
    re.compile(r'^([A-Z][A-Z ]{3,30})$', re.MULTILINE),
    re.compile(r'^#+\s*(.+)$', re.MULTILINE),
)
MAX_SECTION_TITLES = 10
MIN_SUBJECT_SCORE = 2


def extract_keywords(text: str, max_keywords: int = 10) -> List[str]:
    """Most frequent non-stopword words (longer than 3 characters), capitalized."""
    stopwords = all_stopwords()
    cleaned = re.sub(r'[^\w\s-]', ' ', text.lower())
    words = [w for w in cleaned.split() if len(w) > 3 and w not in stopwords]
    return [w[0].upper() + w[1:] for w, _ in Counter(words).most_common(max_keywords)]


def extract_section_titles(text: str) -> List[str]:
    """Up to ten distinct heading-like titles, in pattern order."""
    titles: List[str] = []
    for pattern in SECTION_TITLE_PATTERNS:
        for match in pattern.finditer(text):
            title = (match.group(2) if pattern.groups > 1 else match.group(1)).strip()
            if 3 < len(title) < 60 and title not in titles:
                titles.append(title)
    return titles[:MAX_SECTION_TITLES]


def detect_subject(text: str, language: str = "en") -> str:
    """
    Name of the subject whose keywords occur most often in text, in the
    requested language, or the general-course label when fewer than two
    keywords match.
    """
    locales = supported_locales()
    subject_tables = [list(get_lexicon(locale)["subjects"].values()) for locale in locales]

    scores: Dict[int, int] = {}
    for keyword_lists in subject_tables:
        for position, keywords in enumerate(keyword_lists):
            hits = sum(1 for kw in keywords if starts_with_term(text, kw))
            scores[position] = scores.get(position, 0) + hits

    lexicon = get_lexicon(language)
    best = max(scores, key=lambda p: scores[p], default=None)
    if best is None or scores[best] < MIN_SUBJECT_SCORE:
        return lexicon["general_subject"]
    return list(lexicon["subjects"])[best]


def _stable_index(seed: str, modulo: int) -> int:
    digest = hashlib.sha256(seed.encode("utf-8")).hexdigest()
    return int(digest, 16) % modulo


def generate_contextual_chapters(text: str, language: str = "en") -> List[ChapterSpec]:
    """Chapters from section titles when at least two exist, otherwise from the top keywords."""
    templates = get_lexicon(language)["fallback"]["chapter_summaries"]
    subject = detect_subject(text, language)

    titles = extract_section_titles(text)
    if len(titles) < 2:
        titles = extract_keywords(text, 20)[:5]

    keywords = extract_keywords(text, 20)
    return [
        ChapterSpec(
            index=i + 1,
            title=title,
            short_summary=templates[i % len(templates)].format(title=title, subject=subject),
            key_concepts=[title] + keywords[i:i + 2],
        )
        for i, title in enumerate(titles)
    ]


def generate_contextual_questions(
    chapter_title: str,
    chapter_text: str,
    language: str = "en",
    count: int = 5,
) -> List[Question]:
    """
    Templated questions about the chapter's own keywords.

    The correct option's position is derived from the chapter title so the
    same chapter always yields the same questions.
    """
    fallback = get_lexicon(language)["fallback"]
    keywords = extract_keywords(chapter_text, 10)
    subject = detect_subject(chapter_text, language)

    def keyword(i: int) -> str:
        return keywords[i] if len(keywords) > i else chapter_title

    values = {
        "k0": keyword(0),
        "k1": keyword(1),
        "k2": keyword(2),
        "k1_or_subject": keywords[1] if len(keywords) > 1 else subject,
    }

    prompts = fallback["question_prompts"]
    correct_options = fallback["correct_options"]
    questions = []
    for i in range(min(count, len(prompts))):
        correct = correct_options[i % len(correct_options)].format(**values)
        correct_index = _stable_index(f"{chapter_title}:{i}", 4)

        options = list(fallback["wrong_options"][:4])
        options[correct_index] = correct

        questions.append(Question(
            prompt=prompts[i].format(**values),
            options=options,
            correct_option_index=correct_index,
            explanation=fallback["explanation"].format(answer=correct),
            source_reference=fallback["source_reference"].format(title=chapter_title),
            cognitive_level="remember",
            concept_tested=keyword(i % 3),
        ))
    return questions
