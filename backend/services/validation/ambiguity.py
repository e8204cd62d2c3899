"""
Heuristic detection of questions that may have more than one defensible answer.

Every rule is a pure function returning a list of findings; detect_ambiguity
applies the skip conditions and runs the rules in order. Keyword and pattern
tables come from the per-locale lexicons.
"""
import re
from functools import lru_cache
from typing import List, Optional, Pattern

from services.processing.utils import (
    extract_keywords,
    find_in_source,
    is_numeric_option,
)
from services.validation.lexicon import (
    compiled_patterns,
    contains_term,
    merged,
    merged_groups,
    starts_with_term,
    word_alternation,
)

MIN_SOURCE_LENGTH = 100
SOURCE_MATCH_RATIO = 0.6
SOURCE_MATCH_CONFIDENCE = 60

NUMERIC_LITERAL_PATTERNS = [
    re.compile(r'^\d+([.,]\d+)?%$'),
    re.compile(r'^\$?\d+([.,]\d+)?[MBK]?$', re.IGNORECASE),
    re.compile(r'^€?\d+([.,]\d+)?[MBK]?$', re.IGNORECASE),
    re.compile(r'^\d+([.,]\d+)?$'),
]

NAMED_PREFIX = re.compile(r'^\s*[A-Za-zÀ-ÿ][\w/()]*\s*=')


def _has_disambiguator(prompt: str) -> bool:
    return word_alternation("disambiguators").search(prompt) is not None


def _is_numeric_literal(option: str) -> bool:
    value = option.strip()
    return (
        any(p.match(value) for p in NUMERIC_LITERAL_PATTERNS)
        or bool(re.match(r'^\d', value))
        or is_numeric_option(value)
    )


def _options_in_source(options: List[str], source_text: str) -> List[int]:
    found = []
    for i, option in enumerate(options):
        lookup = find_in_source(option, source_text, SOURCE_MATCH_RATIO)
        if lookup.found and lookup.confidence >= SOURCE_MATCH_CONFIDENCE:
            found.append(i)
    return found


def is_calculation_prompt(prompt: str) -> bool:
    lower = prompt.lower()
    return any(term in lower for term in merged("calculation_prompt_terms"))


def has_predominantly_numeric_options(options: List[str]) -> bool:
    if not options:
        return False
    numeric = sum(1 for o in options if is_numeric_option(o))
    return numeric * 2 > len(options)


def vague_interrogative(prompt: str, options: List[str], source_text: Optional[str] = None) -> List[str]:
    """'Which/what ...' with no qualifier, where more than 2 options plausibly answer."""
    stripped = prompt.strip()
    if not any(p.search(stripped) for p in compiled_patterns("vague_interrogatives")):
        return []
    if _has_disambiguator(stripped):
        return []

    prompt_keywords = extract_keywords(stripped, min_length=3)
    in_source = set(_options_in_source(options, source_text)) if source_text else set()

    plausible = 0
    for i, option in enumerate(options):
        lower = option.lower()
        option_keywords = extract_keywords(option, min_length=3)
        overlaps = any(kw in option_keywords or kw in lower for kw in prompt_keywords)
        if overlaps or i in in_source:
            plausible += 1

    if plausible > 2:
        return ["Question phrasing may allow multiple valid answers"]
    return []


def hedged_phrasing(prompt: str) -> List[str]:
    """'can be / could be / might be' invites several true options."""
    if any(p.search(prompt) for p in compiled_patterns("hedging_patterns")):
        return ["Question suggests multiple possibilities"]
    return []


def source_overlap(options: List[str], correct_index: Optional[int], source_text: str) -> List[str]:
    """Several options appear in the source text."""
    found = _options_in_source(options, source_text)
    issues = []
    if (
        len(found) > 1
        and correct_index is not None
        and 0 <= correct_index < len(options)
        and correct_index not in found
    ):
        issues.append(
            f'Multiple options found in source but correct answer "{options[correct_index]}" was not'
        )
    if len(found) > 2:
        issues.append(f"{len(found)} options found in source text - may be ambiguous")
    return issues


def categorical_pileup(prompt: str, options: List[str]) -> List[str]:
    """Three or more options name the same kind of thing (theory, factor, model...)."""
    terms = merged("category_terms")
    with_category = [o for o in options if any(starts_with_term(o, t) for t in terms)]
    if len(with_category) < 3:
        return []

    lower = prompt.lower()
    if not any(w in lower for w in merged("category_question_words")):
        return []
    if _has_disambiguator(prompt):
        return []
    return ["Multiple categorical options without clear disambiguation"]


def inclusive_conjunction(prompt: str) -> List[str]:
    """'and / or / both' outside binary idioms such as 'true or false'."""
    lower = prompt.lower()
    if not word_alternation("conjunctions").search(lower):
        return []
    if any(p.search(lower) for p in compiled_patterns("binary_idioms")):
        return []
    return ["Question mentions multiple items that might all be valid"]


def memorized_calculation(prompt: str, options: List[str]) -> List[str]:
    """A named computed quantity whose options are bare numbers."""
    if not any(contains_term(prompt, t) for t in merged("calculation_terms")):
        return []
    numeric = sum(1 for o in options if _is_numeric_literal(o or ""))
    if numeric >= 3:
        return ["Question asks to memorize a calculation result instead of testing understanding"]
    return []


def synonym_clustering(options: List[str]) -> List[str]:
    """Two or more options draw from the same synonym group."""
    lower_options = [(o or "").lower() for o in options]
    for group in merged_groups("synonym_groups"):
        matching = [o for o in lower_options if any(s in o for s in group)]
        if len(matching) >= 2:
            return ["Options may contain synonymous concepts"]
    return []


def asked_formula_terms(prompt: str) -> List[str]:
    """
    Terms whose formula the prompt asks for: known formula terms it names,
    plus the subject of phrases like "formula for X" or "formule de X".
    """
    terms = [t for t in merged("formula_terms") if contains_term(prompt, t)]
    for match in _formula_request().finditer(prompt):
        subject = match.group(1).lower()
        if subject not in terms:
            terms.append(subject)
    return terms


@lru_cache(maxsize=1)
def _formula_request() -> Pattern:
    request = "|".join(re.escape(w) for w in merged("formula_request_words"))
    linking = "|".join(re.escape(w) for w in merged("formula_linking_words"))
    return re.compile(rf"(?<!\w)(?:{request})\s+(?:{linking})\s+([\w/]+)", re.IGNORECASE)


def revealing_formula_prefix(prompt: str, options: List[str]) -> List[str]:
    """An option written as '<asked term> = ...' gives the answer away."""
    for term in asked_formula_terms(prompt):
        revealing = re.compile(rf'^\s*{re.escape(term)}\s*=', re.IGNORECASE)
        if not any(revealing.match(o or "") for o in options):
            continue

        unprefixed = [o for o in options if not NAMED_PREFIX.match(o or "")]
        if len(unprefixed) >= 2:
            return [
                f'Option starting with "{term.upper()} =" reveals the answer - '
                "use formula only without the variable prefix"
            ]
    return []


def detect_ambiguity(
    prompt: str,
    options: List[str],
    correct_index: Optional[int],
    source_text: Optional[str],
) -> List[str]:
    """
    Run every ambiguity rule over one question.

    Nothing is reported without at least MIN_SOURCE_LENGTH characters of
    source. Questions whose options are mostly numeric only get the
    memorized-calculation check; calculation prompts skip the
    source-matching rules.
    """
    if not source_text or len(source_text) < MIN_SOURCE_LENGTH:
        return []

    options = [o or "" for o in options]

    if has_predominantly_numeric_options(options):
        return memorized_calculation(prompt, options)

    issues: List[str] = []
    if not is_calculation_prompt(prompt):
        issues.extend(vague_interrogative(prompt, options, source_text))
        issues.extend(source_overlap(options, correct_index, source_text))
    issues.extend(hedged_phrasing(prompt))
    issues.extend(categorical_pileup(prompt, options))
    issues.extend(inclusive_conjunction(prompt))
    issues.extend(memorized_calculation(prompt, options))
    issues.extend(synonym_clustering(options))
    issues.extend(revealing_formula_prefix(prompt, options))
    return issues
