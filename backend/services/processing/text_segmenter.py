"""
Chapter segmentation of raw course text.

Locates each chapter's start in the full text from its title, summary or
key concepts, fills in unresolved chapters by interpolation, snaps spans
to natural breaks and enforces size limits. When too few chapters can be
located the text is divided equally, guided by detected headings.
"""
import logging
import re
import unicodedata
from functools import lru_cache
from typing import List, Optional, Pattern, Sequence, Tuple

from core.config import MIN_CHUNK_SIZE, MAX_CHUNK_SIZE, WINDOW_OVERLAP_THRESHOLD
from models.segment_models import ChapterBoundary, ChapterSpec, SectionMarker
from services.processing.utils import extract_significant_words
from services.validation.lexicon import merged

logger = logging.getLogger(__name__)

SENTENCE_ENDINGS = ('. ', '! ', '? ', '.\n', '!\n', '?\n')
SEARCH_GAP = 100
RESOLVED_SHARE = 0.5

UPPER = "A-ZÀ-ÖØ-Þ"
MARKER_MIN_SPACING = 50


@lru_cache(maxsize=1)
def marker_patterns() -> Tuple[Tuple[str, Pattern], ...]:
    """(kind, pattern) pairs for heading lines; chapter words come from every lexicon."""
    headings = "|".join(re.escape(w) for w in sorted(merged("heading_words"), key=len, reverse=True))
    return (
        ("numbered", re.compile(rf'^(\d+\.?\d*\.?[ \t]+[{UPPER}][^\n]{{3,60}})$', re.MULTILINE)),
        ("chapter", re.compile(
            rf'^((?:{headings})[ \t]*\d*[:. \t]+[^\n]{{3,50}})$',
            re.MULTILINE | re.IGNORECASE,
        )),
        ("roman", re.compile(rf'^((?:I|II|III|IV|V|VI|VII|VIII|IX|X)+\.?[ \t]+[{UPPER}][^\n]{{3,50}})$', re.MULTILINE)),
        ("caps", re.compile(rf'^([{UPPER}][{UPPER} \t]{{5,40}})$', re.MULTILINE)),
    )


def _normalize_with_offsets(text: str) -> Tuple[str, List[int]]:
    """
    Lowercase, accent-free, whitespace-collapsed text plus, for every
    output character, its index in the original text.
    """
    chars: List[str] = []
    offsets: List[int] = []
    previous_space = True
    for index, char in enumerate(text):
        if char.isspace():
            if not previous_space:
                chars.append(' ')
                offsets.append(index)
            previous_space = True
            continue
        previous_space = False
        for piece in unicodedata.normalize("NFD", char.lower()):
            if unicodedata.category(piece) != "Mn":
                chars.append(piece)
                offsets.append(index)
    return ''.join(chars), offsets


def word_overlap(text1: str, text2: str) -> float:
    """Shared significant words divided by the smaller word set."""
    words1 = set(extract_significant_words(text1))
    words2 = set(extract_significant_words(text2))
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / min(len(words1), len(words2))


def find_marker_position(text: str, marker: str, search_start: int = 0) -> int:
    """
    Position of marker in text at or after search_start, or -1.

    Strategies, in order: exact case-insensitive match, accent-normalized
    match, the first significant words in sequence, the best word-overlap
    window, and finally the longest significant word alone.
    """
    marker = marker.strip()
    if not marker:
        return -1

    search_text = text[search_start:]
    pos = search_text.lower().find(marker.lower())
    if pos != -1:
        return search_start + pos

    normalized, offsets = _normalize_with_offsets(search_text)
    normalized_marker, _ = _normalize_with_offsets(marker)
    normalized_marker = normalized_marker.strip()
    if normalized_marker:
        pos = normalized.find(normalized_marker)
        if pos != -1:
            return search_start + offsets[pos]

    marker_words = extract_significant_words(marker)

    if len(marker_words) >= 2:
        pattern = r'[^a-z0-9]*'.join(re.escape(w) for w in marker_words[:4])
        match = re.search(pattern, normalized)
        if match:
            return search_start + offsets[match.start()]

        window_size = min(500, len(marker) * 3)
        best_score = 0.0
        best_pos = -1
        for i in range(0, max(len(search_text) - window_size, 0) + 1, 100):
            score = word_overlap(marker, search_text[i:i + window_size])
            if score > best_score and score >= WINDOW_OVERLAP_THRESHOLD:
                best_score = score
                best_pos = i
        if best_pos != -1:
            return search_start + best_pos

    if marker_words:
        longest = max(marker_words, key=len)
        if len(longest) >= 5:
            pos = normalized.find(longest)
            if pos != -1:
                return search_start + offsets[pos]

    return -1


def find_position_by_key_concepts(text: str, key_concepts: Sequence[str], search_start: int = 0) -> int:
    """Earliest position at which any key concept is found, or -1."""
    positions = [find_marker_position(text, concept, search_start) for concept in key_concepts]
    positions = [p for p in positions if p != -1]
    return min(positions) if positions else -1


def find_natural_boundary(text: str, position: int, direction: str, max_distance: int = 500) -> int:
    """
    Nearest paragraph break, else sentence end, within max_distance of
    position. direction is 'before' or 'after'.
    """
    position = max(0, min(position, len(text)))

    if direction == "before":
        window_start = max(0, position - max_distance)
        window = text[window_start:position]

        paragraph = window.rfind('\n\n')
        if paragraph != -1:
            return window_start + paragraph + 2

        best = max(window.rfind(ending) for ending in SENTENCE_ENDINGS)
        if best != -1:
            return window_start + best + 2
        return position

    window = text[position:min(len(text), position + max_distance)]

    paragraph = window.find('\n\n')
    if paragraph != -1:
        return position + paragraph

    best = len(window)
    for ending in SENTENCE_ENDINGS:
        pos = window.find(ending)
        if pos != -1 and pos + len(ending) < best:
            best = pos + len(ending)
    return position + best


def detect_section_markers(text: str) -> List[SectionMarker]:
    """Heading-like lines (numbered, chapter words, roman numerals, all caps), by position."""
    markers: List[SectionMarker] = []
    for kind, pattern in marker_patterns():
        for match in pattern.finditer(text):
            position = match.start(1)
            if any(abs(m.position - position) < MARKER_MIN_SPACING for m in markers):
                continue
            markers.append(SectionMarker(position=position, text=match.group(1).strip(), kind=kind))
    return sorted(markers, key=lambda m: m.position)


def _coerce_chapters(chapters: Sequence) -> List[ChapterSpec]:
    specs = []
    for i, chapter in enumerate(chapters):
        if isinstance(chapter, ChapterSpec):
            specs.append(chapter)
            continue
        specs.append(ChapterSpec(
            index=chapter.get("index", i),
            title=chapter.get("title", ""),
            short_summary=chapter.get("short_summary") or chapter.get("shortSummary") or "",
            key_concepts=list(chapter.get("key_concepts") or chapter.get("keyConcepts") or []),
        ))
    return specs


def _locate_chapter(text: str, chapter: ChapterSpec, search_start: int) -> Tuple[int, Optional[str]]:
    if search_start >= len(text):
        return -1, None

    position = find_marker_position(text, chapter.title, search_start)
    if position != -1:
        return position, "title"

    if chapter.short_summary:
        position = find_marker_position(text, chapter.short_summary, search_start)
        if position != -1:
            return position, "summary"

    if chapter.key_concepts:
        position = find_position_by_key_concepts(text, chapter.key_concepts, search_start)
        if position != -1:
            return position, "key_concepts"

    # Reformulated titles: any two consecutive significant words
    words = extract_significant_words(chapter.title)
    normalized, offsets = _normalize_with_offsets(text[search_start:])
    for first, second in zip(words, words[1:]):
        pos = normalized.find(f"{first} {second}")
        if pos != -1:
            return search_start + offsets[pos], "title_words"

    return -1, None


def _interpolate_starts(
    resolved: List[Tuple[int, int]],
    count: int,
    text_length: int,
) -> List[Tuple[int, str]]:
    """Start offsets for every chapter from the (ordinal, position) pairs that resolved."""
    known = dict(resolved)
    starts = []
    for i in range(count):
        if i in known:
            starts.append((known[i], "resolved"))
            continue

        previous = [(o, p) for o, p in resolved if o < i]
        following = [(o, p) for o, p in resolved if o > i]

        if previous and following:
            (p_ord, p_pos), (n_ord, n_pos) = previous[-1], following[0]
            start = p_pos + (n_pos - p_pos) * (i - p_ord) // (n_ord - p_ord)
            starts.append((start, "interpolated"))
        elif previous:
            p_ord, p_pos = previous[-1]
            start = p_pos + (text_length - p_pos) * (i - p_ord) // (count - p_ord)
            starts.append((start, "extrapolated"))
        elif following:
            n_ord, n_pos = following[0]
            starts.append((n_pos * i // n_ord, "extrapolated"))
        else:
            starts.append((text_length * i // count, "equal_division"))
    return starts


def _enforce_ordering(spans: List[Tuple[int, int]], text_length: int) -> List[Tuple[int, int]]:
    """Clamp spans so start[i] < end[i] <= start[i+1] and every span lies in the text."""
    count = len(spans)
    starts: List[int] = []
    for i, (start, _) in enumerate(spans):
        lower = starts[-1] + 1 if starts else 0
        upper = text_length - (count - i)
        starts.append(min(max(start, lower), upper))

    ordered = []
    for i, (_, end) in enumerate(spans):
        limit = starts[i + 1] if i + 1 < count else text_length
        ordered.append((starts[i], min(max(end, starts[i] + 1), limit)))
    return ordered


def _fit_span(text: str, start: int, end: int, min_chunk_size: int, max_chunk_size: int, snap_distance: int) -> Tuple[int, int]:
    start = find_natural_boundary(text, start, "after", snap_distance)
    end = find_natural_boundary(text, end, "before", snap_distance)

    if end - start < min_chunk_size:
        end = min(len(text), start + min_chunk_size)
    if end - start > max_chunk_size:
        end = find_natural_boundary(text, start + max_chunk_size, "before", 100)
    return start, end


def extract_chapter_text(
    full_text: str,
    chapters: Sequence,
    min_chunk_size: int = MIN_CHUNK_SIZE,
    max_chunk_size: int = MAX_CHUNK_SIZE,
    use_marker_detection: bool = True,
) -> List[ChapterBoundary]:
    """
    Resolve each chapter's span in full_text.

    chapters may be ChapterSpec instances or dicts with title,
    short_summary and key_concepts. Boundaries come back in chapter order.

    Raises:
        ValueError: when the text has fewer characters than chapters.
    """
    specs = _coerce_chapters(chapters)
    if not specs or not full_text.strip():
        return []

    text_length = len(full_text)
    if text_length < len(specs):
        raise ValueError(f"Text of {text_length} characters cannot hold {len(specs)} chapters")

    resolved: List[Tuple[int, int]] = []
    strategies = {}
    for ordinal, chapter in enumerate(specs):
        search_start = resolved[-1][1] + SEARCH_GAP if resolved else 0
        position, strategy = _locate_chapter(full_text, chapter, search_start)
        if position != -1:
            resolved.append((ordinal, position))
            strategies[ordinal] = strategy

    logger.info(f"Located {len(resolved)}/{len(specs)} chapter positions in text")

    if len(resolved) >= len(specs) * RESOLVED_SHARE:
        starts = _interpolate_starts(resolved, len(specs), text_length)
        spans = []
        for i, (start, _) in enumerate(starts):
            end = starts[i + 1][0] if i + 1 < len(starts) else text_length
            spans.append(_fit_span(full_text, start, end, min_chunk_size, max_chunk_size, 200))
        labels = [strategies.get(i, how) for i, (_, how) in enumerate(starts)]
    else:
        logger.info(
            f"Only {len(resolved)}/{len(specs)} chapters located, dividing text around detected markers"
        )
        spans, labels = _marker_division(
            full_text, len(specs), min_chunk_size, max_chunk_size, use_marker_detection
        )

    boundaries = []
    for chapter, (start, end), label in zip(specs, _enforce_ordering(spans, text_length), labels):
        boundaries.append(ChapterBoundary(
            index=chapter.index,
            title=chapter.title,
            start_position=start,
            end_position=end,
            text=full_text[start:end].strip(),
            strategy=label,
        ))
    return boundaries


def _marker_division(
    text: str,
    count: int,
    min_chunk_size: int,
    max_chunk_size: int,
    use_marker_detection: bool,
) -> Tuple[List[Tuple[int, int]], List[str]]:
    """Equal division where each cut moves to a detected heading close to it."""
    text_length = len(text)
    markers = detect_section_markers(text) if use_marker_detection else []
    tolerance = text_length / (count * 2)

    spans = []
    labels = []
    for i in range(count):
        expected_start = text_length * i // count
        end = text_length * (i + 1) // count

        nearby = next((m for m in markers if abs(m.position - expected_start) < tolerance), None)
        start = nearby.position if nearby else expected_start

        end_marker = next(
            (m for m in markers if abs(m.position - end) < tolerance and m.position > start),
            None,
        )
        if end_marker:
            end = end_marker.position

        spans.append(_fit_span(text, start, end, min_chunk_size, max_chunk_size, 100))
        labels.append("marker" if nearby else "equal_division")

        if nearby:
            markers.remove(nearby)
    return spans, labels


def equal_division_chunking(
    full_text: str,
    chapter_count: int,
    min_chunk_size: int = MIN_CHUNK_SIZE,
    max_chunk_size: int = MAX_CHUNK_SIZE,
) -> List[str]:
    """Split text into chapter_count chunks cut at natural breaks."""
    if chapter_count < 1:
        return []

    text_length = len(full_text)
    base = text_length // chapter_count
    chunks = []
    for i in range(chapter_count):
        start = i * base
        end = text_length if i == chapter_count - 1 else (i + 1) * base

        if i > 0:
            start = find_natural_boundary(full_text, start, "after", 100)
        if i < chapter_count - 1:
            end = find_natural_boundary(full_text, end, "before", 100)
        if end - start < min_chunk_size:
            end = min(text_length, start + min_chunk_size)
        if end - start > max_chunk_size:
            end = find_natural_boundary(full_text, start + max_chunk_size, "before", 100)

        chunks.append(full_text[start:end].strip())
    return chunks
