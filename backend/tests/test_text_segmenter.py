"""
Unit tests for chapter segmentation.
"""
import pytest

from models.segment_models import ChapterSpec
from services.processing.text_segmenter import (
    detect_section_markers,
    equal_division_chunking,
    extract_chapter_text,
    find_marker_position,
    find_natural_boundary,
    find_position_by_key_concepts,
)

TITLES = [
    "Introduction to Valuation",
    "Discounted Cash Flow Models",
    "Relative Valuation Multiples",
    "Capital Structure Decisions",
    "Dividend Policy",
]
NAMES = ["aardvark", "bison", "camel", "dingo", "emu"]
ABSENT_TITLES = [
    "Quantum Entanglement Basics",
    "Medieval Castle Architecture",
    "Tropical Rainforest Ecology",
]


def body(name):
    return " ".join(
        f"Paragraph sentence {k} covers general background material for the {name} unit."
        for k in range(6)
    )


def build_text():
    return "".join(f"{title}\n\n{body(name)}\n\n" for title, name in zip(TITLES, NAMES))


def assert_ordered(boundaries, text_length):
    for current, following in zip(boundaries, boundaries[1:]):
        assert current.start_position < current.end_position <= following.start_position
    assert boundaries[-1].start_position < boundaries[-1].end_position <= text_length
    assert boundaries[0].start_position >= 0


class TestFindMarkerPosition:
    """Test the layered position search."""

    def test_exact_case_insensitive(self):
        """Test case-insensitive exact matching."""
        text = "Intro\nCapital Budgeting Basics\nMore text"

        assert find_marker_position(text, "capital budgeting basics") == 6

    def test_accent_normalized(self):
        """Test that accents and spacing are normalised before matching."""
        text = "Le coût du capital est élevé"

        assert find_marker_position(text, "cout du capital") == 3

    def test_significant_words_in_sequence(self):
        """Test matching on significant words in order."""
        text = "Overview of the net-present-value rule for projects"

        assert find_marker_position(text, "Net Present Value Rule") == text.index("present")

    def test_respects_search_start(self):
        """Test that matches before search_start are ignored."""
        text = "Risk appears here. Later on, risk appears again."

        assert find_marker_position(text, "risk", search_start=5) == text.index("risk appears again")

    def test_not_found(self):
        """Test that an absent marker gives -1."""
        assert find_marker_position("Nothing relevant in here at all.", "Thermodynamics") == -1

    def test_key_concepts_earliest_match(self):
        """Test that the earliest key concept position wins."""
        text = "Leverage comes up first. Then dividends follow."

        assert find_position_by_key_concepts(text, ["dividends", "leverage"]) == 0


class TestNaturalBoundary:
    """Test snapping to paragraph and sentence breaks."""

    TEXT = "First sentence here. Second sentence here.\n\nNew paragraph starts here. More text."

    def test_sentence_end_before(self):
        """Test snapping back to a sentence end."""
        assert find_natural_boundary(self.TEXT, 30, "before") == 21

    def test_paragraph_preferred_after(self):
        """Test that a paragraph break is preferred going forward."""
        assert find_natural_boundary(self.TEXT, 0, "after") == 42

    def test_paragraph_before(self):
        """Test snapping back to a paragraph break."""
        assert find_natural_boundary(self.TEXT, len(self.TEXT), "before") == 44

    def test_no_break_keeps_position(self):
        """Test that the position is kept when no break is near."""
        assert find_natural_boundary("no breaks at all", 5, "before") == 5


class TestSectionMarkers:
    """Test heading detection."""

    def test_detects_every_kind(self):
        """Test detection of numbered, chapter, roman and all-caps headings."""
        filler = "plain lowercase filler text that is long enough to separate the headings"
        text = (
            f"1. Introduction to Markets\n{filler}\n"
            f"Chapter 2: Pricing Models\n{filler}\n"
            f"IV. Risk Management Basics\n{filler}\n"
            f"CONCLUSION AND REVIEW\n{filler}\n"
        )

        markers = detect_section_markers(text)

        assert [m.kind for m in markers] == ["numbered", "chapter", "roman", "caps"]
        assert markers[1].text == "Chapter 2: Pricing Models"
        assert [m.position for m in markers] == sorted(m.position for m in markers)

    def test_heading_words_from_every_locale(self):
        """Test that lesson and module headings in any supported language are detected."""
        filler = "plain lowercase filler text that is long enough to separate the headings"
        text = (
            f"Lesson 1: Time Value of Money\n{filler}\n"
            f"Leçon 2 : Les marchés financiers\n{filler}\n"
            f"Lektion 3: Zinsen und Renditen\n{filler}\n"
        )

        markers = detect_section_markers(text)

        assert [m.kind for m in markers] == ["chapter", "chapter", "chapter"]
        assert markers[2].text == "Lektion 3: Zinsen und Renditen"


class TestExtractChapterText:
    """Test chapter boundary resolution."""

    def test_all_titles_found(self):
        """Test that every chapter resolves by title."""
        text = build_text()
        chapters = [ChapterSpec(index=i + 1, title=t) for i, t in enumerate(TITLES)]

        boundaries = extract_chapter_text(text, chapters, min_chunk_size=50, max_chunk_size=5000)

        assert [b.strategy for b in boundaries] == ["title"] * 5
        assert [b.index for b in boundaries] == [1, 2, 3, 4, 5]
        for boundary, name in zip(boundaries, NAMES):
            assert f"Paragraph sentence 0 covers general background material for the {name} unit." in boundary.text
        assert_ordered(boundaries, len(text))

    def test_unresolved_chapters_are_interpolated(self):
        """Test that chapters not found are placed between located neighbours."""
        text = build_text()
        titles = [TITLES[0], ABSENT_TITLES[0], TITLES[2], ABSENT_TITLES[1], TITLES[4]]
        chapters = [{"index": i, "title": t} for i, t in enumerate(titles)]

        boundaries = extract_chapter_text(text, chapters, min_chunk_size=50, max_chunk_size=5000)

        assert [b.strategy for b in boundaries] == ["title", "interpolated", "title", "interpolated", "title"]
        assert_ordered(boundaries, len(text))

    def test_two_of_five_located_keeps_ordering(self):
        """Test that a mostly unlocatable outline still yields ordered, in-text spans."""
        text = build_text()
        titles = [TITLES[0], ABSENT_TITLES[0], ABSENT_TITLES[1], TITLES[3], ABSENT_TITLES[2]]
        chapters = [{"index": i, "title": t} for i, t in enumerate(titles)]

        boundaries = extract_chapter_text(text, chapters, min_chunk_size=50, max_chunk_size=5000)

        assert len(boundaries) == 5
        assert all(b.strategy in ("marker", "equal_division") for b in boundaries)
        assert all(b.text for b in boundaries)
        assert_ordered(boundaries, len(text))

    def test_summary_and_key_concepts(self):
        """Test that summaries and key concepts locate chapters without a title match."""
        text = build_text()
        chapters = [
            {"title": TITLES[0]},
            {"title": ABSENT_TITLES[0], "shortSummary": "Discounted Cash Flow Models"},
            {"title": ABSENT_TITLES[1], "key_concepts": ["Relative Valuation Multiples"]},
        ]

        boundaries = extract_chapter_text(text, chapters, min_chunk_size=50, max_chunk_size=5000)

        assert [b.strategy for b in boundaries] == ["title", "summary", "key_concepts"]

    def test_empty_inputs(self):
        """Test that empty text or no chapters gives no boundaries."""
        assert extract_chapter_text("", [{"title": "A"}]) == []
        assert extract_chapter_text("Some text", []) == []

    def test_text_shorter_than_chapter_count(self):
        """Test that text shorter than the chapter count is rejected."""
        with pytest.raises(ValueError):
            extract_chapter_text("ab", [{"title": "A"}, {"title": "B"}, {"title": "C"}])


class TestEqualDivision:
    """Test plain equal division."""

    def test_chunks(self):
        """Test that the text is divided into the requested number of chunks."""
        chunks = equal_division_chunking(build_text(), 3, min_chunk_size=50, max_chunk_size=5000)

        assert len(chunks) == 3
        assert all(chunks)

    def test_zero_chapters(self):
        """Test that zero chapters gives no chunks."""
        assert equal_division_chunking("text", 0) == []
