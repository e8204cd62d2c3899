"""
Unit tests for administrative-content filtering.
"""
from services.validation.admin_filter import classify, filter_administrative_questions


class TestClassify:
    """Test administrative classification."""

    def test_exam_structure_is_administrative(self):
        """Test that questions about exam format are flagged."""
        result = classify("How many parts does the final exam have?")

        assert result.is_admin is True
        assert result.reason == "Matches administrative pattern"

    def test_subject_matter_is_not_administrative(self):
        """Test that course content passes the filter."""
        assert classify("What is the formula for WACC?").is_admin is False

    def test_french_keyword(self):
        """Test that French administrative keywords are recognised."""
        result = classify("Quel est le barème utilisé pour ce module ?")

        assert result.is_admin is True
        assert result.matched_keyword == "barème"
        assert result.reason == "Contains Français administrative keyword"

    def test_keywords_match_whole_words_only(self):
        """Test that short keywords do not match inside longer words."""
        assert classify("Which output does the sorting function return?").is_admin is False

    def test_english_keyword(self):
        """Test that English administrative keywords are recognised."""
        result = classify("Who is the teaching assistant for this class?")

        assert result.is_admin is True
        assert result.matched_keyword == "teaching assistant"

    def test_empty_text(self):
        """Test that empty text is not administrative."""
        assert classify("").is_admin is False


class TestFilter:
    """Test batch filtering."""

    def test_filter_splits_batch(self):
        """Test that a batch is split into kept and removed questions with reasons."""
        questions = [
            {"prompt": "How many parts does the final exam have?", "options": []},
            {"prompt": "What is the formula for WACC?", "options": []},
        ]

        result = filter_administrative_questions(questions)

        assert [q.prompt for q in result["filtered"]] == ["What is the formula for WACC?"]
        assert result["removed"][0]["question"] == "How many parts does the final exam have?"
        assert result["stats"] == {"total": 2, "kept": 1, "removed": 1}
