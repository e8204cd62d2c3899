"""
Unit tests for structural question validation.
"""
from models.question_models import Question, normalize_question
from services.validation.question_validator import (
    check_concept_coverage,
    deduplicate_questions,
    fix_question,
    validate_batch,
    validate_question,
)


def make_question(**overrides):
    question = {
        "prompt": "What does the weighted average cost of capital represent?",
        "options": [
            "The blended required return of all investors",
            "The interest rate on short-term deposits",
            "The dividend yield of preferred shares",
            "The growth rate of annual revenue",
        ],
        "correct_option_index": 0,
        "explanation": "It weights the cost of equity and debt by their proportions.",
        "source_reference": "WACC is the blended required return of all capital providers.",
        "cognitive_level": "understand",
    }
    question.update(overrides)
    return question


class TestNormalization:
    """Test mapping of loosely-shaped records."""

    def test_camel_case_fields(self):
        """Test that camelCase field names are accepted."""
        question = normalize_question({
            "question": "Which ratio compares debt to equity?",
            "choices": ["A", "B", "C", "D"],
            "correctOptionIndex": 2,
            "sourceReference": "The debt to equity ratio compares the two.",
            "cognitiveLevel": "remember",
        })

        assert question.prompt == "Which ratio compares debt to equity?"
        assert question.correct_option_index == 2
        assert question.source_reference == "The debt to equity ratio compares the two."
        assert question.cognitive_level == "remember"

    def test_answer_letter_resolves_index(self):
        """Test that an answer letter resolves the correct index."""
        question = normalize_question(make_question(correct_option_index=None, correct_answer="c"))

        assert question.resolved_correct_index() == 2

    def test_non_dict_input(self):
        """Test that non-dict input normalises to an empty question."""
        assert normalize_question("not a question") == Question()


class TestValidateQuestion:
    """Test single-question checks."""

    def test_well_formed_question_is_valid(self):
        """Test that a well-formed question has no errors."""
        result = validate_question(make_question())

        assert result.is_valid is True
        assert result.errors == []
        assert result.fixed_question is None

    def test_wrong_option_count(self):
        """Test that a question without four options is invalid."""
        result = validate_question(make_question(options=["One option", "Another option", "Third option"]))

        assert result.is_valid is False
        assert any("Expected 4 options, got 3." == e.message for e in result.errors)
        assert len(result.fixed_question.options) == 4

    def test_out_of_range_index(self):
        """Test that an index outside 0-3 is an error and the fix defaults it to 0."""
        result = validate_question(make_question(correct_option_index=7))

        assert result.is_valid is False
        assert result.errors[0].field == "correct_option_index"
        assert result.fixed_question.correct_option_index == 0

    def test_short_prompt(self):
        """Test that a too-short prompt is invalid."""
        result = validate_question(make_question(prompt="Why?"))

        assert any(e.field == "prompt" for e in result.errors)

    def test_duplicate_options(self):
        """Test that repeated options are invalid."""
        options = ["Same answer", "same answer ", "Other answer", "Last answer"]
        result = validate_question(make_question(options=options))

        assert any(e.message == "Duplicate options detected." for e in result.errors)

    def test_missing_reference_is_warning_only(self):
        """Test that a missing source reference only warns."""
        result = validate_question(make_question(source_reference=None, explanation=None))

        assert result.is_valid is True
        assert {w.field for w in result.warnings} >= {"source_reference", "explanation"}

    def test_invalid_cognitive_level_warns(self):
        """Test that an unknown cognitive level only warns."""
        result = validate_question(make_question(cognitive_level="evaluate"))

        assert result.is_valid is True
        assert any(w.field == "cognitive_level" for w in result.warnings)


class TestFixQuestion:
    """Test automatic repair."""

    def test_fix_pads_to_four_options(self):
        """Test that short option lists are padded to four."""
        fixed = fix_question(normalize_question(make_question(options=["Only one"], correct_option_index=None)))

        assert fixed.options == ["Only one", "Option B", "Option C", "Option D"]
        assert fixed.correct_option_index == 0

    def test_fix_truncates_extra_options(self):
        """Test that long option lists are cut to four."""
        options = ["First", "Second", "Third", "Fourth", "Fifth"]
        fixed = fix_question(normalize_question(make_question(options=options, correct_option_index=2)))

        assert fixed.options == options[:4]
        assert fixed.correct_option_index == 2

    def test_fix_is_idempotent(self):
        """Test that fixing an already fixed question changes nothing."""
        once = fix_question(normalize_question(make_question(options=["A choice"], correct_option_index=9)))
        twice = fix_question(once)

        assert once == twice
        assert validate_question(once).is_valid is True

    def test_fix_keeps_correct_option_text(self):
        """Test that fixing never changes which text is marked correct."""
        question = normalize_question(make_question(options=["Equity", "Debt", "Preferred"], correct_option_index=1))

        fixed = fix_question(question)

        assert fixed.options[fixed.correct_option_index] == "Debt"

    def test_fix_leaves_repeated_options(self):
        """Test that repeated options are not replaced by placeholders."""
        question = normalize_question(make_question(options=["Paris", "paris", "Rome", "Berlin"], correct_option_index=1))

        fixed = fix_question(question)

        assert fixed.options == ["Paris", "paris", "Rome", "Berlin"]
        assert validate_question(fixed).is_valid is False


class TestValidateBatch:
    """Test batch validation."""

    def test_accepted_questions_are_structurally_sound(self):
        """Test that every accepted question has four options and a valid index."""
        questions = [
            make_question(),
            make_question(prompt="Which financing source usually has the lowest cost?", correct_option_index=None, correct_answer="B"),
            make_question(prompt="Short", options=["x"]),
        ]

        result = validate_batch(questions)

        for question in result.valid_questions:
            assert len(question.options) == 4
            assert 0 <= question.correct_option_index <= 3
        assert result.valid_questions[1].correct_option_index == 1
        assert result.stats.total == 3

    def test_unfixable_question_is_rejected(self):
        """Test that a question still invalid after fixing is rejected."""
        result = validate_batch([make_question(prompt="Short")])

        assert result.valid_questions == []
        assert result.stats.rejected == 1
        assert result.rejected_questions[0]["result"].is_valid is False

    def test_fixable_question_is_counted(self):
        """Test that a repaired question is accepted and counted as fixed."""
        result = validate_batch([make_question(correct_option_index=5)])

        assert result.stats.fixed == 1
        assert result.valid_questions[0].correct_option_index == 0

    def test_repeated_options_are_rejected(self):
        """Test that a question whose correct option repeats another is rejected, not patched."""
        result = validate_batch([
            make_question(
                prompt="What is the capital of France?",
                options=["Paris", "paris", "Rome", "Berlin"],
                correct_option_index=1,
            ),
        ])

        assert result.valid_questions == []
        assert result.stats.fixed == 0
        assert result.stats.rejected == 1

    def test_blank_option_is_rejected(self):
        """Test that a blank option keeps the question invalid."""
        result = validate_batch([make_question(options=["Equity", "", "Debt", "Preferred"])])

        assert result.valid_questions == []
        assert result.stats.rejected == 1

    def test_in_batch_duplicates_removed(self):
        """Test that repeated prompts in one batch are removed."""
        result = validate_batch([make_question(), make_question()])

        assert len(result.valid_questions) == 1
        assert result.stats.duplicates_removed == 1


class TestHelpers:
    """Test deduplication and concept coverage helpers."""

    def test_deduplicate_keeps_first(self):
        """Test that deduplication keeps the first occurrence."""
        first = make_question()
        second = make_question(prompt="What does the weighted average cost of capital really represent?")

        unique = deduplicate_questions([first, second])

        assert len(unique) == 1
        assert unique[0].prompt == first["prompt"]

    def test_concept_coverage(self):
        """Test covered and uncovered concepts with per-concept counts."""
        questions = [make_question(concept_ids=["c1"]), make_question(concept_ids=["c1", "c2"])]

        coverage = check_concept_coverage(questions, ["c1", "c2", "c3"])

        assert coverage["covered_concepts"] == ["c1", "c2"]
        assert coverage["uncovered_concepts"] == ["c3"]
        assert coverage["concept_question_count"]["c1"] == 2
