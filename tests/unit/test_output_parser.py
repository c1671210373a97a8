"""Unit tests for output_parser — sections, evaluation scores, rubric lines."""

import re

import pytest

from speecheval.models.evaluation import BenchmarkScore
from speecheval.prompts.defaults import RUBRIC_DIMENSIONS
from speecheval.services.output_parser import (
    UNPARSED_DIMENSION,
    coerce_score,
    extract_json_object,
    marker_pattern,
    parse_dimension,
    parse_dimensions,
    parse_evaluation,
    parse_key_ideas_and_summary,
    split_at_midpoint,
    split_rubric_and_evaluation,
)


def _squash(text: str) -> str:
    return re.sub(r"\s+", "", text)


# ---------------------------------------------------------------------------
# Key ideas / summary
# ---------------------------------------------------------------------------


class TestKeyIdeasAndSummary:
    """Tests for parse_key_ideas_and_summary()."""

    def test_exact_markers(self):
        raw = "===KEY_IDEAS===\n- Point one\n- Point two\n===SUMMARY===\nA short summary."
        result = parse_key_ideas_and_summary(raw)

        assert result.strategy == "marker"
        assert result.first == "- Point one\n- Point two"
        assert result.second == "A short summary."

    def test_tolerant_markers(self):
        """Spacing, case and decoration around the markers are tolerated."""
        raw = "Sure!\n=== Key Ideas ===\n- One\n**SUMMARY**\nThe summary."
        result = parse_key_ideas_and_summary(raw)

        assert result.strategy == "marker"
        assert result.first == "- One"
        assert result.second == "The summary."

    def test_markers_in_wrong_order_fall_through(self):
        raw = "===SUMMARY===\nsummary text\n===KEY_IDEAS===\nideas text"
        result = parse_key_ideas_and_summary(raw)

        assert result.strategy == "heuristic"

    def test_json_fallback(self):
        raw = 'Here you go: {"key_ideas": ["First", "Second"], "summary": "Both matter."}'
        result = parse_key_ideas_and_summary(raw)

        assert result.strategy == "json"
        assert result.first == "- First\n- Second"
        assert result.second == "Both matter."

    def test_heuristic_split_paragraphs(self):
        """Without markers or JSON, the text splits at the blank line nearest the middle."""
        raw = "Idea one. Idea two.\n\nThe summary paragraph."
        result = parse_key_ideas_and_summary(raw)

        assert result.strategy == "heuristic"
        assert result.first == "Idea one. Idea two."
        assert result.second == "The summary paragraph."

    @pytest.mark.parametrize(
        "raw",
        [
            "one two three four five six",
            "single-line-without-spaces",
            "line one\nline two\nline three",
            "ab",
        ],
    )
    def test_heuristic_reconstructs_input(self, raw):
        """Both halves are non-empty and concatenate back to the input modulo whitespace."""
        result = split_at_midpoint(raw)

        assert result.first
        assert result.second
        assert _squash(result.first + result.second) == _squash(raw)

    def test_bullet_naming_a_marker_is_content(self):
        raw = "===KEY_IDEAS===\n- Summary\n- Scope of the talk\n===SUMMARY===\nShort summary."
        result = parse_key_ideas_and_summary(raw)

        assert result.strategy == "marker"
        assert result.first == "- Summary\n- Scope of the talk"
        assert result.second == "Short summary."

    def test_exact_sentinel_preferred_over_loose_line(self):
        raw = "===KEY_IDEAS===\n- One\nSummary:\n- Two\n===SUMMARY===\nThe summary."
        result = parse_key_ideas_and_summary(raw)

        assert result.first == "- One\nSummary:\n- Two"
        assert result.second == "The summary."

    def test_single_character_not_duplicated(self):
        result = split_at_midpoint("x")

        assert (result.first, result.second) == ("x", "")

    def test_parse_is_deterministic(self):
        raw = "Some text\n\nwith two paragraphs"
        assert parse_key_ideas_and_summary(raw) == parse_key_ideas_and_summary(raw)


class TestMarkerPattern:
    """Tests for marker_pattern()."""

    @pytest.mark.parametrize(
        "line",
        ["===KEY_IDEAS===", "=== KEY IDEAS ===", "**Key-Ideas**", "key_ideas:", "## Key Ideas"],
    )
    def test_matches_variants(self, line):
        assert marker_pattern("===KEY_IDEAS===").search(line)

    @pytest.mark.parametrize("line", ["- Summary", "* summary", "  + SUMMARY", "• Summary"])
    def test_list_items_are_not_markers(self, line):
        assert marker_pattern("===SUMMARY===").search(line) is None

    def test_requires_own_line(self):
        assert marker_pattern("===SUMMARY===").search("The summary is below") is None


class TestRubricEvaluationSplit:
    """Tests for split_rubric_and_evaluation()."""

    def test_with_markers(self):
        raw = "===RUBRIC===\nRelevance: Good - ok\n===EVALUATION===\n{\"a\": 1}"
        rubric, evaluation = split_rubric_and_evaluation(raw)

        assert rubric == "Relevance: Good - ok"
        assert evaluation == '{"a": 1}'

    def test_without_markers_both_get_whole_text(self):
        raw = "Relevance: Good - ok"
        assert split_rubric_and_evaluation(raw) == (raw, raw)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


class TestParseEvaluation:
    """Tests for parse_evaluation()."""

    def test_valid_json(self):
        raw = (
            '{"clarity_score": 6, "clarity_reasoning": "Clear", "language_score": 7, '
            '"language_reasoning": "Good", "safety_flag": false, "safety_notes": "None", '
            '"overall_feedback": "Nice."}'
        )
        result = parse_evaluation(raw)

        assert result.is_parse_error is False
        assert result.clarity_score == 6
        assert result.language_score == 7
        assert result.total_score == 13

    def test_json_wrapped_in_prose(self):
        raw = (
            'Sure, here it is:\n```json\n{"clarity_score": "8", "clarity_reasoning": "x", '
            '"language_score": 9, "language_reasoning": "y", "safety_flag": "false", '
            '"safety_notes": "None", "overall_feedback": "z"}\n```'
        )
        result = parse_evaluation(raw)

        assert result.clarity_score == 8
        assert result.language_score == 9
        assert result.safety_flag is False

    def test_out_of_range_scores_clamped(self):
        raw = (
            '{"clarity_score": 14, "clarity_reasoning": "x", "language_score": 0, '
            '"language_reasoning": "y", "safety_flag": false, "safety_notes": "None", '
            '"overall_feedback": "z"}'
        )
        result = parse_evaluation(raw)

        assert result.clarity_score == 10
        assert result.language_score == 1

    def test_missing_key_falls_back_to_lines(self):
        raw = '{"clarity_score": 6, "language_score": 7}\nClarity: 6/10\nLanguage: 7/10'
        result = parse_evaluation(raw)

        assert result.is_parse_error is False
        assert result.clarity_score == 6
        assert result.language_score == 7

    def test_regex_fallback(self):
        raw = "Clarity of Thought: 7/10\nLanguage Proficiency: **5**\nOverall decent."
        result = parse_evaluation(raw)

        assert result.clarity_score == 7
        assert result.language_score == 5
        assert "non-standard" in result.overall_feedback

    def test_only_one_line_is_parse_error(self):
        """A lone clarity line is not enough; no score is guessed."""
        result = parse_evaluation("Clarity: 7/10 and that's all")

        assert result.is_parse_error is True
        assert result.clarity_score is None
        assert result.language_score is None

    def test_unparseable_output(self):
        raw = "The speaker did fine overall."
        result = parse_evaluation(raw)

        assert result.is_parse_error is True
        assert result.clarity_score is None
        assert result.language_score is None
        assert result.raw_output == raw
        assert result.total_score is None
        assert result.total_label is None

    def test_never_raises_on_garbage(self):
        for raw in ["", "{", "}{", "null", "[1, 2]", '{"clarity_score": NaN}']:
            assert parse_evaluation(raw).is_parse_error is True


class TestCoerceScore:
    """Tests for coerce_score()."""

    @pytest.mark.parametrize(
        "value, expected",
        [(7, 7), (6.6, 7), ("8", 8), ("7/10", 7), (-3, 1), (42, 10), ("9.2 out of 10", 9)],
    )
    def test_coerces(self, value, expected):
        assert coerce_score(value) == expected

    @pytest.mark.parametrize("value", [True, None, "n/a", float("nan"), float("inf"), [7]])
    def test_rejects(self, value):
        assert coerce_score(value) is None


class TestExtractJsonObject:
    """Tests for extract_json_object()."""

    def test_first_object_wins(self):
        assert extract_json_object('x {"a": 1} y {"b": 2}') == {"a": 1}

    def test_skips_invalid_braces(self):
        assert extract_json_object('{not json} then {"ok": true}') == {"ok": True}

    def test_none_when_absent(self):
        assert extract_json_object("no braces here") is None


# ---------------------------------------------------------------------------
# Rubric dimensions
# ---------------------------------------------------------------------------


class TestParseDimensions:
    """Tests for parse_dimensions() and parse_dimension()."""

    def test_all_five_in_order(self):
        raw = "\n".join(f"{name}: Good - fine" for name in RUBRIC_DIMENSIONS)
        dimensions = parse_dimensions(raw)

        assert [d.name for d in dimensions] == list(RUBRIC_DIMENSIONS)
        assert all(d.score == BenchmarkScore.GOOD for d in dimensions)
        assert all(d.explanation == "fine" for d in dimensions)

    def test_always_five_records(self):
        dimensions = parse_dimensions("nothing useful")

        assert len(dimensions) == 5
        assert all(d.score == BenchmarkScore.FAIR for d in dimensions)
        assert all(d.explanation == UNPARSED_DIMENSION for d in dimensions)

    def test_markdown_and_case(self):
        dimension = parse_dimension(
            "**Coverage**: **poor** — misses the ending", "Coverage", "desc"
        )

        assert dimension.score == BenchmarkScore.POOR
        assert dimension.explanation == "misses the ending"

    def test_missing_explanation(self):
        dimension = parse_dimension("Coherence: Fair", "Coherence", "desc")

        assert dimension.score == BenchmarkScore.FAIR
        assert dimension.explanation == "No explanation provided."

    def test_does_not_cross_lines(self):
        dimension = parse_dimension("Relevance:\nGood - next line", "Relevance", "desc")

        assert dimension.explanation == UNPARSED_DIMENSION


class TestDocumentedOutputs:
    """Exact outputs the pipeline must handle."""

    def test_marker_output_recovered_exactly(self):
        result = parse_key_ideas_and_summary(
            "===KEY_IDEAS===\n- point one\n===SUMMARY===\nShort summary."
        )

        assert (result.first, result.second) == ("- point one", "Short summary.")

    def test_no_json_no_language_line(self):
        result = parse_evaluation("Clarity of Thought: 6\nThe talk was okay but wandered.")

        assert result.is_parse_error is True
        assert result.language_score is None
