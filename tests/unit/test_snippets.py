"""
Unit tests for snippet extraction (search results and citations).
"""

import pytest
from chart_search.hybrid.snippets import (
    ELLIPSIS,
    extract_citation_snippet,
    extract_snippet,
    find_sentence_boundary,
)

LONG_NOTE = (
    "Patient seen for routine follow-up visit today. " * 4
    + "Started metformin 500mg twice daily for glycemic control. "
    + "Discussed diet and exercise at length with the patient and family. " * 4
)


class TestExtractSnippet:
    """Query-driven window"""

    def test_short_text_returned_whole(self):
        text = "Metformin 500mg twice daily"
        assert extract_snippet(text, "metformin", 150) == text

    def test_window_contains_match(self):
        snippet = extract_snippet(LONG_NOTE, "metformin", 80)
        assert "metformin" in snippet.lower()
        assert snippet.startswith(ELLIPSIS)
        assert snippet.endswith(ELLIPSIS)

    @pytest.mark.parametrize("max_length", [10, 40, 80, 150])
    def test_length_bound(self, max_length):
        """Body is at most max_length, plus up to two ellipses"""
        snippet = extract_snippet(LONG_NOTE, "glycemic control", max_length)
        assert len(snippet) <= max_length + 2 * len(ELLIPSIS)

    def test_earliest_term_wins(self):
        text = "x" * 200 + " insulin " + "y" * 200 + " metformin " + "z" * 200
        snippet = extract_snippet(text, "metformin insulin", 50)
        assert "insulin" in snippet
        assert "metformin" not in snippet

    def test_case_insensitive(self):
        text = "a" * 300 + " METFORMIN " + "b" * 300
        assert "METFORMIN" in extract_snippet(text, "metformin", 60)

    def test_position_survives_length_changing_case(self):
        """'İ'.lower() is two characters; the window still lands on the match"""
        text = "İ" * 100 + " metformin " + "x" * 200
        snippet = extract_snippet(text, "metformin", 20)
        assert "metformin" in snippet
        assert len(snippet) <= 20 + 2 * len(ELLIPSIS)

    def test_match_at_start_has_no_leading_ellipsis(self):
        snippet = extract_snippet(LONG_NOTE, "patient", 60)
        assert not snippet.startswith(ELLIPSIS)
        assert snippet.endswith(ELLIPSIS)

    def test_match_at_end_has_no_trailing_ellipsis(self):
        text = "z" * 300 + " hemoglobin"
        snippet = extract_snippet(text, "hemoglobin", 50)
        assert snippet.startswith(ELLIPSIS)
        assert snippet.endswith("hemoglobin")

    def test_no_match_returns_prefix(self):
        snippet = extract_snippet(LONG_NOTE, "warfarin", 40)
        assert snippet == LONG_NOTE[:40] + ELLIPSIS

    def test_no_query_tokens(self):
        assert extract_snippet(LONG_NOTE, "the of", 40) == LONG_NOTE[:40]

    def test_matched_term_never_cut(self):
        """A short window still shows the whole term"""
        text = "q" * 100 + "hydrochlorothiazide" + "r" * 100
        snippet = extract_snippet(text, "hydrochlorothiazide", 20)
        assert "hydrochlorothiazide" in snippet

    def test_invalid_length(self):
        with pytest.raises(ValueError):
            extract_snippet(LONG_NOTE, "metformin", 0)


class TestSentenceBoundary:

    def test_backward(self):
        text = "First sentence. Second sentence here."
        assert find_sentence_boundary(text, 25, "backward") == 16

    def test_forward(self):
        text = "First sentence. Second sentence here."
        assert find_sentence_boundary(text, 3, "forward") == 16

    def test_no_boundary(self):
        text = "no boundary in this text"
        assert find_sentence_boundary(text, 10, "backward") == 0
        assert find_sentence_boundary(text, 10, "forward") == len(text)

    def test_bad_direction(self):
        with pytest.raises(ValueError):
            find_sentence_boundary("text", 0, "sideways")


class TestCitationSnippet:
    """Offset-driven window around a cited span"""

    def test_expands_to_sentence(self):
        text = "Vitals stable. Started metformin 500mg twice daily. Follow up in 3 months."
        start = text.index("metformin")
        end = start + len("metformin")

        snippet = extract_citation_snippet(text, start, end, context_chars=5, max_length=200)

        assert snippet.startswith(ELLIPSIS)
        assert "Started metformin 500mg twice daily." in snippet

    def test_highlight_markers(self):
        text = "Started metformin 500mg twice daily."
        start = text.index("metformin")
        end = start + len("metformin")

        snippet = extract_citation_snippet(text, start, end, highlight=("**", "**"))

        assert "**metformin**" in snippet

    def test_respects_max_length(self):
        start = LONG_NOTE.index("metformin")
        end = start + len("metformin")

        snippet = extract_citation_snippet(LONG_NOTE, start, end, context_chars=200, max_length=60)

        assert "metformin" in snippet
        assert len(snippet) <= 60 + 2 * len(ELLIPSIS)

    def test_invalid_offsets(self):
        with pytest.raises(ValueError):
            extract_citation_snippet("short text", 5, 2)
        with pytest.raises(ValueError):
            extract_citation_snippet("short text", 0, 100)
