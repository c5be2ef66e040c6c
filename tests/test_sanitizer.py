import pytest

from apps.pipeline.sanitizer import (
    CONTINUATION_PROMPT,
    ELLIPSIS,
    limit_for_voice,
    sanitize,
)


def test_sanitize_strips_emphasis_and_joins_paragraphs():
    assert sanitize("**Hello** world.\n\nMore.") == "Hello world. More."


def test_sanitize_removes_headings_and_code_markers():
    text = "## Setup\nRun `npm install` then __start__."
    assert sanitize(text) == "Setup Run npm install then start."


def test_sanitize_keeps_link_text():
    text = "See [the docs](https://example.com/docs) and ![diagram](img.png)."
    assert sanitize(text) == "See the docs and diagram."


def test_sanitize_strips_list_markers_on_every_line():
    text = "Steps:\n1. Install it\n2) Configure it\n- Run it\n* Watch it\n+ Done"
    assert sanitize(text) == "Steps: Install it Configure it Run it Watch it Done"


def test_sanitize_keeps_numbers_that_are_not_list_markers():
    assert sanitize("It costs 1.5 dollars.\nIn 2024 it rose.") == "It costs 1.5 dollars. In 2024 it rose."


def test_sanitize_handles_empty_input():
    assert sanitize("") == ""
    assert sanitize("\n\n  \t") == ""


@pytest.mark.parametrize(
    "text",
    [
        "**Hello** world.\n\nMore.",
        "1.\n2. foo",
        "[[a](b)](c)",
        "  \n- - nested bullet\n3. three",
        "- \n1) x\n# y",
        "plain text with   spaces",
        "1.",
    ],
)
def test_sanitize_is_idempotent(text):
    once = sanitize(text)
    assert sanitize(once) == once
    assert "\n" not in once


def test_limit_returns_short_text_unchanged():
    text = "Short answer."
    assert limit_for_voice(text, 100) is text
    exact = "x" * 100
    assert limit_for_voice(exact, 100) == exact


def test_limit_cuts_at_sentence_boundary_past_threshold():
    # sentence end at index 6500, beyond 0.7 × 7000
    text = "a" * 6500 + "." + "b" * 2499
    assert len(text) == 9000

    result = limit_for_voice(text, 7000)

    assert result == text[:6501] + " " + CONTINUATION_PROMPT
    assert len(result) <= 7000 + len(" " + CONTINUATION_PROMPT)


def test_limit_falls_back_to_word_boundary():
    # punctuation only early, last space at 85 of 100
    text = "Hi. " + "w" * 81 + " " + "z" * 50
    result = limit_for_voice(text, 100)
    assert result == text[:85] + ELLIPSIS + " " + CONTINUATION_PROMPT


def test_limit_hard_cuts_without_boundaries():
    text = "x" * 250
    result = limit_for_voice(text, 100)
    assert result == "x" * 100 + ELLIPSIS


def test_limit_thresholds_are_inclusive():
    # punctuation exactly at 0.7 × max_chars
    text = "a" * 70 + "." + "b" * 100
    assert limit_for_voice(text, 100) == text[:71] + " " + CONTINUATION_PROMPT


def test_limit_ratios_can_be_overridden():
    text = "a" * 10 + "." + "b" * 100
    assert limit_for_voice(text, 100, sentence_ratio=0.1) == text[:11] + " " + CONTINUATION_PROMPT
    assert limit_for_voice(text, 100).endswith(ELLIPSIS)


@pytest.mark.parametrize("max_chars", [10, 50, 73, 200])
def test_limit_output_is_bounded(max_chars):
    text = ("Sentence number one. Another clause follows here, and then more words " * 20).strip()
    result = limit_for_voice(text, max_chars)
    longest_suffix = len(ELLIPSIS + " " + CONTINUATION_PROMPT)
    assert len(result) <= max_chars + longest_suffix


def test_limit_rejects_non_positive_max_chars():
    with pytest.raises(ValueError):
        limit_for_voice("text", 0)
