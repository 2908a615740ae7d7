"""Tests for keyword-based post scoring."""

import pytest

from citybridge.services.content_moderation import DUPLICATE_REASON, ModerationResult, moderate_content


def test_clean_post_is_not_flagged():
    result = moderate_content("We shared dumplings at the lantern festival last night.", "Lantern festival")

    assert result == ModerationResult(flagged=False, reasons=[], score=0)


def test_single_spam_keyword_scores_below_threshold():
    result = moderate_content("Come to the casino by the river", "Evening walk")

    assert result.score == 2
    assert result.reasons == ["Contains 1 spam keyword(s)"]
    assert result.flagged is False


def test_spam_keywords_in_title_count():
    result = moderate_content("details inside", "Lottery winner: buy now, act now")

    assert result.reasons == ["Contains 3 spam keyword(s)"]
    assert result.score == 6
    assert result.flagged is True


def test_profanity_scores_three_per_word():
    result = moderate_content("this has badword1 and badword2 in it")

    assert result.reasons == ["Contains 2 inappropriate word(s)"]
    assert result.score == 6
    assert result.flagged is True


def test_excessive_links():
    content = " ".join(f"see https://example.com/{i} for the photos from our city tour" for i in range(4))

    result = moderate_content(content)

    assert result.reasons == ["Contains excessive links"]
    assert result.score == 3


@pytest.mark.parametrize(
    ("content", "flagged_caps"),
    [
        ("THIS IS THE BEST CITY EVER SEEN", True),
        ("SHORT CAPS", False),
        ("Mostly lowercase text with One Capital", False),
    ],
)
def test_capitalization_check(content, flagged_caps):
    result = moderate_content(content)

    assert ("Excessive capitalization" in result.reasons) is flagged_caps


def test_repetitive_content():
    result = moderate_content(" ".join(["spam"] * 12))

    assert "Highly repetitive content" in result.reasons


def test_short_content_with_link_adds_to_score():
    result = moderate_content("click https://x.io", "Offer")

    assert result.reasons == ["Suspiciously short content with links"]
    assert result.score == 2


def test_combined_findings_reach_threshold():
    result = moderate_content("Free money! https://x.io", "Deal")

    assert result.reasons == ["Contains 1 spam keyword(s)", "Suspiciously short content with links"]
    assert result.score == 4
    assert result.flagged is False

    result.add("Excessive capitalization", 2)
    assert result.flagged is True


def test_duplicate_marks_flagged_without_score():
    result = moderate_content("Dumplings and tea by the river")

    result.mark_duplicate()

    assert result.flagged is True
    assert result.score == 0
    assert result.reasons == [DUPLICATE_REASON]


def test_empty_content():
    assert moderate_content("").flagged is False
