"""
Keyword-based content scoring for new posts.

Each check adds to a score and records a reason; a post whose total score
reaches FLAG_THRESHOLD is flagged for the moderator queue. Flagging never
blocks creation: every post still starts pending.
"""

import re
from dataclasses import dataclass, field

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

FLAG_THRESHOLD = 5

SPAM_KEYWORDS = (
    "viagra",
    "cialis",
    "casino",
    "lottery",
    "prize winner",
    "click here now",
    "act now",
    "limited time",
    "buy now",
    "make money fast",
    "work from home",
    "free money",
)

# Placeholder entries until a maintained word list is loaded from configuration
PROFANITY_WORDS = ("badword1", "badword2")

DUPLICATE_REASON = "Duplicate content detected"

_LINK_PATTERN = re.compile(r"https?://")
_UPPERCASE_PATTERN = re.compile(r"[A-Z]")


@dataclass
class ModerationResult:
    flagged: bool = False
    reasons: list[str] = field(default_factory=list)
    score: int = 0

    def add(self, reason: str, points: int) -> None:
        self.reasons.append(reason)
        self.score += points
        self.flagged = self.flagged or self.score >= FLAG_THRESHOLD

    def mark_duplicate(self) -> None:
        """Duplicates are flagged regardless of score."""
        self.reasons.append(DUPLICATE_REASON)
        self.flagged = True


def moderate_content(content: str, title: str | None = None) -> ModerationResult:
    """
    Score a post's text.

    Args:
        content: Post body; link, capitalization and repetition checks use only this
        title: Post title, included in the keyword checks

    Returns:
        ModerationResult with flagged, reasons and score
    """
    result = ModerationResult()
    full_text = f"{title or ''} {content}".lower()

    spam_count = sum(1 for keyword in SPAM_KEYWORDS if keyword in full_text)
    if spam_count:
        result.add(f"Contains {spam_count} spam keyword(s)", spam_count * 2)

    profanity_count = sum(1 for word in PROFANITY_WORDS if word in full_text)
    if profanity_count:
        result.add(f"Contains {profanity_count} inappropriate word(s)", profanity_count * 3)

    link_count = len(_LINK_PATTERN.findall(content))
    if link_count > 3:
        result.add("Contains excessive links", 3)

    if len(content) > 20:
        caps_ratio = len(_UPPERCASE_PATTERN.findall(content)) / len(content)
        if caps_ratio > 0.5:
            result.add("Excessive capitalization", 2)

    words = content.split()
    if len(words) > 10:
        unique_words = {word.lower() for word in words}
        if 1 - len(unique_words) / len(words) > 0.7:
            result.add("Highly repetitive content", 2)

    if len(content) < 50 and link_count > 0:
        result.add("Suspiciously short content with links", 2)

    if result.reasons:
        logger.debug("Content moderation findings", score=result.score, flagged=result.flagged, reasons=result.reasons)
    return result
