from dataclasses import dataclass
from typing import Optional

WORDS_PER_MINUTE = 200


@dataclass(frozen=True)
class WordCount:
    words: int
    minutes: int


def word_count(text: str) -> Optional[WordCount]:
    """Word count and reading time of raw document text; None when blank."""
    words = len(text.split())
    if not words:
        return None
    # round half up, at least one minute
    minutes = max(1, int(words / WORDS_PER_MINUTE + 0.5))
    return WordCount(words=words, minutes=minutes)
