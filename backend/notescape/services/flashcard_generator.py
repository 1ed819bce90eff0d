"""
Heuristic flashcard generation.

Splits plain text into sentences and turns the first few substantial ones
into "key concept" cards. No model is involved; AI-generated cards arrive
through bulk creation instead.
"""
from __future__ import annotations

import re

from notescape.models.flashcard import FlashcardContent

MAX_CARDS = 10
MIN_SENTENCE_CHARS = 30

_SENTENCE_END = re.compile(r"[.!?]")


def split_sentences(content: str, min_chars: int = MIN_SENTENCE_CHARS) -> list[str]:
    """Fragments between sentence terminators, stripped, longer than min_chars."""
    return [
        s.strip() for s in _SENTENCE_END.split(content) if len(s.strip()) > min_chars
    ]


def generate_key_concept_cards(
    title: str,
    content: str,
    topic: str | None = None,
    max_cards: int = MAX_CARDS,
    min_chars: int = MIN_SENTENCE_CHARS,
    source_id: str | None = None,
) -> list[FlashcardContent]:
    phrases = split_sentences(content, min_chars)[:max_cards]
    return [
        FlashcardContent(
            front=f'Key concept {i} from "{title}":',
            back=phrase,
            topic=topic or title,
            source_id=source_id,
        )
        for i, phrase in enumerate(phrases, start=1)
    ]
