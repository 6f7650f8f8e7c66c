"""
Tag helpers — canonical user tags, tokenization and Title-Case rendering.

User tags are the deduplicated union of the request's hobbies and
personality traits. They are the ground truth for overlap scoring and batch
coverage, so every downstream component works from this one list.
"""

import re
from typing import Any, Iterable

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_WORD_SPLIT_RE = re.compile(r"[\s_]+")

# Too generic to count as evidence on their own
STOPWORDS = frozenset({
    "a", "an", "and", "the", "of", "for", "with", "to", "in", "on", "or",
    "set", "kit", "box", "gift", "gifts", "your", "my", "by",
})


def normalize_user_tags(
    hobbies: Iterable[Any] | None,
    personalities: Iterable[Any] | None,
) -> list[str]:
    """
    Build the ordered, deduplicated list of user tags.

    Non-string values and blank strings are skipped. The first occurrence of
    an exact trimmed string wins, so ordering is stable.
    """
    seen: set[str] = set()
    tags: list[str] = []
    for source in (hobbies or [], personalities or []):
        for value in source:
            if not isinstance(value, str):
                continue
            tag = value.strip()
            if tag and tag not in seen:
                seen.add(tag)
                tags.append(tag)
    return tags


def tokenize(text: str) -> list[str]:
    """Lowercase alphanumeric tokens of ``text``."""
    return _TOKEN_RE.findall(text.lower())


def meaningful_tokens(text: str) -> list[str]:
    """Tokens of ``text`` without stopwords or one/two-letter fragments."""
    return [t for t in tokenize(text) if len(t) > 2 and t not in STOPWORDS]


def _capitalize(word: str) -> str:
    if len(word) > 1 and word.isupper():
        word = word.lower()
    return word[:1].upper() + word[1:]


def title_case(tag: str) -> str:
    """
    Capitalize every whitespace/underscore/hyphen-delimited word.

    Underscores become spaces and hyphens are kept. All-caps words are
    lowered first ("GARDENING" -> "Gardening"); otherwise the rest of each
    word is left alone so camel-cased tags like "TeaLover" survive.
    """
    words = [w for w in _WORD_SPLIT_RE.split(tag.strip()) if w]
    rendered = []
    for word in words:
        parts = word.split("-")
        rendered.append("-".join(_capitalize(p) for p in parts))
    return " ".join(rendered)


def tag_key(tag: str) -> str:
    """Case-insensitive comparison key for a tag."""
    return " ".join(tokenize(tag)) or tag.strip().lower()
