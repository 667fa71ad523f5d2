"""Display helpers for conversation names."""

import re
from typing import Iterable

MINOR_WORDS = frozenset([
    "a", "an", "the", "and", "but", "or", "nor", "for", "yet", "so",
    "in", "on", "at", "to", "of", "with", "by",
])

_ACRONYM = re.compile(r"^[A-Z0-9]+$")
_UUID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_placeholder_name(name: str) -> bool:
    """True while a conversation still carries the random name given on creation."""
    return bool(_UUID.match(name))


def format_title(
    name: str,
    preserve_acronyms: bool = True,
    handle_hyphens: bool = True,
    extra_minor_words: Iterable[str] = (),
) -> str:
    """
    Title-case a stored conversation name for display.

    Minor words stay lowercase unless they open or close the title, acronyms
    are kept as written, each part of a hyphenated word is capitalized, and
    file-name residue (``.json``, underscores) is cleaned up.
    """
    if not name:
        return ""

    minor = MINOR_WORDS.union(w.lower() for w in extra_minor_words)

    def capitalize(word: str, force: bool) -> str:
        if preserve_acronyms and _ACRONYM.match(word):
            return word
        lower = word.lower()
        if force or lower not in minor:
            return lower[:1].upper() + lower[1:]
        return lower

    def capitalize_hyphenated(word: str, force: bool) -> str:
        if not handle_hyphens:
            return capitalize(word, force)
        return "-".join(
            capitalize(part, index == 0 and force)
            for index, part in enumerate(word.split("-"))
        )

    words = re.split(r"\s+", name)
    last = len(words) - 1
    titled = " ".join(
        capitalize_hyphenated(word, index == 0 or index == last)
        for index, word in enumerate(words)
    )
    return titled.replace(".json", "", 1).replace("_", " ")
