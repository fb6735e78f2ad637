"""Text normalization used for keyword matching."""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import List, Tuple

from .errors import NormalizationError


@dataclass(frozen=True)
class NormalizedText:
    """Matching form of a string plus a map back to the original.

    ``offsets[i]`` is the index in the original string of normalized
    character ``i``; a trailing entry holds the original length so that
    exclusive end positions can be mapped as well.
    """

    text: str
    offsets: Tuple[int, ...]

    def original_span(self, start: int, end: int) -> Tuple[int, int] | None:
        """Map a normalized ``[start, end)`` span back to the original text.

        Returns ``None`` when either edge falls inside a character that
        normalization expanded into several characters.
        """

        if start < 0 or end > len(self.text) or start >= end:
            return None
        if start > 0 and self.offsets[start - 1] == self.offsets[start]:
            return None
        if end < len(self.text) and self.offsets[end - 1] == self.offsets[end]:
            return None
        return self.offsets[start], self.offsets[end]


def normalize(text: str, fold_accents: bool = False) -> NormalizedText:
    """Return the case-folded (and optionally accent-folded) form of ``text``."""

    chars: List[str] = []
    offsets: List[int] = []
    for index, char in enumerate(text):
        if "\ud800" <= char <= "\udfff":
            raise NormalizationError(f"invalid character U+{ord(char):04X} at offset {index}")
        piece = char
        if fold_accents:
            decomposed = unicodedata.normalize("NFKD", char)
            piece = "".join(part for part in decomposed if not unicodedata.combining(part))
        for folded in piece.casefold():
            chars.append(folded)
            offsets.append(index)
    offsets.append(len(text))
    return NormalizedText(text="".join(chars), offsets=tuple(offsets))


def normalize_keyword(keyword: str, fold_accents: bool = False) -> str:
    """Return the matching form of a configured keyword."""

    return normalize(" ".join(keyword.split()), fold_accents).text


def is_word_char(char: str) -> bool:
    """True for letters, digits, underscore and combining marks."""

    return char.isalnum() or char == "_" or bool(unicodedata.combining(char))
