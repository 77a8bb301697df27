"""Photo size variants offered by the CDN."""

from __future__ import annotations

from enum import Enum
from typing import Iterator


class PhotoSize(Enum):
    """
    Size suffixes, declared smallest to largest.

    The declaration order is the quality order; comparisons rely on it.
    """

    SQUARE_75 = "sq"
    THUMB_75 = "s"
    THUMB_100 = "t"
    THUMB_150 = "q"
    SMALL_240 = "m"
    SMALL_320 = "n"
    SMALL_400 = "w"
    MEDIUM_500 = ""
    MEDIUM_640 = "z"
    MEDIUM_800 = "c"
    LARGE_1024 = "b"
    LARGE_1600 = "h"
    LARGE_2048 = "k"
    XLARGE_3K = "3k"
    XLARGE_4K = "4k"
    XLARGE_4K_2_1 = "f"
    XLARGE_5K = "5k"
    XLARGE_6K = "6k"
    ORIGINAL = "o"

    @property
    def api_field(self) -> str | None:
        """Extras field carrying the URL of this variant; None for plain medium."""
        if self is PhotoSize.MEDIUM_500:
            return None
        return f"url_{self.value}"

    @property
    def rank(self) -> int:
        return _ORDER.index(self)

    def compare_with(self, other: "PhotoSize") -> int:
        """Return -1, 0 or 1 like a classic comparator."""
        return (self.rank > other.rank) - (self.rank < other.rank)

    def __lt__(self, other: "PhotoSize") -> bool:
        if not isinstance(other, PhotoSize):
            return NotImplemented
        return self.rank < other.rank

    @classmethod
    def descending(cls) -> Iterator["PhotoSize"]:
        return reversed(_ORDER)

    @classmethod
    def from_value(cls, value: str | None) -> "PhotoSize | None":
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


_ORDER = tuple(PhotoSize)
