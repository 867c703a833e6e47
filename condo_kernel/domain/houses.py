"""
House numbering (``condo_kernel.domain.houses``).

The condominium numbers its houses from ``min_number`` to ``max_number``
inclusive.  Every house number entering the system, whether typed by an
operator or inferred from a deposit, is checked against these bounds.
"""

from __future__ import annotations

from dataclasses import dataclass

from condo_kernel.exceptions import InvalidHouseNumberError

MIN_HOUSE_NUMBER = 1
MAX_HOUSE_NUMBER = 66


@dataclass(frozen=True)
class HouseNumberBounds:
    """Inclusive range of valid house numbers."""

    min_number: int = MIN_HOUSE_NUMBER
    max_number: int = MAX_HOUSE_NUMBER

    def __post_init__(self) -> None:
        if self.min_number < 1 or self.max_number < self.min_number:
            raise ValueError(
                f"Invalid house bounds {self.min_number}..{self.max_number}"
            )

    def contains(self, number: int) -> bool:
        return self.min_number <= number <= self.max_number

    def validate(self, number: int) -> int:
        """Return ``number`` or raise InvalidHouseNumberError."""
        if not self.contains(number):
            raise InvalidHouseNumberError(number, self.min_number, self.max_number)
        return number

    def range_label(self, number: int, width: int = 10) -> str:
        """Bucket label such as ``"11-20"``; the last bucket ends at max."""
        start = ((number - 1) // width) * width + 1
        end = min(start + width - 1, self.max_number)
        return f"{start}-{end}"

    def range_labels(self, width: int = 10) -> list[str]:
        labels = []
        start = self.min_number
        while start <= self.max_number:
            labels.append(self.range_label(start, width))
            start = ((start - 1) // width + 1) * width + 1
        return labels
