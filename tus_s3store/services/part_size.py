from __future__ import annotations

from dataclasses import dataclass

from tus_s3store.common.config import Settings


def calculate_optimal_part_size(
    total_size: int | None,
    *,
    min_part_size: int,
    preferred_part_size: int,
    max_part_size: int,
    max_parts: int,
) -> int:
    """Pick the size of the parts an upload of ``total_size`` bytes is cut into.

    Uploads that fit in ``max_parts`` parts of the preferred size use the
    preferred size. Larger uploads are spread evenly over ``max_parts`` parts,
    rounding up when the division leaves a remainder. A result outside
    ``[min_part_size, max_part_size]`` falls back to the preferred size; the
    fallback is not re-checked against the bounds, so configurations must keep
    the preferred size within them (see ``Settings``).

    ``total_size`` of None or below zero means the length is not known yet.
    """
    if total_size is None or total_size < 0:
        return preferred_part_size

    if total_size <= preferred_part_size:
        part_size = preferred_part_size
    elif total_size <= preferred_part_size * max_parts:
        part_size = preferred_part_size
    elif total_size % max_parts == 0:
        part_size = total_size // max_parts
    else:
        # Round up, otherwise the remainder would need an extra part.
        part_size = total_size // max_parts + 1

    if part_size > max_part_size:
        part_size = preferred_part_size
    if part_size < min_part_size:
        part_size = preferred_part_size
    return part_size


@dataclass(frozen=True, slots=True)
class PartSizePolicy:
    min_part_size: int
    preferred_part_size: int
    max_part_size: int
    max_parts: int

    @classmethod
    def from_settings(cls, settings: Settings) -> "PartSizePolicy":
        return cls(
            min_part_size=settings.MIN_PART_SIZE_BYTES,
            preferred_part_size=settings.PREFERRED_PART_SIZE_BYTES,
            max_part_size=settings.MAX_PART_SIZE_BYTES,
            max_parts=settings.MAX_MULTIPART_PARTS,
        )

    def part_size_for(self, total_size: int | None) -> int:
        return calculate_optimal_part_size(
            total_size,
            min_part_size=self.min_part_size,
            preferred_part_size=self.preferred_part_size,
            max_part_size=self.max_part_size,
            max_parts=self.max_parts,
        )
