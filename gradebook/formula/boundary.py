from __future__ import annotations

import decimal
import typing as t

from gradebook.errors import BoundaryGapError, ScoreOutOfRange
from gradebook.model import GradeBoundary


def check_boundaries(boundaries: t.Sequence[GradeBoundary], output_scale: decimal.Decimal) -> None:
    """Check that the boundaries tile [0, output_scale] exactly once.

    Boundaries are (min_score, letter) pairs in descending order. Each one
    covers [min_score, previous min_score), the first one covers up to and
    including output_scale. Tiling holds when minima strictly descend, the
    last minimum is 0, and the first minimum lies within the scale.
    """
    if not boundaries:
        raise BoundaryGapError("at least one grade boundary is required")

    previous: decimal.Decimal | None = None
    for boundary in boundaries:
        if previous is not None and boundary.min_score >= previous:
            if boundary.min_score == previous:
                raise BoundaryGapError(f"boundaries overlap at {boundary.min_score}")
            raise BoundaryGapError("boundaries must be ordered by min_score, descending")
        previous = boundary.min_score

    if boundaries[0].min_score > output_scale:
        raise BoundaryGapError(
            f"boundary {boundaries[0].letter!r} starts at {boundaries[0].min_score}, above the scale {output_scale}"
        )
    if boundaries[-1].min_score != 0:
        raise BoundaryGapError(f"scores below {boundaries[-1].min_score} are not covered by any boundary")


def map_to_letter(
    score: decimal.Decimal,
    boundaries: t.Sequence[GradeBoundary],
    output_scale: decimal.Decimal | None = None,
) -> str:
    """Letter for ``score``: the first boundary whose min_score <= score."""
    if score < 0 or (output_scale is not None and score > output_scale):
        raise ScoreOutOfRange(f"score {score} is outside [0, {output_scale if output_scale is not None else '*'}]")
    for boundary in boundaries:
        if boundary.min_score <= score:
            return boundary.letter
    raise ScoreOutOfRange(f"score {score} is below every grade boundary")
