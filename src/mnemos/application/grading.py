"""
Quality grading and boundary coercion.

`grade` maps a self-report plus the attempt number to an SM-2 quality score.
`coerce_outcome` and `coerce_quality` are the only places loosely typed input
(strings from the CLI or HTTP layer) is turned into domain values.
"""

import logging
from typing import Any

from mnemos.domain.constants import MAX_QUALITY, MIN_QUALITY
from mnemos.domain.errors import InvalidInputError
from mnemos.domain.models import MasteryLevel, Outcome

logger = logging.getLogger(__name__)

# (first attempt, repeat attempts)
_QUALITY_TABLE: dict[Outcome, tuple[int, int]] = {
    Outcome.KNOW: (5, 4),
    Outcome.FUZZY: (3, 2),
    Outcome.FORGET: (1, 1),
}

# Legacy mastery labels reported by older clients
_MASTERY_ALIASES: dict[str, Outcome] = {
    MasteryLevel.REMEMBERED.value: Outcome.KNOW,
    MasteryLevel.FUZZY.value: Outcome.FUZZY,
    MasteryLevel.UNFAMILIAR.value: Outcome.FORGET,
}


def grade(outcome: Outcome, attempts_on_this_item: int) -> int:
    """
    Map a self-report to a quality score in 1..5.

    Args:
        outcome: KNOW, FUZZY or FORGET.
        attempts_on_this_item: 1-indexed presentation count of this item in
            the current round.

    Raises:
        InvalidInputError: outcome is not an Outcome or attempts < 1.
    """
    if not isinstance(outcome, Outcome):
        raise InvalidInputError(f"Unrecognized outcome: {outcome!r}")
    if isinstance(attempts_on_this_item, bool) or not isinstance(attempts_on_this_item, int):
        raise InvalidInputError(f"attempts must be an int, got {attempts_on_this_item!r}")
    if attempts_on_this_item < 1:
        raise InvalidInputError(f"attempts is 1-indexed, got {attempts_on_this_item}")

    first, repeat = _QUALITY_TABLE[outcome]
    return first if attempts_on_this_item == 1 else repeat


def coerce_outcome(value: Any) -> Outcome:
    """
    Turn boundary input into an Outcome.

    Accepts an Outcome, an outcome name in any case ("know", "KNOW"), or a
    legacy mastery label ("remembered", "fuzzy", "unfamiliar").
    """
    if isinstance(value, Outcome):
        return value
    if isinstance(value, str):
        key = value.strip().lower()
        try:
            return Outcome(key)
        except ValueError:
            pass
        if key in _MASTERY_ALIASES:
            return _MASTERY_ALIASES[key]
    raise InvalidInputError(f"Unrecognized outcome: {value!r}")


def coerce_quality(value: Any, *, clamp_legacy: bool = False) -> int:
    """
    Turn a raw quality (int or numeric string) into an int in 1..5.

    Out-of-range values are rejected unless clamp_legacy is set, in which case
    they are clamped the way older clients expect (0 -> 1, 6 -> 5).

    Raises:
        InvalidInputError: booleans, non-integral or non-numeric input, and
            out-of-range values when clamping is off.
    """
    if isinstance(value, bool):
        raise InvalidInputError(f"Quality must be numeric, got {value!r}")

    if isinstance(value, str):
        text = value.strip()
        try:
            number = float(text)
        except ValueError:
            raise InvalidInputError(f"Quality must be numeric, got {value!r}") from None
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        raise InvalidInputError(f"Quality must be numeric, got {value!r}")

    if number != number or not number.is_integer():  # NaN or fractional
        raise InvalidInputError(f"Quality must be a whole number, got {value!r}")

    quality = int(number)
    if MIN_QUALITY <= quality <= MAX_QUALITY:
        return quality

    if not clamp_legacy:
        raise InvalidInputError(
            f"Quality {quality} is outside {MIN_QUALITY}..{MAX_QUALITY}"
        )

    clamped = max(MIN_QUALITY, min(MAX_QUALITY, quality))
    logger.debug(f"Clamped legacy quality {quality} -> {clamped}")
    return clamped
