"""Time units and splitting of a duration into per-unit counts."""

from enum import Enum


class TimeUnit(Enum):
    """Units a duration can be shown in, declared from largest to smallest.

    The value is ``(letter, seconds)``; the letter doubles as the default label
    and as the unit character in time patterns.
    """

    WEEK = ("w", 60 * 60 * 24 * 7)
    DAY = ("d", 60 * 60 * 24)
    HOUR = ("h", 60 * 60)
    MINUTE = ("m", 60)
    SECOND = ("s", 1)

    @property
    def letter(self):
        return self.value[0]

    @property
    def seconds(self):
        return self.value[1]

    def of(self, smaller):
        """How many ``smaller`` units make up one of this unit."""
        return self.seconds // smaller.seconds

    def larger_units(self):
        """Units larger than this one, largest first."""
        return UNITS[:UNITS.index(self)]


UNITS = tuple(TimeUnit)


def split(total_seconds, selected_units):
    """Split ``total_seconds`` into counts of the selected units.

    Units are filled from the largest down. If seconds are not selected, the
    leftover rounds the smallest selected unit up when it is more than half
    of that unit (an exact half stays down), and an overgrown unit is carried into the next larger selected
    unit, so 59m 59s in (HOUR, MINUTE) becomes 1h 0m rather than 0h 60m.

        >>> split(123, {TimeUnit.MINUTE})
        {<TimeUnit.MINUTE: ('m', 60)>: 2}

    The result is ordered from the largest unit to the smallest.
    """
    remaining = max(0, int(total_seconds))
    result = {}
    last_unit = None
    for unit in UNITS:
        if unit not in selected_units:
            continue
        result[unit] = remaining // unit.seconds
        remaining %= unit.seconds
        last_unit = unit

    if remaining > 0 and last_unit is not None and remaining * 2 > last_unit.seconds:
        result[last_unit] += 1
        _redistribute(result, last_unit)

    return result


def _redistribute(counts, modified):
    # Only the nearest larger unit that is present can absorb the overflow
    value = counts[modified]
    for larger in reversed(modified.larger_units()):
        if larger not in counts:
            continue
        per_larger = larger.of(modified)
        if value >= per_larger:
            counts[modified] = value - per_larger
            counts[larger] += 1
            _redistribute(counts, larger)
        return
