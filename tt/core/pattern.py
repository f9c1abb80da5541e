"""Time patterns: small templates that turn a duration into text.

A pattern is plain text with ``{{...}}`` fields, for example
``Took {{lh "hour"s}} {{lm "minute"s}} {{ts "second"s}}``. Inside a field, in order:

1. an optional mode character: ``l`` omits the field while it and every larger
   unit is zero, ``t`` omits it when any larger unit is non-zero, ``0`` omits
   it when it is zero. Without one the field is always shown.
2. the unit character, one of ``w``, ``d``, ``h``, ``m``, ``s``.
3. an optional space, which puts a space between the number and the label.
4. an optional ``"label"`` (it cannot contain ``"``). The default label is the
   unit character itself.
5. an optional ``s``, appended to the label whenever the number is not 1.

Malformed fields are kept as literal text and reported as :class:`ParseError`.
"""

import re
from dataclasses import dataclass
from enum import Enum

from tt.common.logger import log
from tt.core.units import UNITS, TimeUnit, split
from tt.util.misc import ms_to_s


class FieldMode(Enum):
    ALWAYS = ""
    OMIT_LEADING = "l"
    OMIT_TRAILING = "t"
    OMIT_ZERO = "0"


@dataclass(frozen=True)
class ParseError:
    index: int
    message: str


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class TimeField:
    unit: TimeUnit
    mode: FieldMode
    label: str
    space_before_label: bool = False
    plural_suffix: str | None = None

    # Trailing fields drop out of unit selection once a larger unit carries the value
    def participates(self, counts):
        if self.mode is FieldMode.OMIT_TRAILING:
            return not _any_larger_nonzero(self.unit, counts)
        return True

    def renders(self, counts):
        value = counts.get(self.unit)
        if value is None:
            return False
        if self.mode is FieldMode.OMIT_LEADING:
            return value != 0 or _any_larger_nonzero(self.unit, counts)
        if self.mode is FieldMode.OMIT_TRAILING:
            return not _any_larger_nonzero(self.unit, counts)
        if self.mode is FieldMode.OMIT_ZERO:
            return value != 0
        return True

    def format(self, value):
        text = str(value)
        if self.space_before_label:
            text += " "
        text += self.label
        if self.plural_suffix is not None and value != 1:
            text += self.plural_suffix
        return text


def _any_larger_nonzero(unit, counts):
    return any(counts.get(larger, 0) != 0 for larger in unit.larger_units())


_UNIT_BY_LETTER = {unit.letter: unit for unit in UNITS}
_MODE_BY_CHAR = {mode.value: mode for mode in FieldMode if mode.value}
_SPACES = re.compile(" {2,}")


class TimePattern:
    """A compiled time pattern. Immutable; build one with :func:`compile_pattern`."""

    __slots__ = ("_source", "_tokens", "_units")

    def __init__(self, source, tokens):
        self._source = source
        self._tokens = tuple(tokens)
        self._units = frozenset(t.unit for t in self._tokens if isinstance(t, TimeField))

    @property
    def source(self):
        return self._source

    @property
    def tokens(self):
        return self._tokens

    @property
    def units(self):
        return self._units

    def __eq__(self, other):
        if not isinstance(other, TimePattern):
            return NotImplemented
        return self._source == other._source

    def __hash__(self):
        return hash(self._source)

    def __repr__(self):
        return f"TimePattern({self._source!r})"

    @staticmethod
    def parse(source):
        pattern, errors = compile_pattern(source)
        if errors:
            log.warning(f"Pattern '{source}' had {len(errors)} ignored error(s)")
        return pattern

    def render(self, total_seconds):
        total_seconds = max(0, int(total_seconds))
        counts = split(total_seconds, self._units)

        # Re-split without the units whose fields will be dropped, so rounding lands on a unit that is actually shown
        participating = {t.unit for t in self._tokens if isinstance(t, TimeField) and t.participates(counts)}
        if len(participating) < len(self._units):
            counts = split(total_seconds, participating)

        parts = []
        for token in self._tokens:
            if isinstance(token, Literal):
                parts.append(token.text)
            elif token.renders(counts):
                parts.append(token.format(counts[token.unit]))

        return _SPACES.sub(" ", "".join(parts)).strip(" ")

    seconds_to_string = render

    def milliseconds_to_string(self, ms):
        return self.render(ms_to_s(ms))


def _expect(source, pos, required):
    # Returns the position after `required` if it is found at `pos`, otherwise None
    if source.startswith(required, pos):
        return pos + len(required)
    return None


def _scan_field(source, pos, errors):
    """Scan a ``{{...}}`` field starting at ``pos``.

    Returns ``(end, field)``, or ``(pos, None)`` when there is no valid field
    here; errors found along the way are appended to ``errors``.
    """
    start = pos
    cur = _expect(source, pos, "{{")
    if cur is None:
        return start, None

    mode = FieldMode.ALWAYS
    if cur < len(source) and source[cur] in _MODE_BY_CHAR:
        mode = _MODE_BY_CHAR[source[cur]]
        cur += 1

    unit = _UNIT_BY_LETTER.get(source[cur]) if cur < len(source) else None
    if unit is None:
        if mode is not FieldMode.ALWAYS:
            errors.append(ParseError(cur, "Time unit character expected (one of 'w', 'd', 'h', 'm' or 's')"))
        else:
            errors.append(ParseError(cur, "Time unit or mode character expected (time unit is one of 'w', 'd', 'h', "
                                          "'m' or 's' and mode is one of 'l', 't' or '0')"))
        return start, None
    cur += 1

    after_space = _expect(source, cur, " ")
    space_before_label = after_space is not None
    if space_before_label:
        cur = after_space

    label = unit.letter
    if _expect(source, cur, '"') is not None:
        closing = source.find('"', cur + 1)
        if closing < 0:
            errors.append(ParseError(cur, "Unit description text string is not closed"))
            return start, None
        label = source[cur + 1:closing]
        cur = closing + 1

    after_plural = _expect(source, cur, "s")
    plural_suffix = "s" if after_plural is not None else None
    if after_plural is not None:
        cur = after_plural

    end = _expect(source, cur, "}}")
    if end is None:
        errors.append(ParseError(cur, "Closing '}}' expected"))
        return start, None

    return end, TimeField(unit, mode, label, space_before_label, plural_suffix)


def compile_pattern(source):
    """Compile ``source`` into a :class:`TimePattern`. Never raises.

    Returns ``(pattern, errors)``. A field that fails to parse contributes its
    first character as literal text and scanning resumes right after it.
    """
    errors = []
    tokens = []
    literal = []
    pos = 0
    while pos < len(source):
        end, field = _scan_field(source, pos, errors)
        if field is None:
            literal.append(source[pos])
            pos += 1
            continue
        if literal:
            tokens.append(Literal("".join(literal)))
            literal = []
        tokens.append(field)
        pos = end

    if literal:
        tokens.append(Literal("".join(literal)))

    return TimePattern(source, tokens), errors


NOTIFICATION_TIME_FORMATTING = TimePattern.parse(
    '{{lw "week"s}} {{ld "day"s}} {{lh "hour"s}} {{lm "minute"s}} {{ts "second"s}}')
