"""Rhythm grids: compile a rhythm description into a fixed sequence of ticks.

A measure is modelled as an evenly spaced grid of *ticks*.  Each tick holds
exactly one event - a :class:`Beep` with an emphasis level (``0`` is the
strongest) or a :class:`Rest`.  A :class:`RhythmSpec` pairs the grid with
``beat_len``, the number of ticks that make up one beat, which is what the
tempo is measured against.

Three ways to build one:

- :func:`subdivision` - beats per measure and subdivisions per beat.
- :func:`crossbeats` - simultaneous cross-rhythms, e.g. ``[3, 5, 17]``.
- :func:`parse` - a hand-written tick pattern in the rhythm mini-language.

The mini-language has one character per tick::

	0-9   beep with that emphasis
	.     rest
	!     beat boundary: beat_len = number of ticks so far

So ``"02!1212"`` is three beats of two ticks each, with a strong downbeat.

Example:
	```python
	spec = metronome.rhythm.subdivision(beats=3, subdiv=2)
	assert spec == metronome.rhythm.parse("02!1212")
	```
"""

import dataclasses
import math
import typing

import metronome.constants


class RhythmError (Exception):

	"""Base class for rhythm compilation failures."""


class RhythmParseError (RhythmError):

	"""A rhythm string or cross-rhythm descriptor could not be parsed.

	Attributes:
		token: The offending character or token, when there is one.
		position: Index of the offending character within the input.
	"""

	def __init__ (self, message: str, token: typing.Optional[str] = None, position: typing.Optional[int] = None) -> None:

		super().__init__(message)
		self.token = token
		self.position = position


class RhythmOverflowError (RhythmError):

	"""The rhythm would need an unreasonably large tick grid."""


@dataclasses.dataclass(frozen=True)
class Rest:

	"""Silence for one tick."""


@dataclasses.dataclass(frozen=True)
class Beep:

	"""A metronome beep; ``emphasis`` 0 is the loudest and highest."""

	emphasis: int


Event = typing.Union[Rest, Beep]

REST = Rest()


@dataclasses.dataclass(frozen=True)
class RhythmSpec:

	"""A compiled rhythm: one measure of ticks plus the length of a beat.

	Immutable, so modes can hand the same instance to each other freely.
	``beat_len`` need not divide ``len(ticks)`` - cross-rhythms may leave a
	partial beat at the end of the measure.
	"""

	ticks: typing.Tuple[Event, ...]
	beat_len: int

	def __post_init__ (self) -> None:

		object.__setattr__(self, "ticks", tuple(self.ticks))

		if not self.ticks:
			raise ValueError("A rhythm needs at least one tick")

		if self.beat_len <= 0:
			raise ValueError(f"beat_len must be positive, got {self.beat_len}")

	@property
	def beats_per_measure (self) -> float:

		"""Length of the measure in beats (may be fractional)."""

		return len(self.ticks) / self.beat_len

	def make_divisible (self, target: int) -> "RhythmSpec":

		"""Return an audibly identical rhythm whose beat splits into ``target`` ticks.

		Every tick is followed by ``factor - 1`` rests, where
		``factor = target // gcd(beat_len, target)``, and ``beat_len`` grows by
		the same factor.  Played at the same tempo the result sounds exactly
		like the original; it just has finer tick granularity.  The display
		uses this so its progress indicator can have a fixed width.

		Parameters:
			target: The tick count the new ``beat_len`` must be a multiple of.

		Raises:
			ValueError: If ``target`` is not positive.
			RhythmOverflowError: If the upsampled grid would be too large.
		"""

		if target <= 0:
			raise ValueError(f"target must be positive, got {target}")

		factor = target // math.gcd(self.beat_len, target)

		if factor == 1:
			return self

		_check_size(len(self.ticks) * factor)

		padding = (REST,) * (factor - 1)
		ticks: typing.List[Event] = []

		for tick in self.ticks:
			ticks.append(tick)
			ticks.extend(padding)

		return RhythmSpec(ticks=tuple(ticks), beat_len=self.beat_len * factor)


def _check_size (n_ticks: int) -> None:

	if n_ticks > metronome.constants.MAX_TICKS:
		raise RhythmOverflowError(
			f"Rhythm needs {n_ticks} ticks per measure; the limit is {metronome.constants.MAX_TICKS}"
		)


def _lcm (values: typing.Iterable[int]) -> int:

	"""Least common multiple, failing as soon as it passes the tick limit."""

	result = 1

	for value in values:
		result = result * value // math.gcd(result, value)
		_check_size(result)

	return result


def crossbeats (beats: typing.Sequence[int]) -> RhythmSpec:

	"""Build a measure from simultaneous cross-rhythms.

	``beats`` lists how many evenly spaced beeps each voice plays per measure,
	in order of decreasing emphasis.  An implicit single beat is prepended so
	the measure always opens with a ``Beep(0)`` downbeat.  The grid resolution
	is the least common multiple of all the counts, and where voices coincide
	the earlier (more emphasized) one wins.

	A beat is one beat of the *first* voice, so ``crossbeats([3, 2])`` is a
	three-beat measure with a two-against-three cross-rhythm over it.

	An empty list gives the degenerate one-tick measure ``[Beep(0)]``.

	Raises:
		ValueError: If any count is not positive.
		RhythmOverflowError: If the grid would exceed the tick limit.
	"""

	for count in beats:
		if count <= 0:
			raise ValueError(f"Beat counts must be positive, got {count}")

	voices = [1] + list(beats)
	n_ticks = _lcm(voices)
	spacings = [n_ticks // count for count in voices]

	ticks: typing.List[Event] = []

	for t in range(n_ticks):
		for emphasis, spacing in enumerate(spacings):
			if t % spacing == 0:
				ticks.append(Beep(emphasis))
				break
		else:
			ticks.append(REST)

	first = beats[0] if beats else 1

	return RhythmSpec(ticks=tuple(ticks), beat_len=n_ticks // first)


def subdivision (beats: int, subdiv: int) -> RhythmSpec:

	"""Build a measure of ``beats`` beats, each split into ``subdiv`` ticks."""

	if beats <= 0 or subdiv <= 0:
		raise ValueError(f"Beats and subdivisions must be positive, got {beats} and {subdiv}")

	return crossbeats([beats, beats * subdiv])


def parse (text: str) -> RhythmSpec:

	"""Parse a rhythm mini-language string.

	Raises:
		RhythmParseError: On an unknown character, a ``!`` before any tick, or
			a string with no ticks at all.
	"""

	ticks: typing.List[Event] = []
	beat_len = 1

	for position, char in enumerate(text):

		if char in "0123456789":
			ticks.append(Beep(int(char)))

		elif char == ".":
			ticks.append(REST)

		elif char == "!":
			if not ticks:
				raise RhythmParseError("Beat boundary '!' before the first tick", token=char, position=position)
			beat_len = len(ticks)

		else:
			raise RhythmParseError(
				f"Unexpected character {char!r} at position {position} in rhythm {text!r}",
				token = char,
				position = position,
			)

	if not ticks:
		raise RhythmParseError(f"Rhythm {text!r} contains no ticks")

	return RhythmSpec(ticks=tuple(ticks), beat_len=beat_len)


def format_rhythm (spec: RhythmSpec) -> str:

	"""Render ``spec`` in the mini-language, so that ``parse`` gives it back.

	Raises:
		ValueError: If an emphasis is above 9 or ``beat_len`` is longer than
			the measure, neither of which the mini-language can express.
	"""

	if spec.beat_len > len(spec.ticks):
		raise ValueError(f"beat_len {spec.beat_len} is longer than the {len(spec.ticks)}-tick measure")

	chars: typing.List[str] = []

	for index, tick in enumerate(spec.ticks):

		if isinstance(tick, Beep):
			if tick.emphasis > 9:
				raise ValueError(f"Emphasis {tick.emphasis} cannot be written as a single digit")
			chars.append(str(tick.emphasis))
		else:
			chars.append(".")

		if index + 1 == spec.beat_len and spec.beat_len != 1:
			chars.append("!")

	return "".join(chars)


def parse_crossbeats (descriptor: str) -> typing.List[int]:

	"""Parse a colon-separated cross-rhythm descriptor such as ``"3:5:17"``.

	Raises:
		RhythmParseError: If a token is not a positive integer.
	"""

	counts: typing.List[int] = []

	for token in descriptor.split(":"):

		try:
			count = int(token)
		except ValueError:
			raise RhythmParseError(f"Invalid beat count {token!r} in {descriptor!r}", token=token) from None

		if count <= 0:
			raise RhythmParseError(f"Beat count {token!r} in {descriptor!r} must be positive", token=token)

		counts.append(count)

	return counts
