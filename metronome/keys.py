"""Key-sequence recognition: raw input bytes to logical commands.

Terminals deliver arrow keys as multi-byte escape sequences (``ESC [ A``
and friends), one byte at a time.  :class:`KeyRecognizer` buffers bytes
until they either form a complete binding, in which case the command is
emitted, or can no longer become one, in which case the buffer is dropped.

Example::

	recognizer = KeyRecognizer()

	for byte in b"\\x1b[D":
		match = recognizer.feed(byte)

	assert match.command == AdjustTempo(-metronome.constants.TEMPO_ADJUST)
"""

import dataclasses
import logging
import typing

import metronome.constants


logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Pause:

	"""Pause if playing; do nothing if already paused."""


@dataclasses.dataclass(frozen=True)
class Play:

	"""Resume if paused; do nothing if already playing."""


@dataclasses.dataclass(frozen=True)
class Toggle:

	"""Switch between playing and paused."""


@dataclasses.dataclass(frozen=True)
class AdjustVolume:

	"""Change the volume (0.0 to 1.0 scale) by ``delta``."""

	delta: float


@dataclasses.dataclass(frozen=True)
class AdjustTempo:

	"""Change the tempo by ``delta`` beats per minute."""

	delta: float


@dataclasses.dataclass(frozen=True)
class Sync:

	"""Restart the measure so a downbeat lands right now."""


@dataclasses.dataclass(frozen=True)
class EnterTapMode:

	"""Switch to tap-tempo mode."""


@dataclasses.dataclass(frozen=True)
class EnterSetMode:

	"""Switch to typed-tempo mode, optionally with the first digit already entered."""

	first_digit: typing.Optional[int] = None


@dataclasses.dataclass(frozen=True)
class Quit:

	"""Exit the program."""


Command = typing.Union[
	Pause, Play, Toggle, AdjustVolume, AdjustTempo, Sync, EnterTapMode, EnterSetMode, Quit
]


@dataclasses.dataclass(frozen=True)
class Binding:

	"""A byte sequence and the command it produces."""

	sequence: bytes
	command:  Command


CTRL_C = 0x03
ESC = 0x1B

INVALID = "invalid"
START = "start"
COMPLETE = "complete"


@dataclasses.dataclass(frozen=True)
class Match:

	"""Result of classifying the bytes received so far.

	``state`` is one of :data:`INVALID`, :data:`START` or :data:`COMPLETE`;
	``command`` is set only when ``state`` is :data:`COMPLETE`.
	"""

	state:   str
	command: typing.Optional[Command] = None


def _build_default_bindings () -> typing.Tuple[Binding, ...]:

	volume = metronome.constants.VOLUME_ADJUST
	tempo = metronome.constants.TEMPO_ADJUST

	bindings = [
		Binding(b"p", Pause()),
		Binding(b"P", Play()),
		Binding(b" ", Toggle()),
		Binding(b".", Sync()),
		Binding(b",", EnterTapMode()),
		Binding(b"'", EnterSetMode()),
		Binding(b"q", Quit()),
		Binding(bytes([CTRL_C]), Quit()),

		# Arrow keys: up, down, right, left
		Binding(b"\x1b[A", AdjustVolume(volume)),
		Binding(b"\x1b[B", AdjustVolume(-volume)),
		Binding(b"\x1b[C", AdjustTempo(tempo)),
		Binding(b"\x1b[D", AdjustTempo(-tempo)),

		# vi
		Binding(b"k", AdjustVolume(volume)),
		Binding(b"j", AdjustVolume(-volume)),
		Binding(b"l", AdjustTempo(tempo)),
		Binding(b"h", AdjustTempo(-tempo)),

		# emacs: C-p, C-n, C-f, C-b
		Binding(b"\x10", AdjustVolume(volume)),
		Binding(b"\x0e", AdjustVolume(-volume)),
		Binding(b"\x06", AdjustTempo(tempo)),
		Binding(b"\x02", AdjustTempo(-tempo)),
	]

	# Typing a number goes straight into set mode with that digit.
	for digit in range(10):
		bindings.append(Binding(str(digit).encode("ascii"), EnterSetMode(digit)))

	return tuple(bindings)


#: The process-wide key table.  Built once at import, never mutated.
DEFAULT_BINDINGS: typing.Tuple[Binding, ...] = _build_default_bindings()


def validate_bindings (bindings: typing.Sequence[Binding]) -> None:

	"""Reject binding tables with empty or duplicate byte sequences."""

	seen: typing.Set[bytes] = set()

	for binding in bindings:

		if not binding.sequence:
			raise ValueError(f"Binding for {binding.command!r} has an empty key sequence")

		if binding.sequence in seen:
			raise ValueError(f"Key sequence {binding.sequence!r} is bound more than once")

		seen.add(binding.sequence)


def classify (partial: bytes, bindings: typing.Sequence[Binding]) -> Match:

	"""Classify ``partial`` against the binding table.

	An exact match resolves immediately, even if some longer binding also
	starts with ``partial``.
	"""

	is_prefix = False

	for binding in bindings:

		if binding.sequence == partial:
			return Match(COMPLETE, binding.command)

		if binding.sequence.startswith(partial):
			is_prefix = True

	return Match(START) if is_prefix else Match(INVALID)


class KeyRecognizer:

	"""Incremental matcher from input bytes to :data:`Command` values.

	Holds only the partial-match buffer; the binding table is shared and
	read-only.
	"""

	def __init__ (self, bindings: typing.Sequence[Binding] = DEFAULT_BINDINGS) -> None:

		validate_bindings(bindings)

		self._bindings = bindings
		self._partial = bytearray()

	@property
	def partial (self) -> bytes:

		"""Bytes received since the last complete or invalid match."""

		return bytes(self._partial)

	def feed (self, byte: int) -> Match:

		"""Add one byte to the buffer and classify the result.

		The buffer is cleared after a complete match and after a dead end.
		Dead ends are logged, not raised - stray keys are not errors.
		"""

		self._partial.append(byte)
		match = classify(bytes(self._partial), self._bindings)

		if match.state == INVALID:
			logger.debug(f"Unrecognised key sequence {bytes(self._partial)!r}")
			self._partial.clear()

		elif match.state == COMPLETE:
			self._partial.clear()

		return match
