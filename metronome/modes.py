"""The three interactive modes the scheduler can drive.

- :class:`MetronomeMode` - plays the rhythm and responds to the key table.
- :class:`TapMode` - the user taps ``,`` in time; leaving sets the tempo.
- :class:`SetMode` - the user types a tempo as digits.

Exactly one mode is active.  A mode switches by returning
``switch_to(new_mode)``; the new mode is built from explicit arguments
(volume, tempo) plus the shared, immutable :class:`Context`, so no mutable
state passes between mode instances.
"""

import dataclasses
import logging
import time
import typing

import metronome.constants
import metronome.display
import metronome.keys
import metronome.rhythm
import metronome.scheduler
import metronome.sound

from metronome.scheduler import (
	EXIT_PROGRAM,
	KEEP_TIMER,
	NO_CHANGE,
	PAUSE_TIMER,
	RESUME_TIMER,
	TOGGLE_TIMER,
	UNSET_TIMER,
	Key,
	Step,
	advance_timer,
	set_timer,
	switch_to,
)


logger = logging.getLogger(__name__)


TAP_KEY = ord(",")


@dataclasses.dataclass(frozen=True)
class Context:

	"""Collaborators every mode shares for the life of the process."""

	rhythm:   metronome.rhythm.RhythmSpec
	beeper:   metronome.sound.BeeperLike
	display:  metronome.display.Display
	bindings: typing.Tuple[metronome.keys.Binding, ...] = metronome.keys.DEFAULT_BINDINGS
	clock:    metronome.scheduler.Clock = time.monotonic


def clamp_tempo (tempo: float) -> float:

	return min(metronome.constants.TEMPO_MAX, max(metronome.constants.TEMPO_MIN, tempo))


def clamp_volume (volume: float) -> float:

	return min(1.0, max(0.0, volume))


def tick_duration (rhythm: metronome.rhythm.RhythmSpec, tempo: float) -> float:

	"""Seconds between ticks: one beat is ``beat_len`` ticks."""

	return 60.0 / tempo / rhythm.beat_len


def play_event (event: metronome.rhythm.Event, beeper: metronome.sound.BeeperLike, volume: float) -> None:

	"""Sound one grid event.  Less emphasized beeps are lower subharmonics."""

	if isinstance(event, metronome.rhythm.Beep):
		beeper.beep(
			metronome.constants.BEEP_PITCH / (event.emphasis + 1),
			metronome.constants.BEEP_LENGTH,
			volume,
		)


class MetronomeMode:

	"""Plays the rhythm, one grid event per tick."""

	def __init__ (
		self,
		context: Context,
		volume: float = metronome.constants.DEFAULT_VOLUME,
		tempo: float = metronome.constants.DEFAULT_TEMPO,
	) -> None:

		self.context = context
		self.volume = clamp_volume(volume)
		self.tempo = clamp_tempo(tempo)

		#: Index of the next tick to play.
		self.tick_index = 0
		self.paused = False

		self._progress = 0.0
		self._recognizer = metronome.keys.KeyRecognizer(context.bindings)

	@property
	def tick_duration (self) -> float:

		return tick_duration(self.context.rhythm, self.tempo)

	def tick (self) -> Step:

		ticks = self.context.rhythm.ticks

		play_event(ticks[self.tick_index], self.context.beeper, self.volume)

		self._progress = self.tick_index / len(ticks)
		self._draw()

		self.tick_index = (self.tick_index + 1) % len(ticks)

		return NO_CHANGE, advance_timer(self.tick_duration)

	def keypress (self, key: Key, elapsed: float) -> Step:

		if key is None:
			return EXIT_PROGRAM, KEEP_TIMER

		match = self._recognizer.feed(key)

		if match.command is None:
			return NO_CHANGE, KEEP_TIMER

		return self._handle(match.command)

	def _handle (self, command: metronome.keys.Command) -> Step:

		# The timer is strict about resume/toggle, so track paused-ness here
		# and turn redundant Pause/Play presses into no-ops.
		if isinstance(command, metronome.keys.Pause):
			if self.paused:
				return NO_CHANGE, KEEP_TIMER
			self.paused = True
			return NO_CHANGE, PAUSE_TIMER

		if isinstance(command, metronome.keys.Play):
			if not self.paused:
				return NO_CHANGE, KEEP_TIMER
			self.paused = False
			return NO_CHANGE, RESUME_TIMER

		if isinstance(command, metronome.keys.Toggle):
			self.paused = not self.paused
			return NO_CHANGE, TOGGLE_TIMER

		if isinstance(command, metronome.keys.AdjustVolume):
			self.volume = clamp_volume(self.volume + command.delta)
			self._draw()
			return NO_CHANGE, KEEP_TIMER

		if isinstance(command, metronome.keys.AdjustTempo):
			self.tempo = clamp_tempo(self.tempo + command.delta)
			self._draw()
			return NO_CHANGE, KEEP_TIMER

		if isinstance(command, metronome.keys.Sync):
			self.tick_index = 0
			self.paused = False
			return NO_CHANGE, set_timer(0.0)

		if isinstance(command, metronome.keys.EnterTapMode):
			return switch_to(TapMode(self.context, self.volume, self.tempo)), KEEP_TIMER

		if isinstance(command, metronome.keys.EnterSetMode):
			return switch_to(SetMode(self.context, self.volume, self.tempo, command.first_digit)), KEEP_TIMER

		if isinstance(command, metronome.keys.Quit):
			return EXIT_PROGRAM, KEEP_TIMER

		raise ValueError(f"Unhandled command {command!r}")

	def _draw (self) -> None:

		self.context.display.show_metronome(
			self._progress,
			self.tempo,
			self.volume,
			self.context.rhythm.beats_per_measure,
		)


class TapMode:

	"""Tap tempo.

	Entering the mode counts as the first tap.  Each ``,`` is another tap;
	any other key returns to the metronome at the average tapped tempo, or
	at the previous tempo if there was only one tap.
	"""

	def __init__ (self, context: Context, volume: float, tempo: float) -> None:

		self.context = context
		self.volume = volume
		self.previous_tempo = tempo
		self.taps: typing.List[float] = [context.clock()]

	def tapped_tempo (self) -> typing.Optional[float]:

		"""Average BPM over the taps so far, or ``None`` with fewer than two."""

		if len(self.taps) < 2:
			return None

		# n taps span n - 1 intervals; only the first and last times matter.
		span = self.taps[-1] - self.taps[0]

		if span <= 0:
			return None

		return 60.0 * (len(self.taps) - 1) / span

	def tick (self) -> Step:

		self.context.display.show_tap(self.volume)

		return NO_CHANGE, UNSET_TIMER

	def keypress (self, key: Key, elapsed: float) -> Step:

		if key is None or key == metronome.keys.CTRL_C:
			return EXIT_PROGRAM, KEEP_TIMER

		if key == TAP_KEY:
			self.taps.append(self.context.clock())
			return NO_CHANGE, KEEP_TIMER

		return self._leave()

	def _leave (self) -> Step:

		tapped = self.tapped_tempo()
		tempo = clamp_tempo(tapped) if tapped is not None else self.previous_tempo

		logger.info(f"Tapped tempo: {tempo:.1f} BPM from {len(self.taps)} taps")

		return switch_to(MetronomeMode(self.context, self.volume, tempo)), KEEP_TIMER


class SetMode:

	"""Typed tempo.

	Digits accumulate into an integer tempo.  Any other key confirms it.
	When one more digit could only produce a tempo above the maximum, the
	value is confirmed automatically.  Confirming with nothing typed keeps
	the previous tempo.
	"""

	def __init__ (
		self,
		context: Context,
		volume: float,
		tempo: float,
		first_digit: typing.Optional[int] = None,
	) -> None:

		self.context = context
		self.volume = volume
		self.previous_tempo = tempo
		self.typed = first_digit if first_digit is not None else 0

	def tick (self) -> Step:

		self.context.display.show_set(self.typed, self.volume)

		return NO_CHANGE, UNSET_TIMER

	def keypress (self, key: Key, elapsed: float) -> Step:

		if key is None or key == metronome.keys.CTRL_C:
			return EXIT_PROGRAM, KEEP_TIMER

		if ord("0") <= key <= ord("9"):
			self.typed = self.typed * 10 + (key - ord("0"))

			if self.typed * 10 > metronome.constants.TEMPO_MAX:
				return self._leave()

			self.context.display.show_set(self.typed, self.volume)
			return NO_CHANGE, KEEP_TIMER

		return self._leave()

	def _leave (self) -> Step:

		tempo = clamp_tempo(self.typed) if self.typed else self.previous_tempo

		return switch_to(MetronomeMode(self.context, self.volume, tempo)), KEEP_TIMER
