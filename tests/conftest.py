import math
import queue
import typing

import mido
import pytest

import metronome.modes
import metronome.rhythm


class FakeClock:

	"""Manually advanced monotonic clock."""

	def __init__ (self, start: float = 0.0) -> None:

		self.now = start

	def __call__ (self) -> float:

		return self.now

	def advance (self, seconds: float) -> None:

		self.now += seconds


class FakeKeySource:

	"""Scripted stand-in for the keyboard queue.

	Each key is delivered at its scheduled time.  Waiting with a timeout
	advances the fake clock - to the next key if it arrives strictly before
	the deadline, otherwise to the deadline, raising ``queue.Empty``.  An
	indefinite wait with no keys left delivers ``None`` (end of input).
	"""

	def __init__ (self, clock: FakeClock, keys: typing.Sequence[typing.Tuple[float, int]] = ()) -> None:

		self.clock = clock
		self.pending: typing.List[typing.Tuple[float, int]] = sorted(keys, key=lambda k: k[0])
		self.timeouts: typing.List[typing.Optional[float]] = []

	def get (self, block: bool = True, timeout: typing.Optional[float] = None) -> typing.Optional[int]:

		self.timeouts.append(timeout)

		deadline = self.clock.now + timeout if timeout is not None else math.inf

		if self.pending and self.pending[0][0] < deadline:
			at, key = self.pending.pop(0)
			self.clock.now = max(self.clock.now, at)
			return key

		if timeout is None:
			return None

		self.clock.now = deadline
		raise queue.Empty


class RecordingBeeper:

	"""Beeper that remembers every beep instead of playing it."""

	def __init__ (self, clock: typing.Optional[FakeClock] = None) -> None:

		self.clock = clock
		self.beeps: typing.List[typing.Tuple[float, float, float]] = []
		self.times: typing.List[float] = []

	def beep (self, frequency: float, duration: float, volume: float) -> None:

		self.beeps.append((frequency, duration, volume))

		if self.clock is not None:
			self.times.append(self.clock.now)


class RecordingDisplay:

	"""Display stand-in that records what each mode asked to show."""

	def __init__ (self) -> None:

		self.calls: typing.List[typing.Tuple[typing.Any, ...]] = []

	def show_metronome (self, progress: float, tempo: float, volume: float, beats_per_measure: float) -> None:

		self.calls.append(("metronome", progress, tempo, volume, beats_per_measure))

	def show_tap (self, volume: float) -> None:

		self.calls.append(("tap", volume))

	def show_set (self, tempo: int, volume: float) -> None:

		self.calls.append(("set", tempo, volume))


@pytest.fixture
def clock () -> FakeClock:

	return FakeClock()


@pytest.fixture
def beeper (clock: FakeClock) -> RecordingBeeper:

	return RecordingBeeper(clock)


@pytest.fixture
def display () -> RecordingDisplay:

	return RecordingDisplay()


@pytest.fixture
def make_context (clock: FakeClock, beeper: RecordingBeeper, display: RecordingDisplay) -> typing.Callable[..., metronome.modes.Context]:

	"""Build a mode ``Context`` around the fakes, defaulting to four plain beats."""

	def _make (rhythm: typing.Optional[metronome.rhythm.RhythmSpec] = None) -> metronome.modes.Context:

		return metronome.modes.Context(
			rhythm  = rhythm if rhythm is not None else metronome.rhythm.subdivision(4, 1),
			beeper  = beeper,
			display = display,
			clock   = clock,
		)

	return _make


class FakeMidiOut:

	"""MIDI output stub that records what was sent."""

	def __init__ (self) -> None:

		self.sent: typing.List[mido.Message] = []
		self.closed = False

	def send (self, message: mido.Message) -> None:

		self.sent.append(message)

	def close (self) -> None:

		self.closed = True


def _fake_get_output_names () -> list[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


def _fake_open_output (name: str) -> FakeMidiOut:

	"""Return a fake MIDI output regardless of the name."""

	return FakeMidiOut()


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use a fake MIDI output."""

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", _fake_open_output)
