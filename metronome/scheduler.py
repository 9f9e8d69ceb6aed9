"""The tick/timer core: a single-threaded loop driving the active mode.

Each iteration waits on the keyboard queue for at most the time left until
the next scheduled tick.  A byte that arrives first goes to the mode's
``keypress`` handler; if the wait times out, the mode's ``tick`` handler
runs instead.  Either handler answers with a :class:`Transition` (stay,
switch to another mode, or exit) and a :class:`TimerCommand` telling the
scheduler when to wake next.

Handlers never overlap.  The loop owns the timer and the active mode, so
nothing in the core needs a lock; the only other thread is the keyboard
reader, and it talks to the loop through a ``queue.Queue``.

A ``None`` from the queue means end of input.  Modes treat it exactly like
a quit request.
"""

import dataclasses
import logging
import queue
import time
import typing


logger = logging.getLogger(__name__)


Clock = typing.Callable[[], float]
Key = typing.Optional[int]


class InvalidTimerState (Exception):

	"""A mode asked the timer for something its current state does not allow.

	This is a bug in the mode's transition table, not a user error, so it is
	never caught.
	"""


# Timer states
UNSCHEDULED = "unscheduled"
SCHEDULED = "scheduled"
PAUSED = "paused"


@dataclasses.dataclass(frozen=True)
class TimerState:

	"""When the active mode should next be ticked.

	- ``unscheduled``: wait for input indefinitely.
	- ``scheduled``: tick at ``deadline`` (clock seconds) unless input comes first.
	- ``paused``: suspended with ``remaining`` seconds left on the clock.
	"""

	kind:      str
	deadline:  typing.Optional[float] = None
	remaining: typing.Optional[float] = None


# Timer actions
KEEP = "none"
SET = "set"
ADVANCE = "advance"
UNSET = "unset"
PAUSE = "pause"
RESUME = "resume"
TOGGLE = "toggle"


@dataclasses.dataclass(frozen=True)
class TimerCommand:

	"""What a handler wants done to the timer after it returns."""

	action:   str
	duration: float = 0.0


KEEP_TIMER = TimerCommand(KEEP)
UNSET_TIMER = TimerCommand(UNSET)
PAUSE_TIMER = TimerCommand(PAUSE)
RESUME_TIMER = TimerCommand(RESUME)
TOGGLE_TIMER = TimerCommand(TOGGLE)


def set_timer (duration: float) -> TimerCommand:

	"""Tick ``duration`` seconds from now."""

	return TimerCommand(SET, duration)


def advance_timer (duration: float) -> TimerCommand:

	"""Tick ``duration`` seconds after the deadline that just fired.

	Use this for steady periodic ticking: measuring from the previous
	deadline rather than from "now" keeps handler latency from accumulating
	into tempo drift.
	"""

	return TimerCommand(ADVANCE, duration)


# Transition kinds
STAY = "no_change"
SWITCH = "to"
EXIT = "exit"


@dataclasses.dataclass(frozen=True)
class Transition:

	"""Which mode should be active after a handler returns."""

	kind: str
	mode: typing.Optional["ModeLike"] = None


NO_CHANGE = Transition(STAY)
EXIT_PROGRAM = Transition(EXIT)


def switch_to (mode: "ModeLike") -> Transition:

	"""Replace the active mode with ``mode``."""

	return Transition(SWITCH, mode)


Step = typing.Tuple[Transition, TimerCommand]


@typing.runtime_checkable
class ModeLike (typing.Protocol):

	"""Protocol for the states the scheduler drives."""

	def tick (self) -> Step:

		"""Handle a timer wake-up."""

		...

	def keypress (self, key: Key, elapsed: float) -> Step:

		"""Handle one input byte (``None`` at end of input).

		``elapsed`` is the time in seconds between the start of the loop
		iteration and the delivery of the byte.
		"""

		...


class InputSource (typing.Protocol):

	"""Anything with ``queue.Queue.get`` semantics."""

	def get (self, block: bool = True, timeout: typing.Optional[float] = None) -> Key:

		...


class Timer:

	"""The scheduler's wake-up timer.

	Pausing records how long was left; resuming schedules that much time
	from the moment of resumption, so a paused measure picks up in phase.

	``resume`` on a timer that is not paused and ``toggle`` on one that is
	not scheduled raise :class:`InvalidTimerState`.  ``pause`` on a timer
	that is not running does nothing.
	"""

	def __init__ (self, clock: Clock = time.monotonic) -> None:

		self._clock = clock
		self.state = TimerState(UNSCHEDULED)

		# Deadline of the tick that fired most recently, consumed by ADVANCE.
		self._fired_deadline: typing.Optional[float] = None

	def timeout (self, now: float) -> typing.Optional[float]:

		"""Seconds to wait from ``now``, ``0.0`` if overdue, ``None`` for indefinitely."""

		if self.state.kind == SCHEDULED:
			return max(0.0, self.state.deadline - now)

		return None

	def fire (self) -> None:

		"""Record that the scheduled tick has been delivered."""

		if self.state.kind == SCHEDULED:
			self._fired_deadline = self.state.deadline

		self.state = TimerState(UNSCHEDULED)

	def set (self, duration: float) -> None:

		self._fired_deadline = None
		self.state = TimerState(SCHEDULED, deadline=self._clock() + duration)

	def advance (self, duration: float) -> None:

		now = self._clock()
		base = self._fired_deadline if self._fired_deadline is not None else now
		deadline = base + duration

		if deadline < now:
			# More than a whole tick behind (e.g. the process was suspended);
			# resynchronise rather than firing a burst of catch-up ticks.
			logger.debug(f"Timer {now - deadline:.3f}s behind schedule, resynchronising")
			deadline = now

		self._fired_deadline = None
		self.state = TimerState(SCHEDULED, deadline=deadline)

	def unset (self) -> None:

		self._fired_deadline = None
		self.state = TimerState(UNSCHEDULED)

	def pause (self) -> None:

		if self.state.kind != SCHEDULED:
			return

		remaining = max(0.0, self.state.deadline - self._clock())
		self.state = TimerState(PAUSED, remaining=remaining)

	def resume (self) -> None:

		if self.state.kind != PAUSED:
			raise InvalidTimerState(f"Cannot resume a timer that is {self.state.kind}")

		self.state = TimerState(SCHEDULED, deadline=self._clock() + self.state.remaining)

	def toggle (self) -> None:

		if self.state.kind == PAUSED:
			self.resume()
		elif self.state.kind == SCHEDULED:
			self.pause()
		else:
			raise InvalidTimerState("Cannot toggle a timer that was never scheduled")

	def apply (self, command: TimerCommand, strict: bool = True) -> None:

		"""Carry out a handler's timer command.

		With ``strict=False`` commands the current state does not allow are
		skipped instead of raising; the scheduler uses this on exit, where the
		timer no longer matters.
		"""

		action = command.action

		if not strict:
			if (action == RESUME and self.state.kind != PAUSED) or (action == TOGGLE and self.state.kind == UNSCHEDULED):
				logger.debug(f"Ignoring timer {action} on exit")
				return

		if action == KEEP:
			return
		elif action == SET:
			self.set(command.duration)
		elif action == ADVANCE:
			self.advance(command.duration)
		elif action == UNSET:
			self.unset()
		elif action == PAUSE:
			self.pause()
		elif action == RESUME:
			self.resume()
		elif action == TOGGLE:
			self.toggle()
		else:
			raise ValueError(f"Unknown timer action {action!r}")


class Scheduler:

	"""Runs the cooperative loop: wait, dispatch, apply.

	Parameters:
		source: Queue the keyboard reader puts bytes on; ``None`` marks end
			of input.
		clock: Monotonic clock in seconds.  Injectable for tests.

	Example:
		```python
		keys = queue.Queue()
		reader = metronome.keystroke.KeyboardReader(keys)
		reader.start()
		metronome.scheduler.Scheduler(keys).run(initial_mode)
		```
	"""

	def __init__ (self, source: InputSource, clock: Clock = time.monotonic) -> None:

		self._source = source
		self._clock = clock
		self.timer = Timer(clock)
		self.mode: typing.Optional[ModeLike] = None

		self.tick_count = 0
		self.key_count = 0

	def run (self, initial_mode: ModeLike) -> None:

		"""Drive ``initial_mode`` (and its successors) until one asks to exit."""

		self.start(initial_mode)

		while self.step():
			pass

		logger.info(f"Scheduler stopped after {self.tick_count} ticks and {self.key_count} keys")

	def start (self, initial_mode: ModeLike) -> None:

		"""Install ``initial_mode`` and schedule its first tick immediately."""

		self.mode = initial_mode
		self.timer.set(0.0)

	def step (self) -> bool:

		"""Run one iteration of the loop.  Returns ``False`` once the program should exit."""

		if self.mode is None:
			raise RuntimeError("Scheduler.step() called before start()")

		started = self._clock()
		timeout = self.timer.timeout(started)

		try:
			key = self._source.get(timeout=timeout)

		except queue.Empty:
			self.timer.fire()
			self.tick_count += 1
			transition, command = self.mode.tick()

		else:
			self.key_count += 1
			transition, command = self.mode.keypress(key, self._clock() - started)

		return self._apply(transition, command)

	def _apply (self, transition: Transition, command: TimerCommand) -> bool:

		if transition.kind == EXIT:
			self.timer.apply(command, strict=False)
			return False

		if transition.kind == SWITCH:
			if transition.mode is None:
				raise ValueError("Transition to a new mode needs a mode")

			logger.debug(f"Switching to {type(transition.mode).__name__}")
			self.mode = transition.mode

			# Give the new mode an immediate tick to draw itself; its own
			# timer command, if any, takes precedence.
			self.timer.set(0.0)

		self.timer.apply(command)

		return True
