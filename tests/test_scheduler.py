import typing

import pytest

import metronome.scheduler
from metronome.scheduler import (
	EXIT_PROGRAM,
	KEEP_TIMER,
	NO_CHANGE,
	PAUSED,
	RESUME_TIMER,
	SCHEDULED,
	TOGGLE_TIMER,
	UNSCHEDULED,
	UNSET_TIMER,
	InvalidTimerState,
	Scheduler,
	Step,
	Timer,
	TimerCommand,
	Transition,
	advance_timer,
	set_timer,
	switch_to,
)

from conftest import FakeClock, FakeKeySource


class ScriptedMode:

	"""Mode that records what the scheduler delivers and answers from a script."""

	def __init__ (
		self,
		clock: FakeClock,
		tick_step: Step = (NO_CHANGE, UNSET_TIMER),
		key_steps: typing.Optional[typing.Dict[int, Step]] = None,
		max_ticks: typing.Optional[int] = None,
	) -> None:

		self.clock = clock
		self.tick_step = tick_step
		self.key_steps = key_steps or {}
		self.max_ticks = max_ticks
		self.events: typing.List[typing.Tuple[typing.Any, ...]] = []

	@property
	def tick_times (self) -> typing.List[float]:

		return [event[1] for event in self.events if event[0] == "tick"]

	def tick (self) -> Step:

		self.events.append(("tick", self.clock.now))

		if self.max_ticks is not None and len(self.tick_times) >= self.max_ticks:
			return EXIT_PROGRAM, KEEP_TIMER

		return self.tick_step

	def keypress (self, key: typing.Optional[int], elapsed: float) -> Step:

		self.events.append(("key", key, elapsed))

		if key is None:
			return EXIT_PROGRAM, KEEP_TIMER

		return self.key_steps.get(key, (NO_CHANGE, KEEP_TIMER))


# ---------------------------------------------------------------------------
# Timer
# ---------------------------------------------------------------------------

def test_timer_starts_unscheduled (clock: FakeClock) -> None:

	timer = Timer(clock)

	assert timer.state.kind == UNSCHEDULED
	assert timer.timeout(clock()) is None


def test_timer_set_and_timeout (clock: FakeClock) -> None:

	timer = Timer(clock)
	timer.set(0.5)

	assert timer.state.kind == SCHEDULED
	assert timer.state.deadline == 0.5
	assert timer.timeout(0.2) == pytest.approx(0.3)

	# Overdue deadlines wait zero, never negative.
	assert timer.timeout(2.0) == 0.0


def test_timer_pause_resume_keeps_phase (clock: FakeClock) -> None:

	"""Resuming schedules the time that was left when pausing, from the resume instant."""

	timer = Timer(clock)
	timer.set(1.0)

	clock.advance(0.4)
	timer.pause()

	assert timer.state.kind == PAUSED
	assert timer.state.remaining == pytest.approx(0.6)
	assert timer.timeout(clock()) is None

	clock.advance(5.0)
	timer.resume()

	assert timer.state.kind == SCHEDULED
	assert timer.state.deadline == pytest.approx(5.6)


def test_timer_pause_when_not_running_is_noop (clock: FakeClock) -> None:

	timer = Timer(clock)
	timer.pause()

	assert timer.state.kind == UNSCHEDULED

	timer.set(1.0)
	timer.pause()
	timer.pause()

	assert timer.state.kind == PAUSED
	assert timer.state.remaining == 1.0


def test_timer_resume_requires_pause (clock: FakeClock) -> None:

	timer = Timer(clock)

	with pytest.raises(InvalidTimerState):
		timer.resume()

	timer.set(1.0)

	with pytest.raises(InvalidTimerState):
		timer.resume()


def test_timer_toggle (clock: FakeClock) -> None:

	timer = Timer(clock)

	with pytest.raises(InvalidTimerState):
		timer.toggle()

	timer.set(1.0)
	timer.toggle()

	assert timer.state.kind == PAUSED

	clock.advance(3.0)
	timer.toggle()

	assert timer.state.kind == SCHEDULED
	assert timer.state.deadline == pytest.approx(4.0)


def test_timer_unset (clock: FakeClock) -> None:

	timer = Timer(clock)
	timer.set(1.0)
	timer.unset()

	assert timer.state == metronome.scheduler.TimerState(UNSCHEDULED)


def test_timer_advance_from_fired_deadline (clock: FakeClock) -> None:

	"""Latency between the deadline and the handler does not shift the next tick."""

	timer = Timer(clock)
	timer.set(0.5)

	clock.now = 0.53
	timer.fire()
	timer.advance(0.5)

	assert timer.state.deadline == pytest.approx(1.0)


def test_timer_advance_resyncs_when_far_behind (clock: FakeClock) -> None:

	timer = Timer(clock)
	timer.set(0.5)

	clock.now = 3.0
	timer.fire()
	timer.advance(0.5)

	assert timer.state.deadline == 3.0


def test_timer_advance_without_fired_tick_counts_from_now (clock: FakeClock) -> None:

	timer = Timer(clock)
	clock.now = 2.0
	timer.advance(0.25)

	assert timer.state.deadline == pytest.approx(2.25)


def test_timer_apply (clock: FakeClock) -> None:

	timer = Timer(clock)

	timer.apply(set_timer(1.0))
	assert timer.state.kind == SCHEDULED

	timer.apply(KEEP_TIMER)
	assert timer.state.kind == SCHEDULED

	timer.apply(TOGGLE_TIMER)
	assert timer.state.kind == PAUSED

	timer.apply(RESUME_TIMER)
	assert timer.state.kind == SCHEDULED

	timer.apply(UNSET_TIMER)
	assert timer.state.kind == UNSCHEDULED


def test_timer_apply_lenient_skips_invalid (clock: FakeClock) -> None:

	timer = Timer(clock)

	timer.apply(RESUME_TIMER, strict=False)
	timer.apply(TOGGLE_TIMER, strict=False)

	assert timer.state.kind == UNSCHEDULED

	with pytest.raises(InvalidTimerState):
		timer.apply(RESUME_TIMER)


def test_timer_apply_unknown_action (clock: FakeClock) -> None:

	with pytest.raises(ValueError):
		Timer(clock).apply(TimerCommand("rewind"))


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

def test_scheduler_ticks_and_keys_in_order (clock: FakeClock) -> None:

	"""Periodic ticks interleave with keys by arrival time."""

	source = FakeKeySource(clock, [(0.7, ord("a"))])
	mode = ScriptedMode(clock, tick_step=(NO_CHANGE, advance_timer(0.5)), max_ticks=4)

	Scheduler(source, clock).run(mode)

	assert [event[0] for event in mode.events] == ["tick", "tick", "key", "tick", "tick"]
	assert mode.tick_times == pytest.approx([0.0, 0.5, 1.0, 1.5])
	assert mode.events[2] == ("key", ord("a"), pytest.approx(0.2))

	assert source.timeouts == pytest.approx([0.0, 0.5, 0.5, 0.3, 0.5])


def test_scheduler_key_at_deadline_comes_after_tick (clock: FakeClock) -> None:

	source = FakeKeySource(clock, [(0.5, ord("a"))])
	mode = ScriptedMode(clock, tick_step=(NO_CHANGE, advance_timer(0.5)), max_ticks=3)

	Scheduler(source, clock).run(mode)

	assert mode.events[:3] == [("tick", 0.0), ("tick", 0.5), ("key", ord("a"), 0.0)]


def test_scheduler_counts (clock: FakeClock) -> None:

	source = FakeKeySource(clock, [(0.1, ord("a")), (0.2, ord("b"))])
	mode = ScriptedMode(clock, tick_step=(NO_CHANGE, advance_timer(1.0)), max_ticks=2)

	scheduler = Scheduler(source, clock)
	scheduler.run(mode)

	assert scheduler.tick_count == 2
	assert scheduler.key_count == 2


def test_scheduler_unscheduled_waits_forever_and_exits_on_eof (clock: FakeClock) -> None:

	source = FakeKeySource(clock)
	mode = ScriptedMode(clock, tick_step=(NO_CHANGE, UNSET_TIMER))

	Scheduler(source, clock).run(mode)

	assert source.timeouts == [0.0, None]
	assert mode.events == [("tick", 0.0), ("key", None, 0.0)]


def test_scheduler_switch_gives_new_mode_immediate_tick (clock: FakeClock) -> None:

	second = ScriptedMode(clock, max_ticks=1)
	first = ScriptedMode(clock, key_steps={ord("s"): (switch_to(second), KEEP_TIMER)})

	source = FakeKeySource(clock, [(2.0, ord("s"))])
	scheduler = Scheduler(source, clock)
	scheduler.run(first)

	assert scheduler.mode is second
	assert first.tick_times == [0.0]
	assert second.tick_times == [2.0]


def test_scheduler_switch_honours_explicit_timer_command (clock: FakeClock) -> None:

	second = ScriptedMode(clock)
	first = ScriptedMode(clock, key_steps={ord("s"): (switch_to(second), UNSET_TIMER)})

	scheduler = Scheduler(FakeKeySource(clock, [(1.0, ord("s"))]), clock)
	scheduler.start(first)

	while scheduler.mode is first:
		assert scheduler.step()

	assert scheduler.timer.state.kind == UNSCHEDULED

	# Nothing is scheduled, so the new mode only hears end of input.
	assert not scheduler.step()
	assert second.events == [("key", None, 0.0)]


def test_scheduler_exit_ignores_invalid_timer_command (clock: FakeClock) -> None:

	mode = ScriptedMode(clock, tick_step=(NO_CHANGE, set_timer(1.0)), key_steps={ord("x"): (EXIT_PROGRAM, RESUME_TIMER)})

	scheduler = Scheduler(FakeKeySource(clock, [(0.1, ord("x"))]), clock)
	scheduler.start(mode)

	assert scheduler.step()
	assert not scheduler.step()


def test_scheduler_invalid_timer_command_propagates (clock: FakeClock) -> None:

	mode = ScriptedMode(clock, tick_step=(NO_CHANGE, set_timer(1.0)), key_steps={ord("x"): (NO_CHANGE, RESUME_TIMER)})

	scheduler = Scheduler(FakeKeySource(clock, [(0.1, ord("x"))]), clock)

	with pytest.raises(InvalidTimerState):
		scheduler.run(mode)


def test_scheduler_switch_needs_mode (clock: FakeClock) -> None:

	mode = ScriptedMode(clock, tick_step=(Transition(metronome.scheduler.SWITCH), KEEP_TIMER))

	scheduler = Scheduler(FakeKeySource(clock), clock)

	with pytest.raises(ValueError):
		scheduler.run(mode)


def test_scheduler_step_before_start (clock: FakeClock) -> None:

	with pytest.raises(RuntimeError):
		Scheduler(FakeKeySource(clock), clock).step()


def test_scripted_mode_satisfies_protocol (clock: FakeClock) -> None:

	assert isinstance(ScriptedMode(clock), metronome.scheduler.ModeLike)
