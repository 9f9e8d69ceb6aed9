"""Live single-line terminal display.

Each mode draws the same three-field line, overwritten in place::

	[120] [     *              ] ( 50%)

- tempo in BPM (``TAP`` in tap mode; the digits typed so far in set mode),
- a marker that sweeps across the middle field once per beat, alternating
  direction each beat,
- the volume.

The terminal is in raw mode while the metronome runs, so ``\\n`` does not
return the carriage.  :class:`DisplayLogHandler` takes care of that for log
messages and keeps them from corrupting the status line.
"""

import logging
import sys
import typing

import metronome.constants


_RESET = "\033[0m"
_BRACKET_COLOR = "\033[2m"       # dim
_TEMPO_COLOR = "\033[1;33m"      # bold yellow
_PROGRESS_COLOR = "\033[32m"     # green
_VOLUME_COLOR = "\033[36m"       # cyan


def tempo_indicator (tempo: float) -> str:

	return f"{int(tempo):>{metronome.constants.NUMBER_WIDTH}}"


def volume_indicator (volume: float) -> str:

	return f"{int(round(volume * 100)):>{metronome.constants.NUMBER_WIDTH}}%"


def typed_tempo_indicator (tempo: int) -> str:

	"""The tempo typed so far in set mode, right-aligned and padded with dots."""

	digits = str(tempo) if tempo else ""

	return digits.rjust(metronome.constants.NUMBER_WIDTH, ".")


def marker_position (progress: float, beats_per_measure: float) -> float:

	"""Where the progress marker sits, from 0.0 (left) to 1.0 (right).

	The marker crosses the field once per beat, left to right on even beats
	and right to left on odd ones, like a conductor's baton.
	"""

	beat_progress = beats_per_measure * progress
	beat = int(beat_progress)
	within_beat = beat_progress - beat

	return within_beat if beat % 2 == 0 else 1.0 - within_beat


def progress_indicator (position: typing.Optional[float], width: int = metronome.constants.PROGRESS_WIDTH) -> str:

	"""A field of ``width`` characters with ``*`` at ``position``; blank for ``None``."""

	if position is None:
		return " " * width

	spaces = width - 1
	leading = min(spaces, max(0, int(spaces * position)))

	return " " * leading + "*" + " " * (spaces - leading)


def format_line (tempo_text: str, progress_text: str, volume_text: str, color: bool = False) -> str:

	"""Assemble the three indicator fields into one status line."""

	if not color:
		return f"[{tempo_text}] [{progress_text}] ({volume_text})"

	def wrap (text: str, code: str) -> str:
		return f"{code}{text}{_RESET}"

	return (
		f"{wrap('[', _BRACKET_COLOR)}{wrap(tempo_text, _TEMPO_COLOR)}{wrap(']', _BRACKET_COLOR)} "
		f"{wrap('[', _BRACKET_COLOR)}{wrap(progress_text, _PROGRESS_COLOR)}{wrap(']', _BRACKET_COLOR)} "
		f"{wrap('(', _BRACKET_COLOR)}{wrap(volume_text, _VOLUME_COLOR)}{wrap(')', _BRACKET_COLOR)}"
	)


class DisplayLogHandler (logging.Handler):

	"""Logging handler that clears and redraws the status line around log output.

	Installed by ``Display.start()`` and removed by ``Display.stop()``.
	"""

	def __init__ (self, display: "Display") -> None:

		super().__init__()
		self._display = display

	def emit (self, record: logging.LogRecord) -> None:

		try:
			self._display.clear_line()

			msg = self.format(record)
			self._display.stream.write(msg.replace("\n", "\r\n") + "\r\n")
			self._display.stream.flush()

			self._display.draw()

		except Exception:
			self.handleError(record)


class Display:

	"""The metronome's status line.

	Modes call :meth:`show_metronome`, :meth:`show_tap` or :meth:`show_set`
	with the values to display; the line is redrawn in place.  Nothing is
	written until :meth:`start` is called.

	Parameters:
		stream: Where to draw.  Defaults to ``sys.stderr``.
		color: Use ANSI colours.
	"""

	def __init__ (self, stream: typing.Optional[typing.TextIO] = None, color: bool = True) -> None:

		self.stream: typing.TextIO = stream if stream is not None else sys.stderr
		self.color = color

		self._active: bool = False
		self._handler: typing.Optional[DisplayLogHandler] = None
		self._saved_handlers: typing.List[logging.Handler] = []
		self._last_line: str = ""

		# Written after the line to park the cursor somewhere other than the end.
		self._cursor_suffix: str = ""

	@property
	def last_line (self) -> str:

		return self._last_line

	def start (self) -> None:

		"""Install the log handler and activate the display.

		Existing root logger handlers are saved and replaced with a
		``DisplayLogHandler``; ``stop()`` puts them back.
		"""

		if self._active:
			return

		self._active = True

		root_logger = logging.getLogger()
		self._saved_handlers = list(root_logger.handlers)

		self._handler = DisplayLogHandler(self)

		if self._saved_handlers and self._saved_handlers[0].formatter:
			self._handler.setFormatter(self._saved_handlers[0].formatter)
		else:
			self._handler.setFormatter(logging.Formatter("%(levelname)s:%(name)s:%(message)s"))

		root_logger.handlers.clear()
		root_logger.addHandler(self._handler)

	def stop (self) -> None:

		"""Leave the last line on screen, move to a fresh line and restore log handlers."""

		if not self._active:
			return

		self.stream.write("\r\n")
		self.stream.flush()
		self._active = False

		root_logger = logging.getLogger()
		root_logger.handlers.clear()

		for handler in self._saved_handlers:
			root_logger.addHandler(handler)

		self._saved_handlers = []
		self._handler = None

	def show_metronome (self, progress: float, tempo: float, volume: float, beats_per_measure: float) -> None:

		"""Metronome mode: ``progress`` is the position in the measure, 0.0 to 1.0."""

		self._show(format_line(
			tempo_indicator(tempo),
			progress_indicator(marker_position(progress, beats_per_measure)),
			volume_indicator(volume),
			self.color,
		))

	def show_tap (self, volume: float) -> None:

		self._show(format_line("TAP", progress_indicator(None), volume_indicator(volume), self.color))

	def show_set (self, tempo: int, volume: float) -> None:

		"""Set mode: the tempo typed so far, with the cursor parked after it."""

		self._show(
			format_line(typed_tempo_indicator(tempo), progress_indicator(None), volume_indicator(volume), self.color),
			cursor_suffix = f"\r\033[{1 + metronome.constants.NUMBER_WIDTH}C",
		)

	def _show (self, line: str, cursor_suffix: str = "") -> None:

		# Fine-grained rhythms tick far more often than the line changes.
		if line == self._last_line and cursor_suffix == self._cursor_suffix:
			return

		self._last_line = line
		self._cursor_suffix = cursor_suffix
		self.draw()

	def draw (self) -> None:

		"""Write the current line over the previous one."""

		if not self._active or not self._last_line:
			return

		self.stream.write(f"\r\033[K{self._last_line}{self._cursor_suffix}")
		self.stream.flush()

	def clear_line (self) -> None:

		if not self._active:
			return

		self.stream.write("\r\033[K")
		self.stream.flush()
