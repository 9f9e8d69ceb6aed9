"""Raw keyboard input: terminal mode handling and a background byte reader.

:class:`RawTerminal` puts stdin into raw mode for the duration of a
``with`` block, so every byte - including Control-C and the pieces of
arrow-key escape sequences - reaches the program immediately.  The
previous terminal settings are restored however the block exits.

:class:`KeyboardReader` reads stdin one byte at a time on a daemon thread
and forwards each byte to a ``queue.Queue``.  End of input, or a read
error, is forwarded as ``None``.

**Platform support:** raw mode needs :mod:`termios` and :mod:`tty`
(Linux and macOS) and a real TTY on stdin.  Without them the program still
runs - bytes are read from whatever stdin is, line-buffered by the
terminal if there is one - and a warning is logged.
"""

import logging
import os
import queue
import select
import sys
import threading
import typing


logger = logging.getLogger(__name__)


#: ``True`` when :mod:`termios` and :mod:`tty` can be imported.
RAW_MODE_SUPPORTED: bool = False

#: Why raw mode is unavailable, or ``None`` when it is supported.
RAW_MODE_UNAVAILABLE_REASON: typing.Optional[str] = None

try:
	import termios
	import tty

	RAW_MODE_SUPPORTED = True

except ImportError:
	RAW_MODE_UNAVAILABLE_REASON = (
		"The 'tty' and 'termios' modules are not available on this platform. "
		"Raw keyboard input requires a POSIX operating system (Linux or macOS)."
	)


_POLL_INTERVAL = 0.1


class RawTerminal:

	"""Context manager that switches a terminal to raw mode and back.

	Entering returns ``True`` if raw mode was applied, ``False`` if it was
	not possible (no termios, or the descriptor is not a TTY).

	Example::

		with RawTerminal() as raw:
			run_the_loop()
		# terminal settings restored here, even after an exception
	"""

	def __init__ (self, fd: typing.Optional[int] = None) -> None:

		self.fd = fd if fd is not None else sys.stdin.fileno()
		self._saved: typing.Optional[list] = None

	def __enter__ (self) -> bool:

		if not RAW_MODE_SUPPORTED:
			logger.warning(f"Keys will need Enter. {RAW_MODE_UNAVAILABLE_REASON}")
			return False

		if not os.isatty(self.fd):
			logger.warning("stdin is not a terminal; reading keys from it as-is")
			return False

		self._saved = termios.tcgetattr(self.fd)
		tty.setraw(self.fd)

		return True

	def __exit__ (self, *exc_info: typing.Any) -> None:

		if self._saved is not None:
			termios.tcsetattr(self.fd, termios.TCSADRAIN, self._saved)
			self._saved = None


class KeyboardReader:

	"""Background daemon thread that forwards stdin bytes to a queue.

	Each byte is put on the queue as an ``int``.  When input ends or reading
	fails, ``None`` is put on the queue once and the thread exits; the
	scheduler treats that as a request to quit.
	"""

	def __init__ (self, keys: "queue.Queue[typing.Optional[int]]", fd: typing.Optional[int] = None) -> None:

		self._keys = keys
		self._fd = fd if fd is not None else sys.stdin.fileno()
		self._thread: typing.Optional[threading.Thread] = None
		self._running = False

	@property
	def active (self) -> bool:

		return self._thread is not None and self._thread.is_alive()

	def start (self) -> None:

		"""Start reading.  A second call while running does nothing."""

		if self._running:
			return

		self._running = True
		self._thread = threading.Thread(
			target = self._read,
			name   = "metronome-keyboard",
			daemon = True,
		)
		self._thread.start()

	def stop (self) -> None:

		"""Ask the thread to exit; it notices within one poll interval."""

		self._running = False

	def _read (self) -> None:

		try:
			while self._running:
				# Poll so that stop() is noticed without a keypress.
				ready, _, _ = select.select([self._fd], [], [], _POLL_INTERVAL)

				if not ready:
					continue

				data = os.read(self._fd, 1)

				if not data:
					logger.debug("End of input")
					break

				self._keys.put(data[0])

		except OSError as e:
			logger.debug(f"Keyboard read failed, treating as end of input: {e}")

		finally:
			if self._running:
				self._keys.put(None)
			self._running = False
