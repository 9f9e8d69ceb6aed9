"""Audio output for metronome beeps.

Beeps are fire-and-forget.  :class:`ToneBeeper` synthesises each beep in
a short-lived daemon thread with its own output stream, and nobody joins
that thread: if the device fails mid-beep, that one beep is lost and the
tick loop carries on.  A dropped beep is preferable to a stalled schedule.

:class:`MidiBeeper` sends the same beeps as MIDI notes instead, for
driving a drum machine or a DAW.
"""

import dataclasses
import logging
import math
import threading
import typing

import mido
import numpy

import metronome.constants
import metronome.midi_utils


logger = logging.getLogger(__name__)


class AudioError (Exception):

	"""No usable audio or MIDI output could be opened."""


class BeeperLike (typing.Protocol):

	"""Anything that can play a beep without blocking the caller."""

	def beep (self, frequency: float, duration: float, volume: float) -> None:

		...


@dataclasses.dataclass(frozen=True)
class AudioConfig:

	"""Output device and stream format, fixed for the life of the process.

	Frozen, so the main loop and any number of in-flight beep threads can
	share one instance.
	"""

	samplerate: int = metronome.constants.DEFAULT_SAMPLERATE
	device:     typing.Optional[typing.Union[int, str]] = None

	@classmethod
	def detect (cls, device: typing.Optional[typing.Union[int, str]] = None) -> "AudioConfig":

		"""Query the output device and use its native sample rate.

		Raises:
			AudioError: If PortAudio is missing or there is no output device.
		"""

		sounddevice = _import_sounddevice()

		try:
			info = sounddevice.query_devices(device, kind="output")
		except (ValueError, sounddevice.PortAudioError) as e:
			raise AudioError(f"No usable audio output device: {e}") from e

		config = cls(samplerate=int(info["default_samplerate"]), device=device)
		logger.info(f"Audio output: {info['name']} at {config.samplerate} Hz")

		return config


def _import_sounddevice () -> typing.Any:

	# Imported on first use: loading the module also loads the PortAudio
	# shared library, which fails on machines with no audio stack.
	try:
		import sounddevice  # noqa: PLC0415
	except OSError as e:
		raise AudioError(f"Could not load PortAudio: {e}") from e

	return sounddevice


def tone (frequency: float, duration: float, volume: float, samplerate: int) -> numpy.ndarray:

	"""Render a sine beep as float32 samples, faded in and out to avoid clicks."""

	n_samples = max(1, int(samplerate * duration))
	t = numpy.arange(n_samples, dtype=numpy.float32) / samplerate
	wave = numpy.sin(2.0 * numpy.pi * frequency * t) * volume

	fade = min(int(samplerate * metronome.constants.BEEP_FADE), n_samples // 2)

	if fade > 0:
		ramp = numpy.linspace(0.0, 1.0, fade, dtype=numpy.float32)
		wave[:fade] *= ramp
		wave[-fade:] *= ramp[::-1]

	return wave.astype(numpy.float32)


class ToneBeeper:

	"""Plays sine beeps on the audio device in detached threads."""

	def __init__ (self, config: AudioConfig) -> None:

		self.config = config

	def beep (self, frequency: float, duration: float, volume: float) -> None:

		if volume <= 0.0:
			return

		thread = threading.Thread(
			target = self._play,
			args   = (frequency, duration, volume),
			name   = "metronome-beep",
			daemon = True,
		)
		thread.start()

	def _play (self, frequency: float, duration: float, volume: float) -> None:

		try:
			sounddevice = _import_sounddevice()
			samples = tone(frequency, duration, volume, self.config.samplerate)

			with sounddevice.OutputStream(
				samplerate = self.config.samplerate,
				device     = self.config.device,
				channels   = 1,
				dtype      = "float32",
			) as stream:
				stream.write(samples.reshape(-1, 1))

		except Exception as e:
			# Losing one beep must not affect the tick loop.
			logger.debug(f"Beep dropped: {e}")


def frequency_to_note (frequency: float) -> int:

	"""Nearest MIDI note number for ``frequency`` (A4 = 440 Hz = 69)."""

	note = round(69 + 12 * math.log2(frequency / 440.0))

	return min(127, max(0, note))


class MidiBeeper:

	"""Sends each beep as a MIDI note on/off pair.

	Pitch maps to the nearest note and volume to velocity.  The note-off is
	sent from a timer thread so ``beep`` never blocks.
	"""

	def __init__ (self, port: typing.Any, channel: int = metronome.constants.MIDI_CLICK_CHANNEL) -> None:

		self.port = port
		self.channel = channel

	@classmethod
	def open (cls, device_name: typing.Optional[str] = None) -> "MidiBeeper":

		"""Open a MIDI output (see :func:`metronome.midi_utils.select_output_device`).

		Raises:
			AudioError: If no output could be opened.
		"""

		name, port = metronome.midi_utils.select_output_device(device_name)

		if port is None:
			raise AudioError(f"Could not open MIDI output {device_name or '(auto)'}")

		return cls(port)

	def beep (self, frequency: float, duration: float, volume: float) -> None:

		velocity = min(127, max(0, round(volume * 127)))

		if velocity == 0:
			return

		note = frequency_to_note(frequency)

		try:
			self.port.send(mido.Message("note_on", channel=self.channel, note=note, velocity=velocity))
		except Exception as e:
			logger.debug(f"MIDI beep dropped: {e}")
			return

		timer = threading.Timer(duration, self._note_off, args=(note,))
		timer.daemon = True
		timer.start()

	def _note_off (self, note: int) -> None:

		try:
			self.port.send(mido.Message("note_off", channel=self.channel, note=note, velocity=0))
		except Exception as e:
			logger.debug(f"MIDI note off dropped: {e}")

	def close (self) -> None:

		self.port.close()
