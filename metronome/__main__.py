import logging
import queue
import sys
import typing

import metronome.config
import metronome.constants
import metronome.display
import metronome.keystroke
import metronome.modes
import metronome.rhythm
import metronome.scheduler
import metronome.sound


logger = logging.getLogger(__name__)


def make_beeper (config: metronome.config.Config) -> metronome.sound.BeeperLike:

	"""Open the configured output.

	Raises:
		metronome.sound.AudioError: If the device cannot be opened.
	"""

	if config.midi_output is not None:
		return metronome.sound.MidiBeeper.open(config.midi_output or None)

	return metronome.sound.ToneBeeper(metronome.sound.AudioConfig.detect())


def main (argv: typing.Optional[typing.List[str]] = None) -> int:

	"""
	Main entry point for the metronome.
	"""

	parser = metronome.config.build_parser()
	args = parser.parse_args(argv)

	# Everything that can fail on bad input happens before raw mode.
	try:
		config = metronome.config.make_config(args)
		rhythm = metronome.config.build_rhythm(config)
		rhythm = rhythm.make_divisible(metronome.constants.PROGRESS_WIDTH)
	except (metronome.config.ConfigError, metronome.rhythm.RhythmError, ValueError) as e:
		parser.error(str(e))

	logging.basicConfig(level=config.log_level, format="%(levelname)s:%(name)s:%(message)s")

	try:
		beeper = make_beeper(config)
	except metronome.sound.AudioError as e:
		logger.error(str(e))
		return 1

	display = metronome.display.Display(color=config.color)
	context = metronome.modes.Context(rhythm=rhythm, beeper=beeper, display=display)

	keys: "queue.Queue[typing.Optional[int]]" = queue.Queue()
	reader = metronome.keystroke.KeyboardReader(keys)
	scheduler = metronome.scheduler.Scheduler(keys)

	logger.info(f"Metronome starting at {config.tempo:g} BPM, {len(rhythm.ticks)} ticks per measure")

	with metronome.keystroke.RawTerminal():
		display.start()
		reader.start()

		try:
			scheduler.run(metronome.modes.MetronomeMode(context, config.volume, config.tempo))
		finally:
			reader.stop()
			display.stop()

			if isinstance(beeper, metronome.sound.MidiBeeper):
				beeper.close()

	return 0


if __name__ == "__main__":
	sys.exit(main())
