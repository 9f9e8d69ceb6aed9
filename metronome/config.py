"""Configuration: YAML defaults file plus command-line overrides.

Settings are resolved in three layers, later ones winning:

1. built-in defaults (:mod:`metronome.constants`),
2. the YAML config file (``~/.config/metronome/config.yaml`` or ``--config``),
3. command-line arguments.

Example config file:

```yaml
tempo: 96
volume: 0.4
crossbeats: "3:2"
color: false
```

Everything here runs before the terminal is put into raw mode, so errors
are reported as ordinary command-line diagnostics.
"""

import argparse
import dataclasses
import logging
import os
import typing

import yaml

import metronome
import metronome.constants
import metronome.rhythm


logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = os.path.join("~", ".config", "metronome", "config.yaml")


class ConfigError (Exception):

	"""The config file or a command-line value is unusable."""


@dataclasses.dataclass
class Config:

	"""Resolved settings for one run.

	Rhythm precedence: ``rhythm`` (mini-language) over ``crossbeats`` over
	``beats``/``subdivisions``.  ``midi_output`` is ``None`` for audio
	output, ``""`` to auto-select a MIDI port, or a port name.
	"""

	tempo:        float = metronome.constants.DEFAULT_TEMPO
	volume:       float = metronome.constants.DEFAULT_VOLUME
	beats:        int = metronome.constants.DEFAULT_BEATS_PER_MEASURE
	subdivisions: int = metronome.constants.DEFAULT_SUBDIVISIONS_PER_BEAT
	crossbeats:   typing.Optional[str] = None
	rhythm:       typing.Optional[str] = None
	midi_output:  typing.Optional[str] = None
	color:        bool = True
	log_level:    str = "WARNING"


def load_config (config_path: str, required: bool = False) -> typing.Dict[str, typing.Any]:

	"""Load settings from a YAML file.

	A missing file gives an empty mapping unless ``required`` is set.
	"""

	path = os.path.expanduser(config_path)

	if not os.path.exists(path):
		if required:
			raise ConfigError(f"Config file {config_path} not found")
		logger.debug(f"Config file {config_path} not found. Using defaults.")
		return {}

	try:
		with open(path, "r") as f:
			data = yaml.safe_load(f)
	except (OSError, yaml.YAMLError) as e:
		raise ConfigError(f"Could not read config file {config_path}: {e}") from e

	if data is None:
		return {}

	if not isinstance(data, dict):
		raise ConfigError(f"Config file {config_path} must contain a mapping, not {type(data).__name__}")

	return data


def _text_setting (value: typing.Any) -> str:

	"""Accept only YAML strings, so that ``3:2`` or ``0101`` is not read as a number."""

	if not isinstance(value, str):
		raise TypeError(f"expected a quoted string, got {type(value).__name__}")

	return value


def _midi_setting (value: typing.Any) -> typing.Optional[str]:

	if value is True:
		return ""
	if value is False or value is None:
		return None
	return str(value)


_FILE_CONVERTERS: typing.Dict[str, typing.Callable[[typing.Any], typing.Any]] = {
	"tempo":        float,
	"volume":       float,
	"beats":        int,
	"subdivisions": int,
	"crossbeats":   _text_setting,
	"rhythm":       _text_setting,
	"midi_output":  _midi_setting,
	"color":        bool,
	"log_level":    lambda value: str(value).upper(),
}


def apply_file_settings (config: Config, data: typing.Dict[str, typing.Any]) -> None:

	"""Copy recognised keys from a loaded config file onto ``config``."""

	for key, value in data.items():

		converter = _FILE_CONVERTERS.get(key)

		if converter is None:
			logger.warning(f"Ignoring unknown config setting {key!r}")
			continue

		try:
			setattr(config, key, converter(value))
		except (TypeError, ValueError) as e:
			raise ConfigError(f"Invalid value {value!r} for config setting {key!r}: {e}") from e


def parse_tempo_descriptor (descriptor: str) -> typing.Tuple[float, typing.Optional[int], typing.Optional[int]]:

	"""Parse ``TEMPO[:BEATS[:SUBDIV]]``, e.g. ``"72:4:3"``."""

	tokens = descriptor.split(":")

	if len(tokens) > 3:
		raise ConfigError(f"Too many fields in {descriptor!r}; expected TEMPO[:BEATS[:SUBDIV]]")

	try:
		tempo = float(tokens[0])
	except ValueError:
		raise ConfigError(f"Invalid tempo {tokens[0]!r} in {descriptor!r}") from None

	counts: typing.List[typing.Optional[int]] = [None, None]

	for i, token in enumerate(tokens[1:]):
		try:
			counts[i] = int(token)
		except ValueError:
			raise ConfigError(f"Invalid count {token!r} in {descriptor!r}") from None

		if counts[i] <= 0:
			raise ConfigError(f"Count {token!r} in {descriptor!r} must be positive")

	return tempo, counts[0], counts[1]


def build_parser () -> argparse.ArgumentParser:

	parser = argparse.ArgumentParser(
		prog = "metronome",
		description = "Interactive terminal metronome.",
		epilog = (
			"keys: space toggle, p pause, P play, arrows or hjkl adjust volume/tempo, "
			". resync, , tap tempo, ' or digits type a tempo, q quit"
		),
	)

	parser.add_argument(
		"tempo", nargs="?", metavar="TEMPO[:BEATS[:SUBDIV]]",
		help="tempo in BPM, optionally with beats per measure and subdivisions per beat",
	)

	rhythm_group = parser.add_mutually_exclusive_group()
	rhythm_group.add_argument("-x", "--cross", metavar="B1:B2:...", help="cross-rhythm beat counts, e.g. 3:2")
	rhythm_group.add_argument("-r", "--rhythm", metavar="SPEC", help="tick pattern, e.g. 02!1212 (digits beep, . rests, ! ends a beat)")

	parser.add_argument("--volume", type=float, help="initial volume from 0.0 to 1.0")
	parser.add_argument("--midi", nargs="?", const="", metavar="DEVICE", help="send clicks to a MIDI output instead of the audio device")
	parser.add_argument("--no-color", action="store_true", help="disable colored output")
	parser.add_argument("--config", help=f"YAML config file (default {DEFAULT_CONFIG_PATH})")
	parser.add_argument("--log-level", help="logging level, e.g. INFO or DEBUG")
	parser.add_argument("--version", action="version", version=f"%(prog)s {metronome.__version__}")

	return parser


def make_config (args: argparse.Namespace) -> Config:

	"""Resolve defaults, the config file and parsed arguments into a :class:`Config`."""

	config = Config()

	if args.config:
		apply_file_settings(config, load_config(args.config, required=True))
	else:
		apply_file_settings(config, load_config(DEFAULT_CONFIG_PATH))

	if args.tempo is not None:
		tempo, beats, subdivisions = parse_tempo_descriptor(args.tempo)
		config.tempo = tempo
		if beats is not None:
			config.beats = beats
		if subdivisions is not None:
			config.subdivisions = subdivisions

		# An explicit grid on the command line replaces any rhythm from the file.
		if beats is not None or subdivisions is not None:
			config.crossbeats = None
			config.rhythm = None

	if args.cross is not None:
		config.crossbeats = args.cross
		config.rhythm = None

	if args.rhythm is not None:
		config.rhythm = args.rhythm

	if args.volume is not None:
		config.volume = args.volume

	if args.midi is not None:
		config.midi_output = args.midi

	if args.no_color:
		config.color = False

	if args.log_level:
		config.log_level = args.log_level.upper()

	if not metronome.constants.TEMPO_MIN <= config.tempo <= metronome.constants.TEMPO_MAX:
		raise ConfigError(
			f"Tempo {config.tempo:g} is outside {metronome.constants.TEMPO_MIN:g}-{metronome.constants.TEMPO_MAX:g} BPM"
		)

	if not 0.0 <= config.volume <= 1.0:
		raise ConfigError(f"Volume {config.volume:g} is outside 0.0-1.0")

	if not isinstance(logging.getLevelName(config.log_level), int):
		raise ConfigError(f"Unknown log level {config.log_level!r}")

	return config


def build_rhythm (config: Config) -> metronome.rhythm.RhythmSpec:

	"""Compile the configured rhythm.

	Raises:
		metronome.rhythm.RhythmError: If the rhythm cannot be compiled.
		ValueError: If beat counts are not positive.
	"""

	if config.rhythm is not None:
		return metronome.rhythm.parse(config.rhythm)

	if config.crossbeats is not None:
		return metronome.rhythm.crossbeats(metronome.rhythm.parse_crossbeats(config.crossbeats))

	return metronome.rhythm.subdivision(config.beats, config.subdivisions)
