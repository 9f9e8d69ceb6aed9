
"""
Metronome - an interactive terminal metronome.

Plays a rhythm as a stream of beeps and lets you change tempo, volume and
mode with single keystrokes while it plays, without missing a beat.

- **Any rhythm.** Plain beats with subdivisions (``120:4:2``),
  simultaneous cross-rhythms (``--cross 3:2``, ``--cross 3:5:17``) or a
  hand-written tick pattern (``--rhythm 02!1212``).
- **Live control.** Space pauses and resumes in phase, arrow keys (or
  ``hjkl``) change volume and tempo, ``.`` restarts the measure on the
  spot.
- **Tap tempo.** Press ``,`` in time and any other key to lock in the
  tempo you tapped.
- **Typed tempo.** Press ``'`` or just start typing digits.
- **MIDI clicks.** ``--midi`` sends the beeps to a MIDI port instead of
  the sound card.

Package layout:

- ``metronome.rhythm`` - compiles rhythm descriptions into tick grids.
- ``metronome.keys`` - turns raw key bytes, including escape sequences,
  into commands.
- ``metronome.scheduler`` - the single-threaded tick/keypress loop and its
  pausable timer.
- ``metronome.modes`` - metronome, tap and set modes.
- ``metronome.sound``, ``metronome.display``, ``metronome.keystroke`` -
  audio, screen and keyboard.
- ``metronome.config`` - YAML config file and command line.

Run it with ``python -m metronome`` or the ``metronome`` script.
"""

__version__ = "0.1.0"

from metronome.rhythm import (
	Beep,
	Rest,
	RhythmSpec,
	crossbeats,
	format_rhythm,
	parse,
	parse_crossbeats,
	subdivision,
)
