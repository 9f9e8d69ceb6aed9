"""Defaults and tunables.

Tempo is measured in beats per minute, volume on a scale from 0.0 to 1.0
and durations in seconds.
"""

# Default tempo, beats per measure & subdivisions per beat.
DEFAULT_TEMPO = 120.0
DEFAULT_BEATS_PER_MEASURE = 4
DEFAULT_SUBDIVISIONS_PER_BEAT = 1
DEFAULT_VOLUME = 0.5

# Tempo bounds and per-keystroke adjustments
TEMPO_MIN = 20.0
TEMPO_MAX = 400.0
TEMPO_ADJUST = 2.0
VOLUME_ADJUST = 0.05

# Sound
BEEP_LENGTH = 0.05              # seconds
BEEP_PITCH = 880.0              # Hz, most emphasized beep; others are subharmonics
BEEP_FADE = 0.005               # seconds of fade in/out to avoid clicks
DEFAULT_SAMPLERATE = 44100
MIDI_CLICK_CHANNEL = 9          # zero-based, the GM percussion channel

# Largest tick grid a rhythm may compile to
MAX_TICKS = 1 << 20

# Indicator widths
PROGRESS_WIDTH = 20
NUMBER_WIDTH = 3
