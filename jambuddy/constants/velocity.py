"""MIDI velocity constants.

Velocity is the MIDI attack strength (0-127). The drum values match the
levels written to exported MIDI files so live playback and export sound alike.
"""

DEFAULT_CHORD_VELOCITY = 80
DEFAULT_BASS_VELOCITY = 100
DEFAULT_HARMONY_VELOCITY = 72

KICK_VELOCITY = 100
SNARE_VELOCITY = 110
HIHAT_VELOCITY = 70

COUNT_IN_ACCENT_VELOCITY = 127
COUNT_IN_VELOCITY = 96

MIN_VELOCITY = 0
MAX_VELOCITY = 127
