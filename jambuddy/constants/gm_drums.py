"""General MIDI drum notes used by the engine.

Standard MIDI percussion assignments for channel 10 (0-indexed channel 9).
Only the voices a jam needs are listed: the three kit pieces of a drum step
and the two metronome sounds used by the count-in.
"""

import typing


GM_DRUM_CHANNEL = 9

METRONOME_CLICK = 33
METRONOME_BELL = 34
KICK = 36
SNARE = 38
HIHAT_CLOSED = 42

GM_DRUM_MAP: typing.Dict[str, int] = {
	"kick": KICK,
	"snare": SNARE,
	"hihat": HIHAT_CLOSED,
}
