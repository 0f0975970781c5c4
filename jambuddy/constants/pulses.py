"""Transport timing constants.

The transport uses **24 pulses per quarter note** (PPQN = 24) as its time
base. Every musical duration the engine schedules is a whole number of
pulses:

- `MIDI_QUARTER_NOTE = 24` - one beat (the base unit)
- `MIDI_EIGHTH_NOTE = 12` - one drum step
- `MIDI_WHOLE_NOTE = 96` - one bar in 4/4

Arpeggiator rates are looked up in `NOTE_VALUE_PULSES` by their note-value
name (``"16n"`` is a sixteenth note).
"""

import typing


MIDI_THIRTYSECOND_NOTE = 3
MIDI_SIXTEENTH_NOTE = 6
MIDI_EIGHTH_NOTE = 12
MIDI_QUARTER_NOTE = 24
MIDI_HALF_NOTE = 48
MIDI_WHOLE_NOTE = 96

BEATS_PER_BAR = 4
PULSES_PER_BAR = BEATS_PER_BAR * MIDI_QUARTER_NOTE

NOTE_VALUE_PULSES: typing.Dict[str, int] = {
	"1n": MIDI_WHOLE_NOTE,
	"2n": MIDI_HALF_NOTE,
	"4n": MIDI_QUARTER_NOTE,
	"8n": MIDI_EIGHTH_NOTE,
	"16n": MIDI_SIXTEENTH_NOTE,
	"32n": MIDI_THIRTYSECOND_NOTE,
}
