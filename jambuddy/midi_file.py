"""Standard MIDI File export of a progression with its drum pattern.

The file is format 1 with two tracks at 480 ticks per quarter note:

- **chords** (channel 1): program 0, then every chord tone of each bar held
  for one bar at velocity 80;
- **drums** (channel 10): the drum pattern on an eighth-note grid across the
  whole progression, each hit 120 ticks long.

Messages are built with ``mido`` the same way a recorded session is, then
serialised chunk by chunk so the output is byte-exact: no running status, a
single end-of-track meta event per track and track lengths that include it.
"""

import logging
import struct
import typing

import mido

import jambuddy.chords
import jambuddy.constants.gm_drums
import jambuddy.constants.velocity
import jambuddy.drum_patterns
import jambuddy.scheduler


logger = logging.getLogger(__name__)


TICKS_PER_QUARTER_NOTE = 480
TICKS_PER_BAR = TICKS_PER_QUARTER_NOTE * 4
TICKS_PER_EIGHTH = TICKS_PER_QUARTER_NOTE // 2
STEPS_PER_BAR = 8

DRUM_NOTE_TICKS = 120
CHORD_CHANNEL = 0
CHORD_PROGRAM = 0

MAX_VLQ = 0x0FFFFFFF

_END_OF_TRACK = b"\x00\xff\x2f\x00"

_DRUM_HITS: typing.Dict[str, typing.Tuple[int, int]] = {
	"kick": (jambuddy.constants.gm_drums.KICK, jambuddy.constants.velocity.KICK_VELOCITY),
	"snare": (jambuddy.constants.gm_drums.SNARE, jambuddy.constants.velocity.SNARE_VELOCITY),
	"hihat": (jambuddy.constants.gm_drums.HIHAT_CLOSED, jambuddy.constants.velocity.HIHAT_VELOCITY),
}


class MidiExportError (ValueError):

	"""Raised when a progression cannot be exported."""


def write_vlq (value: int) -> bytes:

	"""
	Encode a MIDI variable-length quantity.

	Seven bits per byte, most significant group first, with the high bit set
	on every byte except the last.

	Example:
		```python
		write_vlq(0)      # b"\\x00"
		write_vlq(0x80)   # b"\\x81\\x00"
		write_vlq(1920)   # b"\\x8f\\x00"
		```
	"""

	if not 0 <= value <= MAX_VLQ:
		raise ValueError(f"VLQ value out of range: {value}")

	groups = [value & 0x7F]
	value >>= 7

	while value:
		groups.append((value & 0x7F) | 0x80)
		value >>= 7

	return bytes(reversed(groups))


def _validate (progression: typing.Sequence[str], bpm: float) -> None:

	if not progression:
		raise MidiExportError("Cannot export an empty progression")

	if not jambuddy.scheduler.MIN_BPM <= bpm <= jambuddy.scheduler.MAX_BPM:
		raise MidiExportError(
			f"BPM must be between {jambuddy.scheduler.MIN_BPM} and {jambuddy.scheduler.MAX_BPM}, got {bpm}"
		)


def _to_track (events: typing.List[typing.Tuple[int, typing.Union[mido.Message, mido.MetaMessage]]]) -> mido.MidiTrack:

	"""Turn (absolute tick, message) pairs into a track of delta-timed messages."""

	track = mido.MidiTrack()
	last_tick = 0

	for tick, message in events:
		track.append(message.copy(time=tick - last_tick))
		last_tick = tick

	return track


def _chord_events (
	progression: typing.Sequence[str],
	bpm: float,
	include_tempo: bool
) -> typing.List[typing.Tuple[int, typing.Union[mido.Message, mido.MetaMessage]]]:

	events: typing.List[typing.Tuple[int, typing.Union[mido.Message, mido.MetaMessage]]] = []

	if include_tempo:
		events.append((0, mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(bpm))))

	events.append((0, mido.Message("program_change", channel=CHORD_CHANNEL, program=CHORD_PROGRAM)))

	for bar, symbol in enumerate(progression):

		start = bar * TICKS_PER_BAR
		pitches = jambuddy.chords.chord_pitches(symbol)

		# Rests write nothing; the next bar's delta covers the gap.
		for pitch in pitches:
			events.append((start, mido.Message(
				"note_on",
				channel = CHORD_CHANNEL,
				note = pitch,
				velocity = jambuddy.constants.velocity.DEFAULT_CHORD_VELOCITY
			)))

		for pitch in pitches:
			events.append((start + TICKS_PER_BAR, mido.Message("note_off", channel=CHORD_CHANNEL, note=pitch, velocity=0)))

	return events


def _drum_events (
	bars: int,
	drum_pattern: jambuddy.drum_patterns.DrumPattern
) -> typing.List[typing.Tuple[int, mido.Message]]:

	channel = jambuddy.constants.gm_drums.GM_DRUM_CHANNEL

	events: typing.List[typing.Tuple[int, mido.Message]] = [
		(0, mido.Message("program_change", channel=channel, program=0))
	]

	for step_index in range(bars * STEPS_PER_BAR):

		step = jambuddy.drum_patterns.step_at(drum_pattern, step_index)

		if step is None:
			continue

		tick = step_index * TICKS_PER_EIGHTH
		hits = [_DRUM_HITS[voice] for voice in step.voices()]

		for note, velocity in hits:
			events.append((tick, mido.Message("note_on", channel=channel, note=note, velocity=velocity)))

		for note, _velocity in hits:
			events.append((tick + DRUM_NOTE_TICKS, mido.Message("note_off", channel=channel, note=note, velocity=0)))

	return events


def build_midi_file (
	progression: typing.Sequence[str],
	bpm: float,
	drum_pattern: jambuddy.drum_patterns.DrumPattern,
	include_tempo: bool = False
) -> mido.MidiFile:

	"""
	Build the two-track ``mido.MidiFile`` for a progression.

	Parameters:
		progression: One chord symbol per bar; rests and unparseable symbols
			are silent bars.
		bpm: Tempo, 40-240.  Only written when ``include_tempo`` is set.
		drum_pattern: Eighth-note steps, looped across the progression.
		include_tempo: Start the chord track with a tempo meta event.

	Raises:
		MidiExportError: For an empty progression or an out-of-range tempo.
	"""

	_validate(progression, bpm)

	mid = mido.MidiFile(type=1, ticks_per_beat=TICKS_PER_QUARTER_NOTE)
	mid.tracks.append(_to_track(_chord_events(progression, bpm, include_tempo)))
	mid.tracks.append(_to_track(_drum_events(len(progression), drum_pattern)))

	return mid


def _track_chunk (track: mido.MidiTrack) -> bytes:

	data = bytearray()

	for message in track:

		if message.is_meta and message.type == "end_of_track":
			continue

		data += write_vlq(message.time)
		data += bytes(message.bytes())

	data += _END_OF_TRACK

	return b"MTrk" + struct.pack(">I", len(data)) + bytes(data)


def encode (
	progression: typing.Sequence[str],
	bpm: float,
	drum_pattern: jambuddy.drum_patterns.DrumPattern,
	include_tempo: bool = False
) -> bytes:

	"""
	Encode a progression as Standard MIDI File bytes.

	Example:
		```python
		data = encode(["C", "Am", "F", "G"], 120, store.get("Pop Rock"))
		data[:14]  # b"MThd\\x00\\x00\\x00\\x06\\x00\\x01\\x00\\x02\\x01\\xe0"
		```

	Raises:
		MidiExportError: For an empty progression or an out-of-range tempo.
	"""

	mid = build_midi_file(progression, bpm, drum_pattern, include_tempo)

	header = b"MThd" + struct.pack(">IHHH", 6, mid.type, len(mid.tracks), mid.ticks_per_beat)

	return header + b"".join(_track_chunk(track) for track in mid.tracks)


def save_midi (
	filename: str,
	progression: typing.Sequence[str],
	bpm: float,
	drum_pattern: jambuddy.drum_patterns.DrumPattern,
	include_tempo: bool = False
) -> None:

	"""Encode a progression and write it to ``filename``."""

	data = encode(progression, bpm, drum_pattern, include_tempo)

	with open(filename, "wb") as f:
		f.write(data)

	logger.info(f"Saved {filename} ({len(progression)} bars, {len(data)} bytes)")
