"""Bar-synchronised playback of a chord progression.

``PlaybackScheduler`` drives four tracks from the shared ``Transport``:

- **chords** - the voiced chord for the bar, or an arpeggio of it;
- **bass** - the chord root two octaves below the voicing's base octave;
- **harmony** - an optional single note a fixed interval above the root;
- **drums** - an eighth-note step pattern that cycles independently of bars.

Every event belongs to the session's ``CancellationToken``, so ``stop()``
removes all of them at once.  Within one pulse, note releases come first,
then chord, bass, harmony and drums in that order.

With a loop target the scheduler counts passes through bar 0 of the
progression and, when the pass after the last one begins, stops and calls the
completion callback once, from the event loop rather than from inside the
transport callback.
"""

import asyncio
import dataclasses
import logging
import random
import typing

import jambuddy.arpeggiator
import jambuddy.audio_graph
import jambuddy.chords
import jambuddy.constants.pulses
import jambuddy.constants.velocity
import jambuddy.drum_patterns
import jambuddy.event_emitter
import jambuddy.transport
import jambuddy.voicings


logger = logging.getLogger(__name__)


MIN_BPM = 40
MAX_BPM = 240

HARMONY_INTERVALS: typing.Tuple[str, ...] = ("2nd", "3rd", "5th", "6th", "7th")

PRIORITY_RELEASE = -1
PRIORITY_CHORD = 0
PRIORITY_BASS = 1
PRIORITY_HARMONY = 2
PRIORITY_DRUMS = 3

BAR_PULSES = jambuddy.constants.pulses.PULSES_PER_BAR
STEP_PULSES = jambuddy.constants.pulses.MIDI_EIGHTH_NOTE
DRUM_GATE_PULSES = jambuddy.constants.pulses.MIDI_SIXTEENTH_NOTE

BASS_OCTAVES_BELOW = 2


def validate_bpm (bpm: float) -> float:

	if not MIN_BPM <= bpm <= MAX_BPM:
		raise ValueError(f"BPM must be between {MIN_BPM} and {MAX_BPM}, got {bpm}")

	return bpm


def _root_midi (symbol: str, octave: int) -> typing.Optional[int]:

	root_pc = jambuddy.chords.root_pitch_class(symbol)

	if root_pc is None:
		return None

	return 12 * (octave + 1) + root_pc


def harmony_semitones (symbol: str, interval: str) -> typing.Optional[int]:

	"""Semitones above the root for a harmony interval, or ``None`` when silent.

	The interval follows the chord's quality: a ``"3rd"`` on a minor chord is
	minor, a ``"7th"`` on a dominant chord is flat, and so on.  A third over a
	suspended chord, and any interval over a rest, is silent.
	"""

	if interval not in HARMONY_INTERVALS:
		raise ValueError(f"Unknown harmony interval: {interval!r}. Available: {', '.join(HARMONY_INTERVALS)}")

	if jambuddy.chords.parse_chord(symbol) is None:
		return None

	minor = jambuddy.chords.is_minor(symbol)
	diminished = jambuddy.chords.is_diminished(symbol)

	if interval == "2nd":
		return 2

	if interval == "3rd":
		if jambuddy.chords.is_suspended(symbol):
			return None
		return 3 if minor else 4

	if interval == "5th":
		return 6 if diminished else 7

	if interval == "6th":
		return 8 if minor else 9

	flat_seventh = minor or diminished or jambuddy.chords.is_dominant(symbol)

	return 10 if flat_seventh else 11


def harmony_note (symbol: str, interval: str, octave_offset: int = 0) -> typing.Optional[int]:

	"""MIDI note of the harmony voice: the interval above the root in octave ``4 + octave_offset``."""

	semitones = harmony_semitones(symbol, interval)
	root = _root_midi(symbol, jambuddy.chords.BASE_OCTAVE + octave_offset)

	if semitones is None or root is None:
		return None

	return root + semitones


def bass_note (symbol: str, octave_offset: int = 0) -> typing.Optional[int]:

	"""MIDI note of the bass: the chord root two octaves below the voicing (``C`` → 36)."""

	return _root_midi(symbol, jambuddy.chords.BASE_OCTAVE + octave_offset - BASS_OCTAVES_BELOW)


@dataclasses.dataclass
class VoicingOptions:

	octave_offset: int = 0
	spread: bool = False
	use_inversions: bool = True
	allow_variation: bool = False


@dataclasses.dataclass
class PlaybackSession:

	"""
	State of one run of the progression, from ``start()`` to ``stop()``.
	"""

	progression: typing.List[str]
	drum_pattern: jambuddy.drum_patterns.DrumPattern
	bpm: float
	loop_target: typing.Optional[int]
	arpeggiator: jambuddy.arpeggiator.ArpeggiatorConfig
	harmony_interval: typing.Optional[str]
	voicing: VoicingOptions
	voiced: typing.List[typing.List[int]]
	token: jambuddy.transport.CancellationToken
	origin_pulse: int
	on_chord: typing.Optional[typing.Callable[[int], typing.Any]] = None
	on_ended: typing.Optional[typing.Callable[[], typing.Any]] = None
	current_bar: int = -1
	chord_index: int = -1
	current_loop: int = 0
	ended: bool = False


class PlaybackScheduler:

	"""
	Plays a progression with bass, harmony and drums on an ``AudioGraph``.

	Settings live on the scheduler and survive ``stop()``; each ``start()``
	creates a new ``PlaybackSession`` from them.  Setters called while
	playing take effect from the next event.

	Example:
		```python
		scheduler = PlaybackScheduler(graph, transport)
		scheduler.set_drum_pattern("Funk")
		scheduler.start(["C", "Am", "F", "G"], bpm=96, on_chord=print)
		...
		scheduler.stop()
		```
	"""

	def __init__ (
		self,
		graph: jambuddy.audio_graph.AudioGraph,
		transport: jambuddy.transport.Transport,
		events: typing.Optional[jambuddy.event_emitter.EventEmitter] = None,
		drum_patterns: typing.Optional[jambuddy.drum_patterns.DrumPatternStore] = None,
		rng: typing.Optional[random.Random] = None
	) -> None:

		self.graph = graph
		self.transport = transport
		self.events = events or jambuddy.event_emitter.EventEmitter()
		self.drum_patterns = drum_patterns or jambuddy.drum_patterns.DrumPatternStore()
		self.rng = rng or random.Random()

		self.progression: typing.List[str] = []
		self.drum_pattern: jambuddy.drum_patterns.DrumPattern = self.drum_patterns.get(jambuddy.drum_patterns.DEFAULT_PATTERN_NAME)
		self.bpm: float = 120
		self.arpeggiator = jambuddy.arpeggiator.ArpeggiatorConfig()
		self.harmony_interval: typing.Optional[str] = None
		self.voicing = VoicingOptions()

		self.session: typing.Optional[PlaybackSession] = None


	@property
	def is_playing (self) -> bool:

		return self.session is not None


	@property
	def current_chord_index (self) -> int:

		return self.session.chord_index if self.session is not None else -1


	def voice (self) -> typing.List[typing.List[int]]:

		"""Voice the current progression with the current voicing options."""

		return jambuddy.voicings.voice_progression(
			self.progression,
			octave_offset = self.voicing.octave_offset,
			spread = self.voicing.spread,
			use_inversions = self.voicing.use_inversions,
			allow_variation = self.voicing.allow_variation,
			rng = self.rng
		)


	def start (
		self,
		progression: typing.Optional[typing.Sequence[str]] = None,
		drum_pattern: typing.Union[None, str, typing.Sequence[typing.Any]] = None,
		bpm: typing.Optional[float] = None,
		loop_count: typing.Optional[int] = None,
		on_chord: typing.Optional[typing.Callable[[int], typing.Any]] = None,
		on_ended: typing.Optional[typing.Callable[[], typing.Any]] = None,
		start_pulse: typing.Optional[int] = None
	) -> bool:

		"""Start playing from bar 0.

		Parameters:
			progression: Chords to play (defaults to the current progression).
			drum_pattern: Pattern name or inline pattern.
			bpm: Tempo, 40-240.
			loop_count: Stop after this many passes through the progression.
				``None`` loops until ``stop()``.
			on_chord: Called with the chord index at every bar.
			on_ended: Called once when the loop target is reached.
			start_pulse: Transport pulse of bar 0 (defaults to the current pulse).
				A pulse already reached plays on the next pulse processed.

		Returns:
			True if playback started.  False, with nothing scheduled, while the
			graph is resetting or not ready, or when the progression is empty.
		"""

		if self.graph.is_resetting:
			logger.warning("Start ignored: audio graph reset in progress")
			return False

		if not self.graph.is_ready:
			logger.warning("Start ignored: audio graph is not initialised")
			return False

		if loop_count is not None and loop_count < 1:
			raise ValueError("loop_count must be at least 1")

		if progression is not None:
			self.set_progression(progression)

		if drum_pattern is not None:
			self.set_drum_pattern(drum_pattern)

		if bpm is not None:
			self.set_bpm(bpm)

		if not self.progression:
			logger.warning("Start ignored: progression is empty")
			return False

		if self.session is not None:
			self.stop()

		self.transport.set_bpm(self.bpm)

		if not self.transport.running:
			self.transport.start()

		token = jambuddy.transport.CancellationToken("playback")
		origin = self.transport.pulse_count if start_pulse is None else start_pulse

		self.session = PlaybackSession(
			progression = list(self.progression),
			drum_pattern = self.drum_pattern,
			bpm = self.bpm,
			loop_target = loop_count,
			arpeggiator = self.arpeggiator,
			harmony_interval = self.harmony_interval,
			voicing = dataclasses.replace(self.voicing),
			voiced = self.voice(),
			token = token,
			origin_pulse = origin,
			on_chord = on_chord,
			on_ended = on_ended,
		)

		self.transport.schedule_repeating(origin, BAR_PULSES, self._on_bar, priority=PRIORITY_CHORD, token=token)
		self.transport.schedule_repeating(origin, STEP_PULSES, self._on_drum_step, priority=PRIORITY_DRUMS, token=token)

		loops = f"{loop_count} loops" if loop_count is not None else "looping"
		logger.info(f"Playback started: {len(self.progression)} bars at {self.bpm} BPM ({loops})")

		return True


	def stop (self) -> None:

		"""Cancel every scheduled event and silence all voices.  Safe to call at any time."""

		session = self.session
		self.session = None

		if session is not None:
			self.transport.cancel(session.token)

		self.transport.stop()
		self.graph.release_all()

		if session is not None:
			logger.info("Playback stopped")


	def pause (self) -> None:

		self.transport.pause()
		self.graph.release_all()


	def resume (self) -> None:

		self.transport.resume()


	def set_bpm (self, bpm: float) -> None:

		self.bpm = validate_bpm(bpm)

		if self.session is not None:
			self.session.bpm = self.bpm
			self.transport.set_bpm(self.bpm)


	def set_progression (self, progression: typing.Sequence[str]) -> None:

		self.progression = list(progression)
		self._revoice()


	def set_chord (self, index: int, symbol: str) -> None:

		"""Replace one chord of the progression.

		Raises:
			IndexError: If ``index`` is outside the progression.
		"""

		if not 0 <= index < len(self.progression):
			raise IndexError(f"Chord index {index} out of range (progression has {len(self.progression)} chords)")

		self.progression[index] = symbol
		self._revoice()


	def set_drum_pattern (self, pattern: typing.Union[str, typing.Sequence[typing.Any]]) -> None:

		self.drum_pattern = self.drum_patterns.resolve(pattern)

		if self.session is not None:
			self.session.drum_pattern = self.drum_pattern


	def set_arpeggiator (self, config: jambuddy.arpeggiator.ArpeggiatorConfig) -> None:

		self.arpeggiator = config

		if self.session is not None:
			self.session.arpeggiator = config


	def set_harmony_interval (self, interval: typing.Optional[str]) -> None:

		if interval is not None and interval not in HARMONY_INTERVALS:
			raise ValueError(f"Unknown harmony interval: {interval!r}. Available: {', '.join(HARMONY_INTERVALS)}")

		self.harmony_interval = interval
		self.graph.set_harmony_enabled(interval is not None)

		if self.session is not None:
			self.session.harmony_interval = interval


	def set_voicing (
		self,
		octave_offset: typing.Optional[int] = None,
		spread: typing.Optional[bool] = None,
		use_inversions: typing.Optional[bool] = None,
		allow_variation: typing.Optional[bool] = None
	) -> None:

		"""Change any of the voicing options; omitted ones keep their value."""

		changes = {
			name: value
			for name, value in (
				("octave_offset", octave_offset),
				("spread", spread),
				("use_inversions", use_inversions),
				("allow_variation", allow_variation),
			)
			if value is not None
		}

		self.voicing = dataclasses.replace(self.voicing, **changes)
		self._revoice()


	def _revoice (self) -> None:

		if self.session is None:
			return

		self.session.progression = list(self.progression)
		self.session.voicing = dataclasses.replace(self.voicing)
		self.session.voiced = self.voice()


	def _schedule_release (self, pulse: int, release: typing.Callable[[], None], token: jambuddy.transport.CancellationToken) -> None:

		self.transport.schedule(pulse, lambda _pulse: release(), priority=PRIORITY_RELEASE, token=token)


	def _on_bar (self, pulse: int) -> None:

		session = self.session

		if session is None or not session.progression or not self.graph.is_ready:
			return

		bar = (pulse - session.origin_pulse) // BAR_PULSES
		index = bar % len(session.progression)

		if index == 0:
			session.current_loop += 1

			if session.loop_target is not None and session.current_loop > session.loop_target:
				self._finish(session)
				return

		session.current_bar = bar
		session.chord_index = index

		symbol = session.progression[index]

		self._play_chord(session, pulse, index)
		self._play_bass(session, pulse, symbol)
		self._play_harmony(session, pulse, symbol)

		logger.debug(f"Bar {bar}: chord {index} {symbol!r}")

		if session.on_chord is not None:
			try:
				session.on_chord(index)
			except Exception:
				logger.exception("Chord position callback failed")

		self.events.emit("chord", index)


	def _play_chord (self, session: PlaybackSession, pulse: int, index: int) -> None:

		notes = session.voiced[index] if index < len(session.voiced) else []

		if not notes:
			return

		synth = self.graph.nodes.chord_synth
		velocity = jambuddy.constants.velocity.DEFAULT_CHORD_VELOCITY

		if not session.arpeggiator.enabled:

			for note in notes:
				synth.note_on(note, velocity)
				self._schedule_release(pulse + BAR_PULSES, lambda note=note: synth.note_off(note), session.token)

			return

		for offset, note, duration in jambuddy.arpeggiator.expand(notes, session.arpeggiator, BAR_PULSES, self.rng):

			if offset == 0:
				synth.note_on(note, velocity)
			else:
				self.transport.schedule(
					pulse + offset,
					lambda _pulse, note=note: synth.note_on(note, velocity),
					priority = PRIORITY_CHORD,
					token = session.token
				)

			self._schedule_release(pulse + offset + duration, lambda note=note: synth.note_off(note), session.token)


	def _play_bass (self, session: PlaybackSession, pulse: int, symbol: str) -> None:

		note = bass_note(symbol, session.voicing.octave_offset)

		if note is None:
			return

		bass = self.graph.nodes.bass_synth
		bass.note_on(note, jambuddy.constants.velocity.DEFAULT_BASS_VELOCITY)
		self._schedule_release(pulse + BAR_PULSES, lambda: bass.note_off(note), session.token)


	def _play_harmony (self, session: PlaybackSession, pulse: int, symbol: str) -> None:

		if session.harmony_interval is None:
			return

		note = harmony_note(symbol, session.harmony_interval, session.voicing.octave_offset)

		if note is None:
			return

		harmony = self.graph.nodes.harmony_synth
		harmony.note_on(note, jambuddy.constants.velocity.DEFAULT_HARMONY_VELOCITY)
		self._schedule_release(pulse + BAR_PULSES, lambda: harmony.note_off(note), session.token)


	def _on_drum_step (self, pulse: int) -> None:

		session = self.session

		if session is None or not self.graph.is_ready:
			return

		step_index = (pulse - session.origin_pulse) // STEP_PULSES
		step = jambuddy.drum_patterns.step_at(session.drum_pattern, step_index)

		if step is None:
			return

		for voice in step.voices():
			drum = self.graph.nodes.drums[voice]
			drum.trigger()
			self._schedule_release(pulse + DRUM_GATE_PULSES, drum.choke, session.token)


	def _finish (self, session: PlaybackSession) -> None:

		"""Stop at the loop target and report completion outside the transport callback."""

		if session.ended:
			return

		session.ended = True
		self.stop()

		logger.info(f"Loop target reached after {session.loop_target} loops")

		asyncio.get_running_loop().call_soon(self._notify_ended, session.on_ended)


	def _notify_ended (self, on_ended: typing.Optional[typing.Callable[[], typing.Any]]) -> None:

		if on_ended is not None:
			try:
				on_ended()
			except Exception:
				logger.exception("Playback completion callback failed")

		self.events.emit("ended")
