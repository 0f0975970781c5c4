"""MIDI node graph used to render a jam.

Nodes are wired into a signal chain the way a mixing desk would be:

	instrument → volume → panner → (filter → delay → reverb) → limiter → output

but what flows through the chain are ``mido.Message`` objects, not audio.
Instruments create note messages; mixer and effect nodes adjust or filter
them on the way past and send their own control changes (CC 7 volume,
CC 10 pan, CC 74/71 filter, CC 91/94 effect sends) for the channels that
feed into them.  The ``OutputContext`` at the end of the chain owns the MIDI
output port.

Every node can be connected, disconnected and disposed.  ``dispose()`` is
idempotent, and a disposed node silently drops anything sent to it.
"""

import logging
import math
import typing

import mido

import jambuddy.constants.gm_drums
import jambuddy.constants.velocity
import jambuddy.synth_config


logger = logging.getLogger(__name__)


CC_VOLUME = 7
CC_PAN = 10
CC_RESONANCE = 71
CC_RELEASE = 72
CC_ATTACK = 73
CC_CUTOFF = 74
CC_DECAY = 75
CC_REVERB_SEND = 91
CC_DELAY_SEND = 94
CC_ALL_SOUND_OFF = 120
CC_ALL_NOTES_OFF = 123


class EngineError (RuntimeError):

	"""
	The output could not be brought back after a reset.  Playback cannot
	continue until the engine is rebuilt.
	"""


def _clamp_cc (value: float) -> int:

	return max(0, min(127, int(round(value))))


def db_to_cc (db: float) -> int:

	"""Map a level in dB to a CC 7 value (0 dB → 127, -40 dB → 13)."""

	return _clamp_cc(127 * 10 ** (db / 40))


def pan_to_cc (pan: float) -> int:

	"""Map pan in ``[-1, 1]`` to CC 10 (centre is 64)."""

	return _clamp_cc(64 + pan * 63.5)


def seconds_to_cc (seconds: float, longest: float = 4.0) -> int:

	"""Map an envelope time to a sound-controller value on a square-root curve."""

	return _clamp_cc(127 * math.sqrt(min(1.0, max(0.0, seconds) / longest)))


def cutoff_to_cc (cutoff: float) -> int:

	"""Map a cutoff frequency (20 Hz … 20 kHz, logarithmic) to CC 74."""

	return _clamp_cc(127 * math.log(max(cutoff, 20.0) / 20.0) / math.log(1000.0))


def resonance_to_cc (q: float) -> int:

	return _clamp_cc(q / 20.0 * 127)


class Node:

	"""
	Base class: a named stage with inputs and outputs.
	"""

	def __init__ (self, name: str) -> None:

		self.name = name
		self.inputs: typing.List["Node"] = []
		self.outputs: typing.List["Node"] = []
		self.disposed = False


	def __repr__ (self) -> str:

		return f"<{type(self).__name__} {self.name!r}>"


	def connect (self, destination: "Node") -> "Node":

		"""Route this node's output into ``destination`` and return it, so chains read left to right."""

		if self.disposed or destination.disposed:
			raise ValueError(f"Cannot connect disposed node {self!r} → {destination!r}")

		if destination not in self.outputs:
			self.outputs.append(destination)
			destination.inputs.append(self)

		return destination


	def disconnect (self) -> None:

		"""Detach from every input and output."""

		for destination in self.outputs:
			if self in destination.inputs:
				destination.inputs.remove(self)

		for source in self.inputs:
			if self in source.outputs:
				source.outputs.remove(self)

		self.outputs = []
		self.inputs = []


	def source_channels (self) -> typing.Set[int]:

		"""MIDI channels of every instrument upstream of this node."""

		channels: typing.Set[int] = set()

		for source in self.inputs:
			channels |= source.source_channels()

		return channels


	def receive (self, message: mido.Message) -> None:

		if self.disposed:
			return

		processed = self.process(message)

		if processed is not None:
			self.send(processed)


	def process (self, message: mido.Message) -> typing.Optional[mido.Message]:

		"""Transform a message on its way through; ``None`` drops it."""

		return message


	def send (self, message: mido.Message) -> None:

		for destination in list(self.outputs):
			destination.receive(message)


	def send_control (self, control: int, value: int, channels: typing.Optional[typing.Iterable[int]] = None) -> None:

		"""Send a control change downstream for the given (or all upstream) channels."""

		for channel in sorted(self.source_channels() if channels is None else channels):
			self.send(mido.Message("control_change", channel=channel, control=control, value=value))


	def apply (self) -> None:

		"""Transmit the node's current settings.  Most nodes have none."""


	def dispose (self) -> None:

		"""Release the node.  Calling it again does nothing."""

		if self.disposed:
			return

		self._on_dispose()
		self.disconnect()
		self.disposed = True

		logger.debug(f"Disposed {self!r}")


	def _on_dispose (self) -> None:

		pass


class OutputContext (Node):

	"""
	End of the chain: the MIDI output port, with a running / suspended /
	closed state.

	While suspended nothing is transmitted.  ``resume()`` reopens the port
	through ``reopen`` if it was lost and raises ``EngineError`` when that is
	impossible.
	"""

	RUNNING = "running"
	SUSPENDED = "suspended"
	CLOSED = "closed"

	def __init__ (
		self,
		port: typing.Any,
		reopen: typing.Optional[typing.Callable[[], typing.Any]] = None,
		name: str = "output"
	) -> None:

		super().__init__(name)

		self.port = port
		self.reopen = reopen
		self.state = self.RUNNING if port is not None else self.SUSPENDED


	def receive (self, message: mido.Message) -> None:

		if self.disposed or self.state != self.RUNNING or self.port is None:
			return

		try:
			self.port.send(message)
		except Exception:
			logger.exception("MIDI send failed (device may be disconnected)")


	def panic (self) -> None:

		"""Send All Notes Off and All Sound Off on every channel."""

		if self.port is None:
			return

		try:
			for channel in range(16):
				self.port.send(mido.Message("control_change", channel=channel, control=CC_ALL_NOTES_OFF, value=0))
				self.port.send(mido.Message("control_change", channel=channel, control=CC_ALL_SOUND_OFF, value=0))
		except Exception:
			logger.exception("MIDI panic failed (device may be disconnected)")


	def suspend (self) -> None:

		if self.state == self.RUNNING:
			self.panic()
			self.state = self.SUSPENDED
			logger.info("Output suspended")


	def resume (self) -> None:

		"""Start transmitting again, reopening the port if needed.

		Raises:
			EngineError: If the context was closed or the port cannot be opened.
		"""

		if self.state == self.CLOSED:
			raise EngineError("Output context is closed")

		if self.port is None or getattr(self.port, "closed", False):

			if self.reopen is None:
				raise EngineError("MIDI output port is gone and cannot be reopened")

			try:
				self.port = self.reopen()
			except Exception as exc:
				raise EngineError(f"Failed to reopen MIDI output: {exc}") from exc

			if self.port is None:
				raise EngineError("No MIDI output available")

		self.state = self.RUNNING
		logger.info("Output resumed")


	def close (self) -> None:

		if self.state == self.CLOSED:
			return

		self.panic()

		if self.port is not None:
			try:
				self.port.close()
			except Exception:
				logger.exception("Failed to close MIDI output")

		self.port = None
		self.state = self.CLOSED


class Limiter (Node):

	"""
	Master stage: caps note velocity at a ceiling derived from a threshold
	in dB (-1 dB ≈ velocity 113).
	"""

	def __init__ (self, threshold_db: float = -1.0, name: str = "limiter") -> None:

		super().__init__(name)

		self.threshold_db = threshold_db
		self.ceiling = _clamp_cc(127 * 10 ** (threshold_db / 20))


	def process (self, message: mido.Message) -> typing.Optional[mido.Message]:

		if message.type == "note_on" and message.velocity > self.ceiling:
			return message.copy(velocity=self.ceiling)

		return message


class Reverb (Node):

	"""Reverb send level (CC 91) for every channel routed through it."""

	def __init__ (self, room_size: float = 0.2, wet: float = 0.1, name: str = "reverb") -> None:

		super().__init__(name)

		self.room_size = room_size
		self.wet = wet


	def apply (self) -> None:

		self.send_control(CC_REVERB_SEND, _clamp_cc(self.wet * 127))


class PingPongDelay (Node):

	"""Delay send level (CC 94) for every channel routed through it."""

	def __init__ (self, delay_time: str = "8n.", feedback: float = 0.2, wet: float = 0.1, name: str = "delay") -> None:

		super().__init__(name)

		self.delay_time = delay_time
		self.feedback = feedback
		self.wet = wet


	def apply (self) -> None:

		self.send_control(CC_DELAY_SEND, _clamp_cc(self.wet * 127))


class Filter (Node):

	"""Low-pass filter: cutoff on CC 74 and resonance on CC 71."""

	def __init__ (
		self,
		cutoff: float = jambuddy.synth_config.DEFAULT_FILTER_CUTOFF,
		resonance: float = jambuddy.synth_config.DEFAULT_FILTER_RESONANCE,
		name: str = "filter"
	) -> None:

		super().__init__(name)

		self.settings = jambuddy.synth_config.FilterSettings(cutoff=cutoff, resonance=resonance)


	def set (self, settings: jambuddy.synth_config.FilterSettings) -> None:

		self.settings = settings
		self.apply()


	def apply (self) -> None:

		self.send_control(CC_CUTOFF, cutoff_to_cc(self.settings.cutoff))
		self.send_control(CC_RESONANCE, resonance_to_cc(self.settings.resonance))


class Volume (Node):

	"""
	Channel volume in dB.  Muting drops note-ons.

	Voices that share a MIDI channel (the drum kit) cannot use CC 7, so with
	``shared_channel`` the level is applied to note velocities instead.
	"""

	def __init__ (self, db: float = 0.0, mute: bool = False, shared_channel: bool = False, name: str = "volume") -> None:

		super().__init__(name)

		self.db = db
		self.mute = mute
		self.shared_channel = shared_channel


	def set_db (self, db: float) -> None:

		self.db = db
		self.apply()


	def set_mute (self, mute: bool) -> None:

		self.mute = mute


	def process (self, message: mido.Message) -> typing.Optional[mido.Message]:

		if message.type == "note_on" and message.velocity > 0:

			if self.mute:
				return None

			if self.shared_channel:
				scaled = message.velocity * 10 ** (self.db / 40)
				return message.copy(velocity=max(1, _clamp_cc(scaled)))

		return message


	def apply (self) -> None:

		if not self.shared_channel:
			self.send_control(CC_VOLUME, db_to_cc(self.db))


class Panner (Node):

	"""Stereo position on CC 10.  Not transmitted for voices sharing a channel."""

	def __init__ (self, pan: float = 0.0, shared_channel: bool = False, name: str = "panner") -> None:

		super().__init__(name)

		if not -1 <= pan <= 1:
			raise ValueError(f"Pan must be in [-1, 1], got {pan}")

		self.pan = pan
		self.shared_channel = shared_channel


	def set_pan (self, pan: float) -> None:

		if not -1 <= pan <= 1:
			raise ValueError(f"Pan must be in [-1, 1], got {pan}")

		self.pan = pan
		self.apply()


	def apply (self) -> None:

		if not self.shared_channel:
			self.send_control(CC_PAN, pan_to_cc(self.pan))


class Instrument (Node):

	"""
	A sound source on one MIDI channel that keeps track of its sounding notes.

	When ``max_polyphony`` is reached the oldest note is released to make
	room for the new one.
	"""

	def __init__ (self, channel: int, max_polyphony: typing.Optional[int] = None, name: str = "instrument") -> None:

		super().__init__(name)

		if not 0 <= channel <= 15:
			raise ValueError(f"MIDI channel must be 0-15, got {channel}")

		self.channel = channel
		self.max_polyphony = max_polyphony
		self.sounding: typing.List[int] = []


	def source_channels (self) -> typing.Set[int]:

		return {self.channel}


	def note_on (self, note: int, velocity: int = jambuddy.constants.velocity.DEFAULT_CHORD_VELOCITY) -> None:

		if self.disposed:
			return

		note = max(0, min(127, note))
		velocity = max(1, min(jambuddy.constants.velocity.MAX_VELOCITY, velocity))

		if note in self.sounding:
			self.note_off(note)

		while self.max_polyphony is not None and len(self.sounding) >= self.max_polyphony:
			self.note_off(self.sounding[0])

		self.sounding.append(note)
		self.send(mido.Message("note_on", channel=self.channel, note=note, velocity=velocity))


	def note_off (self, note: int) -> None:

		if note not in self.sounding:
			return

		self.sounding.remove(note)
		self.send(mido.Message("note_off", channel=self.channel, note=note, velocity=0))


	def release_all (self) -> None:

		for note in list(self.sounding):
			self.note_off(note)


	def _on_dispose (self) -> None:

		self.release_all()


class PolySynth (Instrument):

	"""Polyphonic synth voice for chords and the harmony line."""

	def __init__ (
		self,
		channel: int,
		config: jambuddy.synth_config.SynthConfig = jambuddy.synth_config.DEFAULT_SYNTH_CONFIG,
		max_polyphony: typing.Optional[int] = None,
		name: str = "polysynth"
	) -> None:

		super().__init__(channel, max_polyphony=max_polyphony, name=name)

		self.config = config


	def set_config (self, config: jambuddy.synth_config.SynthConfig) -> None:

		self.config = config
		self.apply()


	def apply (self) -> None:

		"""Send the program change and envelope controllers for the current sound."""

		if self.disposed:
			return

		envelope = self.config.envelope

		self.send(mido.Message("program_change", channel=self.channel, program=self.config.oscillator.program))
		self.send_control(CC_ATTACK, seconds_to_cc(envelope.attack))
		self.send_control(CC_DECAY, seconds_to_cc(envelope.decay))
		self.send_control(CC_RELEASE, seconds_to_cc(envelope.release))


class MonoSynth (PolySynth):

	"""One note at a time; a new note cuts the previous one."""

	def __init__ (
		self,
		channel: int,
		config: jambuddy.synth_config.SynthConfig = jambuddy.synth_config.DEFAULT_SYNTH_CONFIG,
		name: str = "monosynth"
	) -> None:

		super().__init__(channel, config=config, max_polyphony=1, name=name)


class DrumVoice (Instrument):

	"""A single drum sound: a fixed note on the kit's channel."""

	def __init__ (
		self,
		note: int,
		channel: int = jambuddy.constants.gm_drums.GM_DRUM_CHANNEL,
		velocity: int = 100,
		name: str = "drum"
	) -> None:

		super().__init__(channel, name=name)

		self.note = note
		self.velocity = velocity


	def trigger (self, velocity: typing.Optional[int] = None) -> None:

		self.note_on(self.note, self.velocity if velocity is None else velocity)


	def choke (self) -> None:

		self.note_off(self.note)
