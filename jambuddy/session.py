import asyncio
import logging
import random
import signal
import typing

import jambuddy.audio_graph
import jambuddy.drum_patterns
import jambuddy.event_emitter
import jambuddy.generator
import jambuddy.harmony
import jambuddy.jam_state
import jambuddy.midi_file
import jambuddy.osc
import jambuddy.scheduler
import jambuddy.synth_config
import jambuddy.training
import jambuddy.transport


logger = logging.getLogger(__name__)


MODES: typing.Tuple[str, ...] = ("play", "train", "export")


class JamSession:

	"""
	The top-level controller for a jam.

	A ``JamSession`` owns one transport clock, one audio graph on a MIDI
	output, the playback scheduler and the training-mode controller, and
	keeps the musical settings (progression, key, tempo, sounds) that a jam
	file stores.

	Typical workflow:
	1. Create a ``JamSession`` (optionally from a jam file).
	2. Set the progression, pattern and sounds.
	3. Call ``session.run("play")`` or ``session.run("train")``.
	"""

	def __init__ (
		self,
		output_device: typing.Optional[str] = None,
		bpm: float = 120,
		port: typing.Any = None,
		drum_kit: typing.Optional[str] = None,
		asset_timeout: float = 2.0,
		settle_seconds: float = 0.15,
		render_mode: bool = False,
		seed: typing.Optional[int] = None
	) -> None:

		"""
		Initialize a new jam session.

		Parameters:
			output_device: Name of the MIDI output.  If ``None``, the only
				available device is used, or the user is asked to pick one.
			bpm: Initial tempo, 40-240 (default 120).
			port: An already open mido output port (takes precedence).
			drum_kit: Path of a YAML drum kit file; General MIDI drums
				otherwise.
			asset_timeout: Seconds to wait for the drum kit.
			settle_seconds: Pause inside an audio graph reset.
			render_mode: Run the clock in simulated time (tests, offline use).
			seed: Seed for voicing variation and random arpeggios.

		Example:
			```python
			session = jambuddy.JamSession(output_device="IAC Driver Bus 1")
			session.set_progression(["Am", "F", "C", "G"])
			session.run("play")
			```
		"""

		self.rng = random.Random(seed)
		self.events = jambuddy.event_emitter.EventEmitter()
		self.transport = jambuddy.transport.Transport(render_mode=render_mode)

		self.graph = jambuddy.audio_graph.AudioGraph(
			output_device_name = output_device,
			port = port,
			drum_kit_loader = jambuddy.audio_graph.drum_kit_file_loader(drum_kit) if drum_kit else None,
			asset_timeout = asset_timeout,
			settle_seconds = settle_seconds,
			transport = self.transport
		)

		self.drum_patterns = jambuddy.drum_patterns.DrumPatternStore()

		self.scheduler = jambuddy.scheduler.PlaybackScheduler(
			self.graph,
			self.transport,
			events = self.events,
			drum_patterns = self.drum_patterns,
			rng = self.rng
		)

		self.scheduler.set_bpm(bpm)
		self.trainer = jambuddy.training.TrainingModeController(self.scheduler)

		self.music_key = jambuddy.jam_state.DEFAULT_KEY
		self.scale = jambuddy.jam_state.DEFAULT_SCALE
		self.synth_preset_name = jambuddy.synth_config.DEFAULT_PRESET_NAME
		self.drum_pattern_reference: jambuddy.jam_state.DrumPatternReference = jambuddy.drum_patterns.DEFAULT_PATTERN_NAME

		self._osc_bridge: typing.Optional[jambuddy.osc.OscBridge] = None
		self._pending: typing.Set["asyncio.Task[typing.Any]"] = set()

	@property
	def progression (self) -> typing.List[str]:
		"""The chords of the jam, one per bar."""
		return self.scheduler.progression

	@property
	def bpm (self) -> float:
		return self.scheduler.bpm

	@property
	def loop_count (self) -> int:
		"""Passes through the progression per training cycle."""
		return self.trainer.loop_count

	@property
	def is_training (self) -> bool:
		return self.trainer.is_running or self.trainer.state != jambuddy.training.TrainingState.IDLE

	def on_event (self, event_name: str, callback: typing.Callable[..., typing.Any]) -> None:

		"""
		Register a callback for an engine event (``"chord"``, ``"phase"``,
		``"count_in"``, ``"ended"``, ``"error"``).
		"""

		self.events.on(event_name, callback)


	# -----------------------------------------------------------------------
	# Musical settings
	# -----------------------------------------------------------------------

	def set_progression (self, progression: typing.Sequence[str]) -> None:

		self.scheduler.set_progression(progression)


	def set_chord (self, index: int, symbol: str) -> None:

		self.scheduler.set_chord(index, symbol)


	def set_key (self, key: str, scale: str = "Major") -> None:

		"""Set the key used for roman numerals and presets.

		Raises:
			ValueError: For an unknown key or scale.
		"""

		jambuddy.harmony.diatonic_chords(key, scale)

		self.music_key = key
		self.scale = scale


	def load_preset (self, name: str) -> typing.List[str]:

		"""Load a preset progression in the current key.

		The scale follows the preset's tonic: a preset starting on ``i`` is
		played in the relative minor of a major key.

		Raises:
			ValueError: If no preset has this name.
		"""

		presets = dict(jambuddy.harmony.PRESET_PROGRESSIONS)

		if name not in presets:
			raise ValueError(f"Unknown preset progression: {name!r}")

		romans = presets[name]
		scale = jambuddy.harmony.preset_scale(romans)
		key = self.music_key

		if scale != self.scale:
			key = jambuddy.harmony.relative_minor(key) if scale == "Minor" else jambuddy.harmony.relative_major(key)

		self.set_key(key, scale)
		self.set_progression(jambuddy.harmony.transpose_progression(key, scale, romans))

		return self.progression


	def randomize (self) -> typing.List[str]:

		"""Pick a random preset in a random key."""

		name, key, scale, chords = jambuddy.harmony.random_progression(self.rng)

		logger.info(f"Random progression: {name} in {key} {scale}")

		self.set_key(key, scale)
		self.set_progression(chords)

		return chords


	def roman_numerals (self) -> typing.List[str]:

		"""The progression as roman numerals in the current key."""

		return [jambuddy.harmony.roman_numeral(symbol, self.music_key, self.scale) for symbol in self.progression]


	async def generate (self, generator: jambuddy.generator.ProgressionGenerator, prompt: str) -> typing.List[str]:

		"""Ask a progression generator for chords and adopt its key, scale and progression.

		Raises:
			MalformedResponseError: If the answer fails validation; nothing
				is changed.
		"""

		result = await jambuddy.generator.generate_progression(generator, prompt)

		self.set_key(result.key, result.scale)
		self.set_progression(result.progression)

		return self.progression


	def set_bpm (self, bpm: float) -> None:

		"""
		Change the tempo (40-240 BPM), immediately if playing.
		"""

		self.scheduler.set_bpm(bpm)


	def set_drum_pattern (self, reference: jambuddy.jam_state.DrumPatternReference) -> None:

		self.scheduler.set_drum_pattern(reference)
		self.drum_pattern_reference = reference


	def set_volume (self, voice: str, db: float) -> None:

		self.graph.set_volume(voice, db)


	def set_pan (self, voice: str, pan: float) -> None:

		self.graph.set_pan(voice, pan)


	def set_synth_preset (
		self,
		name: str,
		cutoff: typing.Optional[float] = None,
		resonance: typing.Optional[float] = None
	) -> None:

		"""Switch the chord sound to a named preset, keeping the current filter unless given."""

		current = self.graph.synth_config.filter

		self.graph.apply_synth_config(jambuddy.synth_config.preset_config(
			name,
			cutoff = current.cutoff if cutoff is None else cutoff,
			resonance = current.resonance if resonance is None else resonance
		))

		self.synth_preset_name = name


	def set_synth_config (self, config: jambuddy.synth_config.SynthConfig) -> None:

		self.graph.apply_synth_config(config)


	def set_loop_count (self, loop_count: int) -> None:

		if loop_count < 1:
			raise ValueError("loop_count must be at least 1")

		self.trainer.loop_count = loop_count


	# -----------------------------------------------------------------------
	# Jam files
	# -----------------------------------------------------------------------

	def apply_jam_state (self, state: jambuddy.jam_state.JamState) -> None:

		"""Adopt every setting of a parsed jam file."""

		for name in self.drum_patterns.custom_names():
			self.drum_patterns.remove_custom(name)

		for name, pattern in state.custom_drum_patterns.items():
			if self.drum_patterns.is_built_in(name):
				logger.warning(f"Custom drum pattern {name!r} shadows a built-in pattern and was skipped")
				continue
			self.drum_patterns.add_custom(name, pattern)

		self.set_key(state.music_key, state.scale)
		self.scheduler.set_bpm(state.bpm)
		self.set_drum_pattern(state.drum_pattern)

		self.graph.apply_mixer(state.mixer)
		self.graph.apply_synth_config(state.synth_config)
		self.synth_preset_name = state.synth_preset_name

		self.scheduler.set_voicing(
			octave_offset = state.synth_octave,
			spread = state.spread_voicing,
			use_inversions = state.use_inversions,
			allow_variation = state.voicing_variation
		)
		self.scheduler.set_harmony_interval(state.harmony_interval)
		self.scheduler.set_arpeggiator(state.arpeggiator)
		self.set_loop_count(state.loop_count)

		self.set_progression(state.progression)


	def jam_state (self) -> jambuddy.jam_state.JamState:

		"""Snapshot the current settings as a ``JamState``."""

		voicing = self.scheduler.voicing

		return jambuddy.jam_state.JamState(
			progression = list(self.progression),
			bpm = self.bpm,
			music_key = self.music_key,
			scale = self.scale,
			drum_pattern = self.drum_pattern_reference,
			mixer = jambuddy.audio_graph.MixerSettings(
				volumes = dict(self.graph.mixer.volumes),
				pans = dict(self.graph.mixer.pans)
			),
			synth_config = self.graph.synth_config,
			synth_preset_name = self.synth_preset_name,
			use_inversions = voicing.use_inversions,
			synth_octave = voicing.octave_offset,
			voicing_variation = voicing.allow_variation,
			spread_voicing = voicing.spread,
			harmony_interval = self.scheduler.harmony_interval,
			arpeggiator = self.scheduler.arpeggiator,
			custom_drum_patterns = {name: self.drum_patterns.get(name) for name in self.drum_patterns.custom_names()},
			loop_count = self.loop_count,
		)


	def load_jam (self, path: str) -> None:

		"""Load a jam file.  An invalid file raises ``JamStateError`` and changes nothing."""

		self.apply_jam_state(jambuddy.jam_state.load_jam_file(path))


	def save_jam (self, path: str) -> None:

		jambuddy.jam_state.save_jam_file(path, self.jam_state())


	def export_midi (self, filename: str, include_tempo: bool = False) -> None:

		"""
		Write the progression and drum pattern to a Standard MIDI File.

		Raises:
			MidiExportError: If the progression is empty.
		"""

		jambuddy.midi_file.save_midi(
			filename,
			self.progression,
			self.bpm,
			self.scheduler.drum_pattern,
			include_tempo = include_tempo
		)


	# -----------------------------------------------------------------------
	# Playback
	# -----------------------------------------------------------------------

	async def init (self) -> None:

		"""Open the MIDI output and build the audio graph (idempotent)."""

		await self.graph.init()


	async def play (
		self,
		loop_count: typing.Optional[int] = None,
		on_ended: typing.Optional[typing.Callable[[], typing.Any]] = None
	) -> bool:

		"""Start playing the progression from bar 0.

		Parameters:
			loop_count: Stop after this many passes; ``None`` loops forever.
			on_ended: Called once when ``loop_count`` passes have played.

		Returns:
			False if playback could not start (empty progression, reset in
			progress, or training running).
		"""

		if self.is_training:
			logger.warning("Play ignored: training mode is running")
			return False

		await self.init()

		return self.scheduler.start(loop_count=loop_count, on_ended=on_ended)


	async def train (self) -> bool:

		"""Start the training loop (count-in, play, reset, repeat)."""

		if self.scheduler.is_playing:
			self.scheduler.stop()

		await self.init()

		return self.trainer.start()


	def stop (self) -> None:

		"""Stop playback or training.  Safe to call at any time."""

		if self.is_training:
			self.trainer.stop()
		else:
			self.scheduler.stop()


	async def reset (self) -> None:

		"""Stop everything and rebuild the audio graph, keeping all settings."""

		self.stop()

		await self.graph.reset()


	def spawn (self, coro: typing.Awaitable[typing.Any]) -> "asyncio.Task[typing.Any]":

		"""Run a session coroutine as a background task (used by remote control handlers)."""

		task = asyncio.ensure_future(coro)
		self._pending.add(task)
		task.add_done_callback(self._task_done)

		return task


	def _task_done (self, task: "asyncio.Task[typing.Any]") -> None:

		self._pending.discard(task)

		if not task.cancelled() and task.exception() is not None:
			logger.error(f"Session task failed: {task.exception()!r}")


	def osc (self, receive_port: int = 9000, send_port: int = 9001, send_host: str = "127.0.0.1") -> None:

		"""
		Enable bi-directional Open Sound Control (OSC).

		The session listens for commands (``/bpm``, ``/play``, ``/train``...)
		and broadcasts the chord position, training phase and count-in.

		Parameters:
			receive_port: Port to listen for incoming OSC messages (default 9000).
			send_port: Port to send state updates to (default 9001).
			send_host: The IP address to send updates to (default "127.0.0.1").
		"""

		self._osc_bridge = jambuddy.osc.OscBridge(
			self,
			receive_port = receive_port,
			send_port = send_port,
			send_host = send_host
		)


	def close (self) -> None:

		self.stop()
		self.graph.close()


	def run (self, mode: str = "play", loop_count: typing.Optional[int] = None) -> None:

		"""
		Play or train until interrupted (e.g. via Ctrl+C).

		Parameters:
			mode: ``"play"`` or ``"train"``.
			loop_count: In play mode, stop by itself after this many passes.
		"""

		if mode not in ("play", "train"):
			raise ValueError(f"Unknown mode: {mode!r}. Available: play, train")

		try:
			asyncio.run(self._run(mode, loop_count))

		except KeyboardInterrupt:
			pass


	async def _run (self, mode: str, loop_count: typing.Optional[int]) -> None:

		await self.init()

		if self._osc_bridge is not None:
			await self._osc_bridge.start()

		try:
			done: typing.Optional[asyncio.Future] = None

			if mode == "train":
				if self.trainer.start():
					done = asyncio.ensure_future(self.trainer.wait())

			else:
				ended = asyncio.get_running_loop().create_future()

				def _on_ended () -> None:
					if not ended.done():
						ended.set_result(None)

				if self.scheduler.start(loop_count=loop_count, on_ended=_on_ended) and loop_count is not None:
					done = ended

			await run_until_stopped(self, done)

		finally:
			if self._osc_bridge is not None:
				await self._osc_bridge.stop()

			self.close()


async def run_until_stopped (session: JamSession, done: typing.Optional[typing.Awaitable[typing.Any]] = None) -> None:

	"""
	Keep a session playing until a stop signal is received, or ``done`` completes.
	"""

	logger.info("Jamming. Press Ctrl+C to stop.")

	stop_event = asyncio.Event()
	loop = asyncio.get_running_loop()

	def _request_stop () -> None:

		"""
		Signal handler to request a clean shutdown.
		"""

		stop_event.set()

	for sig in (signal.SIGINT, signal.SIGTERM):
		loop.add_signal_handler(sig, _request_stop)

	waiters = [asyncio.ensure_future(stop_event.wait())]

	if done is not None:
		waiters.append(asyncio.ensure_future(done))

	try:
		await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

	finally:
		for waiter in waiters:
			if not waiter.done():
				waiter.cancel()

		for sig in (signal.SIGINT, signal.SIGTERM):
			loop.remove_signal_handler(sig)

		session.stop()

	for waiter in waiters:
		if waiter.done() and not waiter.cancelled() and waiter.exception() is not None:
			raise waiter.exception()
