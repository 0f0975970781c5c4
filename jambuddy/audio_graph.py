"""Ownership and lifecycle of the node graph.

``AudioGraph`` is the only object that creates or destroys nodes.  The
scheduler and the training controller hold a reference to it and reach the
instruments through ``graph.nodes``, which is only available while the graph
is ``READY``.

Lifecycle:

	UNINITIALIZED --init()--> INITIALIZING --> READY
	READY --reset()--> RESETTING --> READY
	any --close()--> CLOSED

``reset()`` is the emergency path used between practice loops: it silences
and tears down every node, waits briefly, then builds a fresh graph on the
same output.  While it runs, ``is_resetting`` is True and the scheduler
refuses to start.
"""

import asyncio
import dataclasses
import enum
import logging
import math
import typing

import yaml

import jambuddy.constants.gm_drums
import jambuddy.constants.velocity
import jambuddy.midi_utils
import jambuddy.nodes
import jambuddy.synth_config


logger = logging.getLogger(__name__)


EngineError = jambuddy.nodes.EngineError

MIXER_VOICES: typing.Tuple[str, ...] = ("kick", "snare", "hihat", "synth", "bass", "harmony")
DRUM_VOICES: typing.Tuple[str, ...] = ("kick", "snare", "hihat")

SYNTH_CHANNEL = 0
HARMONY_CHANNEL = 1
BASS_CHANNEL = 2

DEFAULT_VOLUMES: typing.Dict[str, float] = {
	"kick": -10.0,
	"snare": -10.0,
	"hihat": -15.0,
	"synth": -15.0,
	"bass": -10.0,
	"harmony": -20.0,
}

DRUM_VELOCITIES: typing.Dict[str, int] = {
	"kick": jambuddy.constants.velocity.KICK_VELOCITY,
	"snare": jambuddy.constants.velocity.SNARE_VELOCITY,
	"hihat": jambuddy.constants.velocity.HIHAT_VELOCITY,
}

BASS_SYNTH_CONFIG = jambuddy.synth_config.SynthConfig(
	oscillator = jambuddy.synth_config.Oscillator("fmsine"),
	envelope = jambuddy.synth_config.Envelope(attack=0.01, decay=0.2, sustain=0.4, release=0.8),
)

DrumKitLoader = typing.Callable[[], typing.Awaitable[typing.Dict[str, typing.Any]]]


class GraphState (enum.Enum):

	UNINITIALIZED = "uninitialized"
	INITIALIZING = "initializing"
	READY = "ready"
	RESETTING = "resetting"
	CLOSED = "closed"


@dataclasses.dataclass
class MixerSettings:

	"""
	Per-voice level (dB) and stereo position (-1 left … 1 right).
	"""

	volumes: typing.Dict[str, float] = dataclasses.field(default_factory=lambda: dict(DEFAULT_VOLUMES))
	pans: typing.Dict[str, float] = dataclasses.field(default_factory=lambda: {voice: 0.0 for voice in MIXER_VOICES})


	def __post_init__ (self) -> None:

		for voice in list(self.volumes) + list(self.pans):
			if voice not in MIXER_VOICES:
				raise ValueError(f"Unknown mixer voice: {voice!r}. Available: {', '.join(MIXER_VOICES)}")

		for voice, db in self.volumes.items():
			if not math.isfinite(db):
				raise ValueError(f"Volume for {voice!r} must be a finite number of dB, got {db}")

		for voice, pan in self.pans.items():
			if not -1 <= pan <= 1:
				raise ValueError(f"Pan for {voice!r} must be in [-1, 1], got {pan}")

		# Partial settings inherit the defaults for the voices they leave out.
		self.volumes = {**DEFAULT_VOLUMES, **self.volumes}
		self.pans = {**{voice: 0.0 for voice in MIXER_VOICES}, **self.pans}


@dataclasses.dataclass
class GraphNodes:

	"""
	Every node of a built graph.  Only exists while the graph is READY.
	"""

	context: jambuddy.nodes.OutputContext
	limiter: jambuddy.nodes.Limiter
	reverb: jambuddy.nodes.Reverb
	delay: jambuddy.nodes.PingPongDelay
	synth_filter: jambuddy.nodes.Filter
	volumes: typing.Dict[str, jambuddy.nodes.Volume]
	panners: typing.Dict[str, jambuddy.nodes.Panner]
	chord_synth: jambuddy.nodes.PolySynth
	harmony_synth: jambuddy.nodes.PolySynth
	bass_synth: jambuddy.nodes.MonoSynth
	drums: typing.Dict[str, jambuddy.nodes.DrumVoice]
	clicks: typing.Dict[str, jambuddy.nodes.DrumVoice]
	drums_synthesized: bool = True


	def instruments (self) -> typing.List[jambuddy.nodes.Instrument]:

		return [
			*self.drums.values(),
			*self.clicks.values(),
			self.chord_synth,
			self.harmony_synth,
			self.bass_synth,
		]


	def teardown_order (self) -> typing.List[jambuddy.nodes.Node]:

		"""Sources first, master last, so releases still reach the output."""

		return [
			*self.instruments(),
			*self.panners.values(),
			*self.volumes.values(),
			self.synth_filter,
			self.delay,
			self.reverb,
			self.limiter,
		]


def load_drum_kit_file (path: str) -> typing.Dict[str, typing.Any]:

	"""Read a drum kit description from YAML.

	Example kit file:

	```yaml
	channel: 9
	kick: 36
	snare: 40
	hihat: 42
	```
	"""

	with open(path, "r", encoding="utf-8") as kit_file:
		data = yaml.safe_load(kit_file) or {}

	if not isinstance(data, dict):
		raise ValueError(f"Drum kit {path!r} must be a mapping")

	return data


def drum_kit_file_loader (path: str) -> DrumKitLoader:

	"""Return an awaitable loader that reads a kit file off the event loop."""

	async def _load () -> typing.Dict[str, typing.Any]:
		return await asyncio.to_thread(load_drum_kit_file, path)

	return _load


class AudioGraph:

	"""
	Builds, owns, resets and disposes the node graph on one MIDI output.

	Example:
		```python
		graph = AudioGraph(output_device_name="IAC Driver Bus 1")
		await graph.init()
		graph.nodes.chord_synth.note_on(60)
		await graph.reset()
		graph.close()
		```
	"""

	def __init__ (
		self,
		output_device_name: typing.Optional[str] = None,
		port: typing.Any = None,
		port_opener: typing.Optional[typing.Callable[[], typing.Any]] = None,
		drum_kit_loader: typing.Optional[DrumKitLoader] = None,
		asset_timeout: float = 2.0,
		settle_seconds: float = 0.15,
		transport: typing.Any = None
	) -> None:

		"""Create an uninitialised graph.

		Parameters:
			output_device_name: MIDI output to open.  When omitted the single
				available device is used, or the user is asked to choose.
			port: An already open output port (takes precedence over the name).
			port_opener: Callable returning an open port; used for the first
				open and to reopen a lost port after a reset.
			drum_kit_loader: Awaitable returning a kit mapping (``channel``,
				``kick``, ``snare``, ``hihat``).  Without one the General MIDI
				drums on channel 10 are used.
			asset_timeout: Seconds to wait for the drum kit before falling back.
			settle_seconds: Pause between teardown and rebuild during ``reset()``.
			transport: Clock stopped at the start of every reset.
		"""

		self.output_device_name = output_device_name
		self._port = port
		self._port_opener = port_opener or self._open_default_port
		self.drum_kit_loader = drum_kit_loader
		self.asset_timeout = asset_timeout
		self.settle_seconds = settle_seconds
		self.transport = transport

		self.state = GraphState.UNINITIALIZED
		self._nodes: typing.Optional[GraphNodes] = None
		self._context: typing.Optional[jambuddy.nodes.OutputContext] = None
		self._reset_task: typing.Optional[asyncio.Task] = None

		self.mixer = MixerSettings()
		self.synth_config = jambuddy.synth_config.DEFAULT_SYNTH_CONFIG
		self.harmony_enabled = False


	@property
	def nodes (self) -> GraphNodes:

		"""The built graph.

		Raises:
			EngineError: Unless the graph is READY.
		"""

		if self.state != GraphState.READY or self._nodes is None:
			raise EngineError(f"Audio graph is not ready (state: {self.state.value})")

		return self._nodes


	@property
	def is_ready (self) -> bool:

		return self.state == GraphState.READY


	@property
	def is_resetting (self) -> bool:

		return self.state == GraphState.RESETTING


	@property
	def context (self) -> typing.Optional[jambuddy.nodes.OutputContext]:

		return self._context


	def _open_default_port (self) -> typing.Any:

		_, port = jambuddy.midi_utils.select_output_device(self.output_device_name)

		return port


	def _ensure_context (self) -> jambuddy.nodes.OutputContext:

		"""Create the output context on first use, otherwise resume it."""

		if self._context is None:

			port = self._port if self._port is not None else self._port_opener()

			if port is None:
				raise EngineError("No MIDI output available")

			self._context = jambuddy.nodes.OutputContext(port, reopen=self._port_opener)

		self._context.resume()

		return self._context


	async def init (self) -> None:

		"""Build the graph.  Does nothing if it is already built.

		Drum kit problems never raise: the graph falls back to General MIDI
		drums and logs a warning.

		Raises:
			EngineError: If no MIDI output can be opened, or the graph is closed.
		"""

		if self.state in (GraphState.READY, GraphState.INITIALIZING):
			return

		if self.state == GraphState.RESETTING and self._reset_task is not None:
			await self._reset_task
			return

		if self.state == GraphState.CLOSED:
			raise EngineError("Audio graph is closed")

		self.state = GraphState.INITIALIZING

		try:
			self._nodes = await self._build()
		except BaseException:
			self.state = GraphState.UNINITIALIZED
			raise

		self.state = GraphState.READY

		logger.info("Audio graph ready")


	async def _build (self) -> GraphNodes:

		context = self._ensure_context()

		limiter = jambuddy.nodes.Limiter(threshold_db=-1.0)
		reverb = jambuddy.nodes.Reverb(room_size=0.2, wet=0.1)
		delay = jambuddy.nodes.PingPongDelay(delay_time="8n.", feedback=0.2, wet=0.1)
		synth_filter = jambuddy.nodes.Filter(
			cutoff = self.synth_config.filter.cutoff,
			resonance = self.synth_config.filter.resonance
		)

		limiter.connect(context)
		synth_filter.connect(delay).connect(reverb).connect(limiter)

		volumes: typing.Dict[str, jambuddy.nodes.Volume] = {}
		panners: typing.Dict[str, jambuddy.nodes.Panner] = {}

		for voice in MIXER_VOICES:
			shared = voice in DRUM_VOICES
			volumes[voice] = jambuddy.nodes.Volume(
				db = self.mixer.volumes[voice],
				mute = voice == "harmony" and not self.harmony_enabled,
				shared_channel = shared,
				name = f"{voice} volume"
			)
			panners[voice] = jambuddy.nodes.Panner(
				pan = self.mixer.pans[voice],
				shared_channel = shared,
				name = f"{voice} panner"
			)
			volumes[voice].connect(panners[voice])

		panners["synth"].connect(synth_filter)
		panners["harmony"].connect(delay)
		panners["bass"].connect(limiter)

		for voice in DRUM_VOICES:
			panners[voice].connect(limiter)

		chord_synth = jambuddy.nodes.PolySynth(SYNTH_CHANNEL, config=self.synth_config, name="chord synth")
		harmony_synth = jambuddy.nodes.PolySynth(HARMONY_CHANNEL, config=self.synth_config, max_polyphony=3, name="harmony synth")
		bass_synth = jambuddy.nodes.MonoSynth(BASS_CHANNEL, config=BASS_SYNTH_CONFIG, name="bass synth")

		chord_synth.connect(volumes["synth"])
		harmony_synth.connect(volumes["harmony"])
		bass_synth.connect(volumes["bass"])

		clicks = {
			"accent": jambuddy.nodes.DrumVoice(jambuddy.constants.gm_drums.METRONOME_BELL, name="click accent"),
			"beat": jambuddy.nodes.DrumVoice(jambuddy.constants.gm_drums.METRONOME_CLICK, name="click"),
		}

		for click in clicks.values():
			click.connect(limiter)

		drums, synthesized = await self._load_drums()

		for voice, drum in drums.items():
			drum.connect(volumes[voice])

		nodes = GraphNodes(
			context = context,
			limiter = limiter,
			reverb = reverb,
			delay = delay,
			synth_filter = synth_filter,
			volumes = volumes,
			panners = panners,
			chord_synth = chord_synth,
			harmony_synth = harmony_synth,
			bass_synth = bass_synth,
			drums = drums,
			clicks = clicks,
			drums_synthesized = synthesized,
		)

		for node in (chord_synth, harmony_synth, bass_synth, *volumes.values(), *panners.values(), synth_filter, delay, reverb):
			node.apply()

		return nodes


	def _synthesized_drums (self) -> typing.Dict[str, jambuddy.nodes.DrumVoice]:

		return {
			voice: jambuddy.nodes.DrumVoice(
				jambuddy.constants.gm_drums.GM_DRUM_MAP[voice],
				velocity = DRUM_VELOCITIES[voice],
				name = f"{voice} (GM)"
			)
			for voice in DRUM_VOICES
		}


	async def _load_drums (self) -> typing.Tuple[typing.Dict[str, jambuddy.nodes.DrumVoice], bool]:

		"""Load the drum kit within ``asset_timeout``, or fall back to GM drums."""

		if self.drum_kit_loader is None:
			return self._synthesized_drums(), True

		voices: typing.Dict[str, jambuddy.nodes.DrumVoice] = {}

		try:
			kit = await asyncio.wait_for(self.drum_kit_loader(), timeout=self.asset_timeout)
			channel = int(kit.get("channel", jambuddy.constants.gm_drums.GM_DRUM_CHANNEL))

			for voice in DRUM_VOICES:
				if voice in kit:
					voices[voice] = jambuddy.nodes.DrumVoice(
						int(kit[voice]),
						channel = channel,
						velocity = DRUM_VELOCITIES[voice],
						name = f"{voice} (kit)"
					)

			missing = [voice for voice in DRUM_VOICES if voice not in voices]

			if missing:
				raise ValueError(f"kit has no {', '.join(missing)}")

		except asyncio.TimeoutError:
			self._discard(voices)
			logger.warning(f"Drum kit did not load within {self.asset_timeout}s - using synthesized drums")
			return self._synthesized_drums(), True

		except Exception as exc:
			self._discard(voices)
			logger.warning(f"Drum kit unavailable ({exc}) - using synthesized drums")
			return self._synthesized_drums(), True

		logger.info("Drum kit loaded")

		return voices, False


	@staticmethod
	def _discard (voices: typing.Dict[str, jambuddy.nodes.DrumVoice]) -> None:

		for voice in voices.values():
			voice.dispose()

		voices.clear()


	def dispose (self) -> typing.List[typing.Tuple[jambuddy.nodes.Node, Exception]]:

		"""Tear down every node in one pass.

		A node that fails to dispose is logged and skipped; the rest are still
		released.  The output context is kept so the graph can be rebuilt.

		Returns:
			``(node, exception)`` for every node that failed.
		"""

		failures: typing.List[typing.Tuple[jambuddy.nodes.Node, Exception]] = []

		if self._nodes is None:
			return failures

		for node in self._nodes.teardown_order():
			try:
				node.dispose()
			except Exception as exc:
				logger.exception(f"Failed to dispose {node!r}")
				failures.append((node, exc))

		self._nodes = None

		if self.state == GraphState.READY:
			self.state = GraphState.UNINITIALIZED

		return failures


	def reset (self) -> "asyncio.Task[None]":

		"""Start an emergency reset and return it as an awaitable, cancellable task.

		The resetting flag is raised before this returns, so a ``start()``
		issued straight afterwards is refused.  Calling ``reset()`` while one
		is already running returns the running task.

		Raises:
			EngineError: If the graph is closed.
		"""

		if self._reset_task is not None and not self._reset_task.done():
			return self._reset_task

		if self.state == GraphState.CLOSED:
			raise EngineError("Audio graph is closed")

		self.state = GraphState.RESETTING
		self._reset_task = asyncio.get_running_loop().create_task(self._reset())

		return self._reset_task


	async def _reset (self) -> None:

		logger.info("Resetting audio graph")

		try:
			if self.transport is not None:
				self.transport.stop()

			if self._context is not None:
				self._context.suspend()

			self.dispose()

			await asyncio.sleep(self.settle_seconds)

			self._nodes = await self._build()

		except BaseException:
			self._nodes = None
			self.state = GraphState.UNINITIALIZED
			logger.error("Audio graph reset failed")
			raise

		self.state = GraphState.READY

		logger.info("Audio graph reset complete")


	def apply_mixer (self, settings: MixerSettings) -> None:

		"""Store mixer settings and apply them if the graph is built."""

		self.mixer = MixerSettings(volumes=dict(settings.volumes), pans=dict(settings.pans))

		if not self.is_ready:
			return

		for voice in MIXER_VOICES:
			self.nodes.volumes[voice].set_db(settings.volumes[voice])
			self.nodes.panners[voice].set_pan(settings.pans[voice])


	def set_volume (self, voice: str, db: float) -> None:

		if voice not in MIXER_VOICES:
			raise ValueError(f"Unknown mixer voice: {voice!r}")

		if not math.isfinite(db):
			raise ValueError(f"Volume must be a finite number of dB, got {db}")

		self.mixer.volumes[voice] = db

		if self.is_ready:
			self.nodes.volumes[voice].set_db(db)


	def set_pan (self, voice: str, pan: float) -> None:

		if voice not in MIXER_VOICES:
			raise ValueError(f"Unknown mixer voice: {voice!r}")

		if not -1 <= pan <= 1:
			raise ValueError(f"Pan must be in [-1, 1], got {pan}")

		self.mixer.pans[voice] = pan

		if self.is_ready:
			self.nodes.panners[voice].set_pan(pan)


	def apply_synth_config (self, config: jambuddy.synth_config.SynthConfig) -> None:

		"""Change the chord and harmony sound, including the synth filter."""

		self.synth_config = config

		if not self.is_ready:
			return

		self.nodes.chord_synth.set_config(config)
		self.nodes.harmony_synth.set_config(config)
		self.nodes.synth_filter.set(config.filter)


	def set_harmony_enabled (self, enabled: bool) -> None:

		self.harmony_enabled = enabled

		if self.is_ready:
			self.nodes.volumes["harmony"].set_mute(not enabled)


	def release_all (self) -> None:

		"""Silence every sounding voice."""

		if not self.is_ready:
			return

		for instrument in self.nodes.instruments():
			instrument.release_all()


	def close (self) -> None:

		"""Dispose the graph and close the MIDI output for good."""

		if self.state == GraphState.CLOSED:
			return

		if self._reset_task is not None and not self._reset_task.done():
			self._reset_task.cancel()

		self.dispose()

		if self._context is not None:
			self._context.close()

		self.state = GraphState.CLOSED

		logger.info("Audio graph closed")
