"""Training mode: an endless practice loop.

	IDLE → COUNTING_IN → PLAYING → RESETTING → COUNTING_IN → ...

Each cycle plays a four-beat count-in, plays the progression a fixed number
of times, then fully resets the audio graph and reapplies every setting
before counting in again.  Only ``stop()`` leaves the loop.

Listeners on the scheduler's event emitter receive ``"phase"`` with the new
``TrainingState`` on every transition and ``"count_in"`` with the beat
number (1-4) on every click.
"""

import asyncio
import enum
import logging
import typing

import jambuddy.audio_graph
import jambuddy.constants.pulses
import jambuddy.constants.velocity
import jambuddy.scheduler
import jambuddy.transport


logger = logging.getLogger(__name__)


COUNT_IN_BEATS = 4
DEFAULT_LOOP_COUNT = 2


class TrainingState (enum.Enum):

	IDLE = "idle"
	COUNTING_IN = "counting_in"
	PLAYING = "playing"
	RESETTING = "resetting"


class TrainingModeController:

	"""
	Runs the count-in / play / reset cycle on top of a ``PlaybackScheduler``.

	Example:
		```python
		trainer = TrainingModeController(scheduler, loop_count=2)
		scheduler.events.on("phase", lambda state: print(state.value))
		trainer.start()
		...
		trainer.stop()
		```
	"""

	def __init__ (
		self,
		scheduler: jambuddy.scheduler.PlaybackScheduler,
		loop_count: int = DEFAULT_LOOP_COUNT,
		restart_delay: float = 0.5,
		on_reapply: typing.Optional[typing.Callable[[], typing.Any]] = None
	) -> None:

		"""
		Parameters:
			scheduler: Plays the progression; its graph, transport and event
				emitter are shared.
			loop_count: Passes through the progression per cycle.
			restart_delay: Seconds to wait after a reset before counting in.
			on_reapply: Extra hook run after the built-in settings have been
				reapplied to the fresh graph.
		"""

		if loop_count < 1:
			raise ValueError("loop_count must be at least 1")

		self.scheduler = scheduler
		self.graph: jambuddy.audio_graph.AudioGraph = scheduler.graph
		self.transport: jambuddy.transport.Transport = scheduler.transport
		self.events = scheduler.events
		self.loop_count = loop_count
		self.restart_delay = restart_delay
		self.on_reapply = on_reapply

		self.state = TrainingState.IDLE
		self.cycles_completed = 0
		self._task: typing.Optional[asyncio.Task] = None
		self._count_in_token: typing.Optional[jambuddy.transport.CancellationToken] = None


	@property
	def is_running (self) -> bool:

		"""True from ``start()`` until the loop has been stopped or has failed."""

		return self._task is not None and not self._task.done()


	def _set_state (self, state: TrainingState) -> None:

		if state == self.state:
			return

		logger.info(f"Training: {self.state.value} → {state.value}")

		self.state = state
		self.events.emit("phase", state)


	def start (self) -> bool:

		"""Begin the practice loop.  Only possible from IDLE with a ready graph.

		Returns:
			True if the loop started.
		"""

		if self.state != TrainingState.IDLE or self.is_running:
			logger.warning(f"Training already running ({self.state.value})")
			return False

		if not self.graph.is_ready:
			logger.warning("Training not started: audio graph is not ready")
			return False

		self.cycles_completed = 0
		self._task = asyncio.get_running_loop().create_task(self._run())
		self._task.add_done_callback(self._task_done)

		return True


	def stop (self) -> None:

		"""Return to IDLE from any state, cancelling a pending count-in or reset."""

		task = self._task
		self._task = None

		if task is not None and not task.done():
			task.cancel()

		if self._count_in_token is not None:
			self.transport.cancel(self._count_in_token)
			self._count_in_token = None

		self.scheduler.stop()
		self._set_state(TrainingState.IDLE)


	async def wait (self) -> None:

		"""Wait until the loop ends.

		Returns quietly after ``stop()``.

		Raises:
			EngineError: If a reset left the engine unusable.
		"""

		task = self._task

		if task is None:
			return

		try:
			await task
		except asyncio.CancelledError:
			if not task.cancelled():
				raise


	async def _run (self) -> None:

		try:
			while True:
				await self._count_in_and_play()
				await self._reset()
				self.cycles_completed += 1

		except jambuddy.audio_graph.EngineError as exc:
			logger.error(f"Training stopped: {exc}")
			self.scheduler.stop()
			self._set_state(TrainingState.IDLE)
			self.events.emit("error", exc)
			raise


	async def _count_in_and_play (self) -> None:

		"""Four clicks at the current tempo, the first accented, then the progression.

		Playback starts on the transport one bar after the accented click.
		Returns once the scheduler reports its loops done.
		"""

		self._set_state(TrainingState.COUNTING_IN)

		beat_pulses = jambuddy.constants.pulses.MIDI_QUARTER_NOTE

		self.transport.set_bpm(self.scheduler.bpm)

		if not self.transport.running:
			self.transport.start()

		token = jambuddy.transport.CancellationToken("count-in")
		origin = self.transport.pulse_count
		downbeat = origin + COUNT_IN_BEATS * beat_pulses
		ended: asyncio.Future = asyncio.get_running_loop().create_future()

		for beat in range(1, COUNT_IN_BEATS + 1):
			self.transport.schedule(
				origin + (beat - 1) * beat_pulses,
				lambda pulse, beat=beat: self._click(beat, pulse, token),
				token = token
			)

		self.transport.schedule(
			downbeat,
			lambda _pulse: self._play(downbeat, ended),
			priority = jambuddy.scheduler.PRIORITY_RELEASE,
			token = token
		)

		self._count_in_token = token

		try:
			await ended
		finally:
			self._count_in_token = None


	def _click (self, beat: int, pulse: int, token: jambuddy.transport.CancellationToken) -> None:

		if not self.graph.is_ready:
			return

		accent = beat == 1
		click = self.graph.nodes.clicks["accent" if accent else "beat"]

		click.trigger(
			jambuddy.constants.velocity.COUNT_IN_ACCENT_VELOCITY if accent else jambuddy.constants.velocity.COUNT_IN_VELOCITY
		)

		self.transport.schedule(
			pulse + jambuddy.constants.pulses.MIDI_SIXTEENTH_NOTE,
			lambda _pulse: click.choke(),
			priority = jambuddy.scheduler.PRIORITY_RELEASE,
			token = token
		)

		self.events.emit("count_in", beat)


	def _play (self, downbeat: int, ended: asyncio.Future) -> None:

		"""Runs on the transport at the downbeat; bar 0 fires in the same pass."""

		if ended.done():
			return

		self._set_state(TrainingState.PLAYING)

		def on_ended () -> None:
			if not ended.done():
				ended.set_result(None)

		if not self.scheduler.start(loop_count=self.loop_count, on_ended=on_ended, start_pulse=downbeat):
			ended.set_exception(jambuddy.audio_graph.EngineError("Playback could not start"))


	async def _reset (self) -> None:

		self._set_state(TrainingState.RESETTING)

		await self.graph.reset()

		self._reapply()

		await asyncio.sleep(self.restart_delay)


	def _reapply (self) -> None:

		"""Push every stored setting onto the freshly built graph."""

		self.graph.apply_mixer(self.graph.mixer)
		self.graph.apply_synth_config(self.graph.synth_config)
		self.scheduler.set_harmony_interval(self.scheduler.harmony_interval)
		self.scheduler.set_arpeggiator(self.scheduler.arpeggiator)
		self.scheduler.set_voicing()

		if self.on_reapply is not None:
			self.on_reapply()


	def _task_done (self, task: asyncio.Task) -> None:

		if not task.cancelled() and task.exception() is not None:
			logger.error(f"Training loop ended with an error: {task.exception()!r}")
