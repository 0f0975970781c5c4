import asyncio
import dataclasses
import heapq
import itertools
import logging
import time
import typing

import jambuddy.constants.pulses


logger = logging.getLogger(__name__)


class CancellationToken:

	"""
	Handle shared by every event scheduled for one playback session.

	Cancelling the token makes all of its events inert, including repeating
	ones and events that are already in the queue.
	"""

	def __init__ (self, name: str = "") -> None:

		self.name = name
		self.cancelled = False


	def cancel (self) -> None:

		self.cancelled = True


	def __repr__ (self) -> str:

		state = "cancelled" if self.cancelled else "active"
		return f"<CancellationToken {self.name!r} {state}>"


@dataclasses.dataclass (order=True)
class ScheduledEvent:

	"""
	A callback waiting for its pulse.

	Events sort by pulse, then priority (lower first), then insertion order,
	so two tracks scheduled for the same pulse always fire in the same order.
	"""

	pulse: int
	priority: int
	order: int
	callback: typing.Callable[[int], typing.Any] = dataclasses.field(compare=False)
	token: typing.Optional[CancellationToken] = dataclasses.field(compare=False, default=None)
	interval: int = dataclasses.field(compare=False, default=0)


	@property
	def cancelled (self) -> bool:

		return self.token is not None and self.token.cancelled


class Transport:

	"""
	The shared clock every track and the count-in are timed against.

	A single asyncio task advances a pulse counter at 24 pulses per quarter
	note and fires the callbacks due on each pulse.  Callbacks are plain
	functions that receive the pulse number; they run on the event loop and
	must not block.

	Scheduling, cancelling, starting and stopping are all synchronous so they
	can be called from inside a callback.
	"""

	def __init__ (
		self,
		bpm: float = 120,
		spin_wait: bool = True,
		render_mode: bool = False
	) -> None:

		"""Create a stopped transport.

		Parameters:
			bpm: Initial tempo.
			spin_wait: Busy-wait for the final sub-millisecond of each pulse
				for tighter timing (costs a little CPU).
			render_mode: Advance as fast as possible with simulated time
				instead of waiting for the wall clock.  Used for offline
				rendering and tests.
		"""

		self.pulses_per_beat = jambuddy.constants.pulses.MIDI_QUARTER_NOTE
		self.render_mode = render_mode

		self.event_queue: typing.List[ScheduledEvent] = []
		self._order = itertools.count()

		self.task: typing.Optional[asyncio.Task] = None
		self.pulse_count = 0
		self.running = False
		self.paused = False
		self._unpaused = asyncio.Event()
		self._unpaused.set()

		# Bumped on every start/stop so a superseded loop task exits on its own.
		self._generation = 0

		self.current_bpm: float = 0
		self.seconds_per_beat = 0.0
		self.seconds_per_pulse = 0.0
		self.elapsed_seconds = 0.0
		self._spin_wait = spin_wait
		self._spin_threshold: float = 0.001

		self.set_bpm(bpm)


	def set_bpm (self, bpm: float) -> None:

		"""
		Change the tempo from the next pulse on.
		"""

		if bpm <= 0:
			raise ValueError("BPM must be positive")

		self.current_bpm = bpm
		self.seconds_per_beat = 60.0 / self.current_bpm
		self.seconds_per_pulse = self.seconds_per_beat / self.pulses_per_beat

		logger.info(f"BPM set to {self.current_bpm:.2f}")


	def schedule (
		self,
		pulse: int,
		callback: typing.Callable[[int], typing.Any],
		priority: int = 0,
		token: typing.Optional[CancellationToken] = None
	) -> ScheduledEvent:

		"""Run ``callback(pulse)`` when the clock reaches ``pulse``.

		Events scheduled for a pulse that has already passed fire on the next
		pulse processed.
		"""

		event = ScheduledEvent(
			pulse = pulse,
			priority = priority,
			order = next(self._order),
			callback = callback,
			token = token
		)

		heapq.heappush(self.event_queue, event)

		return event


	def schedule_repeating (
		self,
		start_pulse: int,
		interval_pulses: int,
		callback: typing.Callable[[int], typing.Any],
		priority: int = 0,
		token: typing.Optional[CancellationToken] = None
	) -> ScheduledEvent:

		"""Run ``callback`` every ``interval_pulses`` starting at ``start_pulse``."""

		if interval_pulses <= 0:
			raise ValueError("Repeat interval must be at least one pulse")

		event = self.schedule(start_pulse, callback, priority, token)
		event.interval = interval_pulses

		return event


	def cancel (self, token: CancellationToken) -> None:

		"""Cancel a token and drop its events from the queue."""

		token.cancel()

		self.event_queue = [event for event in self.event_queue if event.token is not token]
		heapq.heapify(self.event_queue)


	def cancel_all (self) -> None:

		"""Drop every pending event."""

		for event in self.event_queue:
			if event.token is not None:
				event.token.cancel()

		self.event_queue = []


	def pending (self, token: typing.Optional[CancellationToken] = None) -> int:

		"""Number of queued events, optionally only those of one token."""

		if token is None:
			return len(self.event_queue)

		return sum(1 for event in self.event_queue if event.token is token)


	def process_pulse (self, pulse: int) -> None:

		"""
		Fire every event due at or before ``pulse``.

		Events scheduled by a callback for the same pulse fire in this pass.
		"""

		while self.event_queue and self.event_queue[0].pulse <= pulse:

			event = heapq.heappop(self.event_queue)

			if event.cancelled:
				continue

			# Requeue before firing so the callback can cancel its own repeat.
			if event.interval:
				self.schedule_repeating(event.pulse + event.interval, event.interval, event.callback, event.priority, event.token)

			try:
				event.callback(pulse)
			except Exception:
				logger.exception(f"Transport callback failed at pulse {pulse}")


	def start (self) -> None:

		"""Start the clock from pulse 0 in a new asyncio task.

		Must be called with an event loop running.  Does nothing if the clock
		is already running.
		"""

		if self.running:
			return

		self.running = True
		self.paused = False
		self._unpaused.set()
		self.pulse_count = 0
		self.elapsed_seconds = 0.0
		self._generation += 1

		self.task = asyncio.get_running_loop().create_task(self._run_loop(self._generation))

		logger.info("Transport started")


	def stop (self) -> None:

		"""Stop the clock and drop every pending event.  Safe to call repeatedly."""

		if not self.running:
			self.cancel_all()
			return

		self.running = False
		self._generation += 1
		self.cancel_all()
		self._unpaused.set()

		# A callback may stop the transport from inside the loop task itself.
		if self.task is not None and self.task is not _current_task():
			self.task.cancel()

		self.task = None

		logger.info("Transport stopped")


	def pause (self) -> None:

		"""Freeze the pulse counter; pending events keep their pulses."""

		if self.running and not self.paused:
			self.paused = True
			self._unpaused.clear()
			logger.info(f"Transport paused at pulse {self.pulse_count}")


	def resume (self) -> None:

		if self.paused:
			self.paused = False
			self._unpaused.set()
			logger.info(f"Transport resumed at pulse {self.pulse_count}")


	def pulses_to_seconds (self, pulses: int) -> float:

		return pulses * self.seconds_per_pulse


	def _is_current (self, generation: int) -> bool:

		return self.running and generation == self._generation


	async def _run_loop (self, generation: int) -> None:

		"""Playback loop driven by the internal wall clock.

		In normal mode the loop sleeps between pulses to maintain tempo.
		In render mode it runs as fast as possible, processing one pulse per
		iteration and yielding to the event loop in between.
		"""

		next_pulse_time = time.perf_counter()

		while self._is_current(generation):

			if self.paused:
				await self._unpaused.wait()
				next_pulse_time = time.perf_counter()
				continue

			current_time = next_pulse_time if self.render_mode else time.perf_counter()

			while current_time >= next_pulse_time and self._is_current(generation) and not self.paused:
				self.process_pulse(self.pulse_count)
				self.pulse_count += 1
				self.elapsed_seconds += self.seconds_per_pulse
				next_pulse_time += self.seconds_per_pulse

			if not self._is_current(generation):
				break

			if self.render_mode:
				await asyncio.sleep(0)
				continue

			sleep_time = next_pulse_time - time.perf_counter()

			if sleep_time > 0:
				if self._spin_wait and sleep_time > self._spin_threshold:
					await asyncio.sleep(sleep_time - self._spin_threshold)
					while time.perf_counter() < next_pulse_time:
						pass
				else:
					await asyncio.sleep(sleep_time)


def _current_task () -> typing.Optional[asyncio.Task]:

	try:
		return asyncio.current_task()
	except RuntimeError:
		return None
