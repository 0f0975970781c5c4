import asyncio
import logging
import typing


logger = logging.getLogger(__name__)


CallbackType = typing.Callable[..., typing.Any]


class EventEmitter:

	"""
	Fan-out of engine notifications (``"chord"``, ``"phase"``, ``"count_in"``,
	``"ended"``, ``"error"``) to UI listeners.

	Listeners may be plain functions or coroutine functions.  A failing
	listener is logged and never interrupts playback or the other listeners.
	"""

	def __init__ (self) -> None:

		self._listeners: typing.Dict[str, typing.List[CallbackType]] = {}
		self._pending: typing.Set["asyncio.Task[typing.Any]"] = set()


	def on (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a callback for an event name.
		"""

		self._listeners.setdefault(event_name, []).append(callback)


	def off (self, event_name: str, callback: CallbackType) -> None:

		"""
		Unregister a previously registered callback.

		Raises ``ValueError`` if the callback is not registered for the event.
		"""

		if callback not in self._listeners.get(event_name, []):
			raise ValueError(f"Callback not registered for event {event_name!r}")

		self._listeners[event_name].remove(callback)


	def listener_count (self, event_name: str) -> int:

		return len(self._listeners.get(event_name, []))


	def emit (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Emit from synchronous code, e.g. inside a transport callback.

		Plain listeners run immediately.  Coroutine listeners are started as
		tasks on the running loop so the caller never waits on the UI.
		"""

		for callback in list(self._listeners.get(event_name, [])):

			try:
				if asyncio.iscoroutinefunction(callback):
					task = asyncio.get_running_loop().create_task(callback(*args, **kwargs))
					self._pending.add(task)
					task.add_done_callback(self._task_done)
				else:
					callback(*args, **kwargs)

			except Exception:
				logger.exception(f"Listener for {event_name!r} failed")


	async def emit_async (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Emit an event and await async listeners.
		"""

		tasks: typing.List[typing.Awaitable[typing.Any]] = []

		for callback in list(self._listeners.get(event_name, [])):

			if asyncio.iscoroutinefunction(callback):
				tasks.append(callback(*args, **kwargs))

			else:
				try:
					callback(*args, **kwargs)
				except Exception:
					logger.exception(f"Listener for {event_name!r} failed")

		if tasks:
			results = await asyncio.gather(*tasks, return_exceptions=True)

			for result in results:
				if isinstance(result, Exception):
					logger.error(f"Listener for {event_name!r} failed: {result!r}")


	def _task_done (self, task: "asyncio.Task[typing.Any]") -> None:

		self._pending.discard(task)

		if not task.cancelled() and task.exception() is not None:
			logger.error(f"Async listener failed: {task.exception()!r}")
