"""OSC remote control and state broadcasting for a jam session.

Enable it by calling ``session.osc()`` before ``session.run()``.  The bridge
listens on a UDP port (default 9000) for control messages and sends state
updates to a target host/port (default 127.0.0.1:9001).

Built-in Receive Handlers
─────────────────────────
- ``/bpm <number>``: Set tempo
- ``/volume/<voice> <dB>``: Set a mixer level (kick, snare, hihat, synth, bass, harmony)
- ``/pan/<voice> <-1..1>``: Set a mixer pan position
- ``/progression <chord> ...``: Replace the progression
- ``/pattern <name>``: Select a drum pattern
- ``/play``, ``/train``, ``/stop``: Transport control

Built-in Send Events
────────────────────
- ``/chord <index> <symbol>``: On every bar
- ``/phase <string>``: On every training phase change
- ``/count_in <int>``: On every count-in beat
- ``/ended``: When a limited playback has finished
"""

import asyncio
import logging
import typing

import pythonosc.dispatcher
import pythonosc.osc_server
import pythonosc.udp_client

import jambuddy.training

if typing.TYPE_CHECKING:
	from jambuddy.session import JamSession


logger = logging.getLogger(__name__)


class OscBridge:

	"""Async OSC server/client connecting a ``JamSession`` to a remote UI."""

	def __init__ (
		self,
		session: "JamSession",
		receive_port: int = 9000,
		send_port: int = 9001,
		send_host: str = "127.0.0.1"
	) -> None:

		self._session = session
		self._receive_port = receive_port
		self._send_port = send_port
		self._send_host = send_host

		self._server: typing.Optional[typing.Any] = None
		self._transport: typing.Optional[asyncio.BaseTransport] = None
		self._client: typing.Optional[pythonosc.udp_client.SimpleUDPClient] = None
		self._dispatcher = pythonosc.dispatcher.Dispatcher()

		self._dispatcher.map("/bpm", self._handle_bpm)
		self._dispatcher.map("/volume/*", self._handle_volume)
		self._dispatcher.map("/pan/*", self._handle_pan)
		self._dispatcher.map("/progression", self._handle_progression)
		self._dispatcher.map("/pattern", self._handle_pattern)
		self._dispatcher.map("/play", self._handle_play)
		self._dispatcher.map("/train", self._handle_train)
		self._dispatcher.map("/stop", self._handle_stop)

		self._forwarders: typing.List[typing.Tuple[str, typing.Callable[..., None]]] = [
			("chord", self._send_chord),
			("phase", self._send_phase),
			("count_in", self._send_count_in),
			("ended", self._send_ended),
		]


	@property
	def port (self) -> typing.Optional[int]:

		"""The UDP port actually bound (useful with ``receive_port=0``)."""

		if self._transport is None:
			return None

		return self._transport.get_extra_info("sockname")[1]


	async def start (self) -> None:

		"""Start the OSC server and client and begin forwarding session events."""

		self._client = pythonosc.udp_client.SimpleUDPClient(self._send_host, self._send_port)

		self._server = pythonosc.osc_server.AsyncIOOSCUDPServer(
			("0.0.0.0", self._receive_port),
			self._dispatcher,
			asyncio.get_running_loop()  # type: ignore[arg-type]
		)

		transport, _ = await self._server.create_serve_endpoint()
		self._transport = transport

		for event_name, forwarder in self._forwarders:
			self._session.events.on(event_name, forwarder)

		logger.info(f"OSC listening on :{self.port}, sending to {self._send_host}:{self._send_port}")


	async def stop (self) -> None:

		"""Stop the OSC server."""

		if self._transport is None:
			return

		for event_name, forwarder in self._forwarders:
			self._session.events.off(event_name, forwarder)

		self._transport.close()
		self._transport = None
		self._client = None

		logger.info("OSC server stopped")


	def send (self, address: str, *args: typing.Any) -> None:

		"""Send an OSC message."""

		if self._client:
			try:
				self._client.send_message(address, list(args))
			except Exception as e:
				logger.warning(f"OSC send error: {e}")


	def map (self, address: str, handler: typing.Callable) -> None:

		"""Register a custom OSC handler."""

		self._dispatcher.map(address, handler)


	# Forwarders

	def _send_chord (self, index: int) -> None:
		progression = self._session.progression
		symbol = progression[index] if 0 <= index < len(progression) else ""
		self.send("/chord", index, symbol)

	def _send_phase (self, state: jambuddy.training.TrainingState) -> None:
		self.send("/phase", state.value)

	def _send_count_in (self, beat: int) -> None:
		self.send("/count_in", beat)

	def _send_ended (self) -> None:
		self.send("/ended")

	# Handlers

	def _handle_bpm (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		try:
			self._session.set_bpm(float(args[0]))
		except (ValueError, TypeError):
			logger.warning(f"Invalid OSC BPM argument: {args[0]}")

	def _handle_volume (self, address: str, *args: typing.Any) -> None:
		# address is like /volume/kick
		parts = address.split("/")
		if len(parts) < 3 or not args:
			return
		try:
			self._session.set_volume(parts[2], float(args[0]))
		except (ValueError, TypeError):
			logger.warning(f"Invalid OSC volume: {address} {args[0]}")

	def _handle_pan (self, address: str, *args: typing.Any) -> None:
		parts = address.split("/")
		if len(parts) < 3 or not args:
			return
		try:
			self._session.set_pan(parts[2], float(args[0]))
		except (ValueError, TypeError):
			logger.warning(f"Invalid OSC pan: {address} {args[0]}")

	def _handle_progression (self, address: str, *args: typing.Any) -> None:
		if not args or not all(isinstance(chord, str) for chord in args):
			logger.warning(f"Invalid OSC progression: {args}")
			return
		self._session.set_progression(list(args))

	def _handle_pattern (self, address: str, *args: typing.Any) -> None:
		if not args or not isinstance(args[0], str):
			return
		self._session.set_drum_pattern(args[0])

	def _handle_play (self, address: str, *args: typing.Any) -> None:
		self._session.spawn(self._session.play())

	def _handle_train (self, address: str, *args: typing.Any) -> None:
		self._session.spawn(self._session.train())

	def _handle_stop (self, address: str, *args: typing.Any) -> None:
		self._session.stop()
