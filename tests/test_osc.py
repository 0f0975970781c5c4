import asyncio
import typing

import pytest
import pythonosc.dispatcher
import pythonosc.osc_server
import pythonosc.udp_client

import jambuddy.osc
import jambuddy.session

from conftest import FakeMidiOut


@pytest.fixture
def session () -> jambuddy.session.JamSession:

	"""Create a session on a fake MIDI port with a simulated clock."""

	session = jambuddy.session.JamSession(port=FakeMidiOut(), render_mode=True, settle_seconds=0)
	session.set_progression(["C", "Am", "F", "G"])

	return session


async def _bridge (session: jambuddy.session.JamSession, send_port: int = 0) -> typing.Tuple[jambuddy.osc.OscBridge, pythonosc.udp_client.SimpleUDPClient]:

	bridge = jambuddy.osc.OscBridge(session, receive_port=0, send_port=send_port)
	await bridge.start()

	assert bridge.port is not None

	return bridge, pythonosc.udp_client.SimpleUDPClient("127.0.0.1", bridge.port)


@pytest.mark.asyncio
async def test_osc_bpm_handler (session: jambuddy.session.JamSession) -> None:

	"""Sending /bpm should update the session tempo."""

	bridge, client = await _bridge(session)

	client.send_message("/bpm", 145)
	await asyncio.sleep(0.1)

	assert session.bpm == 145

	client.send_message("/bpm", 500)
	await asyncio.sleep(0.1)

	assert session.bpm == 145

	await bridge.stop()


@pytest.mark.asyncio
async def test_osc_mixer_handlers (session: jambuddy.session.JamSession) -> None:

	"""/volume/<voice> and /pan/<voice> reach the mixer."""

	bridge, client = await _bridge(session)

	client.send_message("/volume/kick", -3.0)
	client.send_message("/pan/synth", 0.5)
	client.send_message("/pan/bass", 4.0)
	client.send_message("/volume/cowbell", -1.0)
	await asyncio.sleep(0.1)

	assert session.graph.mixer.volumes["kick"] == -3
	assert session.graph.mixer.pans["synth"] == 0.5
	assert session.graph.mixer.pans["bass"] == 0

	await bridge.stop()


@pytest.mark.asyncio
async def test_osc_progression_and_pattern (session: jambuddy.session.JamSession) -> None:

	bridge, client = await _bridge(session)

	client.send_message("/progression", ["Dm7", "G7", "Cmaj7"])
	client.send_message("/pattern", "Funk")
	await asyncio.sleep(0.1)

	assert session.progression == ["Dm7", "G7", "Cmaj7"]
	assert session.drum_pattern_reference == "Funk"

	await bridge.stop()


@pytest.mark.asyncio
async def test_osc_play_and_stop (session: jambuddy.session.JamSession) -> None:

	"""/play starts the progression and /stop ends it."""

	bridge, client = await _bridge(session)

	client.send_message("/play", [])
	await asyncio.sleep(0.1)

	assert session.scheduler.is_playing

	client.send_message("/stop", [])
	await asyncio.sleep(0.1)

	assert not session.scheduler.is_playing

	await bridge.stop()
	session.close()


@pytest.mark.asyncio
async def test_osc_forwards_session_events (session: jambuddy.session.JamSession) -> None:

	"""Chord changes and training phases are sent to the target port."""

	received: typing.List[typing.Tuple[str, typing.Tuple[typing.Any, ...]]] = []

	dispatcher = pythonosc.dispatcher.Dispatcher()
	dispatcher.set_default_handler(lambda address, *args: received.append((address, args)))

	listener = pythonosc.osc_server.AsyncIOOSCUDPServer(("127.0.0.1", 0), dispatcher, asyncio.get_running_loop())
	listener_transport, _ = await listener.create_serve_endpoint()
	listen_port = listener_transport.get_extra_info("sockname")[1]

	bridge = jambuddy.osc.OscBridge(session, receive_port=0, send_port=listen_port)
	await bridge.start()

	session.events.emit("chord", 1)
	session.events.emit("count_in", 3)
	session.events.emit("ended")
	await asyncio.sleep(0.1)

	assert ("/chord", (1, "Am")) in received
	assert ("/count_in", (3,)) in received
	assert ("/ended", ()) in received

	await bridge.stop()
	listener_transport.close()


@pytest.mark.asyncio
async def test_osc_stop_unregisters_forwarders (session: jambuddy.session.JamSession) -> None:

	bridge, _ = await _bridge(session)

	assert session.events.listener_count("chord") == 1

	await bridge.stop()
	await bridge.stop()

	assert session.events.listener_count("chord") == 0
	assert bridge.port is None
