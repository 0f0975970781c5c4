import typing

import mido
import pytest

import jambuddy.audio_graph
import jambuddy.scheduler
import jambuddy.transport


class FakeMidiOut:

	"""MIDI output stub that records everything sent to it."""

	def __init__ (self, name: str = "Dummy MIDI") -> None:

		self.name = name
		self.sent: list[mido.Message] = []
		self.closed = False


	def send (self, message: mido.Message) -> None:

		"""Record an outgoing MIDI message."""

		self.sent.append(message)


	def close (self) -> None:

		self.closed = True


	def panic (self) -> None:

		"""No-op panic for the fake device."""

		return None


	def reset (self) -> None:

		"""No-op reset for the fake device."""

		return None


	def note_ons (self, channel: typing.Optional[int] = None) -> list[mido.Message]:

		"""Every audible note-on, optionally only those on one channel."""

		return [
			message for message in self.sent
			if message.type == "note_on" and message.velocity > 0
			and (channel is None or message.channel == channel)
		]


	def controls (self, control: int) -> list[mido.Message]:

		return [message for message in self.sent if message.type == "control_change" and message.control == control]


def _fake_get_output_names () -> list[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


def _fake_open_output (name: str) -> FakeMidiOut:

	"""Return a fake MIDI output regardless of the name."""

	return FakeMidiOut(name)


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use a fake MIDI output for all tests that need it."""

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", _fake_open_output)


@pytest.fixture
def fake_port () -> FakeMidiOut:

	return FakeMidiOut()


@pytest.fixture
def transport () -> jambuddy.transport.Transport:

	"""A transport running on simulated time."""

	return jambuddy.transport.Transport(render_mode=True)


@pytest.fixture
def graph (fake_port: FakeMidiOut, transport: jambuddy.transport.Transport) -> jambuddy.audio_graph.AudioGraph:

	"""An uninitialised graph on the fake port that resets without pausing."""

	return jambuddy.audio_graph.AudioGraph(port=fake_port, settle_seconds=0, transport=transport)


@pytest.fixture
def scheduler (graph: jambuddy.audio_graph.AudioGraph, transport: jambuddy.transport.Transport) -> jambuddy.scheduler.PlaybackScheduler:

	return jambuddy.scheduler.PlaybackScheduler(graph, transport)
