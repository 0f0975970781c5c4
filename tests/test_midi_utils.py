import mido
import pytest

import jambuddy.midi_utils

from conftest import FakeMidiOut


def test_single_device_is_selected (patch_midi: None) -> None:

	"""With one output and no name, that output is opened."""

	name, port = jambuddy.midi_utils.select_output_device()

	assert name == "Dummy MIDI"
	assert isinstance(port, FakeMidiOut)


def test_unknown_device_name (patch_midi: None) -> None:

	"""A name that is not available opens nothing."""

	assert jambuddy.midi_utils.select_output_device("Nope") == (None, None)


def test_no_devices (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Without outputs nothing is opened."""

	monkeypatch.setattr(mido, "get_output_names", lambda: [])

	assert jambuddy.midi_utils.select_output_device() == (None, None)


def test_backend_failure_lists_nothing (monkeypatch: pytest.MonkeyPatch) -> None:

	"""A failing MIDI backend is reported as no devices."""

	def broken () -> list[str]:
		raise OSError("no backend")

	monkeypatch.setattr(mido, "get_output_names", broken)

	assert jambuddy.midi_utils.list_output_devices() == []


def test_several_devices_prompt (monkeypatch: pytest.MonkeyPatch) -> None:

	"""With several outputs the user is asked to choose."""

	monkeypatch.setattr(mido, "get_output_names", lambda: ["Synth A", "Synth B"])
	monkeypatch.setattr(mido, "open_output", lambda name: FakeMidiOut(name))

	answers = iter(["7", "x", "2"])
	monkeypatch.setattr("builtins.input", lambda prompt: next(answers))

	name, port = jambuddy.midi_utils.select_output_device()

	assert name == "Synth B"
	assert port.name == "Synth B"


def test_several_devices_non_interactive (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Non-interactive selection takes the first output."""

	monkeypatch.setattr(mido, "get_output_names", lambda: ["Synth A", "Synth B"])
	monkeypatch.setattr(mido, "open_output", lambda name: FakeMidiOut(name))

	name, _ = jambuddy.midi_utils.select_output_device(interactive=False)

	assert name == "Synth A"
