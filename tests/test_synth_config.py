import pytest

import jambuddy.synth_config


def test_presets () -> None:

	"""Every preset builds a config with the requested filter."""

	assert len(jambuddy.synth_config.SYNTH_PRESETS) == 11

	for name in jambuddy.synth_config.SYNTH_PRESETS:
		config = jambuddy.synth_config.preset_config(name, cutoff=2000, resonance=4)
		assert config.filter.cutoff == 2000
		assert config.filter.resonance == 4


def test_unknown_preset () -> None:

	"""Asking for a preset that does not exist raises."""

	with pytest.raises(ValueError):
		jambuddy.synth_config.preset_config("Theremin")


def test_dict_layout () -> None:

	"""The jam-file layout flattens oscillator options next to the type."""

	config = jambuddy.synth_config.preset_config("Square Lead")
	data = config.to_dict()

	assert data["oscillator"] == {"type": "pulse", "width": 0.2}
	assert data["envelope"]["attack"] == 0.02
	assert data["filter"] == {"cutoff": 8000.0, "resonance": 1.0}
	assert jambuddy.synth_config.SynthConfig.from_dict(data) == config


@pytest.mark.parametrize("data", [
	{},
	{"oscillator": {"type": "sawtooth"}, "envelope": {"attack": 0.1}, "filter": {"cutoff": 100, "resonance": 1}},
	{"oscillator": {"type": "kazoo"}, "envelope": {"attack": 0, "decay": 0, "sustain": 0, "release": 0}, "filter": {"cutoff": 100, "resonance": 1}},
	{"oscillator": {"type": "sine"}, "envelope": {"attack": 0, "decay": 0, "sustain": 2, "release": 0}, "filter": {"cutoff": 100, "resonance": 1}},
	{"oscillator": {"type": "sine"}, "envelope": {"attack": 0, "decay": 0, "sustain": 1, "release": 0}, "filter": {"cutoff": 0, "resonance": 1}},
	{"oscillator": {"type": "sine"}, "envelope": {"attack": float("nan"), "decay": 0, "sustain": 1, "release": 0}, "filter": {"cutoff": 100, "resonance": 1}},
	{"oscillator": {"type": "sine"}, "envelope": {"attack": 0, "decay": 0, "sustain": 1, "release": 0}, "filter": {"cutoff": float("inf"), "resonance": 1}},
])
def test_from_dict_rejects_invalid_data (data: dict) -> None:

	"""Missing sections and out-of-range values are errors."""

	with pytest.raises(ValueError):
		jambuddy.synth_config.SynthConfig.from_dict(data)


def test_oscillator_program () -> None:

	"""Oscillator types map to General MIDI programs."""

	assert jambuddy.synth_config.Oscillator("sawtooth").program == 81

	with pytest.raises(ValueError):
		jambuddy.synth_config.Envelope(attack=-1)
