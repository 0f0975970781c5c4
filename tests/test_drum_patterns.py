import logging

import pytest

import jambuddy.drum_patterns


def test_built_in_patterns () -> None:

	"""Seven built-in grooves of eight steps each."""

	patterns = jambuddy.drum_patterns.BUILT_IN_PATTERNS

	assert len(patterns) == 7
	assert list(patterns)[0] == "Pop Rock"

	for name, pattern in patterns.items():
		assert len(pattern) == 8, name


def test_step_voices () -> None:

	"""Voices are listed in kick, snare, hi-hat order."""

	step = jambuddy.drum_patterns.DrumStep(kick=True, snare=True, hihat=True)

	assert step.voices() == ["kick", "snare", "hihat"]
	assert jambuddy.drum_patterns.DrumStep().voices() == []


def test_step_at_wraps () -> None:

	"""Global step indices wrap around the pattern."""

	pattern = jambuddy.drum_patterns.BUILT_IN_PATTERNS["Reggae"]

	assert jambuddy.drum_patterns.step_at(pattern, 0) is None
	assert jambuddy.drum_patterns.step_at(pattern, 10) == pattern[2]
	assert jambuddy.drum_patterns.step_at((), 3) is None


def test_unknown_pattern_falls_back (caplog: pytest.LogCaptureFixture) -> None:

	"""An unknown name plays the default groove and logs a warning."""

	store = jambuddy.drum_patterns.DrumPatternStore()

	with caplog.at_level(logging.WARNING):
		pattern = store.get("Polka")

	assert pattern == jambuddy.drum_patterns.BUILT_IN_PATTERNS["Pop Rock"]
	assert "Polka" in caplog.text


def test_custom_patterns () -> None:

	"""User patterns are listed after the built-ins and can be removed."""

	store = jambuddy.drum_patterns.DrumPatternStore()
	half_time = [jambuddy.drum_patterns.DrumStep(kick=True), None, None, None, jambuddy.drum_patterns.DrumStep(snare=True), None, None, None]

	store.add_custom("Half Time", half_time)

	assert "Half Time" in store
	assert store.names()[-1] == "Half Time"
	assert store.custom_names() == ["Half Time"]
	assert store.get("Half Time") == tuple(half_time)
	assert not store.is_built_in("Half Time")

	store.remove_custom("Half Time")

	assert "Half Time" not in store

	with pytest.raises(KeyError):
		store.remove_custom("Half Time")


@pytest.mark.parametrize("name", ["Funk", "  Funk ", "", "   "])
def test_custom_pattern_names_are_validated (name: str) -> None:

	"""Built-in names and empty names cannot be saved."""

	store = jambuddy.drum_patterns.DrumPatternStore()

	with pytest.raises(ValueError):
		store.add_custom(name, [None] * 8)


def test_pattern_dict_conversion () -> None:

	"""The JSON step form converts to steps and back."""

	steps = [{"kick": True, "hihat": True}, None, {"snare": True}, {"hihat": False}]
	pattern = jambuddy.drum_patterns.pattern_from_dicts(steps)

	assert pattern[0] == jambuddy.drum_patterns.DrumStep(kick=True, hihat=True)
	assert pattern[1] is None
	assert pattern[3] == jambuddy.drum_patterns.DrumStep()
	assert jambuddy.drum_patterns.pattern_to_dicts(pattern) == [{"kick": True, "hihat": True}, None, {"snare": True}, {}]


@pytest.mark.parametrize("steps", [
	[{"cowbell": True}],
	[{"kick": 1}],
	["kick"],
])
def test_pattern_from_dicts_rejects_bad_steps (steps: list) -> None:

	"""Unknown voices, non-boolean values and non-object steps are rejected."""

	with pytest.raises(ValueError):
		jambuddy.drum_patterns.pattern_from_dicts(steps)


def test_resolve_accepts_names_and_inline_patterns () -> None:

	"""A reference can be a name, a list of steps or a list of step dicts."""

	store = jambuddy.drum_patterns.DrumPatternStore()
	step = jambuddy.drum_patterns.DrumStep(kick=True)

	assert store.resolve("Techno") == jambuddy.drum_patterns.BUILT_IN_PATTERNS["Techno"]
	assert store.resolve([step, None]) == (step, None)
	assert store.resolve([{"kick": True}, None]) == (step, None)
