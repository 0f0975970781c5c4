"""Eighth-note drum step patterns.

A pattern is a short cycle of steps, one per eighth note, each step either
``None`` (silence) or a ``DrumStep`` saying which of kick, snare and hi-hat
play.  Patterns loop independently of the chord progression: an 8-step
pattern under a 6-bar progression simply keeps cycling.

``DrumPatternStore`` holds the built-in grooves plus any patterns the user has
drawn in the editor.  Built-in names cannot be overwritten.
"""

import dataclasses
import logging
import typing


logger = logging.getLogger(__name__)


DEFAULT_PATTERN_NAME = "Pop Rock"

VOICES: typing.Tuple[str, ...] = ("kick", "snare", "hihat")


@dataclasses.dataclass(frozen=True)
class DrumStep:

	"""
	Which drum voices sound on one eighth-note step.
	"""

	kick: bool = False
	snare: bool = False
	hihat: bool = False


	def voices (self) -> typing.List[str]:

		"""Names of the voices that play, in kick, snare, hi-hat order."""

		return [voice for voice in VOICES if getattr(self, voice)]


DrumPattern = typing.Tuple[typing.Optional[DrumStep], ...]


def _step (*voices: str) -> DrumStep:

	return DrumStep(**{voice: True for voice in voices})


BUILT_IN_PATTERNS: typing.Dict[str, DrumPattern] = {
	"Pop Rock": (
		_step("kick", "hihat"),
		_step("hihat"),
		_step("snare", "hihat"),
		_step("hihat"),
		_step("kick", "hihat"),
		_step("hihat"),
		_step("snare", "hihat"),
		_step("hihat"),
	),
	"Four On The Floor": (
		_step("kick", "hihat"),
		_step("kick", "hihat"),
		_step("kick", "snare", "hihat"),
		_step("kick", "hihat"),
		_step("kick", "hihat"),
		_step("kick", "hihat"),
		_step("kick", "snare", "hihat"),
		_step("kick", "hihat"),
	),
	"Funk": (
		_step("kick", "hihat"),
		_step("hihat"),
		_step("snare", "hihat"),
		_step("kick", "hihat"),
		_step("hihat"),
		_step("kick", "hihat"),
		_step("snare", "hihat"),
		_step("hihat"),
	),
	"Reggae": (
		None,
		_step("hihat"),
		_step("kick", "snare", "hihat"),
		_step("hihat"),
		None,
		_step("hihat"),
		_step("kick", "snare", "hihat"),
		_step("hihat"),
	),
	"Techno": (
		_step("kick"),
		_step("hihat"),
		_step("kick", "hihat"),
		_step("hihat"),
		_step("kick"),
		_step("hihat"),
		_step("kick", "hihat"),
		_step("hihat"),
	),
	"Hip-Hop": (
		_step("kick", "hihat"),
		_step("hihat"),
		_step("hihat"),
		_step("snare", "hihat"),
		_step("hihat"),
		_step("kick", "hihat"),
		_step("hihat"),
		_step("snare", "hihat"),
	),
	"Latin": (
		_step("kick", "hihat"),
		_step("hihat"),
		_step("snare", "hihat"),
		_step("kick", "snare", "hihat"),
		_step("kick", "hihat"),
		_step("hihat"),
		_step("snare", "hihat"),
		_step("snare", "hihat"),
	),
}


def step_at (pattern: DrumPattern, index: int) -> typing.Optional[DrumStep]:

	"""Return the step for a global eighth-note index, wrapping the pattern.

	An empty pattern is silent everywhere.
	"""

	if not pattern:
		return None

	return pattern[index % len(pattern)]


def pattern_from_dicts (steps: typing.Sequence[typing.Optional[typing.Dict[str, typing.Any]]]) -> DrumPattern:

	"""Build a pattern from the JSON form used by jam files and the editor.

	Each step is ``None`` or a mapping such as ``{"kick": true, "hihat": true}``.
	Missing voices default to off.

	Raises:
		ValueError: If a step is neither ``None`` nor a mapping, names an
			unknown voice, or has a non-boolean value.
	"""

	pattern: typing.List[typing.Optional[DrumStep]] = []

	for index, step in enumerate(steps):

		if step is None:
			pattern.append(None)
			continue

		if not isinstance(step, dict):
			raise ValueError(f"Drum step {index} must be an object or null, got {type(step).__name__}")

		unknown = set(step) - set(VOICES)

		if unknown:
			raise ValueError(f"Drum step {index} has unknown voices: {', '.join(sorted(unknown))}")

		for voice, value in step.items():
			if not isinstance(value, bool):
				raise ValueError(f"Drum step {index} voice {voice!r} must be true or false")

		pattern.append(DrumStep(**step))

	return tuple(pattern)


def pattern_to_dicts (pattern: DrumPattern) -> typing.List[typing.Optional[typing.Dict[str, bool]]]:

	"""Inverse of ``pattern_from_dicts``; only voices that play are written."""

	return [
		None if step is None else {voice: True for voice in step.voices()}
		for step in pattern
	]


class DrumPatternStore:

	"""
	Built-in and user-defined drum patterns, looked up by name.

	Example:
		```python
		store = DrumPatternStore()
		store.add_custom("Half Time", [DrumStep(kick=True), None, None, None, DrumStep(snare=True), None, None, None])
		store.get("Half Time")
		store.names()   # built-ins first, then custom patterns
		```
	"""

	def __init__ (self) -> None:

		self._custom: typing.Dict[str, DrumPattern] = {}


	def names (self) -> typing.List[str]:

		"""All pattern names, built-ins first."""

		return list(BUILT_IN_PATTERNS) + list(self._custom)


	def custom_names (self) -> typing.List[str]:

		return list(self._custom)


	def is_built_in (self, name: str) -> bool:

		return name in BUILT_IN_PATTERNS


	def __contains__ (self, name: object) -> bool:

		return name in BUILT_IN_PATTERNS or name in self._custom


	def get (self, name: str) -> DrumPattern:

		"""Look up a pattern, falling back to the default groove for unknown names."""

		if name in BUILT_IN_PATTERNS:
			return BUILT_IN_PATTERNS[name]

		if name in self._custom:
			return self._custom[name]

		logger.warning(f"Unknown drum pattern {name!r} - using {DEFAULT_PATTERN_NAME!r}")

		return BUILT_IN_PATTERNS[DEFAULT_PATTERN_NAME]


	def resolve (self, reference: typing.Union[str, typing.Sequence[typing.Any]]) -> DrumPattern:

		"""Accept a pattern name or an inline pattern (steps or JSON-style dicts)."""

		if isinstance(reference, str):
			return self.get(reference)

		if all(step is None or isinstance(step, DrumStep) for step in reference):
			return tuple(reference)

		return pattern_from_dicts(reference)


	def add_custom (self, name: str, pattern: typing.Sequence[typing.Optional[DrumStep]]) -> None:

		"""Save (or replace) a user pattern.

		Raises:
			ValueError: If the name is empty or belongs to a built-in pattern.
		"""

		name = name.strip()

		if not name:
			raise ValueError("Drum pattern name must not be empty")

		if name in BUILT_IN_PATTERNS:
			raise ValueError(f"Cannot overwrite built-in drum pattern {name!r}")

		self._custom[name] = tuple(pattern)

		logger.info(f"Saved drum pattern {name!r} ({len(pattern)} steps)")


	def remove_custom (self, name: str) -> None:

		"""Delete a user pattern; unknown names raise ``KeyError``."""

		del self._custom[name]
