"""Jam-state documents: a whole jam saved as JSON.

The document uses camelCase keys so files saved by earlier versions of the app
still load.  Only ``progression`` is required; every other field falls back
to a default, and a few legacy fields are upgraded on load:

- ``drumVolume`` sets ``kickVolume``, ``snareVolume`` and ``hihatVolume``
  when those are absent;
- ``harmonyEnabled: true`` becomes ``harmonyInterval: "7th"``;
- ``synthPreset`` with ``synthFilterCutoff`` / ``synthFilterResonance``
  becomes a ``synthConfig`` when the document has none.

Unknown keys are ignored.  A field of the wrong type or out of range raises
``JamStateError`` and nothing is returned, so a bad file is never half
applied.
"""

import dataclasses
import json
import math
import logging
import typing

import jambuddy.arpeggiator
import jambuddy.audio_graph
import jambuddy.drum_patterns
import jambuddy.harmony
import jambuddy.scheduler
import jambuddy.synth_config


logger = logging.getLogger(__name__)


DEFAULT_BPM = 120
DEFAULT_KEY = "C"
DEFAULT_SCALE = "Major"
DEFAULT_LOOP_COUNT = 2

DrumPatternReference = typing.Union[str, jambuddy.drum_patterns.DrumPattern]


class JamStateError (ValueError):

	"""Raised when a jam-state document cannot be read."""


@dataclasses.dataclass
class JamState:

	"""
	Everything needed to restore a jam.

	``drum_pattern`` is either the name of a pattern (built-in or one of
	``custom_drum_patterns``) or an inline pattern.
	"""

	progression: typing.List[str]
	bpm: float = DEFAULT_BPM
	music_key: str = DEFAULT_KEY
	scale: str = DEFAULT_SCALE
	drum_pattern: DrumPatternReference = jambuddy.drum_patterns.DEFAULT_PATTERN_NAME
	mixer: jambuddy.audio_graph.MixerSettings = dataclasses.field(default_factory=jambuddy.audio_graph.MixerSettings)
	synth_config: jambuddy.synth_config.SynthConfig = jambuddy.synth_config.DEFAULT_SYNTH_CONFIG
	synth_preset_name: str = jambuddy.synth_config.DEFAULT_PRESET_NAME
	use_inversions: bool = True
	synth_octave: int = 0
	voicing_variation: bool = True
	spread_voicing: bool = True
	harmony_interval: typing.Optional[str] = None
	arpeggiator: jambuddy.arpeggiator.ArpeggiatorConfig = dataclasses.field(default_factory=jambuddy.arpeggiator.ArpeggiatorConfig)
	custom_drum_patterns: typing.Dict[str, jambuddy.drum_patterns.DrumPattern] = dataclasses.field(default_factory=dict)
	loop_count: int = DEFAULT_LOOP_COUNT


def _is_number (value: typing.Any) -> bool:

	return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _number (data: typing.Dict[str, typing.Any], key: str, default: float) -> float:

	value = data.get(key, default)

	if not _is_number(value):
		raise JamStateError(f"'{key}' must be a finite number, got {value!r}")

	return value


def _integer (data: typing.Dict[str, typing.Any], key: str, default: int) -> int:

	value = _number(data, key, default)

	if value != int(value):
		raise JamStateError(f"'{key}' must be a whole number, got {value!r}")

	return int(value)


def _boolean (data: typing.Dict[str, typing.Any], key: str, default: bool) -> bool:

	value = data.get(key, default)

	if not isinstance(value, bool):
		raise JamStateError(f"'{key}' must be true or false, got {value!r}")

	return value


def _string (data: typing.Dict[str, typing.Any], key: str, default: str, allowed: typing.Optional[typing.Sequence[str]] = None) -> str:

	value = data.get(key, default)

	if not isinstance(value, str):
		raise JamStateError(f"'{key}' must be a string, got {value!r}")

	if allowed is not None and value not in allowed:
		raise JamStateError(f"'{key}' must be one of {', '.join(allowed)}, got {value!r}")

	return value


def _migrate (data: typing.Dict[str, typing.Any]) -> typing.Dict[str, typing.Any]:

	"""Return a copy of ``data`` with legacy fields rewritten to the current layout."""

	migrated = dict(data)

	drum_volume = migrated.pop("drumVolume", None)

	if drum_volume is not None and "kickVolume" not in data:
		logger.info("Upgrading legacy 'drumVolume'")
		for voice in jambuddy.audio_graph.DRUM_VOICES:
			migrated.setdefault(f"{voice}Volume", drum_volume)

	if migrated.pop("harmonyEnabled", None) is True:
		logger.info("Upgrading legacy 'harmonyEnabled'")
		migrated["harmonyInterval"] = "7th"

	preset = migrated.pop("synthPreset", None)
	cutoff = migrated.pop("synthFilterCutoff", jambuddy.synth_config.DEFAULT_FILTER_CUTOFF)
	resonance = migrated.pop("synthFilterResonance", jambuddy.synth_config.DEFAULT_FILTER_RESONANCE)

	if preset is not None and "synthConfig" not in data:

		logger.info(f"Upgrading legacy synth preset {preset!r}")

		if preset not in jambuddy.synth_config.SYNTH_PRESETS:
			logger.warning(f"Unknown legacy synth preset {preset!r}, using {jambuddy.synth_config.DEFAULT_PRESET_NAME!r}")
			preset = jambuddy.synth_config.DEFAULT_PRESET_NAME

		try:
			config = jambuddy.synth_config.preset_config(preset, cutoff=cutoff, resonance=resonance)
		except (TypeError, ValueError) as exc:
			raise JamStateError(f"Invalid legacy synth filter: {exc}") from exc

		migrated["synthPresetName"] = preset
		migrated["synthConfig"] = config.to_dict()

	return migrated


def _progression (data: typing.Dict[str, typing.Any]) -> typing.List[str]:

	if "progression" not in data:
		raise JamStateError("Missing 'progression'")

	progression = data["progression"]

	if not isinstance(progression, list) or not all(isinstance(chord, str) for chord in progression):
		raise JamStateError("'progression' must be a list of chord symbols")

	return list(progression)


def _drum_pattern (value: typing.Any, key: str) -> DrumPatternReference:

	if isinstance(value, str):
		return value

	if isinstance(value, list):
		try:
			return jambuddy.drum_patterns.pattern_from_dicts(value)
		except ValueError as exc:
			raise JamStateError(f"'{key}': {exc}") from exc

	raise JamStateError(f"'{key}' must be a pattern name or a list of steps, got {value!r}")


def _custom_patterns (data: typing.Dict[str, typing.Any]) -> typing.Dict[str, jambuddy.drum_patterns.DrumPattern]:

	entries = data.get("customDrumPatterns", [])

	if not isinstance(entries, list):
		raise JamStateError("'customDrumPatterns' must be a list")

	patterns: typing.Dict[str, jambuddy.drum_patterns.DrumPattern] = {}

	for index, entry in enumerate(entries):

		if not isinstance(entry, dict) or not isinstance(entry.get("name"), str) or not isinstance(entry.get("pattern"), list):
			raise JamStateError(f"'customDrumPatterns[{index}]' must have a 'name' and a 'pattern' list")

		pattern = _drum_pattern(entry["pattern"], f"customDrumPatterns[{index}].pattern")
		patterns[entry["name"]] = typing.cast(jambuddy.drum_patterns.DrumPattern, pattern)

	return patterns


def _mixer (data: typing.Dict[str, typing.Any]) -> jambuddy.audio_graph.MixerSettings:

	volumes = {
		voice: _number(data, f"{voice}Volume", jambuddy.audio_graph.DEFAULT_VOLUMES[voice])
		for voice in jambuddy.audio_graph.MIXER_VOICES
	}

	pans = {
		voice: _number(data, f"{voice}Pan", 0.0)
		for voice in jambuddy.audio_graph.MIXER_VOICES
	}

	try:
		return jambuddy.audio_graph.MixerSettings(volumes=volumes, pans=pans)
	except ValueError as exc:
		raise JamStateError(str(exc)) from exc


def _synth_config (data: typing.Dict[str, typing.Any]) -> jambuddy.synth_config.SynthConfig:

	value = data.get("synthConfig")

	if value is None:
		return jambuddy.synth_config.DEFAULT_SYNTH_CONFIG

	if not isinstance(value, dict):
		raise JamStateError("'synthConfig' must be an object")

	try:
		return jambuddy.synth_config.SynthConfig.from_dict(value)
	except ValueError as exc:
		raise JamStateError(f"'synthConfig': {exc}") from exc


def _arpeggiator (data: typing.Dict[str, typing.Any]) -> jambuddy.arpeggiator.ArpeggiatorConfig:

	defaults = jambuddy.arpeggiator.ArpeggiatorConfig()

	try:
		return jambuddy.arpeggiator.ArpeggiatorConfig(
			enabled = _boolean(data, "arpeggiatorEnabled", defaults.enabled),
			rate = _string(data, "arpeggiatorRate", defaults.rate),
			direction = _string(data, "arpeggiatorDirection", defaults.direction),
			gate = _number(data, "arpeggiatorGate", defaults.gate),
		)
	except JamStateError:
		raise
	except ValueError as exc:
		raise JamStateError(str(exc)) from exc


def parse_jam_state (document: typing.Union[str, bytes, typing.Dict[str, typing.Any]]) -> JamState:

	"""
	Validate a jam-state document and build a ``JamState``.

	Parameters:
		document: JSON text or an already decoded object.

	Raises:
		JamStateError: If the text is not JSON, the top level is not an
			object, or any field is invalid.

	Example:
		```python
		state = parse_jam_state('{"progression": ["C", "G", "Am", "F"], "drumVolume": -8}')
		state.mixer.volumes["snare"]   # -8
		```
	"""

	if isinstance(document, (str, bytes)):
		try:
			document = json.loads(document)
		except ValueError as exc:
			raise JamStateError(f"Jam file is not valid JSON: {exc}") from exc

	if not isinstance(document, dict):
		raise JamStateError("Jam file must contain a JSON object")

	data = _migrate(document)

	bpm = _number(data, "bpm", DEFAULT_BPM)

	try:
		jambuddy.scheduler.validate_bpm(bpm)
	except ValueError as exc:
		raise JamStateError(str(exc)) from exc

	harmony_interval = data.get("harmonyInterval")

	if harmony_interval is not None and harmony_interval not in jambuddy.scheduler.HARMONY_INTERVALS:
		raise JamStateError(f"'harmonyInterval' must be one of {', '.join(jambuddy.scheduler.HARMONY_INTERVALS)} or null, got {harmony_interval!r}")

	loop_count = _integer(data, "loopCount", DEFAULT_LOOP_COUNT)

	if loop_count < 1:
		raise JamStateError(f"'loopCount' must be at least 1, got {loop_count}")

	return JamState(
		progression = _progression(data),
		bpm = bpm,
		music_key = _string(data, "musicKey", DEFAULT_KEY, jambuddy.harmony.MUSIC_KEYS),
		scale = _string(data, "scale", DEFAULT_SCALE, jambuddy.harmony.SCALES),
		drum_pattern = _drum_pattern(data.get("drumPattern", jambuddy.drum_patterns.DEFAULT_PATTERN_NAME), "drumPattern"),
		mixer = _mixer(data),
		synth_config = _synth_config(data),
		synth_preset_name = _string(data, "synthPresetName", jambuddy.synth_config.DEFAULT_PRESET_NAME),
		use_inversions = _boolean(data, "useInversions", True),
		synth_octave = _integer(data, "synthOctave", 0),
		voicing_variation = _boolean(data, "voicingVariation", True),
		spread_voicing = _boolean(data, "spreadVoicing", True),
		harmony_interval = harmony_interval,
		arpeggiator = _arpeggiator(data),
		custom_drum_patterns = _custom_patterns(data),
		loop_count = loop_count,
	)


def dump_jam_state (state: JamState) -> typing.Dict[str, typing.Any]:

	"""Convert a ``JamState`` to the JSON-ready document layout."""

	if isinstance(state.drum_pattern, str):
		drum_pattern: typing.Any = state.drum_pattern
	else:
		drum_pattern = jambuddy.drum_patterns.pattern_to_dicts(state.drum_pattern)

	document: typing.Dict[str, typing.Any] = {
		"progression": list(state.progression),
		"bpm": state.bpm,
		"musicKey": state.music_key,
		"scale": state.scale,
		"drumPattern": drum_pattern,
	}

	for voice in jambuddy.audio_graph.MIXER_VOICES:
		document[f"{voice}Volume"] = state.mixer.volumes[voice]
		document[f"{voice}Pan"] = state.mixer.pans[voice]

	document.update({
		"synthConfig": state.synth_config.to_dict(),
		"synthPresetName": state.synth_preset_name,
		"useInversions": state.use_inversions,
		"synthOctave": state.synth_octave,
		"voicingVariation": state.voicing_variation,
		"spreadVoicing": state.spread_voicing,
		"harmonyInterval": state.harmony_interval,
		"arpeggiatorEnabled": state.arpeggiator.enabled,
		"arpeggiatorRate": state.arpeggiator.rate,
		"arpeggiatorDirection": state.arpeggiator.direction,
		"arpeggiatorGate": state.arpeggiator.gate,
		"customDrumPatterns": [
			{"name": name, "pattern": jambuddy.drum_patterns.pattern_to_dicts(pattern)}
			for name, pattern in state.custom_drum_patterns.items()
		],
		"loopCount": state.loop_count,
	})

	return document


def load_jam_file (path: str) -> JamState:

	"""Read and validate a jam file.

	Raises:
		JamStateError: If the file content is invalid.
		OSError: If the file cannot be read.
	"""

	with open(path, "r", encoding="utf-8") as f:
		text = f.read()

	state = parse_jam_state(text)

	logger.info(f"Loaded jam {path}: {len(state.progression)} chords at {state.bpm} BPM")

	return state


def save_jam_file (path: str, state: JamState) -> None:

	with open(path, "w", encoding="utf-8") as f:
		json.dump(dump_jam_state(state), f, indent=2)

	logger.info(f"Saved jam {path}")
