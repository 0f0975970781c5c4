"""Synth sound settings: oscillator, ADSR envelope and filter.

Sound design is described the way the jam file stores it (an oscillator type
with free-form shape options, an envelope in seconds and a low-pass filter)
and translated into MIDI by ``jambuddy.nodes``: the oscillator type picks a
General MIDI program, the envelope and filter become sound-controller CCs.

The named presets are the ones offered in the synth menu.
"""

import copy
import math
import dataclasses
import typing


OSCILLATOR_TYPES: typing.Tuple[str, ...] = (
	"sine",
	"square",
	"sawtooth",
	"triangle",
	"pulse",
	"fmsine",
	"fmsquare",
	"fmtriangle",
	"fatsine",
	"fatsawtooth",
	"fatsquare",
	"amsine",
)

# General MIDI program (0-indexed) that best approximates each oscillator.
GM_PROGRAMS: typing.Dict[str, int] = {
	"sine": 79,          # Ocarina
	"square": 80,        # Lead 1 (square)
	"sawtooth": 81,      # Lead 2 (sawtooth)
	"triangle": 74,      # Recorder
	"pulse": 80,
	"fmsine": 4,         # Electric Piano 1
	"fmsquare": 5,
	"fmtriangle": 11,    # Vibraphone
	"fatsine": 16,       # Drawbar Organ
	"fatsawtooth": 50,   # Synth Strings 1
	"fatsquare": 62,     # Synth Brass 1
	"amsine": 88,        # Pad 1 (new age)
}

DEFAULT_FILTER_CUTOFF = 8000.0
DEFAULT_FILTER_RESONANCE = 1.0


@dataclasses.dataclass(frozen=True)
class Oscillator:

	"""
	Waveform kind plus shape parameters (``width``, ``harmonicity``,
	``modulationIndex``, ``count``, ``spread`` ...).
	"""

	type: str = "sawtooth"
	options: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict, hash=False)


	def __post_init__ (self) -> None:

		if self.type not in OSCILLATOR_TYPES:
			raise ValueError(f"Unknown oscillator type: {self.type!r}")


	@property
	def program (self) -> int:

		return GM_PROGRAMS[self.type]


@dataclasses.dataclass(frozen=True)
class Envelope:

	"""
	ADSR envelope.  Times are seconds, sustain is a level in ``[0, 1]``.
	"""

	attack: float = 0.01
	decay: float = 0.1
	sustain: float = 0.5
	release: float = 0.5


	def __post_init__ (self) -> None:

		for name in ("attack", "decay", "release"):
			value = getattr(self, name)
			if not math.isfinite(value) or value < 0:
				raise ValueError(f"Envelope {name} must be a non-negative number of seconds, got {value}")

		if not 0 <= self.sustain <= 1:
			raise ValueError(f"Envelope sustain must be in [0, 1], got {self.sustain}")


@dataclasses.dataclass(frozen=True)
class FilterSettings:

	"""
	Low-pass filter: cutoff in Hz and resonance (Q).
	"""

	cutoff: float = DEFAULT_FILTER_CUTOFF
	resonance: float = DEFAULT_FILTER_RESONANCE


	def __post_init__ (self) -> None:

		if not math.isfinite(self.cutoff) or self.cutoff <= 0:
			raise ValueError(f"Filter cutoff must be positive, got {self.cutoff}")

		if not math.isfinite(self.resonance) or self.resonance <= 0:
			raise ValueError(f"Filter resonance must be positive, got {self.resonance}")


@dataclasses.dataclass(frozen=True)
class SynthConfig:

	"""
	Complete sound of the chord (and harmony) synth.
	"""

	oscillator: Oscillator = dataclasses.field(default_factory=Oscillator)
	envelope: Envelope = dataclasses.field(default_factory=Envelope)
	filter: FilterSettings = dataclasses.field(default_factory=FilterSettings)


	def to_dict (self) -> typing.Dict[str, typing.Any]:

		"""Serialise to the jam-file layout."""

		return {
			"oscillator": {"type": self.oscillator.type, **copy.deepcopy(self.oscillator.options)},
			"envelope": dataclasses.asdict(self.envelope),
			"filter": {"cutoff": self.filter.cutoff, "resonance": self.filter.resonance},
		}


	@classmethod
	def from_dict (cls, data: typing.Dict[str, typing.Any]) -> "SynthConfig":

		"""Build a config from the jam-file layout.

		Raises:
			ValueError: If a section is missing, has the wrong type, or holds
				out-of-range values.
		"""

		try:
			oscillator_data = dict(data["oscillator"])
			envelope_data = data["envelope"]
			filter_data = data["filter"]

			oscillator = Oscillator(type=oscillator_data.pop("type"), options=oscillator_data)
			envelope = Envelope(
				attack = float(envelope_data["attack"]),
				decay = float(envelope_data["decay"]),
				sustain = float(envelope_data["sustain"]),
				release = float(envelope_data["release"]),
			)
			synth_filter = FilterSettings(
				cutoff = float(filter_data["cutoff"]),
				resonance = float(filter_data["resonance"]),
			)

		except (KeyError, TypeError) as exc:
			raise ValueError(f"Invalid synth config: {exc!r}") from exc

		return cls(oscillator=oscillator, envelope=envelope, filter=synth_filter)


SYNTH_PRESETS: typing.Dict[str, typing.Tuple[Oscillator, Envelope]] = {
	"Sawtooth": (
		Oscillator("sawtooth"),
		Envelope(attack=0.01, decay=0.1, sustain=0.5, release=0.5),
	),
	"Warm Pad": (
		Oscillator("square"),
		Envelope(attack=0.4, decay=0.2, sustain=0.7, release=1.2),
	),
	"Electric Piano": (
		Oscillator("fmsine", {"modulationIndex": 2, "harmonicity": 3, "modulationType": "square"}),
		Envelope(attack=0.02, decay=0.2, sustain=0.2, release=0.3),
	),
	"Sine Lead": (
		Oscillator("sine"),
		Envelope(attack=0.05, decay=0.1, sustain=0.8, release=0.4),
	),
	"FM Pluck": (
		Oscillator("fmsine", {"modulationType": "triangle", "harmonicity": 1.2, "modulationIndex": 2.5}),
		Envelope(attack=0.01, decay=0.5, sustain=0.1, release=1.0),
	),
	"Square Lead": (
		Oscillator("pulse", {"width": 0.2}),
		Envelope(attack=0.02, decay=0.4, sustain=0.4, release=0.6),
	),
	"Wobble Bass": (
		Oscillator("fatsawtooth", {"count": 2, "spread": 40}),
		Envelope(attack=0.01, decay=0.3, sustain=0.8, release=1.0),
	),
	"Classic Organ": (
		Oscillator("fatsine", {"count": 3}),
		Envelope(attack=0.01, decay=0.1, sustain=0.9, release=0.2),
	),
	"String Ensemble": (
		Oscillator("fatsawtooth", {"count": 3, "spread": 40}),
		Envelope(attack=0.6, decay=0.1, sustain=0.9, release=1.5),
	),
	"Brass Section": (
		Oscillator("fatsawtooth", {"count": 3, "spread": 15}),
		Envelope(attack=0.05, decay=0.2, sustain=0.7, release=0.6),
	),
	"Clean Guitar": (
		Oscillator("fmsine", {"modulationIndex": 1.2, "harmonicity": 2, "modulationType": "sine"}),
		Envelope(attack=0.01, decay=0.8, sustain=0.1, release=1.4),
	),
}

DEFAULT_PRESET_NAME = "Sawtooth"


def preset_config (
	name: str,
	cutoff: float = DEFAULT_FILTER_CUTOFF,
	resonance: float = DEFAULT_FILTER_RESONANCE
) -> SynthConfig:

	"""Return a ``SynthConfig`` for a named preset with the given filter.

	Raises:
		ValueError: If the preset name is unknown.
	"""

	if name not in SYNTH_PRESETS:
		raise ValueError(f"Unknown synth preset: {name!r}. Available: {', '.join(SYNTH_PRESETS)}")

	oscillator, envelope = SYNTH_PRESETS[name]

	return SynthConfig(
		oscillator = oscillator,
		envelope = envelope,
		filter = FilterSettings(cutoff=cutoff, resonance=resonance),
	)


DEFAULT_SYNTH_CONFIG = preset_config(DEFAULT_PRESET_NAME)
