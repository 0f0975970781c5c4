import functools
import logging
import random
import re
import typing

import jambuddy.chords


logger = logging.getLogger(__name__)


MUSIC_KEYS: typing.Tuple[str, ...] = ("A", "Bb", "B", "C", "C#", "D", "D#", "E", "F", "F#", "G", "G#")

SCALES: typing.Tuple[str, ...] = ("Major", "Minor")

SCALE_INTERVALS: typing.Dict[str, typing.Tuple[int, ...]] = {
	"Major": (0, 2, 4, 5, 7, 9, 11),
	"Minor": (0, 2, 3, 5, 7, 8, 10),
}

DEGREE_NUMERALS: typing.Dict[str, typing.Tuple[str, ...]] = {
	"Major": ("I", "ii", "iii", "IV", "V", "vi", "vii"),
	"Minor": ("i", "ii", "III", "iv", "v", "VI", "VII"),
}

DEGREE_QUALITIES: typing.Dict[str, typing.Tuple[str, ...]] = {
	"Major": ("", "m", "m", "", "", "m", "dim"),
	"Minor": ("m", "m", "", "m", "m", "", ""),
}

# Uppercase and lowercase spellings both address the same scale degree.
_NUMERAL_TO_DEGREE: typing.Dict[str, int] = {
	"I": 1, "II": 2, "III": 3, "IV": 4, "V": 5, "VI": 6, "VII": 7,
	"i": 1, "ii": 2, "iii": 3, "iv": 4, "v": 5, "vi": 6, "vii": 7,
}

# Longest alternatives first so "vi" is not read as "v" followed by "i".
_ROMAN_PATTERN = re.compile(r"^(b?#?)(VII|VI|IV|III|II|V|I|vii|vi|iv|iii|ii|v|i)(.*)$")

# An extension starting with one of these replaces the degree's own quality.
_QUALITY_PREFIXES: typing.Tuple[str, ...] = ("m", "dim", "aug", "sus", "+")

_MINOR_TONIC_PATTERN = re.compile(r"^(?!ii|iii|iv|vi|vii)i")

PRESET_PROGRESSIONS: typing.List[typing.Tuple[str, typing.List[str]]] = [
	("Pop-Hymne (I-V-vi-IV)", ["I", "V", "vi", "IV"] * 2),
	("Gefühlvolle Ballade (vi-V-I-IV)", ["vi", "V", "I", "IV"] * 2),
	("Hit-Ballade (vi-IV-I-V)", ["vi", "IV", "I", "V"] * 2),
	("50er Doo-Wop (I-vi-IV-V)", ["I", "vi", "IV", "V"] * 2),
	("Classic Rock (I-IV-V)", ["I", "IV", "V", "V"] * 2),
	("Jazz-Standard (ii-V-I)", ["iim7", "V7", "Imaj7", "Imaj7"] * 2),
	("Einfacher Blues (I-IV-I-V)", ["I7", "IV7", "I7", "V7"] * 2),
	("Moll-Kadenz (i-iv-V-i)", ["im", "ivm", "V", "im"] * 2),
	("Andalusische Kadenz (i-VII-VI-V)", ["im", "VII", "VI", "V"] * 2),
	("Rock-Power (I-bVII-IV-I)", ["I", "bVII", "IV", "I"] * 2),
	("Folk-Standard (I-ii-IV-V)", ["I", "ii", "IV", "V"] * 2),
	("Uplifting Chorus (IV-I-V-vi)", ["IV", "I", "V", "vi"] * 2),
]


def _validate_key_scale (key: str, scale: str) -> int:

	"""Return the key's pitch class, raising ``ValueError`` for an unknown key or scale."""

	if scale not in SCALE_INTERVALS:
		raise ValueError(f"Unknown scale: {scale!r}. Available: {', '.join(SCALES)}")

	return jambuddy.chords.key_name_to_pc(key)


def diatonic_chords (key: str, scale: str = "Major") -> typing.List[str]:

	"""Return the seven diatonic triads of a key as chord symbols.

	Parameters:
		key: Note name for the key (e.g. ``"C"``, ``"F#"``, ``"Bb"``).
		scale: ``"Major"`` or ``"Minor"`` (natural minor).

	Returns:
		Seven chord symbols, one per scale degree.

	Example:
		```python
		diatonic_chords("C")            # ["C", "Dm", "Em", "F", "G", "Am", "Bdim"]
		diatonic_chords("A", "Minor")   # ["Am", "Bm", "C", "Dm", "Em", "F", "G"]
		```
	"""

	key_pc = _validate_key_scale(key, scale)

	return [
		jambuddy.chords.PC_TO_NOTE_NAME[(key_pc + interval) % 12] + quality
		for interval, quality in zip(SCALE_INTERVALS[scale], DEGREE_QUALITIES[scale])
	]


def _basic_quality (suffix: str) -> typing.Tuple[str, str]:

	"""Split a chord suffix into its basic triad quality and the remainder."""

	if suffix.startswith("dim"):
		return "dim", suffix[3:]

	if suffix.startswith("m") and not suffix.startswith("maj"):
		return "m", suffix[1:]

	return "", suffix


@functools.lru_cache(maxsize=2048)
def roman_numeral (symbol: str, key: str, scale: str = "Major") -> str:

	"""Classify a chord as a roman numeral within a key.

	Matching tries, in order: an exact diatonic chord, then the diatonic chord
	with the same root and basic quality (the rest of the suffix is kept, so
	``Cmaj7`` in C is ``Imaj7``), then, in minor keys only, a major chord on the
	fifth degree (the borrowed dominant).  Anything else is returned unchanged.

	Parameters:
		symbol: The chord to classify.
		key: Key name.
		scale: ``"Major"`` or ``"Minor"``.

	Returns:
		The numeral, the original symbol if it is not diatonic, or ``"N.C."``
		for a rest.

	Example:
		```python
		roman_numeral("C", "C", "Major")    # "I"
		roman_numeral("Am", "C", "Major")   # "vi"
		roman_numeral("F#", "C", "Major")   # "F#"
		roman_numeral("E7", "A", "Minor")   # "V7"
		```
	"""

	if not symbol or symbol.strip().lower() == jambuddy.chords.NO_CHORD.lower():
		return jambuddy.chords.NO_CHORD

	key_pc = _validate_key_scale(key, scale)
	parsed = jambuddy.chords.parse_chord(symbol)

	if parsed is None:
		return symbol

	numerals = DEGREE_NUMERALS[scale]
	qualities = DEGREE_QUALITIES[scale]
	quality, remainder = _basic_quality(parsed.suffix)

	for interval, degree_quality, numeral in zip(SCALE_INTERVALS[scale], qualities, numerals):

		if (key_pc + interval) % 12 != parsed.root_pc:
			continue

		if parsed.suffix == degree_quality:
			return numeral

		if quality == degree_quality:
			return numeral + remainder

	if scale == "Minor" and parsed.root_pc == (key_pc + 7) % 12 and quality == "":
		return "V" + remainder

	return symbol


def transpose_progression (key: str, scale: str, romans: typing.Sequence[str]) -> typing.List[str]:

	"""Turn roman numerals into chord symbols for a key.

	Each numeral may carry a leading ``b`` or ``#`` (borrowed chords such as
	``bVII``) and a trailing extension (``V7``, ``Imaj7``).  An extension that
	starts with a quality (``iim7``, ``ivm``) replaces the degree's own quality.
	In minor keys ``V`` is always major.  Unparseable numerals become
	``"N.C."``.

	Example:
		```python
		transpose_progression("G", "Major", ["I", "V", "vi", "IV"])
		# ["G", "D", "Em", "C"]

		transpose_progression("C", "Major", ["I", "bVII", "IV"])
		# ["C", "Bb", "F"]
		```
	"""

	key_pc = _validate_key_scale(key, scale)
	intervals = SCALE_INTERVALS[scale]
	qualities = DEGREE_QUALITIES[scale]
	chords: typing.List[str] = []

	for roman in romans:

		match = _ROMAN_PATTERN.match(roman)

		if match is None:
			logger.debug(f"Cannot transpose {roman!r} - using N.C.")
			chords.append(jambuddy.chords.NO_CHORD)
			continue

		accidental, numeral, extension = match.groups()
		degree = _NUMERAL_TO_DEGREE[numeral]
		root_pc = (key_pc + intervals[degree - 1]) % 12

		if accidental == "b":
			root_pc = (root_pc + 11) % 12
		elif accidental == "#":
			root_pc = (root_pc + 1) % 12

		if scale == "Minor" and numeral == "V":
			quality = ""
		else:
			quality = qualities[degree - 1]

		if extension.startswith(_QUALITY_PREFIXES):
			quality = ""

		chords.append(jambuddy.chords.PC_TO_NOTE_NAME[root_pc] + quality + extension)

	return chords


def relative_minor (major_key: str) -> str:

	"""Return the relative minor of a major key (``"C"`` → ``"A"``)."""

	return jambuddy.chords.PC_TO_NOTE_NAME[(jambuddy.chords.key_name_to_pc(major_key) + 9) % 12]


def relative_major (minor_key: str) -> str:

	"""Return the relative major of a minor key (``"A"`` → ``"C"``)."""

	return jambuddy.chords.PC_TO_NOTE_NAME[(jambuddy.chords.key_name_to_pc(minor_key) + 3) % 12]


def preset_scale (romans: typing.Sequence[str]) -> str:

	"""Return ``"Minor"`` when a numeral progression has a minor tonic (``i``, ``im``)."""

	if any(_MINOR_TONIC_PATTERN.match(roman) for roman in romans):
		return "Minor"

	return "Major"


def random_progression (rng: typing.Optional[random.Random] = None) -> typing.Tuple[str, str, str, typing.List[str]]:

	"""Pick a random preset in a random key.

	Parameters:
		rng: Random source; the module-level generator when omitted.

	Returns:
		``(preset_name, key, scale, chords)``.
	"""

	rng = rng or random.Random()

	name, romans = rng.choice(PRESET_PROGRESSIONS)
	key = rng.choice(MUSIC_KEYS)
	scale = preset_scale(romans)

	return name, key, scale, transpose_progression(key, scale, romans)
