"""Chord symbol parsing and interval resolution.

Chord symbols are the strings a player types into a progression slot
(``"C"``, ``"F#m7"``, ``"Bb13"``, ``"G7#9"``).  Resolution happens in two
stages:

1. ``parse_chord()`` tokenizes the symbol into a root and a set of quality
   tags plus an ordered list of explicit alterations.
2. ``resolve()`` feeds those tokens through fixed rule tables and returns an
   ``IntervalSet`` - a mapping from scale degree to semitones above the root.

Both stages are cached by symbol text because the scheduler and the display
ask for the same handful of chords over and over.

Nothing here raises for bad input.  A symbol with no recognisable root
(including ``"N.C."``) resolves to an empty ``IntervalSet`` and is played as
a silent bar.

Module-level constants:
- `NOTE_NAME_TO_PC`: Maps note names (e.g., `"C"`, `"F#"`, `"Bb"`) to pitch classes (0-11)
- `PC_TO_NOTE_NAME`: Maps pitch classes to the note names used for display
- `ALTERATIONS`: Maps alteration tokens (e.g. `"#9"`) to `(degree, semitones)`

Module-level helpers:
- `key_name_to_pc(key_name)`: Validate a key name and return its pitch class (0-11).
- `chord_pitches(symbol, octave)`: MIDI notes for a chord in root position.
- `note_name(midi)` / `note_number(name)`: Convert between ``"C4"`` and ``60``.
"""

import dataclasses
import functools
import re
import typing


NOTE_NAME_TO_PC: typing.Dict[str, int] = {
	"C": 0,
	"C#": 1,
	"Db": 1,
	"D": 2,
	"D#": 3,
	"Eb": 3,
	"E": 4,
	"F": 5,
	"F#": 6,
	"Gb": 6,
	"G": 7,
	"G#": 8,
	"Ab": 8,
	"A": 9,
	"A#": 10,
	"Bb": 10,
	"B": 11,
}

PC_TO_NOTE_NAME: typing.List[str] = [
	"C",
	"C#",
	"D",
	"D#",
	"E",
	"F",
	"F#",
	"G",
	"G#",
	"A",
	"Bb",
	"B",
]

NO_CHORD = "N.C."

DEGREES: typing.Tuple[int, ...] = (1, 2, 3, 4, 5, 6, 7, 9, 11, 13)

# Octave 4 starts at MIDI note 60 (middle C).
BASE_OCTAVE = 4

ALTERATIONS: typing.Dict[str, typing.Tuple[int, int]] = {
	"b5": (5, 6),
	"#5": (5, 8),
	"b9": (9, 13),
	"#9": (9, 15),
	"#11": (11, 18),
	"b13": (13, 20),
}

_ROOT_PATTERN = re.compile(r"^([A-G][#b]?)(.*)$")
_ALTERATION_PATTERN = re.compile(r"[#b]\d+")

# Fifth: first matching token wins, otherwise a perfect fifth.
_FIFTH_RULES: typing.List[typing.Tuple[str, int]] = [
	("dim", 6),
	("b5", 6),
	("aug", 8),
	("#5", 8),
]

# Seventh: first matching tag wins, otherwise no seventh.
_SEVENTH_RULES: typing.List[typing.Tuple[str, int]] = [
	("maj7", 11),
	("dim7", 9),
	("7", 10),
]

# Extensions: (tag, degree, semitones, implied lower degrees).
_EXTENSION_RULES: typing.List[typing.Tuple[str, int, int, typing.Tuple[int, ...]]] = [
	("13", 13, 21, (7, 9, 11)),
	("11", 11, 17, (7, 9)),
	("9", 9, 14, (7,)),
]

# Semitones used when an extension implies a degree that is not yet set.
_IMPLIED_DEGREES: typing.Dict[int, int] = {
	7: 10,
	9: 14,
	11: 17,
}


def key_name_to_pc (key_name: str) -> int:

	"""Validate a key name and return its pitch class (0-11).

	Parameters:
		key_name: Note name (e.g. ``"C"``, ``"F#"``, ``"Bb"``).

	Raises:
		ValueError: If the key name is not recognised.

	Example:
		```python
		key_name_to_pc("C")   # → 0
		key_name_to_pc("Bb")  # → 10
		```
	"""

	if key_name not in NOTE_NAME_TO_PC:
		raise ValueError(
			f"Unknown key name: {key_name!r}. Expected e.g. 'C', 'F#', 'Bb'."
		)

	return NOTE_NAME_TO_PC[key_name]


@dataclasses.dataclass(frozen=True)
class ParsedChord:

	"""
	Tokens extracted from a chord symbol.

	Attributes:
		symbol: The original text.
		root: Root note name as written (``"F#"``, ``"Bb"``).
		root_pc: Root pitch class (0-11).
		suffix: Everything after the root (``"m7b5"``).
		tags: Quality tags found in the suffix (``"minor"``, ``"dim"``, ``"aug"``,
			``"sus2"``, ``"sus4"``, ``"maj7"``, ``"dim7"``, ``"7"``, ``"9"``,
			``"11"``, ``"13"``, ``"6"``).
		alterations: Explicit alteration tokens in the order they were written.
	"""

	symbol: str
	root: str
	root_pc: int
	suffix: str
	tags: typing.FrozenSet[str]
	alterations: typing.Tuple[str, ...]


@dataclasses.dataclass(frozen=True)
class IntervalSet:

	"""
	Scale degrees of a chord mapped to semitones above the root.

	Entries keep the order in which the resolver assigned them.  An empty set
	is a rest.
	"""

	entries: typing.Tuple[typing.Tuple[int, int], ...] = ()


	def offsets (self) -> typing.List[int]:

		"""Return the semitone offsets in ascending order."""

		return sorted(offset for _, offset in self.entries)


	def degrees (self) -> typing.List[int]:

		"""Return the degrees present, in assignment order."""

		return [degree for degree, _ in self.entries]


	def get (self, degree: int, default: typing.Optional[int] = None) -> typing.Optional[int]:

		"""Return the offset for a degree, or *default* if it is absent."""

		for entry_degree, offset in self.entries:
			if entry_degree == degree:
				return offset

		return default


	def __contains__ (self, degree: object) -> bool:

		return any(entry_degree == degree for entry_degree, _ in self.entries)


	def __len__ (self) -> int:

		return len(self.entries)


def _tokenize_suffix (suffix: str) -> typing.FrozenSet[str]:

	"""Find the quality tags in a chord suffix.

	Matching is by substring, in a fixed order, so ``"dim7"`` carries both the
	``"dim"`` and ``"dim7"`` tags and ``"m7"`` carries ``"minor"`` and ``"7"``.
	"""

	tags: typing.Set[str] = set()

	if "dim" in suffix:
		tags.add("dim")

	if "m" in suffix and "maj" not in suffix:
		tags.add("minor")

	if "aug" in suffix or "+" in suffix:
		tags.add("aug")

	if "sus4" in suffix:
		tags.add("sus4")
	elif "sus2" in suffix:
		tags.add("sus2")

	if "maj7" in suffix or "M7" in suffix:
		tags.add("maj7")
	elif "dim7" in suffix:
		tags.add("dim7")
	elif "7" in suffix:
		tags.add("7")

	for extension in ("13", "11", "9", "6"):
		if extension in suffix:
			tags.add(extension)

	return frozenset(tags)


@functools.lru_cache(maxsize=1024)
def parse_chord (symbol: str) -> typing.Optional[ParsedChord]:

	"""Tokenize a chord symbol.

	Returns ``None`` when the symbol has no recognisable root (empty text,
	``"N.C."``, lowercase roots, ...).

	Example:
		```python
		parsed = parse_chord("Bbm7b5")
		parsed.root          # "Bb"
		parsed.tags          # frozenset({"minor", "7"})
		parsed.alterations   # ("b5",)
		```
	"""

	if not symbol:
		return None

	match = _ROOT_PATTERN.match(symbol.strip())

	if match is None:
		return None

	root, suffix = match.groups()

	if root not in NOTE_NAME_TO_PC:
		return None

	return ParsedChord(
		symbol = symbol,
		root = root,
		root_pc = NOTE_NAME_TO_PC[root],
		suffix = suffix,
		tags = _tokenize_suffix(suffix),
		alterations = tuple(_ALTERATION_PATTERN.findall(suffix)),
	)


@functools.lru_cache(maxsize=1024)
def resolve (symbol: str) -> IntervalSet:

	"""Resolve a chord symbol to its interval set.

	The rules run in a fixed order, each one only adding or overriding
	degrees: third, fifth, suspension, seventh, extensions, sixth and finally
	the explicit alterations, which always win for their degree.

	Parameters:
		symbol: Chord symbol such as ``"Am"``, ``"Cmaj9"``, ``"G7b9"``.

	Returns:
		The interval set, empty for a rest or an unparseable symbol.

	Example:
		```python
		resolve("C").offsets()       # [0, 4, 7]
		resolve("Am7").offsets()     # [0, 3, 7, 10]
		resolve("G7#9").offsets()    # [0, 4, 7, 10, 15]
		resolve("N.C.").offsets()    # []
		```
	"""

	parsed = parse_chord(symbol)

	if parsed is None:
		return IntervalSet()

	tags = parsed.tags
	tokens = tags | frozenset(parsed.alterations)
	degrees: typing.Dict[int, int] = {1: 0}

	degrees[3] = 3 if ("dim" in tags or "minor" in tags) else 4

	degrees[5] = 7
	for token, semitones in _FIFTH_RULES:
		if token in tokens:
			degrees[5] = semitones
			break

	if "sus4" in tags:
		degrees.pop(3, None)
		degrees[4] = 5
	elif "sus2" in tags:
		degrees.pop(3, None)
		degrees[2] = 2

	for tag, semitones in _SEVENTH_RULES:
		if tag in tags:
			degrees[7] = semitones
			break

	for tag, degree, semitones, implied in _EXTENSION_RULES:
		if tag not in tags:
			continue
		for implied_degree in implied:
			degrees.setdefault(implied_degree, _IMPLIED_DEGREES[implied_degree])
		degrees[degree] = semitones

	if "6" in tags and "13" not in tags:
		degrees[6] = 9

	for alteration in parsed.alterations:
		if alteration in ALTERATIONS:
			degree, semitones = ALTERATIONS[alteration]
			degrees[degree] = semitones

	return IntervalSet(entries=tuple(degrees.items()))


def root_pitch_class (symbol: str) -> typing.Optional[int]:

	"""Return the root pitch class of a chord, or ``None`` for a rest."""

	parsed = parse_chord(symbol)

	return parsed.root_pc if parsed is not None else None


def is_minor (symbol: str) -> bool:

	"""True when the chord has a minor third (minor or diminished quality)."""

	parsed = parse_chord(symbol)

	return parsed is not None and ("minor" in parsed.tags or "dim" in parsed.tags)


def is_diminished (symbol: str) -> bool:

	"""True for ``dim`` and ``dim7`` chords."""

	parsed = parse_chord(symbol)

	return parsed is not None and "dim" in parsed.tags


def is_suspended (symbol: str) -> bool:

	"""True for any ``sus`` chord."""

	parsed = parse_chord(symbol)

	return parsed is not None and "sus" in parsed.suffix


def is_dominant (symbol: str) -> bool:

	"""True for any chord with a plain ``7`` (``G7``, ``Dm7``, ``G7b9``); false for ``maj7``, ``dim7`` and a bare ``9``."""

	parsed = parse_chord(symbol)

	return parsed is not None and "7" in parsed.tags


def chord_pitches (symbol: str, octave: int = 0) -> typing.List[int]:

	"""Return MIDI note numbers for a chord in root position.

	The root sits in octave ``4 + octave``; higher degrees continue upward, so
	a ninth lands in the next octave.

	Example:
		```python
		chord_pitches("C")        # [60, 64, 67]
		chord_pitches("Am", -1)   # [57, 60, 64]
		chord_pitches("N.C.")     # []
		```
	"""

	parsed = parse_chord(symbol)

	if parsed is None:
		return []

	root_midi = 12 * (BASE_OCTAVE + octave + 1) + parsed.root_pc

	return [root_midi + offset for offset in resolve(symbol).offsets()]


def note_name (midi: int) -> str:

	"""Return a note name with octave, e.g. ``60`` → ``"C4"``."""

	return f"{PC_TO_NOTE_NAME[midi % 12]}{midi // 12 - 1}"


def note_number (name: str) -> int:

	"""Return the MIDI note number for a name such as ``"C4"`` or ``"Bb3"``.

	Raises:
		ValueError: If the name cannot be parsed.
	"""

	match = re.match(r"^([A-G][#b]?)(-?\d+)$", name)

	if match is None or match.group(1) not in NOTE_NAME_TO_PC:
		raise ValueError(f"Invalid note name: {name!r}")

	return 12 * (int(match.group(2)) + 1) + NOTE_NAME_TO_PC[match.group(1)]
