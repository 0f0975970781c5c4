import pytest

import jambuddy.chords


@pytest.mark.parametrize("symbol, offsets", [
	("C", [0, 4, 7]),
	("Am", [0, 3, 7]),
	("Bdim", [0, 3, 6]),
	("Caug", [0, 4, 8]),
	("C+", [0, 4, 8]),
	("Csus4", [0, 5, 7]),
	("Csus2", [0, 2, 7]),
	("Cmaj7", [0, 4, 7, 11]),
	("CM7", [0, 4, 7, 11]),
	("C7", [0, 4, 7, 10]),
	("Am7", [0, 3, 7, 10]),
	("Cdim7", [0, 3, 6, 9]),
	("Cm7b5", [0, 3, 6, 10]),
	("C6", [0, 4, 7, 9]),
	("C9", [0, 4, 7, 10, 14]),
	("C11", [0, 4, 7, 10, 14, 17]),
	("C13", [0, 4, 7, 10, 14, 17, 21]),
	("C7b9", [0, 4, 7, 10, 13]),
	("G7#9", [0, 4, 7, 10, 15]),
])
def test_resolve_offsets (symbol: str, offsets: list[int]) -> None:

	"""Chord symbols resolve to the expected semitone offsets."""

	assert jambuddy.chords.resolve(symbol).offsets() == offsets


@pytest.mark.parametrize("symbol", ["N.C.", "", "H", "c", "x7"])
def test_unparseable_symbols_are_rests (symbol: str) -> None:

	"""Symbols without a recognisable root resolve to an empty set."""

	intervals = jambuddy.chords.resolve(symbol)

	assert len(intervals) == 0
	assert intervals.offsets() == []
	assert jambuddy.chords.parse_chord(symbol) is None


@pytest.mark.parametrize("symbol", ["C", "F#m7", "Bb13", "G7#9", "Dsus4", "Ebdim7", "Am6", "Cm7b5"])
def test_root_always_present_and_degrees_unique (symbol: str) -> None:

	"""Every resolved chord has degree 1 at 0 and at most one offset per degree."""

	intervals = jambuddy.chords.resolve(symbol)
	degrees = intervals.degrees()

	assert intervals.get(1) == 0
	assert len(degrees) == len(set(degrees))


def test_suspension_replaces_third () -> None:

	"""A sus4 chord has a fourth and no third."""

	intervals = jambuddy.chords.resolve("D7sus4")

	assert 3 not in intervals
	assert intervals.get(4) == 5
	assert intervals.get(7) == 10


def test_thirteenth_implies_lower_extensions () -> None:

	"""A 13 chord carries the 7th, 9th and 11th as well."""

	intervals = jambuddy.chords.resolve("Bb13")

	assert intervals.get(7) == 10
	assert intervals.get(9) == 14
	assert intervals.get(11) == 17
	assert intervals.get(13) == 21
	assert 6 not in intervals


def test_alteration_overrides_extension () -> None:

	"""An explicit alteration wins for its degree."""

	assert jambuddy.chords.resolve("C7b9").get(9) == 13


def test_parse_chord_tokens () -> None:

	"""Tokenizing keeps the root as written and the alterations in order."""

	parsed = jambuddy.chords.parse_chord("Bbm7b5")

	assert parsed is not None
	assert parsed.root == "Bb"
	assert parsed.root_pc == 10
	assert parsed.suffix == "m7b5"
	assert "minor" in parsed.tags
	assert "7" in parsed.tags
	assert parsed.alterations == ("b5",)


def test_resolve_is_cached () -> None:

	"""Resolving the same symbol twice returns the cached object."""

	first = jambuddy.chords.resolve("F#m7")
	hits = jambuddy.chords.resolve.cache_info().hits

	assert jambuddy.chords.resolve("F#m7") is first
	assert jambuddy.chords.resolve.cache_info().hits == hits + 1


def test_quality_helpers () -> None:

	"""Quality predicates follow the chord tags."""

	assert jambuddy.chords.is_minor("Am7")
	assert jambuddy.chords.is_minor("Bdim")
	assert not jambuddy.chords.is_minor("Cmaj7")
	assert jambuddy.chords.is_diminished("Ebdim7")
	assert jambuddy.chords.is_suspended("Gsus2")
	assert jambuddy.chords.is_dominant("G7")
	assert not jambuddy.chords.is_dominant("Cmaj7")
	assert jambuddy.chords.is_dominant("Dm7")
	assert not jambuddy.chords.is_dominant("Cdim7")
	assert not jambuddy.chords.is_dominant("C9")
	assert jambuddy.chords.root_pitch_class("N.C.") is None
	assert jambuddy.chords.root_pitch_class("F#") == 6


def test_chord_pitches () -> None:

	"""Pitches are built up from the root in octave 4 plus the offset."""

	assert jambuddy.chords.chord_pitches("C") == [60, 64, 67]
	assert jambuddy.chords.chord_pitches("Am", -1) == [57, 60, 64]
	assert jambuddy.chords.chord_pitches("G7") == [67, 71, 74, 77]
	assert jambuddy.chords.chord_pitches("N.C.") == []


def test_note_names () -> None:

	"""Note names and numbers convert both ways."""

	assert jambuddy.chords.note_name(60) == "C4"
	assert jambuddy.chords.note_name(70) == "Bb4"
	assert jambuddy.chords.note_number("A4") == 69
	assert jambuddy.chords.note_number("C-1") == 0

	with pytest.raises(ValueError):
		jambuddy.chords.note_number("H2")


def test_key_name_to_pc () -> None:

	"""Key names map to pitch classes; unknown names raise."""

	assert jambuddy.chords.key_name_to_pc("C") == 0
	assert jambuddy.chords.key_name_to_pc("Bb") == 10

	with pytest.raises(ValueError):
		jambuddy.chords.key_name_to_pc("Cb")
