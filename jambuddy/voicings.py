"""Chord voicings and voice leading.

Turns chord symbols into concrete MIDI note sets and chooses, for each chord,
the inversion and octave whose average pitch sits closest to the chord before
it.  Pads and keyboard parts then move by small steps instead of jumping up
and down the keyboard with every root change.

The search is greedy: each chord is placed against the one already chosen,
with no look-ahead and no backtracking.

Example:
	```python
	from jambuddy.voicings import voice_progression

	voice_progression(["C", "F", "G", "C"])
	# [[60, 64, 67], [60, 65, 69], ...]
	```
"""

import random
import typing

import jambuddy.chords


def invert_chord (intervals: typing.List[int], inversion: int) -> typing.List[int]:

	"""Rotate chord intervals to produce an inversion.

	Inversion 0 is root position. Inversion 1 raises the bottom note by an
	octave (first inversion). Wraps around for inversions >= the number of
	notes.

	Parameters:
		intervals: Chord intervals in semitones from root (e.g., ``[0, 4, 7]``)
		inversion: Which inversion to produce (0 = root position)

	Returns:
		New interval list re-zeroed so the caller can add any root

	Example:
		```python
		invert_chord([0, 4, 7], 0)  # [0, 4, 7]  - root position
		invert_chord([0, 4, 7], 1)  # [0, 3, 8]  - first inversion
		invert_chord([0, 4, 7], 2)  # [0, 5, 9]  - second inversion
		```
	"""

	n = len(intervals)

	if n == 0:
		return []

	inversion = inversion % n

	if inversion == 0:
		return list(intervals)

	rotated = intervals[inversion:] + [i + 12 for i in intervals[:inversion]]
	base = rotated[0]

	return [i - base for i in rotated]


def mean_pitch (notes: typing.Sequence[int]) -> float:

	"""Average MIDI pitch of a voicing."""

	return sum(notes) / len(notes)


def base_voicing (symbol: str, octave_offset: int = 0, spread: bool = False) -> typing.List[int]:

	"""Place a chord in root position starting at octave ``4 + octave_offset``.

	With ``spread`` a triad has its middle note raised an octave; larger chords
	have their third and seventh raised (each only when it is not the lowest
	note).  The result is re-sorted by pitch.

	Parameters:
		symbol: Chord symbol.
		octave_offset: Octaves above or below octave 4.
		spread: Open the voicing out.

	Returns:
		Ascending MIDI notes, empty for a rest.

	Example:
		```python
		base_voicing("C")                  # [60, 64, 67]
		base_voicing("C", spread=True)     # [60, 67, 76]
		base_voicing("Cmaj7", spread=True) # [60, 67, 76, 83]
		```
	"""

	notes = jambuddy.chords.chord_pitches(symbol, octave_offset)

	if not spread or len(notes) < 3:
		return notes

	if len(notes) == 3:
		notes[1] += 12

	else:
		intervals = jambuddy.chords.resolve(symbol)
		root = notes[0]

		for degree in (3, 7):
			offset = intervals.get(degree)
			if offset is None:
				continue
			index = notes.index(root + offset)
			if index > 0:
				notes[index] += 12

	return sorted(notes)


def voicing_candidates (notes: typing.Sequence[int]) -> typing.Iterator[typing.List[int]]:

	"""Yield every octave shift (-1, 0, +1) crossed with every rotation of a voicing.

	A rotation moves the lowest note up an octave, one note at a time, so a
	three-note chord yields nine candidates.
	"""

	for shift in (-12, 0, 12):

		voicing = [note + shift for note in notes]
		yield voicing

		for _ in range(len(notes) - 1):
			voicing = voicing[1:] + [voicing[0] + 12]
			yield voicing


def voice_lead (
	notes: typing.Sequence[int],
	previous_voicing: typing.Optional[typing.Sequence[int]],
	allow_variation: bool = False,
	rng: typing.Optional[random.Random] = None
) -> typing.List[int]:

	"""Find the candidate voicing closest to a previous voicing.

	Closeness is the absolute difference between mean pitches.  Candidates are
	ranked with a stable sort, so ties keep generation order.  With
	``allow_variation`` the winner is drawn uniformly from the best two.

	Parameters:
		notes: Base voicing of the new chord.
		previous_voicing: The chord sounding before it, or ``None``.
		allow_variation: Pick randomly between the two best candidates.
		rng: Random source for variation.

	Returns:
		MIDI note numbers for the chosen voicing.  Without a previous voicing
		(or for a rest) ``notes`` is returned unchanged.
	"""

	if not notes or not previous_voicing:
		return list(notes)

	target = mean_pitch(previous_voicing)

	ranked = sorted(
		voicing_candidates(notes),
		key = lambda candidate: abs(mean_pitch(candidate) - target)
	)

	if allow_variation and len(ranked) > 1:
		rng = rng or random.Random()
		return rng.choice(ranked[:2])

	return ranked[0]


class VoiceLeadingState:

	"""Track the previous voicing across chord changes.

	The scheduler keeps one instance per session so chords can be voiced one at
	a time as the user edits the progression.  A rest clears the memory, so the
	chord after it starts again from its base voicing.

	Example:
		```python
		state = VoiceLeadingState()
		state.next("C")   # [60, 64, 67] - first chord, base voicing
		state.next("F")   # [60, 65, 69] - closest candidate to C
		```
	"""

	def __init__ (
		self,
		octave_offset: int = 0,
		spread: bool = False,
		use_inversions: bool = True,
		allow_variation: bool = False,
		rng: typing.Optional[random.Random] = None
	) -> None:

		self.octave_offset = octave_offset
		self.spread = spread
		self.use_inversions = use_inversions
		self.allow_variation = allow_variation
		self.rng = rng or random.Random()
		self.previous_voicing: typing.Optional[typing.List[int]] = None


	def reset (self) -> None:

		"""Forget the previous voicing."""

		self.previous_voicing = None


	def next (self, symbol: str) -> typing.List[int]:

		"""Voice the next chord and remember it.

		Parameters:
			symbol: Chord symbol (``"N.C."`` or anything unparseable is a rest).

		Returns:
			MIDI note numbers, empty for a rest.
		"""

		notes = base_voicing(symbol, self.octave_offset, self.spread)

		if not notes:
			self.previous_voicing = None
			return []

		if self.use_inversions:
			notes = voice_lead(notes, self.previous_voicing, self.allow_variation, self.rng)

		self.previous_voicing = notes

		return notes


def voice_progression (
	progression: typing.Sequence[str],
	octave_offset: int = 0,
	spread: bool = False,
	use_inversions: bool = True,
	allow_variation: bool = False,
	rng: typing.Optional[random.Random] = None
) -> typing.List[typing.List[int]]:

	"""Voice a whole progression, one chord after another.

	Parameters:
		progression: Chord symbols in playing order.
		octave_offset: Octaves above or below octave 4.
		spread: Open voicings (see ``base_voicing``).
		use_inversions: Voice-lead each chord against the previous one.
			When False every chord keeps its base voicing.
		allow_variation: Choose randomly between the two closest candidates.
		rng: Random source for variation.

	Returns:
		One list of MIDI notes per chord (empty for rests).
	"""

	state = VoiceLeadingState(
		octave_offset = octave_offset,
		spread = spread,
		use_inversions = use_inversions,
		allow_variation = allow_variation,
		rng = rng
	)

	return [state.next(symbol) for symbol in progression]
