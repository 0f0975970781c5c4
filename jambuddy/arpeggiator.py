"""Arpeggiator: break a chord into a run of single notes across a bar.

The bar is divided into ``bar_pulses // rate_pulses`` steps.  Each step plays
one chord tone chosen by the direction and holds it for ``gate`` of the step.

Directions:
- ``"up"`` - lowest to highest, repeating.
- ``"down"`` - highest to lowest, repeating.
- ``"upDown"`` - up then back down without repeating the top or bottom note
  (``C E G E C E G E ...``).
- ``"random"`` - a uniformly random chord tone on every step.
"""

import dataclasses
import random
import typing

import jambuddy.constants.pulses


DIRECTIONS: typing.Tuple[str, ...] = ("up", "down", "upDown", "random")

RATES: typing.Tuple[str, ...] = ("32n", "16n", "8n", "4n", "2n", "1n")


@dataclasses.dataclass
class ArpeggiatorConfig:

	"""
	Arpeggiator settings for the chord track.

	Raises ``ValueError`` for an unknown rate or direction, or a gate outside
	``(0, 1]``.
	"""

	enabled: bool = False
	rate: str = "16n"
	direction: str = "up"
	gate: float = 0.8


	def __post_init__ (self) -> None:

		if self.rate not in jambuddy.constants.pulses.NOTE_VALUE_PULSES:
			raise ValueError(f"Unknown arpeggiator rate: {self.rate!r}. Available: {', '.join(RATES)}")

		if self.direction not in DIRECTIONS:
			raise ValueError(f"Unknown arpeggiator direction: {self.direction!r}. Available: {', '.join(DIRECTIONS)}")

		if not 0 < self.gate <= 1:
			raise ValueError(f"Arpeggiator gate must be in (0, 1], got {self.gate}")


	@property
	def rate_pulses (self) -> int:

		return jambuddy.constants.pulses.NOTE_VALUE_PULSES[self.rate]


	@property
	def gate_pulses (self) -> int:

		"""How long each note is held, never shorter than one pulse."""

		return max(1, round(self.rate_pulses * self.gate))


def arpeggio_sequence (
	notes: typing.Sequence[int],
	steps: int,
	direction: str = "up",
	rng: typing.Optional[random.Random] = None
) -> typing.List[int]:

	"""Return the note played on each of ``steps`` arpeggio steps.

	Parameters:
		notes: Chord tones in ascending order.
		steps: Number of steps to fill.
		direction: One of ``DIRECTIONS``.
		rng: Random source for the ``"random"`` direction.

	Example:
		```python
		arpeggio_sequence([60, 64, 67], 4, "upDown")   # [60, 64, 67, 64]
		arpeggio_sequence([60, 64, 67], 4, "down")     # [67, 64, 60, 67]
		```
	"""

	if not notes or steps <= 0:
		return []

	if direction == "random":
		rng = rng or random.Random()
		return [notes[rng.randrange(len(notes))] for _ in range(steps)]

	if direction == "up":
		cycle = list(notes)
	elif direction == "down":
		cycle = list(reversed(notes))
	elif direction == "upDown":
		cycle = list(notes) + list(reversed(notes[1:-1]))
	else:
		raise ValueError(f"Unknown arpeggiator direction: {direction!r}")

	return [cycle[step % len(cycle)] for step in range(steps)]


def expand (
	notes: typing.Sequence[int],
	config: ArpeggiatorConfig,
	bar_pulses: int = jambuddy.constants.pulses.PULSES_PER_BAR,
	rng: typing.Optional[random.Random] = None
) -> typing.List[typing.Tuple[int, int, int]]:

	"""Expand one bar of a chord into timed arpeggio notes.

	Returns:
		``(pulse_offset, note, duration_pulses)`` for every step, offsets
		measured from the start of the bar.
	"""

	rate_pulses = config.rate_pulses
	steps = bar_pulses // rate_pulses
	sequence = arpeggio_sequence(notes, steps, config.direction, rng)

	return [
		(step * rate_pulses, note, config.gate_pulses)
		for step, note in enumerate(sequence)
	]
