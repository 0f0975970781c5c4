"""Contract for the collaborator that turns a text prompt into a progression.

The generator itself (a language model behind an API) lives outside this
package.  Anything with an ``async generate(prompt)`` method returning JSON
text or a decoded object can be used; its answer is validated here before it
reaches the scheduler.
"""

import dataclasses
import json
import logging
import typing

import jambuddy.harmony


logger = logging.getLogger(__name__)


PROGRESSION_LENGTH = 8

INSTRUCTIONS = (
	"You are a music theory expert. Generate a standard 8-bar chord progression for the user's "
	"prompt describing a mood, genre or style.\n"
	f"- The progression must contain exactly {PROGRESSION_LENGTH} chords.\n"
	"- Choose the most appropriate key and scale (Major or Minor).\n"
	"- Return a JSON object with the fields 'key', 'scale' and 'progression'.\n"
	"- Use standard chord notation (e.g. 'C', 'Gm', 'Fmaj7', 'E7').\n"
	f"- The key must be one of: {', '.join(jambuddy.harmony.MUSIC_KEYS)}.\n"
	"- The scale must be either 'Major' or 'Minor'."
)


class MalformedResponseError (ValueError):

	"""The generator answered, but not with a usable progression.  Asking again may work."""

	retriable = True


@typing.runtime_checkable
class ProgressionGenerator (typing.Protocol):

	"""
	Protocol for progression generators.
	"""

	async def generate (self, prompt: str) -> typing.Union[str, typing.Dict[str, typing.Any]]:

		"""
		Return ``{"key": ..., "scale": ..., "progression": [...]}`` as JSON text or a dict.
		"""

		...


@dataclasses.dataclass(frozen=True)
class GeneratedProgression:

	key: str
	scale: str
	progression: typing.List[str]


def validate_generated (response: typing.Union[str, bytes, typing.Dict[str, typing.Any]]) -> GeneratedProgression:

	"""
	Check a generator response before it is used.

	The key must be one of ``MUSIC_KEYS``, the scale ``"Major"`` or
	``"Minor"`` and the progression exactly eight chord strings.  A response
	carrying an ``error`` field is rejected with that message.

	Raises:
		MalformedResponseError: On any violation.
	"""

	if isinstance(response, (str, bytes)):
		try:
			response = json.loads(response)
		except ValueError as exc:
			raise MalformedResponseError(f"Generator response is not valid JSON: {exc}") from exc

	if not isinstance(response, dict):
		raise MalformedResponseError("Generator response must be a JSON object")

	if response.get("error"):
		raise MalformedResponseError(str(response["error"]))

	key = response.get("key")
	scale = response.get("scale")
	progression = response.get("progression")

	if key not in jambuddy.harmony.MUSIC_KEYS:
		raise MalformedResponseError(f"Generated key {key!r} is not one of {', '.join(jambuddy.harmony.MUSIC_KEYS)}")

	if scale not in jambuddy.harmony.SCALES:
		raise MalformedResponseError(f"Generated scale {scale!r} is not Major or Minor")

	if not isinstance(progression, list) or not all(isinstance(chord, str) for chord in progression):
		raise MalformedResponseError("Generated progression must be a list of chord symbols")

	if len(progression) != PROGRESSION_LENGTH:
		raise MalformedResponseError(f"Generated progression has {len(progression)} chords, expected {PROGRESSION_LENGTH}")

	return GeneratedProgression(key=key, scale=scale, progression=list(progression))


async def generate_progression (generator: ProgressionGenerator, prompt: str) -> GeneratedProgression:

	"""Ask ``generator`` for a progression and validate the answer.

	Errors raised by the generator itself propagate unchanged.
	"""

	response = await generator.generate(prompt)

	try:
		result = validate_generated(response)
	except MalformedResponseError as exc:
		logger.warning(f"Rejected generated progression for {prompt!r}: {exc}")
		raise

	logger.info(f"Generated {result.key} {result.scale}: {' '.join(result.progression)}")

	return result
