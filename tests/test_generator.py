import json
import typing

import pytest

import jambuddy.generator


VALID = {
	"key": "A",
	"scale": "Minor",
	"progression": ["Am", "F", "C", "G", "Am", "Dm", "E7", "Am"],
}


class FakeGenerator:

	"""Answers every prompt with a canned response."""

	def __init__ (self, response: typing.Any) -> None:

		self.response = response
		self.prompts: typing.List[str] = []


	async def generate (self, prompt: str) -> typing.Any:

		self.prompts.append(prompt)

		if isinstance(self.response, Exception):
			raise self.response

		return self.response


def test_valid_dict_and_json () -> None:

	"""Both decoded objects and JSON text are accepted."""

	expected = jambuddy.generator.GeneratedProgression(key="A", scale="Minor", progression=VALID["progression"])

	assert jambuddy.generator.validate_generated(VALID) == expected
	assert jambuddy.generator.validate_generated(json.dumps(VALID)) == expected


@pytest.mark.parametrize("change", [
	{"key": "H"},
	{"key": None},
	{"scale": "Lydian"},
	{"progression": ["C"] * 7},
	{"progression": ["C"] * 9},
	{"progression": "C G Am F"},
	{"progression": ["C"] * 7 + [1]},
	{"error": "The prompt was not about music"},
])
def test_invalid_responses (change: typing.Dict[str, typing.Any]) -> None:

	with pytest.raises(jambuddy.generator.MalformedResponseError):
		jambuddy.generator.validate_generated({**VALID, **change})


def test_not_json () -> None:

	with pytest.raises(jambuddy.generator.MalformedResponseError):
		jambuddy.generator.validate_generated("sorry, I cannot help")

	with pytest.raises(jambuddy.generator.MalformedResponseError):
		jambuddy.generator.validate_generated("[1, 2]")


def test_error_message_is_kept () -> None:

	with pytest.raises(jambuddy.generator.MalformedResponseError, match="not about music"):
		jambuddy.generator.validate_generated({"error": "not about music"})


def test_malformed_responses_are_retriable () -> None:

	assert jambuddy.generator.MalformedResponseError.retriable is True
	assert issubclass(jambuddy.generator.MalformedResponseError, ValueError)


def test_fake_satisfies_protocol () -> None:

	assert isinstance(FakeGenerator(VALID), jambuddy.generator.ProgressionGenerator)


@pytest.mark.asyncio
async def test_generate_progression () -> None:

	"""The prompt is passed through and the answer validated."""

	generator = FakeGenerator(json.dumps(VALID))

	result = await jambuddy.generator.generate_progression(generator, "sad rainy jazz")

	assert generator.prompts == ["sad rainy jazz"]
	assert result.key == "A"
	assert result.progression[6] == "E7"


@pytest.mark.asyncio
async def test_generate_progression_rejects_bad_answer (caplog: pytest.LogCaptureFixture) -> None:

	generator = FakeGenerator({**VALID, "scale": "Phrygian"})

	with pytest.raises(jambuddy.generator.MalformedResponseError):
		await jambuddy.generator.generate_progression(generator, "spanish")

	assert "spanish" in caplog.text


@pytest.mark.asyncio
async def test_generator_errors_propagate () -> None:

	"""Failures of the generator itself are not wrapped."""

	generator = FakeGenerator(ConnectionError("offline"))

	with pytest.raises(ConnectionError):
		await jambuddy.generator.generate_progression(generator, "anything")
