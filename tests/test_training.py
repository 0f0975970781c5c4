import asyncio

import mido
import pytest

import jambuddy.audio_graph
import jambuddy.scheduler
import jambuddy.training
import jambuddy.transport

from conftest import FakeMidiOut


TrainingState = jambuddy.training.TrainingState


def _trainer (scheduler: jambuddy.scheduler.PlaybackScheduler, **kwargs: object) -> jambuddy.training.TrainingModeController:

	scheduler.set_progression(["C", "G"])

	return jambuddy.training.TrainingModeController(scheduler, loop_count=1, restart_delay=0, **kwargs)


def test_loop_count_must_be_positive (scheduler: jambuddy.scheduler.PlaybackScheduler) -> None:

	"""At least one pass per cycle."""

	with pytest.raises(ValueError):
		jambuddy.training.TrainingModeController(scheduler, loop_count=0)


@pytest.mark.asyncio
async def test_start_requires_ready_graph (scheduler: jambuddy.scheduler.PlaybackScheduler) -> None:

	"""Training cannot start before the graph is built."""

	trainer = _trainer(scheduler)

	assert trainer.start() is False
	assert trainer.state == TrainingState.IDLE


@pytest.mark.asyncio
async def test_full_cycle (scheduler: jambuddy.scheduler.PlaybackScheduler, fake_port: FakeMidiOut) -> None:

	"""Count-in, play, reset, then count in again, until stopped."""

	await scheduler.graph.init()

	reapplied: list[int] = []
	trainer = _trainer(scheduler, on_reapply=lambda: reapplied.append(1))

	phases: list[jambuddy.training.TrainingState] = []
	beats: list[int] = []
	second_count_in = asyncio.get_running_loop().create_future()

	def on_phase (state: jambuddy.training.TrainingState) -> None:
		phases.append(state)
		if phases.count(TrainingState.COUNTING_IN) == 2 and not second_count_in.done():
			second_count_in.set_result(None)

	scheduler.events.on("phase", on_phase)
	scheduler.events.on("count_in", beats.append)

	assert trainer.start() is True
	assert trainer.start() is False

	await asyncio.wait_for(second_count_in, timeout=10)

	assert phases == [TrainingState.COUNTING_IN, TrainingState.PLAYING, TrainingState.RESETTING, TrainingState.COUNTING_IN]
	assert beats[:4] == [1, 2, 3, 4]
	assert trainer.cycles_completed == 1
	assert reapplied == [1]

	trainer.stop()
	await trainer.wait()

	assert trainer.state == TrainingState.IDLE
	assert phases[-1] == TrainingState.IDLE
	assert not scheduler.is_playing
	assert scheduler.transport.pending() == 0


@pytest.mark.asyncio
async def test_count_in_clicks (scheduler: jambuddy.scheduler.PlaybackScheduler, fake_port: FakeMidiOut) -> None:

	"""The count-in is one accented click followed by three plain clicks."""

	await scheduler.graph.init()

	trainer = _trainer(scheduler)
	playing = asyncio.get_running_loop().create_future()

	def on_phase (state: jambuddy.training.TrainingState) -> None:
		if state == TrainingState.PLAYING and not playing.done():
			playing.set_result(None)

	scheduler.events.on("phase", on_phase)

	trainer.start()

	await asyncio.wait_for(playing, timeout=10)

	trainer.stop()

	clicks = [message for message in fake_port.note_ons(channel=9) if message.note in (33, 34)]

	assert [message.note for message in clicks] == [34, 33, 33, 33]
	assert clicks[0].velocity > clicks[1].velocity


@pytest.mark.asyncio
async def test_first_chord_lands_one_bar_after_accent (
	scheduler: jambuddy.scheduler.PlaybackScheduler,
	fake_port: FakeMidiOut,
	monkeypatch: pytest.MonkeyPatch
) -> None:

	"""The clicks fall on each beat and the first chord sounds exactly one bar after the accent."""

	await scheduler.graph.init()

	trainer = _trainer(scheduler)
	notes_on: list[tuple[int, mido.Message]] = []
	first_chord = asyncio.get_running_loop().create_future()
	record = fake_port.send

	def timed_send (message: mido.Message) -> None:
		record(message)
		if message.type != "note_on" or message.velocity == 0:
			return
		notes_on.append((scheduler.transport.pulse_count, message))
		if message.channel == jambuddy.audio_graph.SYNTH_CHANNEL and not first_chord.done():
			first_chord.set_result(None)

	monkeypatch.setattr(fake_port, "send", timed_send)

	trainer.start()

	await asyncio.wait_for(first_chord, timeout=10)

	trainer.stop()

	clicks = [pulse for pulse, message in notes_on if message.channel == 9 and message.note in (33, 34)]
	chords = [pulse for pulse, message in notes_on if message.channel == jambuddy.audio_graph.SYNTH_CHANNEL]

	assert [pulse - clicks[0] for pulse in clicks] == [0, 24, 48, 72]
	assert chords[0] - clicks[0] == jambuddy.scheduler.BAR_PULSES == 96


@pytest.mark.asyncio
async def test_stop_during_count_in (scheduler: jambuddy.scheduler.PlaybackScheduler) -> None:

	"""Stopping mid count-in cancels the remaining clicks and never plays."""

	await scheduler.graph.init()

	trainer = _trainer(scheduler)
	phases: list[jambuddy.training.TrainingState] = []
	first_beat = asyncio.get_running_loop().create_future()

	def on_beat (beat: int) -> None:
		if not first_beat.done():
			first_beat.set_result(beat)

	scheduler.events.on("phase", phases.append)
	scheduler.events.on("count_in", on_beat)

	trainer.start()

	assert await asyncio.wait_for(first_beat, timeout=10) == 1

	trainer.stop()

	for _ in range(200):
		await asyncio.sleep(0)

	assert phases == [TrainingState.COUNTING_IN, TrainingState.IDLE]
	assert scheduler.transport.pending() == 0
	assert not scheduler.transport.running


@pytest.mark.asyncio
async def test_failed_reset_ends_training () -> None:

	"""A reset that cannot reopen the output stops training with EngineError."""

	port = FakeMidiOut()

	def unavailable () -> FakeMidiOut:
		raise OSError("device unplugged")

	transport = jambuddy.transport.Transport(render_mode=True)
	graph = jambuddy.audio_graph.AudioGraph(port=port, port_opener=unavailable, settle_seconds=0, transport=transport)
	scheduler = jambuddy.scheduler.PlaybackScheduler(graph, transport)

	await graph.init()
	port.close()

	trainer = _trainer(scheduler)
	errors: list[Exception] = []
	phases: list[jambuddy.training.TrainingState] = []

	scheduler.events.on("error", errors.append)
	scheduler.events.on("phase", phases.append)

	trainer.start()

	with pytest.raises(jambuddy.audio_graph.EngineError):
		await asyncio.wait_for(trainer.wait(), timeout=10)

	assert trainer.state == TrainingState.IDLE
	assert phases[-2:] == [TrainingState.RESETTING, TrainingState.IDLE]
	assert len(errors) == 1
	assert isinstance(errors[0], jambuddy.audio_graph.EngineError)
	assert not graph.is_ready
