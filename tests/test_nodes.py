import mido
import pytest

import jambuddy.nodes
import jambuddy.synth_config

from conftest import FakeMidiOut


def _chain (port: FakeMidiOut, *nodes: jambuddy.nodes.Node) -> jambuddy.nodes.OutputContext:

	"""Connect nodes left to right into an output context on ``port``."""

	context = jambuddy.nodes.OutputContext(port)
	chain = list(nodes) + [context]

	for source, destination in zip(chain, chain[1:]):
		source.connect(destination)

	return context


def test_conversions () -> None:

	"""Levels, pans and filter settings map onto the CC range."""

	assert jambuddy.nodes.db_to_cc(0) == 127
	assert jambuddy.nodes.db_to_cc(-40) == 13
	assert jambuddy.nodes.db_to_cc(12) == 127
	assert jambuddy.nodes.pan_to_cc(0) == 64
	assert jambuddy.nodes.pan_to_cc(-1) == 0
	assert jambuddy.nodes.pan_to_cc(1) == 127
	assert jambuddy.nodes.cutoff_to_cc(20000) == 127
	assert jambuddy.nodes.cutoff_to_cc(20) == 0


def test_instrument_sends_through_chain () -> None:

	"""Notes flow from an instrument to the port and are tracked while sounding."""

	port = FakeMidiOut()
	synth = jambuddy.nodes.PolySynth(0)
	_chain(port, synth)

	synth.note_on(60, 90)
	synth.note_on(64, 90)

	assert synth.sounding == [60, 64]
	assert [message.note for message in port.note_ons()] == [60, 64]

	synth.release_all()

	assert synth.sounding == []
	assert [message.type for message in port.sent[-2:]] == ["note_off", "note_off"]


def test_mono_synth_cuts_previous_note () -> None:

	"""A mono synth releases the old note before playing a new one."""

	port = FakeMidiOut()
	bass = jambuddy.nodes.MonoSynth(2)
	_chain(port, bass)

	bass.note_on(36)
	bass.note_on(41)

	assert bass.sounding == [41]
	assert [message.type for message in port.sent] == ["note_on", "note_off", "note_on"]


def test_limiter_caps_velocity () -> None:

	"""The limiter clamps note velocities to its ceiling."""

	port = FakeMidiOut()
	drum = jambuddy.nodes.DrumVoice(36)
	limiter = jambuddy.nodes.Limiter(threshold_db=-1.0)
	_chain(port, drum, limiter)

	drum.trigger(127)

	assert limiter.ceiling == 113
	assert port.note_ons()[0].velocity == 113


def test_muted_volume_drops_note_ons () -> None:

	"""Muting stops new notes but lets releases through."""

	port = FakeMidiOut()
	synth = jambuddy.nodes.PolySynth(1)
	volume = jambuddy.nodes.Volume(mute=True)
	_chain(port, synth, volume)

	synth.note_on(67)
	synth.note_off(67)

	assert port.note_ons() == []
	assert [message.type for message in port.sent] == ["note_off"]


def test_shared_channel_volume_scales_velocity () -> None:

	"""On a shared drum channel the level is applied to velocity, not CC 7."""

	port = FakeMidiOut()
	kick = jambuddy.nodes.DrumVoice(36, velocity=100)
	volume = jambuddy.nodes.Volume(db=-10, shared_channel=True)
	_chain(port, kick, volume)

	volume.apply()
	kick.trigger()

	assert port.controls(jambuddy.nodes.CC_VOLUME) == []
	assert port.note_ons()[0].velocity == 56


def test_volume_and_pan_controls () -> None:

	"""Channel volume and pan are sent for every upstream channel."""

	port = FakeMidiOut()
	synth = jambuddy.nodes.PolySynth(3)
	volume = jambuddy.nodes.Volume(db=0)
	panner = jambuddy.nodes.Panner(pan=-1)
	_chain(port, synth, volume, panner)

	volume.apply()
	panner.apply()

	assert port.controls(jambuddy.nodes.CC_VOLUME)[0].value == 127
	assert port.controls(jambuddy.nodes.CC_VOLUME)[0].channel == 3
	assert port.controls(jambuddy.nodes.CC_PAN)[0].value == 0

	with pytest.raises(ValueError):
		panner.set_pan(1.5)


def test_synth_config_becomes_program_and_envelope () -> None:

	"""A synth sends its oscillator's program change and envelope controllers."""

	port = FakeMidiOut()
	config = jambuddy.synth_config.preset_config("Electric Piano")
	synth = jambuddy.nodes.PolySynth(0, config=config)
	_chain(port, synth)

	synth.apply()

	assert port.sent[0].type == "program_change"
	assert port.sent[0].program == config.oscillator.program
	assert port.controls(jambuddy.nodes.CC_ATTACK)[0].value == jambuddy.nodes.seconds_to_cc(config.envelope.attack)


def test_filter_controls () -> None:

	"""Changing the filter sends cutoff and resonance."""

	port = FakeMidiOut()
	synth = jambuddy.nodes.PolySynth(0)
	synth_filter = jambuddy.nodes.Filter()
	_chain(port, synth, synth_filter)

	synth_filter.set(jambuddy.synth_config.FilterSettings(cutoff=20000, resonance=20))

	assert port.controls(jambuddy.nodes.CC_CUTOFF)[0].value == 127
	assert port.controls(jambuddy.nodes.CC_RESONANCE)[0].value == 127


def test_dispose_is_idempotent () -> None:

	"""Disposing twice is harmless; a disposed node releases its notes and goes silent."""

	port = FakeMidiOut()
	synth = jambuddy.nodes.PolySynth(0)
	_chain(port, synth)

	synth.note_on(60)
	synth.dispose()
	synth.dispose()

	assert synth.disposed
	assert port.sent[-1].type == "note_off"

	synth.note_on(62)

	assert len(port.note_ons()) == 1

	with pytest.raises(ValueError):
		synth.connect(jambuddy.nodes.Limiter())


def test_context_suspend_and_resume () -> None:

	"""A suspended context transmits nothing and panics on the way down."""

	port = FakeMidiOut()
	context = jambuddy.nodes.OutputContext(port)

	context.suspend()

	assert context.state == context.SUSPENDED
	assert len(port.controls(jambuddy.nodes.CC_ALL_NOTES_OFF)) == 16

	context.receive(mido.Message("note_on", note=60))

	assert port.note_ons() == []

	context.resume()
	context.receive(mido.Message("note_on", note=60))

	assert len(port.note_ons()) == 1


def test_context_reopens_lost_port () -> None:

	"""A closed port is reopened on resume."""

	old = FakeMidiOut()
	new = FakeMidiOut()
	context = jambuddy.nodes.OutputContext(old, reopen=lambda: new)

	old.close()
	context.resume()

	assert context.port is new


def test_context_resume_failure_is_engine_error () -> None:

	"""A port that cannot be reopened raises EngineError."""

	def unavailable () -> FakeMidiOut:
		raise OSError("device unplugged")

	port = FakeMidiOut()
	context = jambuddy.nodes.OutputContext(port, reopen=unavailable)
	port.close()

	with pytest.raises(jambuddy.nodes.EngineError):
		context.resume()

	no_reopen = jambuddy.nodes.OutputContext(None)

	with pytest.raises(jambuddy.nodes.EngineError):
		no_reopen.resume()


def test_closed_context_cannot_resume () -> None:

	"""Closing is final."""

	port = FakeMidiOut()
	context = jambuddy.nodes.OutputContext(port)

	context.close()
	context.close()

	assert port.closed

	with pytest.raises(jambuddy.nodes.EngineError):
		context.resume()
