import asyncio

import pytest

import jambuddy.transport


async def _run_until (transport: jambuddy.transport.Transport, pulse: int) -> None:

	"""Start the transport and let it run past ``pulse`` in simulated time."""

	done = asyncio.get_running_loop().create_future()

	def finish (_pulse: int) -> None:
		if not done.done():
			done.set_result(None)

	transport.schedule(pulse, finish, priority=100)
	transport.start()

	await asyncio.wait_for(done, timeout=5)


def test_set_bpm_rejects_non_positive () -> None:

	"""A tempo must be positive."""

	transport = jambuddy.transport.Transport()

	with pytest.raises(ValueError):
		transport.set_bpm(0)

	transport.set_bpm(90)

	assert transport.current_bpm == 90
	assert transport.pulses_to_seconds(24) == pytest.approx(60 / 90)


def test_events_sort_by_pulse_then_priority_then_order () -> None:

	"""Same-pulse events run lowest priority first, then in insertion order."""

	transport = jambuddy.transport.Transport()
	fired: list[str] = []

	transport.schedule(1, lambda pulse: fired.append("late"))
	transport.schedule(0, lambda pulse: fired.append("drums"), priority=3)
	transport.schedule(0, lambda pulse: fired.append("chord-a"), priority=0)
	transport.schedule(0, lambda pulse: fired.append("release"), priority=-1)
	transport.schedule(0, lambda pulse: fired.append("chord-b"), priority=0)

	transport.process_pulse(0)

	assert fired == ["release", "chord-a", "chord-b", "drums"]

	transport.process_pulse(1)

	assert fired[-1] == "late"


def test_callback_errors_do_not_stop_the_pulse () -> None:

	"""A failing callback is logged and the rest of the pulse still fires."""

	transport = jambuddy.transport.Transport()
	fired: list[int] = []

	def broken (pulse: int) -> None:
		raise RuntimeError("boom")

	transport.schedule(0, broken)
	transport.schedule(0, fired.append)
	transport.process_pulse(0)

	assert fired == [0]


def test_cancelled_token_silences_its_events () -> None:

	"""Cancelling a token drops every event that belongs to it."""

	transport = jambuddy.transport.Transport()
	token = jambuddy.transport.CancellationToken("session")
	other = jambuddy.transport.CancellationToken("other")
	fired: list[str] = []

	transport.schedule(0, lambda pulse: fired.append("a"), token=token)
	transport.schedule_repeating(0, 12, lambda pulse: fired.append("b"), token=token)
	transport.schedule(0, lambda pulse: fired.append("c"), token=other)

	assert transport.pending(token) == 2

	transport.cancel(token)

	assert token.cancelled
	assert transport.pending(token) == 0

	transport.process_pulse(0)

	assert fired == ["c"]


def test_repeating_event_requeues_itself () -> None:

	"""A repeating event fires on every interval."""

	transport = jambuddy.transport.Transport()
	fired: list[int] = []

	transport.schedule_repeating(0, 12, fired.append)

	for pulse in range(37):
		transport.process_pulse(pulse)

	assert fired == [0, 12, 24, 36]

	with pytest.raises(ValueError):
		transport.schedule_repeating(0, 0, fired.append)


def test_token_cancelled_mid_queue () -> None:

	"""An event whose token is cancelled after queueing never fires."""

	transport = jambuddy.transport.Transport()
	token = jambuddy.transport.CancellationToken()
	fired: list[int] = []

	transport.schedule(0, lambda pulse: token.cancel())
	transport.schedule(0, fired.append, priority=1, token=token)
	transport.process_pulse(0)

	assert fired == []


@pytest.mark.asyncio
async def test_render_mode_runs_in_simulated_time () -> None:

	"""Render mode advances pulses without waiting for the wall clock."""

	transport = jambuddy.transport.Transport(bpm=60, render_mode=True)
	fired: list[int] = []

	transport.schedule_repeating(0, 24, fired.append)

	await _run_until(transport, 96 * 4)

	assert fired[:5] == [0, 24, 48, 72, 96]
	assert transport.elapsed_seconds == pytest.approx(16, rel=0.05)

	transport.stop()


@pytest.mark.asyncio
async def test_start_resets_pulse_count () -> None:

	"""Every start begins from pulse zero."""

	transport = jambuddy.transport.Transport(render_mode=True)

	await _run_until(transport, 50)
	transport.stop()

	assert not transport.running

	await _run_until(transport, 10)

	assert transport.pulse_count <= 12

	transport.stop()


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_clears_events () -> None:

	"""Stopping twice is harmless and drops everything queued."""

	transport = jambuddy.transport.Transport(render_mode=True)
	transport.schedule(10_000, lambda pulse: None)
	transport.start()

	await asyncio.sleep(0)

	transport.stop()
	transport.stop()

	assert not transport.running
	assert transport.pending() == 0
	assert transport.task is None


@pytest.mark.asyncio
async def test_callback_can_stop_the_transport () -> None:

	"""A callback may stop the clock from inside the loop task."""

	transport = jambuddy.transport.Transport(render_mode=True)
	fired: list[int] = []

	def stop_now (pulse: int) -> None:
		fired.append(pulse)
		transport.stop()

	transport.schedule(24, stop_now)
	transport.schedule(48, fired.append)
	transport.start()

	for _ in range(100):
		await asyncio.sleep(0)

	assert fired == [24]
	assert not transport.running


@pytest.mark.asyncio
async def test_pause_and_resume () -> None:

	"""A paused transport does not advance until resumed."""

	transport = jambuddy.transport.Transport(render_mode=True)
	transport.schedule(10_000, lambda pulse: None)
	transport.start()

	for _ in range(5):
		await asyncio.sleep(0)

	transport.pause()
	paused_at = transport.pulse_count

	for _ in range(20):
		await asyncio.sleep(0)

	assert transport.pulse_count == paused_at

	transport.resume()

	for _ in range(20):
		await asyncio.sleep(0)

	assert transport.pulse_count > paused_at

	transport.stop()
