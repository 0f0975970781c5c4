import logging
import os
import sys

import yaml

import jambuddy.jam_state
import jambuddy.midi_file
import jambuddy.session


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


DEFAULT_PROGRESSION = ["C", "G", "Am", "F", "C", "G", "F", "C"]


def load_config (config_path: str = 'config.yaml') -> dict:

	"""
	Load configuration from a YAML file.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return {}

	with open(config_path, 'r') as f:
		return yaml.safe_load(f) or {}


def main () -> None:

	"""
	Main entry point: ``python -m jambuddy [config.yaml]``.
	"""

	logger.info("Jam Buddy starting...")

	config = load_config(sys.argv[1] if len(sys.argv) > 1 else 'config.yaml')

	midi_config = config.get('midi', {})
	jam_config = config.get('jam', {})
	engine_config = config.get('engine', {})
	osc_config = config.get('osc')

	mode = jam_config.get('mode', 'play')

	if mode not in jambuddy.session.MODES:
		logger.error(f"Unknown mode {mode!r}. Available: {', '.join(jambuddy.session.MODES)}")
		sys.exit(1)

	session = jambuddy.session.JamSession(
		output_device = midi_config.get('device_name'),
		drum_kit = engine_config.get('drum_kit'),
		asset_timeout = engine_config.get('asset_timeout', 2.0),
		settle_seconds = engine_config.get('settle_seconds', 0.15)
	)

	jam_file = jam_config.get('file')

	if jam_file:
		try:
			session.load_jam(jam_file)
		except (OSError, jambuddy.jam_state.JamStateError) as e:
			logger.error(f"Could not load jam file {jam_file}: {e}")
			sys.exit(1)
	else:
		session.set_progression(DEFAULT_PROGRESSION)

	if mode == 'export':
		try:
			session.export_midi(
				jam_config.get('export_filename', 'jam-buddy-progression.mid'),
				include_tempo = jam_config.get('export_tempo', False)
			)
		except (OSError, jambuddy.midi_file.MidiExportError) as e:
			logger.error(f"MIDI export failed: {e}")
			sys.exit(1)
		return

	if osc_config is not None:
		session.osc(
			receive_port = osc_config.get('receive_port', 9000),
			send_port = osc_config.get('send_port', 9001),
			send_host = osc_config.get('send_host', '127.0.0.1')
		)

	session.run(mode, loop_count=jam_config.get('loop_count'))

	logger.info("Stopped.")


if __name__ == "__main__":
	main()
