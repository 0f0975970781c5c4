import logging
import typing
import mido

logger = logging.getLogger(__name__)


def list_output_devices() -> typing.List[str]:
    """
    Return the names of the available MIDI outputs (empty if the backend fails).
    """
    try:
        return list(mido.get_output_names())
    except Exception as e:
        logger.error(f"Could not list MIDI outputs: {e}")
        return []


def select_output_device(device_name: typing.Optional[str] = None, interactive: bool = True) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:
    """
    Select and open the MIDI output the jam is played on.

    If `device_name` is provided, only that device is accepted.
    If `device_name` is None:
    - If exactly one device exists, it is selected automatically.
    - If several exist and `interactive` is True, the user picks one at the console;
      otherwise the first one is used.
    - If none exist, logs an error and returns None.

    Returns:
        A tuple of (device_name, midi_out_object) or (None, None) on failure.
    """
    outputs = list_output_devices()
    logger.info(f"Available MIDI outputs: {outputs}")

    if not outputs:
        logger.error("No MIDI output devices found.")
        return None, None

    if device_name is not None and device_name not in outputs:
        logger.error(
            f"MIDI output device '{device_name}' not found. "
            f"Available devices: {outputs}"
        )
        return None, None

    if device_name is not None:
        selected_name = device_name
    elif len(outputs) == 1 or not interactive:
        selected_name = outputs[0]
        logger.info(f"Using MIDI output '{selected_name}'")
    else:
        selected_name = _prompt_for_device(outputs)

    try:
        midi_out = mido.open_output(selected_name)
    except Exception as e:
        logger.error(f"Failed to open MIDI output '{selected_name}': {e}")
        return None, None

    logger.info(f"Opened MIDI output: {selected_name}")
    return selected_name, midi_out


def _prompt_for_device(outputs: typing.List[str]) -> str:
    """
    Ask at the console which of several outputs to use.
    """
    print("\nAvailable MIDI output devices:\n")
    for i, name in enumerate(outputs, 1):
        print(f"  {i}. {name}")
    print()

    while True:
        try:
            choice = int(input(f"Select a device (1-{len(outputs)}): "))
            if 1 <= choice <= len(outputs):
                break
        except (ValueError, EOFError):
            pass
        print(f"Enter a number between 1 and {len(outputs)}.")

    selected_name = outputs[choice - 1]

    print(f"\nTip: To skip this prompt, set the device in your config file:\n")
    print(f"  midi:\n    device_name: \"{selected_name}\"\n")

    return selected_name
