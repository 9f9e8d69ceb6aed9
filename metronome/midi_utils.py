import logging
import typing

import mido


logger = logging.getLogger(__name__)


def select_output_device (device_name: typing.Optional[str] = None) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:

	"""Open the MIDI output that metronome clicks will be sent to.

	With ``device_name``, opens exactly that port.  Without it, uses the only
	available port, or asks on the console which one to use when there are
	several.  This runs before the terminal is switched to raw mode, so a
	normal ``input()`` prompt is safe.

	Returns:
		``(device_name, port)``, or ``(None, None)`` if nothing could be opened.
	"""

	try:
		outputs = mido.get_output_names()
	except Exception as e:
		logger.error(f"Could not list MIDI outputs: {e}")
		return None, None

	logger.info(f"Available MIDI outputs: {outputs}")

	if not outputs:
		logger.error("No MIDI output devices found.")
		return None, None

	if device_name is not None:
		if device_name not in outputs:
			logger.error(f"MIDI output '{device_name}' not found. Available: {outputs}")
			return None, None
		selected = device_name

	elif len(outputs) == 1:
		selected = outputs[0]

	else:
		selected = _prompt_for_device(outputs)

	try:
		port = mido.open_output(selected)
	except Exception as e:
		logger.error(f"Failed to open MIDI output '{selected}': {e}")
		return None, None

	logger.info(f"Sending clicks to MIDI output '{selected}'")

	return selected, port


def _prompt_for_device (outputs: typing.List[str]) -> str:

	print("\nAvailable MIDI output devices:\n")
	for i, name in enumerate(outputs, 1):
		print(f"  {i}. {name}")
	print()

	while True:
		try:
			choice = int(input(f"Select a device (1-{len(outputs)}): "))
			if 1 <= choice <= len(outputs):
				break
		except ValueError:
			pass
		except EOFError:
			logger.warning(f"No answer on stdin, using '{outputs[0]}'")
			return outputs[0]
		print(f"Enter a number between 1 and {len(outputs)}.")

	selected = outputs[choice - 1]
	print(f"\nTip: skip this prompt next time with --midi \"{selected}\"\n")

	return selected
