from flipper_cli.device.manager import DeviceManager
from flipper_cli.exceptions import FlipperConnectionError, FlipperError

import atexit
import logging
import os

logger = logging.getLogger("cmd.interactive")

try:
    import readline
except ImportError:
    # Windows without pyreadline: the shell still works, just without history
    readline = None

import platformdirs

HISTORY_LENGTH = 1000
EXIT_COMMANDS = ('exit', 'quit')

def history_path() -> str:
    """Location of the shell history file in the platform user data directory."""
    return os.path.join(platformdirs.user_data_dir("flipper-cli", "flipper-cli"), "history")

def setup_history() -> None:
    """Loads previous shell history and saves it again on exit."""
    if readline is None:
        logger.info("readline is not available, shell history disabled")
        return

    history_file = history_path()
    try:
        os.makedirs(os.path.dirname(history_file), exist_ok=True)
    except OSError as e:
        logger.warning(f"Cannot create {os.path.dirname(history_file)}, shell history disabled: {e}")
        return

    try:
        readline.read_history_file(history_file)
    except FileNotFoundError:
        logger.debug(f"No shell history yet at {history_file}")
    except OSError as e:
        logger.warning(f"Ignoring unreadable history file {history_file}: {e}")

    readline.set_history_length(HISTORY_LENGTH)
    atexit.register(readline.write_history_file, history_file)

def interactive_mode(manager: DeviceManager) -> int:
    """
    Run an interactive shell on the device

    Each line is sent as-is through the response framer; the reply, or the
    error text the firmware reported, is printed. A lost connection ends
    the session.

    Args:
        manager: A connected DeviceManager

    Returns:
        0 when the user leaves the shell, 1 if the connection was lost
    """
    setup_history()

    if manager.banner:
        print(manager.banner)
    print(f"\nConnected to {manager.address}. Type 'exit' or press Ctrl+D to leave.")

    while True:
        try:
            line = input("> ").strip()
        except EOFError:
            print()
            break
        except KeyboardInterrupt:
            print("\n(type 'exit' to leave)")
            continue

        if not line:
            continue
        if line.lower() in EXIT_COMMANDS:
            break

        try:
            print(manager.request(line))
        except FlipperConnectionError as e:
            logger.error(f"Connection lost: {e}")
            return 1
        except FlipperError as e:
            # In-band errors are the firmware's own text, show it unchanged
            print(e)

    return 0
