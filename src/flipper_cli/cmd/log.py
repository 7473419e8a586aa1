import sys
import signal
import logging
import argparse

from flipper_cli.exceptions import FlipperError
from flipper_cli.device.manager import DeviceManager

def handle_log(manager: DeviceManager, args: argparse.Namespace) -> int:
    """
    Streams the device log to stdout until interrupted.

    Ctrl+C closes the connection, which is the only way to end the stream.
    """
    log = logging.getLogger("cmd.log")

    def stop(signum, frame):
        log.debug("Interrupt received, closing connection")
        manager.close()

    previous = signal.signal(signal.SIGINT, stop)
    try:
        manager.log_stream(sys.stdout, args.level)
    except FlipperError as e:
        log.error(f"Log stream failed: {e}")
        return 1
    finally:
        signal.signal(signal.SIGINT, previous)
    return 0
