"""
Flipper CLI Tool

A command-line tool for talking to a Flipper device over its serial shell.
"""

import sys
import argparse
import logging

from flipper_cli.exceptions import FlipperError
from flipper_cli.device.conn import Connection, AUTO
from flipper_cli.cmd.files import handle_ls, handle_read, handle_write
from flipper_cli.cmd.interactive import interactive_mode
from flipper_cli.cmd.log import handle_log
from flipper_cli.cmd.status import handle_status


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Flipper CLI Tool',
        epilog="""A tool for managing Flipper devices over USB serial."""
    )

    # Global options (apply to all subcommands)
    parser.add_argument('--port', '-p', default=AUTO,
                        help="Device port name to use if there are multiple connected. "
                             "If set to auto, the device will be found automatically.")
    # Logging / Output options (Mutually Exclusive)
    log_level_group = parser.add_mutually_exclusive_group()
    log_level_group.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose DEBUG level logging')
    log_level_group.add_argument('--quiet', '-q', action='store_true',
                        help='Suppress INFO level logging, show only WARNINGs and ERRORs')

    subparsers = parser.add_subparsers(dest='action', title='Actions',
                                     description='Choose an action to perform', required=True)

    parser_status = subparsers.add_parser('status', help='Display the status of the device')
    parser_status.add_argument('--all', '-a', action='store_true',
                               help='Also show power and power debug information')

    parser_ls = subparsers.add_parser('ls', help='List files in a specific directory')
    parser_ls.add_argument('remote_path', help='Directory on the device (/int/... or /ext/...)')

    parser_read = subparsers.add_parser('read', help='Read a file on the device to a local path',
                                        epilog='example: read /ext/apps/Games/snake_game.fap .')
    parser_read.add_argument('device_path', help='File or directory on the device')
    parser_read.add_argument('local_path', help='Local directory to write into')

    parser_write = subparsers.add_parser('write', help='Write a file from local storage to the device')
    parser_write.add_argument('local_path', help='Local file or directory')
    parser_write.add_argument('device_path', help='Destination path on the device')

    parser_log = subparsers.add_parser('log', help='Stream logs from the device')
    parser_log.add_argument('level', nargs='?', default='default',
                            help='Log level (default, error, warn, info, debug, trace)')

    subparsers.add_parser('shell', help='Run an interactive shell on the device')
    subparsers.add_parser('scan', help='Scan for available devices and exit')

    return parser


def handle_scan() -> int:
    """Prints every attached device; needs no connection."""
    devices = Connection.find_devices()
    if not devices:
        print("No devices found")
        return 1
    for device in devices:
        print(f"{device['port']} : {device.get('serial_number', '')} ({device.get('description', '')})")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    # Set up logging level based on flags
    log_level = logging.INFO # Default
    if args.verbose:
        log_level = logging.DEBUG
    elif args.quiet:
        log_level = logging.WARNING

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    log = logging.getLogger("main")

    if args.action == 'scan':
        return handle_scan()

    try:
        manager = Connection.open(args.port, verbose=args.verbose)
    except FlipperError as e:
        log.error(f"Failed to connect to device: {e}")
        return 1

    handlers = {
        'status': handle_status,
        'ls': handle_ls,
        'read': handle_read,
        'write': handle_write,
        'log': handle_log,
    }

    exit_code = 1 # Default to error
    try:
        if args.action == 'shell':
            exit_code = interactive_mode(manager)
        else:
            exit_code = handlers[args.action](manager, args)
    except KeyboardInterrupt:
        log.warning("Operation cancelled by user")
        exit_code = 1
    finally:
        manager.close()

    return exit_code

if __name__ == "__main__":
    sys.exit(main())
