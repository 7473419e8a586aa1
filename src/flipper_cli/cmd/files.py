"""
File commands for the Flipper CLI.

This module provides handlers for storage operations:
- ls: List a directory on the device
- read: Download a file or directory from the device
- write: Upload a file or directory to the device
"""

import sys
import logging
import argparse

from flipper_cli.exceptions import FlipperError
from flipper_cli.device.manager import DeviceManager

def progress_callback(transferred: int, total: int) -> None:
    """
    Progress callback for file uploads/downloads

    Args:
        transferred: Bytes transferred so far for the current file
        total: Size of the current file in bytes
    """
    # Check if we're in quiet mode
    if logging.getLogger().getEffectiveLevel() >= logging.WARNING:
        return

    if total > 0:
        percent = min(100.0, (transferred / total) * 100)
        progress_str = f"\rProgress: {percent:.1f}% ({format_size(transferred)}/{format_size(total)})"
    else:
        progress_str = "\rProgress: 100.0% (0 B)"
    sys.stdout.write(progress_str)
    if transferred >= total:
        sys.stdout.write("\n")
    sys.stdout.flush()

def format_size(size_in_bytes: int) -> str:
    """Format size in human-readable format (B, KB, MB, GB)."""
    if size_in_bytes < 1024:
        return f"{size_in_bytes} B"
    elif size_in_bytes < 1024 * 1024:
        return f"{size_in_bytes / 1024:.1f} KB"
    elif size_in_bytes < 1024 * 1024 * 1024:
        return f"{size_in_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_in_bytes / (1024 * 1024 * 1024):.2f} GB"

def handle_ls(manager: DeviceManager, args: argparse.Namespace) -> int:
    """
    Handles the ls action logic to list files in a directory on the device.

    Args:
        manager: The initialized DeviceManager instance.
        args: The parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    log = logging.getLogger("cmd.files")
    log.debug(f"Listing files in {args.remote_path}")

    try:
        entries = manager.ls(args.remote_path)
    except FlipperError as e:
        log.error(f"Failed to list files: {e}")
        return 1

    for info in entries:
        if info.is_dir:
            print(f"{info.path}/")
        else:
            print(f"{info.path}  {info.size}b")
    return 0

def handle_read(manager: DeviceManager, args: argparse.Namespace) -> int:
    """
    Handles the read action: copies a device file or directory to a local directory.

    Args:
        manager: The initialized DeviceManager instance.
        args: The parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    log = logging.getLogger("cmd.files")
    log.info(f"Reading {args.device_path} into {args.local_path}")

    try:
        download_transport = manager.download(
            remote_path=args.device_path,
            local_dir=args.local_path,
            progress=progress_callback
        )
        written = download_transport.execute()
    except FlipperError as e:
        log.error(f"File download failed: {e}")
        return 1

    log.info(f"Downloaded {len(written)} file(s) to {args.local_path}")
    return 0

def handle_write(manager: DeviceManager, args: argparse.Namespace) -> int:
    """
    Handles the write action: copies a local file or directory to the device.

    Args:
        manager: The initialized DeviceManager instance.
        args: The parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    log = logging.getLogger("cmd.files")
    log.info(f"Writing {args.local_path} to {args.device_path}")

    try:
        upload_transport = manager.upload(
            local_path=args.local_path,
            remote_path=args.device_path,
            progress=progress_callback
        )
        count = upload_transport.execute()
    except FlipperError as e:
        log.error(f"File upload failed: {e}")
        return 1

    log.info(f"Uploaded {count} file(s) to {args.device_path}")
    return 0
