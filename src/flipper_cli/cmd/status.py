import logging
import argparse

from flipper_cli.exceptions import FlipperError
from flipper_cli.device.manager import DeviceManager
from flipper_cli.device.responses import InfoCategory

def handle_status(manager: DeviceManager, args: argparse.Namespace) -> int:
    """
    Retrieves and displays firmware and hardware details of the device.
    """
    log = logging.getLogger("cmd.status")
    log.debug("Retrieving device information...")
    try:
        info = manager.info(InfoCategory.DEVICE)
    except FlipperError as e:
        log.error(f"Failed to retrieve device information: {e}")
        return 1

    log.debug(f"Device information retrieved, {len(info)} keys")

    print("Firmware")
    print(f"  API:     {info.get('firmware.api.major', '?')}.{info.get('firmware.api.minor', '?')}")
    print(f"  Version: {info.get('firmware.version', 'Unknown')}")
    print("Hardware")
    print(f"  UID:     {info.get('hardware.uid', 'Unknown')}")
    print(f"  Name:    {info.get('hardware.name', 'Unknown')}")
    print(f"  Model:   {info.get('hardware.model', 'Unknown')}")
    print(f"  Version: {info.get('hardware.ver', 'Unknown')}")

    if args.all:
        for category in (InfoCategory.POWER, InfoCategory.POWER_DEBUG):
            try:
                details = manager.info(category)
            except FlipperError as e:
                log.warning(f"Could not read {category.value} info: {e}")
                continue
            print(category.value.replace('_', ' ').title())
            max_key_len = max((len(key) for key in details), default=0)
            for key, value in details.items():
                print(f"  {key.ljust(max_key_len)}: {value}")

    return 0
