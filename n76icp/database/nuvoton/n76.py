from collections import namedtuple, defaultdict


__all__ = ["NUVOTON_CID", "devices", "devices_by_id", "devices_by_name"]


NUVOTON_CID = 0xda


N76Device = namedtuple("N76Device", (
    "name", "device_id",
    # All sizes in bytes
    "flash_size", "page_size",
))


devices = [
    # APROM and LDROM share the flash array; LDROM is carved from its top.
    N76Device("N76E003",   device_id=0x3650, flash_size=18 * 1024, page_size=128),
    N76Device("MS51FB9AE", device_id=0x4b21, flash_size=16 * 1024, page_size=128),
]

devices_by_id = defaultdict(lambda: None,
    ((device.device_id, device) for device in devices))

devices_by_name = defaultdict(lambda: None,
    ((device.name.lower(), device) for device in devices))
