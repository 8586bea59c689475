import logging

from ..protocol.icp import *
from . import *


__all__ = ["combine_chunks", "read_flash", "program_flash", "erase_chip"]


logger = logging.getLogger(__name__)


def combine_chunks(data, *, base=0):
    """Reduce a list of ``(address, chunk)`` to a single image starting at ``base``. Any gaps
    are filled with 0xff."""
    if not data:
        return bytearray()
    end = max(address + len(chunk) for address, chunk in data)
    if min(address for address, _ in data) < base:
        raise ICPError(f"image starts below address {base:#07x}")
    image = bytearray([0xff] * (end - base))
    for address, chunk in data:
        image[address - base:address - base + len(chunk)] = chunk
    return image


def read_flash(iface: ProgramN76Interface, region: Region, address=None, length=None):
    if address is None:
        address = region.base_address
    if length is None:
        length = region.end_address - address
    data = bytearray(length)
    iface.read_region(region, address, length, data)
    logger.info("read %s (%d bytes at %#07x)", region.name, length, address)
    return data


def program_flash(iface: ProgramN76Interface, *, flash_size, aprom=None, ldrom=None,
                  erase=True, verify=True, progress=None):
    """Program APROM and/or LDROM images into a target with ``flash_size`` bytes of flash.

    If an LDROM image is given, the LDROM is sized to the smallest number of KiB that holds it,
    the configuration is rewritten to boot from LDROM, and the APROM shrinks accordingly.
    Returns ``(aprom_region, ldrom_region)``.
    """
    ldrom_size = 0 if not ldrom else ldrom_size_kb(len(ldrom)) * 1024
    aprom_region, ldrom_region = flash_regions(flash_size, ldrom_size)
    if aprom and len(aprom) > aprom_region.length:
        raise ICPError(f"APROM image of {len(aprom)} bytes does not fit in "
                       f"{aprom_region.length} bytes of APROM")

    if erase:
        logger.info("erasing chip")
        iface.session.reinitialize()
        iface.mass_erase()

    if ldrom:
        config = ConfigRecord.for_ldrom_boot(ldrom_size // 1024)
        logger.info("writing configuration (%s)", config)
        if not erase:
            iface.erase_configuration()
        iface.write_configuration(config.raw)
        if verify:
            iface.verify_region(CONFIG, CONFIG.base_address, config.raw)

        logger.info("writing LDROM (%d bytes at %#07x)", len(ldrom), ldrom_region.base_address)
        iface.write_region(ldrom_region, ldrom_region.base_address, len(ldrom), ldrom,
                           progress=progress)
        if verify:
            # The unused tail of the LDROM must remain erased.
            expected = bytes(ldrom) + b"\xff" * (ldrom_region.length - len(ldrom))
            iface.verify_region(ldrom_region, ldrom_region.base_address, expected)

    if aprom:
        logger.info("writing APROM (%d bytes at %#07x)", len(aprom), aprom_region.base_address)
        iface.write_region(aprom_region, aprom_region.base_address, len(aprom), aprom,
                           progress=progress)
        if verify:
            iface.verify_region(aprom_region, aprom_region.base_address, aprom)

    if verify and (aprom or ldrom):
        logger.info("flash verified successfully")
    return aprom_region, ldrom_region


def erase_chip(iface: ProgramN76Interface):
    logger.info("erasing configuration, SPROM, and flash")
    iface.session.reinitialize()
    iface.erase_configuration()
    iface.erase_special_page()
    iface.mass_erase()
