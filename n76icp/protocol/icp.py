# Ref: Nuvoton N76E003 datasheet, section "In-Circuit Programming"
# Ref: MS51FB9AE/MS51XB9AE/MS51XB9BE datasheet, section "ICP Programming"
#
# The ICP command set is not publicly documented. The command word layout, the opcodes, and
# the timings below were established by observing the vendor programmer.
#
# A command word is 24 bits wide: a 6-bit opcode in the low bits and an 18-bit operand above it.
# Every memory of the target lives in a single ICP address map, so one set of byte read, byte
# write and page erase commands serves all regions:
#
#   0x00000 .. flash_size-1   APROM, with LDROM carved from the top of the same array
#   0x0ff80 .. 0x0ffff        SPROM page (its code space address; never part of the flash array)
#   0x30000 .. 0x30004        CONFIG0..CONFIG4

from dataclasses import dataclass
import enum
import math


__all__ = [
    "Opcode", "COMMAND_BITS", "OPERAND_BITS",
    "ENTRY_PATTERN", "ENTRY_PATTERN_BITS", "ENTRY_TICK_US", "ENTRY_SETTLE_US", "UNLOCK_WORD",
    "UNLOCK_SETTLE_US", "EXIT_PATTERN", "RESET_HOLD_US", "RESET_RELEASE_US", "EXIT_RELEASE_US",
    "EXIT_SETTLE_US",
    "MASS_ERASE_KEY",
    "encode_single_operand", "encode_two_operand", "decode_single_operand",
    "TimingProfile", "TIMINGS",
    "Region", "APROM", "LDROM", "SPROM", "CONFIG", "flash_regions",
    "CONFIG_ADDR", "CONFIG_LEN", "LDROM_MAX_SIZE",
    "ConfigRecord", "ldrom_size_kb", "ldrom_size_selector",
]


COMMAND_BITS = 24
OPERAND_BITS = 18


class Opcode(enum.IntEnum):
    BYTE_READ      = 0x00
    READ_UID       = 0x04
    READ_CID       = 0x0b
    READ_DEVICE_ID = 0x0c
    BYTE_WRITE     = 0x21
    PAGE_ERASE     = 0x22
    MASS_ERASE     = 0x26


# Shifted out on RST, MSB first, one bit per tick.
ENTRY_PATTERN      = 0x9e1cb6
ENTRY_PATTERN_BITS = 24
ENTRY_TICK_US      = 10_000
ENTRY_SETTLE_US    = 100

UNLOCK_WORD        = 0x5aa503
UNLOCK_SETTLE_US   = 10
# 20 significant bits, clocked out as a full command word.
EXIT_PATTERN       = 0xf78f0

# RST pulse that returns a target in programming mode to the unlock stage.
RESET_HOLD_US      = 5_000
RESET_RELEASE_US   = 1_000
# Before the exit pattern, and after it until RST is released for good.
EXIT_RELEASE_US    = 10_000
EXIT_SETTLE_US     = 500

MASS_ERASE_KEY     = 0x3a5a5


def encode_single_operand(opcode, operand):
    """Encode a command addressed by a single linear operand: ``(operand << 6) | opcode``."""
    if opcode not in range(0x40):
        raise ValueError(f"opcode {opcode:#x} does not fit in 6 bits")
    if operand not in range(1 << OPERAND_BITS):
        raise ValueError(f"operand {operand:#x} does not fit in {OPERAND_BITS} bits")
    return (operand << 6) | opcode


def decode_single_operand(command):
    """Split a 24-bit command word into ``(opcode, operand)``."""
    return command & 0x3f, (command >> 6) & ((1 << OPERAND_BITS) - 1)


def encode_two_operand(opcode, high, low):
    """Encode a command addressed by explicit high and low address bytes:
    ``(opcode << 16) | (high << 8) | low``."""
    for name, value in (("opcode", opcode), ("high", high), ("low", low)):
        if value not in range(0x100):
            raise ValueError(f"{name} {value:#x} does not fit in 8 bits")
    return (opcode << 16) | (high << 8) | low


@dataclass(frozen=True)
class TimingProfile:
    """Settle delays of the terminating clock pulse of a byte write, in microseconds.

    ``data_setup_us`` elapses between driving the end-of-transfer bit and raising CLK;
    ``clock_hold_us`` is the time CLK is held high, during which the target completes the
    write or erase of the cell.
    """
    name:          str
    data_setup_us: int
    clock_hold_us: int


TIMINGS = {
    "write":        TimingProfile("write",           200,     50),
    "config_write": TimingProfile("config_write",   2000,    500),
    "config_erase": TimingProfile("config_erase",  10000,   1000),
    "page_erase":   TimingProfile("page_erase",    10000,   1000),
    "mass_erase":   TimingProfile("mass_erase",   100000,  10000),
}


@dataclass(frozen=True)
class Region:
    name:         str
    base_address: int
    length:       int
    page_size:    int
    read_opcode:  Opcode = Opcode.BYTE_READ
    write_opcode: Opcode = Opcode.BYTE_WRITE
    erase_opcode: Opcode = Opcode.PAGE_ERASE

    @property
    def end_address(self):
        return self.base_address + self.length

    def contains(self, address, length=1):
        return (self.base_address <= address and
                address + length <= self.base_address + self.length)

    def relocate(self, base_address, length):
        return Region(self.name, base_address, length, self.page_size,
                      self.read_opcode, self.write_opcode, self.erase_opcode)


CONFIG_ADDR    = 0x30000
CONFIG_LEN     = 5
LDROM_MAX_SIZE = 4 * 1024

# Geometry of a 16 KiB part with the largest LDROM; use `flash_regions()` for a concrete
# device and LDROM size.
APROM  = Region("APROM",  0x00000, 12 * 1024, 128)
LDROM  = Region("LDROM",  0x03000, LDROM_MAX_SIZE, 128)
SPROM  = Region("SPROM",  0x0ff80, 128, 128)
CONFIG = Region("CONFIG", CONFIG_ADDR, CONFIG_LEN, 128)


def flash_regions(flash_size, ldrom_size=0):
    """Split a flash array of ``flash_size`` bytes into APROM and an LDROM of ``ldrom_size``
    bytes at its top. Returns ``(aprom, ldrom)``."""
    if ldrom_size not in range(0, LDROM_MAX_SIZE + 1, 1024):
        raise ValueError(f"LDROM size {ldrom_size} is not a multiple of 1 KiB up to "
                         f"{LDROM_MAX_SIZE}")
    if ldrom_size > flash_size:
        raise ValueError(f"LDROM size {ldrom_size} exceeds flash size {flash_size}")
    aprom_size = flash_size - ldrom_size
    return (APROM.relocate(0, aprom_size),
            LDROM.relocate(aprom_size, ldrom_size))


def ldrom_size_kb(image_size):
    """Size of the LDROM in KiB required to hold an image of ``image_size`` bytes."""
    if image_size not in range(1, LDROM_MAX_SIZE + 1):
        raise ValueError(f"LDROM image size {image_size} is not within 1..{LDROM_MAX_SIZE} "
                         f"bytes")
    return math.ceil(image_size / 1024)


def ldrom_size_selector(size_kb):
    """CONFIG1[2:0] value selecting an LDROM of ``size_kb`` KiB."""
    return (7 - size_kb) & 0x7


@dataclass(frozen=True)
class ConfigRecord:
    """Decoded view of the five configuration bytes."""
    raw: bytes

    @classmethod
    def for_ldrom_boot(cls, size_kb):
        return cls(bytes([0x7f, 0xf8 | ldrom_size_selector(size_kb), 0xff, 0xff, 0xff]))

    def __post_init__(self):
        if len(self.raw) != CONFIG_LEN:
            raise ValueError(f"configuration record must be {CONFIG_LEN} bytes, "
                             f"not {len(self.raw)}")
        object.__setattr__(self, "raw", bytes(self.raw))

    @property
    def boot_from_ldrom(self):
        # CONFIG0.CBS: 0 boots from LDROM, 1 from APROM
        return not (self.raw[0] & 0x80)

    @property
    def locked(self):
        # CONFIG0.LOCK: 0 locks the flash contents
        return not (self.raw[0] & 0x02)

    @property
    def ldrom_size(self):
        # CONFIG1.LDSIZE: 111 none, 110 1K, 101 2K, 100 3K, 0xx 4K
        selector = self.raw[1] & 0x7
        return min(7 - selector, 4) * 1024

    def __str__(self):
        return "boot={} ldrom={} bytes{}".format(
            "LDROM" if self.boot_from_ldrom else "APROM",
            self.ldrom_size,
            " locked" if self.locked else "")
