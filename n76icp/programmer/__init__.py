"""
The Nuvoton N76E003 and MS51 8051 microcontrollers are programmed in-circuit through three
signals: DAT, CLK and ~RST. The target enters programming mode after a fixed pattern is shifted
out on ~RST at a slow rate, followed by an unlock word clocked on DAT/CLK.

Every operation starts with a 24-bit command word carrying a 6-bit opcode and an 18-bit operand
(usually an address). It is followed by a sequence of bytes transferred in either direction;
every byte carries a ninth bit, driven by the host, which is set on the last byte of the
operation. Writes and erases are performed by the target while CLK is held high during that
ninth bit, so the duration of this pulse depends on the operation.

All memories (APROM, LDROM, SPROM and CONFIG) share one address map; see
`n76icp.protocol.icp`.
"""

from dataclasses import dataclass
import logging

from ..support.logging import *
from ..protocol.icp import *
from ..database.nuvoton.n76 import *
from .session import *


__all__ = [
    "ICPError", "ICPStateError", "VerificationError",
    "Mode", "ICPSession", "DeviceIdentity", "ProgramN76Interface",
]


UID_LEN = 12

# Progress is reported every this many bytes written.
PROGRESS_INTERVAL = 256


class VerificationError(ICPError):
    def __init__(self, address, expected, actual):
        self.address  = address
        self.expected = expected
        self.actual   = actual
        super().__init__(f"verification failed at address {address:#07x}: "
                         f"expected {expected:02x}, read {actual:02x}")


@dataclass(frozen=True)
class DeviceIdentity:
    company_id: int
    device_id:  int
    unique_id:  bytes

    @property
    def device(self):
        return devices_by_id[self.device_id]

    @property
    def known(self):
        return self.company_id == NUVOTON_CID and self.device is not None

    def __str__(self):
        return "{} (CID {:#04x} DID {:#06x} UID {})".format(
            "unknown" if self.device is None else self.device.name,
            self.company_id, self.device_id, self.unique_id.hex())


class ProgramN76Interface:
    def __init__(self, logger: logging.Logger, session: ICPSession):
        self._logger = logger
        self._level  = logging.DEBUG if self._logger.name == __name__ else logging.TRACE
        self.session = session
        self.bus     = session.bus

    def _log(self, message, *args):
        self._logger.log(self._level, "ICP: " + message, *args)

    def _command(self, operation, opcode, operand=0):
        self.session.require_active(operation)
        command = encode_single_operand(opcode, operand)
        self._log("command %s operand=%#07x word=%06x", opcode.name, operand, command)
        self.bus.send_bits(command, COMMAND_BITS)

    def _read_bytes(self, data, length=None):
        if length is None:
            length = len(data)
        for index in range(length):
            data[index] = self.bus.read_byte(end=(index == length - 1))
        return data

    def _write_bytes(self, data, timing, progress=None):
        length = len(data)
        for index, byte in enumerate(data):
            self.bus.write_byte(byte, end=(index == length - 1),
                                setup_us=timing.data_setup_us, hold_us=timing.clock_hold_us)
            if progress is not None and length > CONFIG_LEN:
                done = index + 1
                if done % PROGRESS_INTERVAL == 0 or done == length:
                    progress(done, length)

    @staticmethod
    def _check_range(region, address, length):
        if length < 0:
            raise ValueError(f"length {length} is negative")
        if not region.contains(address, max(length, 1)):
            raise ValueError(f"range {address:#07x}+{length:#x} is outside of {region.name} "
                             f"{region.base_address:#07x}+{region.length:#x}")

    def read_device_id(self):
        self._command("read device ID", Opcode.READ_DEVICE_ID)
        low, high = self._read_bytes(bytearray(2))
        device_id = (high << 8) | low
        self._log("device ID=%#06x", device_id)
        return device_id

    def read_company_id(self):
        self._command("read company ID", Opcode.READ_CID)
        company_id, = self._read_bytes(bytearray(1))
        self._log("company ID=%#04x", company_id)
        return company_id

    def read_unique_id(self):
        self._command("read unique ID", Opcode.READ_UID)
        unique_id = bytes(self._read_bytes(bytearray(UID_LEN)))
        self._log("unique ID=<%s>", dump_hex(unique_id))
        return unique_id

    def identify(self):
        """Read the identity of the target and record it in the session.

        An unknown device is not an error here; it is reported, and the caller decides whether
        to continue.
        """
        identity = DeviceIdentity(
            company_id=self.read_company_id(),
            device_id=self.read_device_id(),
            unique_id=self.read_unique_id())
        if not identity.known:
            self._logger.warning("unknown device: CID %#04x DID %#06x",
                                 identity.company_id, identity.device_id)
        self.session.identity = identity
        return identity

    def read_region(self, region, address, length, data):
        """Read ``length`` bytes of ``region`` starting at ``address`` into ``data``. Returns the
        address following the last byte read."""
        self.session.require_active(f"read {region.name}")
        self._check_range(region, address, length)
        if len(data) < length:
            raise ValueError(f"buffer of {len(data)} bytes cannot hold {length} bytes")
        if length == 0:
            return address
        self._command(f"read {region.name}", region.read_opcode, address)
        self._read_bytes(data, length)
        self._log("read %s address=%#07x data=<%s>", region.name, address,
                  dump_hex(data[:length]))
        return address + length

    def write_region(self, region, address, length, data, *, progress=None):
        """Write ``length`` bytes from ``data`` to ``region`` starting at ``address``. The
        target range must be erased. Returns the address following the last byte written.

        If ``progress`` is given, it is called as ``progress(done, total)`` every 256 bytes
        and once the write completes.
        """
        self.session.require_active(f"write {region.name}")
        self._check_range(region, address, length)
        if len(data) < length:
            raise ValueError(f"buffer of {len(data)} bytes holds less than {length} bytes")
        if length == 0:
            return address
        self._command(f"write {region.name}", region.write_opcode, address)
        self.session.mark_programming()
        self._log("write %s address=%#07x data=<%s>", region.name, address,
                  dump_hex(data[:length]))
        self._write_bytes(memoryview(data)[:length], TIMINGS["write"], progress)
        return address + length

    def erase_page(self, region, address, *, timing=TIMINGS["page_erase"]):
        self._check_range(region, address, 1)
        self._command(f"erase {region.name} page", region.erase_opcode, address)
        self.session.mark_programming()
        self._log("erase %s page address=%#07x", region.name, address)
        self._write_bytes(b"\xff", timing)

    def mass_erase(self):
        self._command("mass erase", Opcode.MASS_ERASE, MASS_ERASE_KEY)
        self.session.mark_programming()
        self._log("mass erase")
        self._write_bytes(b"\xff", TIMINGS["mass_erase"])

    def erase_special_page(self):
        self.erase_page(SPROM, SPROM.base_address)

    def read_configuration(self):
        data = bytearray(CONFIG_LEN)
        self.read_region(CONFIG, CONFIG.base_address, CONFIG_LEN, data)
        return bytes(data)

    def write_configuration(self, data):
        if len(data) != CONFIG_LEN:
            raise ValueError(f"configuration record must be {CONFIG_LEN} bytes, "
                             f"not {len(data)}")
        self._command("write configuration", CONFIG.write_opcode, CONFIG.base_address)
        self.session.mark_programming()
        self._log("write configuration data=<%s>", dump_hex(data))
        self._write_bytes(bytes(data), TIMINGS["config_write"])

    def erase_configuration(self):
        self.erase_page(CONFIG, CONFIG.base_address, timing=TIMINGS["config_erase"])

    def verify_region(self, region, address, expected):
        """Read back ``region`` at ``address`` and compare it with ``expected``. Raises
        :class:`VerificationError` at the first byte that differs."""
        actual = bytearray(len(expected))
        self.read_region(region, address, len(expected), actual)
        if actual != expected:
            for offset, (expected_byte, actual_byte) in enumerate(zip(expected, actual)):
                if expected_byte != actual_byte:
                    raise VerificationError(address + offset, expected_byte, actual_byte)
        self._log("verified %s address=%#07x length=%#x", region.name, address, len(expected))
