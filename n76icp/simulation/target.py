import enum
import logging

from ..gpio import *
from ..protocol.icp import *
from ..database.nuvoton.n76 import *


__all__ = ["SimulatedN76"]


logger = logging.getLogger(__name__)


class _State(enum.Enum):
    RUN     = "run"      # executing firmware; watching ~RST for the entry pattern
    ARMED   = "armed"    # expecting the unlock or exit word
    COMMAND = "command"  # expecting a command word
    READ    = "read"     # shifting bytes out
    WRITE   = "write"    # shifting bytes in
    HELD    = "held"     # ~RST asserted while in programming mode
    EXITING = "exiting"  # exit word received, waiting for ~RST to be released


# Minimum settle delays of the terminating clock of a write, checked by the model.
_WRITE_TIMINGS = {
    Opcode.BYTE_WRITE: TIMINGS["write"],
    Opcode.PAGE_ERASE: TIMINGS["page_erase"],
    Opcode.MASS_ERASE: TIMINGS["mass_erase"],
}


class SimulatedN76(LineDriver):
    """
    Line level model of an N76E003/MS51 target, usable in place of a real line driver.

    Time is virtual: ``delay_us()`` advances ``time_us`` and returns immediately, and every
    requested delay is appended to ``delays``. Commands are decoded on the rising edge of CLK,
    exactly as the silicon samples them, and recorded in ``commands``. Writes whose clock
    timing is shorter than the target requires are dropped and recorded in ``violations``.

    Flash behaves like NOR cells: erasing sets bytes to 0xff, and writing can only clear bits.
    """

    def __init__(self, device=devices_by_name["n76e003"], *, flash_size=None,
                 company_id=NUVOTON_CID, unique_id=bytes(range(0x10, 0x1c))):
        self.device     = device
        self.company_id = company_id
        self.unique_id  = bytes(unique_id)
        self.flash      = bytearray(b"\xff" * (flash_size or device.flash_size))
        self.sprom      = bytearray(b"\xff" * SPROM.length)
        self.config     = bytearray(b"\xff" * CONFIG_LEN)

        self.time_us    = 0
        self.delays     = []
        self.commands   = []
        self.violations = []

        self._state     = _State.RUN
        self._host_oe   = False
        self._levels    = {Line.DAT: 0, Line.CLK: 0, Line.RST: 0}
        self._opened    = False

        self._rst_shift = 0
        self._rst_time  = None
        self._dat_time  = 0
        self._rise_time = 0

        self._shift     = 0
        self._count     = 0
        self._opcode    = None
        self._address   = 0
        self._source    = None
        self._index     = 0
        self._byte      = 0
        self._end       = False
        self._setup     = 0
        self._latched   = False

    @property
    def in_programming_mode(self):
        return self._state not in (_State.RUN, _State.EXITING)

    @property
    def running(self):
        return self._state == _State.RUN

    # LineDriver interface

    def open(self):
        self._opened  = True
        self._host_oe = False
        self._levels[Line.CLK] = 0
        self._set_rst(0)

    def close(self):
        if self._opened:
            self._set_rst(1)
            self._opened  = False
            self._host_oe = False

    def _check_open(self):
        if not self._opened:
            raise LineFault("lines are not acquired")

    def set_direction(self, line, direction):
        self._check_open()
        if line != Line.DAT:
            if direction != Direction.Output:
                raise LineFault(f"{line} line must remain an output")
            return
        self._host_oe = (direction == Direction.Output)
        if self._host_oe:
            self._levels[Line.DAT] = 0
            self._dat_time = self.time_us

    def set_level(self, line, level):
        self._check_open()
        level = int(bool(level))
        if line == Line.DAT:
            if not self._host_oe:
                raise LineFault("data line is not configured as an output")
            self._levels[Line.DAT] = level
            self._dat_time = self.time_us
        elif line == Line.CLK:
            previous, self._levels[Line.CLK] = self._levels[Line.CLK], level
            if level and not previous:
                self._clock_rise()
            elif previous and not level:
                self._clock_fall()
        elif line == Line.RST:
            self._set_rst(level)

    def get_level(self, line):
        self._check_open()
        if line == Line.DAT and not self._host_oe:
            if self._state == _State.READ and self._count < 8:
                return (self._byte >> (7 - self._count)) & 1
            return 1 # pull-up
        return self._levels[line]

    def delay_us(self, delay):
        self.delays.append(delay)
        self.time_us += delay

    # Reset

    def _set_rst(self, level):
        previous, self._levels[Line.RST] = self._levels[Line.RST], level

        if self._state == _State.RUN:
            if self._rst_time is not None and self.time_us - self._rst_time < ENTRY_TICK_US:
                self._rst_shift = 0
            self._rst_time  = self.time_us
            self._rst_shift = ((self._rst_shift << 1) | level) & ((1 << ENTRY_PATTERN_BITS) - 1)
            if self._rst_shift == ENTRY_PATTERN:
                logger.debug("sim: entry pattern received")
                self._rst_shift = 0
                self._arm()
        elif self._state == _State.EXITING:
            if level:
                logger.debug("sim: running firmware")
                self._state    = _State.RUN
                self._rst_time = None
        elif level and not previous:
            self._state = _State.HELD
        elif previous and not level and self._state == _State.HELD:
            self._arm()

    def _arm(self):
        self._state = _State.ARMED
        self._shift = self._count = 0

    # Clock

    def _clock_rise(self):
        self._rise_time = self.time_us
        if self._state in (_State.ARMED, _State.COMMAND):
            if not self._host_oe:
                return
            self._shift  = (self._shift << 1) | self._levels[Line.DAT]
            self._count += 1
            if self._count == COMMAND_BITS:
                word, self._shift, self._count = self._shift, 0, 0
                if self._state == _State.ARMED:
                    self._unlock(word)
                else:
                    self._decode(word)
        elif self._state == _State.READ:
            if self._count < 8:
                self._count += 1
            elif self._host_oe:
                self._end_of_byte(self._levels[Line.DAT])
        elif self._state == _State.WRITE:
            if not self._host_oe:
                return
            if self._count < 8:
                self._byte   = ((self._byte << 1) | self._levels[Line.DAT]) & 0xff
                self._count += 1
            else:
                self._end     = bool(self._levels[Line.DAT])
                self._setup   = self.time_us - self._dat_time
                self._latched = True

    def _clock_fall(self):
        if self._state == _State.WRITE and self._latched:
            hold = self.time_us - self._rise_time
            self._commit(self._setup, hold)
            self._end_of_byte(self._end)

    def _unlock(self, word):
        if word == UNLOCK_WORD:
            logger.debug("sim: unlocked")
            self._state = _State.COMMAND
        elif word == EXIT_PATTERN:
            logger.debug("sim: exit pattern received")
            self._state = _State.EXITING
        else:
            logger.debug("sim: ignoring word %06x", word)
            self._state = _State.RUN

    # Commands

    def _decode(self, word):
        opcode, operand = decode_single_operand(word)
        self.commands.append((opcode, operand))
        self._opcode, self._address = opcode, operand
        self._count, self._byte, self._latched = 0, 0, False

        if opcode == Opcode.READ_CID:
            self._start_read(lambda index: self.company_id if index == 0 else 0xff)
        elif opcode == Opcode.READ_DEVICE_ID:
            device_id = self.device.device_id.to_bytes(2, "little")
            self._start_read(lambda index: device_id[index] if index < 2 else 0xff)
        elif opcode == Opcode.READ_UID:
            self._start_read(lambda index: self.unique_id[index]
                                           if index < len(self.unique_id) else 0xff)
        elif opcode == Opcode.BYTE_READ:
            self._start_read(lambda index: self._read_cell(operand + index))
        elif opcode in (Opcode.BYTE_WRITE, Opcode.PAGE_ERASE, Opcode.MASS_ERASE):
            self._state = _State.WRITE
        else:
            logger.debug("sim: unknown command %06x", word)
            self._state = _State.COMMAND

    def _start_read(self, source):
        self._state  = _State.READ
        self._source = source
        self._index  = 0
        self._byte   = source(0)

    def _end_of_byte(self, end):
        self._count   = 0
        self._latched = False
        if end:
            self._state = _State.COMMAND
        elif self._state == _State.READ:
            self._index += 1
            self._byte   = self._source(self._index)
        else:
            self._address += 1
            self._byte     = 0

    def _locate(self, address):
        for base, memory in ((0, self.flash), (SPROM.base_address, self.sprom),
                             (CONFIG_ADDR, self.config)):
            if base <= address < base + len(memory):
                return memory, address - base
        return None, None

    def _read_cell(self, address):
        memory, offset = self._locate(address)
        if memory is None:
            return 0xff
        return memory[offset]

    def _commit(self, setup, hold):
        opcode = self._opcode
        required = _WRITE_TIMINGS[opcode]
        if opcode == Opcode.BYTE_WRITE and self._address >= CONFIG_ADDR:
            required = TIMINGS["config_write"]
        if setup < required.data_setup_us or hold < required.clock_hold_us:
            self.violations.append(
                f"{Opcode(opcode).name} at {self._address:#07x}: setup {setup}us hold {hold}us, "
                f"need {required.data_setup_us}us/{required.clock_hold_us}us")
            return

        if opcode == Opcode.BYTE_WRITE:
            self._write_cell(self._address, self._byte)
        elif opcode == Opcode.PAGE_ERASE:
            self._erase_page(self._address)
        elif opcode == Opcode.MASS_ERASE:
            if self._address != MASS_ERASE_KEY:
                self.violations.append(f"MASS_ERASE with wrong key {self._address:#07x}")
                return
            # SPROM survives a mass erase and has to be erased on its own.
            self.flash[:]  = b"\xff" * len(self.flash)
            self.config[:] = b"\xff" * CONFIG_LEN

    def _write_cell(self, address, value):
        memory, offset = self._locate(address)
        if memory is None:
            self.violations.append(f"BYTE_WRITE outside of memory at {address:#07x}")
        else:
            memory[offset] &= value

    def _erase_page(self, address):
        if CONFIG_ADDR <= address < CONFIG_ADDR + CONFIG.page_size:
            self.config[:] = b"\xff" * CONFIG_LEN
            return
        memory, offset = self._locate(address)
        if memory is None:
            self.violations.append(f"PAGE_ERASE outside of memory at {address:#07x}")
            return
        page_size = self.device.page_size
        page = offset - offset % page_size
        memory[page:page + page_size] = b"\xff" * len(memory[page:page + page_size])
