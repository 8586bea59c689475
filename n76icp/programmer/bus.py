import logging

from bitarray.util import int2ba

from ..support.logging import *
from ..gpio import *


__all__ = ["ICPBus"]


class ICPBus:
    """
    Bit and byte transport over the DAT and CLK lines.

    CLK idles low; the target samples DAT on the rising edge and bits are shifted MSB first.
    Every byte is followed by a ninth clock carrying the end-of-transfer flag, driven by the host
    in both directions of transfer.
    """

    def __init__(self, logger: logging.Logger, lines: LineDriver):
        self._logger = logger
        self._level  = logging.DEBUG if self._logger.name == __name__ else logging.TRACE
        self.lines   = lines
        self._dat_output = None

    def _log(self, message, *args):
        self._logger.log(self._level, "ICP bus: " + message, *args)

    def _dat_direction(self, direction):
        if self._dat_output != (direction == Direction.Output):
            self.lines.set_direction(Line.DAT, direction)
            self._dat_output = (direction == Direction.Output)

    def _clock(self):
        self.lines.set_level(Line.CLK, 1)
        self.lines.set_level(Line.CLK, 0)

    def send_bits(self, value, count):
        bits = int2ba(value & ((1 << count) - 1), count, endian="big")
        self._log("send bits=%s", dump_bin(bits))
        self._dat_direction(Direction.Output)
        for bit in bits:
            self.lines.set_level(Line.DAT, bit)
            self._clock()

    def read_byte(self, end):
        self._dat_direction(Direction.Input)
        data = 0
        for index in reversed(range(8)):
            bit = self.lines.get_level(Line.DAT)
            self._clock()
            data |= bit << index

        self._dat_direction(Direction.Output)
        self.lines.set_level(Line.DAT, int(bool(end)))
        self._clock()
        self.lines.set_level(Line.DAT, 0)

        self._log("read byte=%02x end=%d", data, bool(end))
        return data

    def write_byte(self, value, end, setup_us, hold_us):
        """Shift out ``value`` and latch it with the end-of-transfer clock.

        ``setup_us`` elapses between driving the end-of-transfer flag and raising CLK;
        ``hold_us`` is how long CLK stays high while the target commits the byte.
        """
        self._log("write byte=%02x end=%d setup=%dus hold=%dus",
                  value, bool(end), setup_us, hold_us)
        self.send_bits(value, 8)
        self.lines.set_level(Line.DAT, int(bool(end)))
        self.lines.delay_us(setup_us)
        self.lines.set_level(Line.CLK, 1)
        self.lines.delay_us(hold_us)
        self.lines.set_level(Line.DAT, 0)
        self.lines.set_level(Line.CLK, 0)
