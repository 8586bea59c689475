from vcd import VCDWriter

from . import *


__all__ = ["VCDLineDriver"]


class VCDLineDriver(LineDriver):
    """
    Records the activity on the lines of another driver as a VCD waveform.

    Timestamps are in protocol time rather than wall clock time: every requested delay advances
    the timestamp by its duration, and every line operation advances it by one microsecond, so
    that each clock pulse remains visible. Levels sampled on DAT while it is an input are
    recorded as well.
    """

    def __init__(self, lower: LineDriver, file):
        self.lower      = lower
        self._file      = file
        self._writer    = None
        self._signals   = {}
        self._timestamp = 0

    def open(self):
        self.lower.open()
        self._timestamp = 0
        self._writer    = VCDWriter(self._file, timescale="1 us", check_values=False)
        for line, init in ((Line.DAT, "z"), (Line.CLK, 0), (Line.RST, 0)):
            self._signals[line] = self._writer.register_var(
                scope="icp", name=line.value, var_type="wire", size=1, init=init)
        self._signals["dat_oe"] = self._writer.register_var(
            scope="icp", name="dat_oe", var_type="wire", size=1, init=0)

    def close(self):
        try:
            self.lower.close()
        finally:
            if self._writer is not None:
                self._tick()
                self._writer.close(self._timestamp)
                self._writer = None

    def _tick(self, delay=1):
        self._timestamp += delay

    def _change(self, signal, value):
        if self._writer is not None:
            self._writer.change(self._signals[signal], self._timestamp, value)

    def set_direction(self, line, direction):
        self.lower.set_direction(line, direction)
        self._tick()
        if line == Line.DAT:
            self._change("dat_oe", int(direction == Direction.Output))
        self._change(line, 0 if direction == Direction.Output else "z")

    def set_level(self, line, level):
        self.lower.set_level(line, level)
        self._tick()
        self._change(line, int(bool(level)))

    def get_level(self, line):
        level = self.lower.get_level(line)
        self._tick()
        self._change(line, level)
        return level

    def delay_us(self, delay):
        self.lower.delay_us(delay)
        self._tick(delay)
