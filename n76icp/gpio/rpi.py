# Raspberry Pi GPIO backend. The default pins are on the 40-pin J8 header:
#
#                            40-pin header J8
#   connect 3.3V of MCU ->    3V3  (1) (2)  5V
#                                  [...]
#          connect CLK ->  GPIO26 (37) (38) GPIO20 <- connect DAT
#          connect GND ->     GND (39) (40) GPIO21 <- connect RST

from contextlib import contextmanager
import logging
import time

import RPi.GPIO as GPIO

from . import *


__all__ = ["RPiLineDriver"]


# Delays shorter than this are busy-waited; `time.sleep()` overshoots them by far too much.
_SPIN_THRESHOLD_US = 2_000


class RPiLineDriver(LineDriver):
    def __init__(self, logger: logging.Logger, *, dat: int = 20, clk: int = 26, rst: int = 21):
        self._logger = logger
        self._level  = logging.DEBUG if self._logger.name == __name__ else logging.TRACE
        self._pins   = {Line.DAT: dat, Line.CLK: clk, Line.RST: rst}
        self._opened = False

    def _log(self, message, *args):
        self._logger.log(self._level, "RPi GPIO: " + message, *args)

    @contextmanager
    def _gpio(self, action):
        try:
            yield
        except (RuntimeError, ValueError) as e:
            raise LineFault(f"{action} failed: {e}") from e

    def open(self):
        self._log("acquire dat=%d clk=%d rst=%d",
                  self._pins[Line.DAT], self._pins[Line.CLK], self._pins[Line.RST])
        with self._gpio("requesting lines"):
            GPIO.setwarnings(False)
            GPIO.setmode(GPIO.BCM)
            GPIO.setup(self._pins[Line.DAT], GPIO.IN)
            GPIO.setup(self._pins[Line.RST], GPIO.OUT, initial=GPIO.LOW)
            GPIO.setup(self._pins[Line.CLK], GPIO.OUT, initial=GPIO.LOW)
        self._opened = True

    def close(self):
        if not self._opened:
            return
        self._log("release")
        self._opened = False
        with self._gpio("releasing lines"):
            try:
                GPIO.output(self._pins[Line.RST], GPIO.HIGH)
            finally:
                GPIO.cleanup(list(self._pins.values()))

    def set_direction(self, line, direction):
        with self._gpio(f"setting {line} direction"):
            if direction == Direction.Output:
                GPIO.setup(self._pins[line], GPIO.OUT, initial=GPIO.LOW)
            else:
                GPIO.setup(self._pins[line], GPIO.IN)

    def set_level(self, line, level):
        with self._gpio(f"setting {line} line"):
            GPIO.output(self._pins[line], GPIO.HIGH if level else GPIO.LOW)

    def get_level(self, line):
        with self._gpio(f"getting {line} line"):
            return 1 if GPIO.input(self._pins[line]) else 0

    def delay_us(self, delay):
        if delay >= _SPIN_THRESHOLD_US:
            time.sleep(delay / 1_000_000)
        else:
            deadline = time.perf_counter_ns() + delay * 1_000
            while time.perf_counter_ns() < deadline:
                pass
