import enum
import logging

from bitarray.util import int2ba

from ..gpio import *
from ..protocol.icp import *
from .bus import ICPBus


__all__ = ["ICPError", "ICPStateError", "Mode", "ICPSession"]


class ICPError(Exception):
    pass


class ICPStateError(ICPError):
    pass


class Mode(enum.Enum):
    Idle        = "idle"
    Entered     = "entered"
    Programming = "programming"
    Exited      = "exited"

    def __str__(self):
        return self.value

    @property
    def active(self):
        return self in (Mode.Entered, Mode.Programming)


class ICPSession:
    """
    Programming mode state machine of a single target.

    ``Idle → Entered → Programming → Exited``; ``Programming`` is entered once an erase or
    a write has been issued, and :meth:`reinitialize` returns to ``Entered``. The session
    owns the line driver for its lifetime; entering the session as a context manager enters
    programming mode and guarantees that it is exited.
    """

    def __init__(self, logger: logging.Logger, lines: LineDriver):
        self._logger  = logger
        self._level   = logging.DEBUG if self._logger.name == __name__ else logging.TRACE
        self.lines    = lines
        self.bus      = ICPBus(logger, lines)
        self.mode     = Mode.Idle
        self.identity = None

    def _log(self, message, *args):
        self._logger.log(self._level, "ICP: " + message, *args)

    def _transition(self, new_mode):
        self._log("mode %s → %s", self.mode, new_mode)
        self.mode = new_mode

    def require_active(self, operation):
        if not self.mode.active:
            raise ICPStateError(f"cannot {operation} in {self.mode} mode; "
                                f"programming mode must be entered first")

    def mark_programming(self):
        if self.mode == Mode.Entered:
            self._transition(Mode.Programming)

    def enter(self):
        if self.mode != Mode.Idle:
            raise ICPStateError(f"cannot enter programming mode in {self.mode} mode")
        self._log("enter")
        for bit in int2ba(ENTRY_PATTERN, ENTRY_PATTERN_BITS, endian="big"):
            self.lines.set_level(Line.RST, bit)
            self.lines.delay_us(ENTRY_TICK_US)
        self.lines.delay_us(ENTRY_SETTLE_US)
        self.bus.send_bits(UNLOCK_WORD, COMMAND_BITS)
        self._transition(Mode.Entered)

    def reinitialize(self):
        self.require_active("reinitialize")
        self._log("reinitialize")
        self.lines.set_level(Line.RST, 1)
        self.lines.delay_us(RESET_HOLD_US)
        self.lines.set_level(Line.RST, 0)
        self.lines.delay_us(RESET_RELEASE_US)
        self.bus.send_bits(UNLOCK_WORD, COMMAND_BITS)
        self.lines.delay_us(UNLOCK_SETTLE_US)
        self._transition(Mode.Entered)

    def exit(self):
        if not self.mode.active:
            raise ICPStateError(f"cannot exit programming mode in {self.mode} mode")
        self._log("exit")
        self.lines.set_level(Line.RST, 1)
        self.lines.delay_us(RESET_HOLD_US)
        self.lines.set_level(Line.RST, 0)
        self.lines.delay_us(EXIT_RELEASE_US)
        self.bus.send_bits(EXIT_PATTERN, COMMAND_BITS)
        self.lines.delay_us(EXIT_SETTLE_US)
        self.lines.set_level(Line.RST, 1)
        self._transition(Mode.Exited)

    def __enter__(self):
        self.enter()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if not self.mode.active:
            return
        if isinstance(exc_value, LineFault):
            # The lines are unusable; releasing them is all that can be done.
            self._transition(Mode.Exited)
        else:
            self.exit()
