from abc import ABCMeta, abstractmethod
import enum


__all__ = ["LineFault", "Line", "Direction", "LineDriver"]


class LineFault(Exception):
    pass


class Line(enum.Enum):
    DAT = "dat"
    CLK = "clk"
    RST = "rst"

    def __str__(self):
        return self.value


class Direction(enum.Enum):
    Input  = "input"
    Output = "output"

    def __str__(self):
        return self.value


class LineDriver(metaclass=ABCMeta):
    """
    Three digital I/O lines connected to the ICP pins of the target.

    A driver is acquired with ``open()`` (or by entering it as a context manager) and leaves
    the lines in their idle state: DAT as input, CLK and RST as outputs driven low. ``close()``
    releases RST so that the target runs, and then releases the lines. Every method raises
    :class:`LineFault` if the underlying I/O fails.
    """

    def open(self):
        pass

    def close(self):
        pass

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    @abstractmethod
    def set_direction(self, line: Line, direction: Direction):
        """Configure ``line`` as an input or as an output initially driving 0."""
        raise NotImplementedError

    @abstractmethod
    def set_level(self, line: Line, level: int):
        raise NotImplementedError

    @abstractmethod
    def get_level(self, line: Line) -> int:
        raise NotImplementedError

    @abstractmethod
    def delay_us(self, delay: int):
        """Block for at least ``delay`` microseconds."""
        raise NotImplementedError
