from bitarray import bitarray
from bitarray.util import int2ba


__all__ = ["dump_hex", "dump_bin"]


class _lazy_str:
    """
    A wrapper that delays formatting until the log record is actually emitted. Protocol logging
    happens on every byte, and most of it is filtered out at the default verbosity.
    """

    __slots__ = ["_thunk", "_value"]

    def __init__(self, thunk):
        self._thunk = thunk
        self._value = None

    def __str__(self):
        if self._thunk is not None:
            self._value = self._thunk()
            self._thunk = None
        return self._value

    def __repr__(self):
        return f"<lazy {str(self)!r}>"


def dump_hex(data):
    def to_hex(data):
        try:
            data = memoryview(data)
        except TypeError:
            data = memoryview(bytes(data))
        if dump_hex.limit is None or len(data) < dump_hex.limit:
            return data.hex()
        else:
            return "{}... ({} bytes total)".format(
                data[:dump_hex.limit].hex(), len(data))
    return _lazy_str(lambda: to_hex(data))

dump_hex.limit = 64


def dump_bin(value, length=None):
    def to_bin(value):
        if isinstance(value, bitarray):
            data = value
        elif isinstance(value, int):
            data = int2ba(value, length)
        else:
            data = bitarray(endian="big")
            data.frombytes(bytes(value))
        if dump_bin.limit is None or len(data) < dump_bin.limit:
            return data.to01()
        else:
            return "{}... ({} bits total)".format(
                data[:dump_bin.limit].to01(), len(data))
    return _lazy_str(lambda: to_bin(value))

dump_bin.limit = 64
