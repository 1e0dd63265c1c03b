import struct
from dataclasses import field, fields
from enum import Enum
from typing import List, Type, TypeVar

from classic.debug_console import DebugConsole

T = TypeVar("T", bound="Decodable")


class MemoryType(Enum):
    OWNED = "owned"  # reader holds the only reference to its buffer
    SHARED = "shared"  # borrowed view over a buffer owned elsewhere


def fmt(code):
    """Declare a struct field: a `struct` format code or a nested Decodable class."""
    return field(metadata={"fmt": code})


class Decodable:
    """
    Mixin for dataclasses whose fields are declared with `fmt(...)`.

    The dataclass field order is the on-disk order, so each record layout is
    written down exactly once and decoded field by field.
    """

    _layout_cache = None

    @classmethod
    def layout(cls):
        cached = cls.__dict__.get("_layout_cache")
        if cached is None:
            cached = [(f.name, f.metadata["fmt"]) for f in fields(cls) if "fmt" in f.metadata]
            cls._layout_cache = cached
        return cached

    @classmethod
    def size(cls) -> int:
        total = 0
        for _, code in cls.layout():
            if isinstance(code, type) and issubclass(code, Decodable):
                total += code.size()
            else:
                total += struct.calcsize("<" + code)
        return total

    @classmethod
    def decode(cls: Type[T], reader: "BinaryReader") -> T:
        return cls(**{name: reader.read_field(code) for name, code in cls.layout()})


class BinaryReader:
    def __init__(self, data, endian="<", memory_type=MemoryType.OWNED):
        self.memory_type = memory_type
        if memory_type is MemoryType.OWNED:
            self.data = bytes(data)
        else:
            self.data = memoryview(data)
        self.endian = endian
        self.cursor = 0
        self.past_end_reads = 0

    @classmethod
    def empty(cls, endian="<"):
        """Reader over nothing; every read reports a past-end condition."""
        return cls(b"", endian=endian, memory_type=MemoryType.SHARED)

    @property
    def size(self):
        return len(self.data)

    def __bool__(self):
        return self.size > 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        if self.memory_type is MemoryType.SHARED and isinstance(self.data, memoryview):
            self.data.release()
        self.data = b""
        self.cursor = 0

    def read_bytes(self, num_bytes):
        num_bytes = max(num_bytes, 0)
        end = self.cursor + num_bytes
        if end <= self.size:
            data = bytes(self.data[self.cursor:end])
            self.cursor = end
            return data

        available = bytes(self.data[self.cursor:self.size])
        self.cursor = self.size
        self.past_end_reads += 1
        DebugConsole.error(
            f"Read past end: wanted {num_bytes} bytes, only {len(available)} left"
        )
        # Missing tail is zero-filled so fixed-size decodes still succeed
        return available + bytes(num_bytes - len(available))

    def read_struct(self, fmt, num_bytes=None):
        if num_bytes is None:
            num_bytes = struct.calcsize(self.endian + fmt)
        return struct.unpack(self.endian + fmt, self.read_bytes(num_bytes))

    def read_u8(self):
        return self.read_struct("B", 1)[0]

    def read_i8(self):
        return self.read_struct("b", 1)[0]

    def read_u16(self):
        return self.read_struct("H", 2)[0]

    def read_i16(self):
        return self.read_struct("h", 2)[0]

    def read_u32(self):
        return self.read_struct("I", 4)[0]

    def read_i32(self):
        return self.read_struct("i", 4)[0]

    def read_f32(self):
        return self.read_struct("f", 4)[0]

    def read_cstring(self):
        remaining = bytes(self.data[self.cursor:self.size])
        length = remaining.find(b"\0")
        if length == -1:
            length = len(remaining)
        self.cursor = min(self.cursor + length + 1, self.size)
        return remaining[:length].decode("utf-8", errors="ignore")

    def read_field(self, code):
        if isinstance(code, type) and issubclass(code, Decodable):
            return code.decode(self)
        values = self.read_struct(code)
        return values[0] if len(values) == 1 else values

    def tell(self):
        return self.cursor

    def seek(self, offset):
        # Cursor never leaves [0, size]; a bogus offset just makes later reads fail soft
        self.cursor = min(max(offset, 0), self.size)
        return self.cursor

    def is_eof(self):
        return self.cursor >= self.size

    def get(self, cls: Type[T]) -> T:
        return cls.decode(self)

    def get_at(self, cls: Type[T], pos) -> T:
        self.seek(pos)
        return cls.decode(self)

    def get_bytes_at(self, pos, num_bytes):
        self.seek(pos)
        return self.read_bytes(num_bytes)

    def get_string_at(self, pos):
        self.seek(pos)
        return self.read_cstring()

    def get_vector(self, cls: Type[T], count, pos=None) -> List[T]:
        if pos is not None:
            self.seek(pos)
        count = max(count, 0)
        fits = (self.size - self.cursor) // cls.size()
        if count > fits:
            # Corrupt counts must not turn into billions of zero records
            self.past_end_reads += 1
            DebugConsole.error(
                f"Read past end: {count} x {cls.__name__} requested, only {fits} fit"
            )
            count = fits
        return [cls.decode(self) for _ in range(count)]
