"""
Classic data access: loose files under a data root, then BIG archives.

Asset paths are always relative ("r1/mothership/rl0/lod0/mothership.peo").
Every file is read whole into memory before decoding.
"""
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional

from classic.binary_reader import BinaryReader, MemoryType
from classic.classic_formats import BIG_MAGIC, BigCompression, BigFileEntry, BigHeader
from classic.debug_console import DebugConsole


def normalize_path(path) -> str:
    return str(path).replace("\\", "/").lstrip("/").lower()


# ==============================================================================
# 1. LZSS
# ==============================================================================
class BitReader:
    """MSB-first bit reader over a byte buffer."""

    def __init__(self, data, pos=0):
        self.data = data
        self.pos = pos
        self.stage = 0
        self.remaining = 0

    def read_bits(self, n):
        while n > self.remaining:
            if self.pos >= len(self.data):
                raise EOFError("LZSS stream ended without an end marker")
            next_byte = self.data[self.pos]
            self.pos += 1
            self.stage |= next_byte << (24 - self.remaining)
            self.remaining += 8
        value = (self.stage >> (32 - n)) & ((1 << n) - 1)
        self.stage = (self.stage << n) & 0xFFFFFFFF
        self.remaining -= n
        return value


LZSS_INDEX_BITS = 12
LZSS_LENGTH_BITS = 4
LZSS_BREAK_EVEN = (1 + LZSS_INDEX_BITS + LZSS_LENGTH_BITS) // 9


def lzss_decompress(data, real_length=None) -> bytes:
    window_mask = (1 << LZSS_INDEX_BITS) - 1
    window = bytearray(1 << LZSS_INDEX_BITS)
    current_position = 1
    reader = BitReader(data)
    out = bytearray()

    try:
        while True:
            if reader.read_bits(1) == 1:
                c = reader.read_bits(8)
                out.append(c)
                window[current_position] = c
                current_position = (current_position + 1) & window_mask
            else:
                match_position = reader.read_bits(LZSS_INDEX_BITS)
                if match_position == 0:
                    break
                match_length = reader.read_bits(LZSS_LENGTH_BITS) + LZSS_BREAK_EVEN
                for i in range(match_length + 1):
                    c = window[(match_position + i) & window_mask]
                    out.append(c)
                    window[current_position] = c
                    current_position = (current_position + 1) & window_mask
    except EOFError as e:
        DebugConsole.error(str(e))

    if real_length is not None:
        if len(out) < real_length:
            DebugConsole.warn(f"LZSS produced {len(out)} bytes, expected {real_length}")
        del out[real_length:]
    return bytes(out)


# ==============================================================================
# 2. BIG Archives
# ==============================================================================
NAME_MASK_SEED = 213


def decrypt_name(raw: bytes) -> str:
    mask = NAME_MASK_SEED
    out = bytearray()
    for b in raw:
        letter = b ^ mask
        out.append(letter)
        mask = letter
    return out.decode("utf-8", errors="ignore")


@dataclass
class BigEntry:
    name: str
    stored_length: int
    real_length: int
    data_offset: int
    compressed: bool


class BigFile:
    def __init__(self, filepath):
        self.filepath = Path(filepath)
        if not self.filepath.exists():
            raise FileNotFoundError(f"File not found: {self.filepath}")
        self.data = self.filepath.read_bytes()
        self.toc: Dict[str, BigEntry] = {}
        self._read_toc()

    def _read_toc(self):
        reader = BinaryReader(self.data, memory_type=MemoryType.SHARED)
        header = reader.get(BigHeader)
        if header.magic != BIG_MAGIC:
            raise ValueError(f"{self.filepath.name} is not a valid BIG archive.")

        entries = reader.get_vector(BigFileEntry, header.num_files)
        for entry in entries:
            if entry.compression_type not in (BigCompression.Stored, BigCompression.Lzss):
                DebugConsole.warn(
                    f"{self.filepath.name}: unknown compression type {entry.compression_type}, skipping entry"
                )
                continue
            raw_name = reader.get_bytes_at(entry.offset, entry.name_length)
            name = decrypt_name(raw_name)
            self.toc[normalize_path(name)] = BigEntry(
                name=name,
                stored_length=entry.stored_length,
                real_length=entry.real_length,
                data_offset=entry.offset + entry.name_length + 1,
                compressed=entry.compression_type == BigCompression.Lzss,
            )
        reader.close()
        DebugConsole.info(f"Indexed {len(self.toc)} files in {self.filepath.name}")

    def names(self) -> List[str]:
        return sorted(self.toc)

    def open(self, filename) -> Optional[bytes]:
        entry = self.toc.get(normalize_path(filename))
        if entry is None:
            return None
        stored = self.data[entry.data_offset:entry.data_offset + entry.stored_length]
        if entry.compressed:
            return lzss_decompress(stored, entry.real_length)
        return bytes(stored)


# ==============================================================================
# 3. Classic File System
# ==============================================================================
class ClassicFS:
    def __init__(self, data_root=None, big_files: Iterable = ()):
        self.data_root = Path(data_root) if data_root else None
        self.archives = [b if isinstance(b, BigFile) else BigFile(b) for b in big_files]

    def _loose_path(self, path) -> Optional[Path]:
        if self.data_root is None:
            return None
        return self.data_root.joinpath(*PurePosixPath(str(path).replace("\\", "/")).parts)

    def read(self, path) -> Optional[bytes]:
        loose = self._loose_path(path)
        if loose is not None and loose.is_file():
            try:
                return loose.read_bytes()
            except OSError as e:
                DebugConsole.error(f"File {path} could not be read: {e}")
                return None
        for archive in self.archives:
            data = archive.open(path)
            if data is not None:
                return data
        return None

    def exists(self, path) -> bool:
        loose = self._loose_path(path)
        if loose is not None and loose.is_file():
            return True
        return any(normalize_path(path) in archive.toc for archive in self.archives)

    def load(self, path, endian="<") -> BinaryReader:
        data = self.read(path)
        if data is None:
            DebugConsole.error(f"File {path} could not be opened")
            return BinaryReader.empty(endian)
        return BinaryReader(data, endian=endian, memory_type=MemoryType.OWNED)
