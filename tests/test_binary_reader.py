import logging
import struct

import pytest

from classic.binary_reader import BinaryReader, MemoryType
from classic.classic_formats import (
    BigFileEntry,
    GeoHeader,
    LifHeader,
    MaterialEntry,
    PolyEntry,
    PolygonObject,
    TextureListElement,
    TextureListHeader,
    VertexEntry,
)
from conftest import messages


@pytest.mark.parametrize("endian", ["<", ">"])
@pytest.mark.parametrize(
    "code, reader_name, value",
    [
        ("B", "read_u8", 0xFE),
        ("b", "read_i8", -100),
        ("H", "read_u16", 0xBEEF),
        ("h", "read_i16", -12345),
        ("I", "read_u32", 0xDEADBEEF),
        ("i", "read_i32", -123456789),
    ],
)
def test_integers_round_trip_in_either_endianness(endian, code, reader_name, value):
    reader = BinaryReader(struct.pack(endian + code, value), endian=endian)
    assert getattr(reader, reader_name)() == value
    assert reader.is_eof()
    assert reader.past_end_reads == 0


def test_big_endian_reader_swaps_bytes():
    reader = BinaryReader(b"\x00\x00\x01\x02", endian=">")
    assert reader.read_u32() == 0x0102
    reader.seek(0)
    reader.endian = "<"
    assert reader.read_u32() == 0x02010000


def test_read_past_end_is_clamped_and_reported_once(classic_logs):
    reader = BinaryReader(b"\x01\x02\x03\x04\x05")
    reader.read_bytes(4)
    data = reader.read_bytes(4)

    assert data == b"\x05\x00\x00\x00"
    assert reader.cursor == 5
    assert reader.past_end_reads == 1
    assert len([m for m in messages(classic_logs, logging.ERROR) if "Read past end" in m]) == 1


def test_empty_reader_reports_every_read():
    reader = BinaryReader.empty()
    assert not reader
    assert reader.memory_type is MemoryType.SHARED
    assert reader.read_u32() == 0
    assert reader.read_u16() == 0
    assert reader.past_end_reads == 2
    assert reader.cursor == 0


def test_read_cstring_stops_at_terminator_or_buffer_end():
    reader = BinaryReader(b"hull\0abc")
    assert reader.read_cstring() == "hull"
    assert reader.cursor == 5
    assert reader.read_cstring() == "abc"
    assert reader.cursor == 8
    assert reader.past_end_reads == 0


def test_get_string_at_relocates_cursor():
    reader = BinaryReader(b"\0\0\0\0name\0")
    assert reader.get_string_at(4) == "name"
    assert reader.tell() == 9


def test_seek_is_clamped_to_buffer():
    reader = BinaryReader(b"1234")
    assert reader.seek(100) == 4
    assert reader.seek(-3) == 0


@pytest.mark.parametrize(
    "record, size",
    [
        (GeoHeader, 68),
        (PolygonObject, 112),
        (PolyEntry, 40),
        (VertexEntry, 16),
        (MaterialEntry, 32),
        (LifHeader, 48),
        (TextureListHeader, 28),
        (TextureListElement, 32),
        (BigFileEntry, 32),
    ],
)
def test_record_sizes_match_file_layout(record, size):
    assert record.size() == size


def test_declared_fields_decode_in_order():
    reader = BinaryReader(struct.pack("<3fI", 1.0, 2.0, 3.0, 7))
    v = reader.get(VertexEntry)
    assert v.position == (1.0, 2.0, 3.0)
    assert v.normal_index == 7


def test_get_at_and_get_vector():
    payload = b"\xff" * 4 + struct.pack("<3fI3fI", 1, 2, 3, 4, 5, 6, 7, 8)
    reader = BinaryReader(payload)
    assert reader.get_at(VertexEntry, 20).normal_index == 8
    entries = reader.get_vector(VertexEntry, 2, 4)
    assert [e.normal_index for e in entries] == [4, 8]


def test_get_vector_truncates_oversized_counts(classic_logs):
    reader = BinaryReader(struct.pack("<3fI", 0, 0, 0, 1) + b"\0" * 5)
    entries = reader.get_vector(VertexEntry, 1_000_000)
    assert len(entries) == 1
    assert reader.past_end_reads == 1


def test_shared_reader_borrows_and_releases():
    buffer = bytearray(b"\x2a\x00\x00\x00")
    reader = BinaryReader(buffer, memory_type=MemoryType.SHARED)
    buffer[0] = 0x2b
    assert reader.read_u32() == 0x2b
    reader.close()
    assert reader.size == 0
    buffer.append(0)  # no export left after close


def test_owned_reader_context_manager_releases_buffer():
    with BinaryReader(b"abcd") as reader:
        assert reader.read_bytes(2) == b"ab"
    assert reader.size == 0
