from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
import pyrr

from classic.binary_reader import Decodable, fmt


# ==========================================================================
# 1. ENUMS and Constants
# ==========================================================================
GEO_IDENTIFIERS = (b"RMF97ba\0", b"RMF99ba\0")
GEO_VERSION = 0x402

LIF_IDENTIFIER = b"Willy 7\0"
LIF_VERSION = 0x104
LIF_PALETTE_SIZE = 256

TEXTURE_LIST_IDENTIFIER = b"Event13\0"
TEXTURE_LIST_NAME = "textures.ll"

BIG_MAGIC = b"RBF1.23"


class MaterialFlags:
    Smoothing = 0x02
    DoubleSided = 0x08
    SelfIllum = 0x40


class TextureFlags:
    Paletted = 0x02
    Alpha = 0x08
    TeamColor0 = 0x10
    TeamColor1 = 0x20


class BigCompression:
    Stored = 0
    Lzss = 1


# ==============================================================================
# 2. Geo (mesh container) Records
# ==============================================================================
@dataclass
class GeoHeader(Decodable):
    identifier: bytes = fmt("8s")
    version: int = fmt("I")
    name_offset: int = fmt("I")
    file_size: int = fmt("I")  # not counting this header
    local_size: int = fmt("I")
    num_public_materials: int = fmt("I")
    num_local_materials: int = fmt("I")
    public_material_offset: int = fmt("I")
    local_material_offset: int = fmt("I")
    num_polygon_objects: int = fmt("I")
    reserved: bytes = fmt("24s")

    @property
    def num_materials(self):
        return self.num_public_materials + self.num_local_materials


@dataclass
class PolygonObject(Decodable):
    name_offset: int = fmt("I")
    flags: int = fmt("B")
    object_index: int = fmt("B")
    name_crc: int = fmt("H")
    num_vertices: int = fmt("i")
    num_face_normals: int = fmt("i")
    num_vertex_normals: int = fmt("i")
    num_polygons: int = fmt("i")
    vertex_list: int = fmt("I")
    normal_list: int = fmt("I")
    polygon_list: int = fmt("I")
    mother: int = fmt("I")  # file offsets of related PolygonObject records, 0 for none
    daughter: int = fmt("I")
    sister: int = fmt("I")
    local_matrix: Tuple[float, ...] = fmt("16f")

    @property
    def transform(self) -> pyrr.Matrix44:
        # Stored column-major; read row-wise it is the row-vector form pyrr uses
        return pyrr.Matrix44(np.array(self.local_matrix, dtype=np.float32).reshape(4, 4))


@dataclass
class PolyEntry(Decodable):
    face_normal_index: int = fmt("I")
    vertex_indices: Tuple[int, int, int] = fmt("3H")
    material_index: int = fmt("H")
    uv: Tuple[float, ...] = fmt("6f")
    flags: int = fmt("H")
    reserved: bytes = fmt("2s")

    @property
    def corner_uvs(self) -> List[Tuple[float, float]]:
        return [(self.uv[0], self.uv[1]), (self.uv[2], self.uv[3]), (self.uv[4], self.uv[5])]


@dataclass
class VertexEntry(Decodable):
    """Vertex position, also reused as the record type of the normal list."""
    position: Tuple[float, float, float] = fmt("3f")
    normal_index: int = fmt("I")


@dataclass
class MaterialEntry(Decodable):
    name_offset: int = fmt("I")
    ambient: Tuple[int, ...] = fmt("4B")
    diffuse: Tuple[int, ...] = fmt("4B")
    specular: Tuple[int, ...] = fmt("4B")
    alpha: float = fmt("f")
    texture: int = fmt("I")  # offset of the texture name, 0 when untextured
    flags: int = fmt("H")
    num_full_ambient: int = fmt("B")
    textures_registered: int = fmt("B")
    texture_name_save: int = fmt("I")

    @property
    def smooth(self):
        return bool(self.flags & MaterialFlags.Smoothing)

    @property
    def double_sided(self):
        return bool(self.flags & MaterialFlags.DoubleSided)

    @property
    def emissive(self):
        return bool(self.flags & MaterialFlags.SelfIllum)


GEO_HEADER_SIZE = GeoHeader.size()
POLYGON_OBJECT_SIZE = PolygonObject.size()
VERTEX_ENTRY_SIZE = VertexEntry.size()


# ==============================================================================
# 3. Lif (paletted texture) Records
# ==============================================================================
@dataclass
class LifHeader(Decodable):
    identifier: bytes = fmt("8s")
    version: int = fmt("I")
    flags: int = fmt("I")
    width: int = fmt("I")
    height: int = fmt("I")
    palette_crc: int = fmt("I")
    image_crc: int = fmt("I")
    data: int = fmt("I")
    palette: int = fmt("I")
    team_effect: Tuple[int, int] = fmt("2I")

    @property
    def paletted(self):
        return bool(self.flags & TextureFlags.Paletted)

    @property
    def has_alpha(self):
        return bool(self.flags & TextureFlags.Alpha)


@dataclass
class TextureListHeader(Decodable):
    identifier: bytes = fmt("8s")
    version: int = fmt("i")
    num_elements: int = fmt("I")
    string_length: int = fmt("I")
    sharing_length: int = fmt("I")
    total_length: int = fmt("I")


@dataclass
class TextureListElement(Decodable):
    texture_name: int = fmt("I")  # offset from the start of the string block
    width: int = fmt("I")
    height: int = fmt("I")
    flags: int = fmt("I")
    image_crc: int = fmt("I")
    num_shared: int = fmt("i")
    shared_to: int = fmt("I")
    shared_from: int = fmt("i")  # -1 when the image is not shared


# ==============================================================================
# 4. BIG (archive) Records
# ==============================================================================
@dataclass
class BigHeader(Decodable):
    magic: bytes = fmt("7s")
    num_files: int = fmt("i")
    flags: int = fmt("i")


@dataclass
class BigFileEntry(Decodable):
    name_crc: int = fmt("Q")
    name_length: int = fmt("H")
    padding0: bytes = fmt("2s")
    stored_length: int = fmt("I")
    real_length: int = fmt("I")
    offset: int = fmt("I")
    timestamp: int = fmt("I")
    compression_type: int = fmt("B")
    padding1: bytes = fmt("3s")
