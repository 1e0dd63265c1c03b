import os
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Tuple

import numpy as np

from classic.binary_reader import BinaryReader
from classic.classic_formats import (
    GEO_HEADER_SIZE,
    GEO_IDENTIFIERS,
    GEO_VERSION,
    LIF_IDENTIFIER,
    LIF_PALETTE_SIZE,
    LIF_VERSION,
    POLYGON_OBJECT_SIZE,
    TEXTURE_LIST_IDENTIFIER,
    TEXTURE_LIST_NAME,
    VERTEX_ENTRY_SIZE,
    GeoHeader,
    LifHeader,
    MaterialEntry,
    PolyEntry,
    PolygonObject,
    TextureListElement,
    TextureListHeader,
    VertexEntry,
)
from classic.classic_fs import ClassicFS, normalize_path
from classic.debug_console import DebugConsole
from classic.model_cache import NULL_INDEX, Material, Mesh, Model, ModelCache, Node, Texture, Vertex
from classic.texture_split import split_textures


# ==========================================================================
# 1. Surfaces and Patches
# ==========================================================================
@dataclass
class Surface:
    """A run of triangles sharing node, texture and render flags."""

    node: int
    texture: Optional[int]  # index into the load's local texture list, None if untextured
    emissive: bool
    double_sided: bool
    vertices: List[Vertex] = field(default_factory=list)

    def sort_key(self):
        # Untextured surfaces deliberately sort ahead of textured ones in the same node
        texture = -1 if self.texture is None else self.texture
        return (self.node, texture, self.emissive, self.double_sided)

    def can_merge(self, other: "Surface") -> bool:
        return (
            self.node == other.node
            and self.texture == other.texture
            and self.emissive == other.emissive
            and self.double_sided == other.double_sided
        )

    def merge(self, other: "Surface"):
        assert self.can_merge(other)
        self.vertices.extend(other.vertices)


@dataclass(frozen=True)
class UvPatch:
    triangle: int
    corner: int
    component: int  # 0 = u, 1 = v
    old: float
    new: float


# Hand-fixed UVs in shipped assets, keyed by asset path
PATCHES: Dict[str, Tuple[UvPatch, ...]] = {
    "r1/resourcecollector/rl0/lod0/resourcecollector.peo": (
        UvPatch(triangle=177, corner=2, component=0, old=0.49725038, new=0.25),
        UvPatch(triangle=179, corner=2, component=0, old=0.49725038, new=0.25),
    ),
    "r1/mothership/rl0/lod0/mothership.peo": (
        UvPatch(triangle=415, corner=0, component=1, old=0.9865452, new=0.8771702),
        UvPatch(triangle=415, corner=2, component=1, old=0.9962938, new=0.875),
        UvPatch(triangle=419, corner=2, component=1, old=1.0037062, new=1.0),
    ),
}


def apply_patches(path, triangles: List[Surface], patch_table=None) -> int:
    """Apply the patches registered for `path`; returns how many were applied."""
    patch_table = PATCHES if patch_table is None else patch_table
    patches = patch_table.get(str(path).replace("\\", "/"), ())
    applied = 0
    for patch in patches:
        if patch.triangle >= len(triangles) or patch.corner >= len(triangles[patch.triangle].vertices):
            DebugConsole.warn(f"Failed to apply patch to {path}: triangle {patch.triangle} does not exist")
            continue
        vertex = triangles[patch.triangle].vertices[patch.corner]
        if np.float32(vertex.uv[patch.component]) != np.float32(patch.old):
            DebugConsole.warn(
                f"Failed to apply patch to {path}: triangle {patch.triangle} corner {patch.corner} "
                f"has {vertex.uv[patch.component]!r}, expected {patch.old!r}"
            )
            continue
        uv = list(vertex.uv)
        uv[patch.component] = patch.new
        vertex.uv = tuple(uv)
        applied += 1
    return applied


# ==============================================================================
# 2. Texture List (textures.ll)
# ==============================================================================
class TextureList:
    """Maps texture paths that share another image's pixels to that image."""

    def __init__(self, shared_from: Optional[Dict[str, str]] = None):
        self.shared_from = shared_from or {}

    @classmethod
    def load(cls, fs: ClassicFS, path=TEXTURE_LIST_NAME) -> Optional["TextureList"]:
        if not fs.exists(path):
            DebugConsole.log(f"No texture list at {path}")
            return None

        with fs.load(path) as reader:
            header = reader.get(TextureListHeader)
            if header.identifier != TEXTURE_LIST_IDENTIFIER:
                DebugConsole.warn(f"{path} does not have a valid 'Event13' header.")
            elements = reader.get_vector(TextureListElement, header.num_elements)
            strings_offset = reader.tell()
            names = [reader.get_string_at(strings_offset + e.texture_name) for e in elements]

        shared_from = {}
        for name, element in zip(names, elements):
            if element.shared_from == -1:
                continue
            if not 0 <= element.shared_from < len(names):
                DebugConsole.warn(f"Texture {name} is shared from missing image {element.shared_from}")
                continue
            source = names[element.shared_from]
            shared_from[normalize_path(name)] = source.replace("\\", "/")
        DebugConsole.log(f"Texture list: {len(names)} images, {len(shared_from)} shared")
        return cls(shared_from)

    def resolve(self, texture_path: str) -> str:
        return self.shared_from.get(normalize_path(texture_path), texture_path)


# ==============================================================================
# 3. Lif Decoding
# ==============================================================================
def decode_lif(reader: BinaryReader, name="") -> Optional[Texture]:
    if not reader:
        return None

    header = reader.get(LifHeader)
    if header.identifier != LIF_IDENTIFIER:
        DebugConsole.warn(f"{name} does not have a valid 'Willy 7' header.")
    if header.version != LIF_VERSION:
        DebugConsole.warn(f"{name}: unexpected lif version {header.version:#x}")

    if not header.paletted:
        DebugConsole.error(f"{name}: Non paletted images not yet supported.")
        return None

    width, height = header.width, header.height
    if width == 0 or height == 0:
        DebugConsole.error(f"{name}: image has no pixels ({width}x{height})")
        return None
    if header.data + width * height > reader.size or header.palette + LIF_PALETTE_SIZE * 4 > reader.size:
        DebugConsole.error(
            f"{name}: {width}x{height} image with palette at {header.palette:#x} "
            f"does not fit in {reader.size} bytes"
        )
        return None

    indices = np.frombuffer(reader.get_bytes_at(header.data, width * height), dtype=np.uint8)
    palette = np.frombuffer(
        reader.get_bytes_at(header.palette, LIF_PALETTE_SIZE * 4), dtype=np.uint8
    ).reshape(LIF_PALETTE_SIZE, 4)

    return Texture(
        size=(width, height),
        has_alpha=header.has_alpha,
        rgba=palette[indices].reshape(height, width, 4),
    )


# ==============================================================================
# 4. Geo Decoding and Assembly
# ==============================================================================
def parent_index(mother: int, node_index: int) -> Optional[int]:
    """Recover a parent node index from the file offset of its PolygonObject."""
    if mother == 0:
        return NULL_INDEX
    index, misalignment = divmod(mother - GEO_HEADER_SIZE, POLYGON_OBJECT_SIZE)
    if mother < GEO_HEADER_SIZE or misalignment or index >= node_index:
        DebugConsole.warn(
            f"Polygon object {node_index} has parent offset {mother:#x} that is not an "
            f"earlier object record, loading it as a root"
        )
        return NULL_INDEX
    return index


def read_texture_names(geo: BinaryReader, materials: List[MaterialEntry]):
    """Deduplicated texture names (first seen order) and a material -> name index lookup."""
    texture_names: List[str] = []
    texture_lookup: List[Optional[int]] = []
    for mat in materials:
        if not mat.texture:
            texture_lookup.append(None)
            continue
        name = geo.get_string_at(mat.texture)
        if name in texture_names:
            texture_lookup.append(texture_names.index(name))
        else:
            texture_lookup.append(len(texture_names))
            texture_names.append(name)
    return texture_names, texture_lookup


def assemble_triangles(
    geo: BinaryReader,
    polygon_objects: List[PolygonObject],
    materials: List[MaterialEntry],
    texture_lookup: List[Optional[int]],
    texture_names: List[str],
    model: Model,
) -> List[Surface]:
    triangles = []
    for po in polygon_objects:
        node_index = len(model.nodes)
        model.nodes.append(
            Node(parent_index=parent_index(po.mother, node_index), local_transform=po.transform)
        )

        for pe in geo.get_vector(PolyEntry, po.num_polygons, po.polygon_list):
            if pe.material_index < len(materials):
                mat = materials[pe.material_index]
                smooth, emissive, double_sided = mat.smooth, mat.emissive, mat.double_sided
                texture = texture_lookup[pe.material_index]
            else:
                DebugConsole.error(
                    f"Polygon in object {node_index} uses material {pe.material_index}, "
                    f"only {len(materials)} exist"
                )
                smooth, emissive, double_sided, texture = False, False, False, None

            surface = Surface(node=node_index, texture=texture, emissive=emissive, double_sided=double_sided)

            face_normal = None
            if not smooth:
                face_normal = geo.get_at(
                    VertexEntry, po.normal_list + pe.face_normal_index * VERTEX_ENTRY_SIZE
                ).position

            for corner, uv in enumerate(pe.corner_uvs):
                v = geo.get_at(VertexEntry, po.vertex_list + pe.vertex_indices[corner] * VERTEX_ENTRY_SIZE)
                if smooth:
                    normal = geo.get_at(VertexEntry, po.normal_list + v.normal_index * VERTEX_ENTRY_SIZE).position
                else:
                    normal = face_normal

                if not (0.0 <= uv[0] <= 1.0 and 0.0 <= uv[1] <= 1.0):
                    name = texture_names[texture] if texture is not None else "<untextured>"
                    DebugConsole.warn(f'Texture "{name}"({texture}) will be read out of range')

                surface.vertices.append(Vertex(position=v.position, normal=normal, uv=uv))
            triangles.append(surface)
    return triangles


def batch_surfaces(triangles: List[Surface]) -> List[Surface]:
    """Stable sort by batching key and fuse neighbours with equal keys."""
    surfaces: List[Surface] = []
    for t in sorted(triangles, key=Surface.sort_key):
        if surfaces and surfaces[-1].can_merge(t):
            surfaces[-1].merge(t)
        else:
            surfaces.append(t)
    return surfaces


def load_textures(fs: ClassicFS, model_path, texture_names, texture_list=None):
    """
    Decode every texture referenced by a model.

    Returns the per-file textures (None where decoding failed) and a
    texture-name index -> per-file index map; names shared through the
    texture list collapse onto one file.
    """
    folder = PurePosixPath(str(model_path).replace("\\", "/")).parent
    textures: List[Optional[Texture]] = []
    loaded: Dict[str, int] = {}
    name_to_file = []

    for name in texture_names:
        texture_path = (folder / name).as_posix()
        if texture_list is not None:
            texture_path = texture_list.resolve(texture_path)
        key = normalize_path(texture_path)
        if key not in loaded:
            lif_path = f"{texture_path}.lif"
            with fs.load(lif_path) as lif:
                loaded[key] = len(textures)
                textures.append(decode_lif(lif, lif_path))
        name_to_file.append(loaded[key])
    return textures, name_to_file


def load_classic_model(
    cache: ModelCache, fs: ClassicFS, path, split_atlases=False, texture_list=None
) -> int:
    """
    Load a classic .peo model and its .lif textures into `cache`.

    Malformed data is logged and loaded best effort. Returns the index of
    the new entry in `cache.models`.
    """
    model = Model()

    with fs.load(path) as geo:
        header = geo.get(GeoHeader)
        if header.identifier not in GEO_IDENTIFIERS or header.version != GEO_VERSION:
            DebugConsole.warn(
                f"{path}: unexpected geo identifier {header.identifier!r} version {header.version:#x}"
            )

        # Read this before the cursor moves
        polygon_objects = geo.get_vector(PolygonObject, header.num_polygon_objects)
        materials = geo.get_vector(MaterialEntry, header.num_materials, header.local_material_offset)

        texture_names, texture_lookup = read_texture_names(geo, materials)
        triangles = assemble_triangles(geo, polygon_objects, materials, texture_lookup, texture_names, model)

    apply_patches(path, triangles)

    local_textures, name_to_file = load_textures(fs, path, texture_names, texture_list)
    for t in triangles:
        if t.texture is not None:
            t.texture = name_to_file[t.texture]

    if split_atlases:
        split_textures(local_textures, triangles)

    # Skipped textures take no slot in the cache
    texture_base = len(cache.textures)
    cache_texture = []
    kept = 0
    for tex in local_textures:
        if tex is None:
            cache_texture.append(NULL_INDEX)
        else:
            cache_texture.append(texture_base + kept)
            kept += 1

    surfaces = batch_surfaces(triangles)
    for s in surfaces:
        if s.texture is None:
            texture_index = ModelCache.DEFAULT_TEXTURE
        else:
            texture_index = cache_texture[s.texture]
        material_index = cache.material_index(Material(texture_index=texture_index))
        first_vertex = cache.append_vertices(s.vertices)
        model.meshes.append(
            Mesh(
                first_vertex=first_vertex,
                vertex_count=len(s.vertices),
                material_index=material_index,
                node_index=s.node,
            )
        )

    cache.textures.extend(tex for tex in local_textures if tex is not None)
    cache.models.append(model)

    DebugConsole.log(
        f"Loaded {os.path.basename(str(path))}: {len(model.nodes)} nodes, {len(model.meshes)} meshes, "
        f"{sum(m.vertex_count for m in model.meshes)} vertices, {len(local_textures)} textures"
    )
    return len(cache.models) - 1
