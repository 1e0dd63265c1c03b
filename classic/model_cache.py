from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import pyrr

# Sentinel for "no parent" and "no texture"
NULL_INDEX = None

VERTEX_DTYPE = np.dtype(
    [
        ("position", np.float32, 3),
        ("normal", np.float32, 3),
        ("uv", np.float32, 2),
    ]
)


@dataclass
class Vertex:
    position: Tuple[float, float, float]
    normal: Tuple[float, float, float]
    uv: Tuple[float, float]


@dataclass
class Texture:
    size: Tuple[int, int]  # (width, height)
    has_alpha: bool = False
    rgba: np.ndarray = field(default_factory=lambda: np.zeros((0, 0, 4), dtype=np.uint8))

    @classmethod
    def default_white(cls) -> "Texture":
        return cls(size=(1, 1), has_alpha=False, rgba=np.full((1, 1, 4), 255, dtype=np.uint8))


@dataclass(frozen=True)
class Material:
    texture_index: Optional[int] = NULL_INDEX


@dataclass
class Node:
    parent_index: Optional[int] = NULL_INDEX
    local_transform: pyrr.Matrix44 = field(default_factory=pyrr.Matrix44.identity)


@dataclass
class Mesh:
    first_vertex: int
    vertex_count: int
    material_index: int
    node_index: int


@dataclass
class Model:
    nodes: List[Node] = field(default_factory=list)
    meshes: List[Mesh] = field(default_factory=list)

    def world_transforms(self) -> List[pyrr.Matrix44]:
        """Accumulated node transforms, row-vector convention (local @ parent)."""
        world = []
        for node in self.nodes:
            if node.parent_index is NULL_INDEX:
                world.append(pyrr.Matrix44(node.local_transform))
            else:
                # Parents always precede their children
                world.append(
                    pyrr.Matrix44(np.asarray(node.local_transform) @ np.asarray(world[node.parent_index]))
                )
        return world


class ModelCache:
    """
    Consolidated output of every load: one shared vertex array, the texture
    and material lists, and the per-model node/mesh tables indexing into them.
    """

    DEFAULT_TEXTURE = 0

    def __init__(self):
        self.vertices: List[Vertex] = []
        self.textures: List[Texture] = [Texture.default_white()]
        self.materials: List[Material] = []
        self.models: List[Model] = []

    def material_index(self, material: Material) -> int:
        for i, existing in enumerate(self.materials):
            if existing == material:
                return i
        self.materials.append(material)
        return len(self.materials) - 1

    def append_vertices(self, vertices: List[Vertex]) -> int:
        first = len(self.vertices)
        self.vertices.extend(vertices)
        return first

    def vertex_array(self) -> np.ndarray:
        """All vertices packed for upload as one contiguous vertex buffer."""
        array = np.zeros(len(self.vertices), dtype=VERTEX_DTYPE)
        if self.vertices:
            array["position"] = [v.position for v in self.vertices]
            array["normal"] = [v.normal for v in self.vertices]
            array["uv"] = [v.uv for v in self.vertices]
        return array

    def load_classic_model(self, fs, path, split_atlases=False, texture_list=None) -> int:
        from classic.classic_loader import load_classic_model

        return load_classic_model(self, fs, path, split_atlases=split_atlases, texture_list=texture_list)
