"""
Some classic textures are sheets holding several unrelated images. Sampling
across the seams bleeds neighbouring images in, so this pass cuts each sheet
back into the regions the geometry actually uses and remaps the UVs.

Works on assembled surfaces and decoded textures only; nothing here knows
about the file formats.
"""
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from classic.debug_console import DebugConsole
from classic.model_cache import Texture


@dataclass
class Region:
    texture: int
    min: List[int]  # texel space, [x, y]
    max: List[int]
    size: Tuple[int, int] = (0, 0)
    offset: Tuple[float, float] = (0.0, 0.0)
    scale: Tuple[float, float] = (1.0, 1.0)

    def sort_key(self):
        return (self.texture, self.min[0], self.min[1], self.max[0], self.max[1])


def is_po2(n: int) -> bool:
    return (n & (n - 1)) == 0


def surface_region(surface, tex_size) -> Region:
    us = [v.uv[0] for v in surface.vertices]
    vs = [v.uv[1] for v in surface.vertices]
    width, height = tex_size
    return Region(
        texture=surface.texture,
        min=[math.floor(min(us) * width), math.floor(min(vs) * height)],
        max=[math.ceil(max(us) * width), math.ceil(max(vs) * height)],
    )


def merge_regions(regions: List[Region]) -> List[int]:
    """
    Merge overlapping regions of the same texture.

    Returns, for every input region, the index of the region it ended up in
    within the compacted list; `regions` is replaced by that compacted list.
    """
    order = sorted(range(len(regions)), key=lambda i: regions[i].sort_key())
    merged: List[Optional[int]] = [None] * len(regions)

    done = False
    while not done:
        done = True
        for pos, i in enumerate(order):
            if merged[i] is not None:
                continue
            root = regions[i]

            for j in order[pos + 1:]:
                other = regions[j]
                # Sorted by texture then min.x, so nothing further can overlap
                if root.texture != other.texture:
                    break
                if root.max[0] <= other.min[0]:
                    break
                if merged[j] is not None:
                    continue
                if root.max[1] <= other.min[1] or root.min[1] >= other.max[1]:
                    continue

                merged[j] = i
                root.min[1] = min(root.min[1], other.min[1])
                root.max = [max(root.max[0], other.max[0]), max(root.max[1], other.max[1])]
                done = False

    final = [0] * len(regions)
    compacted = []
    for i in order:
        if merged[i] is None:
            final[i] = len(compacted)
            compacted.append(regions[i])
        else:
            # Roots come earlier in the sorted order, so they are resolved already
            final[i] = final[merged[i]]
    regions[:] = compacted
    return final


def crop_wrapped(source: Texture, region: Region) -> Texture:
    width, height = region.size
    src_width, src_height = source.size
    ys = (np.arange(height) + region.min[1]) % src_height
    xs = (np.arange(width) + region.min[0]) % src_width
    return Texture(size=region.size, has_alpha=source.has_alpha, rgba=source.rgba[np.ix_(ys, xs)])


def split_textures(textures: List[Optional[Texture]], surfaces) -> None:
    """
    Replace `textures` with one texture per used region and point every
    surface at its region. Both arguments are modified in place.

    Surfaces without a texture are left alone; surfaces whose source texture
    could not be decoded keep pointing at an empty (None) slot.
    """
    regions: List[Region] = []
    region_surfaces = []
    missing_slots = {}
    missing_surfaces = []

    for surface in surfaces:
        if surface.texture is None:
            continue
        source = textures[surface.texture] if surface.texture < len(textures) else None
        if source is None or 0 in source.size:
            missing_surfaces.append(surface)
            continue
        regions.append(surface_region(surface, source.size))
        region_surfaces.append(surface)

    surface_map = merge_regions(regions)

    for region in regions:
        src_width, src_height = textures[region.texture].size
        region.size = (max(region.max[0] - region.min[0], 1), max(region.max[1] - region.min[1], 1))

        if not is_po2(region.size[0]) or not is_po2(region.size[1]):
            DebugConsole.warn(
                f"Region is not a power of 2! texture {region.texture} "
                f"min {tuple(region.min)} size {region.size}"
            )

        region.offset = (region.min[0] / src_width, region.min[1] / src_height)
        region.scale = (src_width / region.size[0], src_height / region.size[1])

    for surface, region_index in zip(region_surfaces, surface_map):
        region = regions[region_index]
        surface.texture = region_index
        for v in surface.vertices:
            v.uv = (
                (v.uv[0] - region.offset[0]) * region.scale[0],
                (v.uv[1] - region.offset[1]) * region.scale[1],
            )

    new_textures: List[Optional[Texture]] = []
    for region in regions:
        source = textures[region.texture]
        if tuple(source.size) == region.size and region.min == [0, 0]:
            new_textures.append(source)
        else:
            new_textures.append(crop_wrapped(source, region))

    for surface in missing_surfaces:
        if surface.texture not in missing_slots:
            missing_slots[surface.texture] = len(new_textures)
            new_textures.append(None)
        surface.texture = missing_slots[surface.texture]

    DebugConsole.log(f"Split {len(textures)} texture(s) into {len(regions)} region(s)")
    textures[:] = new_textures
