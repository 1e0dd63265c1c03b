import logging

import numpy as np
import pytest

from classic.classic_loader import Surface
from classic.model_cache import Texture, Vertex
from classic.texture_split import Region, crop_wrapped, is_po2, merge_regions, split_textures
from conftest import messages


def sheet(width=4, height=4):
    rgba = np.arange(width * height * 4, dtype=np.uint8).reshape(height, width, 4)
    return Texture(size=(width, height), has_alpha=True, rgba=rgba)


def surface(texture, u0, v0, u1, v1):
    corners = [(u0, v0), (u1, v0), (u0, v1)]
    return Surface(
        node=0,
        texture=texture,
        emissive=False,
        double_sided=False,
        vertices=[Vertex(position=(0.0, 0.0, 0.0), normal=(0.0, 0.0, 1.0), uv=uv) for uv in corners],
    )


@pytest.mark.parametrize("n, expected", [(1, True), (2, True), (3, False), (64, True), (96, False)])
def test_is_po2(n, expected):
    assert is_po2(n) is expected


def test_overlapping_regions_merge_into_their_union():
    regions = [Region(0, [0, 0], [2, 2]), Region(0, [1, 1], [3, 3])]
    mapping = merge_regions(regions)
    assert mapping == [0, 0]
    assert len(regions) == 1
    assert regions[0].min == [0, 0]
    assert regions[0].max == [3, 3]


def test_touching_regions_stay_separate():
    regions = [Region(0, [2, 0], [4, 2]), Region(0, [0, 0], [2, 2]), Region(0, [0, 2], [2, 4])]
    mapping = merge_regions(regions)
    assert len(regions) == 3
    assert sorted(mapping) == [0, 1, 2]
    assert regions[mapping[0]].min == [2, 0]


def test_regions_of_different_textures_never_merge():
    regions = [Region(0, [0, 0], [4, 4]), Region(1, [0, 0], [4, 4])]
    assert merge_regions(regions) == [0, 1]


def test_merge_repeats_until_nothing_overlaps():
    # The third region only overlaps the first once the second has grown it
    regions = [Region(0, [0, 0], [2, 2]), Region(0, [1, 0], [5, 2]), Region(0, [4, 1], [6, 3])]
    mapping = merge_regions(regions)
    assert mapping == [0, 0, 0]
    assert regions[0].max == [6, 3]


def test_wrapped_crop_takes_pixels_from_the_far_edge():
    source = sheet()
    region = Region(0, [3, 0], [5, 1], size=(2, 1))
    cropped = crop_wrapped(source, region)

    assert cropped.size == (2, 1)
    assert cropped.rgba.shape == (1, 2, 4)
    assert (cropped.rgba[0, 0] == source.rgba[0, 3]).all()
    assert (cropped.rgba[0, 1] == source.rgba[0, 0]).all()


def test_wrap_uses_each_axis_own_size():
    source = sheet(width=4, height=2)
    region = Region(0, [0, 1], [1, 3], size=(1, 2))
    cropped = crop_wrapped(source, region)
    assert (cropped.rgba[1, 0] == source.rgba[0, 0]).all()


def test_split_cuts_disjoint_quadrants_and_remaps_uvs():
    textures = [sheet()]
    low = surface(0, 0.0, 0.0, 0.5, 0.5)
    high = surface(0, 0.5, 0.5, 1.0, 1.0)

    split_textures(textures, [low, high])

    assert len(textures) == 2
    assert {low.texture, high.texture} == {0, 1}
    assert textures[high.texture].size == (2, 2)

    source = sheet().rgba
    assert (textures[high.texture].rgba == source[2:4, 2:4]).all()
    assert (textures[low.texture].rgba == source[0:2, 0:2]).all()

    assert high.vertices[0].uv == pytest.approx((0.0, 0.0))
    assert high.vertices[1].uv == pytest.approx((1.0, 0.0))
    assert high.vertices[2].uv == pytest.approx((0.0, 1.0))
    assert low.vertices[1].uv == pytest.approx((1.0, 0.0))


def test_split_warns_on_non_power_of_two_region(classic_logs):
    textures = [sheet()]
    a = surface(0, 0.0, 0.0, 0.5, 0.5)
    b = surface(0, 0.25, 0.25, 0.75, 0.75)

    split_textures(textures, [a, b])

    assert len(textures) == 1
    assert a.texture == b.texture == 0
    assert textures[0].size == (3, 3)
    assert any("Region is not a power of 2" in m for m in messages(classic_logs, logging.WARNING))


def test_split_reuses_full_texture():
    source = sheet()
    textures = [source]
    whole = surface(0, 0.0, 0.0, 1.0, 1.0)

    split_textures(textures, [whole])

    assert textures[0] is source
    assert whole.vertices[1].uv == pytest.approx((1.0, 0.0))


def test_split_leaves_surfaces_of_empty_textures_alone():
    empty = Texture(size=(0, 1), rgba=np.zeros((1, 0, 4), dtype=np.uint8))
    textures = [empty, sheet()]
    blank = surface(0, 0.0, 0.0, 0.5, 0.5)
    used = surface(1, 0.0, 0.0, 1.0, 1.0)

    split_textures(textures, [blank, used])

    assert used.texture == 0
    assert textures[blank.texture] is None
    assert blank.vertices[1].uv == (0.5, 0.0)


def test_split_leaves_untextured_and_missing_surfaces_alone():
    textures = [None, sheet()]
    plain = surface(None, 0.0, 0.0, 1.0, 1.0)
    missing = surface(0, 0.0, 0.0, 0.5, 0.5)
    used = surface(1, 0.0, 0.0, 1.0, 1.0)

    split_textures(textures, [plain, missing, used])

    assert plain.texture is None
    assert plain.vertices[1].uv == (1.0, 0.0)
    assert used.texture == 0
    assert textures[missing.texture] is None
    assert missing.vertices[1].uv == (0.5, 0.0)
