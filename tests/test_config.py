from pathlib import Path

from asset_builders import build_big
from classic.classic_fs import ClassicFS
from classic.config import ClassicConfig


def test_defaults():
    config = ClassicConfig()
    assert config.data_root is None
    assert config.big_files == []
    assert not config.split_atlases
    assert not config.verbose


def test_from_env_reads_root_and_archive_list():
    config = ClassicConfig.from_env({"HWC_DATA": "/games/hw", "HW_BIG": "a.big;;b.big"})
    assert config.data_root == Path("/games/hw")
    assert config.big_files == [Path("a.big"), Path("b.big")]


def test_from_env_with_nothing_set():
    config = ClassicConfig.from_env({})
    assert config.data_root is None
    assert config.big_files == []


def test_filesystem_opens_configured_archives(tmp_path, data_root):
    archive = tmp_path / "update.big"
    archive.write_bytes(build_big([("r1/a.bin", b"abc", 3, 0)]))

    fs = ClassicConfig(data_root=data_root, big_files=[archive]).filesystem()

    assert isinstance(fs, ClassicFS)
    assert fs.data_root == data_root
    assert fs.read("r1/a.bin") == b"abc"
