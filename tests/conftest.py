import logging

import pytest

from classic.classic_fs import ClassicFS


@pytest.fixture(autouse=True)
def classic_logs(caplog):
    caplog.set_level(logging.DEBUG, logger="classic")
    return caplog


@pytest.fixture
def data_root(tmp_path):
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def write_asset(data_root):
    def write(relative_path, data):
        path = data_root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    return write


@pytest.fixture
def fs(data_root):
    return ClassicFS(data_root)


def messages(caplog, level):
    return [r.getMessage() for r in caplog.records if r.levelno == level and r.name == "classic"]
