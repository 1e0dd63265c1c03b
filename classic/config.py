import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from classic.classic_fs import ClassicFS

DATA_ROOT_ENV = "HWC_DATA"
BIG_FILES_ENV = "HW_BIG"


@dataclass
class ClassicConfig:
    """Settings for one ingestion run, passed explicitly into the loader."""

    data_root: Optional[Path] = None
    big_files: List[Path] = field(default_factory=list)
    split_atlases: bool = False
    verbose: bool = False

    @classmethod
    def from_env(cls, environ=None) -> "ClassicConfig":
        environ = os.environ if environ is None else environ
        data_root = environ.get(DATA_ROOT_ENV)
        big_files = [Path(p) for p in environ.get(BIG_FILES_ENV, "").split(";") if p]
        return cls(data_root=Path(data_root) if data_root else None, big_files=big_files)

    def filesystem(self) -> ClassicFS:
        return ClassicFS(self.data_root, self.big_files)
