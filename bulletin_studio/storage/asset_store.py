"""
Asset Store

Keyed storage for source assets (user video, narration audio, posters).
The render pipeline only needs download-to-path and upload-from-path.
"""

import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

from ..utils.logger import LoggerMixin

PathLike = Union[str, Path]


class StagingError(Exception):
    """An asset could not be staged to or from the store"""


class AssetStore(ABC):
    """Interface for object storage"""

    @abstractmethod
    def download(self, key: str, dest: PathLike) -> Path:
        """Copy the object stored under key to dest"""

    @abstractmethod
    def upload(self, path: PathLike, key: str) -> str:
        """Store the file at path under key"""


class LocalAssetStore(AssetStore, LoggerMixin):
    """Directory-backed store; keys are relative paths under the root"""

    def __init__(self, root: PathLike):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, config) -> 'LocalAssetStore':
        return cls(config.storage.asset_root)

    def _resolve(self, key: str) -> Path:
        if not key or not key.strip():
            raise StagingError("Empty asset key")
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StagingError(f"Asset key escapes the store root: {key}")
        return path

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def download(self, key: str, dest: PathLike) -> Path:
        source = self._resolve(key)
        if not source.is_file():
            raise StagingError(f"Asset not found: {key}")

        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copyfile(source, dest)
        except OSError as e:
            raise StagingError(f"Failed to stage {key}: {e}") from e

        self.logger.debug(f"Staged {key} -> {dest}")
        return dest

    def upload(self, path: PathLike, key: str) -> str:
        target = self._resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copyfile(path, target)
        except OSError as e:
            raise StagingError(f"Failed to store {path} as {key}: {e}") from e

        self.logger.info(f"Stored {path} as {key}")
        return key
