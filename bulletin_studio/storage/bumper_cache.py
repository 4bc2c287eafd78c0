import tempfile
import time
from pathlib import Path
from typing import Optional

import requests

from ..utils.logger import LoggerMixin


class BumperCache(LoggerMixin):
    """
    Local copy of the bumper clip.

    Lookup order: cached download younger than the max age, fresh download
    from the configured URL, the local fallback clip, nothing.
    """

    def __init__(self, config):
        storage = config.storage
        self.download_url = storage.bumper_download_url
        self.cache_path = Path(storage.bumper_cache_path)
        self.max_age_seconds = storage.bumper_cache_max_age_hours * 3600
        self.download_timeout = storage.download_timeout
        local = config.assets.local_bumper
        self.local_bumper = Path(local) if local else None

    def is_fresh(self) -> bool:
        if not self.cache_path.exists() or self.cache_path.stat().st_size == 0:
            return False
        age = time.time() - self.cache_path.stat().st_mtime
        return age < self.max_age_seconds

    def fetch(self) -> Optional[Path]:
        if self.is_fresh():
            self.logger.info("Using cached bumper")
            return self.cache_path

        if self.download_url:
            downloaded = self._download()
            if downloaded is not None:
                return downloaded

        if self.local_bumper is not None and self.local_bumper.exists():
            self.logger.info(f"Using local bumper {self.local_bumper}")
            return self.local_bumper

        self.logger.warning(f"No bumper available (url={self.download_url!r}, local={self.local_bumper})")
        return None

    def _download(self) -> Optional[Path]:
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        partial: Optional[Path] = None

        self.logger.info(f"Downloading bumper from {self.download_url}")
        try:
            with requests.get(self.download_url, timeout=self.download_timeout, stream=True) as response:
                if response.status_code != 200:
                    self.logger.warning(f"Bumper download returned HTTP {response.status_code}")
                    return None
                # Concurrent renders each stream into their own file; only the
                # rename onto cache_path is shared.
                with tempfile.NamedTemporaryFile(dir=self.cache_path.parent,
                                                 prefix=self.cache_path.name + ".",
                                                 suffix=".part", delete=False) as f:
                    partial = Path(f.name)
                    for chunk in response.iter_content(chunk_size=1024 * 1024):
                        if chunk:
                            f.write(chunk)
            partial.replace(self.cache_path)
        except (requests.RequestException, OSError) as e:
            self.logger.warning(f"Bumper download failed: {e}")
            if partial is not None:
                partial.unlink(missing_ok=True)
            return None

        size_mb = self.cache_path.stat().st_size / 1e6
        self.logger.info(f"Bumper downloaded ({size_mb:.1f} MB)")
        return self.cache_path
