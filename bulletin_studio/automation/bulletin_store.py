"""
Bulletin Store

Persistence for bulletins and their render state. The render job reads
bulletins and writes back progress, results and failures.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from .automation_models import Bulletin, RenderStatus
from ..utils.logger import LoggerMixin


class BulletinNotFoundError(KeyError):
    """No bulletin with the requested id"""


class BulletinStore(ABC):
    """Owning record store for bulletins"""

    @abstractmethod
    def get(self, bulletin_id: str) -> Bulletin:
        """Load a bulletin; raises BulletinNotFoundError"""

    @abstractmethod
    def save(self, bulletin: Bulletin) -> None:
        """Insert or replace a bulletin"""

    @abstractmethod
    def list_ids(self) -> List[str]:
        """Ids of every stored bulletin"""

    def update_render(self, bulletin_id: str, **fields) -> Bulletin:
        """Apply render-field updates atomically with respect to this store"""
        with self._lock:
            bulletin = self.get(bulletin_id)
            updated = bulletin.model_copy(update={**fields, 'updated_at': datetime.now()})
            self.save(updated)
            return updated

    def update_progress(self, bulletin_id: str, percent: int, step: str) -> Bulletin:
        """
        Record render progress. While a render is active the stored percent
        never goes down, so replayed or out-of-order callbacks are harmless.
        """
        with self._lock:
            bulletin = self.get(bulletin_id)
            percent = max(0, min(100, int(percent)))
            if bulletin.render_status == RenderStatus.RENDERING:
                percent = max(percent, bulletin.render_progress)
            updated = bulletin.model_copy(update={
                'render_progress': percent,
                'render_step': step,
                'updated_at': datetime.now(),
            })
            self.save(updated)
            return updated

    @property
    def _lock(self) -> Lock:
        if not hasattr(self, '_store_lock'):
            self._store_lock = Lock()
        return self._store_lock


class InMemoryBulletinStore(BulletinStore):
    """Dict-backed store for single-process use and tests"""

    def __init__(self, bulletins: Optional[List[Bulletin]] = None):
        self._store_lock = Lock()
        self._bulletins: Dict[str, Bulletin] = {}
        for bulletin in bulletins or []:
            self.save(bulletin)

    def get(self, bulletin_id: str) -> Bulletin:
        try:
            return self._bulletins[str(bulletin_id)].model_copy(deep=True)
        except KeyError:
            raise BulletinNotFoundError(f"Bulletin {bulletin_id} not found") from None

    def save(self, bulletin: Bulletin) -> None:
        self._bulletins[bulletin.id] = bulletin.model_copy(deep=True)

    def list_ids(self) -> List[str]:
        return sorted(self._bulletins)


class JsonBulletinStore(BulletinStore, LoggerMixin):
    """One JSON document per bulletin under <data>/bulletins/"""

    def __init__(self, directory: Path):
        self._store_lock = Lock()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, config) -> 'JsonBulletinStore':
        return cls(Path(config.paths.data) / 'bulletins')

    def _path(self, bulletin_id: str) -> Path:
        return self.directory / f"{bulletin_id}.json"

    def get(self, bulletin_id: str) -> Bulletin:
        path = self._path(bulletin_id)
        if not path.exists():
            raise BulletinNotFoundError(f"Bulletin {bulletin_id} not found")
        with open(path, 'r', encoding='utf-8') as f:
            return Bulletin.model_validate(json.load(f))

    def save(self, bulletin: Bulletin) -> None:
        path = self._path(bulletin.id)
        tmp_path = path.with_suffix('.json.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(bulletin.model_dump(mode='json'), f, indent=2)
        tmp_path.replace(path)
        self.logger.debug(f"Saved bulletin {bulletin.id}")

    def list_ids(self) -> List[str]:
        return sorted(p.stem for p in self.directory.glob('*.json'))
