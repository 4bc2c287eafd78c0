"""
Render Job

One guarded render attempt per call:
- exclusive per-bulletin lock, skipped silently when busy
- bulletin state machine (rendering -> done | failed)
- progress written through to the bulletin store
- bounded retry policy for the background worker
"""

import logging
import time
import traceback
from typing import Callable, Optional, TypeVar

from .automation_models import Bulletin, RenderStatus
from .bulletin_store import BulletinStore
from ..utils.keys import render_lock_key
from ..video_assembly.bulletin_renderer import BulletinRenderer
from ..video_assembly.video_models import RenderResult

T = TypeVar('T')
RendererFactory = Callable[[Bulletin, Callable[[int, str], None]], BulletinRenderer]

logger = logging.getLogger(__name__)


def truncate_log(log: Optional[str], limit: int = 5000) -> Optional[str]:
    """Keep the last `limit` characters of a log"""
    if not log:
        return None
    return log[-limit:]


class RetryPolicy:
    """Fixed-backoff retries; the last exception is re-raised"""

    def __init__(self, max_attempts: int = 2, backoff_seconds: float = 30.0,
                 sleep: Callable[[float], None] = time.sleep):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    @classmethod
    def from_config(cls, config) -> 'RetryPolicy':
        return cls(config.jobs.max_attempts, config.jobs.retry_backoff_seconds)

    def run(self, fn: Callable[..., T], *args, **kwargs) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                if attempt >= self.max_attempts:
                    logger.error(f"Attempt {attempt}/{self.max_attempts} failed, giving up: {e}")
                    raise
                logger.warning(f"Attempt {attempt}/{self.max_attempts} failed: {e}; "
                               f"retrying in {self.backoff_seconds}s")
                self._sleep(self.backoff_seconds)


class RenderBulletinJob:
    """Wraps one BulletinRenderer run with locking and state bookkeeping"""

    def __init__(self, config, store: BulletinStore, lock, renderer_factory: Optional[RendererFactory] = None):
        self.config = config
        self.store = store
        self.lock = lock
        self.renderer_factory = renderer_factory or self._default_renderer
        self.log_tail_chars = config.jobs.log_tail_chars
        self.logger = logging.getLogger(__name__)

    def _default_renderer(self, bulletin: Bulletin, on_progress) -> BulletinRenderer:
        from ..publishing import Publisher
        from ..storage import BumperCache, LocalAssetStore

        return BulletinRenderer(
            bulletin,
            self.config,
            asset_store=LocalAssetStore.from_config(self.config),
            bumper_cache=BumperCache(self.config),
            publisher=Publisher(self.config),
            on_progress=on_progress,
        )

    def perform(self, bulletin_id: str) -> Optional[RenderResult]:
        key = render_lock_key(bulletin_id)
        if not self.lock.try_acquire(key):
            self.logger.warning(f"[RenderJob] Could not acquire lock for bulletin {bulletin_id}, skipping")
            return None

        try:
            bulletin = self.store.get(bulletin_id)
            if bulletin.render_in_progress():
                self.logger.warning(f"[RenderJob] Bulletin {bulletin_id} already rendering, skipping")
                return None
            return self._render(bulletin_id)
        finally:
            self.lock.release(key)

    def _render(self, bulletin_id: str) -> RenderResult:
        bulletin = self.store.update_render(
            bulletin_id,
            render_status=RenderStatus.RENDERING,
            render_progress=0,
            render_step="Starting render",
            render_error=None,
            render_log=None,
        )

        def on_progress(percent: int, step: str) -> None:
            self.store.update_progress(bulletin_id, percent, step)

        renderer = None
        try:
            renderer = self.renderer_factory(bulletin, on_progress)
            result = renderer.render()
        except Exception as e:
            self.logger.error(f"[RenderJob] Bulletin {bulletin_id} render failed: {e}", exc_info=True)
            failure_log = f"{e}\n{traceback.format_exc()}"
            if renderer is not None:
                failure_log = f"{renderer.collected_log()}\n{failure_log}"
            self.store.update_render(
                bulletin_id,
                render_status=RenderStatus.FAILED,
                render_error=str(e),
                render_step="Failed",
                render_log=truncate_log(failure_log, self.log_tail_chars),
            )
            raise

        self.store.update_render(
            bulletin_id,
            render_status=RenderStatus.DONE,
            render_progress=100,
            render_step="Complete",
            rendered_video_id=result.video_id,
            render_log=truncate_log(result.log, self.log_tail_chars),
        )
        self.logger.info(f"[RenderJob] Bulletin {bulletin_id} render complete, id={result.video_id}")
        return result
