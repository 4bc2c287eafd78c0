"""
Render Worker

Background execution of render jobs on a bounded thread pool.
Different bulletins render in parallel; the job's lock keeps a single
bulletin from rendering twice.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Dict, List, Optional

from .automation_models import RenderStatus
from .bulletin_store import BulletinStore
from .render_job import RenderBulletinJob, RetryPolicy
from ..video_assembly.video_models import RenderResult


class RenderWorker:
    """
    Queue front-end for RenderBulletinJob.

    Features:
    - validates that a bulletin is renderable before queueing
    - marks queued bulletins in the store
    - retries each job with the configured policy
    """

    def __init__(self, config, store: BulletinStore, job: RenderBulletinJob,
                 retry_policy: Optional[RetryPolicy] = None):
        self.config = config
        self.store = store
        self.job = job
        self.retry_policy = retry_policy or RetryPolicy.from_config(config)
        self.executor = ThreadPoolExecutor(max_workers=config.jobs.max_workers,
                                           thread_name_prefix="render")
        self.logger = logging.getLogger(__name__)
        self.state_lock = Lock()
        self.active: Dict[str, Future] = {}

    def enqueue(self, bulletin_id: str) -> Future:
        """Queue a render; raises ValueError when the bulletin is not renderable"""
        bulletin = self.store.get(bulletin_id)
        if not bulletin.renderable():
            raise ValueError(f"Bulletin {bulletin_id} is not renderable "
                             f"(status={bulletin.status.value}, render_status="
                             f"{bulletin.render_status.value if bulletin.render_status else None})")

        self.store.update_render(
            bulletin_id,
            render_status=RenderStatus.QUEUED,
            render_progress=0,
            render_step="Queued",
        )

        future = self.executor.submit(self._run, bulletin_id)
        with self.state_lock:
            self.active[bulletin_id] = future
        future.add_done_callback(lambda f, bid=bulletin_id: self._finished(bid, f))

        self.logger.info(f"Queued render for bulletin {bulletin_id}")
        return future

    def _run(self, bulletin_id: str) -> Optional[RenderResult]:
        return self.retry_policy.run(self.job.perform, bulletin_id)

    def _finished(self, bulletin_id: str, future: Future) -> None:
        with self.state_lock:
            if self.active.get(bulletin_id) is future:
                del self.active[bulletin_id]
        error = future.exception()
        if error is not None:
            self.logger.error(f"Render for bulletin {bulletin_id} failed after retries: {error}")

    def active_ids(self) -> List[str]:
        with self.state_lock:
            return list(self.active)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
        self.logger.info("Render worker stopped")
