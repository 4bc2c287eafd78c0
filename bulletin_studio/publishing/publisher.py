import time
from pathlib import Path
from typing import Callable, Optional, Union

from .stream_client import PublishError, StreamClient
from ..utils.logger import LoggerMixin


class Publisher(LoggerMixin):
    """
    Pushes a finished bulletin to the streaming host.

    Publication is optional: without credentials publish() returns None.
    Upload failures raise PublishError. A video that is still processing
    when polling gives up is returned as-is.
    """

    def __init__(self, config, client: Optional[StreamClient] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.client = client or StreamClient(config)
        self.poll_interval = config.publishing.poll_interval_seconds
        self.poll_attempts = config.publishing.poll_attempts
        self._sleep = sleep

    def publish(self, file_path: Union[str, Path], filename: Optional[str] = None) -> Optional[str]:
        if not self.client.configured():
            self.logger.info("Cloudflare Stream not configured, skipping upload")
            return None

        uid = self.client.upload_video(file_path, filename=filename)
        self.logger.info(f"Uploaded to Cloudflare Stream: {uid}")

        if self.wait_until_ready(uid):
            self.logger.info(f"Video {uid} ready for playback")
        else:
            self.logger.warning(f"Video {uid} still processing after "
                                f"{self.poll_attempts * self.poll_interval:.0f}s")

        try:
            self.client.enable_downloads(uid)
        except PublishError as e:
            self.logger.warning(f"Enable downloads failed (non-fatal): {e}")

        return uid

    def wait_until_ready(self, uid: str) -> bool:
        for attempt in range(self.poll_attempts):
            try:
                if self.client.video_ready(uid):
                    return True
            except PublishError as e:
                self.logger.warning(f"Readiness check {attempt + 1} failed: {e}")
            if attempt < self.poll_attempts - 1:
                self._sleep(self.poll_interval)
        return False
