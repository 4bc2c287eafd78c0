"""
Cloudflare Stream API client

Covers the calls the render pipeline needs: server-side upload, direct
upload URLs, readiness lookups and enabling the downloadable rendition.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

import requests

from ..utils.logger import LoggerMixin


class PublishError(Exception):
    """The streaming host rejected a request or could not be reached"""


class StreamClient(LoggerMixin):
    """Thin requests wrapper around the Cloudflare Stream REST API"""

    def __init__(self, config, session: Optional[requests.Session] = None):
        publishing = config.publishing
        self.base_url = publishing.base_url.rstrip('/')
        self.account_id = publishing.account_id
        self.api_token = publishing.api_token
        self.request_timeout = publishing.request_timeout
        self.upload_timeout = publishing.upload_timeout
        self.max_duration_seconds = publishing.max_duration_seconds
        self.allowed_origins = list(publishing.allowed_origins)
        self.session = session or requests.Session()

    def configured(self) -> bool:
        return bool(self.account_id) and bool(self.api_token)

    @property
    def stream_url(self) -> str:
        return f"{self.base_url}/accounts/{self.account_id}/stream"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_token}"}

    def _result(self, response: requests.Response, action: str) -> Any:
        """Unwrap the API envelope, raising PublishError on failure"""
        try:
            payload = response.json()
        except ValueError as e:
            raise PublishError(f"Cloudflare {action} failed: HTTP {response.status_code}, invalid JSON") from e

        if not payload.get("success"):
            errors = ", ".join(e.get("message", "") for e in payload.get("errors") or []) or "unknown error"
            raise PublishError(f"Cloudflare {action} failed: {errors}")
        return payload.get("result")

    def create_direct_upload(self, filename: str = "upload.mp4") -> Dict[str, Any]:
        """One-time upload URL for a client-side upload; returns {uploadURL, uid}"""
        expiry = datetime.now(timezone.utc) + timedelta(minutes=10)
        body = {
            "maxDurationSeconds": self.max_duration_seconds,
            "allowedOrigins": self.allowed_origins,
            "requireSignedURLs": False,
            "meta": {"name": filename},
            "expiry": expiry.replace(microsecond=0).isoformat(),
        }
        try:
            response = self.session.post(f"{self.stream_url}/direct_upload", json=body,
                                         headers=self._headers(), timeout=self.request_timeout)
        except requests.RequestException as e:
            raise PublishError(f"Cloudflare create-upload failed: {e}") from e
        return self._result(response, "create-upload")

    def upload_video(self, file_path: Union[str, Path], filename: Optional[str] = None,
                     content_type: str = "video/mp4") -> str:
        """Server-side multipart upload; returns the video uid"""
        file_path = Path(file_path)
        filename = filename or file_path.name
        try:
            with open(file_path, 'rb') as f:
                response = self.session.post(
                    self.stream_url,
                    files={"file": (filename, f, content_type)},
                    headers=self._headers(),
                    timeout=(self.request_timeout, self.upload_timeout),
                )
        except requests.RequestException as e:
            raise PublishError(f"Cloudflare upload failed: {e}") from e

        result = self._result(response, "upload")
        uid = (result or {}).get("uid")
        if not uid:
            raise PublishError("Cloudflare upload failed: response carried no uid")
        return uid

    def get_video(self, uid: str) -> Dict[str, Any]:
        try:
            response = self.session.get(f"{self.stream_url}/{uid}", headers=self._headers(),
                                        timeout=self.request_timeout)
        except requests.RequestException as e:
            raise PublishError(f"Cloudflare get video failed: {e}") from e
        return self._result(response, "get video") or {}

    def video_ready(self, uid: str) -> bool:
        video = self.get_video(uid)
        return (video.get("status") or {}).get("state") == "ready"

    def enable_downloads(self, uid: str) -> Dict[str, Any]:
        try:
            response = self.session.post(f"{self.stream_url}/{uid}/downloads", headers=self._headers(),
                                         timeout=self.request_timeout)
        except requests.RequestException as e:
            raise PublishError(f"Cloudflare enable downloads failed: {e}") from e
        return self._result(response, "enable downloads") or {}
