"""Configuration management for the bulletin render pipeline"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from pydantic import BaseModel, Field


class RenderConfig(BaseModel):
    resolution: str = "1080x1920"
    fps: int = 30
    video_codec: str = "libx264"
    video_preset: str = "medium"
    crf: int = 23
    pix_fmt: str = "yuv420p"
    audio_codec: str = "aac"
    audio_sample_rate: int = 48000
    audio_channels: int = 2
    audio_bitrate: str = "128k"
    bumper_max_seconds: float = 10.0
    silent_studio_seconds: float = 5.0
    transcode_timeout: float = 300.0
    probe_timeout: float = 30.0
    kill_grace_seconds: float = 2.0
    burn_subtitles: bool = True
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"

    @property
    def size(self) -> Tuple[int, int]:
        """Target (width, height) parsed from the resolution string"""
        width, height = self.resolution.lower().split("x")
        return int(width), int(height)


class MusicConfig(BaseModel):
    base_gain: float = 0.18      # studio ambience level for the whole bed
    bumper_gain: float = 1.0     # effective level during bumpers
    user_video_gain: float = 0.0  # muted under user clips
    dropout_transition: int = 2


class AssetsConfig(BaseModel):
    """Static assets shipped with the deployment"""
    anchor_video: Optional[str] = "./assets/anchor_loop.mp4"
    studio_background: str = "./assets/studio_background.jpeg"
    music_bed: Optional[str] = "./assets/bgmusic.mp3"
    local_bumper: Optional[str] = "./assets/bumper.mp4"
    branding_text: str = "MOCK NEWS"
    font_regular: Optional[str] = None
    font_bold: Optional[str] = None


class PublishingConfig(BaseModel):
    base_url: str = "https://api.cloudflare.com/client/v4"
    account_id: Optional[str] = None
    api_token: Optional[str] = None
    request_timeout: float = 30.0
    upload_timeout: float = 300.0
    poll_interval_seconds: float = 5.0
    poll_attempts: int = 120
    max_duration_seconds: int = 60 * 20
    allowed_origins: list = Field(default_factory=lambda: ["localhost", "127.0.0.1"])


class JobsConfig(BaseModel):
    max_attempts: int = Field(default=2, ge=1)
    retry_backoff_seconds: float = 30.0
    max_workers: int = Field(default=2, ge=1)
    lock_backend: str = "file"  # file | memory
    log_tail_chars: int = 5000
    log_tail_lines: int = 200


class StorageConfig(BaseModel):
    asset_root: str = "./data/assets"
    bumper_download_url: Optional[str] = None
    bumper_cache_path: str = "./temp/bulletin_renders/bumper_cache.mp4"
    bumper_cache_max_age_hours: float = 24.0
    download_timeout: float = 60.0


class PathsConfig(BaseModel):
    """Storage paths configuration"""
    data: str = "./data"
    temp: str = "./temp"
    logs: str = "./logs"
    locks: str = "./temp/locks"
    output: str = "./output"

    @property
    def work_root(self) -> Path:
        return Path(self.temp) / "bulletin_renders"


class Config(BaseModel):
    render: RenderConfig = Field(default_factory=RenderConfig)
    music: MusicConfig = Field(default_factory=MusicConfig)
    assets: AssetsConfig = Field(default_factory=AssetsConfig)
    publishing: PublishingConfig = Field(default_factory=PublishingConfig)
    jobs: JobsConfig = Field(default_factory=JobsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    logging: Dict[str, Any] = {}

    @classmethod
    def default(cls) -> "Config":
        """Configuration with every section at its defaults"""
        return cls()

    @classmethod
    def load(cls, config_path: str) -> "Config":
        """Load configuration from YAML file, then apply environment secrets"""
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        config = cls(**config_data)
        config.apply_environment()
        return config

    def apply_environment(self, environ: Optional[Dict[str, str]] = None) -> None:
        """Override secrets and deployment-specific values from the environment"""
        env = os.environ if environ is None else environ

        if env.get("CLOUDFLARE_ACCOUNT_ID"):
            self.publishing.account_id = env["CLOUDFLARE_ACCOUNT_ID"]
        if env.get("CLOUDFLARE_API_TOKEN"):
            self.publishing.api_token = env["CLOUDFLARE_API_TOKEN"]
        if env.get("BUMPER_DOWNLOAD_URL"):
            self.storage.bumper_download_url = env["BUMPER_DOWNLOAD_URL"]

    def save(self, config_path: str):
        """Save configuration to YAML file"""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.model_dump(), f, default_flow_style=False)
