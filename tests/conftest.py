from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import pytest
from PIL import Image

from bulletin_studio.automation.automation_models import (
    Bulletin,
    BulletinStatus,
    Story,
    StoryStatus,
    SubtitleCue,
)
from bulletin_studio.utils.config import Config
from bulletin_studio.video_assembly.ffmpeg_runner import ExternalToolError, ToolOutput


class FakeRunner:
    """Stands in for FfmpegRunner: records commands and creates their outputs."""

    def __init__(self, durations: Optional[Dict[str, float]] = None, default_duration: float = 4.0,
                 audio: bool = True, fail_on: Optional[str] = None):
        self.ffmpeg_bin = "ffmpeg"
        self.ffprobe_bin = "ffprobe"
        self.durations = durations or {}
        self.default_duration = default_duration
        self.audio = audio
        self.fail_on = fail_on
        self.commands: List[List[str]] = []
        self.labels: List[str] = []
        self.probed: List[Path] = []
        self.audio_checks: List[str] = []

    def run(self, command, label="ffmpeg", timeout=None):
        argv = [str(c) for c in command]
        self.commands.append(argv)
        self.labels.append(label)
        if self.fail_on and label.startswith(self.fail_on):
            raise ExternalToolError(label, 1, "simulated failure")
        output = argv[-2] if argv[-1] == "-y" else argv[-1]
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        Path(output).write_bytes(b"media")
        return ToolOutput(stdout="", stderr="")

    def probe_duration(self, path):
        path = Path(path)
        self.probed.append(path)
        return self.durations.get(path.name, self.default_duration)

    def has_audio_stream(self, path, label="check_audio"):
        self.audio_checks.append(label)
        return self.audio

    def command_for(self, label: str) -> List[str]:
        return self.commands[self.labels.index(label)]


@pytest.fixture
def config(tmp_path) -> Config:
    cfg = Config.default()
    cfg.paths.data = str(tmp_path / "data")
    cfg.paths.temp = str(tmp_path / "temp")
    cfg.paths.logs = str(tmp_path / "logs")
    cfg.paths.locks = str(tmp_path / "locks")
    cfg.paths.output = str(tmp_path / "output")
    cfg.storage.asset_root = str(tmp_path / "assets")
    cfg.storage.bumper_cache_path = str(tmp_path / "cache" / "bumper_cache.mp4")
    cfg.assets.anchor_video = None
    cfg.assets.studio_background = str(tmp_path / "missing_background.jpeg")
    cfg.assets.music_bed = None
    cfg.assets.local_bumper = None
    cfg.jobs.lock_backend = "memory"
    cfg.jobs.retry_backoff_seconds = 0
    return cfg


@pytest.fixture
def write_image():
    def _write(path: Path, size=(64, 64), color=(200, 30, 30)) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", size, color).save(path)
        return path
    return _write


def make_story(number: int, **fields) -> Story:
    data = dict(
        id=f"s{number}",
        story_number=number,
        story_title=f"Story {number}",
        status=StoryStatus.DONE,
        story_emoji="📰",
        subtitle_cues=[SubtitleCue(start=0.0, end=2.0, text="Hello"),
                       SubtitleCue(start=2.0, end=4.0, text="World")],
    )
    data.update(fields)
    return Story(**data)


def make_bulletin(stories: List[Story], **fields) -> Bulletin:
    data = dict(id="42", title="Evening bulletin", location="Lisbon",
                status=BulletinStatus.READY, stories=stories)
    data.update(fields)
    return Bulletin(**data)


@pytest.fixture
def story_factory():
    return make_story


@pytest.fixture
def bulletin_factory():
    return make_bulletin


@pytest.fixture
def fake_runner():
    return FakeRunner
