from __future__ import annotations

import re
from pathlib import Path

import pytest

from bulletin_studio.storage.asset_store import LocalAssetStore
from bulletin_studio.storage.bumper_cache import BumperCache
from bulletin_studio.video_assembly.bulletin_renderer import BulletinRenderer, RenderError
from bulletin_studio.video_assembly.ffmpeg_runner import ExternalToolError
from bulletin_studio.video_assembly.video_models import RenderStage, SegmentType


class RecordingPublisher:
    def __init__(self, video_id="vid-123"):
        self.video_id = video_id
        self.calls = []

    def publish(self, path, filename=None):
        self.calls.append((Path(path), filename, Path(path).exists()))
        return self.video_id


@pytest.fixture
def assets(config, tmp_path, write_image):
    store = LocalAssetStore.from_config(config)
    root = Path(config.storage.asset_root)

    def put(key, data=b"payload"):
        path = root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return key

    write_image(root / "s1" / "poster.jpg", size=(300, 400))
    put("s1/video.mp4")
    put("s1/tts.wav")
    put("s2/tts.wav")
    put("bulletin/welcome.wav")
    put("bulletin/closing.wav")
    put("bulletin/weather.wav")
    put("empty.wav", b"")
    return store


@pytest.fixture
def bumper(config, tmp_path):
    clip = tmp_path / "bumper.mp4"
    clip.write_bytes(b"bumper")
    config.assets.local_bumper = str(clip)
    return BumperCache(config)


def _two_stories(story_factory):
    return [
        story_factory(1, video_key="s1/video.mp4", tts_key="s1/tts.wav", poster_key="s1/poster.jpg"),
        story_factory(2, tts_key="s2/tts.wav"),
    ]


def _renderer(bulletin, config, runner, assets, bumper=None, publisher=None, progress=None):
    return BulletinRenderer(
        bulletin, config, runner=runner, asset_store=assets, bumper_cache=bumper,
        publisher=publisher,
        on_progress=(lambda p, s: progress.append((p, s))) if progress is not None else None,
    )


def test_two_stories_with_bumper(config, assets, bumper, fake_runner, story_factory, bulletin_factory):
    bulletin = bulletin_factory(_two_stories(story_factory))
    runner = fake_runner()
    progress = []

    result = _renderer(bulletin, config, runner, assets, bumper, progress=progress).render()

    assert [s.segment_type for s in result.segments] == [
        SegmentType.BUMPER, SegmentType.STUDIO, SegmentType.USER_VIDEO,
        SegmentType.STUDIO, SegmentType.BUMPER,
    ]
    assert [s.label for s in result.segments] == [
        "bumper_opening", "studio_story_1", "user_video_story_1", "studio_story_2", "bumper_closing",
    ]
    assert "music_mix" not in runner.labels
    assert result.output_path == Path(config.paths.output) / "bulletin_42.mp4"
    assert result.output_path.exists()
    assert result.video_id is None
    assert result.total_duration == pytest.approx(20.0)

    percents = [p for p, _ in progress]
    assert percents == sorted(percents)
    assert percents[0] == 0
    assert progress[-1] == (100, "Complete")

    assert list(config.paths.work_root.glob("bulletin_*")) == []


def test_narration_segments_bracket_the_stories(config, assets, bumper, fake_runner,
                                                story_factory, bulletin_factory):
    bulletin = bulletin_factory(
        _two_stories(story_factory),
        welcome_tts_key="bulletin/welcome.wav",
        closing_tts_key="bulletin/closing.wav",
        weather_tts_key="bulletin/weather.wav",
        weather_json={"report": {"current": {"temp_c": 18, "summary": "Cloudy"}}},
    )
    runner = fake_runner()

    result = _renderer(bulletin, config, runner, assets, bumper).render()

    assert [s.label for s in result.segments] == [
        "welcome_segment", "bumper_opening", "studio_story_1", "user_video_story_1",
        "studio_story_2", "weather_segment", "closing_segment", "bumper_closing",
    ]


def test_music_bed_is_mixed_when_present(config, assets, fake_runner, story_factory,
                                         bulletin_factory, tmp_path):
    bed = tmp_path / "bed.mp3"
    bed.write_bytes(b"music")
    config.assets.music_bed = str(bed)
    runner = fake_runner()

    _renderer(bulletin_factory(_two_stories(story_factory)), config, runner, assets).render()

    assert runner.labels[-1] == "music_mix"
    assert runner.labels[-2] == "concat"


def test_published_file_exists_when_uploaded(config, assets, fake_runner, story_factory, bulletin_factory):
    publisher = RecordingPublisher()

    result = _renderer(bulletin_factory(_two_stories(story_factory)), config, fake_runner(), assets,
                       publisher=publisher).render()

    assert result.video_id == "vid-123"
    path, filename, existed = publisher.calls[0]
    assert filename == "bulletin_42.mp4"
    assert existed
    assert "Published as vid-123" in result.log


def test_failure_cleans_work_dir_and_reraises(config, assets, bumper, fake_runner,
                                              story_factory, bulletin_factory):
    renderer = _renderer(bulletin_factory(_two_stories(story_factory)), config,
                         fake_runner(fail_on="concat"), assets, bumper)

    with pytest.raises(ExternalToolError):
        renderer.render()

    assert renderer.progress.stage == RenderStage.FAILED
    assert not renderer.work_dir.exists()
    assert "Failed at 'Concatenating segments'" in renderer.collected_log()


def test_weather_failure_is_not_fatal(config, assets, fake_runner, story_factory, bulletin_factory):
    bulletin = bulletin_factory(_two_stories(story_factory), weather_tts_key="bulletin/weather.wav")
    renderer = _renderer(bulletin, config, fake_runner(fail_on="weather"), assets)

    result = renderer.render()

    assert "weather_segment" not in [s.label for s in result.segments]
    assert "Weather segment failed (non-fatal)" in result.log


def test_missing_and_empty_assets_are_absent(config, assets, fake_runner, story_factory, bulletin_factory):
    stories = [
        story_factory(1, video_key="s1/not-there.mp4", tts_key="empty.wav", poster_key="nope.jpg"),
    ]
    runner = fake_runner()

    result = _renderer(bulletin_factory(stories), config, runner, assets).render()

    assert [s.label for s in result.segments] == ["studio_story_1"]
    # no narration, so a silent card is rendered
    assert "anullsrc=r=48000:cl=stereo" in runner.command_for("studio_story_1")


def test_local_video_path_used_without_key(config, assets, fake_runner, story_factory,
                                           bulletin_factory, tmp_path):
    clip = tmp_path / "local.mov"
    clip.write_bytes(b"clip")
    stories = [story_factory(1, tts_key="s1/tts.wav", local_video_path=clip)]

    result = _renderer(bulletin_factory(stories), config, fake_runner(), assets).render()

    assert [s.label for s in result.segments] == ["studio_story_1", "user_video_story_1"]


def test_only_done_stories_in_number_order(config, assets, fake_runner, story_factory, bulletin_factory):
    from bulletin_studio.automation.automation_models import StoryStatus

    stories = [
        story_factory(3, tts_key="s2/tts.wav"),
        story_factory(1, tts_key="s1/tts.wav"),
        story_factory(2, status=StoryStatus.FAILED),
    ]
    result = _renderer(bulletin_factory(stories), config, fake_runner(), assets).render()

    assert [s.label for s in result.segments] == ["studio_story_1", "studio_story_3"]


def test_empty_bulletin_raises(config, assets, fake_runner, bulletin_factory):
    renderer = _renderer(bulletin_factory([]), config, fake_runner(), assets)
    with pytest.raises(RenderError):
        renderer.render()
    assert not renderer.work_dir.exists()


def test_progress_never_moves_backwards(config, bulletin_factory):
    seen = []
    renderer = BulletinRenderer(bulletin_factory([]), config, runner=object(),
                                on_progress=lambda p, s: seen.append(p))
    renderer.update_progress(40, "a")
    renderer.update_progress(20, "b")
    renderer.update_progress(150, "c")
    assert seen == [40, 40, 100]
    assert renderer.progress.current_step == "c"


def test_render_log_keeps_only_the_tail(config, assets, fake_runner, story_factory, bulletin_factory):
    config.jobs.log_tail_lines = 3
    renderer = _renderer(bulletin_factory(_two_stories(story_factory)), config, fake_runner(), assets)

    result = renderer.render()

    lines = result.log.splitlines()
    assert len(lines) == 3
    assert all(re.match(r"\d\d:\d\d:\d\d ", line) for line in lines)
    assert len(renderer.render_log) == 3
