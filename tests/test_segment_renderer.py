from __future__ import annotations

import pytest

from bulletin_studio.automation.automation_models import SubtitleCue
from bulletin_studio.video_assembly.frame_generator import FrameGenerator
from bulletin_studio.video_assembly.segment_renderer import SegmentRenderer
from bulletin_studio.video_assembly.video_models import SegmentType


def _renderer(config, runner):
    return SegmentRenderer(config, runner, FrameGenerator(config))


def _has_pair(argv, flag, value):
    return any(a == flag and b == value for a, b in zip(argv, argv[1:]))


def _assert_profile(argv):
    assert _has_pair(argv, "-vcodec", "libx264")
    assert _has_pair(argv, "-preset", "medium")
    assert _has_pair(argv, "-crf", "23")
    assert _has_pair(argv, "-pix_fmt", "yuv420p")
    assert _has_pair(argv, "-r", "30")
    assert _has_pair(argv, "-acodec", "aac")
    assert _has_pair(argv, "-ar", "48000")
    assert _has_pair(argv, "-ac", "2")
    assert _has_pair(argv, "-b:a", "128k")


def test_bumper_is_silent_and_capped(config, tmp_path, fake_runner):
    runner = fake_runner(default_duration=10.0)
    source = tmp_path / "bumper_src.mp4"
    source.write_bytes(b"clip")

    segment = _renderer(config, runner).render_bumper(source, tmp_path / "bumper_opening.mp4", "opening")

    argv = runner.command_for("bumper_opening")
    assert segment.segment_type == SegmentType.BUMPER
    assert segment.duration == 10.0
    assert _has_pair(argv, "-t", "10.0")
    assert "-shortest" in argv
    assert "anullsrc=r=48000:cl=stereo" in argv
    assert _has_pair(argv, "-map", "1:a:0")
    _assert_profile(argv)
    graph = argv[argv.index("-filter_complex") + 1]
    assert "force_original_aspect_ratio=decrease" in graph
    assert "pad=1080:1920" in graph


def test_studio_with_narration_matches_audio_length(config, tmp_path, fake_runner):
    runner = fake_runner(durations={"tts.wav": 12.3456})
    tts = tmp_path / "tts.wav"
    tts.write_bytes(b"wav")

    segment = _renderer(config, runner).render_studio(tmp_path / "story", "studio_story_1", "HEADLINE", tts=tts)

    argv = runner.command_for("studio_story_1")
    assert _has_pair(argv, "-t", "12.35")
    assert "-loop" in argv and "-framerate" in argv
    assert str(tts) in argv
    assert "anullsrc=r=48000:cl=stereo" not in argv
    _assert_profile(argv)
    assert segment.segment_type == SegmentType.STUDIO
    assert (tmp_path / "story" / "studio_story_1_frame.png").exists()


def test_studio_without_narration_is_silent_card(config, tmp_path, fake_runner):
    runner = fake_runner()
    _renderer(config, runner).render_studio(tmp_path / "story", "studio_story_2", "HEADLINE")

    argv = runner.command_for("studio_story_2")
    assert "anullsrc=r=48000:cl=stereo" in argv
    assert _has_pair(argv, "-t", "5.0")
    assert "-shortest" in argv
    _assert_profile(argv)


def test_studio_uses_anchor_loop_when_present(config, tmp_path, fake_runner):
    anchor = tmp_path / "anchor.mp4"
    anchor.write_bytes(b"loop")
    config.assets.anchor_video = str(anchor)
    runner = fake_runner(durations={"tts.wav": 7.0})
    tts = tmp_path / "tts.wav"
    tts.write_bytes(b"wav")

    _renderer(config, runner).render_studio(tmp_path / "welcome", "welcome_segment", None, tts=tts)

    argv = runner.command_for("welcome_segment")
    assert _has_pair(argv, "-stream_loop", "-1")
    assert str(anchor) in argv
    graph = argv[argv.index("-filter_complex") + 1]
    assert "overlay=0:0" in graph
    assert (tmp_path / "welcome" / "welcome_segment_overlay.png").exists()


def test_studio_burns_subtitles(config, tmp_path, fake_runner):
    runner = fake_runner(durations={"tts.wav": 8.0})
    tts = tmp_path / "tts.wav"
    tts.write_bytes(b"wav")
    cues = [SubtitleCue(start=0, end=2, text="Hi"), SubtitleCue(start=2, end=4, text="There")]

    _renderer(config, runner).render_studio(tmp_path / "s", "studio_story_1", "H", tts=tts, cues=cues)

    graph = runner.command_for("studio_story_1")
    graph = graph[graph.index("-filter_complex") + 1]
    assert "subtitles=" in graph
    ass = (tmp_path / "s" / "studio_story_1.ass").read_text(encoding="utf-8")
    assert "0:00:08.00" in ass


def test_subtitles_skipped_when_disabled(config, tmp_path, fake_runner):
    config.render.burn_subtitles = False
    runner = fake_runner()
    tts = tmp_path / "tts.wav"
    tts.write_bytes(b"wav")
    cues = [SubtitleCue(start=0, end=2, text="Hi")]

    _renderer(config, runner).render_studio(tmp_path / "s", "studio_story_1", "H", tts=tts, cues=cues)
    assert not (tmp_path / "s" / "studio_story_1.ass").exists()


def test_user_video_keeps_optional_audio(config, tmp_path, fake_runner):
    runner = fake_runner(audio=True)
    clip = tmp_path / "video.mov"
    clip.write_bytes(b"clip")

    segment = _renderer(config, runner).render_user_video(tmp_path / "s", "user_video_story_1", clip, "H")

    argv = runner.command_for("user_video_story_1")
    assert _has_pair(argv, "-map", "0:a:0?")
    assert "-sn" in argv and "-dn" in argv and "-shortest" in argv
    _assert_profile(argv)
    assert runner.audio_checks == ["check_audio_user_video_story_1"]
    assert "add_silent_audio_user_video_story_1" not in runner.labels
    assert segment.segment_type == SegmentType.USER_VIDEO


def test_user_video_without_audio_gets_silent_track(config, tmp_path, fake_runner):
    runner = fake_runner(audio=False)
    clip = tmp_path / "video.mp4"
    clip.write_bytes(b"clip")

    segment = _renderer(config, runner).render_user_video(tmp_path / "s", "user_video_story_1", clip, "H")

    argv = runner.command_for("add_silent_audio_user_video_story_1")
    assert _has_pair(argv, "-vcodec", "copy")
    assert "anullsrc=r=48000:cl=stereo" in argv
    assert "-shortest" in argv
    assert segment.path == tmp_path / "s" / "user_video_story_1.mp4"
    assert segment.path.exists()
    assert not (tmp_path / "s" / "user_video_story_1_audio.mp4").exists()


def test_weather_segment(config, tmp_path, fake_runner):
    runner = fake_runner(durations={"weather_tts.wav": 6.5})
    tts = tmp_path / "weather_tts.wav"
    tts.write_bytes(b"wav")

    segment = _renderer(config, runner).render_weather(tmp_path / "weather", tts, {"report": {}})

    argv = runner.command_for("weather_segment")
    assert _has_pair(argv, "-t", "6.5")
    assert (tmp_path / "weather" / "weather_frame.png").exists()
    assert segment.label == "weather_segment"


def test_tool_failure_propagates(config, tmp_path, fake_runner):
    from bulletin_studio.video_assembly.ffmpeg_runner import ExternalToolError

    runner = fake_runner(fail_on="studio")
    with pytest.raises(ExternalToolError):
        _renderer(config, runner).render_studio(tmp_path / "s", "studio_story_1", "H")


def test_user_video_overlay_ends_with_the_clip(config, tmp_path, fake_runner):
    runner = fake_runner(audio=False)
    clip = tmp_path / "video.mp4"
    clip.write_bytes(b"clip")

    _renderer(config, runner).render_user_video(tmp_path / "s", "user_video_story_1", clip, "H")

    argv = runner.command_for("user_video_story_1")
    graph = argv[argv.index("-filter_complex") + 1]
    assert "overlay=0:0:shortest=1" in graph


@pytest.mark.parametrize("label", ["bumper_opening", "studio_story_1", "user_video_story_1", "weather_segment"])
def test_every_segment_forces_square_pixels(config, tmp_path, fake_runner, label):
    runner = fake_runner(audio=True)
    source = tmp_path / "source.mp4"
    source.write_bytes(b"clip")
    renderer = _renderer(config, runner)

    if label == "bumper_opening":
        renderer.render_bumper(source, tmp_path / "bumper_opening.mp4", "opening")
    elif label == "studio_story_1":
        renderer.render_studio(tmp_path / "s", label, "H", tts=source)
    elif label == "user_video_story_1":
        renderer.render_user_video(tmp_path / "s", label, source, "H")
    else:
        renderer.render_weather(tmp_path / "weather", source, None)

    argv = runner.command_for(label)
    assert "setsar=1" in argv[argv.index("-filter_complex") + 1]
