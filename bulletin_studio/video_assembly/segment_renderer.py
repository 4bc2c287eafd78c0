"""
Segment Renderer

Turns one logical timeline unit into one normalized media file:
- bumpers (re-encoded, silent, capped)
- studio narration over the anchor loop or a static frame
- user clips with an info bar, guaranteed to carry audio
- the weather card

Every output shares one video profile and one audio profile so the
assembler can join them with a stream copy.
"""

import shutil
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import ffmpeg

from .ffmpeg_runner import FfmpegRunner
from .frame_generator import FrameGenerator
from .subtitle_generator import SubtitleGenerator
from .video_models import RenderSegment, SegmentType
from ..utils.logger import LoggerMixin

PathLike = Union[str, Path]


class SegmentRenderer(LoggerMixin):
    """Renders bumper, studio, user video and weather segments"""

    def __init__(self, config, runner: FfmpegRunner, frame_generator: FrameGenerator,
                 subtitle_generator: Optional[SubtitleGenerator] = None):
        self.config = config
        self.render = config.render
        self.runner = runner
        self.frames = frame_generator
        self.width, self.height = self.render.size
        self.subtitles = subtitle_generator or SubtitleGenerator(self.width, self.height)

        anchor = config.assets.anchor_video
        self.anchor_video = Path(anchor) if anchor and Path(anchor).exists() else None
        background = config.assets.studio_background
        self.studio_background = Path(background) if background and Path(background).exists() else None

        if self.anchor_video is None:
            self.logger.info("No anchor loop configured, studio segments use static frames")

    # Shared building blocks

    def _encode_args(self, **extra) -> Dict[str, Any]:
        r = self.render
        args = {
            'r': r.fps,
            'vcodec': r.video_codec,
            'preset': r.video_preset,
            'crf': r.crf,
            'pix_fmt': r.pix_fmt,
        }
        args.update(self._audio_args())
        args.update(extra)
        return args

    def _audio_args(self) -> Dict[str, Any]:
        r = self.render
        return {
            'acodec': r.audio_codec,
            'ar': r.audio_sample_rate,
            'ac': r.audio_channels,
            'audio_bitrate': r.audio_bitrate,
        }

    def _silent_audio(self):
        layout = "stereo" if self.render.audio_channels == 2 else "mono"
        return ffmpeg.input(f"anullsrc=r={self.render.audio_sample_rate}:cl={layout}", f='lavfi')

    def _fit(self, video):
        """Scale to fit, pad to the canvas, force constant frame rate"""
        return (
            video
            .filter('scale', self.width, self.height, force_original_aspect_ratio='decrease')
            .filter('pad', self.width, self.height, '(ow-iw)/2', '(oh-ih)/2', color='black')
            .filter('fps', fps=self.render.fps)
            .filter('setsar', 1)
        )

    def _looped_image(self, path: PathLike):
        return ffmpeg.input(str(path), loop=1, framerate=self.render.fps)

    def _run(self, stream, label: str) -> None:
        cmd = ffmpeg.compile(stream, cmd=self.render.ffmpeg_bin, overwrite_output=True)
        self.runner.run(cmd, label=label)

    def _segment(self, segment_type: SegmentType, path: Path, label: str) -> RenderSegment:
        duration = self.runner.probe_duration(path)
        self.logger.info(f"[Segment] {label} duration: {duration:.2f}s")
        return RenderSegment(segment_type=segment_type, path=path, label=label, duration=duration)

    # Segments

    def render_bumper(self, source: PathLike, output: PathLike, label: str) -> RenderSegment:
        """Re-encode the bumper clip with silent audio, capped in length"""
        output = Path(output)
        clip = ffmpeg.input(str(source))
        video = self._fit(clip['v:0'])
        silent = self._silent_audio()

        stream = ffmpeg.output(
            video, silent['a:0'], str(output),
            t=self.render.bumper_max_seconds,
            shortest=None,
            **self._encode_args()
        )
        self._run(stream, f"bumper_{label}")
        return self._segment(SegmentType.BUMPER, output, f"bumper_{label}")

    def render_studio(self, work_dir: PathLike, label: str, headline: Optional[str],
                      tts: Optional[PathLike] = None, poster: Optional[PathLike] = None,
                      emoji: Optional[str] = None, cues: Optional[Iterable[Any]] = None) -> RenderSegment:
        """
        Narrated studio segment.

        With narration the segment lasts exactly as long as the probed audio;
        without it, a silent card of render.silent_studio_seconds is produced.
        """
        work_dir = Path(work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)
        output = work_dir / f"{label}.mp4"

        duration = None
        if tts:
            duration = round(self.runner.probe_duration(tts), 2)

        if self.anchor_video is not None:
            overlay_path = self.frames.studio_overlay(headline, work_dir / f"{label}_overlay.png",
                                                      poster=poster, emoji=emoji)
            anchor = ffmpeg.input(str(self.anchor_video), stream_loop=-1)
            video = ffmpeg.filter([self._fit(anchor.video), self._looped_image(overlay_path).video],
                                  'overlay', 0, 0)
        else:
            frame_path = self.frames.story_frame(self.studio_background, poster, emoji, headline,
                                                 work_dir / f"{label}_frame.png")
            video = (
                self._looped_image(frame_path).video
                .filter('scale', self.width, self.height)
                .filter('setsar', 1)
                .filter('fps', fps=self.render.fps)
            )

        if tts and cues and self.render.burn_subtitles:
            ass_path = self.subtitles.generate(cues, duration, work_dir / f"{label}.ass")
            if ass_path is not None:
                video = video.filter('subtitles', str(ass_path))

        if tts:
            audio = ffmpeg.input(str(tts))['a:0']
            stream = ffmpeg.output(video, audio, str(output), t=duration, **self._encode_args())
        else:
            stream = ffmpeg.output(
                video, self._silent_audio()['a:0'], str(output),
                t=self.render.silent_studio_seconds,
                shortest=None,
                **self._encode_args()
            )

        self._run(stream, label)
        return self._segment(SegmentType.STUDIO, output, label)

    def render_user_video(self, work_dir: PathLike, label: str, video: PathLike,
                          headline: Optional[str]) -> RenderSegment:
        """User clip with info bar; re-probed and patched with silence if it has no audio"""
        work_dir = Path(work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)
        output = work_dir / f"{label}.mp4"

        overlay_path = self.frames.user_video_overlay(headline, work_dir / f"{label}_overlay.png")
        clip = ffmpeg.input(str(video))
        # The looped overlay never ends, so the clip's video sets the length;
        # -shortest alone cannot stop a clip that has no audio.
        composed = ffmpeg.filter([self._fit(clip.video), self._looped_image(overlay_path).video],
                                 'overlay', 0, 0, shortest=1)

        stream = ffmpeg.output(
            composed, clip['a:0?'], str(output),
            sn=None, dn=None, shortest=None,
            **self._encode_args()
        )
        self._run(stream, label)

        if not self.runner.has_audio_stream(output, label=f"check_audio_{label}"):
            self.logger.info(f"[Segment] {label} has no audio stream, adding silence")
            patched = work_dir / f"{label}_audio.mp4"
            source = ffmpeg.input(str(output))
            stream = ffmpeg.output(
                source['v:0'], self._silent_audio()['a:0'], str(patched),
                vcodec='copy', shortest=None,
                **self._audio_args()
            )
            self._run(stream, f"add_silent_audio_{label}")
            shutil.move(str(patched), str(output))

        return self._segment(SegmentType.USER_VIDEO, output, label)

    def render_weather(self, work_dir: PathLike, tts: PathLike,
                       weather_data: Optional[Dict[str, Any]]) -> RenderSegment:
        work_dir = Path(work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)
        output = work_dir / "weather_segment.mp4"

        frame_path = self.frames.weather_frame(self.studio_background, weather_data,
                                               work_dir / "weather_frame.png")
        duration = round(self.runner.probe_duration(tts), 2)

        video = (
            self._looped_image(frame_path).video
            .filter('scale', self.width, self.height)
            .filter('setsar', 1)
            .filter('fps', fps=self.render.fps)
        )
        stream = ffmpeg.output(video, ffmpeg.input(str(tts))['a:0'], str(output),
                               t=duration, **self._encode_args())
        self._run(stream, "weather_segment")
        return self._segment(SegmentType.STUDIO, output, "weather_segment")
