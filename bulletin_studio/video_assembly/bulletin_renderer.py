"""
Bulletin Renderer

Top-level controller for one render attempt:
- stages story, narration and bumper inputs into a private work directory
- renders every segment in timeline order
- concatenates, mixes the music bed and publishes
- reports monotonic progress and keeps a timestamped render log
- removes the work directory whatever the outcome
"""

import secrets
import shutil
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, TypeVar

from .assembler import Assembler
from .ffmpeg_runner import FfmpegRunner
from .frame_generator import FrameGenerator
from .segment_renderer import SegmentRenderer
from .video_models import RenderProgress, RenderResult, RenderSegment, RenderStage, StoryInputs
from ..automation.automation_models import Bulletin, Story
from ..utils.logger import LoggerMixin, RenderLogBuffer

T = TypeVar('T')
ProgressCallback = Callable[[int, str], None]


class RenderError(Exception):
    """A render attempt could not produce a video"""


class BulletinRenderer(LoggerMixin):
    """Renders one bulletin into one published video"""

    def __init__(self, bulletin: Bulletin, config, runner: Optional[FfmpegRunner] = None,
                 frame_generator: Optional[FrameGenerator] = None, asset_store=None,
                 bumper_cache=None, publisher=None,
                 on_progress: Optional[ProgressCallback] = None):
        self.bulletin = bulletin
        self.config = config
        self.runner = runner or FfmpegRunner(config)
        self.frames = frame_generator or FrameGenerator(config)
        self.asset_store = asset_store
        self.bumper_cache = bumper_cache
        self.publisher = publisher
        self.on_progress = on_progress

        self.segments = SegmentRenderer(config, self.runner, self.frames)
        self.assembler = Assembler(config, self.runner)

        self.progress = RenderProgress()
        self.work_dir: Optional[Path] = None
        self.render_log = RenderLogBuffer(config.jobs.log_tail_lines)

    # Progress and log

    def log(self, message: str) -> None:
        self.logger.info(message)
        self.render_log.append(message)

    def collected_log(self) -> str:
        return self.render_log.text()

    def update_progress(self, percent: int, step: str, stage: Optional[RenderStage] = None) -> None:
        """Report progress; percent never moves backwards within one attempt"""
        percent = max(int(percent), self.progress.progress_percent)
        self.progress.progress_percent = min(percent, 100)
        self.progress.current_step = step
        if stage is not None:
            self.progress.stage = stage

        if self.on_progress is not None:
            self.on_progress(self.progress.progress_percent, step)
        self.log(f"[Render] {self.progress.progress_percent}% {step}")

    def _best_effort(self, label: str, fn: Callable[[], T]) -> Optional[T]:
        """Run optional enrichment; failures are logged and yield None"""
        try:
            return fn()
        except Exception as e:
            self.log(f"[Render] {label} failed (non-fatal): {e}")
            return None

    # Entry point

    def render(self) -> RenderResult:
        started = time.time()
        work_root = self.config.paths.work_root
        self.work_dir = work_root / f"bulletin_{self.bulletin.id}_{secrets.token_hex(4)}"
        self.work_dir.mkdir(parents=True, exist_ok=True)

        try:
            result = self._render()
            result.render_time_seconds = time.time() - started
            return result
        except Exception as e:
            self.progress.stage = RenderStage.FAILED
            self.log(f"[Render] Failed at '{self.progress.current_step}': {e}")
            raise
        finally:
            self.cleanup()

    def _render(self) -> RenderResult:
        bulletin = self.bulletin
        self.update_progress(0, "Preparing inputs", RenderStage.PREPARING)

        bumper = None
        if self.bumper_cache is not None:
            bumper = self._best_effort("Bumper fetch", self.bumper_cache.fetch)

        stories = bulletin.done_stories()
        self.log(f"[Render] Found {len(stories)} done stories: "
                 + ", ".join(f"#{s.story_number} {s.story_title}" for s in stories))

        story_inputs = self.stage_story_inputs(stories)
        welcome_tts = self.stage_narration(bulletin.welcome_tts_key, "welcome")
        closing_tts = self.stage_narration(bulletin.closing_tts_key, "closing")
        weather_tts = self.stage_narration(bulletin.weather_tts_key, "weather")

        self.update_progress(10, "Rendering segments", RenderStage.SEGMENTING)
        timeline: List[RenderSegment] = []

        if welcome_tts:
            self.update_progress(11, "Rendering welcome segment")
            timeline.append(self.segments.render_studio(
                self.work_dir / "welcome", "welcome_segment", bulletin.title, tts=welcome_tts))

        if bumper:
            timeline.append(self.segments.render_bumper(
                bumper, self.work_dir / "bumper_opening.mp4", "opening"))

        total = len(stories)
        for idx, story in enumerate(stories):
            percent = 12 + int(idx / total * 48)
            self.update_progress(percent, f"Rendering story {idx + 1}/{total}: {story.story_title}")
            timeline.extend(self.render_story(story, story_inputs[story.id]))

        if weather_tts:
            self.update_progress(64, "Rendering weather segment")
            weather = self._best_effort("Weather segment", lambda: self.segments.render_weather(
                self.work_dir / "weather", weather_tts, bulletin.weather_json))
            if weather is not None:
                timeline.append(weather)

        if closing_tts:
            self.update_progress(66, "Rendering closing segment")
            timeline.append(self.segments.render_studio(
                self.work_dir / "closing", "closing_segment", None, tts=closing_tts))

        if bumper:
            timeline.append(self.segments.render_bumper(
                bumper, self.work_dir / "bumper_closing.mp4", "closing"))

        if not timeline:
            raise RenderError(f"Bulletin {bulletin.id} has nothing to render")

        self.log(f"[Render] Total segments to concat: {len(timeline)}")
        self.update_progress(70, "Concatenating segments", RenderStage.CONCATENATING)
        concat_path = self.assembler.concat([s.path for s in timeline], self.work_dir / "concat.mp4")
        self.log(f"[Render] Concat output: {concat_path.stat().st_size / 1e6:.2f} MB")

        self.update_progress(80, "Mixing background music", RenderStage.MIXING)
        music_bed = self.assembler.music_bed()
        if music_bed is not None:
            ranges = self.assembler.build_volume_ranges(timeline)
            final_path = self.assembler.mix_background_music(
                concat_path, ranges, self.work_dir / "final.mp4", music_bed=music_bed)
        else:
            self.log("[Render] No background music file, skipping mix")
            final_path = concat_path

        output_path = self.keep_output(final_path)

        self.update_progress(90, "Publishing", RenderStage.PUBLISHING)
        video_id = None
        if self.publisher is not None:
            video_id = self.publisher.publish(output_path, filename=f"bulletin_{bulletin.id}.mp4")
            self.log(f"[Render] Published as {video_id}" if video_id else "[Render] Publishing skipped")

        self.update_progress(100, "Complete", RenderStage.COMPLETE)

        return RenderResult(
            video_id=video_id,
            log=self.collected_log(),
            output_path=output_path,
            segments=timeline,
            total_duration=sum(s.duration or 0.0 for s in timeline),
        )

    def render_story(self, story: Story, inputs: StoryInputs) -> List[RenderSegment]:
        """Studio intro, then the user clip when one was staged"""
        story_dir = self.work_dir / f"story_{story.id}"
        self.log(f"[Render] Story #{story.story_number}: {inputs.describe()}")

        rendered = [self.segments.render_studio(
            story_dir, f"studio_story_{story.story_number}", story.headline,
            tts=inputs.tts, poster=inputs.poster, emoji=story.story_emoji,
            cues=story.subtitle_cues,
        )]

        if inputs.video:
            rendered.append(self.segments.render_user_video(
                story_dir, f"user_video_story_{story.story_number}", inputs.video, story.headline))
        else:
            self.log(f"[Render] No video for story #{story.story_number}, skipping user video segment")
        return rendered

    # Staging

    def _stage(self, key: Optional[str], dest: Path, label: str) -> Optional[Path]:
        """Download one optional asset; absent when missing, empty or failed"""
        if not key:
            return None
        if self.asset_store is None:
            self.log(f"[Render] No asset store configured, {label} unavailable")
            return None

        staged = self._best_effort(f"{label} download", lambda: self.asset_store.download(key, dest))
        if staged is None:
            return None
        staged = Path(staged)
        if staged.exists() and staged.stat().st_size > 0:
            return staged
        self.log(f"[Render] {label} is empty, ignoring")
        return None

    def stage_story_inputs(self, stories: List[Story]) -> Dict[str, StoryInputs]:
        inputs = {}
        for story in stories:
            story_dir = self.work_dir / f"story_{story.id}"
            story_dir.mkdir(parents=True, exist_ok=True)
            label = f"Story {story.id}"

            video = self._stage(story.video_key, story_dir / f"video{story.video_extension}", f"{label} video")
            if video is None and not story.video_key and story.local_video_path:
                local = Path(story.local_video_path)
                if local.exists() and local.stat().st_size > 0:
                    video = local

            inputs[story.id] = StoryInputs(
                video=video,
                tts=self._stage(story.tts_key, story_dir / "tts.wav", f"{label} narration"),
                poster=self._stage(story.poster_key, story_dir / "poster.jpg", f"{label} poster"),
            )
        return inputs

    def stage_narration(self, key: Optional[str], name: str) -> Optional[Path]:
        if not key:
            return None
        return self._stage(key, self.work_dir / name / f"{name}_tts.wav", f"{name.capitalize()} narration")

    # Output and cleanup

    def keep_output(self, final_path: Path) -> Path:
        """Copy the finished file out of the work directory"""
        output_dir = Path(self.config.paths.output)
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / f"bulletin_{self.bulletin.id}.mp4"
        shutil.copyfile(final_path, output_path)
        self.log(f"[Render] Final video: {output_path} ({output_path.stat().st_size / 1e6:.2f} MB)")
        return output_path

    def cleanup(self) -> None:
        if self.work_dir is None or not self.work_dir.exists():
            return
        try:
            shutil.rmtree(self.work_dir)
            self.log("[Render] Cleaned up work dir")
        except OSError as e:
            self.logger.warning(f"[Render] Cleanup failed: {e}")
