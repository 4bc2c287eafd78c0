"""
Assembler

Joins normalized segments into one timeline and lays a looping music bed
under it, with volume automation keyed to the segment types.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Union

import ffmpeg

from .ffmpeg_runner import FfmpegRunner
from .video_models import RenderSegment, SegmentType, VolumeRange
from ..utils.logger import LoggerMixin

PathLike = Union[str, Path]


def _fmt(value: float) -> str:
    """Compact number for filter expressions (5.0 -> 5, 5.5556 -> 5.5556)"""
    return f"{value:.4f}".rstrip('0').rstrip('.') or "0"


def concat_entry(path: PathLike) -> str:
    """One concat-demuxer manifest line; single quotes are closed, escaped and reopened"""
    quoted = str(Path(path).absolute()).replace("'", "'\\''")
    return f"file '{quoted}'"


class Assembler(LoggerMixin):
    """Concatenation and background-music mixing"""

    def __init__(self, config, runner: FfmpegRunner):
        self.config = config
        self.runner = runner
        self.music = config.music
        self.render = config.render

    def concat(self, paths: Sequence[PathLike], output: PathLike) -> Path:
        """Stream-copy join of segment files in timeline order"""
        output = Path(output)
        concat_file = output.parent / "concat_list.txt"
        with open(concat_file, 'w', encoding='utf-8') as f:
            for path in paths:
                f.write(concat_entry(path) + "\n")

        stream = (
            ffmpeg
            .input(str(concat_file), f='concat', safe=0)
            .output(str(output), c='copy')
        )
        cmd = ffmpeg.compile(stream, cmd=self.render.ffmpeg_bin, overwrite_output=True)
        self.runner.run(cmd, label="concat")
        return output

    def build_volume_ranges(self, segments: Sequence[RenderSegment]) -> List[VolumeRange]:
        """Accumulate segment durations into labeled timeline windows"""
        ranges = []
        offset = 0.0
        for segment in segments:
            duration = segment.duration
            if duration is None:
                duration = self.runner.probe_duration(segment.path)
            ranges.append(VolumeRange(
                start=round(offset, 2),
                end=round(offset + duration, 2),
                segment_type=segment.segment_type,
            ))
            offset += duration

        self.logger.info("Music volume ranges: " + ", ".join(
            f"{r.start}-{r.end}s={r.segment_type.value}" for r in ranges))
        return ranges

    def range_multiplier(self, segment_type: SegmentType) -> Optional[float]:
        """Per-range multiplier on top of the base gain; None where the base applies"""
        base = self.music.base_gain
        if segment_type == SegmentType.USER_VIDEO:
            return self.music.user_video_gain / base if base else 0.0
        if segment_type == SegmentType.BUMPER:
            return round(self.music.bumper_gain / base, 4) if base else 0.0
        return None

    def build_volume_filter(self, ranges: Sequence[VolumeRange]) -> str:
        filters = [f"volume={_fmt(self.music.base_gain)}"]
        for r in ranges:
            multiplier = self.range_multiplier(r.segment_type)
            if multiplier is None:
                continue
            filters.append(
                f"volume=volume={_fmt(multiplier)}:enable='between(t,{r.start},{r.end})'"
            )

        chain = ",".join(filters)
        self.logger.info(f"Volume filter chain: {chain}")
        return f"[1:a]{chain}"

    def effective_gain(self, ranges: Sequence[VolumeRange], t: float) -> float:
        """Music gain the filter chain yields at timestamp t"""
        gain = self.music.base_gain
        for r in ranges:
            multiplier = self.range_multiplier(r.segment_type)
            if multiplier is not None and r.contains(t):
                gain *= multiplier
        return gain

    def mix_background_music(self, concat_path: PathLike, ranges: Sequence[VolumeRange],
                             output: PathLike, music_bed: Optional[PathLike] = None) -> Path:
        """
        Mix the looping music bed under the assembled track.

        Returns concat_path unchanged when no music bed is available.
        """
        music_bed = music_bed or self.music_bed()
        if music_bed is None:
            self.logger.info("No background music file, skipping mix")
            return Path(concat_path)

        output = Path(output)
        filter_file = output.parent / "music_filter.txt"
        with open(filter_file, 'w', encoding='utf-8') as f:
            f.write(
                f"{self.build_volume_filter(ranges)}[music];"
                f"[0:a][music]amix=inputs=2:duration=first:"
                f"dropout_transition={self.music.dropout_transition}:normalize=0[aout]"
            )

        r = self.render
        # The enable= expressions need their commas intact, so the graph goes
        # through -filter_complex_script instead of ffmpeg-python's escaping.
        cmd = [
            r.ffmpeg_bin, "-y",
            "-i", str(concat_path),
            "-stream_loop", "-1", "-i", str(music_bed),
            "-filter_complex_script", str(filter_file),
            "-map", "0:v:0", "-map", "[aout]",
            "-c:v", "copy",
            "-c:a", r.audio_codec, "-ar", str(r.audio_sample_rate),
            "-ac", str(r.audio_channels), "-b:a", r.audio_bitrate,
            str(output),
        ]
        self.runner.run(cmd, label="music_mix")
        return output

    def music_bed(self) -> Optional[Path]:
        configured = self.config.assets.music_bed
        if configured and Path(configured).exists():
            return Path(configured)
        return None
