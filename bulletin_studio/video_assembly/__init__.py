"""
Video Assembly Pipeline

This module handles bulletin rendering end to end, combining:
- Narration audio (TTS)
- Generated frames and overlays
- User clips and bumpers
- Background music automation
- Final concatenation

Every segment is normalized to one 1080x1920 H.264/AAC profile.
"""

from .bulletin_renderer import BulletinRenderer, RenderError
from .ffmpeg_runner import FfmpegRunner, FfmpegError, ExternalToolError, ToolTimeoutError, ProbeError
from .video_models import RenderResult, RenderSegment, SegmentType, VolumeRange

__all__ = [
    'BulletinRenderer',
    'RenderError',
    'FfmpegRunner',
    'FfmpegError',
    'ExternalToolError',
    'ToolTimeoutError',
    'ProbeError',
    'RenderResult',
    'RenderSegment',
    'SegmentType',
    'VolumeRange'
]
