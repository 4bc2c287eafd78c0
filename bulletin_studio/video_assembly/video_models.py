"""
Video Assembly Data Models

Pydantic models for the bulletin render pipeline.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field
from enum import Enum


class SegmentType(str, Enum):
    """Kinds of unit that make up a bulletin timeline"""
    BUMPER = "bumper"
    STUDIO = "studio"
    USER_VIDEO = "user_video"


class RenderStage(str, Enum):
    """Stages of one render attempt"""
    PREPARING = "preparing"
    SEGMENTING = "segmenting"
    CONCATENATING = "concatenating"
    MIXING = "mixing"
    PUBLISHING = "publishing"
    COMPLETE = "complete"
    FAILED = "failed"


class RenderSegment(BaseModel):
    """One normalized media file in the assembled timeline"""
    segment_type: SegmentType
    path: Path
    label: str
    duration: Optional[float] = None  # seconds, probed after render


class VolumeRange(BaseModel):
    """A labeled window of the assembled timeline, used for music automation"""
    start: float
    end: float
    segment_type: SegmentType

    def contains(self, t: float) -> bool:
        return self.start <= t <= self.end


class StoryInputs(BaseModel):
    """Local files staged for one story; any of them may be absent"""
    video: Optional[Path] = None
    tts: Optional[Path] = None
    poster: Optional[Path] = None

    def describe(self) -> str:
        return (f"video={self.video is not None}, tts={self.tts is not None}, "
                f"poster={self.poster is not None}")


class RenderResult(BaseModel):
    """Result of one successful render"""
    video_id: Optional[str] = None
    log: str = ""
    output_path: Optional[Path] = None
    segments: List[RenderSegment] = Field(default_factory=list)
    total_duration: float = 0.0
    render_time_seconds: float = 0.0
    created_at: datetime = Field(default_factory=datetime.now)


class RenderProgress(BaseModel):
    """Progress tracking for one render"""
    stage: RenderStage = RenderStage.PREPARING
    current_step: str = "initializing"
    progress_percent: int = Field(default=0, ge=0, le=100)
