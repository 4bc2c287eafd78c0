"""
Automation Data Models

Pydantic models for bulletins, their stories and render state.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, model_validator
from enum import Enum


class BulletinStatus(str, Enum):
    """Bulletin lifecycle"""
    DRAFT = "draft"
    ANALYZING = "analyzing"
    READY = "ready"
    FAILED = "failed"


class RenderStatus(str, Enum):
    """Render lifecycle of a bulletin"""
    QUEUED = "queued"
    RENDERING = "rendering"
    DONE = "done"
    FAILED = "failed"


class StoryStatus(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STORY_STATUSES = {StoryStatus.DONE, StoryStatus.FAILED}


class SubtitleCue(BaseModel):
    """One caption, timed against the estimated script length"""
    start: float = Field(ge=0)
    end: float = Field(ge=0)
    text: str = ""

    @model_validator(mode='after')
    def _check_order(self) -> 'SubtitleCue':
        if self.end <= self.start:
            raise ValueError(f"cue must end after it starts ({self.start} >= {self.end})")
        return self


class Story(BaseModel):
    """One narrated unit of a bulletin"""
    id: str
    story_number: int
    story_title: str = ""
    status: StoryStatus = StoryStatus.PENDING

    # Narration
    intro_text: Optional[str] = None
    studio_headline: Optional[str] = None
    story_emoji: Optional[str] = None
    subtitle_cues: List[SubtitleCue] = Field(default_factory=list)

    # Asset store keys
    video_key: Optional[str] = None
    tts_key: Optional[str] = None
    poster_key: Optional[str] = None
    original_filename: Optional[str] = None
    local_video_path: Optional[Path] = None

    @property
    def headline(self) -> str:
        return self.studio_headline or self.story_title.upper()

    @property
    def video_extension(self) -> str:
        suffix = Path(self.original_filename or "").suffix
        return suffix or ".mp4"

    @model_validator(mode='after')
    def _check_cue_order(self) -> 'Story':
        starts = [cue.start for cue in self.subtitle_cues]
        if any(later < earlier for earlier, later in zip(starts, starts[1:])):
            raise ValueError(f"subtitle cues of story {self.id} must be in start order")
        return self


class Bulletin(BaseModel):
    """The unit of work: an ordered set of stories rendered into one video"""
    id: str
    title: Optional[str] = None
    location: Optional[str] = None
    status: BulletinStatus = BulletinStatus.DRAFT
    stories: List[Story] = Field(default_factory=list)

    # Opaque payloads
    weather_json: Optional[Dict[str, Any]] = None
    master_json: Optional[Dict[str, Any]] = None

    # Bulletin-level narration
    welcome_tts_key: Optional[str] = None
    closing_tts_key: Optional[str] = None
    weather_tts_key: Optional[str] = None

    # Render state
    render_status: Optional[RenderStatus] = None
    render_progress: int = Field(default=0, ge=0, le=100)
    render_step: Optional[str] = None
    render_error: Optional[str] = None
    render_log: Optional[str] = None
    rendered_video_id: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def all_stories_done(self) -> bool:
        return all(s.status in TERMINAL_STORY_STATUSES for s in self.stories)

    def any_story_failed(self) -> bool:
        return any(s.status == StoryStatus.FAILED for s in self.stories)

    def render_in_progress(self) -> bool:
        return self.render_status == RenderStatus.RENDERING

    def renderable(self) -> bool:
        """Ready, every story settled, and no render running"""
        return (self.status == BulletinStatus.READY
                and self.all_stories_done()
                and not self.render_in_progress())

    def done_stories(self) -> List[Story]:
        """Stories that make it into the render, in running order"""
        done = [s for s in self.stories if s.status == StoryStatus.DONE]
        return sorted(done, key=lambda s: s.story_number)

    @model_validator(mode='after')
    def _check_story_numbers(self) -> 'Bulletin':
        numbers = [s.story_number for s in self.stories]
        if len(numbers) != len(set(numbers)):
            raise ValueError(f"story numbers must be unique in bulletin {self.id}")
        return self
