"""
Automation System

Bulletin records, render locking and background render jobs.
"""

from .automation_models import Bulletin, Story, SubtitleCue, BulletinStatus, RenderStatus, StoryStatus
from .bulletin_store import BulletinStore, JsonBulletinStore, InMemoryBulletinStore, BulletinNotFoundError
from .render_lock import FileAdvisoryLock, InMemoryLockTable, lock_from_config

__all__ = [
    'Bulletin',
    'Story',
    'SubtitleCue',
    'BulletinStatus',
    'RenderStatus',
    'StoryStatus',
    'BulletinStore',
    'JsonBulletinStore',
    'InMemoryBulletinStore',
    'BulletinNotFoundError',
    'FileAdvisoryLock',
    'InMemoryLockTable',
    'lock_from_config'
]
