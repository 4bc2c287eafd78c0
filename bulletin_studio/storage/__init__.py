"""
Asset Storage

Staging of source assets and the cached bumper clip.
"""

from .asset_store import AssetStore, LocalAssetStore, StagingError
from .bumper_cache import BumperCache

__all__ = [
    'AssetStore',
    'LocalAssetStore',
    'StagingError',
    'BumperCache'
]
