"""
Publishing

Upload of finished bulletins to Cloudflare Stream.
"""

from .publisher import Publisher
from .stream_client import StreamClient, PublishError

__all__ = [
    'Publisher',
    'StreamClient',
    'PublishError'
]
