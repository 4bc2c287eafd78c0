"""
Bulletin Studio

Assembles narrated news bulletins into vertical videos and publishes them.
"""

__version__ = "0.1.0"
