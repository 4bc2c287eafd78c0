from .config import Config
from .logger import setup_logging, LoggerMixin

__all__ = ['Config', 'setup_logging', 'LoggerMixin']
