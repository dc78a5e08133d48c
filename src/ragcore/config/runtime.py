from functools import lru_cache
from .loader import load_settings
from .config import AppSettings


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Process-wide settings for application entry points; library code takes settings explicitly."""
    return load_settings()
