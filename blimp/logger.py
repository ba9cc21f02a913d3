from functools import lru_cache

from rich.console import Console


@lru_cache(maxsize=1)
def get_console() -> Console:
    """Get or create the shared Console instance used by every blimp module"""
    return Console(log_path=False, highlight=False)
