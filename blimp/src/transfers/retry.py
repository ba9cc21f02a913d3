import threading
import time
from typing import Callable, Optional

from blimp.src.errors import CancelledError

Sleeper = Callable[[float], None]


def is_retryable_status(status_code: int) -> bool:
    """429 and any 5xx are worth another attempt, other statuses are final"""
    return status_code == 429 or 500 <= status_code < 600


def backoff_delay(attempt: int, base_delay: float = 0.5) -> float:
    """Exponential delay for the given 1-based attempt: base, 2*base, 4*base..."""
    return base_delay * (2 ** max(0, attempt - 1))


def linear_delay(attempt: int, step: float = 5.0) -> float:
    return step * max(1, attempt)


def pause(
    seconds: float,
    cancel_event: Optional[threading.Event] = None,
    sleep: Optional[Sleeper] = None,
) -> None:
    """Sleep between attempts, aborting early when the cancel event is set"""
    if cancel_event is not None and cancel_event.is_set():
        raise CancelledError()

    if sleep is not None:
        sleep(seconds)
    elif cancel_event is not None:
        if cancel_event.wait(seconds):
            raise CancelledError()
        return
    else:
        time.sleep(seconds)

    if cancel_event is not None and cancel_event.is_set():
        raise CancelledError()
