"""
Console logging for likedgenres.

Messages are timestamped and written through tqdm so they never tear
an active progress bar. A custom sink can be installed with set_log_fn()
(e.g. to buffer output for a notification or a UI).
"""

import time
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Optional

from tqdm import tqdm

# Global log function override (set by callers that want to capture output)
_log_fn: Optional[Callable[[str], None]] = None
# Global verbose flag (set by command-line argument)
_verbose = False


def set_log_fn(fn: Optional[Callable[[str], None]]) -> None:
    """Route all log lines to `fn` instead of the console. Pass None to reset."""
    global _log_fn
    _log_fn = fn


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = bool(enabled)


def is_verbose() -> bool:
    return _verbose


def log(msg: str) -> None:
    """Print message with timestamp.

    Uses tqdm.write() to avoid interfering with progress bars.
    """
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    log_line = f"[{timestamp}] {msg}"
    if _log_fn:
        _log_fn(log_line)
    else:
        tqdm.write(log_line)


def verbose_log(msg: str) -> None:
    """Print verbose message only if verbose mode is enabled.

    Uses same formatting as log() but only prints when --verbose is set.
    """
    if _verbose:
        log(f"🔍 [VERBOSE] {msg}")


@contextmanager
def timed_step(step_name: str):
    """Context manager to time and log execution of a step."""
    start_time = time.time()
    log(f"⏱️  [START] {step_name}")
    try:
        yield
    finally:
        elapsed = time.time() - start_time
        log(f"⏱️  [END] {step_name} (took {elapsed:.2f}s)")
