import logging
import os
import threading

from subscriptions import sweep_expired

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_S = float(os.environ.get("SUBSCRIPTION_SWEEP_INTERVAL_S", "3600"))
ERROR_BACKOFF_S = 60.0

_sweeper_thread: threading.Thread | None = None
_stop_event = threading.Event()


def run_once() -> int:
    """One sweep. Returns the number deactivated, or -1 if the sweep raised."""
    try:
        return sweep_expired()
    except Exception as e:
        logger.error(f"Subscription sweep failed: {e}", exc_info=True)
        return -1


def _sweeper_loop(interval_s: float):
    """Background sweeper: deactivate lapsed subscriptions every interval."""
    logger.info(f"Subscription sweeper started (interval={interval_s:.0f}s)")
    wait_s = interval_s
    while not _stop_event.wait(timeout=wait_s):
        result = run_once()
        wait_s = min(ERROR_BACKOFF_S, interval_s) if result < 0 else interval_s
    logger.info("Subscription sweeper stopped")


def start_sweeper(interval_s: float = SWEEP_INTERVAL_S):
    global _sweeper_thread
    _stop_event.clear()
    _sweeper_thread = threading.Thread(
        target=_sweeper_loop, args=(interval_s,), daemon=True, name="subscription-sweeper"
    )
    _sweeper_thread.start()


def stop_sweeper():
    _stop_event.set()
    if _sweeper_thread:
        _sweeper_thread.join(timeout=30)
