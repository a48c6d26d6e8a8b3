import logging

import librosa  # ty: ignore[unresolved-import]

logger = logging.getLogger(__name__)

MAX_DURATION_S = 3600


def probe_duration(file_path: str) -> int:
    """Duration of an audio file in whole seconds, clamped to 1..MAX_DURATION_S."""
    seconds = float(librosa.get_duration(path=file_path))
    duration_s = min(max(int(round(seconds)), 1), MAX_DURATION_S)
    logger.info(f"Probed duration of {file_path}: {seconds:.1f}s")
    return duration_s
