"""
Save individual hand samples to disk for offline inspection.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from .hand_sampler import HandSample
from .message import HandFrame

logger = logging.getLogger(__name__)


def save_hand_sample(
    sample: HandSample,
    directory: Union[str, Path],
    label: str,
    now: Optional[datetime] = None,
) -> Path:
    """
    Write one hand's landmarks as hand_landmarks_<label>_<timestamp>.json.

    Args:
        sample: A valid hand sample
        directory: Output directory (created if missing)
        label: Hand label used in the file name (e.g. "left")
        now: Timestamp for the file name (defaults to the current time)

    Returns:
        Path of the written file
    """
    if not sample.valid:
        raise ValueError(f"Refusing to save invalid {label} hand sample")

    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    path = directory / f"hand_landmarks_{label}_{stamp}.json"

    path.write_text(json.dumps(HandFrame.from_sample(sample).to_dict(), indent=2), encoding='utf-8')
    logger.info(f"Saved {label} landmarks to: {path}")
    return path
