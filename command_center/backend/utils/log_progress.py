"""Training progress extraction from remote log tails."""

import re
from typing import Any, Dict, Optional

MAX_MESSAGE_LENGTH = 200

# Ordered by preference; the first pattern matching any line wins
PROGRESS_PATTERNS = [
    # Epoch X/Y (common in PyTorch training)
    re.compile(r"[Ee]poch[:\s]+(\d+)[/\s]+(\d+)"),
    re.compile(r"[Ee]poch[:\s]+(\d+)\s+of\s+(\d+)", re.IGNORECASE),
    # Step X/Y
    re.compile(r"[Ss]tep[:\s]+(\d+)[/\s]+(\d+)"),
    re.compile(r"[Ss]tep[:\s]+(\d+)\s+of\s+(\d+)", re.IGNORECASE),
    # Iteration X/Y
    re.compile(r"[Ii]ter(?:ation)?[:\s]+(\d+)[/\s]+(\d+)"),
    # Percentage
    re.compile(r"(\d+(?:\.\d+)?)\s*%"),
    # Progress bar [====>   ] X/Y
    re.compile(r"\[[\s=>#\-]+\]\s*(\d+)[/\s]+(\d+)"),
]

METRIC_PATTERNS = {
    "loss": re.compile(r"loss[:\s=]+(\d+\.\d+)", re.IGNORECASE),
    "train_loss": re.compile(r"train_loss[:\s=]+(\d+\.\d+)", re.IGNORECASE),
    "val_loss": re.compile(r"val(?:idation)?_loss[:\s=]+(\d+\.\d+)", re.IGNORECASE),
    "accuracy": re.compile(r"acc(?:uracy)?[:\s=]+(\d+\.\d+)", re.IGNORECASE),
    "learning_rate": re.compile(
        r"(?:lr|learning_rate)[:\s=]+(\d+\.?\d*(?:e-?\d+)?)", re.IGNORECASE
    ),
}


def parse_log_progress(log_content: str) -> Optional[Dict[str, Any]]:
    """Parse the tail of a training log for progress and metrics.

    Lines are scanned newest first, so the most recent report wins.

    Args:
        log_content: Raw text, typically the last 50 lines of the log

    Returns:
        Dict with optional ``current``, ``total``, ``message`` and
        ``metrics`` keys, or None when nothing recognizable was found.
    """
    if not log_content:
        return None

    lines = list(reversed(log_content.splitlines()))
    progress: Dict[str, Any] = {}

    for pattern in PROGRESS_PATTERNS:
        for line in lines:
            match = pattern.search(line)
            if not match:
                continue
            if pattern.groups == 2:
                progress["current"] = int(match.group(1))
                progress["total"] = int(match.group(2))
            else:
                progress["current"] = int(round(float(match.group(1))))
                progress["total"] = 100
            progress["message"] = line.strip()[:MAX_MESSAGE_LENGTH]
            break
        if "current" in progress:
            break

    metrics: Dict[str, float] = {}
    for line in lines:
        for name, pattern in METRIC_PATTERNS.items():
            if name in metrics:
                continue
            match = pattern.search(line)
            if match:
                try:
                    metrics[name] = float(match.group(1))
                except ValueError:
                    continue

    if metrics:
        progress["metrics"] = metrics

    return progress or None


def progress_percent(current: Optional[int], total: Optional[int]) -> Optional[int]:
    """Percentage complete, or None when the total is unknown."""
    if current is None or not total or total <= 0:
        return None
    return round(current / total * 100)
