import json
import logging
from collections.abc import Callable, Hashable, Sequence
from datetime import UTC, datetime
from pathlib import Path

import numpy as np

LOGGER = logging.getLogger(__name__)


def append_jsonl(event_type: str, payload: dict, path: str | Path) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    record = {
        "timestamp": datetime.now(UTC).isoformat(),
        "event_type": event_type,
        "payload": payload,
    }
    with target.open("a", encoding="utf-8") as f:
        f.write(json.dumps(record, ensure_ascii=False) + "\n")


def _format_entry(rank: int, candidate: Hashable, score: float, serializer) -> str:
    return f"N. {rank:>4,}: '{serializer(candidate)}' (score: {score:.6f})"


def log_generation_report(
    generation: int,
    ranked: Sequence[Hashable],
    scores: dict[Hashable, float],
    serializer: Callable[[Hashable], str],
    best: int = 1,
    worst: int = 0,
    median: bool = False,
    average: bool = False,
) -> None:
    """Log the elite archive of one generation, best first, at INFO level."""
    if not ranked:
        return
    lines = [f"Generation: {generation:,}"]
    for i in range(min(best, len(ranked))):
        lines.append(_format_entry(i + 1, ranked[i], scores[ranked[i]], serializer))
    if median:
        mid = len(ranked) // 2
        lines.append(_format_entry(mid + 1, ranked[mid], scores[ranked[mid]], serializer))
    for i in range(max(0, len(ranked) - worst), len(ranked)):
        lines.append(_format_entry(i + 1, ranked[i], scores[ranked[i]], serializer))
    if average:
        mean = float(np.mean([scores[x] for x in ranked]))
        lines.append(f"Average score: {mean:.6f}")
    LOGGER.info("\n".join(lines))
