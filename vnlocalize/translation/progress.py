"""
Translation Progress Data Class

Contains the TranslationProgress dataclass for tracking a translation run.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict

PHASE_STARTING = "starting"
PHASE_TM_PREFILL = "tm_prefill"
PHASE_BATCH_DONE = "batch_done"
PHASE_COMPLETED = "completed"


@dataclass
class TranslationProgress:
    """Progress information for an ongoing run."""
    file_id: str
    done: int = 0                    # Items finished (TM hits + committed batch items)
    total: int = 0                   # Candidates in scope
    tm_filled: int = 0               # Items filled from translation memory
    current_batch: int = 0           # Last committed batch number (1-indexed)
    total_batches: int = 0
    batch_size: int = 0
    phase: str = PHASE_STARTING      # "starting", "tm_prefill", "batch_done", "completed"
    warning_count: int = 0

    @property
    def percent(self) -> float:
        return round(self.done * 100.0 / self.total, 1) if self.total else 100.0

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["percent"] = self.percent
        return payload
