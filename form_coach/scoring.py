# form_coach/scoring.py

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, FrozenSet, Iterable, List, Optional

import numpy as np

from form_coach.rep_logic import Issue, RepEvent

logger = logging.getLogger(__name__)

MAX_SCORE = 100.0
ROLLING_WINDOW = 5

# Flat deductions, each issue counted once per rep
DEDUCTIONS: Dict[Issue, float] = {
    # pull-ups
    Issue.ASYMMETRY: 30.0,
    Issue.PARTIAL_TOP_ROM: 25.0,
    Issue.PARTIAL_BOTTOM_ROM: 25.0,
    # jumps
    Issue.STIFF_LANDING: 20.0,
    Issue.LOW_JUMP: 20.0,
    Issue.ASYMMETRIC_LANDING: 15.0,
}


def score_rep(issues: Iterable[Issue]) -> float:
    score = MAX_SCORE - sum(DEDUCTIONS.get(issue, 0.0) for issue in set(issues))
    return float(min(MAX_SCORE, max(0.0, score)))


@dataclass
class RepRecord:
    timestamp: float
    score: float
    issues: FrozenSet[Issue] = frozenset()
    details: Dict[str, float] = field(default_factory=dict)


class FormScoreTracker:
    """Rolling score over the last few reps plus the issues of the latest one."""

    def __init__(self, window: int = ROLLING_WINDOW):
        self.records: Deque[RepRecord] = deque(maxlen=window)
        self.last_rep_issues: FrozenSet[Issue] = frozenset()

    def record(self, event: RepEvent, timestamp: float) -> RepRecord:
        rec = RepRecord(
            timestamp=timestamp,
            score=score_rep(event.issues),
            issues=frozenset(event.issues),
            details=dict(event.details),
        )
        self.records.append(rec)
        self.last_rep_issues = rec.issues
        logger.info("rep scored %.0f (issues: %s), rolling average %.1f",
                    rec.score, sorted(i.value for i in rec.issues) or "none",
                    self.rolling_average)
        return rec

    @property
    def rolling_average(self) -> float:
        if not self.records:
            return MAX_SCORE
        return float(np.mean([r.score for r in self.records]))

    @property
    def scores(self) -> List[float]:
        return [r.score for r in self.records]

    @property
    def last_record(self) -> Optional[RepRecord]:
        return self.records[-1] if self.records else None

    def summarize(self) -> Dict[str, object]:
        """Window summary used for the end-of-set coaching payload."""
        scores = self.scores
        issue_counts = Counter(i.value for r in self.records for i in r.issues)
        return {
            "reps_in_window": len(scores),
            "average_score": self.rolling_average,
            "best_score": max(scores) if scores else None,
            "worst_score": min(scores) if scores else None,
            "issue_counts": dict(issue_counts),
        }
