import numpy as np
import pytest

from form_coach.config import ExerciseKind
from form_coach.rep_logic import Issue, RepEvent
from form_coach.scoring import DEDUCTIONS, FormScoreTracker, score_rep


def _event(*issues, kind=ExerciseKind.PULL_UP):
    return RepEvent(kind=kind, issues=tuple(issues))


class TestScoreRep:

    def test_clean_rep_is_100(self):
        assert score_rep([]) == 100.0

    def test_pullup_deductions(self):
        assert score_rep([Issue.PARTIAL_TOP_ROM]) == 75.0
        assert score_rep([Issue.ASYMMETRY]) == 70.0
        assert score_rep([Issue.ASYMMETRY, Issue.PARTIAL_TOP_ROM, Issue.PARTIAL_BOTTOM_ROM]) == 20.0

    def test_jump_deductions(self):
        assert score_rep([Issue.STIFF_LANDING]) == 100.0 - DEDUCTIONS[Issue.STIFF_LANDING]

    def test_duplicates_do_not_stack(self):
        assert score_rep([Issue.ASYMMETRY, Issue.ASYMMETRY]) == 70.0

    def test_clamped_at_zero(self):
        assert score_rep(list(Issue)) == 0.0


class TestFormScoreTracker:

    def test_empty_average_is_neutral(self):
        tracker = FormScoreTracker()
        assert tracker.rolling_average == 100.0
        assert not np.isnan(tracker.rolling_average)
        assert tracker.last_record is None

    def test_keeps_last_five(self):
        tracker = FormScoreTracker()
        issue_sets = [
            (Issue.ASYMMETRY, Issue.PARTIAL_TOP_ROM),  # 45, evicted
            (),                                        # 100
            (Issue.PARTIAL_TOP_ROM,),                  # 75
            (Issue.ASYMMETRY,),                        # 70
            (),                                        # 100
            (Issue.PARTIAL_BOTTOM_ROM,),               # 75
        ]
        for t, issues in enumerate(issue_sets):
            tracker.record(_event(*issues), timestamp=float(t))

        assert len(tracker.records) == 5
        assert tracker.scores == [100.0, 75.0, 70.0, 100.0, 75.0]
        assert tracker.rolling_average == pytest.approx(np.mean([100, 75, 70, 100, 75]))

    def test_last_rep_issues_follow_latest(self):
        tracker = FormScoreTracker()
        tracker.record(_event(Issue.ASYMMETRY), timestamp=1.0)
        assert tracker.last_rep_issues == frozenset({Issue.ASYMMETRY})
        tracker.record(_event(), timestamp=2.0)
        assert tracker.last_rep_issues == frozenset()

    def test_summarize(self):
        tracker = FormScoreTracker()
        tracker.record(_event(Issue.STIFF_LANDING, kind=ExerciseKind.JUMP), timestamp=1.0)
        tracker.record(_event(kind=ExerciseKind.JUMP), timestamp=2.0)
        summary = tracker.summarize()
        assert summary["reps_in_window"] == 2
        assert summary["best_score"] == 100.0
        assert summary["worst_score"] == 80.0
        assert summary["issue_counts"] == {"stiff_landing": 1}
