# form_coach/rep_logic.py

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from form_coach.config import (
    DETECTION_CONFIDENCE,
    ExerciseKind,
    JumpThresholds,
    PullupThresholds,
    get_exercise_config,
)
from form_coach.pose_utils import (
    PoseFrame,
    elbow_angles,
    knee_angles,
    symmetry_delta,
    vertical_displacement,
    wrists_above_shoulders,
)

logger = logging.getLogger(__name__)


class RepState(str, Enum):
    DOWN = "DOWN"
    UP = "UP"
    GROUNDED = "GROUNDED"
    AIRBORNE = "AIRBORNE"


class Issue(str, Enum):
    ASYMMETRY = "asymmetry"
    PARTIAL_TOP_ROM = "partial_top_rom"
    PARTIAL_BOTTOM_ROM = "partial_bottom_rom"
    STIFF_LANDING = "stiff_landing"
    LOW_JUMP = "low_jump"
    ASYMMETRIC_LANDING = "asymmetric_landing"


INITIAL_STATE: Dict[ExerciseKind, RepState] = {
    ExerciseKind.PULL_UP: RepState.DOWN,
    ExerciseKind.JUMP: RepState.GROUNDED,
}


@dataclass
class RepEvent:
    kind: ExerciseKind
    issues: Tuple[Issue, ...] = ()
    details: Dict[str, float] = field(default_factory=dict)


@dataclass
class StepResult:
    state: RepState
    rep_event: Optional[RepEvent] = None
    issues: Tuple[Issue, ...] = ()
    evaluated: bool = True
    angles: Dict[str, float] = field(default_factory=dict)


@dataclass
class RepTracker:
    """
    Mutable per-session handle for one exercise's rep detection:
    the current RepState plus whatever has been collected for the rep
    in progress. Cleared after every completed rep.
    """
    state: RepState
    pending_issues: List[Issue] = field(default_factory=list)

    # pull-ups
    hang_extension: Optional[float] = None
    last_bottom_extension: float = 0.0
    peak_elbow_flexion: float = 180.0
    max_asymmetry: float = 0.0
    pull_started: bool = False
    chin_cleared: bool = False

    # jumps
    peak_height: float = 0.0
    takeoff_time: Optional[float] = None

    def add_issues(self, issues: List[Issue]) -> None:
        for issue in issues:
            if issue not in self.pending_issues:
                self.pending_issues.append(issue)

    def clear_rep(self) -> None:
        self.pending_issues = []
        self.hang_extension = None
        self.peak_elbow_flexion = 180.0
        self.max_asymmetry = 0.0
        self.pull_started = False
        self.chin_cleared = False
        self.peak_height = 0.0
        self.takeoff_time = None


def create_tracker(kind: ExerciseKind) -> RepTracker:
    return RepTracker(state=INITIAL_STATE[kind])


# -------------------------------------------------------------
# Pull-ups
# -------------------------------------------------------------

class PullupStateMachine:
    """
    DOWN -> UP when both elbows bend past top_angle,
    UP -> DOWN (rep completed) when both elbows extend past complete_angle.

    A pull that bends the elbows past pull_angle but turns back before
    reaching top_angle is still counted, as a partial rep; the state
    never leaves DOWN for it.

    Frames where the wrists are not above the shoulders are dropped:
    bending the arms while standing is not a pull-up.

    Form checks:
      - partial_top_rom: nose not above both wrists when reaching UP
      - partial_bottom_rom: either elbow short of full_extension_angle,
        on the frame that completes the rep or in the hang before the pull
      - asymmetry: elbow angles differ by more than asymmetry_deg at
        either transition
    """

    kind = ExerciseKind.PULL_UP

    def __init__(self, thresholds: Optional[PullupThresholds] = None):
        self.thresholds = thresholds or PullupThresholds()
        self.required_joints = get_exercise_config(self.kind)["required_joints"]

    def step(self, frame: PoseFrame, tracker: RepTracker, now: float = 0.0,
             baseline: Optional[float] = None) -> StepResult:
        th = self.thresholds

        # A single low-confidence arm joint drops the whole frame
        if not frame.all_usable(self.required_joints, DETECTION_CONFIDENCE):
            return StepResult(state=tracker.state, evaluated=False)

        left, right = elbow_angles(frame)
        asymmetry = symmetry_delta(left, right)
        angles = {"left_elbow": left, "right_elbow": right}

        if not wrists_above_shoulders(frame):
            return StepResult(state=tracker.state, evaluated=False, angles=angles)

        if tracker.state is RepState.DOWN:
            if left < th.top_angle and right < th.top_angle:
                if not frame.usable("nose", DETECTION_CONFIDENCE):
                    return StepResult(state=tracker.state, evaluated=False, angles=angles)

                issues = []
                if not self._chin_above_wrists(frame):
                    issues.append(Issue.PARTIAL_TOP_ROM)
                if self._short_hang(tracker):
                    issues.append(Issue.PARTIAL_BOTTOM_ROM)
                if asymmetry > th.asymmetry_deg:
                    issues.append(Issue.ASYMMETRY)

                tracker.state = RepState.UP
                tracker.pull_started = False
                tracker.add_issues(issues)
                tracker.peak_elbow_flexion = min(tracker.peak_elbow_flexion, max(left, right))
                tracker.max_asymmetry = max(tracker.max_asymmetry, asymmetry)
                logger.debug("pull-up DOWN -> UP (elbows %.0f / %.0f)", left, right)
                return StepResult(state=tracker.state, issues=tuple(issues), angles=angles)

            if left < th.pull_angle and right < th.pull_angle:
                # pulling, but not yet at the top
                if not tracker.pull_started and self._short_hang(tracker):
                    tracker.add_issues([Issue.PARTIAL_BOTTOM_ROM])
                tracker.pull_started = True
                tracker.peak_elbow_flexion = min(tracker.peak_elbow_flexion, max(left, right))
                tracker.max_asymmetry = max(tracker.max_asymmetry, asymmetry)
                if frame.usable("nose", DETECTION_CONFIDENCE) and self._chin_above_wrists(frame):
                    tracker.chin_cleared = True
                return StepResult(state=tracker.state, angles=angles)

            if tracker.pull_started and left > th.complete_angle and right > th.complete_angle:
                # the pull turned back before the elbows reached top_angle
                issues = [] if tracker.chin_cleared else [Issue.PARTIAL_TOP_ROM]
                issues += self._bottom_issues(left, right, asymmetry)
                tracker.add_issues(issues)
                event = self._complete(tracker, left, right)
                logger.debug("partial pull-up completed with issues %s",
                             [i.value for i in event.issues])
                return StepResult(state=tracker.state, rep_event=event,
                                  issues=tuple(issues), angles=angles)

            if not tracker.pull_started:
                tracker.hang_extension = max(tracker.hang_extension or 0.0, min(left, right))
            return StepResult(state=tracker.state, angles=angles)

        if tracker.state is RepState.UP:
            tracker.peak_elbow_flexion = min(tracker.peak_elbow_flexion, max(left, right))
            tracker.max_asymmetry = max(tracker.max_asymmetry, asymmetry)

            if left > th.complete_angle and right > th.complete_angle:
                issues = self._bottom_issues(left, right, asymmetry)
                tracker.add_issues(issues)
                event = self._complete(tracker, left, right)
                logger.debug("pull-up UP -> DOWN, rep completed with issues %s",
                             [i.value for i in event.issues])
                return StepResult(state=tracker.state, rep_event=event,
                                  issues=tuple(issues), angles=angles)

            return StepResult(state=tracker.state, angles=angles)

        raise ValueError(f"Pull-up tracker in foreign state {tracker.state!r}")

    @staticmethod
    def _chin_above_wrists(frame: PoseFrame) -> bool:
        nose = frame.get("nose")
        return nose.y < frame.get("left_wrist").y and nose.y < frame.get("right_wrist").y

    def _short_hang(self, tracker: RepTracker) -> bool:
        # no hang frame since the last rep: its bottom is the hang
        hang = tracker.hang_extension
        if hang is None:
            hang = tracker.last_bottom_extension
        return hang <= self.thresholds.full_extension_angle

    def _bottom_issues(self, left: float, right: float, asymmetry: float) -> List[Issue]:
        th = self.thresholds
        issues = []
        if left <= th.full_extension_angle or right <= th.full_extension_angle:
            issues.append(Issue.PARTIAL_BOTTOM_ROM)
        if asymmetry > th.asymmetry_deg:
            issues.append(Issue.ASYMMETRY)
        return issues

    def _complete(self, tracker: RepTracker, left: float, right: float) -> RepEvent:
        event = RepEvent(
            kind=self.kind,
            issues=tuple(tracker.pending_issues),
            details={
                "peak_elbow_flexion": float(tracker.peak_elbow_flexion),
                "bottom_elbow_extension": float(min(left, right)),
                "asymmetry": float(tracker.max_asymmetry),
            },
        )
        tracker.state = RepState.DOWN
        tracker.clear_rep()
        tracker.last_bottom_extension = min(left, right)
        return event


# -------------------------------------------------------------
# Jumps
# -------------------------------------------------------------

class JumpStateMachine:
    """
    GROUNDED -> AIRBORNE needs BOTH ankles risen past takeoff_height
    above ground level AND extended knees. Walking or shifting weight
    lifts an ankle a little but keeps the knee bent, so it never
    satisfies the pair.

    AIRBORNE -> GROUNDED (rep completed) once the ankles are back within
    landing_tolerance of ground level. The knee angle on that frame
    grades the landing.
    """

    kind = ExerciseKind.JUMP

    def __init__(self, thresholds: Optional[JumpThresholds] = None):
        self.thresholds = thresholds or JumpThresholds()
        self.required_joints = get_exercise_config(self.kind)["required_joints"]

    def step(self, frame: PoseFrame, tracker: RepTracker, now: float = 0.0,
             baseline: Optional[float] = None) -> StepResult:
        th = self.thresholds

        if baseline is None:
            # still calibrating
            return StepResult(state=tracker.state, evaluated=False)
        if not frame.all_usable(self.required_joints, DETECTION_CONFIDENCE):
            return StepResult(state=tracker.state, evaluated=False)

        left_knee, right_knee = knee_angles(frame)
        knee = (left_knee + right_knee) / 2
        ankle_y = frame.mean_y("left_ankle", "right_ankle")
        height = vertical_displacement(ankle_y, baseline)
        angles = {"left_knee": left_knee, "right_knee": right_knee, "height": height}

        if tracker.state is RepState.GROUNDED:
            if height > th.takeoff_height and knee > th.takeoff_knee_angle:
                tracker.state = RepState.AIRBORNE
                tracker.peak_height = height
                tracker.takeoff_time = now
                logger.debug("jump GROUNDED -> AIRBORNE (height %.1f, knee %.0f)", height, knee)
            return StepResult(state=tracker.state, angles=angles)

        if tracker.state is RepState.AIRBORNE:
            tracker.peak_height = max(tracker.peak_height, height)

            if height < th.landing_tolerance:
                issues = []
                if knee > th.stiff_landing_angle:
                    issues.append(Issue.STIFF_LANDING)
                if tracker.peak_height < th.low_jump_height:
                    issues.append(Issue.LOW_JUMP)
                landing_asymmetry = symmetry_delta(left_knee, right_knee)
                if landing_asymmetry > th.landing_asymmetry_deg:
                    issues.append(Issue.ASYMMETRIC_LANDING)
                tracker.add_issues(issues)

                flight_time = now - tracker.takeoff_time if tracker.takeoff_time is not None else 0.0
                event = RepEvent(
                    kind=self.kind,
                    issues=tuple(tracker.pending_issues),
                    details={
                        "jump_height": float(tracker.peak_height),
                        "landing_knee_flexion": float(knee),
                        "asymmetry": float(landing_asymmetry),
                        "flight_time_s": float(max(0.0, flight_time)),
                    },
                )
                tracker.state = RepState.GROUNDED
                tracker.clear_rep()
                logger.debug("jump AIRBORNE -> GROUNDED, peak %.1f", event.details["jump_height"])
                return StepResult(state=tracker.state, rep_event=event,
                                  issues=tuple(issues), angles=angles)

            return StepResult(state=tracker.state, angles=angles)

        raise ValueError(f"Jump tracker in foreign state {tracker.state!r}")


def create_state_machine(kind: ExerciseKind, thresholds: Any = None):
    kind = ExerciseKind(kind)
    if kind is ExerciseKind.PULL_UP:
        return PullupStateMachine(thresholds)
    if kind is ExerciseKind.JUMP:
        return JumpStateMachine(thresholds)
    raise ValueError(f"Unsupported exercise: {kind!r}")
