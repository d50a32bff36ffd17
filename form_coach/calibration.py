# form_coach/calibration.py

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import numpy as np

from form_coach.config import (
    DETECTION_CONFIDENCE,
    RENDER_CONFIDENCE,
    ExerciseKind,
    JumpThresholds,
    PullupThresholds,
)
from form_coach.pose_utils import PoseFrame, elbow_angles, wrists_above_shoulders

logger = logging.getLogger(__name__)

JUMP_CALIBRATION_JOINTS = ["left_ankle", "right_ankle"]
PULLUP_READY_JOINTS = [
    "left_wrist", "left_elbow", "left_shoulder",
    "right_wrist", "right_elbow", "right_shoulder",
]
NOT_HANGING_MESSAGE = "Grab the bar with both hands to start."


class CalibrationStatus(str, Enum):
    UNCALIBRATED = "uncalibrated"
    CALIBRATING = "calibrating"
    CALIBRATED = "calibrated"


@dataclass
class CalibrationState:
    status: CalibrationStatus = CalibrationStatus.UNCALIBRATED
    frames_seen: int = 0
    baseline: Optional[float] = None
    # ankle heights collected while holding still (jumps only)
    samples: List[float] = field(default_factory=list)

    @property
    def is_calibrated(self) -> bool:
        return self.status is CalibrationStatus.CALIBRATED


@dataclass
class CalibrationResult:
    ready: bool
    advisory: Optional[str] = None


def _pretty_joints(names: List[str]) -> str:
    return ", ".join(names).replace("_", " ")


class JumpCalibrator:
    """
    Establishes ground level (mean ankle y) before jumps are counted.

    With the default stable_frames=1 the first frame where both ankles
    are usable wins. Larger values require that many consecutive usable
    frames and average them.
    """

    def __init__(self, thresholds: Optional[JumpThresholds] = None):
        self.thresholds = thresholds or JumpThresholds()

    def observe(self, frame: PoseFrame, state: CalibrationState) -> CalibrationResult:
        if state.is_calibrated:
            return CalibrationResult(ready=True)

        state.status = CalibrationStatus.CALIBRATING
        state.frames_seen += 1

        missing = frame.missing(JUMP_CALIBRATION_JOINTS, DETECTION_CONFIDENCE)
        if missing:
            state.samples.clear()
            return CalibrationResult(
                ready=False,
                advisory=f"Stand in full view to calibrate. Missing: {_pretty_joints(missing)}.",
            )

        state.samples.append(frame.mean_y(*JUMP_CALIBRATION_JOINTS))
        required = max(1, self.thresholds.stable_frames)
        if len(state.samples) < required:
            progress = round(100 * len(state.samples) / required)
            return CalibrationResult(ready=False, advisory=f"Hold still... Calibrating: {progress}%")

        state.baseline = float(np.mean(state.samples))
        state.status = CalibrationStatus.CALIBRATED
        state.samples.clear()
        logger.debug("jump ground level calibrated at y=%.1f after %d frames",
                     state.baseline, state.frames_seen)
        return CalibrationResult(ready=True, advisory="Calibrated! Crouch down and explode up!")


class PullupCalibrator:
    """
    Pull-ups store no ground level. Readiness is a per-frame check that
    the hands are above the shoulders and both arms are near full
    extension (dead hang).

    Before the workout starts the check is repeated on every frame, so
    the state can drop back to CALIBRATING. Once the workout is live a
    confirmed hang is kept for the rest of the session.
    """

    def __init__(self, thresholds: Optional[PullupThresholds] = None):
        self.thresholds = thresholds or PullupThresholds()

    def observe(
        self,
        frame: PoseFrame,
        state: CalibrationState,
        workout_active: bool = True,
    ) -> CalibrationResult:
        if state.is_calibrated and workout_active:
            return CalibrationResult(ready=True)

        state.frames_seen += 1

        if not frame.all_usable(PULLUP_READY_JOINTS, DETECTION_CONFIDENCE):
            self._unready(state)
            return CalibrationResult(
                ready=False,
                advisory="Get in view of the camera, ready to hang from the bar.",
            )

        if not wrists_above_shoulders(frame):
            self._unready(state)
            return CalibrationResult(ready=False, advisory=NOT_HANGING_MESSAGE)

        left, right = elbow_angles(frame)
        if left > self.thresholds.ready_angle and right > self.thresholds.ready_angle:
            if not state.is_calibrated:
                logger.debug("pull-up hang confirmed (elbows %.0f / %.0f)", left, right)
            state.status = CalibrationStatus.CALIBRATED
            state.baseline = float(min(left, right))
            return CalibrationResult(
                ready=True,
                advisory="You're in the start position. Pull up to begin!",
            )

        self._unready(state)
        return CalibrationResult(ready=False, advisory="Hang with arms extended to start.")

    @staticmethod
    def _unready(state: CalibrationState) -> None:
        state.status = CalibrationStatus.CALIBRATING
        state.baseline = None


def readiness_hint(frame: PoseFrame, names: List[str]) -> Optional[str]:
    """Rendering-grade visibility hint, e.g. "Can't see your hands & elbows"."""
    groups = {
        "head": ["nose"],
        "hands": ["left_wrist", "right_wrist"],
        "elbows": ["left_elbow", "right_elbow"],
        "shoulders": ["left_shoulder", "right_shoulder"],
        "hips": ["left_hip", "right_hip"],
        "knees": ["left_knee", "right_knee"],
        "feet": ["left_ankle", "right_ankle"],
    }
    hidden = [
        label for label, joints in groups.items()
        if any(j in names for j in joints) and not frame.all_usable(
            [j for j in joints if j in names], RENDER_CONFIDENCE)
    ]
    if not hidden:
        return None
    if len(hidden) > 2:
        return "Step back - need to see full body"
    return "Can't see your " + " & ".join(hidden)


def create_calibrator(kind: ExerciseKind, thresholds=None):
    if kind is ExerciseKind.PULL_UP:
        return PullupCalibrator(thresholds)
    if kind is ExerciseKind.JUMP:
        return JumpCalibrator(thresholds)
    raise ValueError(f"Unsupported exercise: {kind!r}")
