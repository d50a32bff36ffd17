# form_coach/config.py

import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Optional

import dotenv

dotenv.load_dotenv()


class ExerciseKind(str, Enum):
    PULL_UP = "pull-ups"
    JUMP = "jumps"


# ----------------- Confidence thresholds -----------------
DETECTION_CONFIDENCE = 0.4      # joint usable for rep detection
RENDER_CONFIDENCE = 0.5         # joint usable for drawing / readiness hints


@dataclass(frozen=True)
class PullupThresholds:
    top_angle: float = 90.0              # both elbows below -> UP
    pull_angle: float = 130.0            # both elbows below -> a pull has started
    complete_angle: float = 145.0        # both elbows above -> rep done
    full_extension_angle: float = 160.0  # short of this at the bottom -> partial_bottom_rom
    ready_angle: float = 140.0           # start position (dead hang)
    asymmetry_deg: float = 25.0          # left/right elbow delta


@dataclass(frozen=True)
class JumpThresholds:
    takeoff_height: float = 25.0         # px above ground level
    takeoff_knee_angle: float = 150.0    # legs extended on takeoff
    landing_tolerance: float = 10.0      # px from ground level counts as landed
    stiff_landing_angle: float = 160.0   # knee straighter than this on landing
    low_jump_height: float = 35.0        # peak below this is a weak jump
    landing_asymmetry_deg: float = 25.0  # left/right knee delta on landing
    stable_frames: int = 1               # calibration frames before baseline


@dataclass(frozen=True)
class FeedbackSettings:
    advice_cooldown_s: float = 4.0
    pulse_debounce_s: float = 0.5
    learning_reps: int = 2               # no corrective cues before this many reps
    max_workers: int = 2


# ----------------- Per-exercise configuration -----------------
EXERCISE_CONFIG: Dict[ExerciseKind, Dict[str, Any]] = {
    ExerciseKind.PULL_UP: {
        "thresholds": PullupThresholds(),
        "required_joints": [
            "left_wrist", "right_wrist",
            "left_elbow", "right_elbow",
            "left_shoulder", "right_shoulder",
        ],
    },
    ExerciseKind.JUMP: {
        "thresholds": JumpThresholds(),
        "required_joints": [
            "left_hip", "right_hip",
            "left_knee", "right_knee",
            "left_ankle", "right_ankle",
        ],
    },
}


def get_exercise_config(kind: ExerciseKind) -> Dict[str, Any]:
    return EXERCISE_CONFIG[ExerciseKind(kind)]


# ----------------- Environment -----------------
def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


ADVICE_URL: Optional[str] = os.getenv("FORM_COACH_ADVICE_URL") or None
ADVICE_TIMEOUT_S = float(os.getenv("FORM_COACH_ADVICE_TIMEOUT", "2.0"))
COACH_PERSONALITY = os.getenv("FORM_COACH_PERSONALITY", "competitive")
DEBUG = _env_bool("FORM_COACH_DEBUG")
