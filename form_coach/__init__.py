"""Rep detection and form scoring for camera-based workout coaching."""

from form_coach.config import ExerciseKind
from form_coach.models import FeedbackEvents
from form_coach.pose_utils import Keypoint, joint_angle, symmetry_delta, vertical_displacement
from form_coach.rep_logic import Issue, RepState
from form_coach.session import ExerciseSession

__all__ = [
    "ExerciseKind",
    "ExerciseSession",
    "FeedbackEvents",
    "Issue",
    "Keypoint",
    "RepState",
    "joint_angle",
    "symmetry_delta",
    "vertical_displacement",
]
