# form_coach/models.py
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from form_coach.config import ExerciseKind
from form_coach.rep_logic import Issue, RepState


class AdviceRequest(BaseModel):
    exercise: ExerciseKind
    personality: str = "competitive"
    reps: int = 0
    rep_state: Optional[RepState] = None
    form_issues: List[Issue] = Field(default_factory=list)
    angles: Dict[str, float] = Field(default_factory=dict)


class AdviceResponse(BaseModel):
    feedback: str = ""


class DebugPoseData(BaseModel):
    keypoints: List[Dict[str, object]] = Field(default_factory=list)
    angles: Dict[str, float] = Field(default_factory=dict)
    rep_state: Optional[RepState] = None
    calibration: Optional[str] = None


class RepSummary(BaseModel):
    timestamp: float
    score: float
    issues: List[Issue] = Field(default_factory=list)
    details: Dict[str, float] = Field(default_factory=dict)


class FeedbackEvents(BaseModel):
    rep_count_delta: int = 0
    score_update: Optional[float] = None
    feedback_text: Optional[str] = None
    audio_pulse: Optional[Issue] = None
    debug_pose_data: Optional[DebugPoseData] = None
    rep: Optional[RepSummary] = None
