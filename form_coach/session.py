# form_coach/session.py

import logging
import random
import time
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Callable, List, Optional

from form_coach import config
from form_coach.advice_client import AdviceClient
from form_coach.calibration import NOT_HANGING_MESSAGE, CalibrationState, create_calibrator, readiness_hint
from form_coach.config import ExerciseKind, FeedbackSettings, JumpThresholds, PullupThresholds
from form_coach.feedback import FORM_CUES, AdviceDispatcher, AdviceGenerator, FeedbackThrottle, IssuePulse
from form_coach.models import AdviceRequest, DebugPoseData, FeedbackEvents, RepSummary
from form_coach.pose_utils import FrameInput, PoseFrame
from form_coach.rep_logic import Issue, RepState, RepTracker, StepResult, create_state_machine, create_tracker
from form_coach.scoring import FormScoreTracker, RepRecord

logger = logging.getLogger(__name__)

STEP_BACK_MESSAGE = "Step back into view so I can see you."
IDLE_MESSAGE = "Ready when you are."

FIRST_REP_MESSAGES = {
    ExerciseKind.PULL_UP: "Great first pull-up! You're building strength!",
    ExerciseKind.JUMP: "Great first jump! Keep it up!",
}
LEARNING_MESSAGE = "Excellent! Nice effort!"


@dataclass
class SessionState:
    """Everything one exercise owns. Replaced wholesale on exercise switch."""
    kind: ExerciseKind
    generation: int
    calibration: CalibrationState
    tracker: RepTracker
    scores: FormScoreTracker
    throttle: FeedbackThrottle
    pulse: IssuePulse
    reps: int = 0


class ExerciseSession:
    """
    Frame-driven coaching session for one active exercise.

    process_frame() is called once per rendering tick, strictly serially.
    The only background work is the advice call; its reply is handed
    back through a later process_frame() as feedback text.
    """

    def __init__(
        self,
        kind: ExerciseKind = ExerciseKind.PULL_UP,
        advice: Optional[AdviceGenerator] = None,
        personality: str = config.COACH_PERSONALITY,
        debug: bool = config.DEBUG,
        pullup_thresholds: Optional[PullupThresholds] = None,
        jump_thresholds: Optional[JumpThresholds] = None,
        settings: Optional[FeedbackSettings] = None,
        executor: Optional[Executor] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self.personality = personality
        self.debug = debug
        self.settings = settings or FeedbackSettings()
        self.thresholds = {
            ExerciseKind.PULL_UP: pullup_thresholds or PullupThresholds(),
            ExerciseKind.JUMP: jump_thresholds or JumpThresholds(),
        }
        self.clock = clock
        self.workout_active = True
        self.dispatcher = AdviceDispatcher(
            advice if advice is not None else AdviceClient(),
            settings=self.settings,
            executor=executor,
            timeout_s=max(self.settings.advice_cooldown_s, config.ADVICE_TIMEOUT_S),
            rng=rng,
        )
        self._generation = 0
        self.set_exercise(kind)

    # ----------------- consumer-facing contract -----------------

    def set_exercise(self, kind: ExerciseKind) -> None:
        """Throw away everything the previous exercise owned, including an unfinished rep."""
        kind = ExerciseKind(kind)
        self.dispatcher.discard()
        self._generation += 1
        self.machine = create_state_machine(kind, self.thresholds[kind])
        self.calibrator = create_calibrator(kind, self.thresholds[kind])
        self.state = SessionState(
            kind=kind,
            generation=self._generation,
            calibration=CalibrationState(),
            tracker=create_tracker(kind),
            scores=FormScoreTracker(),
            throttle=FeedbackThrottle(self.settings.advice_cooldown_s),
            pulse=IssuePulse(self.settings.pulse_debounce_s),
        )
        logger.debug("session reset for %s (generation %d)", kind.value, self._generation)

    def set_workout_active(self, active: bool) -> None:
        self.workout_active = bool(active)

    @property
    def exercise(self) -> ExerciseKind:
        return self.state.kind

    @property
    def current_reps(self) -> int:
        return self.state.reps

    @property
    def current_score(self) -> float:
        return self.state.scores.rolling_average

    @property
    def rep_state(self) -> RepState:
        return self.state.tracker.state

    @property
    def calibration(self) -> CalibrationState:
        return self.state.calibration

    @property
    def last_rep_issues(self):
        return self.state.scores.last_rep_issues

    def summary(self) -> dict:
        data = self.state.scores.summarize()
        data.update({"exercise": self.state.kind.value, "total_reps": self.state.reps})
        return data

    def process_frame(self, frame: Optional[FrameInput], now: Optional[float] = None) -> FeedbackEvents:
        now = self.clock() if now is None else now
        events = FeedbackEvents()

        if frame is None:
            events.feedback_text = STEP_BACK_MESSAGE
            return events

        state = self.state
        pose = PoseFrame.coerce(frame)

        if state.kind is ExerciseKind.PULL_UP:
            calib = self.calibrator.observe(pose, state.calibration, workout_active=self.workout_active)
        else:
            calib = self.calibrator.observe(pose, state.calibration)

        if not calib.ready or not self.workout_active:
            events.feedback_text = calib.advisory or IDLE_MESSAGE
            self._attach_debug(events, pose, {})
            return self._collect_advice(events, now)

        result = self.machine.step(pose, state.tracker, now=now, baseline=state.calibration.baseline)
        self._attach_debug(events, pose, result.angles)

        if not result.evaluated:
            hint = readiness_hint(pose, self.machine.required_joints + ["nose"])
            if hint is None and state.kind is ExerciseKind.PULL_UP:
                # everything visible, but not hanging from the bar
                hint = NOT_HANGING_MESSAGE
            events.feedback_text = hint
            return self._collect_advice(events, now)

        texts: List[Optional[str]] = [self._issue_feedback(events, result, now)]

        if result.rep_event is not None:
            texts.append(self._complete_rep(events, result, now))

        texts.insert(0, self._request_advice(result, now))
        self._collect_advice(events, now)

        if events.feedback_text is None:
            events.feedback_text = next((t for t in texts if t), calib.advisory)
        return events

    def close(self) -> None:
        """End the session; replies still in flight are ignored."""
        self._generation += 1
        self.dispatcher.shutdown()

    # ----------------- internals -----------------

    def _issue_feedback(self, events: FeedbackEvents, result: StepResult, now: float) -> Optional[str]:
        if not result.issues:
            return None
        previous = self.state.scores.last_rep_issues
        events.audio_pulse = self.state.pulse.fire(result.issues, previous, now)

        if self.state.reps < self.settings.learning_reps:
            return None
        fresh = [i for i in result.issues if i not in previous]
        return FORM_CUES.get(fresh[0]) if fresh else None

    def _complete_rep(self, events: FeedbackEvents, result: StepResult, now: float) -> Optional[str]:
        state = self.state
        state.reps += 1
        record: RepRecord = state.scores.record(result.rep_event, timestamp=now)

        events.rep_count_delta = 1
        events.score_update = state.scores.rolling_average
        events.rep = RepSummary(
            timestamp=record.timestamp,
            score=record.score,
            issues=sorted(record.issues, key=lambda i: i.value),
            details=record.details,
        )

        if state.reps == 1:
            return FIRST_REP_MESSAGES[state.kind]
        if state.reps <= self.settings.learning_reps:
            return LEARNING_MESSAGE
        return None

    def _current_issues(self, result: StepResult) -> List[Issue]:
        if result.rep_event is not None:
            return list(result.rep_event.issues)
        if self.state.tracker.pending_issues:
            return list(self.state.tracker.pending_issues)
        return sorted(self.state.scores.last_rep_issues, key=lambda i: i.value)

    def _request_advice(self, result: StepResult, now: float) -> Optional[str]:
        state = self.state
        if not state.throttle.try_acquire(now):
            return None
        request = AdviceRequest(
            exercise=state.kind,
            personality=self.personality,
            reps=state.reps,
            rep_state=result.state,
            form_issues=self._current_issues(result),
            angles={k: round(v, 1) for k, v in result.angles.items()},
        )
        return self.dispatcher.submit(request, state.generation, now)

    def _collect_advice(self, events: FeedbackEvents, now: float) -> FeedbackEvents:
        replies = self.dispatcher.collect(self.state.generation, now)
        if replies:
            events.feedback_text = replies[-1]
        return events

    def _attach_debug(self, events: FeedbackEvents, pose: PoseFrame, angles: dict) -> None:
        if not self.debug:
            return
        events.debug_pose_data = DebugPoseData(
            keypoints=[
                {"name": kp.name, "x": kp.x, "y": kp.y, "confidence": kp.confidence}
                for kp in pose.to_list()
            ],
            angles=dict(angles),
            rep_state=self.state.tracker.state,
            calibration=self.state.calibration.status.value,
        )
