# form_coach/feedback.py

import logging
import random
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from form_coach.config import FeedbackSettings
from form_coach.models import AdviceRequest
from form_coach.rep_logic import Issue

logger = logging.getLogger(__name__)

AdviceGenerator = Callable[[AdviceRequest], str]

# ----------------- Canned phrases (offline / failed advice) -----------------
CANNED_FEEDBACK: Dict[str, List[str]] = {
    "asymmetry": [
        "Try to pull up with both arms equally.",
        "Keep your body balanced during the pull-up.",
        "Focus on an even pull.",
    ],
    "partial_top_rom": [
        "Get that chin over the bar!",
        "A little higher next time.",
        "Almost there, pull all the way up!",
    ],
    "partial_bottom_rom": [
        "Go all the way down for a full rep.",
        "Make sure to fully extend your arms at the bottom.",
        "Full range of motion is key!",
    ],
    "stiff_landing": [
        "Softer landing next time!",
        "Bend your knees to absorb the impact.",
        "Try to land more quietly.",
    ],
    "low_jump": [
        "Explode upwards!",
        "Try to jump higher.",
        "Push the ground away!",
        "Drive through your legs!",
    ],
    "asymmetric_landing": [
        "Land with both feet evenly.",
        "Keep your landing balanced.",
        "Focus on symmetrical form.",
    ],
    "general": [
        "Keep up the great work!",
        "Nice form!",
        "You're doing great!",
    ],
}

# Instant local cue when an issue shows up that the user has not just heard about
FORM_CUES: Dict[Issue, str] = {
    Issue.ASYMMETRY: "Pull evenly with both arms!",
    Issue.PARTIAL_TOP_ROM: "Get your chin over the bar!",
    Issue.PARTIAL_BOTTOM_ROM: "Full extension at the bottom!",
    Issue.STIFF_LANDING: "Bend your knees when you land!",
    Issue.LOW_JUMP: "Explode up for more height!",
    Issue.ASYMMETRIC_LANDING: "Land on both feet evenly!",
}


def _issue_key(issue) -> str:
    return issue.value if isinstance(issue, Issue) else str(issue)


def random_feedback(issues: Iterable, rng: Optional[random.Random] = None) -> str:
    """
    Pick a canned phrase for the primary (first known) issue, or a
    general one when no issue has an entry.
    """
    rng = rng or random
    key = next((_issue_key(i) for i in issues if _issue_key(i) in CANNED_FEEDBACK), "general")
    return rng.choice(CANNED_FEEDBACK[key])


class FeedbackThrottle:
    """Cooldown for the advice service as a deadline on the caller's clock."""

    def __init__(self, cooldown_s: float = 4.0):
        self.cooldown_s = cooldown_s
        self.deadline: Optional[float] = None

    def active(self, now: float) -> bool:
        return self.deadline is not None and now < self.deadline

    def try_acquire(self, now: float) -> bool:
        if self.active(now):
            return False
        self.deadline = now + self.cooldown_s
        return True


class IssuePulse:
    """
    Short audio cue for an issue that was not in the previous rep's set.
    Debounced on its own, independently of the advice cooldown.
    """

    def __init__(self, debounce_s: float = 0.5):
        self.debounce_s = debounce_s
        self.last_fired: Optional[float] = None

    def fire(self, issues: Iterable[Issue], previous_issues: Iterable[Issue], now: float) -> Optional[Issue]:
        previous = set(previous_issues)
        fresh = [i for i in issues if i not in previous]
        if not fresh:
            return None
        if self.last_fired is not None and now - self.last_fired < self.debounce_s:
            return None
        self.last_fired = now
        return fresh[0]


@dataclass
class _PendingAdvice:
    generation: int
    request: AdviceRequest
    future: Future
    submitted_at: float


class AdviceDispatcher:
    """
    Fire-and-forget advice calls on a thread pool.

    Results are only picked up by collect(), which runs on the frame
    path, so a reply can never touch rep or score state. Replies whose
    generation no longer matches the session are dropped. A failed,
    empty or overdue reply is replaced by a canned phrase.
    """

    def __init__(self, generator: Optional[AdviceGenerator] = None,
                 settings: Optional[FeedbackSettings] = None,
                 executor: Optional[Executor] = None,
                 timeout_s: float = 5.0,
                 rng: Optional[random.Random] = None):
        self.generator = generator
        self.settings = settings or FeedbackSettings()
        self.timeout_s = timeout_s
        self.rng = rng or random.Random()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.settings.max_workers, thread_name_prefix="advice")
        self._pending: List[_PendingAdvice] = []

    @property
    def offline(self) -> bool:
        if self.generator is None:
            return True
        return getattr(self.generator, "online", True) is False

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def fallback(self, issues: Iterable) -> str:
        return random_feedback(issues, self.rng)

    def submit(self, request: AdviceRequest, generation: int, now: float) -> Optional[str]:
        """Start a call. Offline clients get a canned phrase right away instead."""
        if self.offline:
            return self.fallback(request.form_issues)
        future = self._executor.submit(self.generator, request)
        self._pending.append(_PendingAdvice(generation, request, future, now))
        return None

    def collect(self, generation: int, now: float) -> List[str]:
        texts: List[str] = []
        still_pending: List[_PendingAdvice] = []

        for item in self._pending:
            if item.generation != generation:
                item.future.cancel()
                logger.debug("dropping stale advice reply (generation %d != %d)",
                             item.generation, generation)
                continue

            if not item.future.done():
                if now - item.submitted_at > self.timeout_s:
                    item.future.cancel()
                    logger.warning("advice call timed out after %.1fs, using canned phrase",
                                   now - item.submitted_at)
                    texts.append(self.fallback(item.request.form_issues))
                else:
                    still_pending.append(item)
                continue

            try:
                text = item.future.result()
            except Exception as e:
                logger.warning("advice call failed, using canned phrase: %s", e)
                text = None
            if not text or not str(text).strip():
                text = self.fallback(item.request.form_issues)
            texts.append(str(text).strip())

        self._pending = still_pending
        return texts

    def discard(self) -> None:
        for item in self._pending:
            item.future.cancel()
        self._pending = []

    def shutdown(self) -> None:
        self.discard()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
        close = getattr(self.generator, "close", None)
        if callable(close):
            close()
