"""Synthetic keypoint frames and executors shared by the test modules."""

import math
from concurrent.futures import Executor, Future

import pytest

from form_coach.pose_utils import Keypoint

LIMB = 100.0
GROUND_Y = 400.0


def _kp(name, x, y, confidence=0.9):
    return Keypoint(name=name, x=float(x), y=float(y), confidence=confidence)


def make_pullup_frame(left_angle=170.0, right_angle=None, chin_above=True,
                      confidence=0.9, nose_confidence=None, overrides=None, hanging=True):
    """Arms whose elbow angles are exactly left_angle / right_angle.

    With hanging=True the shoulders sit below the elbows and the wrists
    reach up towards the bar; with hanging=False the arms point down
    from the shoulders, as when standing. The nose is placed 20px above
    (or below) both wrists.
    """
    right_angle = left_angle if right_angle is None else right_angle
    direction = 1.0 if hanging else -1.0
    points = []
    for side, sign, angle in (("left", -1.0, left_angle), ("right", 1.0, right_angle)):
        ex, ey = 200.0 + sign * 60.0, 300.0
        theta = math.radians(angle)
        points.append(_kp(f"{side}_shoulder", ex, ey + direction * LIMB, confidence))
        points.append(_kp(f"{side}_elbow", ex, ey, confidence))
        points.append(_kp(f"{side}_wrist", ex + sign * LIMB * math.sin(theta),
                          ey + direction * LIMB * math.cos(theta), confidence))

    wrist_ys = [p.y for p in points if p.name.endswith("wrist")]
    nose_y = min(wrist_ys) - 20.0 if chin_above else max(wrist_ys) + 20.0
    nose_conf = confidence if nose_confidence is None else nose_confidence
    points.append(_kp("nose", 200.0, nose_y, nose_conf))

    for name, conf in (overrides or {}).items():
        points = [_kp(p.name, p.x, p.y, conf) if p.name == name else p for p in points]
    return points


def make_jump_frame(height=0.0, knee_angle=175.0, right_knee_angle=None,
                    confidence=0.9, ground_y=GROUND_Y, overrides=None):
    """Legs with the ankles `height` px above ground_y and the given knee angles."""
    right_knee_angle = knee_angle if right_knee_angle is None else right_knee_angle
    ankle_y = ground_y - height
    points = []
    for side, sign, angle in (("left", -1.0, knee_angle), ("right", 1.0, right_knee_angle)):
        ax = 200.0 + sign * 40.0
        theta = math.radians(angle)
        kx = ax - sign * LIMB * math.sin(theta)
        ky = ankle_y + LIMB * math.cos(theta)
        points.append(_kp(f"{side}_ankle", ax, ankle_y, confidence))
        points.append(_kp(f"{side}_knee", kx, ky, confidence))
        points.append(_kp(f"{side}_hip", kx, ky - LIMB, confidence))

    for name, conf in (overrides or {}).items():
        points = [_kp(p.name, p.x, p.y, conf) if p.name == name else p for p in points]
    return points


class ImmediateExecutor(Executor):
    """Runs submitted work inline so replies are ready on the same frame."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class ManualExecutor(Executor):
    """Holds submitted work until the test resolves it."""

    def __init__(self):
        self.calls = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.calls.append((future, fn, args, kwargs))
        return future

    def run_all(self):
        for future, fn, args, kwargs in self.calls:
            if future.cancelled():
                continue
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)
        self.calls = []


@pytest.fixture
def pullup_frame():
    return make_pullup_frame


@pytest.fixture
def jump_frame():
    return make_jump_frame


@pytest.fixture
def immediate_executor():
    return ImmediateExecutor()


@pytest.fixture
def manual_executor():
    return ManualExecutor()
