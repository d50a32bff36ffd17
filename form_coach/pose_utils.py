# form_coach/pose_utils.py

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from form_coach.config import DETECTION_CONFIDENCE


@dataclass(frozen=True)
class Keypoint:
    name: str
    x: float
    y: float
    confidence: float = 0.0


def keypoint_from_dict(data: Mapping) -> Keypoint:
    """
    Build a Keypoint from the pose model's dict form.
    Accepts either "confidence" or "score" for the detection confidence.
    """
    confidence = data.get("confidence", data.get("score", 0.0))
    return Keypoint(
        name=str(data["name"]),
        x=float(data["x"]),
        y=float(data["y"]),
        confidence=float(confidence or 0.0),
    )


def joint_angle(a, b, c) -> float:
    """
    Returns the angle (in degrees) at point b formed by points a-b-c.

    Uses atan2(|cross|, dot) instead of arccos so the result stays
    accurate near 0 and 180 degrees.
    """
    a = np.asarray(_xy(a), dtype=float)
    b = np.asarray(_xy(b), dtype=float)
    c = np.asarray(_xy(c), dtype=float)

    v1 = a - b
    v2 = c - b

    cross = v1[0] * v2[1] - v1[1] * v2[0]
    dot = float(np.dot(v1, v2))
    if cross == 0.0 and dot == 0.0:
        # zero-length ray
        return 0.0
    angle = np.degrees(np.arctan2(abs(cross), dot))
    return float(np.clip(angle, 0.0, 180.0))


def vertical_displacement(current_y: float, baseline_y: float) -> float:
    # image y grows downward, so rising means a smaller y
    return float(baseline_y - current_y)


def symmetry_delta(left_angle: float, right_angle: float) -> float:
    return float(abs(left_angle - right_angle))


def _xy(point) -> Tuple[float, float]:
    if isinstance(point, Keypoint):
        return point.x, point.y
    return float(point[0]), float(point[1])


FrameInput = Union[Sequence[Keypoint], Sequence[Mapping], Mapping[str, Union[Keypoint, Mapping]]]


class PoseFrame:
    """Keypoints of a single instant, indexed by joint name."""

    def __init__(self, keypoints: Iterable[Keypoint]):
        self._points: Dict[str, Keypoint] = {kp.name: kp for kp in keypoints}

    @classmethod
    def coerce(cls, frame: FrameInput) -> "PoseFrame":
        if isinstance(frame, PoseFrame):
            return frame
        if isinstance(frame, Mapping):
            # {"nose": Keypoint(...)} or {"nose": {"x": .., "y": .., "score": ..}}
            return cls(
                kp if isinstance(kp, Keypoint) else keypoint_from_dict({"name": name, **kp})
                for name, kp in frame.items()
            )
        points = [kp if isinstance(kp, Keypoint) else keypoint_from_dict(kp) for kp in frame]
        return cls(points)

    def __contains__(self, name: str) -> bool:
        return name in self._points

    def __len__(self) -> int:
        return len(self._points)

    def get(self, name: str) -> Optional[Keypoint]:
        return self._points.get(name)

    def usable(self, name: str, threshold: float = DETECTION_CONFIDENCE) -> bool:
        kp = self._points.get(name)
        return kp is not None and kp.confidence > threshold

    def all_usable(self, names: Iterable[str], threshold: float = DETECTION_CONFIDENCE) -> bool:
        return all(self.usable(n, threshold) for n in names)

    def missing(self, names: Iterable[str], threshold: float = DETECTION_CONFIDENCE) -> List[str]:
        return [n for n in names if not self.usable(n, threshold)]

    def mean_y(self, *names: str) -> float:
        return float(np.mean([self._points[n].y for n in names]))

    def angle(self, a: str, b: str, c: str) -> float:
        return joint_angle(self._points[a], self._points[b], self._points[c])

    def to_list(self) -> List[Keypoint]:
        return list(self._points.values())


def elbow_angles(frame: PoseFrame) -> Tuple[float, float]:
    left = frame.angle("left_shoulder", "left_elbow", "left_wrist")
    right = frame.angle("right_shoulder", "right_elbow", "right_wrist")
    return left, right


def knee_angles(frame: PoseFrame) -> Tuple[float, float]:
    left = frame.angle("left_hip", "left_knee", "left_ankle")
    right = frame.angle("right_hip", "right_knee", "right_ankle")
    return left, right


def wrists_above_shoulders(frame: PoseFrame) -> bool:
    """Hanging from a bar: both hands sit higher in the image than the shoulders."""
    return frame.mean_y("left_wrist", "right_wrist") < frame.mean_y("left_shoulder", "right_shoulder")
