# Core data structures (boxes, detections, tracks, result channels)

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union
from uuid import UUID, uuid4

# box coordinates
@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned bounding box normalized to the frame: every coordinate
    is in [0, 1] relative to the frame width/height.
    (x, y) = top-left corner, (width, height) = extent.
    """
    x: float
    y: float
    width: float
    height: float

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    def is_empty(self) -> bool:
        return self.width <= 0.0 or self.height <= 0.0

    def intersects(self, other: "BoundingBox") -> bool:
        """
        True if the two boxes share a region of non-zero area.
        Boxes that only touch along an edge do not intersect.
        """
        if self.is_empty() or other.is_empty():
            return False
        return (
            max(self.x, other.x) < min(self.x2, other.x2)
            and max(self.y, other.y) < min(self.y2, other.y2)
        )

    def clamped(self) -> "BoundingBox":
        x1 = min(max(self.x, 0.0), 1.0)
        y1 = min(max(self.y, 0.0), 1.0)
        x2 = min(max(self.x2, 0.0), 1.0)
        y2 = min(max(self.y2, 0.0), 1.0)
        return BoundingBox(x1, y1, max(0.0, x2 - x1), max(0.0, y2 - y1))

    def to_pixels(self, frame_width: int, frame_height: int) -> Tuple[int, int, int, int]:
        """
        Returns (x1, y1, x2, y2) in absolute pixels for a frame of the given size.
        """
        return (
            int(round(self.x * frame_width)),
            int(round(self.y * frame_height)),
            int(round(self.x2 * frame_width)),
            int(round(self.y2 * frame_height)),
        )

    @classmethod
    def from_pixels(cls, x1: float, y1: float, x2: float, y2: float,
                    frame_width: int, frame_height: int) -> "BoundingBox":
        return cls(
            x=float(x1) / frame_width,
            y=float(y1) / frame_height,
            width=float(x2 - x1) / frame_width,
            height=float(y2 - y1) / frame_height,
        )


@dataclass
class Detection:
    """
    One inference output for a single frame.
    The uuid is assigned when the engine first reports the observation
    and is carried along by tracking.
    """
    box: BoundingBox
    confidence: float
    uuid: UUID = field(default_factory=uuid4)


@dataclass
class ObjectDetection(Detection):
    label: str = ""
    class_id: int = -1


@dataclass
class FaceDetection(Detection):
    # pose angles in degrees, None when the detector cannot estimate them
    roll: Optional[float] = None
    yaw: Optional[float] = None
    pitch: Optional[float] = None
    capture_quality: Optional[float] = None


@dataclass
class FaceLandmarks(Detection):
    # region name -> points normalized to the frame
    regions: Dict[str, List[Tuple[float, float]]] = field(default_factory=dict)
    roll: Optional[float] = None
    yaw: Optional[float] = None
    pitch: Optional[float] = None

    @property
    def points(self) -> List[Tuple[float, float]]:
        return [p for pts in self.regions.values() for p in pts]


@dataclass
class TrackedObject(Detection):
    pass


DetectionResult = Union[ObjectDetection, FaceDetection, FaceLandmarks, TrackedObject]


class TrackState(Enum):
    PENDING = "pending"    # started, no confident result yet
    ACTIVE = "active"      # last result was above the threshold
    RECYCLED = "recycled"  # request returned to the pool


class Channel(Enum):
    """
    The independently published result lists consumed by the renderer.
    """
    OBJECTS = "objects"
    FACES = "faces"
    LANDMARKS = "landmarks"
    TRACKED = "tracked"
