# all configurations in one place

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

import torch

# Paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
MODELS_DIR = PROJECT_ROOT / "models"

@dataclass
class VideoConfig:
    source: Union[int, str] = 0  # 0 for webcam, or path to video file
    frame_width: int = 1280
    frame_height: int = 720
    fps: int = 30

@dataclass
class DetectionConfig:
    model_path: Path = MODELS_DIR / "detector" / "yolov5su.pt"
    fallback_model: str = "yolov8n.pt"  # downloaded by ultralytics on first use
    input_width: int = 640   # the detector has a fixed 640x640 input
    input_height: int = 640
    confidence_threshold: float = 0.25
    iou_threshold: float = 0.45
    max_detections: int = 50
    device: str = "cuda" if torch.cuda.is_available() else "cpu"

@dataclass
class FaceConfig:
    detector_model_path: Path = MODELS_DIR / "face" / "face_detection_yunet_2023mar.onnx"
    score_threshold: float = 0.6
    nms_threshold: float = 0.3
    landmark_model_path: Path = MODELS_DIR / "face" / "lbfmodel.yaml"

@dataclass
class TrackingConfig:
    max_tracks: int = 10              # concurrent tracking contexts the engine can afford
    confidence_threshold: float = 0.3 # a track survives only while confidence > this
    track_faces: bool = True
    track_objects: bool = True

@dataclass
class EngineConfig:
    max_workers: int = 4  # threads performing single image batches

@dataclass
class LoggingConfig:
    level: str = "INFO"
    log_path: Path = DATA_DIR / "logs" / "pipeline.log"
    log_to_file: bool = False

@dataclass
class PipelineConfig:
    video: VideoConfig = field(default_factory=VideoConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    face: FaceConfig = field(default_factory=FaceConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
