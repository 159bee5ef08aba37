# End-to-end live camera demo

import argparse
import logging
from pathlib import Path

import cv2

from vision_pipeline.capture import CameraCapture, discover_cameras
from vision_pipeline.config import LoggingConfig, PipelineConfig
from vision_pipeline.detector import (
    DummyFaceDetector,
    DummyLandmarkDetector,
    LbfLandmarkDetector,
    YoloObjectDetector,
    YuNetFaceDetector,
)
from vision_pipeline.engine import EngineBackends, VisionEngine
from vision_pipeline.overlay import draw_observations
from vision_pipeline.pipeline import FramePipeline
from vision_pipeline.tracker import CsrtObjectTracker

logger = logging.getLogger(__name__)

WINDOW_NAME = "Live Vision"


def configure_logging(config: LoggingConfig) -> None:
    handlers = [logging.StreamHandler()]
    if config.log_to_file:
        Path(config.log_path).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.log_path))

    logging.basicConfig(
        level=getattr(logging, config.level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(threadName)s %(name)s: %(message)s",
        handlers=handlers,
    )


def build_backends(config: PipelineConfig) -> EngineBackends:
    """
    Load the models. Face and landmark models are optional: when their
    files are missing those passes run with dummy backends.
    """
    object_detector = YoloObjectDetector(config.detection)

    if Path(config.face.detector_model_path).is_file():
        face_detector = YuNetFaceDetector(config.face)
    else:
        logger.warning("Face model not found at %s, face detection disabled", config.face.detector_model_path)
        face_detector = DummyFaceDetector()

    if Path(config.face.landmark_model_path).is_file() and hasattr(cv2, "face"):
        landmark_detector = LbfLandmarkDetector(config.face)
    else:
        logger.warning("Landmark model not found at %s (or cv2.face missing), landmarks disabled",
                       config.face.landmark_model_path)
        landmark_detector = DummyLandmarkDetector()

    return EngineBackends(
        object_detector=object_detector,
        face_detector=face_detector,
        landmark_detector=landmark_detector,
        tracker_factory=CsrtObjectTracker,
    )


def run_demo(config: PipelineConfig, video_source=None) -> None:
    """
    End-to-end demo:
      camera -> pipeline (objects, faces, landmarks, tracking) -> overlay -> display
    """

    if video_source is None:
        video_source = config.video.source

    engine = VisionEngine(build_backends(config), max_workers=config.engine.max_workers)
    pipeline = FramePipeline(engine, config)
    capture = CameraCapture(config.video).on_captured_image(pipeline.on_frame)

    cameras = list(discover_cameras().values()) if isinstance(video_source, int) else []

    pipeline.start()
    if not capture.start(video_source):
        pipeline.stop()
        engine.shutdown()
        return

    try:
        while True:
            frame = pipeline.publisher.latest_frame()
            if frame is not None:
                shown = draw_observations(frame.copy(), pipeline.publisher.snapshot())
                cv2.imshow(WINDOW_NAME, shown)

            key = cv2.waitKey(1) & 0xFF
            if key == 27 or key == ord("q"):  # ESC or q
                break
            if key == ord("c") and len(cameras) > 1:
                # restart on the next camera
                current = cameras.index(capture.source) if capture.source in cameras else -1
                capture.start(cameras[(current + 1) % len(cameras)])
            if not capture.is_running:
                break
    finally:
        capture.stop()
        pipeline.stop()
        engine.shutdown()
        cv2.destroyAllWindows()


def main() -> None:
    parser = argparse.ArgumentParser(description="Live object/face detection and tracking demo")
    parser.add_argument(
        "--camera",
        type=str,
        default=None,
        help="Camera index (e.g. 0 for default webcam) or video file path",
    )
    parser.add_argument("--width", type=int, default=None, help="Requested capture width")
    parser.add_argument("--height", type=int, default=None, help="Requested capture height")
    parser.add_argument("--log-level", type=str, default=None, help="DEBUG, INFO, WARNING, ...")
    parser.add_argument("--list-cameras", action="store_true", help="Print available cameras and exit")
    args = parser.parse_args()

    cfg = PipelineConfig()
    if args.width:
        cfg.video.frame_width = args.width
    if args.height:
        cfg.video.frame_height = args.height
    if args.log_level:
        cfg.logging.level = args.log_level

    configure_logging(cfg.logging)

    if args.list_cameras:
        for name, index in discover_cameras().items():
            print(f"{index}: {name}")
        return

    if args.camera is None:
        video_source = cfg.video.source
    else:
        # If argument is a digit, treat it as camera index; else as path
        if args.camera.isdigit():
            video_source = int(args.camera)
        else:
            video_source = args.camera

    run_demo(cfg, video_source=video_source)


if __name__ == "__main__":
    main()
