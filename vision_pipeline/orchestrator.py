import logging
from typing import List, Optional

import numpy as np

from vision_pipeline.config import PipelineConfig
from vision_pipeline.data_types import Channel, DetectionResult, FaceDetection, FaceLandmarks, ObjectDetection
from vision_pipeline.state import PipelineState
from vision_pipeline.submitters import FixedImageSubmitter, ImageSubmitter, SequenceSubmitter
from vision_pipeline.tracking import TrackingManager
from vision_pipeline.vision_requests import FaceDetect, InferenceRequest, LandmarkDetect, ObjectDetect

logger = logging.getLogger(__name__)


class DetectionOrchestrator:
    """
    Owns one submitter and request per detection kind and wires their results.

      objects   -> published; offered to tracking
      faces     -> published; offered to tracking; if any face was found
                   the cached frame is submitted for landmarks, otherwise
                   the landmark list is cleared
      landmarks -> published
      tracking  -> submitted on every frame regardless of detections
    """

    def __init__(self, engine, state: PipelineState, processing_queue,
                 config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()
        self.state = state

        detection = self.config.detection
        self.object_submitter = FixedImageSubmitter(engine, detection.input_width, detection.input_height)
        self.object_request = InferenceRequest(ObjectDetect(), self.object_submitter, processing_queue)

        self.face_submitter = ImageSubmitter(engine)
        self.face_request = InferenceRequest(FaceDetect(), self.face_submitter, processing_queue)

        self.landmark_submitter = ImageSubmitter(engine)
        self.landmark_request = InferenceRequest(LandmarkDetect(), self.landmark_submitter, processing_queue)

        self.sequence_submitter = SequenceSubmitter(engine)
        self.tracking = TrackingManager(self.sequence_submitter, processing_queue, state, self.config.tracking)

    # Enable detections
    def enable_detections(self) -> None:
        self.enable_object_detections()
        self.enable_face_detections()
        self.enable_landmark_detections()

    # Must run on the processing context (it stops active tracks)
    def disable_detections(self) -> None:
        self.object_request.disable()
        self.face_request.disable()
        self.landmark_request.disable()
        self.tracking.stop_all()

    def enable_object_detections(self) -> None:
        self.object_request.enable(self._on_object_results)

    def enable_face_detections(self) -> None:
        self.face_request.enable(self._on_face_results)

    def enable_landmark_detections(self) -> None:
        self.landmark_request.enable(self._on_landmark_results)

    # ---------- Submission (camera context) ----------

    def submit_object_detection(self, frame: np.ndarray) -> bool:
        height, width = frame.shape[:2]
        return self.object_submitter.submit(frame, width, height)

    def submit_face_detection(self, frame: np.ndarray) -> bool:
        height, width = frame.shape[:2]
        return self.face_submitter.submit(frame, width, height)

    def submit_landmark_detection(self, frame: Optional[np.ndarray]) -> bool:
        if frame is None:
            return False
        height, width = frame.shape[:2]
        return self.landmark_submitter.submit(frame, width, height)

    def submit_tracking(self, frame: np.ndarray) -> bool:
        return self.sequence_submitter.submit(frame)

    # ---------- Results (processing context) ----------

    def _on_object_results(self, results: List[DetectionResult]) -> None:
        objects = [r for r in results if isinstance(r, ObjectDetection)]
        self.state.publisher.publish(Channel.OBJECTS, objects)

        if self.config.tracking.track_objects:
            for obj in objects:
                self.tracking.start_tracking(obj)

    def _on_face_results(self, results: List[DetectionResult]) -> None:
        faces = [r for r in results if isinstance(r, FaceDetection)]
        self.state.publisher.publish(Channel.FACES, faces)

        if self.config.tracking.track_faces:
            for face in faces:
                self.tracking.start_tracking(face)

        if faces:
            self.submit_landmark_detection(self.state.cached_frame)
        else:
            self.state.publisher.publish(Channel.LANDMARKS, [])

    def _on_landmark_results(self, results: List[DetectionResult]) -> None:
        landmarks = [r for r in results if isinstance(r, FaceLandmarks)]
        self.state.publisher.publish(Channel.LANDMARKS, landmarks)
