# Frame pipeline: camera frame -> detections/tracking -> published snapshots

import logging
from typing import Optional

import numpy as np

from vision_pipeline.config import PipelineConfig
from vision_pipeline.dispatch import SerialQueue
from vision_pipeline.orchestrator import DetectionOrchestrator
from vision_pipeline.state import PipelineState, ResultPublisher

logger = logging.getLogger(__name__)


class FramePipeline:
    """
    Entry point for camera frames.

    on_frame() is called from the camera context, one frame at a time.
    Results are processed on processing_queue and snapshots are applied
    on publish_queue; both default to dedicated SerialQueues owned (and
    closed) by the pipeline.
    """

    def __init__(self, engine, config: Optional[PipelineConfig] = None,
                 processing_queue=None, publish_queue=None):
        self.config = config or PipelineConfig()
        self._owned_queues = []

        if processing_queue is None:
            processing_queue = SerialQueue("vision-results")
            self._owned_queues.append(processing_queue)
        if publish_queue is None:
            publish_queue = SerialQueue("vision-publish")
            self._owned_queues.append(publish_queue)

        self.processing_queue = processing_queue
        self.publish_queue = publish_queue
        self.publisher = ResultPublisher(publish_queue)
        self.state = PipelineState(self.publisher)
        self.orchestrator = DetectionOrchestrator(engine, self.state, processing_queue, self.config)
        self.frame_count = 0

    def start(self) -> None:
        self.orchestrator.enable_detections()
        logger.info("Detections enabled")

    def on_frame(self, frame: np.ndarray) -> None:
        if frame is None:
            return

        self.frame_count += 1

        # kept for the landmark pass, which runs after face detection returns
        self.state.cache_frame(frame)

        self.orchestrator.submit_object_detection(frame)
        self.orchestrator.submit_face_detection(frame)
        self.orchestrator.submit_tracking(frame)

        self.publisher.publish_frame(frame)

    def stop(self) -> None:
        self.processing_queue.dispatch(self.orchestrator.disable_detections)
        for queue in self._owned_queues:
            queue.close()
        logger.info("Pipeline stopped after %d frames", self.frame_count)
