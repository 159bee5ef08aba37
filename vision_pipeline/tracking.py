import functools
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional
from uuid import UUID

from vision_pipeline.config import TrackingConfig
from vision_pipeline.data_types import BoundingBox, Detection, DetectionResult, TrackedObject, TrackState
from vision_pipeline.state import PipelineState
from vision_pipeline.submitters import SequenceSubmitter
from vision_pipeline.vision_requests import TrackingRequest

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ActiveTrack:
    """
    A tracking request together with the last known position of its object.
    """
    uuid: UUID
    request: TrackingRequest
    box: BoundingBox
    confidence: float
    state: TrackState = TrackState.PENDING
    frames: int = 0  # confident results received so far


class TrackingManager:
    """
    Starts tracks for new detections and reconciles tracking results.

    Logic:
      - A detection whose box overlaps any active track at all is
        considered already tracked.
      - At most max_tracks tracks run at once; extra detections are
        ignored until a slot frees up.
      - A track stays alive while its result confidence is strictly above
        the threshold; otherwise its request goes back to the pool.
      - Before a track is started with nothing active, the sequence
        handler is reset and the pool emptied so the engine can free
        the tracker state it accumulated.

    Every method must run on the processing context.
    """

    def __init__(self, submitter: SequenceSubmitter, processing_queue, state: PipelineState,
                 config: Optional[TrackingConfig] = None):
        config = config or TrackingConfig()
        self.submitter = submitter
        self.processing_queue = processing_queue
        self.state = state
        self.max_tracks = config.max_tracks
        self.confidence_threshold = config.confidence_threshold

        self.active_tracks: Dict[UUID, ActiveTrack] = {}
        self.pool: List[TrackingRequest] = []
        self.allocated = 0   # TrackingRequests alive (active + pooled)
        self.resets = 0

    @property
    def active_count(self) -> int:
        return len(self.active_tracks)

    def is_already_tracked(self, detection: Detection) -> bool:
        return any(track.box.intersects(detection.box) for track in self.active_tracks.values())

    def start_tracking(self, detection: Detection) -> Optional[ActiveTrack]:
        """
        Start following detection unless it is already tracked or the cap
        is reached. Returns the new track, or None.
        """
        if detection.uuid in self.active_tracks or self.is_already_tracked(detection):
            return None

        if len(self.active_tracks) >= self.max_tracks:
            logger.debug("Tracking cap (%d) reached, not tracking %s", self.max_tracks, detection.uuid)
            return None

        if not self.active_tracks and self.pool:
            self._reset_idle()

        if self.pool:
            request = self.pool.pop()
            request.reconfigure(detection)
        else:
            request = TrackingRequest(detection, self.submitter, self.processing_queue)
            self.allocated += 1

        track = ActiveTrack(
            uuid=detection.uuid,
            request=request,
            box=detection.box,
            confidence=detection.confidence,
        )
        self.active_tracks[track.uuid] = track
        self.state.tracked_objects[track.uuid] = TrackedObject(
            box=detection.box,
            confidence=detection.confidence,
            uuid=detection.uuid,
        )
        self.state.publish_tracked()

        request.enable(functools.partial(self._on_results, track))
        logger.debug("Started track %s (%d active)", track.uuid, len(self.active_tracks))
        return track

    def stop_all(self) -> None:
        for track in list(self.active_tracks.values()):
            self._recycle(track)

    def _on_results(self, track: ActiveTrack, results: List[DetectionResult]) -> None:
        if self.active_tracks.get(track.uuid) is not track:
            return

        observation = next((r for r in results if isinstance(r, TrackedObject)), None)

        if observation is not None and observation.confidence > self.confidence_threshold:
            track.request.reuse(observation)
            track.box = observation.box
            track.confidence = observation.confidence
            track.state = TrackState.ACTIVE
            track.frames += 1
            self.state.tracked_objects[track.uuid] = observation
            self.state.publish_tracked()
        else:
            self._recycle(track)

    def _recycle(self, track: ActiveTrack) -> None:
        request = track.request
        # the final-frame flag must be set before disable() detaches the request
        request.set_final_frame()
        request.disable()

        del self.active_tracks[track.uuid]
        self.pool.append(request)
        track.state = TrackState.RECYCLED

        self.state.tracked_objects.pop(track.uuid, None)
        self.state.publish_tracked()
        logger.debug("Recycled track %s after %d frames (%d active, %d pooled)",
                     track.uuid, track.frames, len(self.active_tracks), len(self.pool))

    def _reset_idle(self) -> None:
        self.submitter.reset()
        self.allocated -= len(self.pool)
        self.pool.clear()
        self.resets += 1
        logger.info("No active tracks, reset sequence handler and cleared tracker pool")
