"""
Exception types raised inside the pipeline.

None of these reach the rendering layer: they are caught and logged at
the submitter and capture boundaries.
"""


class VisionPipelineError(Exception):
    """Base error for the vision pipeline."""
    def __init__(self, message="An error occurred in the vision pipeline.", details=None):
        super().__init__(message)
        self.details = details

    def __str__(self):
        if self.details:
            return f"{super().__str__()} Details: {self.details}"
        return super().__str__()


class SubmissionError(VisionPipelineError):
    """A frame could not be prepared or handed to the inference engine."""
    def __init__(self, message="Frame submission failed.", details=None):
        super().__init__(message, details)


class EngineError(VisionPipelineError):
    """The inference engine refused the work (e.g. it has been shut down)."""
    def __init__(self, message="Inference engine unavailable.", details=None):
        super().__init__(message, details)


class CaptureError(VisionPipelineError):
    """The camera could not be opened or configured."""
    def __init__(self, message="Video capture failed.", source=None):
        super().__init__(message, details=f"source={source!r}" if source is not None else None)
        self.source = source
