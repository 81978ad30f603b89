from typing import Optional

from explainit.models import CaptureSource, Stage


class PipelineError(Exception):
    """Base class for failures of a pipeline stage."""

    stage: Optional[Stage] = None


class EncodingError(PipelineError):
    """Raised when the source image cannot be decoded or re-encoded."""

    stage = Stage.REDUCING


class OcrServiceError(PipelineError):
    """Raised when the OCR service call fails (transport, status or body)."""

    stage = Stage.EXTRACTING_TEXT


class AnalysisServiceError(PipelineError):
    """Raised when the analysis service call fails."""

    stage = Stage.EXPLAINING


class PipelineBusyError(Exception):
    """Raised when a run is requested while another run is in a stage."""


class PermissionDenied(Exception):
    def __init__(self, source: CaptureSource):
        super().__init__(f"{source.value} permission denied")
        self.source = source
