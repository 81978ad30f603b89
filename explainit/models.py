import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple


class CaptureSource(str, enum.Enum):
    CAMERA = "camera"
    GALLERY = "gallery"


class PipelineState(str, enum.Enum):
    IDLE = "idle"
    REDUCING = "reducing"
    EXTRACTING_TEXT = "extracting_text"
    EXPLAINING = "explaining"
    DONE = "done"
    FAILED = "failed"

    @property
    def busy(self) -> bool:
        return self in (
            PipelineState.REDUCING,
            PipelineState.EXTRACTING_TEXT,
            PipelineState.EXPLAINING,
        )


class Stage(str, enum.Enum):
    REDUCING = "reducing"
    EXTRACTING_TEXT = "extracting_text"
    EXPLAINING = "explaining"


@dataclass
class ImageAsset:
    """A captured or picked image, handed over by the capture collaborator.

    Exactly one of ``data`` or ``path`` is set. ``uri`` is what the display
    uses as the preview reference.
    """

    uri: str
    source: CaptureSource = CaptureSource.GALLERY
    data: Optional[bytes] = None
    path: Optional[Path] = None
    known_size: Optional[int] = None

    def __post_init__(self):
        if (self.data is None) == (self.path is None):
            raise ValueError("ImageAsset needs exactly one of data or path")

    def read_bytes(self) -> bytes:
        if self.data is not None:
            return self.data
        return Path(self.path).read_bytes()

    @property
    def byte_size(self) -> int:
        if self.known_size is not None:
            return self.known_size
        if self.data is not None:
            return len(self.data)
        return Path(self.path).stat().st_size


@dataclass
class EncodedPayload:
    data: bytes
    quality: int
    width: int
    height: int
    byte_ceiling: int
    # (quality, encoded size) for every encode, in order
    attempts: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def within_ceiling(self) -> bool:
        return self.size <= self.byte_ceiling

    def __len__(self) -> int:
        return self.size


@dataclass(frozen=True)
class Notification:
    kind: str  # "info" or "error"
    title: str
    message: str
    stage: Optional[Stage] = None


CAMERA_PERMISSION_ALERT = Notification(
    "error", "Permission required", "Please grant camera permissions."
)
GALLERY_PERMISSION_ALERT = Notification(
    "error", "Permission required", "Please grant access to your media library."
)
NO_TEXT_ALERT = Notification(
    "info",
    "No text detected",
    "Try another image with clearer text.",
    Stage.EXTRACTING_TEXT,
)
IMAGE_FAILURE_ALERT = Notification(
    "error", "Error", "Could not read the selected image.", Stage.REDUCING
)
EXTRACTION_FAILURE_ALERT = Notification(
    "error", "Error", "Failed to extract text.", Stage.EXTRACTING_TEXT
)
ANALYSIS_FAILURE_ALERT = Notification(
    "error", "Error", "Could not connect to AI service.", Stage.EXPLAINING
)

PERMISSION_ALERTS = {
    CaptureSource.CAMERA: CAMERA_PERMISSION_ALERT,
    CaptureSource.GALLERY: GALLERY_PERMISSION_ALERT,
}


@dataclass
class RunOutcome:
    run_id: int
    state: PipelineState
    transitions: List[PipelineState] = field(default_factory=list)
    extracted_text: Optional[str] = None
    explanation: Optional[str] = None
    notification: Optional[Notification] = None
    failed_stage: Optional[Stage] = None
    payload_size: Optional[int] = None
    superseded: bool = False
