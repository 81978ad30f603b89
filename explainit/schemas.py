from typing import List, Optional, Union

from pydantic import BaseModel

from explainit.models import CaptureSource


# OCR.space wire format. Field names follow the service's casing.
class ParsedResult(BaseModel):
    ParsedText: Optional[str] = None


class OcrSpaceResponse(BaseModel):
    ParsedResults: Optional[List[ParsedResult]] = None
    IsErroredOnProcessing: bool = False
    ErrorMessage: Optional[Union[str, List[str]]] = None


class AnalyzeRequest(BaseModel):
    text: str


class AnalyzeResponse(BaseModel):
    result: Optional[str] = None


class NotificationOut(BaseModel):
    kind: str
    title: str
    message: str
    stage: Optional[str] = None


class RunResponse(BaseModel):
    run_id: int
    state: str
    transitions: List[str]
    superseded: bool
    extracted_text: Optional[str]
    explanation: Optional[str]
    failed_stage: Optional[str]
    payload_size: Optional[int]
    notification: Optional[NotificationOut]


class PermissionDeniedRequest(BaseModel):
    source: CaptureSource


class SessionResponse(BaseModel):
    busy: bool
    run_id: Optional[int]
    preview: Optional[str]
    extracted_text: Optional[str]
    explanation: Optional[str]
    alerts: List[NotificationOut]


class HealthResponse(BaseModel):
    status: str
    pipeline_state: str
    queue_depth: int
    ocr_url: str
    analysis_url: str
