from abc import ABC, abstractmethod
from typing import List, Optional

from explainit.models import Notification


class DisplaySink(ABC):
    """What the orchestrator pushes to whatever shows results to the user."""

    @abstractmethod
    def show_preview(self, uri: Optional[str]) -> None: ...

    @abstractmethod
    def show_text(self, text: Optional[str]) -> None: ...

    @abstractmethod
    def show_explanation(self, explanation: Optional[str]) -> None: ...

    @abstractmethod
    def set_busy(self, busy: bool) -> None: ...

    @abstractmethod
    def alert(self, notification: Notification) -> None: ...


class SessionDisplay(DisplaySink):
    """In-memory display state for one session, read back over HTTP."""

    def __init__(self, max_alerts: int = 20):
        self.preview: Optional[str] = None
        self.extracted_text: Optional[str] = None
        self.explanation: Optional[str] = None
        self.busy = False
        self.alerts: List[Notification] = []
        self._max_alerts = max_alerts

    def show_preview(self, uri: Optional[str]) -> None:
        self.preview = uri

    def show_text(self, text: Optional[str]) -> None:
        self.extracted_text = text

    def show_explanation(self, explanation: Optional[str]) -> None:
        self.explanation = explanation

    def set_busy(self, busy: bool) -> None:
        self.busy = busy

    def alert(self, notification: Notification) -> None:
        self.alerts.append(notification)
        del self.alerts[: -self._max_alerts]
