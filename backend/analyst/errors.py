from __future__ import annotations


class AnalysisError(Exception):
    """Base class for failures surfaced to the caller of an analysis."""


class TransportError(AnalysisError):
    """The model endpoint call failed (non-2xx status, network fault or a stream error event)."""

    def __init__(self, status_code: int | None, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        label = f"HTTP {status_code}" if status_code is not None else "transport failure"
        super().__init__(f"Model endpoint error ({label}): {body[:500]}")


class TurnBudgetExceeded(AnalysisError):
    def __init__(self, max_turns: int) -> None:
        self.max_turns = max_turns
        super().__init__(f"Max turns reached without final response ({max_turns})")


class MarketDataError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
