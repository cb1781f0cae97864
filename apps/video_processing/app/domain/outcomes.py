from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class NonFatalOutcome:
    """Result of a best-effort side effect whose failure must not abort the job."""

    operation: str
    target: str
    succeeded: bool
    error: BaseException | None = None

    @classmethod
    def from_result(
        cls, operation: str, target: str, result: object
    ) -> "NonFatalOutcome":
        if isinstance(result, BaseException):
            return cls(operation=operation, target=target, succeeded=False, error=result)
        return cls(operation=operation, target=target, succeeded=True)
