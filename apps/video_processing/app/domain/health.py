from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from pydantic import Field

from .common import CamelModel


class CheckStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"


class OverallStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class DependencyCheck(CamelModel):
    status: CheckStatus
    details: Optional[str] = None
    latency_ms: float = Field(default=0.0, ge=0)


class HealthResponse(CamelModel):
    status: OverallStatus
    timestamp: datetime
    uptime_seconds: float
    version: str
    environment: str
    dependencies: dict[str, DependencyCheck]


def derive_overall_status(checks: Iterable[DependencyCheck]) -> OverallStatus:
    """``ok`` with no failures, ``unhealthy`` when every check fails, else ``degraded``."""

    statuses = [check.status for check in checks]
    failures = sum(1 for status in statuses if status is CheckStatus.FAIL)
    if failures == 0:
        return OverallStatus.OK
    if failures == len(statuses):
        return OverallStatus.UNHEALTHY
    return OverallStatus.DEGRADED
