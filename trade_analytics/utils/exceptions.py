from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    RECORD = "record"
    CONFIGURATION = "configuration"
    QUERY = "query"


class AnalyticsError(Exception):
    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.RECORD,
        record_id: Optional[str] = None,
    ) -> None:
        self.message = message
        self.category = category
        self.record_id = record_id
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [f"[{self.category.value}] {self.message}"]
        if self.record_id:
            parts.append(f"Record: {self.record_id}")
        return " | ".join(parts)


class MalformedRecordError(AnalyticsError):
    def __init__(self, record_id: Optional[str], reason: str) -> None:
        self.reason = reason
        super().__init__(reason.replace("_", " "), ErrorCategory.RECORD, record_id)


class ConfigurationError(AnalyticsError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCategory.CONFIGURATION)


class InvalidDateRangeError(AnalyticsError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCategory.QUERY)
