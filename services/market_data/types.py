from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ProviderError(BaseModel):
    message: str
    status: Optional[int] = None  # upstream HTTP status when there was one


class ProviderResult(BaseModel):
    """Outcome of one upstream call: either data or a captured error."""

    ok: bool
    source: str
    data: Any = None
    error: Optional[ProviderError] = None

    @classmethod
    def success(cls, source: str, data: Any) -> "ProviderResult":
        return cls(ok=True, source=source, data=data)

    @classmethod
    def failure(cls, source: str, message: str, status: Optional[int] = None) -> "ProviderResult":
        return cls(ok=False, source=source, error=ProviderError(message=message, status=status))

    def error_entry(self) -> Dict[str, Any]:
        """Shape stored in aggregated data for a failed slot."""
        err = self.error or ProviderError(message="unknown error")
        entry: Dict[str, Any] = {"error": err.message}
        if err.status is not None:
            entry["status"] = err.status
        return entry
