"""
Problem Details Model

Machine-readable error payload (RFC 7807 style) returned in synthesized
error responses.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

PROBLEM_JSON_MEDIA_TYPE = "application/problem+json"
TOO_MANY_REQUESTS_TYPE = "https://tools.ietf.org/html/rfc6585#section-4"


class ProblemDetails(BaseModel):
    """Structured problem payload."""
    type: Optional[str] = Field(default=None, description="URI identifying the problem type")
    title: Optional[str] = Field(default=None, description="Short human-readable summary")
    status: Optional[int] = Field(default=None, description="HTTP status code")
    detail: Optional[str] = Field(default=None, description="Explanation specific to this occurrence")
    instance: Optional[str] = Field(default=None, description="URI of this occurrence")
    errors: Dict[str, List[str]] = Field(default_factory=dict, description="Errors keyed by field name")

    def clear(self, name: str) -> "ProblemDetails":
        """Remove the errors recorded for ``name``."""
        self.errors.pop(name, None)
        return self

    def set_error_message(self, message: str) -> "ProblemDetails":
        """Set the general error message."""
        self.errors["general"] = [message]
        return self

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


__all__ = [
    "PROBLEM_JSON_MEDIA_TYPE",
    "TOO_MANY_REQUESTS_TYPE",
    "ProblemDetails",
]
