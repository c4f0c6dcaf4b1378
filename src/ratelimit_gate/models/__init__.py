"""Payload models."""

from .problem import PROBLEM_JSON_MEDIA_TYPE, TOO_MANY_REQUESTS_TYPE, ProblemDetails

__all__ = [
    "PROBLEM_JSON_MEDIA_TYPE",
    "TOO_MANY_REQUESTS_TYPE",
    "ProblemDetails",
]
