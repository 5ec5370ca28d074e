"""
Error code system.

MindforgeError is the base exception for all structured errors.
Raise it with an error code from the registry, and the error middleware
will produce a structured JSON response.

Usage:
    from mindforge.core.errors import MindforgeError
    raise MindforgeError("MF-API-001", detail="project 42 not found")
"""

from __future__ import annotations

import re

CODE_PATTERN = re.compile(r"^MF-[A-Z]{2,6}-\d{3}$")


class MindforgeError(Exception):
    """Structured application error tied to the error registry.

    Args:
        code: Registry error code, e.g. "MF-USG-001".
        detail: Internal-only detail message (never exposed to users).
        context: Arbitrary key-value context for structured logging.
        payload: Client-facing structured data, returned as ``error.data``.
    """

    def __init__(
        self,
        code: str,
        detail: str | None = None,
        context: dict | None = None,
        payload: dict | None = None,
    ) -> None:
        if not CODE_PATTERN.match(code):
            raise ValueError(f"Invalid error code format: {code!r}")
        self.code = code
        self.detail = detail
        self.context = context or {}
        self.payload = payload
        super().__init__(f"{code}: {detail}" if detail else code)


class NotFoundError(MindforgeError):
    """A user-scoped resource does not exist (or belongs to someone else)."""

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(
            "MF-API-001",
            detail=f"{resource} {resource_id} not found",
            context={"resource": resource, "resource_id": resource_id},
        )


class InvalidInputError(MindforgeError):
    def __init__(self, detail: str, field: str | None = None) -> None:
        super().__init__(
            "MF-API-002",
            detail=detail,
            context={"field": field} if field else None,
            payload={"field": field, "reason": detail} if field else {"reason": detail},
        )
