"""
Error registry: loads and validates registry.yaml.

Each entry maps an ``MF-<DOMAIN>-NNN`` code to the HTTP status, safe
client message and remediation hints the error handlers render.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import yaml

from mindforge.core.errors import CODE_PATTERN

logger = logging.getLogger(__name__)

DEFAULT_PATH = os.path.join(os.path.dirname(__file__), "registry.yaml")

VALID_DOMAINS = {"API", "USG", "LLM", "BIL", "WHK", "SYS"}
VALID_SEVERITIES = {"DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"}
REQUIRED_FIELDS = {"code", "domain", "title", "severity", "retryable", "user_action_required", "http_status", "safe_message", "remediation"}


class RegistryValidationError(Exception):
    """Raised when registry.yaml has structural errors."""


@dataclass(frozen=True)
class ErrorEntry:
    code: str
    domain: str
    title: str
    severity: str
    retryable: bool
    user_action_required: bool
    http_status: int
    safe_message: str
    remediation: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, idx: int, raw: dict) -> "ErrorEntry":
        missing = REQUIRED_FIELDS - set(raw)
        if missing:
            raise RegistryValidationError(f"Entry {idx} ({raw.get('code', '?')}): missing fields {sorted(missing)}")

        code = raw["code"]
        if not CODE_PATTERN.match(code):
            raise RegistryValidationError(f"Invalid code format: {code!r}")

        domain = raw["domain"]
        prefix = code.split("-")[1]
        if domain != prefix:
            raise RegistryValidationError(f"{code}: domain {domain!r} doesn't match code prefix {prefix!r}")
        if domain not in VALID_DOMAINS:
            raise RegistryValidationError(f"{code}: unknown domain {domain!r}")
        if raw["severity"] not in VALID_SEVERITIES:
            raise RegistryValidationError(f"{code}: unknown severity {raw['severity']!r}")

        return cls(
            code=code,
            domain=domain,
            title=raw["title"],
            severity=raw["severity"],
            retryable=bool(raw["retryable"]),
            user_action_required=bool(raw["user_action_required"]),
            http_status=int(raw["http_status"]),
            safe_message=raw["safe_message"],
            remediation=raw.get("remediation") or [],
            tags=raw.get("tags") or [],
        )


class ErrorRegistry:
    """Code → ErrorEntry lookup, replaced wholesale on each successful load."""

    def __init__(self) -> None:
        self._entries: Dict[str, ErrorEntry] = {}
        self.schema_version: int = 0

    def load(self, path: str = DEFAULT_PATH) -> None:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        raw_entries = data.get("errors", [])
        if not isinstance(raw_entries, list):
            raise RegistryValidationError("'errors' must be a list")

        entries: Dict[str, ErrorEntry] = {}
        for idx, raw in enumerate(raw_entries):
            entry = ErrorEntry.from_mapping(idx, raw)
            if entry.code in entries:
                raise RegistryValidationError(f"Duplicate code: {entry.code}")
            entries[entry.code] = entry

        self._entries = entries
        self.schema_version = data.get("schema_version", 0)
        logger.info("error_registry_loaded", extra={"count": len(entries), "schema_version": self.schema_version})

    def get(self, code: str) -> Optional[ErrorEntry]:
        return self._entries.get(code)

    def lookup(self, code: str) -> ErrorEntry:
        """Lookup by code, raising KeyError if not found."""
        entry = self._entries.get(code)
        if entry is None:
            raise KeyError(f"Unknown error code: {code!r}")
        return entry

    def codes(self, domain: Optional[str] = None) -> List[str]:
        return [c for c, e in self._entries.items() if domain is None or e.domain == domain]


# Module-level singleton, loaded once at startup
error_registry = ErrorRegistry()
