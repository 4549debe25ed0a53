"""Error taxonomy.

Library code raises these; only the CLI maps them to process exit codes.
Every error carries a stable ``code`` plus keyword context so the same
failure can be rendered on the console or serialised into a summary.

Usage:
    raise HeaderNotFoundError("header row not found", path=path, scan_rows=200)
"""

from __future__ import annotations

from typing import Any


class FcupdaterError(Exception):
    """Base class for every failure the updater reports."""

    code = "FCUPDATER_ERROR"
    exit_code = 1

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if not self.context:
            return self.message
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({ctx_str})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            **{k: str(v) for k, v in self.context.items()},
        }


class ArgumentConflictError(FcupdaterError):
    """Two mutually exclusive options were given together."""

    code = "ARGUMENT_CONFLICT"
    exit_code = 2


# ── Reading ──────────────────────────────────────────────────────


class FormatError(FcupdaterError):
    """A container or sheet could not be understood."""

    code = "FORMAT_ERROR"
    exit_code = 2


class ContainerNotFoundError(FormatError):
    code = "CONTAINER_NOT_FOUND"


class UnrecognizedContainerError(FormatError):
    code = "CONTAINER_UNRECOGNIZED"


class HeaderNotFoundError(FormatError):
    code = "HEADER_NOT_FOUND"


class DecodeError(FcupdaterError):
    """Strict decoding met a byte sequence it cannot map."""

    code = "DECODE_ERROR"
    exit_code = 2


# ── Writing ──────────────────────────────────────────────────────


class IntegrityError(FcupdaterError):
    """A written container failed post-write verification."""

    code = "INTEGRITY_ERROR"


class IoError(FcupdaterError):
    code = "IO_ERROR"


# ── External commands ────────────────────────────────────────────


class CommandTimeoutError(FcupdaterError):
    code = "COMMAND_TIMEOUT"


class ExternalToolUnavailableError(FcupdaterError):
    code = "EXTERNAL_TOOL_UNAVAILABLE"
