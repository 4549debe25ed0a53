"""Bounded-wait calls to external programs.

Nothing in the core depends on a helper binary being installed; callers
catch the errors raised here and fall back to a built-in path.
"""

from __future__ import annotations

import functools
import logging
import shutil
import subprocess
from collections.abc import Sequence

from fcupdater.errors import CommandTimeoutError, ExternalToolUnavailableError, IoError

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=None)
def is_available(program: str) -> bool:
    return shutil.which(program) is not None


def run_command(
    argv: Sequence[str],
    *,
    input: bytes | None = None,
    timeout: float | None = None,
) -> bytes:
    """Run *argv* and return its stdout.

    A ``timeout`` of ``None`` or ``0`` waits indefinitely. On timeout the
    child is killed before :class:`CommandTimeoutError` is raised.
    """
    if not argv:
        raise ValueError("argv must not be empty")
    program = argv[0]
    if not is_available(program):
        raise ExternalToolUnavailableError("external program not found", program=program)

    limit = timeout if timeout else None
    logger.debug("Running %s (timeout=%s)", " ".join(argv), limit)
    try:
        completed = subprocess.run(
            list(argv),
            input=input,
            capture_output=True,
            timeout=limit,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise CommandTimeoutError(
            "external program timed out", program=program, timeout=limit
        ) from exc
    except FileNotFoundError as exc:
        raise ExternalToolUnavailableError(
            "external program not found", program=program
        ) from exc
    except OSError as exc:
        raise IoError("could not start external program", program=program, cause=exc) from exc

    if completed.returncode != 0:
        stderr = completed.stderr.decode("utf-8", errors="replace").strip()
        raise IoError(
            "external program failed",
            program=program,
            returncode=completed.returncode,
            stderr=stderr[:200],
        )
    return completed.stdout
