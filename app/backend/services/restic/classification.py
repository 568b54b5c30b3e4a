"""Classify restic failure output.

restic reports operational errors on lines starting with `Fatal`. A missing
repository config file means the repository was never initialized; its exact
wording depends on the backend.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

from backend.services.restic.errors import CommandError, NotInitialized, ResticError


FATAL_PREFIX = "Fatal"

_CONFIG_MISSING = "unable to open config file"

NOT_INITIALIZED_SIGNATURES: Dict[str, Tuple[Tuple[str, ...], ...]] = {
    "rest": ((_CONFIG_MISSING, "<config/> does not exist"),),
    "sftp": ((_CONFIG_MISSING, "file does not exist"),),
    "s3": ((_CONFIG_MISSING, "key does not exist"),),
}


def is_fatal(line: str) -> bool:
    return line.strip().startswith(FATAL_PREFIX)


def is_not_initialized(text: str, backend: Optional[str] = None) -> bool:
    """Return True when `text` carries a backend's "not initialized" signature.

    Args:
        text: Output line or block.
        backend: Backend kind (`rest`, `sftp`, `s3`); None checks all of them.

    Returns:
        bool: True if the repository config object is reported missing.
    """

    if backend is None:
        candidates: Iterable[Tuple[str, ...]] = (
            sig for sigs in NOT_INITIALIZED_SIGNATURES.values() for sig in sigs
        )
    else:
        candidates = NOT_INITIALIZED_SIGNATURES.get(backend, ())
    return any(all(part in text for part in signature) for signature in candidates)


def classify_failure(text: str, *, backend: Optional[str] = None, exit_code: Optional[int] = None) -> CommandError:
    """Map failure output to an exception.

    Args:
        text: Offending output (line or whole stream).
        backend: Backend kind of the job, if known.
        exit_code: Process exit code, if known.

    Returns:
        CommandError: `NotInitialized` for a missing repository config,
        otherwise `ResticError` with the detail.
    """

    if is_not_initialized(text, backend):
        return NotInitialized()
    return ResticError(text.strip(), exit_code)
