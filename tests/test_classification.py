from __future__ import annotations

from backend.services.restic.classification import classify_failure, is_fatal, is_not_initialized
from backend.services.restic.errors import NotInitialized, ResticError


REST_LINE = "Fatal: unable to open config file: <config/> does not exist"
SFTP_LINE = "Fatal: unable to open config file: Lstat: file does not exist"
S3_LINE = "Fatal: unable to open config file: Stat: The specified key does not exist."


def test_rest_signature_is_not_initialized() -> None:
    assert isinstance(classify_failure(REST_LINE, backend="rest"), NotInitialized)


def test_signature_without_backend_checks_all() -> None:
    assert isinstance(classify_failure(SFTP_LINE), NotInitialized)
    assert isinstance(classify_failure(S3_LINE), NotInitialized)


def test_backend_specific_signatures() -> None:
    assert is_not_initialized(SFTP_LINE, "sftp")
    assert is_not_initialized(S3_LINE, "s3")
    assert not is_not_initialized(S3_LINE, "rest")


def test_other_fatal_is_restic_error() -> None:
    error = classify_failure("Fatal: wrong password or no key found", backend="rest", exit_code=1)

    assert isinstance(error, ResticError)
    assert error.exit_code == 1
    assert "wrong password" in error.detail


def test_is_fatal() -> None:
    assert is_fatal("  Fatal: boom")
    assert not is_fatal('{"message_type": "status"}')
