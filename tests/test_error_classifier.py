import pytest

from backend.app.services import error_classifier
from backend.app.services.error_classifier import (
    DEFAULT_ERROR_MESSAGE,
    ERROR_MESSAGES,
    JOB_FAILED_MESSAGE,
    classify,
    classify_transport_error,
)
from backend.app.services.job_client import TransportError


@pytest.mark.parametrize("code", sorted(ERROR_MESSAGES))
def test_known_codes_ignore_fallback(code):
    assert classify(code, "server said something") == ERROR_MESSAGES[code]


def test_file_corrupted_message():
    assert (
        classify("FILE_CORRUPTED")
        == "The uploaded file appears to be corrupted. Please try a different file."
    )


def test_missing_code_uses_fallback_then_generic():
    assert classify(None, "Disk full on worker") == "Disk full on worker"
    assert classify(None) == JOB_FAILED_MESSAGE
    assert classify("", None) == JOB_FAILED_MESSAGE


def test_unknown_code_uses_fallback_then_default():
    assert classify("WEIRD_CODE", "Something odd") == "Something odd"
    assert classify("WEIRD_CODE") == DEFAULT_ERROR_MESSAGE


@pytest.mark.parametrize(
    "status, expected",
    [
        (413, error_classifier.HTTP_FILE_TOO_LARGE),
        (415, error_classifier.HTTP_UNSUPPORTED_TYPE),
        (503, error_classifier.HTTP_UNAVAILABLE),
        (500, error_classifier.HTTP_SERVER_ERROR),
        (502, error_classifier.HTTP_SERVER_ERROR),
        (400, error_classifier.HTTP_BAD_REQUEST),
        (404, error_classifier.HTTP_BAD_REQUEST),
        (None, error_classifier.NETWORK_ERROR),
    ],
)
def test_transport_errors_by_status(status, expected):
    assert classify_transport_error(TransportError(http_status=status)) == expected


def test_structured_body_wins_over_status():
    error = TransportError(
        http_status=402,
        body={"error": {"code": "INSUFFICIENT_QUOTA", "message": "quota"}},
    )
    assert classify_transport_error(error) == ERROR_MESSAGES["INSUFFICIENT_QUOTA"]


def test_structured_body_with_unknown_code_uses_its_message():
    error = TransportError(
        http_status=400,
        body={"error": {"code": "TENANT_DISABLED", "message": "Tenant is disabled."}},
    )
    assert classify_transport_error(error) == "Tenant is disabled."


def test_unstructured_body_falls_back_to_status():
    error = TransportError(http_status=500, body={"detail": "boom"})
    assert classify_transport_error(error) == error_classifier.HTTP_SERVER_ERROR


def test_unknown_body_code_without_message_uses_status():
    error = TransportError(http_status=500, body={"error": {"code": "WORKER_LOST"}})
    assert classify_transport_error(error) == error_classifier.HTTP_SERVER_ERROR

    error = TransportError(http_status=None, body={"error": {"code": "WORKER_LOST"}})
    assert classify_transport_error(error) == error_classifier.NETWORK_ERROR


def test_known_body_code_without_message_wins():
    error = TransportError(http_status=500, body={"error": {"code": "PROCESSING_TIMEOUT"}})
    assert classify_transport_error(error) == ERROR_MESSAGES["PROCESSING_TIMEOUT"]
