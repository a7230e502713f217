import pytest

from vendorwatch.inference.core.error_classifier import classify, classify_exception


@pytest.mark.parametrize("text", ["Timeout 30000ms exceeded", "TIMEOUT", "operation timed out"])
def test_timeout_in_any_case(text):
    info = classify(text)
    assert info.is_connection_error
    assert info.category == "timeout"
    assert info.confidence == 1.0


@pytest.mark.parametrize(
    "text, category, confidence",
    [
        ("net::ERR_CONNECTION_REFUSED at https://vendor.example", "connection_refused", 1.0),
        ("getaddrinfo ENOTFOUND vendor.example", "dns_failure", 1.0),
        ("net::ERR_CERT_AUTHORITY_INVALID", "tls_error", 0.95),
        ("net::ERR_CONNECTION_RESET", "network_error", 0.9),
        ("Upstream answered 503 Service Unavailable", "server_error", 0.9),
    ],
)
def test_categories(text, category, confidence):
    info = classify(text)
    assert info.category == category
    assert info.confidence == confidence
    assert info.is_connection_error


def test_first_match_wins():
    # both a timeout and a refused connection are mentioned
    assert classify("ECONNREFUSED after timeout").category == "timeout"


def test_unmatched_text_is_returned_verbatim():
    text = "Element is not visible"
    info = classify(text)
    assert not info.is_connection_error
    assert info.category == "unknown"
    assert info.confidence == 0.0
    assert info.summary == text


def test_status_codes_inside_numbers_are_not_server_errors():
    assert classify("order 15003 not found").category == "unknown"


def test_classify_exception_treats_timeout_error_as_timeout():
    info = classify_exception(TimeoutError())
    assert info.category == "timeout"
