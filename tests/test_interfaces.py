import json
from datetime import datetime, timezone

import pytest

from crashscope.interfaces import (
    Breadcrumb,
    Event,
    ExceptionInfo,
    HTTPRequest,
    Level,
    Request,
    User,
    new_event,
    new_request,
    sensitive_headers,
)
from crashscope.stacktrace import Frame, Stacktrace

TS = datetime(2008, 5, 12, 16, 26, 19, 123456, tzinfo=timezone.utc)


def _parse(text):
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


def _sample_request(**kwargs):
    defaults = dict(
        method="POST",
        host="example.com",
        path="/foo",
        raw_query="q=1",
        headers={
            "Authorization": "Bearer token",
            "cookie": "session=token",
            "x-real-ip": "192.0.2.1",
            "Accept": ["text/html", "application/json"],
        },
        remote_addr="192.0.2.1:1234",
    )
    defaults.update(kwargs)
    return HTTPRequest(**defaults)


def test_sensitive_headers():
    assert sensitive_headers() == {
        "Authorization",
        "Cookie",
        "X-Forwarded-For",
        "X-Real-Ip",
    }


def test_level_values():
    assert Level.DEBUG.value == "debug"
    assert Level.FATAL.value == "fatal"
    assert Event(level=Level.WARNING).to_dict()["level"] == "warning"


def test_user_empty():
    assert User().is_empty() is True


@pytest.mark.parametrize(
    "kwargs",
    [
        {"id": "1337"},
        {"email": "foo@example.com"},
        {"ip_address": "127.0.0.1"},
        {"username": "My Username"},
        {"name": "My Name"},
        {"segment": "My Segment"},
        {"data": {"foo": "bar"}},
    ],
)
def test_user_not_empty(kwargs):
    assert User(**kwargs).is_empty() is False


def test_user_to_dict_omits_empty():
    assert User(id="1337").to_dict() == {"id": "1337"}


def test_breadcrumb_without_timestamp_omits_it():
    result = Breadcrumb(message="test").to_dict()
    assert "timestamp" not in result
    assert result["message"] == "test"


def test_breadcrumb_timestamp_round_trip():
    result = Breadcrumb(message="test", level=Level.INFO, timestamp=TS).to_dict()
    assert _parse(result["timestamp"]) == TS
    assert result["level"] == "info"


def test_new_request_without_client_drops_sensitive_headers():
    req = new_request(_sample_request())
    assert "Authorization" not in req.headers
    assert "Cookie" not in req.headers
    assert "X-Real-Ip" not in req.headers
    assert req.headers["Host"] == "example.com"
    assert req.headers["Accept"] == "text/html,application/json"
    assert req.cookies == ""
    assert req.env is None


def test_new_request_url_and_fields():
    req = new_request(_sample_request())
    assert req.url == "http://example.com/foo"
    assert req.method == "POST"
    assert req.query_string == "q=1"


def test_new_request_https_via_forwarded_proto():
    headers = {"X-Forwarded-Proto": "https"}
    req = new_request(_sample_request(headers=headers))
    assert req.url == "https://example.com/foo"
    tls_req = new_request(_sample_request(tls=True))
    assert tls_req.url.startswith("https://")


def test_new_request_with_pii():
    req = new_request(_sample_request(), send_default_pii=True)
    assert req.cookies == "session=token"
    assert req.headers["Authorization"] == "Bearer token"
    assert req.headers["Host"] == "example.com"
    assert req.env == {"REMOTE_ADDR": "192.0.2.1", "REMOTE_PORT": "1234"}


def test_new_request_with_pii_ipv6_address():
    req = new_request(_sample_request(remote_addr="[::1]:80"), send_default_pii=True)
    assert req.env == {"REMOTE_ADDR": "::1", "REMOTE_PORT": "80"}


def test_new_request_with_pii_bad_address_has_no_env():
    req = new_request(_sample_request(remote_addr="nowhere"), send_default_pii=True)
    assert req.env is None


def test_new_request_client_without_pii_keeps_only_host():
    req = new_request(_sample_request(), send_default_pii=False)
    assert req.headers == {"Host": "example.com"}
    assert req.cookies == ""
    assert req.env is None


def test_request_to_dict_omits_empty():
    assert Request(url="aye").to_dict() == {"url": "aye"}


def test_error_event_omits_transaction_fields():
    event = Event(
        message="foo",
        type="other",
        start_time=TS,
        spans=[{"op": "x"}],
    )
    result = event.to_dict()
    assert "type" not in result
    assert "start_timestamp" not in result
    assert "spans" not in result
    assert "timestamp" not in result
    assert result["message"] == "foo"


def test_transaction_event_includes_transaction_fields():
    event = Event(type="transaction", timestamp=TS, start_time=TS, spans=[{"op": "x"}])
    result = event.to_dict()
    assert result["type"] == "transaction"
    assert _parse(result["start_timestamp"]) == TS
    assert _parse(result["timestamp"]) == TS
    assert result["spans"] == [{"op": "x"}]


def test_event_always_has_user_and_sdk():
    result = new_event().to_dict()
    assert result["user"] == {}
    assert result["sdk"] == {}
    assert "tags" not in result


def test_event_serializes_exception_stacktrace():
    stacktrace = Stacktrace(frames=[Frame(function="main", module="main", lineno=3)])
    event = Event(exception=[ExceptionInfo(type="exType", value="exVal", stacktrace=stacktrace)])
    exc = event.to_dict()["exception"][0]
    assert exc["type"] == "exType"
    assert exc["value"] == "exVal"
    assert exc["stacktrace"] == stacktrace.to_dict()


def test_event_to_json_round_trip():
    event = Event(
        message="foo",
        tags={"a": "b"},
        breadcrumbs=[Breadcrumb(message="crumb", timestamp=TS)],
        user=User(id="42"),
        request=Request(url="aye"),
        timestamp=TS,
    )
    assert json.loads(event.to_json()) == event.to_dict()


def test_new_event_containers_are_independent():
    first = new_event()
    second = new_event()
    first.tags["a"] = "b"
    first.contexts["c"] = {"d": 1}
    assert second.tags == {}
    assert second.contexts == {}


def test_http_request_canonicalizes_headers():
    request = HTTPRequest(headers={"x-real-ip": "192.0.2.1", "X-REAL-IP": ["192.0.2.2"]})
    assert request.headers == {"X-Real-Ip": ["192.0.2.1", "192.0.2.2"]}