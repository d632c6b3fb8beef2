"""Data structures of the event protocol and their JSON form."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from crashscope.stacktrace import Stacktrace

TRANSACTION_TYPE = "transaction"

SCHEME_HTTP = "http"
SCHEME_HTTPS = "https"


class Level(str, Enum):
    """The severity of an event or breadcrumb."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


def sensitive_headers() -> set[str]:
    """Return the header names that are left out unless PII may be sent."""
    return {"Authorization", "Cookie", "X-Forwarded-For", "X-Real-Ip"}


def _format_time(value: datetime) -> str:
    """Format a datetime as RFC 3339 with trailing fractional zeros trimmed."""
    if value.tzinfo is None:
        value = value.astimezone()
    text = value.isoformat(timespec="microseconds")
    main, _, rest = text.partition(".")
    fraction, offset = rest[:6], rest[6:]
    fraction = fraction.rstrip("0")
    if offset in ("+00:00", "-00:00"):
        offset = "Z"
    return f"{main}.{fraction}{offset}" if fraction else f"{main}{offset}"


def _serialize(value: Any) -> Any:
    """Turn protocol objects into JSON-ready values."""
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return _format_time(value)
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    return value


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    """Drop empty values, as the wire format omits them."""
    return {key: _serialize(value) for key, value in values.items() if value}


@dataclass
class SdkPackage:
    """A package that was installed."""

    name: str = ""
    version: str = ""


@dataclass
class SdkInfo:
    """Metadata about the SDK being used."""

    name: str = ""
    version: str = ""
    integrations: list[str] = field(default_factory=list)
    packages: list[SdkPackage] = field(default_factory=list)


def _sdk_dict(sdk: SdkInfo) -> dict[str, Any]:
    return _compact(
        {
            "name": sdk.name,
            "version": sdk.version,
            "integrations": list(sdk.integrations),
            "packages": [
                _compact({"name": p.name, "version": p.version}) for p in sdk.packages
            ],
        }
    )


@dataclass
class Breadcrumb:
    """An application event that occurred before an event was captured."""

    type: str = ""
    category: str = ""
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    level: Level | None = None
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form; an unset timestamp is left out."""
        result = _compact(
            {
                "type": self.type,
                "category": self.category,
                "message": self.message,
                "data": self.data,
                "level": self.level,
            }
        )
        if self.timestamp is not None:
            result["timestamp"] = _format_time(self.timestamp)
        return result


@dataclass
class User:
    """The user associated with an event."""

    id: str = ""
    email: str = ""
    ip_address: str = ""
    username: str = ""
    name: str = ""
    segment: str = ""
    data: dict[str, str] = field(default_factory=dict)

    def is_empty(self) -> bool:
        """Report whether no field of the user is set."""
        return not any(
            (
                self.id,
                self.email,
                self.ip_address,
                self.username,
                self.name,
                self.segment,
                self.data,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form, omitting empty fields."""
        return _compact(
            {
                "id": self.id,
                "email": self.email,
                "ip_address": self.ip_address,
                "username": self.username,
                "name": self.name,
                "segment": self.segment,
                "data": self.data,
            }
        )


def _canonical_header_key(key: str) -> str:
    return "-".join(part.capitalize() for part in key.split("-"))


@dataclass
class HTTPRequest:
    """An incoming HTTP request as seen by a server.

    Header names are canonicalised (``x-real-ip`` becomes ``X-Real-Ip``)
    and each header maps to the list of its values. ``body`` is a binary
    file-like object or None.
    """

    method: str = "GET"
    host: str = ""
    path: str = "/"
    raw_query: str = ""
    headers: dict[str, list[str]] = field(default_factory=dict)
    remote_addr: str = ""
    tls: bool = False
    body: Any = None
    content_length: int = 0

    def __post_init__(self) -> None:
        canonical: dict[str, list[str]] = {}
        for key, values in self.headers.items():
            if isinstance(values, str):
                values = [values]
            canonical.setdefault(_canonical_header_key(key), []).extend(values)
        self.headers = canonical


def _get_header(request: HTTPRequest, name: str) -> str:
    values = request.headers.get(_canonical_header_key(name))
    return values[0] if values else ""


def _split_host_port(address: str) -> tuple[str, str]:
    """Split ``host:port`` or ``[host]:port``; raise ValueError if malformed."""
    if address.startswith("["):
        end = address.find("]")
        if end < 0 or address[end + 1:end + 2] != ":":
            raise ValueError(f"malformed address {address!r}")
        host, port = address[1:end], address[end + 2:]
        if "[" in port or "]" in port:
            raise ValueError(f"malformed address {address!r}")
        return host, port
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {address!r}")
    if ":" in host:
        raise ValueError(f"too many colons in address {address!r}")
    if "[" in address or "]" in address:
        raise ValueError(f"malformed address {address!r}")
    return host, port


@dataclass
class Request:
    """Information on an HTTP request related to an event."""

    url: str = ""
    method: str = ""
    data: str = ""
    query_string: str = ""
    cookies: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form, omitting empty fields."""
        return _compact(
            {
                "url": self.url,
                "method": self.method,
                "data": self.data,
                "query_string": self.query_string,
                "cookies": self.cookies,
                "headers": self.headers,
                "env": self.env,
            }
        )


def new_request(
    request: HTTPRequest, send_default_pii: bool | None = None
) -> Request:
    """Build a protocol request from an HTTP request without reading its body.

    ``send_default_pii`` is the client's option, or None when no client is
    configured. With True, cookies, all headers and the remote address are
    kept; with False, only the Host header is; with None, all headers
    except the sensitive ones are kept.
    """
    protocol = SCHEME_HTTP
    if request.tls or _get_header(request, "X-Forwarded-Proto") == "https":
        protocol = SCHEME_HTTPS
    url = f"{protocol}://{request.host}{request.path}"

    cookies = ""
    env: dict[str, str] | None = None
    headers: dict[str, str] = {}

    if send_default_pii is None:
        hidden = sensitive_headers()
        headers = {
            key: ",".join(values)
            for key, values in request.headers.items()
            if key not in hidden
        }
    elif send_default_pii:
        cookies = _get_header(request, "Cookie")
        headers = {key: ",".join(values) for key, values in request.headers.items()}
        try:
            addr, port = _split_host_port(request.remote_addr)
        except ValueError:
            pass
        else:
            env = {"REMOTE_ADDR": addr, "REMOTE_PORT": port}

    headers["Host"] = request.host

    return Request(
        url=url,
        method=request.method,
        query_string=request.raw_query,
        cookies=cookies,
        headers=headers,
        env=env,
    )


@dataclass
class ExceptionInfo:
    """An error that occurred."""

    type: str = ""
    value: str = ""
    module: str = ""
    thread_id: str = ""
    stacktrace: Stacktrace | None = None


def _exception_dict(exc: ExceptionInfo) -> dict[str, Any]:
    return _compact(
        {
            "type": exc.type,
            "value": exc.value,
            "module": exc.module,
            "thread_id": exc.thread_id,
            "stacktrace": exc.stacktrace,
        }
    )


@dataclass
class Thread:
    """A thread that was running at the time of an event."""

    id: str = ""
    name: str = ""
    stacktrace: Stacktrace | None = None
    crashed: bool = False
    current: bool = False


def _thread_dict(thread: Thread) -> dict[str, Any]:
    return _compact(
        {
            "id": thread.id,
            "name": thread.name,
            "stacktrace": thread.stacktrace,
            "crashed": thread.crashed,
            "current": thread.current,
        }
    )


@dataclass
class Event:
    """The fundamental data structure that is sent to the server."""

    breadcrumbs: list[Breadcrumb] = field(default_factory=list)
    contexts: dict[str, dict[str, Any]] = field(default_factory=dict)
    dist: str = ""
    environment: str = ""
    event_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)
    fingerprint: list[str] = field(default_factory=list)
    level: Level | None = None
    message: str = ""
    platform: str = ""
    release: str = ""
    sdk: SdkInfo = field(default_factory=SdkInfo)
    server_name: str = ""
    threads: list[Thread] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)
    timestamp: datetime | None = None
    transaction: str = ""
    user: User = field(default_factory=User)
    logger: str = ""
    modules: dict[str, str] = field(default_factory=dict)
    request: Request | None = None
    exception: list[ExceptionInfo] = field(default_factory=list)
    # Only relevant for transactions.
    type: str = ""
    start_time: datetime | None = None
    spans: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form.

        Empty fields and unset timestamps are left out. The transaction-only
        fields are included only when the event is a transaction.
        """
        result = _compact(
            {
                "breadcrumbs": self.breadcrumbs,
                "contexts": self.contexts,
                "dist": self.dist,
                "environment": self.environment,
                "event_id": self.event_id,
                "extra": self.extra,
                "fingerprint": self.fingerprint,
                "level": self.level,
                "message": self.message,
                "platform": self.platform,
                "release": self.release,
                "server_name": self.server_name,
                "transaction": self.transaction,
                "logger": self.logger,
                "modules": self.modules,
                "request": self.request,
                "tags": self.tags,
            }
        )
        result["sdk"] = _sdk_dict(self.sdk)
        result["user"] = self.user.to_dict()
        if self.threads:
            result["threads"] = [_thread_dict(t) for t in self.threads]
        if self.exception:
            result["exception"] = [_exception_dict(e) for e in self.exception]
        if self.timestamp is not None:
            result["timestamp"] = _format_time(self.timestamp)
        if self.type == TRANSACTION_TYPE:
            result["type"] = self.type
            if self.start_time is not None:
                result["start_timestamp"] = _format_time(self.start_time)
            if self.spans:
                result["spans"] = _serialize(self.spans)
        return result

    def to_json(self) -> str:
        """Return the event encoded as JSON."""
        return json.dumps(self.to_dict())


def new_event() -> Event:
    """Create a new, empty event."""
    return Event()


@dataclass
class EventHint:
    """Information that can be associated with an event."""

    data: Any = None
    event_id: str = ""
    original_exception: BaseException | None = None
    recovered_exception: Any = None
    context: Any = None
    request: HTTPRequest | None = None
    response: Any = None