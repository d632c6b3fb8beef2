"""Contextual data that is attached to events as they are captured."""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from typing import Any, BinaryIO

from crashscope.interfaces import (
    TRANSACTION_TYPE,
    Breadcrumb,
    Event,
    EventHint,
    HTTPRequest,
    Level,
    User,
    new_request,
)

logger = logging.getLogger(__name__)

MAX_REQUEST_BODY_BYTES = 10 * 1024
"""The largest request body, in bytes, that is sent along with an event."""

MAX_BREADCRUMBS = 100
"""The largest number of breadcrumbs a scope is allowed to keep."""

EventProcessor = Callable[[Event, "EventHint | None"], "Event | None"]


class LimitedBuffer:
    """A byte buffer that keeps at most ``capacity`` bytes.

    Writes past the capacity are silently discarded and mark the buffer as
    overflowed.
    """

    def __init__(self, capacity: int = MAX_REQUEST_BODY_BYTES) -> None:
        self.capacity = capacity
        self._buffer = bytearray()
        self._overflow = False

    def write(self, data: bytes) -> int:
        """Store as much of ``data`` as fits and return the number of bytes taken."""
        if self._overflow:
            return len(data)
        left = max(self.capacity - len(self._buffer), 0)
        if len(data) > left:
            self._overflow = True
            data = data[:left]
        self._buffer.extend(data)
        return len(data)

    def getvalue(self) -> bytes:
        """Return the bytes stored so far."""
        return bytes(self._buffer)

    def overflow(self) -> bool:
        """Report whether bytes were discarded."""
        return self._overflow


class _TeeBody:
    """A request body that copies everything read from it into a sink."""

    def __init__(self, body: BinaryIO, sink: LimitedBuffer) -> None:
        self._body = body
        self._sink = sink

    def read(self, size: int = -1) -> bytes:
        data = self._body.read(size)
        if data:
            self._sink.write(data)
        return data

    def readline(self, size: int = -1) -> bytes:
        data = self._body.readline(size)
        if data:
            self._sink.write(data)
        return data

    def __iter__(self):
        while True:
            line = self.readline()
            if not line:
                return
            yield line

    def close(self) -> None:
        self._body.close()

    def __getattr__(self, name: str) -> Any:
        return getattr(self._body, name)


class Scope:
    """Data that is locally relevant to events, such as breadcrumbs and tags.

    A scope is updated as the application runs and can be cloned cheaply.
    When an event is captured, the scope's data is merged into it by
    :meth:`apply_to_event`.

    ``send_default_pii`` is passed on to :func:`new_request` when a request
    is attached to an event: None when no client is configured.
    """

    def __init__(self, send_default_pii: bool | None = None) -> None:
        self.send_default_pii = send_default_pii
        self._lock = threading.RLock()
        self._reset()

    def _reset(self) -> None:
        self._breadcrumbs: list[Breadcrumb] = []
        self._user = User()
        self._tags: dict[str, str] = {}
        self._contexts: dict[str, dict[str, Any]] = {}
        self._extra: dict[str, Any] = {}
        self._fingerprint: list[str] = []
        self._level: Level | None = None
        self._transaction = ""
        self._request: HTTPRequest | None = None
        self._request_body: LimitedBuffer | None = None
        self._event_processors: list[EventProcessor] = []

    @property
    def breadcrumbs(self) -> list[Breadcrumb]:
        return self._breadcrumbs

    @property
    def user(self) -> User:
        return self._user

    @property
    def tags(self) -> dict[str, str]:
        return self._tags

    @property
    def contexts(self) -> dict[str, dict[str, Any]]:
        return self._contexts

    @property
    def extra(self) -> dict[str, Any]:
        return self._extra

    @property
    def fingerprint(self) -> list[str]:
        return self._fingerprint

    @property
    def level(self) -> Level | None:
        return self._level

    @property
    def request(self) -> HTTPRequest | None:
        return self._request

    @property
    def request_body(self) -> LimitedBuffer | None:
        return self._request_body

    @property
    def event_processors(self) -> list[EventProcessor]:
        return self._event_processors

    def add_breadcrumb(self, breadcrumb: Breadcrumb, limit: int) -> None:
        """Add a breadcrumb, dropping the oldest one if ``limit`` is exceeded."""
        if breadcrumb.timestamp is None:
            breadcrumb.timestamp = datetime.now(timezone.utc)
        with self._lock:
            self._breadcrumbs.append(breadcrumb)
            if len(self._breadcrumbs) > limit:
                self._breadcrumbs = self._breadcrumbs[1:limit + 1]

    def clear_breadcrumbs(self) -> None:
        """Remove all breadcrumbs."""
        with self._lock:
            self._breadcrumbs = []

    def set_user(self, user: User) -> None:
        """Set the user."""
        with self._lock:
            self._user = user

    def set_request(self, request: HTTPRequest | None) -> None:
        """Set the request, buffering its body lazily as it is read."""
        with self._lock:
            self._request = request
            if request is None:
                return
            if request.content_length > MAX_REQUEST_BODY_BYTES:
                return
            if request.body is None:
                return
            buffer = LimitedBuffer(MAX_REQUEST_BODY_BYTES)
            request.body = _TeeBody(request.body, buffer)
            self._request_body = buffer

    def set_request_body(self, body: bytes) -> None:
        """Set the request body from bytes that are already in memory."""
        with self._lock:
            buffer = LimitedBuffer(MAX_REQUEST_BODY_BYTES)
            buffer.write(body)
            self._request_body = buffer

    def set_tag(self, key: str, value: str) -> None:
        """Add a tag."""
        with self._lock:
            self._tags[key] = value

    def set_tags(self, tags: Mapping[str, str]) -> None:
        """Add several tags."""
        with self._lock:
            self._tags.update(tags)

    def remove_tag(self, key: str) -> None:
        """Remove a tag if it is present."""
        with self._lock:
            self._tags.pop(key, None)

    def set_context(self, key: str, value: dict[str, Any]) -> None:
        """Add a context."""
        with self._lock:
            self._contexts[key] = value

    def set_contexts(self, contexts: Mapping[str, dict[str, Any]]) -> None:
        """Add several contexts."""
        with self._lock:
            self._contexts.update(contexts)

    def remove_context(self, key: str) -> None:
        """Remove a context if it is present."""
        with self._lock:
            self._contexts.pop(key, None)

    def set_extra(self, key: str, value: Any) -> None:
        """Add an extra value."""
        with self._lock:
            self._extra[key] = value

    def set_extras(self, extra: Mapping[str, Any]) -> None:
        """Add several extra values."""
        with self._lock:
            self._extra.update(extra)

    def remove_extra(self, key: str) -> None:
        """Remove an extra value if it is present."""
        with self._lock:
            self._extra.pop(key, None)

    def set_fingerprint(self, fingerprint: Iterable[str]) -> None:
        """Replace the fingerprint."""
        with self._lock:
            self._fingerprint = list(fingerprint)

    def set_level(self, level: Level | None) -> None:
        """Set the level."""
        with self._lock:
            self._level = level

    def set_transaction(self, name: str) -> None:
        """Set the transaction name."""
        with self._lock:
            self._transaction = name

    def transaction(self) -> str:
        """Return the transaction name."""
        with self._lock:
            return self._transaction

    def clone(self) -> Scope:
        """Return a copy of the scope that can be changed independently."""
        with self._lock:
            other = Scope(self.send_default_pii)
            other._user = dataclasses.replace(self._user)
            other._breadcrumbs = list(self._breadcrumbs)
            other._tags = dict(self._tags)
            other._contexts = dict(self._contexts)
            other._extra = dict(self._extra)
            other._fingerprint = list(self._fingerprint)
            other._level = self._level
            other._transaction = self._transaction
            other._request = self._request
            other._request_body = self._request_body
            other._event_processors = list(self._event_processors)
            return other

    def clear(self) -> None:
        """Remove all data from the scope."""
        with self._lock:
            self._reset()

    def add_event_processor(self, processor: EventProcessor) -> None:
        """Add a function that may change or drop events."""
        with self._lock:
            self._event_processors.append(processor)

    def apply_to_event(
        self, event: Event, hint: EventHint | None = None
    ) -> Event | None:
        """Merge the scope's data into ``event`` and run the event processors.

        Returns the processed event, or None if a processor dropped it.
        """
        with self._lock:
            if self._breadcrumbs:
                event.breadcrumbs.extend(self._breadcrumbs)

            if self._tags:
                event.tags.update(self._tags)

            for key, value in self._contexts.items():
                if key == "trace" and event.type == TRANSACTION_TYPE:
                    # A transaction's own trace context must stay intact.
                    continue
                event.contexts.setdefault(key, value)

            if self._extra:
                event.extra.update(self._extra)

            if event.user.is_empty():
                event.user = self._user

            if not event.fingerprint:
                event.fingerprint.extend(self._fingerprint)

            if self._level:
                event.level = self._level

            if self._transaction:
                event.transaction = self._transaction

            if event.request is None and self._request is not None:
                event.request = new_request(self._request, self.send_default_pii)
                # Partial bodies are never sent.
                body = self._request_body
                if body is not None and not body.overflow():
                    event.request.data = body.getvalue().decode("utf-8", "replace")

            processed: Event | None = event
            for processor in self._event_processors:
                event_id = processed.event_id
                processed = processor(processed, hint)
                if processed is None:
                    logger.debug(
                        "Event dropped by one of the Scope EventProcessors: %s",
                        event_id,
                    )
                    return None
            return processed