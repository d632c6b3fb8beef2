# crashscope

Building blocks for collecting and describing application errors: an event
model with its JSON form, scopes that carry contextual data into events,
stack traces with source context, event processors ("integrations"), and
parsing of server rate-limit headers. The package has no dependencies outside
the standard library.

## Modules

### `crashscope.interfaces`

The event model, as dataclasses:

- `Event`, with `to_dict()` and `to_json()`. Empty fields and unset
  timestamps are left out; `type`, `start_timestamp` and `spans` are only
  written when `type` is `"transaction"`. `new_event()` returns an empty event.
- `Breadcrumb`, `User` (with `is_empty()`), `Request`, `ExceptionInfo`,
  `Thread`, `SdkInfo`, `SdkPackage`, `EventHint`, and the `Level` enum
  (`DEBUG`, `INFO`, `WARNING`, `ERROR`, `FATAL`).
- `HTTPRequest` describes an incoming request (method, host, path, raw query,
  headers, remote address, TLS flag, body, content length); header names are
  canonicalised, e.g. `x-real-ip` becomes `X-Real-Ip`.
- `new_request(request, send_default_pii)` turns an `HTTPRequest` into a
  `Request` without reading the body. With `send_default_pii=True`, cookies,
  all headers and `REMOTE_ADDR`/`REMOTE_PORT` are kept; with `False` only the
  `Host` header is kept; with `None` (no client configured) every header except
  those in `sensitive_headers()` is kept.

### `crashscope.scope`

`Scope` holds breadcrumbs, user, tags, contexts, extras, fingerprint, level,
transaction name, request and request body, and event processors.

- `add_breadcrumb(breadcrumb, limit)` keeps at most `limit` breadcrumbs,
  dropping the oldest, and stamps breadcrumbs that have no timestamp.
- `set_request(request)` wraps the request body so that what is read from it
  is copied into a `LimitedBuffer` of `MAX_REQUEST_BODY_BYTES` (10 KiB);
  `set_request_body(body)` sets already available bytes.
- `clone()` returns an independent copy; `clear()` empties the scope.
- `apply_to_event(event, hint)` merges the scope into an event (event
  contexts, user, fingerprint and request take precedence; the scope's level
  and transaction name win when set), attaches the request body only if it did
  not overflow, then runs the event processors. A processor that returns
  `None` drops the event and `apply_to_event` returns `None`.

`MAX_BREADCRUMBS` is 100.

### `crashscope.stacktrace`

`Frame` and `Stacktrace`, each with `to_dict()`. `new_stacktrace()` captures
the current call stack, `extract_stacktrace(error)` the traceback of a raised
exception (or `None` if it was never raised); both list the outermost call
first and pass the frames through `filter_frames()`, which drops frames of the
modules `runtime` and `testing` and of `crashscope` itself.
`is_in_app_frame()` marks standard-library frames and modules containing
`vendor` or `third_party` as not in-app. Helpers: `new_frame()`,
`split_qualified_function_name()`, `package_name()`, `base_name()`.

### `crashscope.sourcereader`

`SourceReader.read_context_lines(filename, line, context)` returns the lines
around a 1-based line and the index of that line among them, caching each
file (unreadable files are cached as missing). `calculate_context_lines()`
does the same for lines already in memory.

### `crashscope.integrations`

Event processors, each with `name()`, `setup_once(client)` and
`process(event, hint)`:

- `ModulesIntegration` attaches installed distributions and their versions,
  read once from `.dist-info` metadata (a custom loader may be passed).
  `extract_modules(main, deps)` builds such a map from `Module` records,
  noting replacements as `"v1 => path v2"`.
- `EnvironmentIntegration` fills the `device`, `os` and `runtime` contexts
  without overwriting values already present.
- `IgnoreErrorsIntegration` drops events whose message or exception type or
  value matches one of the patterns; invalid patterns are skipped
  (`transform_strings_into_regexps()`, `get_ignore_errors_suspects()`).
- `ContextifyFramesIntegration` adds source lines (5 on each side by default)
  to in-app frames, looking for a missing file by dropping leading path
  components.

`setup_once(client)` expects an object with `add_event_processor()`, and for
`IgnoreErrorsIntegration` also `options.ignore_errors`.

### `crashscope.ratelimit`

- `parse_x_sentry_rate_limits(s, now)` parses the `X-Sentry-Rate-Limits`
  header (e.g. `"60:transaction, 2700:default;error"`) into `RateLimits`;
  unknown categories are ignored.
- `parse_retry_after(s, now)` parses a `Retry-After` value (seconds or an
  RFC 1123 date); on bad input it raises `InvalidRetryAfter`, whose
  `deadline` is one minute from `now`.
- `from_response(status_code, headers, now)` prefers `X-Sentry-Rate-Limits`
  and falls back to `Retry-After` on status 429.
- `RateLimits` maps categories (`CATEGORY_ALL`, `CATEGORY_ERROR`,
  `CATEGORY_TRANSACTION`) to `Deadline` values, with `deadline()`,
  `is_rate_limited()` and `merge()`. `category_name()` formats a category for
  debugging.

### `crashscope.randutil`

`random_float()` returns a cryptographically secure float in `[0.0, 1.0)`.

## Example

```python
from crashscope.interfaces import Breadcrumb, Level, User, new_event
from crashscope.scope import Scope

scope = Scope()
scope.set_tag("component", "billing")
scope.set_user(User(id="42", email="someone@example.com"))
scope.add_breadcrumb(Breadcrumb(message="charge started"), 100)
scope.set_level(Level.ERROR)

event = new_event()
event.message = "charge failed"
event = scope.apply_to_event(event, None)
print(event.to_json())
```

Rate limits from a response:

```python
from datetime import datetime, timezone
from crashscope.ratelimit import from_response

now = datetime.now(timezone.utc)
limits = from_response(429, {"Retry-After": "30"}, now)
print(limits.is_rate_limited("error", now))  # True
```

## What the package does not do

There is no client, transport or hub: nothing here sends events over the
network, samples traces, records spans, or offers capture functions. The
package prepares and filters events; delivering them is left to the caller.

## Tests

The tests use pytest, available through the `test` extra.