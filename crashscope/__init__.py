"""Events, scopes, stack traces, integrations and rate limits for error reporting."""

__version__ = "0.14.0"

__all__ = [
    "integrations",
    "interfaces",
    "randutil",
    "ratelimit",
    "scope",
    "sourcereader",
    "stacktrace",
]