"""Stack traces and their frames."""

from __future__ import annotations

import inspect
import os
import sys
import sysconfig
from dataclasses import dataclass, field
from types import FrameType, TracebackType
from typing import Any

UNKNOWN = "unknown"

_SDK_PREFIX = "crashscope"
_MAX_FRAMES = 100


def _stdlib_paths() -> tuple[str, ...]:
    paths = sysconfig.get_paths()
    found = {paths[key] for key in ("stdlib", "platstdlib") if paths.get(key)}
    return tuple(sorted(found))


_STDLIB_PATHS = _stdlib_paths()


@dataclass
class Frame:
    """A function call and its metadata, part of a stack trace."""

    function: str = ""
    symbol: str = ""
    module: str = ""
    package: str = ""
    filename: str = ""
    abs_path: str = ""
    lineno: int = 0
    colno: int = 0
    pre_context: list[str] = field(default_factory=list)
    context_line: str = ""
    post_context: list[str] = field(default_factory=list)
    in_app: bool = False
    vars: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return the frame as a JSON-ready dict, omitting empty fields."""
        values = {
            "function": self.function,
            "symbol": self.symbol,
            "module": self.module,
            "package": self.package,
            "filename": self.filename,
            "abs_path": self.abs_path,
            "lineno": self.lineno,
            "colno": self.colno,
            "pre_context": list(self.pre_context),
            "context_line": self.context_line,
            "post_context": list(self.post_context),
            "in_app": self.in_app,
            "vars": dict(self.vars),
        }
        return {key: value for key, value in values.items() if value}


@dataclass
class Stacktrace:
    """The frames of a stack, outermost call first."""

    frames: list[Frame] = field(default_factory=list)
    frames_omitted: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the stack trace as a JSON-ready dict, omitting empty fields."""
        result: dict[str, Any] = {}
        if self.frames:
            result["frames"] = [frame.to_dict() for frame in self.frames]
        if self.frames_omitted:
            result["frames_omitted"] = list(self.frames_omitted)
        return result


def _split_paths(filename: str) -> tuple[str, str]:
    """Return (abs_path, filename) for a frame's file."""
    if not filename:
        return "", UNKNOWN
    if os.path.isabs(filename):
        return filename, ""
    return "", filename


def new_frame(filename: str, function: str, lineno: int) -> Frame:
    """Build a frame from a file name, a package-qualified function name and a line."""
    abs_path, rel_path = _split_paths(filename)
    module = ""
    if function:
        module, function = split_qualified_function_name(function)
    frame = Frame(
        abs_path=abs_path,
        filename=rel_path,
        lineno=lineno,
        module=module,
        function=function,
    )
    frame.in_app = is_in_app_frame(frame)
    return frame


def _module_name(frame: FrameType) -> str:
    module = inspect.getmodule(frame)
    if module is None:
        return ""
    return module.__name__


def _python_frame(frame: FrameType, lineno: int) -> Frame:
    code = frame.f_code
    abs_path, rel_path = _split_paths(code.co_filename)
    result = Frame(
        abs_path=abs_path,
        filename=rel_path,
        lineno=lineno,
        module=_module_name(frame),
        function=getattr(code, "co_qualname", code.co_name),
    )
    result.in_app = is_in_app_frame(result)
    return result


def new_stacktrace() -> Stacktrace | None:
    """Capture the current call stack, outermost call first."""
    frames: list[Frame] = []
    current = sys._getframe(0)
    while current is not None and len(frames) < _MAX_FRAMES:
        frames.append(_python_frame(current, current.f_lineno))
        current = current.f_back
    if not frames:
        return None
    frames.reverse()
    return Stacktrace(frames=filter_frames(frames))


def _traceback_frames(tb: TracebackType | None) -> list[Frame]:
    frames = []
    while tb is not None:
        frames.append(_python_frame(tb.tb_frame, tb.tb_lineno))
        tb = tb.tb_next
    return frames


def extract_stacktrace(error: BaseException) -> Stacktrace | None:
    """Build a stack trace from the traceback an exception carries.

    Returns None if the exception was never raised.
    """
    frames = _traceback_frames(getattr(error, "__traceback__", None))
    if not frames:
        return None
    return Stacktrace(frames=filter_frames(frames))


def split_qualified_function_name(name: str) -> tuple[str, str]:
    """Split a package-qualified function name into package and function."""
    package = package_name(name)
    prefix = package + "."
    function = name[len(prefix):] if name.startswith(prefix) else name
    return package, function


def filter_frames(frames: list[Frame]) -> list[Frame]:
    """Drop frames internal to the runtime or to this package."""
    kept = []
    for frame in frames:
        if frame.module in ("runtime", "testing"):
            continue
        if frame.module.startswith(_SDK_PREFIX) and not frame.module.endswith("_test"):
            continue
        kept.append(frame)
    return kept


def is_in_app_frame(frame: Frame) -> bool:
    """Report whether a frame belongs to the application rather than a library."""
    if frame.abs_path and any(frame.abs_path.startswith(p) for p in _STDLIB_PATHS):
        return False
    if "vendor" in frame.module or "third_party" in frame.module:
        return False
    return True


def package_name(name: str) -> str:
    """Return the package part of a symbol name, or "" if there is none."""
    if name.startswith("go.") or name.startswith("type."):
        return ""
    path_end = max(name.rfind("/"), 0)
    dot = name.find(".", path_end)
    if dot != -1:
        return name[:dot]
    return ""


def base_name(name: str) -> str:
    """Return the symbol name without the package or receiver name."""
    return name.rpartition(".")[2]