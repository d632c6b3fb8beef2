"""Built-in integrations that enrich or filter events before they are sent."""

from __future__ import annotations

import dataclasses
import logging
import os
import platform
import re
import sys
import sysconfig
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from crashscope.interfaces import Event, EventHint
from crashscope.sourcereader import SourceReader
from crashscope.stacktrace import Frame

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_LINES = 5


@dataclass
class Module:
    """A module with its version, possibly replaced by another module."""

    path: str = ""
    version: str = ""
    replace: Module | None = None


def extract_modules(main: Module, deps: Iterable[Module]) -> dict[str, str]:
    """Map module paths to versions, noting replacements as ``"v => path v"``."""
    modules = {main.path: main.version}
    for dep in deps:
        version = dep.version
        if dep.replace is not None:
            version += f" => {dep.replace.path} {dep.replace.version}"
        modules[dep.path] = version.removesuffix(" ")
    return modules


def _site_directories() -> list[str]:
    """Return the directories where distributions are installed."""
    paths = sysconfig.get_paths()
    directories = []
    for key in ("purelib", "platlib"):
        directory = paths.get(key)
        if directory and directory not in directories:
            directories.append(directory)
    return directories


def _read_metadata_headers(meta_path: str) -> tuple[str, str]:
    """Read the Name and Version headers from a METADATA file."""
    name = ""
    version = ""
    with open(meta_path, encoding="utf-8", errors="replace") as handle:
        for line in handle:
            line = line.rstrip("\r\n")
            if not line:
                break
            key, sep, value = line.partition(":")
            if not sep:
                continue
            key = key.strip().lower()
            if key == "name" and not name:
                name = value.strip()
            elif key == "version" and not version:
                version = value.strip()
    return name, version


def _installed_modules() -> dict[str, str] | None:
    """List installed distributions by reading their metadata files."""
    modules: dict[str, str] = {}
    for entry in _site_directories():
        if not os.path.isdir(entry):
            continue
        try:
            names = sorted(os.listdir(entry))
        except OSError:
            continue
        for name in names:
            if not name.endswith(".dist-info"):
                continue
            meta_path = os.path.join(entry, name, "METADATA")
            try:
                dist_name, dist_version = _read_metadata_headers(meta_path)
            except OSError:
                continue
            if dist_name:
                modules.setdefault(dist_name, dist_version)
    return modules


class ModulesIntegration:
    """Attaches the installed modules and their versions to events.

    The modules are looked up once, the first time an event without
    modules is processed.
    """

    def __init__(
        self, loader: Callable[[], dict[str, str] | None] | None = None
    ) -> None:
        self._loader = loader or _installed_modules
        self._lock = threading.Lock()
        self._loaded = False
        self._modules: dict[str, str] = {}

    def name(self) -> str:
        return "Modules"

    def setup_once(self, client: Any) -> None:
        client.add_event_processor(self.process)

    def _load(self) -> None:
        with self._lock:
            if self._loaded:
                return
            self._loaded = True
            modules = self._loader()
            if modules is None:
                logger.debug("The Modules integration could not list installed modules.")
                return
            self._modules = dict(modules)

    def process(self, event: Event, hint: EventHint | None = None) -> Event:
        if not event.modules:
            self._load()
        event.modules = dict(self._modules)
        return event


class EnvironmentIntegration:
    """Adds device, operating system and runtime contexts to events.

    Values already present in the event's contexts are kept.
    """

    def name(self) -> str:
        return "Environment"

    def setup_once(self, client: Any) -> None:
        client.add_event_processor(self.process)

    def process(self, event: Event, hint: EventHint | None = None) -> Event:
        for context_name in ("device", "os", "runtime"):
            if event.contexts.get(context_name) is None:
                event.contexts[context_name] = {}

        device = event.contexts["device"]
        device.setdefault("arch", platform.machine())
        device.setdefault("num_cpu", os.cpu_count())

        os_context = event.contexts["os"]
        os_context.setdefault("name", platform.system().lower() or sys.platform)

        runtime = event.contexts["runtime"]
        runtime.setdefault("name", "python")
        runtime.setdefault("version", platform.python_version())
        runtime.setdefault("implementation", platform.python_implementation())
        runtime.setdefault("thread_count", threading.active_count())
        return event


def transform_strings_into_regexps(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    """Compile the patterns, skipping any that are not valid expressions."""
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error:
            continue
    return compiled


def get_ignore_errors_suspects(event: Event) -> list[str]:
    """Return the strings of an event that ignore patterns are matched against."""
    suspects = []
    if event.message:
        suspects.append(event.message)
    for exc in event.exception:
        suspects.extend((exc.type, exc.value))
    return suspects


class IgnoreErrorsIntegration:
    """Drops events whose message or exceptions match an ignore pattern."""

    def __init__(self, ignore_errors: Iterable[str] = ()) -> None:
        self.ignore_errors = transform_strings_into_regexps(ignore_errors)

    def name(self) -> str:
        return "IgnoreErrors"

    def setup_once(self, client: Any) -> None:
        self.ignore_errors = transform_strings_into_regexps(
            client.options.ignore_errors or ()
        )
        client.add_event_processor(self.process)

    def process(self, event: Event, hint: EventHint | None = None) -> Event | None:
        for suspect in get_ignore_errors_suspects(event):
            for pattern in self.ignore_errors:
                if pattern.search(suspect):
                    logger.debug(
                        "Event dropped due to being matched by `IgnoreErrors` option."
                        "| Value matched: %s | Filter used: %s",
                        suspect,
                        pattern.pattern,
                    )
                    return None
        return event


class ContextifyFramesIntegration:
    """Adds the source lines around each in-app frame of an event."""

    def __init__(
        self,
        context_lines: int = DEFAULT_CONTEXT_LINES,
        source_reader: SourceReader | None = None,
    ) -> None:
        self.context_lines = context_lines
        self.source_reader = source_reader or SourceReader()
        self._cached_locations: dict[str, str] = {}
        self._lock = threading.Lock()

    def name(self) -> str:
        return "ContextifyFrames"

    def setup_once(self, client: Any) -> None:
        self.source_reader = SourceReader()
        self.context_lines = DEFAULT_CONTEXT_LINES
        client.add_event_processor(self.process)

    def process(self, event: Event, hint: EventHint | None = None) -> Event:
        for exc in event.exception:
            if exc.stacktrace is not None:
                exc.stacktrace.frames = self.contextify(exc.stacktrace.frames)
        for thread in event.threads:
            if thread.stacktrace is not None:
                thread.stacktrace.frames = self.contextify(thread.stacktrace.frames)
        return event

    def _locate(self, abs_path: str) -> str:
        with self._lock:
            cached = self._cached_locations.get(abs_path)
        if cached is not None:
            return cached
        if abs_path and os.path.exists(abs_path):
            return abs_path
        return self.find_nearby_source_code_location(abs_path)

    def contextify(self, frames: Iterable[Frame]) -> list[Frame]:
        """Return the frames, with source context added to in-app ones."""
        result = []
        for frame in frames:
            if not frame.in_app:
                result.append(frame)
                continue
            path = self._locate(frame.abs_path)
            if not path:
                result.append(frame)
                continue
            lines, context_line = self.source_reader.read_context_lines(
                path, frame.lineno, self.context_lines
            )
            result.append(_add_context_lines(frame, lines, context_line))
        return result

    def find_nearby_source_code_location(self, original_path: str) -> str:
        """Find the file by dropping leading path components one at a time.

        Returns "" if no such file exists. Results are cached.
        """
        components = original_path.removeprefix("/").split("/")
        while components:
            components = components[1:]
            candidate = "/".join(components)
            if candidate and os.path.exists(candidate):
                with self._lock:
                    self._cached_locations[original_path] = candidate
                return candidate
        with self._lock:
            self._cached_locations[original_path] = ""
        return ""


def _add_context_lines(frame: Frame, lines: list[str], context_line: int) -> Frame:
    pre = list(frame.pre_context)
    post = list(frame.post_context)
    current = frame.context_line
    for index, line in enumerate(lines):
        if index < context_line:
            pre.append(line)
        elif index == context_line:
            current = line
        else:
            post.append(line)
    return dataclasses.replace(
        frame, pre_context=pre, context_line=current, post_context=post
    )