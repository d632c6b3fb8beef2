[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "crashscope"
version = "0.14.0"
description = "Error-reporting building blocks: events, scopes, stack traces, integrations and rate limits"
requires-python = ">=3.10"
dependencies = []
keywords = ["error reporting", "crash reporting", "stacktrace", "breadcrumbs", "rate limiting"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Bug Tracking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["crashscope"]

[tool.pytest.ini_options]
addopts = "-ra"
