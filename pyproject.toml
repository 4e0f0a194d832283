[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "foundtrace"
version = "0.1.0"
description = "In-process distributed tracing with sampling, rate limiting, live trace dumps and test helpers"
requires-python = ">=3.10"
dependencies = []
keywords = ["tracing", "telemetry", "spans", "sampling", "observability", "testing"]
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
    "Topic :: System :: Monitoring",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
foundtrace-gen-syscalls = "foundtrace.syscall_enum:main"

[tool.hatch.build.targets.wheel]
packages = ["foundtrace"]

[tool.pytest.ini_options]
addopts = "-ra"
