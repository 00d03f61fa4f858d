[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "idevkit"
version = "0.1.0"
description = "Protocol building blocks for iOS devices: AFC file access, crash reports, diagnostics requests, gdb-remote framing, lldb launching and debug-proxy bookkeeping"
requires-python = ">=3.10"
keywords = ["ios", "usbmuxd", "afc", "lockdown", "debugserver", "lldb", "diagnostics", "gdb-remote"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Operating System :: MacOS",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Debuggers",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["idevkit"]

[tool.pytest.ini_options]
addopts = "-ra"
