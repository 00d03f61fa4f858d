"""Protocol building blocks for iOS device services: AFC, crash reports, diagnostics, gdb-remote, lldb and proxy bookkeeping."""

__version__ = "0.1.0"