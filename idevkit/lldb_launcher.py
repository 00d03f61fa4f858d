"""Preparing and starting lldb against a debugserver on a device."""

from __future__ import annotations

import logging
import os
import plistlib
import posixpath
import string
import subprocess
from collections.abc import Iterable, Mapping
from typing import Any

log = logging.getLogger(__name__)

PY_PATH = "/tmp/go_ios_lldb.py"
SCRIPT_PATH = "/tmp/go_ios_lldb.sh"
LLDB_SHELL = "/usr/bin/lldb"
STOP_AT_ENTRY = "launchInfo.SetLaunchFlags(lldb.eLaunchFlagStopAtEntry)"

# Commands lldb registers from the helper module, with their execution style.
_HELPER_COMMANDS = (
    ("connect_command", "connect", False),
    ("run_command", "run", True),
    ("autoexit_command", "autoexit", True),
    ("safequit_command", "safequit", True),
)

_HELPER_TEMPLATE = string.Template(
    r'''
import os
import shlex
import sys

import lldb

_session = {"listener": None}
_launch_error = lldb.SBError()

_OUTPUT_BITS = lldb.SBProcess.eBroadcastBitSTDOUT | lldb.SBProcess.eBroadcastBitSTDERR
_FAILED = 254


def _extra_arguments(command):
    parts = command.split("--", 1)
    return shlex.split(parts[1]) if len(parts) > 1 else []


def _drain(read, sink):
    chunk = read(1024)
    while chunk:
        sink.write(chunk)
        chunk = read(1024)


def _open_optional(path):
    return open(path, "w") if path else None


def connect_command(debugger, command, result, internal_dict):
    listener = lldb.SBListener("go_ios_listener")
    _session["listener"] = listener
    listener.StartListeningForEventClass(
        debugger,
        lldb.SBTarget.GetBroadcasterClassName(),
        lldb.SBProcess.eBroadcastBitStateChanged | _OUTPUT_BITS,
    )
    error = lldb.SBError()
    target = debugger.GetSelectedTarget()
    process = target.ConnectRemote(listener, internal_dict["connect_url"], None, error)

    seen = []
    state = process.GetState() or lldb.eStateInvalid
    while state != lldb.eStateConnected:
        event = lldb.SBEvent()
        if not listener.WaitForEvent(1, event):
            state = lldb.eStateInvalid
            continue
        state = process.GetStateFromEvent(event)
        seen.append(event)

    # lldb hangs unless the consumed events are queued again.
    for event in seen:
        listener.AddEvent(event)


def run_command(debugger, command, result, internal_dict):
    target = debugger.GetSelectedTarget()
    target.modules[0].SetPlatformFileSpec(lldb.SBFileSpec(internal_dict["device_app"]))
    extra = _extra_arguments(command)

    launchInfo = lldb.SBLaunchInfo(extra)
    launchInfo.SetListener(_session["listener"])
    ${stop_at_entry}
    # Mirrors NSLog, CFLog and os_log output onto stderr.
    launchInfo.SetEnvironmentEntries(["OS_ACTIVITY_DT_MODE=enable"], True)
    launchInfo.SetEnvironmentEntries(extra, True)

    target.Launch(launchInfo, _launch_error)
    message = str(_launch_error)
    if ": Locked" in message:
        print("\nDevice Locked\n")
        os._exit(_FAILED)
    print(message)


def safequit_command(debugger, command, result, internal_dict):
    process = debugger.GetSelectedTarget().process
    state = process.GetState()
    if state == lldb.eStateRunning:
        process.Detach()
        os._exit(0)
    if state > lldb.eStateRunning:
        os._exit(state)
    print("\nApplication has not been launched\n")
    os._exit(1)


def autoexit_command(debugger, command, result, internal_dict):
    process = debugger.GetSelectedTarget().process
    if not _launch_error.Success():
        print("\nPROCESS_NOT_STARTED\n")
        os._exit(_FAILED)

    out = _open_optional(internal_dict["output_path"])
    err = _open_optional(internal_dict["error_path"])
    out_sink = out or sys.stdout
    err_sink = err or sys.stdout

    def finish(banner, code, backtrace=False):
        sys.stdout.write(banner)
        if backtrace:
            debugger.HandleCommand("bt")
        sys.stdout.flush()
        for handle in (out, err):
            if handle:
                handle.close()
        os._exit(code)

    # Keeps lldb's own listener off the output events so writes stay in order.
    debugger.GetListener().StopListeningForEvents(process.GetBroadcaster(), _OUTPUT_BITS)

    listener = _session["listener"]
    event = lldb.SBEvent()
    while True:
        if listener.WaitForEvent(1, event) and lldb.SBProcess.EventIsProcessEvent(event):
            state = lldb.SBProcess.GetStateFromEvent(event)
            kind = event.GetType()
            if kind & lldb.SBProcess.eBroadcastBitSTDOUT:
                _drain(process.GetSTDOUT, out_sink)
            if kind & lldb.SBProcess.eBroadcastBitSTDERR:
                _drain(process.GetSTDERR, err_sink)
        else:
            state = process.GetState()

        if state != lldb.eStateRunning:
            _drain(process.GetSTDOUT, out_sink)
            _drain(process.GetSTDERR, err_sink)

        if state == lldb.eStateExited:
            finish("\nPROCESS_EXITED\n", process.GetExitStatus())
        elif state == lldb.eStateStopped:
            finish("\nPROCESS_STOPPED\n", _FAILED, backtrace=True)
        elif state == lldb.eStateCrashed:
            finish("\nPROCESS_CRASHED\n", _FAILED, backtrace=True)
        elif state == lldb.eStateDetached:
            finish("\nPROCESS_DETACHED\n", _FAILED)
'''
)


def render_python_script(stop_at_entry: bool) -> str:
    """The lldb helper module, optionally stopping the app at its entry point."""
    return _HELPER_TEMPLATE.substitute(stop_at_entry=STOP_AT_ENTRY if stop_at_entry else "")


def render_lldb_script(app_path: str, container: str, port: int, py_path: str) -> str:
    """The lldb command script that connects to the local proxy and runs the app."""
    module = posixpath.splitext(posixpath.basename(py_path))[0]
    lines = [
        "",
        "platform select remote-ios",
        f'target create "{app_path}"',
        f'script device_app="{container}"',
        f'script connect_url="connect://127.0.0.1:{port}"',
        'script output_path=""',
        'script error_path=""',
        f'command script import "{py_path}"',
    ]
    for function, name, asynchronous in _HELPER_COMMANDS:
        style = "-s asynchronous " if asynchronous else ""
        lines.append(f"command script add {style}-f {module}.{function} {name}")
    lines += ["connect", "run", ""]
    return "\n".join(lines)


def start_lldb(app_path: str, container: str, port: int, stop_at_entry: bool) -> None:
    """Write the helper scripts and run lldb on them, waiting until it exits."""
    with open(PY_PATH, "w", encoding="utf-8") as fh:
        fh.write(render_python_script(stop_at_entry))
    with open(SCRIPT_PATH, "w", encoding="utf-8") as fh:
        fh.write(render_lldb_script(app_path, container, port, PY_PATH))
    subprocess.run([LLDB_SHELL, "-s", SCRIPT_PATH], check=True)


def bundle_id_from_app(app_path: str) -> str:
    """The CFBundleIdentifier from an app bundle's Info.plist."""
    plist_path = os.path.join(app_path, "Info.plist")
    if not os.path.isfile(plist_path):
        raise FileNotFoundError("cannot find info.plist")
    with open(plist_path, "rb") as fh:
        content = plistlib.load(fh)
    bundle_id = content.get("CFBundleIdentifier") if isinstance(content, dict) else None
    if bundle_id is None:
        raise ValueError("cannot find CFBundleIdentifier in Info.plist")
    if not isinstance(bundle_id, str):
        raise TypeError(f"CFBundleIdentifier is not a string: {bundle_id!r}")
    return bundle_id


def uses_secure_debugserver(product_version: str | None) -> bool:
    """Whether the TLS debugserver service is needed for this OS version.

    Versions compare as plain strings; an unknown version picks the TLS service.
    """
    if product_version is None:
        log.error("cannot find version, default use ssl debug server")
        return True
    if not isinstance(product_version, str):
        raise TypeError(f"ProductVersion is not a string: {product_version!r}")
    return product_version > "14"


def _field(app: Any, name: str) -> Any:
    if isinstance(app, Mapping):
        return app.get(name)
    return getattr(app, name, None)


def find_container(apps: Iterable[Any], bundle_id: str) -> str:
    """The installation path of the first app with the given bundle id."""
    container = ""
    for app in apps:
        if _field(app, "CFBundleIdentifier") == bundle_id:
            container = _field(app, "Path") or ""
            break
    if not container:
        raise LookupError("cannot find container of bundleid: " + bundle_id)
    return container