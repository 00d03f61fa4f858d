# idevkit

Building blocks for talking to iOS devices: wire formats, request builders
and client logic for several device services. You bring the connected
stream; the package does the protocol work on it.

## Modules

- `idevkit.afc_protocol`: AFC packet format. `AfcPacketHeader` and
  `AfcPacket` (with `to_bytes()`), the `AfcOperation` and `AfcMode` enums,
  `AfcError` and `error_for_code(code)`, and `decode_packet(reader)` /
  `encode_packet(packet, writer)` for file-like streams.
- `idevkit.afc_client`: `AfcClient(stream)`, a file-system client over any
  stream with `read(size)` and `write(data)` or `send(data)`. It offers
  `stat`, `list_dir`, `list_files(cwd, pattern)`, `mkdir`, `remove`,
  `remove_path_and_contents`, `remove_all`, `open_file`, `close_file`,
  `pull_single_file`, `pull`, `push`, `write_to_file`, `space_info` and
  `tree_lines(path, prefix, last)`, which returns a tree view as text lines.
  Device errors are raised as `AfcError`. It works as a context manager.
- `idevkit.crashreport`: `list_reports`, `copy_reports` and `remove_reports`
  work on an `AfcClient` that is connected to the crash report copy
  service. `await_mover_ping(stream)` waits for the `ping` sent by the crash
  report mover service.
- `idevkit.device_connection`: `DeviceConnection` wraps a socket (or opens
  a unix socket with `open_unix`). It can switch to session TLS as a client
  or as a server, run the TLS handshake only and stay in plain text, and
  leave TLS again with `disable_session_ssl()` without closing the socket.
- `idevkit.usbmux_messages`: `connect_message` and `read_buid_message` build
  usbmuxd request dictionaries. `parse_read_buid_response` reads the BUID
  from a reply. `is_handshake_only_service` names the services that fall
  back to plain text after the handshake.
- `idevkit.battery`: `read_battery_info(get_value)` builds a `BatteryInfo`
  from any `get_value(key, domain)` callable and checks the value types.
- `idevkit.gdb_remote`: `checksum`, `format_packet` and `GdbRemote`, which
  sends and receives `$packet#checksum` frames over a stream.
- `idevkit.lldb_launcher`: `render_python_script` and `render_lldb_script`
  produce the lldb helper module and command script. `start_lldb` writes
  them to `/tmp` and runs `/usr/bin/lldb -s` on them. Also
  `bundle_id_from_app`, `find_container` and `uses_secure_debugserver`.
- `idevkit.diagnostics`: request dictionaries for the diagnostics relay
  (`reboot_request`, `all_values_request`, `goodbye_request`,
  `ioregistry_request`, `mobile_gestalt_request`). Also
  `check_reboot_response`, which raises `DiagnosticsError`, and
  `AllDiagnosticsResponse.from_plist`.
- `idevkit.socket_mover`: `move_socket` and `move_back` move the usbmuxd
  socket aside and restore it.
- `idevkit.dumping`: `hex_dump` and `write_bytes`. `DumpingConnection`
  writes a hex dump of every read and write to a file. `BinaryDumper`
  appends raw bytes to a file.
- `idevkit.proxy_records`: `service_config_for` picks the codec kind and the
  TLS behaviour for each service. `ServiceRegistry` stores started services
  and finds them by port. `connection_directory`, `append_connection_info`,
  `write_json` and `log_json_message` write JSON-lines logs.

## Example

```python
from idevkit.afc_client import AfcClient

# `stream` is a connection already forwarded to the device's AFC service,
# e.g. an idevkit.device_connection.DeviceConnection.
with AfcClient(stream) as afc:
    for line in afc.tree_lines("/DCIM", "", True):
        print(line)
    afc.pull("/DCIM", "photos")
```

```python
from idevkit.gdb_remote import format_packet

assert format_packet("qC") == "+$qC#b4"
```

## What it does not do

The package contains no usbmuxd client. It does not list devices, read pair
records, open lockdown sessions or start services. It has no DTX message
decoder and no running debug-proxy server or accept loop, only the
bookkeeping pieces such a proxy uses. There is no command-line tool. Opening
a connection to the right service on a device is left to the caller.

## Tests

```
pip install -e ".[test]"
pytest
```