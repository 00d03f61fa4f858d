import base64
import json
import os
import threading
from datetime import datetime, timezone

import pytest

from idevkit.proxy_records import (
    CONNECTION_JSON_FILE_NAME,
    JSON_DUMP_FILE_NAME,
    CodecKind,
    ConnectionInfo,
    PhoneServiceInformation,
    ServiceConfig,
    ServiceRegistry,
    append_connection_info,
    connection_directory,
    log_json_message,
    service_config_for,
    write_json,
)


def _lines(path):
    with open(path, encoding="utf-8") as fh:
        return fh.read().splitlines()


def test_service_config_for_dtx_handshake_only():
    config = service_config_for("com.apple.instruments.remoteserver")
    assert config == ServiceConfig(CodecKind.DTX, True)


def test_service_config_for_debugserver():
    config = service_config_for("com.apple.debugserver")
    assert config.codec is CodecKind.BINARY_DUMP
    assert config.handshake_only_ssl is True


def test_service_config_for_secure_service():
    config = service_config_for("com.apple.testmanagerd.lockdown.secure")
    assert config.codec is CodecKind.DTX
    assert config.handshake_only_ssl is False


def test_service_config_for_unknown_falls_back():
    assert service_config_for("com.example.unknown") == service_config_for("bindumper")


def test_registry_store_and_find():
    registry = ServiceRegistry()
    first = PhoneServiceInformation(1234, "com.apple.afc", False)
    second = PhoneServiceInformation(1234, "com.apple.other", True)
    registry.store(first)
    registry.store(second)
    assert registry.find_by_port(1234) == first


def test_registry_missing_port():
    registry = ServiceRegistry()
    registry.store(PhoneServiceInformation(10, "svc", True))
    with pytest.raises(LookupError, match="No Service found for port 11"):
        registry.find_by_port(11)


def test_registry_concurrent_store():
    registry = ServiceRegistry()
    threads = [
        threading.Thread(target=registry.store, args=(PhoneServiceInformation(port, f"svc{port}", False),))
        for port in range(20)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    for port in range(20):
        assert registry.find_by_port(port).service_name == f"svc{port}"


def test_connection_directory_format():
    now = datetime(2021, 3, 4, 5, 6, 7, 890000, tzinfo=timezone.utc)
    path = connection_directory("dump-x", "#1", now)
    assert path == os.path.join("dump-x", "connection-#1-2021.03.04-05.06.07.890")


def test_append_connection_info(tmp_path):
    created = datetime(2022, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    info = ConnectionInfo(connection_path="dump/connection-#1", created_at=created, id="#1")
    append_connection_info(str(tmp_path), info)
    append_connection_info(str(tmp_path), info)
    lines = _lines(tmp_path / CONNECTION_JSON_FILE_NAME)
    assert len(lines) == 2
    record = json.loads(lines[0])
    assert record["ID"] == "#1"
    assert record["ConnectionPath"] == "dump/connection-#1"
    assert datetime.fromisoformat(record["CreatedAt"]) == created


def test_write_json_encodes_bytes_as_base64(tmp_path):
    path = str(tmp_path / "out.json")
    write_json(path, {"data": b"\x00\x01binary"})
    record = json.loads(_lines(path)[0])
    assert base64.b64decode(record["data"]) == b"\x00\x01binary"


def test_write_json_unencodable_writes_empty_line(tmp_path):
    path = str(tmp_path / "out.json")
    write_json(path, {"value": object()})
    assert _lines(path) == [""]


def test_log_json_message_adds_direction(tmp_path):
    message = {"type": "USBMUX", "payload": {"MessageType": "Listen"}}
    log_json_message(str(tmp_path), message, "host->device")
    record = json.loads(_lines(tmp_path / JSON_DUMP_FILE_NAME)[0])
    assert record["direction"] == "host->device"
    assert record["payload"] == {"MessageType": "Listen"}
    assert "direction" not in message