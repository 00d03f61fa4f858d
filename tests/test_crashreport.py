import fnmatch
import io
import os

import pytest

from idevkit.afc_client import StatInfo
from idevkit.afc_protocol import AfcError
from idevkit.crashreport import (
    await_mover_ping,
    copy_reports,
    list_reports,
    remove_reports,
)


class FakeAfc:
    def __init__(self, dirs, files, broken=()):
        self.dirs = dirs
        self.files = files
        self.broken = set(broken)
        self.removed = []

    def list_files(self, cwd, pattern):
        names = [".", ".."] + self.dirs[cwd]
        return [n for n in names if fnmatch.fnmatchcase(n, pattern)]

    def stat(self, path):
        if path in self.broken:
            raise AfcError(8)
        if path in self.dirs:
            return StatInfo(ifmt="S_IFDIR")
        return StatInfo(size=len(self.files[path]), ifmt="S_IFREG")

    def pull_single_file(self, src, dst):
        with open(dst, "wb") as fh:
            fh.write(self.files[src])

    def remove(self, path):
        self.removed.append(path)


def make_afc(broken=()):
    return FakeAfc(
        dirs={".": ["a.ips", "b.log", "sub", "gone.ips"], "sub": ["c.ips"]},
        files={"a.ips": b"report a", "b.log": b"log b", "sub/c.ips": b"report c"},
        broken=broken,
    )


def test_ping_accepted_and_consumed():
    stream = io.BytesIO(b"pingrest")
    await_mover_ping(stream)
    assert stream.read() == b"rest"


@pytest.mark.parametrize("data", [b"pong", b"pi", b""])
def test_wrong_ping_rejected(data):
    with pytest.raises(ValueError):
        await_mover_ping(io.BytesIO(data))


def test_list_reports_applies_pattern():
    assert list_reports(make_afc(), "*.ips") == ["a.ips", "gone.ips"]


def test_copy_reports_downloads_recursively(tmp_path):
    copy_reports(make_afc(broken={"gone.ips"}), ".", "*", str(tmp_path))
    assert (tmp_path / "a.ips").read_bytes() == b"report a"
    assert (tmp_path / "b.log").read_bytes() == b"log b"
    assert (tmp_path / "sub" / "c.ips").read_bytes() == b"report c"
    assert not (tmp_path / "gone.ips").exists()


def test_copy_reports_pattern_filters_top_level(tmp_path):
    copy_reports(make_afc(broken={"gone.ips"}), ".", "a*", str(tmp_path))
    assert sorted(os.listdir(tmp_path)) == ["a.ips"]


def test_copy_reports_missing_target(tmp_path):
    with pytest.raises(FileNotFoundError):
        copy_reports(make_afc(), ".", "*", str(tmp_path / "missing"))


def test_empty_pattern_rejected(tmp_path):
    with pytest.raises(ValueError):
        copy_reports(make_afc(), ".", "", str(tmp_path))
    with pytest.raises(ValueError):
        remove_reports(make_afc(), ".", "")


def test_remove_reports_skips_dot_entries():
    afc = make_afc()
    remove_reports(afc, ".", "*")
    assert afc.removed == ["a.ips", "b.log", "sub", "gone.ips"]


def test_remove_reports_in_subdirectory():
    afc = make_afc()
    remove_reports(afc, "sub", "*.ips")
    assert afc.removed == ["sub/c.ips"]