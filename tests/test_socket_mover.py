import pytest

from idevkit.socket_mover import move_back, move_socket, real_socket_path


@pytest.fixture
def socket_file(tmp_path):
    path = tmp_path / "usbmuxd"
    path.write_bytes(b"original")
    return str(path)


def test_real_socket_path_extends_original(socket_file):
    moved = real_socket_path(socket_file)
    assert moved.startswith(socket_file)
    assert moved.endswith(".real_socket")
    assert moved == real_socket_path(socket_file)


def test_move_socket_moves_file(socket_file):
    new_location = move_socket(socket_file)
    assert new_location == real_socket_path(socket_file)
    with open(new_location, "rb") as fh:
        assert fh.read() == b"original"
    with pytest.raises(FileNotFoundError):
        open(socket_file, "rb")


def test_move_back_restores_original(socket_file):
    move_socket(socket_file)
    with open(socket_file, "wb") as fh:
        fh.write(b"fake")
    move_back(socket_file)
    with open(socket_file, "rb") as fh:
        assert fh.read() == b"original"
    with pytest.raises(FileNotFoundError):
        open(real_socket_path(socket_file), "rb")


def test_move_back_without_fake_socket(socket_file):
    move_socket(socket_file)
    move_back(socket_file)
    with open(socket_file, "rb") as fh:
        assert fh.read() == b"original"


def test_move_back_does_nothing_when_not_moved(socket_file):
    move_back(socket_file)
    with open(socket_file, "rb") as fh:
        assert fh.read() == b"original"


def test_move_socket_refuses_existing_target(socket_file):
    with open(real_socket_path(socket_file), "wb") as fh:
        fh.write(b"leftover")
    with pytest.raises(FileExistsError):
        move_socket(socket_file)
    with open(socket_file, "rb") as fh:
        assert fh.read() == b"original"


def test_move_socket_missing_socket(tmp_path):
    with pytest.raises(FileNotFoundError):
        move_socket(str(tmp_path / "absent"))