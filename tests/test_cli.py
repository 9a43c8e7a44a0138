from __future__ import annotations

import os
import select
import threading
import time

import pytest
from click.testing import CliRunner

pytest.importorskip("termios")

from embedded_serial_port.cli import main  # noqa: E402


@pytest.fixture()
def pty_pair():
    master, slave = os.openpty()
    yield master, os.ttyname(slave)
    os.close(master)
    os.close(slave)


def _drain_master(master: int, size: int, timeout: float = 1.0) -> bytes:
    out = bytearray()
    deadline = time.monotonic() + timeout
    while len(out) < size:
        ready, _, _ = select.select([master], [], [], max(deadline - time.monotonic(), 0))
        if not ready:
            break
        out += os.read(master, size - len(out))
    return bytes(out)


def test_probe(pty_pair) -> None:
    _, path = pty_pair
    result = CliRunner().invoke(main, ["-p", path, "probe"])
    assert result.exit_code == 0, result.output
    assert f"Opened {path} (115200 8N1 none)" in result.output
    assert "No data available" in result.output


def test_send_string(pty_pair) -> None:
    master, path = pty_pair
    result = CliRunner().invoke(main, ["-p", path, "-b", "9600", "send", "-s", "hello"])
    assert result.exit_code == 0, result.output
    assert f"Sent 5 bytes to {path}" in result.output
    assert _drain_master(master, 5) == b"hello"


def test_send_hex(pty_pair) -> None:
    master, path = pty_pair
    result = CliRunner().invoke(main, ["-p", path, "send", "-x", "01 02 0a", "--no-wait"])
    assert result.exit_code == 0, result.output
    assert _drain_master(master, 3) == b"\x01\x02\x0a"


def test_send_rejects_two_payloads(pty_pair) -> None:
    _, path = pty_pair
    result = CliRunner().invoke(main, ["-p", path, "send", "-s", "a", "-x", "01"])
    assert result.exit_code == 1
    assert "Use only one of --string or --hex" in result.output


def test_recv(pty_pair) -> None:
    master, path = pty_pair
    timer = threading.Timer(0.5, os.write, (master, b"pong"))
    timer.start()
    try:
        result = CliRunner().invoke(main, ["-p", path, "recv", "--max-bytes", "4", "--timeout-ms", "2000"])
    finally:
        timer.cancel()
    assert result.exit_code == 0, result.output
    assert "Received 4 bytes: 'pong'" in result.output


def test_recv_timeout(pty_pair) -> None:
    _, path = pty_pair
    result = CliRunner().invoke(main, ["-p", path, "recv", "--timeout-ms", "100"])
    assert result.exit_code == 0, result.output
    assert "No data received within timeout" in result.output


def test_config_file(pty_pair, tmp_path) -> None:
    _, path = pty_pair
    config = tmp_path / "config.toml"
    config.write_text(f'[serial]\ndevice = "{path}"\nbaudrate = 9600\nstopbits = 2\n')
    result = CliRunner().invoke(main, ["-c", str(config), "probe"])
    assert result.exit_code == 0, result.output
    assert "(9600 8N2 none)" in result.output

    result = CliRunner().invoke(main, ["-c", str(config), "-b", "19200", "probe"])
    assert "(19200 8N2 none)" in result.output


def test_missing_port() -> None:
    result = CliRunner().invoke(main, ["probe"])
    assert result.exit_code == 1
    assert "No serial port given" in result.output


def test_not_a_terminal() -> None:
    result = CliRunner().invoke(main, ["-p", "/dev/null", "probe"])
    assert result.exit_code == 1
    assert "Device is not a terminal device: /dev/null" in result.output


def test_unsupported_baudrate(pty_pair) -> None:
    _, path = pty_pair
    result = CliRunner().invoke(main, ["-p", path, "-b", "12345", "probe"])
    assert result.exit_code == 1
    assert "unsupported baud rate" in result.output


def test_recv_encoding(pty_pair) -> None:
    master, path = pty_pair
    timer = threading.Timer(0.5, os.write, (master, b"caf\xe9"))
    timer.start()
    try:
        result = CliRunner().invoke(
            main, ["-p", path, "recv", "--max-bytes", "4", "--timeout-ms", "2000", "--encoding", "latin-1"]
        )
    finally:
        timer.cancel()
    assert result.exit_code == 0, result.output
    assert "Received 4 bytes: 'café'" in result.output


def test_recv_unknown_encoding(pty_pair) -> None:
    _, path = pty_pair
    result = CliRunner().invoke(main, ["-p", path, "recv", "--encoding", "no-such-codec"])
    assert result.exit_code == 1
    assert "Unknown encoding: no-such-codec" in result.output
