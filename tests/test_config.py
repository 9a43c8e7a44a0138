from __future__ import annotations

import unittest

import pytest

from embedded_serial_port.config import PortSettings, load_config, serial_settings
from embedded_serial_port.settings import (
    BaudRate,
    DataBits,
    FlowControl,
    Parity,
    SerialConfig,
    StopBits,
)


def test_load_config(tmp_path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(
        '[serial]\n'
        'device = "/dev/ttyACM0"\n'
        'baudrate = 9600\n'
        'bytesize = 7\n'
        'parity = "E"\n'
        'stopbits = 2\n'
        'flow = "rtscts"\n'
        'timeout_ms = 250\n'
    )
    settings = serial_settings(load_config(str(path)))
    assert settings == PortSettings(
        "/dev/ttyACM0",
        SerialConfig(BaudRate.BAUD_9600, DataBits.BITS_7, Parity.EVEN, StopBits.TWO, FlowControl.HARDWARE),
        250,
    )


def test_missing_config_is_empty(tmp_path, caplog) -> None:
    assert load_config(str(tmp_path / "nope.toml")) == {}
    assert "not found" in caplog.text


def test_malformed_config_is_empty(tmp_path, caplog) -> None:
    path = tmp_path / "config.toml"
    path.write_text("[serial\nbaudrate = ")
    assert load_config(str(path)) == {}
    assert "Failed to parse config" in caplog.text


class TestSerialSettings(unittest.TestCase):
    def test_defaults(self):
        settings = serial_settings({})
        self.assertIsNone(settings.device)
        self.assertEqual(settings.config, SerialConfig())
        self.assertEqual(settings.timeout_ms, 1000)

    def test_named_values(self):
        settings = serial_settings({"serial": {"parity": "odd", "flow": "software"}})
        self.assertIs(settings.config.parity, Parity.ODD)
        self.assertIs(settings.config.flow_control, FlowControl.SOFTWARE)

    def test_invalid_values(self):
        bad = [
            {"serial": "ttyUSB0"},
            {"serial": {"device": 3}},
            {"serial": {"baudrate": 100}},
            {"serial": {"bytesize": 9}},
            {"serial": {"parity": "M"}},
            {"serial": {"stopbits": 1.5}},
            {"serial": {"flow": "dsrdtr"}},
            {"serial": {"timeout_ms": "soon"}},
            {"serial": {"timeout_ms": -1}},
        ]
        for config in bad:
            with self.subTest(config=repr(config)):
                with self.assertRaises(ValueError):
                    serial_settings(config)


if __name__ == "__main__":
    pytest.main([__file__])
