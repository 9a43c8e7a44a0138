"""Embedded Serial Port package.

Raw termios access to POSIX serial devices: open, configure, read with
timeouts, write, drain and flush through a single SerialPort handle.
"""

__all__ = [
    "SerialPort",
    "SerialConfig",
    "BaudRate",
    "DataBits",
    "Parity",
    "StopBits",
    "FlowControl",
]

from logging import NullHandler, getLogger

from .port import SerialPort
from .settings import BaudRate, DataBits, FlowControl, Parity, SerialConfig, StopBits

getLogger(__name__).addHandler(NullHandler())

__version__ = "0.1.0"
