"""
Translation of SerialConfig into termios attribute lists.

termios.tcgetattr() returns [iflag, oflag, cflag, lflag, ispeed, ospeed, cc];
this module is the only place where the configuration enumerations meet the
kernel bit patterns.
"""

from __future__ import annotations

import termios
from typing import Any, Dict, Final, List

from .settings import BaudRate, DataBits, FlowControl, Parity, SerialConfig, StopBits

IFLAG: Final[int] = 0
OFLAG: Final[int] = 1
CFLAG: Final[int] = 2
LFLAG: Final[int] = 3
ISPEED: Final[int] = 4
OSPEED: Final[int] = 5
CC: Final[int] = 6

# VTIME is a cc_t counted in deciseconds
TIMER_TICK_MS: Final[int] = 100
MAX_TIMER_TICKS: Final[int] = 255
DEFAULT_TIMER_TICKS: Final[int] = 10

DATA_BITS_FLAGS: Final[Dict[DataBits, int]] = {
    DataBits.BITS_5: termios.CS5,
    DataBits.BITS_6: termios.CS6,
    DataBits.BITS_7: termios.CS7,
    DataBits.BITS_8: termios.CS8,
}

PARITY_FLAGS: Final[Dict[Parity, int]] = {
    Parity.NONE: 0,
    Parity.EVEN: termios.PARENB,
    Parity.ODD: termios.PARENB | termios.PARODD,
}

STOP_BITS_FLAGS: Final[Dict[StopBits, int]] = {
    StopBits.ONE: 0,
    StopBits.TWO: termios.CSTOPB,
}

RAW_LFLAG_MASK: Final[int] = termios.ICANON | termios.ECHO | termios.ECHOE | termios.ISIG
RAW_OFLAG_MASK: Final[int] = termios.OPOST
RAW_IFLAG_MASK: Final[int] = (termios.IXON | termios.IXOFF | termios.IXANY
                              | termios.ICRNL | termios.INLCR | termios.IGNCR)
SOFTWARE_FLOW_IFLAG: Final[int] = termios.IXON | termios.IXOFF


def speed_constant(baud_rate: BaudRate) -> int:
    """
    Return the termios speed constant (B9600, B115200, ...) for a baud rate.
    Raises:
        ValueError: If the platform termios module lacks the constant
    """
    try:
        return getattr(termios, f"B{int(baud_rate)}")
    except AttributeError:
        raise ValueError(f"baud rate {int(baud_rate)} not supported on this platform") from None


def encode_timeout(timeout_ms: int) -> int:
    """
    Convert a read timeout in milliseconds to VTIME deciseconds.
    Any positive request shorter than one tick rounds up to one tick, zero
    (or negative) means poll, and the result saturates at 255 ticks.
    Args:
        timeout_ms (int): Requested timeout
    Returns:
        int: VTIME value in 0..255
    """
    timeout_ms = int(timeout_ms)
    if timeout_ms <= 0:
        return 0
    ticks = timeout_ms // TIMER_TICK_MS
    if ticks == 0:
        ticks = 1
    return min(ticks, MAX_TIMER_TICKS)


def _copy(attrs: List[Any]) -> List[Any]:
    new = list(attrs)
    new[CC] = list(attrs[CC])
    return new


def build_attributes(current: List[Any], config: SerialConfig) -> List[Any]:
    """
    Rewrite a tcgetattr() list for a raw, byte-transparent line.
    Mode words are rebuilt from zero, so nothing carries over from the
    current line discipline except the special characters other than
    VMIN/VTIME.
    Args:
        current (list): Attributes as returned by termios.tcgetattr()
        config (SerialConfig): Line parameters
    Returns:
        list: New attribute list for termios.tcsetattr(); `current` is not modified
    Raises:
        ValueError: If the baud rate has no termios constant
    """
    attrs = _copy(current)
    iflag = oflag = cflag = lflag = 0

    speed = speed_constant(config.baud_rate)
    cflag |= DATA_BITS_FLAGS[config.data_bits]
    cflag |= PARITY_FLAGS[config.parity]
    cflag |= STOP_BITS_FLAGS[config.stop_bits]
    if config.flow_control is FlowControl.HARDWARE:
        cflag |= termios.CRTSCTS
    cflag |= termios.CREAD | termios.CLOCAL

    lflag &= ~RAW_LFLAG_MASK
    oflag &= ~RAW_OFLAG_MASK
    iflag &= ~RAW_IFLAG_MASK
    # XON/XOFF go in after the raw mask, otherwise software flow is cleared again
    if config.flow_control is FlowControl.SOFTWARE:
        iflag |= SOFTWARE_FLOW_IFLAG

    attrs[IFLAG] = iflag
    attrs[OFLAG] = oflag
    attrs[CFLAG] = cflag
    attrs[LFLAG] = lflag
    attrs[ISPEED] = speed
    attrs[OSPEED] = speed
    attrs[CC][termios.VTIME] = DEFAULT_TIMER_TICKS
    attrs[CC][termios.VMIN] = 0
    return attrs


def with_read_timeout(current: List[Any], timeout_ms: int) -> List[Any]:
    """
    Return a copy of `current` whose inter-byte timer matches `timeout_ms`.
    VMIN stays 0 so the timer also bounds a read that receives nothing.
    """
    attrs = _copy(current)
    attrs[CC][termios.VTIME] = encode_timeout(timeout_ms)
    attrs[CC][termios.VMIN] = 0
    return attrs


def describe(attrs: List[Any]) -> SerialConfig:
    """
    Recover the SerialConfig encoded in an attribute list.
    Raises:
        ValueError: If the speed or character size is not one of the enumerations
    """
    cflag = attrs[CFLAG]
    baud = None
    for rate in BaudRate:
        if getattr(termios, f"B{int(rate)}", None) == attrs[OSPEED]:
            baud = rate
            break
    if baud is None:
        raise ValueError(f"unknown speed constant: {attrs[OSPEED]!r}")
    size = cflag & termios.CSIZE
    data_bits = next((bits for bits, flag in DATA_BITS_FLAGS.items() if flag == size), None)
    if data_bits is None:
        raise ValueError(f"unknown character size: {size:#x}")
    if not cflag & termios.PARENB:
        parity = Parity.NONE
    elif cflag & termios.PARODD:
        parity = Parity.ODD
    else:
        parity = Parity.EVEN
    stop_bits = StopBits.TWO if cflag & termios.CSTOPB else StopBits.ONE
    if cflag & termios.CRTSCTS:
        flow = FlowControl.HARDWARE
    elif attrs[IFLAG] & SOFTWARE_FLOW_IFLAG == SOFTWARE_FLOW_IFLAG:
        flow = FlowControl.SOFTWARE
    else:
        flow = FlowControl.NONE
    return SerialConfig(baud, data_bits, parity, stop_bits, flow)
