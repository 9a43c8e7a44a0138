from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Dict, Union

import serial


class BaudRate(IntEnum):
    """
    Line speeds supported by the port handle, in bits per second.
    """
    BAUD_9600 = 9600
    BAUD_19200 = 19200
    BAUD_38400 = 38400
    BAUD_57600 = 57600
    BAUD_115200 = 115200
    BAUD_230400 = 230400
    BAUD_460800 = 460800
    BAUD_921600 = 921600


class DataBits(IntEnum):
    """
    Character size. Values match pyserial's FIVEBITS..EIGHTBITS.
    """
    BITS_5 = serial.FIVEBITS
    BITS_6 = serial.SIXBITS
    BITS_7 = serial.SEVENBITS
    BITS_8 = serial.EIGHTBITS


class Parity(Enum):
    """
    Parity mode. Values match pyserial's PARITY_* letters.
    """
    NONE = serial.PARITY_NONE
    ODD = serial.PARITY_ODD
    EVEN = serial.PARITY_EVEN


class StopBits(IntEnum):
    """
    Number of stop bits. Values match pyserial's STOPBITS_ONE/STOPBITS_TWO.
    """
    ONE = serial.STOPBITS_ONE
    TWO = serial.STOPBITS_TWO


class FlowControl(Enum):
    """
    Flow control:
    NONE: no flow control
    HARDWARE: RTS/CTS lines
    SOFTWARE: inline XON (0x11) / XOFF (0x13)
    """
    NONE = "none"
    HARDWARE = "rtscts"
    SOFTWARE = "xonxoff"


_PARITY_NAMES: Dict[str, Parity] = {
    "n": Parity.NONE, "none": Parity.NONE,
    "o": Parity.ODD, "odd": Parity.ODD,
    "e": Parity.EVEN, "even": Parity.EVEN,
}

_FLOW_NAMES: Dict[str, FlowControl] = {
    "none": FlowControl.NONE, "off": FlowControl.NONE,
    "rtscts": FlowControl.HARDWARE, "hardware": FlowControl.HARDWARE,
    "xonxoff": FlowControl.SOFTWARE, "software": FlowControl.SOFTWARE,
}


def _as_baud(value: Any) -> BaudRate:
    try:
        return BaudRate(int(value))
    except (TypeError, ValueError):
        raise ValueError(f"unsupported baud rate: {value!r}") from None


def _as_data_bits(value: Any) -> DataBits:
    try:
        return DataBits(int(value))
    except (TypeError, ValueError):
        raise ValueError(f"unsupported data bits: {value!r}") from None


def _as_parity(value: Any) -> Parity:
    if isinstance(value, Parity):
        return value
    parity = _PARITY_NAMES.get(str(value).strip().lower())
    if parity is None:
        raise ValueError(f"unsupported parity: {value!r}")
    return parity


def _as_stop_bits(value: Any) -> StopBits:
    if isinstance(value, StopBits):
        return value
    # pyserial allows 1.5 which the termios surface cannot express
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"unsupported stop bits: {value!r}")
    try:
        return StopBits(int(value))
    except (TypeError, ValueError):
        raise ValueError(f"unsupported stop bits: {value!r}") from None


def _as_flow(value: Any) -> FlowControl:
    if isinstance(value, FlowControl):
        return value
    if value is None:
        return FlowControl.NONE
    flow = _FLOW_NAMES.get(str(value).strip().lower())
    if flow is None:
        raise ValueError(f"unsupported flow control: {value!r}")
    return flow


class SerialConfig:
    """
    Line parameters for a serial port.
    Fields:
        baud_rate: BaudRate
        data_bits: DataBits
        parity: Parity
        stop_bits: StopBits
        flow_control: FlowControl
    Defaults are 115200 8N1 without flow control.
    """

    __slots__ = ("baud_rate", "data_bits", "parity", "stop_bits", "flow_control")

    baud_rate: BaudRate
    data_bits: DataBits
    parity: Parity
    stop_bits: StopBits
    flow_control: FlowControl

    def __init__(self, baud_rate: Union[BaudRate, int] = BaudRate.BAUD_115200,
                 data_bits: Union[DataBits, int] = DataBits.BITS_8,
                 parity: Union[Parity, str] = Parity.NONE,
                 stop_bits: Union[StopBits, int, float] = StopBits.ONE,
                 flow_control: Union[FlowControl, str, None] = FlowControl.NONE) -> None:
        """
        Build a SerialConfig from enum members or plain values.
        Args:
            baud_rate: BaudRate or int (e.g. 9600)
            data_bits: DataBits or int (5..8)
            parity: Parity, pyserial letter ('N', 'O', 'E') or name
            stop_bits: StopBits or 1/2
            flow_control: FlowControl, 'none', 'rtscts'/'hardware', 'xonxoff'/'software'
        Raises:
            ValueError: If any value is outside its enumeration
        """
        self.baud_rate = _as_baud(baud_rate)
        self.data_bits = _as_data_bits(data_bits)
        self.parity = _as_parity(parity)
        self.stop_bits = _as_stop_bits(stop_bits)
        self.flow_control = _as_flow(flow_control)

    @classmethod
    def coerce(cls, baud_rate: Union[BaudRate, int] = BaudRate.BAUD_115200,
               data_bits: Union[DataBits, int] = DataBits.BITS_8,
               parity: Union[Parity, str] = Parity.NONE,
               stop_bits: Union[StopBits, int, float] = StopBits.ONE,
               flow_control: Union[FlowControl, str, None] = FlowControl.NONE) -> "SerialConfig":
        """Alias of the constructor."""
        return cls(baud_rate, data_bits, parity, stop_bits, flow_control)

    def validated(self) -> "SerialConfig":
        """
        Return a copy with every field checked again, for instances whose
        attributes were reassigned after construction.
        Raises:
            ValueError: If any value is outside its enumeration
        """
        return SerialConfig(*self._key())

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> "SerialConfig":
        """
        Build a SerialConfig from a pyserial settings dictionary, as returned
        by serial.Serial.get_settings(). Missing keys take their defaults.
        Raises:
            ValueError: If a value is unsupported or both xonxoff and rtscts are set
        """
        xonxoff = bool(settings.get("xonxoff", False))
        rtscts = bool(settings.get("rtscts", False))
        if xonxoff and rtscts:
            raise ValueError("xonxoff and rtscts are mutually exclusive")
        if rtscts:
            flow = FlowControl.HARDWARE
        elif xonxoff:
            flow = FlowControl.SOFTWARE
        else:
            flow = FlowControl.NONE
        return cls.coerce(
            baud_rate=settings.get("baudrate", BaudRate.BAUD_115200),
            data_bits=settings.get("bytesize", DataBits.BITS_8),
            parity=settings.get("parity", Parity.NONE),
            stop_bits=settings.get("stopbits", StopBits.ONE),
            flow_control=flow,
        )

    def to_settings(self) -> Dict[str, Any]:
        """
        Return the configuration as pyserial keyword arguments.
        """
        return {
            "baudrate": int(self.baud_rate),
            "bytesize": int(self.data_bits),
            "parity": self.parity.value,
            "stopbits": int(self.stop_bits),
            "xonxoff": self.flow_control is FlowControl.SOFTWARE,
            "rtscts": self.flow_control is FlowControl.HARDWARE,
        }

    def _key(self) -> tuple:
        return (self.baud_rate, self.data_bits, self.parity, self.stop_bits, self.flow_control)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SerialConfig):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        return (f"{int(self.baud_rate)} {int(self.data_bits)}{self.parity.value}"
                f"{int(self.stop_bits)} {self.flow_control.value}")

    def __repr__(self) -> str:
        return (f"SerialConfig(baud_rate={self.baud_rate!r}, data_bits={self.data_bits!r}, "
                f"parity={self.parity!r}, stop_bits={self.stop_bits!r}, "
                f"flow_control={self.flow_control!r})")
