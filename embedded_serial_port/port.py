from __future__ import annotations

import array
import fcntl
import os
import termios
import time
from logging import Logger, getLogger
from typing import Any, Optional, Union

from .attributes import build_attributes, describe, with_read_timeout
from .settings import BaudRate, DataBits, FlowControl, Parity, SerialConfig, StopBits

NOT_OPEN: str = "serial port is not open"
ALREADY_OPEN: str = "serial port is already open"
SCRATCH_SIZE: int = 1024
DEFAULT_TIMEOUT_MS: int = 1000

BytesLike = Union[bytes, bytearray, memoryview]


def _os_message(exc: BaseException) -> str:
    """
    Extract the OS error text from an OSError or a termios.error tuple.
    """
    if isinstance(exc, OSError):
        if exc.strerror:
            return exc.strerror
        if exc.errno:
            return os.strerror(exc.errno)
        return str(exc)
    if len(exc.args) >= 2:
        return str(exc.args[1])
    return str(exc)


class SerialPort:
    """
    Handle on a POSIX serial/tty character device.
    Features:
        - Opens the device without becoming its controlling terminal
        - Configures a raw, byte-transparent line from a SerialConfig
        - Reads governed by the termios inter-byte timer (100 ms ticks)
        - Writes with optional wait for transmission completion
    Failures are never raised: operations return False, -1 or an empty
    result and leave a description in get_last_error().
    The handle owns its file descriptor; it cannot be copied, only moved
    with transfer(). It is not thread safe.
    """

    _fd: int
    _device: str
    _last_error: str
    encoding: str
    settle_delay: float
    log: Logger

    def __init__(self, *, encoding: str = "utf-8", settle_delay: float = 0.1) -> None:
        """
        Create a closed port handle.
        Args:
            encoding (str): Text encoding for str writes and read_string()
            settle_delay (float): Pause in seconds after installing attributes
        """
        self._fd = -1
        self._device = ""
        self._last_error = ""
        self.encoding = encoding
        self.settle_delay = settle_delay
        self.log = getLogger(__name__)

    # --- Lifecycle ---

    def open(self, device: str) -> bool:
        """
        Open `device` in read/write mode and switch it to blocking I/O.
        The device is first opened non-blocking so that a line waiting for
        carrier cannot hang the call.
        Args:
            device (str): Character device path, e.g. /dev/ttyUSB0
        Returns:
            bool: True once the handle is open
        """
        if self.is_open():
            return self._fail(ALREADY_OPEN)

        self._device = device
        try:
            fd = os.open(device, os.O_RDWR | os.O_NOCTTY | os.O_NONBLOCK)
        except OSError as exc:
            self._device = ""
            return self._fail(f"Unable to open serial device: {device} - {_os_message(exc)}")

        error = self._prepare(fd, device)
        if error:
            os.close(fd)
            self._device = ""
            return self._fail(error)

        self._fd = fd
        self.log.debug("Opened %s (fd %d)", device, fd)
        return True

    @staticmethod
    def _prepare(fd: int, device: str) -> str:
        """
        Validate a freshly opened descriptor and clear O_NONBLOCK.
        Returns:
            str: Error message, empty on success
        """
        if not os.isatty(fd):
            return f"Device is not a terminal device: {device}"
        try:
            termios.tcgetattr(fd)
        except termios.error as exc:
            return f"Unable to get serial port attributes: {_os_message(exc)}"
        try:
            flags = fcntl.fcntl(fd, fcntl.F_GETFL)
        except OSError as exc:
            return f"Unable to get file status flags: {_os_message(exc)}"
        try:
            fcntl.fcntl(fd, fcntl.F_SETFL, flags & ~os.O_NONBLOCK)
        except OSError as exc:
            return f"Unable to set blocking mode: {_os_message(exc)}"
        return ""

    def close(self) -> None:
        """
        Release the device. Untransmitted output is discarded; call drain()
        first to keep it. Safe to call on a closed handle.
        """
        if self._fd != -1:
            fd, self._fd = self._fd, -1
            try:
                os.close(fd)
            except OSError as exc:
                self.log.debug("Error closing %s: %s", self._device, exc)
            self.log.debug("Closed %s", self._device)
        self._device = ""
        self._last_error = ""

    def is_open(self) -> bool:
        return self._fd != -1

    @property
    def device(self) -> str:
        """Path of the open device, empty when closed."""
        return self._device

    def fileno(self) -> int:
        """Return the file descriptor, -1 when closed."""
        return self._fd

    def transfer(self) -> "SerialPort":
        """
        Move ownership of the device into a new handle.
        This handle ends up closed with empty device path and last error,
        without the descriptor being closed.
        Returns:
            SerialPort: Handle now owning the descriptor
        """
        other = SerialPort(encoding=self.encoding, settle_delay=self.settle_delay)
        other._fd, other._device, other._last_error = self._fd, self._device, self._last_error
        self._fd, self._device, self._last_error = -1, "", ""
        return other

    def __enter__(self) -> "SerialPort":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self) -> None:
        if getattr(self, "_fd", -1) != -1:
            self.close()

    def __copy__(self):
        raise TypeError("SerialPort owns its file descriptor and cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("SerialPort owns its file descriptor and cannot be copied")

    def __reduce_ex__(self, protocol):
        raise TypeError("SerialPort owns its file descriptor and cannot be pickled")

    def __repr__(self) -> str:
        state = f"open {self._device!r}" if self.is_open() else "closed"
        return f"<SerialPort {state}>"

    # --- Attributes ---

    def configure(self, baud_rate: Union[BaudRate, int] = BaudRate.BAUD_115200,
                  data_bits: Union[DataBits, int] = DataBits.BITS_8,
                  parity: Union[Parity, str] = Parity.NONE,
                  stop_bits: Union[StopBits, int] = StopBits.ONE,
                  flow_control: Union[FlowControl, str] = FlowControl.NONE) -> bool:
        """
        Configure line parameters and switch the line to raw mode.
        Args:
            baud_rate: BaudRate (default 115200)
            data_bits: DataBits (default 8)
            parity: Parity (default none)
            stop_bits: StopBits (default one)
            flow_control: FlowControl (default none)
        Returns:
            bool: True if the attributes were installed
        """
        if not self.is_open():
            return self._fail(NOT_OPEN)
        try:
            config = SerialConfig.coerce(baud_rate, data_bits, parity, stop_bits, flow_control)
        except ValueError as exc:
            return self._fail(f"Unsupported serial configuration: {exc}")
        return self.configure_with(config)

    def configure_with(self, config: SerialConfig) -> bool:
        """
        Install `config` on the open line, then wait settle_delay seconds
        for drivers that apply attributes asynchronously.
        On failure the handle stays open and the call may be retried.
        """
        if not self.is_open():
            return self._fail(NOT_OPEN)
        try:
            config = config.validated()
        except (AttributeError, ValueError) as exc:
            return self._fail(f"Unsupported serial configuration: {exc}")
        try:
            current = termios.tcgetattr(self._fd)
        except termios.error as exc:
            return self._fail(f"Unable to get serial port attributes: {_os_message(exc)}")
        try:
            attrs = build_attributes(current, config)
        except ValueError as exc:
            return self._fail(f"Unable to set baud rate: {exc}")
        try:
            termios.tcsetattr(self._fd, termios.TCSANOW, attrs)
        except termios.error as exc:
            return self._fail(f"Unable to set serial port attributes: {_os_message(exc)}")
        time.sleep(self.settle_delay)
        self.log.debug("Configured %s as %s", self._device, config)
        return True

    def current_config(self) -> Optional[SerialConfig]:
        """
        Read back the line parameters installed on the device.
        Returns:
            SerialConfig or None: None if closed, on error, or if the line
            uses settings outside the supported enumerations
        """
        if not self.is_open():
            self._fail(NOT_OPEN)
            return None
        try:
            return describe(termios.tcgetattr(self._fd))
        except termios.error as exc:
            self._fail(f"Unable to get serial port attributes: {_os_message(exc)}")
        except ValueError as exc:
            self._fail(f"Unsupported serial configuration: {exc}")
        return None

    def _set_read_timeout(self, timeout_ms: int) -> bool:
        try:
            current = termios.tcgetattr(self._fd)
        except termios.error as exc:
            return self._fail(f"Unable to get serial port attributes: {_os_message(exc)}")
        try:
            termios.tcsetattr(self._fd, termios.TCSANOW, with_read_timeout(current, timeout_ms))
        except termios.error as exc:
            return self._fail(f"Unable to set read timeout: {_os_message(exc)}")
        return True

    # --- Output ---

    def write(self, data: Union[BytesLike, str], size: Optional[int] = None, wait: bool = False) -> int:
        """
        Queue bytes for transmission.
        Args:
            data (bytes-like or str): Payload; str is encoded with `encoding`
            size (int, optional): Number of bytes of `data` to send
            wait (bool): Drain after writing
        Returns:
            int: Bytes accepted by the kernel (may be short), -1 on error
        """
        if not self.is_open():
            self._fail(NOT_OPEN)
            return -1
        try:
            if isinstance(data, str):
                data = data.encode(self.encoding)
            view = memoryview(data).cast("B")
        except (UnicodeError, LookupError, TypeError) as exc:
            self._fail(f"Failed to write data: {exc}")
            return -1
        if size is not None:
            view = view[:max(int(size), 0)]
        return self.write_raw(view, wait)

    def write_raw(self, buffer: BytesLike, wait: bool = False) -> int:
        """
        Single write(2) of `buffer`, optionally followed by drain().
        A failed drain keeps the byte count and records why in the last error.
        """
        if not self.is_open():
            self._fail(NOT_OPEN)
            return -1
        try:
            written = os.write(self._fd, buffer)
        except OSError as exc:
            self._fail(f"Failed to write data: {_os_message(exc)}")
            return -1
        if written > 0 and wait and not self.drain():
            self._fail("Data written but failed to wait for transmission completion: "
                       f"{self._last_error}")
        return written

    def drain(self) -> bool:
        """
        Block until all queued output has been transmitted.
        """
        if not self.is_open():
            return self._fail(NOT_OPEN)
        try:
            termios.tcdrain(self._fd)
        except termios.error as exc:
            return self._fail(f"Failed to drain output buffer: {_os_message(exc)}")
        return True

    # --- Input ---

    def read_into(self, buffer: Any, size: Optional[int] = None,
                  timeout_ms: int = DEFAULT_TIMEOUT_MS) -> int:
        """
        Single read(2) into a writable buffer.
        The inter-byte timer is set from `timeout_ms` first (100 ms ticks,
        rounded down, but at least one tick for a positive value).
        Args:
            buffer: Writable bytes-like object (bytearray, memoryview, array)
            size (int, optional): Maximum bytes to read, defaults to len(buffer)
            timeout_ms (int): Read timeout in milliseconds, 0 to poll
        Returns:
            int: Bytes read, 0 on timeout or no data, -1 on error
        """
        if not self.is_open():
            self._fail(NOT_OPEN)
            return -1
        try:
            view = memoryview(buffer).cast("B")
        except TypeError as exc:
            self._fail(f"Failed to read data: {exc}")
            return -1
        if view.readonly:
            self._fail("Failed to read data: buffer is read-only")
            return -1
        limit = len(view) if size is None else max(min(int(size), len(view)), 0)
        if not self._set_read_timeout(timeout_ms):
            return -1
        try:
            chunk = os.read(self._fd, limit)
        except BlockingIOError:
            return 0
        except OSError as exc:
            self._fail(f"Failed to read data: {_os_message(exc)}")
            return -1
        view[:len(chunk)] = chunk
        return len(chunk)

    def read(self, max_bytes: int = 1024, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> bytes:
        """
        Read until `max_bytes` arrived, the timer expires or an error occurs.
        Each read(2) may wait up to `timeout_ms`, so the total wait is only
        loosely bounded. On error the bytes received so far are returned and
        the error stays in get_last_error().
        Returns:
            bytes: Received data, possibly empty
        """
        if not self.is_open():
            self._fail(NOT_OPEN)
            return b""
        result = bytearray()
        scratch = bytearray(SCRATCH_SIZE)
        while len(result) < max_bytes:
            count = self.read_into(scratch, min(SCRATCH_SIZE, max_bytes - len(result)), timeout_ms)
            if count <= 0:
                break
            result += scratch[:count]
        return bytes(result)

    def read_string(self, max_bytes: int = 1024, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> str:
        """
        Same as read(), decoded with `encoding`; undecodable bytes are replaced.
        """
        return self.read(max_bytes, timeout_ms).decode(self.encoding, errors="replace")

    def available(self) -> int:
        """
        Number of bytes readable without blocking, -1 if closed or on error.
        Does not touch the last error.
        """
        if not self.is_open():
            return -1
        count = array.array("i", [0])
        try:
            fcntl.ioctl(self._fd, termios.FIONREAD, count, True)
        except OSError:
            return -1
        return count[0]

    # --- Queues ---

    def flush(self) -> bool:
        """Discard both pending input and pending output."""
        return self._flush(termios.TCIOFLUSH, "Failed to flush buffers")

    def flush_input(self) -> bool:
        """Discard received but unread bytes."""
        return self._flush(termios.TCIFLUSH, "Failed to flush input buffer")

    def flush_output(self) -> bool:
        """Discard written but untransmitted bytes."""
        return self._flush(termios.TCOFLUSH, "Failed to flush output buffer")

    def _flush(self, queue: int, message: str) -> bool:
        if not self.is_open():
            return self._fail(NOT_OPEN)
        try:
            termios.tcflush(self._fd, queue)
        except termios.error as exc:
            return self._fail(f"{message}: {_os_message(exc)}")
        return True

    # --- Errors ---

    def get_last_error(self) -> str:
        return self._last_error

    def _fail(self, message: str) -> bool:
        self._last_error = message
        self.log.debug("%s", message)
        return False
