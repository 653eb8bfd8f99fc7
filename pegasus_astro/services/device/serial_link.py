"""
Serial Link

Blocking pyserial wrapper that performs one command/response exchange
at a time. Callers run exchanges in an executor and hold the owning
device's lock. The link also holds its own thread lock for the whole
exchange, so a close issued after the caller gave up (e.g. a cancelled
refresh) waits for the in-flight cycle to finish or time out.
"""

import threading
import time
from typing import Callable

import serial
from serial import SerialException, SerialTimeoutException

from pegasus_astro.common.exceptions import ComError, DeviceConnectionError, DeviceTimeoutError
from pegasus_astro.common.logging_setup import get_service_logger, log_device_read
from .protocol import TERMINATOR, decode, encode

logger = get_service_logger("device.serial")


class SerialLink:
    """
    Exclusively owned serial handle for one device.

    Handles:
    - Opening the port (exclusive access where the platform supports it)
    - Writing a request frame
    - Byte-at-a-time reads until the newline terminator or the deadline
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 9600,
        timeout: float = 0.5,
        serial_factory: Callable[..., serial.Serial] = serial.Serial,
    ):
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self._serial_factory = serial_factory
        self._serial: serial.Serial | None = None
        self._io_lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def open(self) -> None:
        """Open the serial port"""
        with self._io_lock:
            handle = None
            try:
                handle = self._serial_factory(
                    port=self.port,
                    baudrate=self.baudrate,
                    timeout=self.timeout,
                    write_timeout=self.timeout,
                    exclusive=True,
                )
                handle.reset_input_buffer()
            except (SerialException, OSError, ValueError) as e:
                if handle is not None:
                    self._close_handle(handle)
                raise DeviceConnectionError(
                    f"Failed to open {self.port}: {e}",
                    address=self.port,
                ) from e

            self._serial = handle
        logger.debug(f"Opened serial port {self.port} (baud={self.baudrate})")

    def close(self) -> None:
        """Close the serial port, after any exchange in progress"""
        with self._io_lock:
            if self._serial is None:
                return
            self._close_handle(self._serial)
            self._serial = None
        logger.debug(f"Closed serial port {self.port}")

    def exchange(self, command: int, value: str | None = None) -> str:
        """
        Send one command and wait for its response.

        Args:
            command: Numeric command code
            value: Optional command argument

        Returns:
            Decoded response text (without the trailing CR/LF)

        Raises:
            DeviceTimeoutError: terminator not seen before the deadline
            ComError: any other I/O failure
            InvalidValueError: device answered with the ERR sentinel
        """
        with self._io_lock:
            if self._serial is None:
                raise ComError(f"Serial port {self.port} is not open")
            return self._exchange(self._serial, command, value)

    def _exchange(self, handle: serial.Serial, command: int, value: str | None) -> str:
        frame = encode(command, value)
        request = frame[:-1].decode("ascii", "replace")

        try:
            handle.write(frame)
        except SerialTimeoutException as e:
            raise DeviceTimeoutError(
                f"Write timeout on {self.port}", timeout_s=self.timeout
            ) from e
        except (SerialException, OSError) as e:
            raise ComError(f"Write failed on {self.port}: {e}") from e

        buffer = bytearray()
        deadline = time.monotonic() + self.timeout

        while True:
            try:
                byte = handle.read(1)
            except (SerialException, OSError) as e:
                raise ComError(f"Read failed on {self.port}: {e}") from e

            if byte:
                buffer += byte
                if byte == TERMINATOR:
                    break
            if not byte or time.monotonic() > deadline:
                log_device_read(logger, self.port, request, bytes(buffer), success=False)
                raise DeviceTimeoutError(
                    f"No response terminator from {self.port} within {self.timeout}s",
                    timeout_s=self.timeout,
                )

        response = decode(bytes(buffer))
        log_device_read(logger, self.port, request, response)
        return response

    def _close_handle(self, handle: serial.Serial) -> None:
        try:
            handle.close()
        except (SerialException, OSError) as e:
            logger.warning(f"Error closing {self.port}: {e}")
