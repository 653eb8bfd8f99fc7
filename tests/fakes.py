"""
Test doubles for the serial port, the port lister, MQTT and listeners.
"""

import asyncio
import threading
import time

from serial import SerialException
from serial.tools.list_ports_common import ListPortInfo

from pegasus_astro.services.device.device_manager import DeviceListener
from pegasus_astro.services.device.serial_link import SerialLink

# Reply marker: answer a write command with the request itself
ECHO = object()

DEFAULT_RESPONSES = {
    b"P#": b"PPBA_OK\r\n",
    b"PV": b"1.5\r\n",
    b"PS": b"PS:0.35:12.5:150.2:3600000\r\n",
    b"PC": b"PC:1.2:0.8:0.2:0.2:3600000\r\n",
    b"PA": b"PPBA:12.2:1.2:20.5:45:8.3:1:0:128:0:0:0:12\r\n",
    b"P1:": ECHO,
    b"P2:": ECHO,
    b"P3:": ECHO,
    b"P4:": ECHO,
    b"PE:": ECHO,
    b"PF": b"PF\r\n",
}

PROPERTY_NAMES = [
    "reboot",
    "power_status_on_boot",
    "average_amps",
    "amps_hours",
    "watt_hours",
    "uptime",
    "total_current",
    "current_12V_output",
    "current_dewA",
    "current_dewB",
    "input_voltage",
    "current",
    "temp",
    "humidity",
    "dew_point",
    "quadport_status",
    "adj_output_status",
    "dew1_power",
    "dew2_power",
    "autodew_bool",
    "pwr_warn",
    "adjustable_output",
    "firmware_version",
]


class FakeSerial:
    """
    Scripted stand-in for serial.Serial.

    Replies are looked up by the request mnemonic (longest matching
    prefix wins). A reply of None means the device stays silent; an
    exception instance is raised by the next read; a list is played
    back one reply per request. With reply_delay set, the first read
    after each write blocks that long, like a slow device.
    """

    def __init__(self, responses: dict | None = None, **kwargs):
        self.responses = dict(DEFAULT_RESPONSES)
        if responses:
            self.responses.update(responses)
        self.kwargs = kwargs
        self.written: list[bytes] = []
        self.is_open = True
        self.write_error: Exception | None = None
        self.reset_error: Exception | None = None
        self.reply_delay = 0.0
        self.reading = threading.Event()
        self.events: list[str] = []
        self._pending = bytearray()
        self._read_error: Exception | None = None
        self._delay_next = False

    def reset_input_buffer(self):
        if self.reset_error is not None:
            raise self.reset_error
        self._pending.clear()

    def write(self, data: bytes) -> int:
        if self.write_error is not None:
            raise self.write_error
        if not self.is_open:
            raise SerialException("port closed")

        data = bytes(data)
        self.written.append(data)
        request = data.rstrip(b"\n")

        reply = self._reply_for(request)
        if reply is ECHO:
            self._pending += request + b"\r\n"
        elif isinstance(reply, Exception):
            self._read_error = reply
        elif reply is not None:
            self._pending += reply
        self._delay_next = self.reply_delay > 0
        return len(data)

    def read(self, size: int = 1) -> bytes:
        if self._delay_next:
            self._delay_next = False
            self.reading.set()
            time.sleep(self.reply_delay)
            self.events.append("slow-read")
        if self._read_error is not None:
            error, self._read_error = self._read_error, None
            raise error
        chunk = bytes(self._pending[:size])
        del self._pending[:size]
        return chunk

    def close(self):
        self.events.append("close")
        self.is_open = False

    @property
    def commands(self) -> list[bytes]:
        """Request frames without their terminator"""
        return [frame.rstrip(b"\n") for frame in self.written]

    def _reply_for(self, request: bytes):
        reply = self.responses.get(request)
        if reply is None and request not in self.responses:
            for key in sorted(self.responses, key=len, reverse=True):
                if key.endswith(b":") and request.startswith(key):
                    reply = self.responses[key]
                    break

        # A list is a sequence of replies, the last one repeats
        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else reply[0]
        return reply


class FakeSerialFactory:
    """Builds SerialLinks backed by one FakeSerial per port"""

    def __init__(self):
        self.ports: dict[str, FakeSerial] = {}
        self.unavailable: set[str] = set()
        self.opened: list[str] = []

    def serial_for(self, port: str) -> FakeSerial:
        if port not in self.ports:
            self.ports[port] = FakeSerial()
        return self.ports[port]

    def link(self, port: str, baudrate: int = 9600, timeout: float = 0.5) -> SerialLink:
        def open_serial(**kwargs):
            if port in self.unavailable:
                raise SerialException(f"could not open port {port}")
            self.opened.append(port)
            fake = self.serial_for(port)
            fake.kwargs = kwargs
            fake.is_open = True
            return fake

        return SerialLink(port, baudrate, timeout, serial_factory=open_serial)

    __call__ = link


def make_port(device: str, serial_number: str | None) -> ListPortInfo:
    info = ListPortInfo(device, skip_link_detection=True)
    info.serial_number = serial_number
    return info


class RecordingListener(DeviceListener):
    """Collects device events; create inside a running event loop"""

    def __init__(self):
        self.events: list[tuple[str, str]] = []
        self.refreshed = asyncio.Event()
        self.removed = asyncio.Event()

    async def device_added(self, device):
        self.events.append(("added", device.id))

    async def device_refreshed(self, device):
        self.events.append(("refreshed", device.id))
        self.refreshed.set()

    async def device_removed(self, device_id):
        self.events.append(("removed", device_id))
        self.removed.set()


class FakeMqttClient:
    """Records what an aiomqtt.Client would have sent"""

    def __init__(self):
        self.published: list[tuple[str, str, int]] = []
        self.subscribed: list[tuple[str, int]] = []
        self.unsubscribed: list[str] = []

    async def publish(self, topic, payload=None, qos=0, retain=False):
        self.published.append((topic, payload, qos))

    async def subscribe(self, topic, qos=0):
        self.subscribed.append((topic, qos))

    async def unsubscribe(self, topic):
        self.unsubscribed.append(topic)

    def published_to(self, topic: str) -> list[str]:
        return [payload for t, payload, _ in self.published if t == topic]
