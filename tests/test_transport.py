from __future__ import annotations

from collections import namedtuple

import pytest
import serial  # type: ignore

from serial_zone_player import transport as transport_module
from serial_zone_player.transport import DeviceHandle, SerialTransport, get_likely_ports

PortInfo = namedtuple("PortInfo", "device description")


class FakeSerial:
    def __init__(self, url, **kwargs):
        self.url = url
        self.kwargs = kwargs
        self.reads = []
        self.written = b""
        self.is_open = True
        self.cancelled = 0
        self.flushed = 0

    @property
    def in_waiting(self):
        return len(self.reads[0]) if self.reads else 0

    def read(self, size=1):
        return self.reads.pop(0) if self.reads else b""

    def cancel_read(self):
        self.cancelled += 1

    def write(self, data):
        self.written += data
        return len(data)

    def flush(self):
        self.flushed += 1

    def close(self):
        self.is_open = False


@pytest.fixture
def fake_serial(monkeypatch):
    created = []

    def serial_for_url(url, **kwargs):
        created.append(FakeSerial(url, **kwargs))
        return created[-1]

    monkeypatch.setattr(transport_module.serial, "serial_for_url", serial_for_url)
    return created


def test_open_blocks_without_timeout(fake_serial):
    handle = DeviceHandle("/dev/ttyUSB0")
    handle.open(115200)
    assert handle.is_open
    assert fake_serial[0].url == "/dev/ttyUSB0"
    assert fake_serial[0].kwargs["baudrate"] == 115200
    assert fake_serial[0].kwargs["timeout"] is None


def test_read_chunk_decodes_split_characters(fake_serial):
    handle = DeviceHandle("fake")
    handle.open(9600)
    handle.attach_decoder("utf-8")
    fake_serial[0].reads = [b"caf\xc3", b"\xa9\n", b"\xff\n"]

    assert handle.read_chunk() == "caf"
    assert handle.read_chunk() == "é\n"
    assert handle.read_chunk() == "�\n"
    # empty read: cancelled or gone
    assert handle.read_chunk() is None
    assert handle.read_chunk() is None


def test_unknown_encoding_rejected(fake_serial):
    handle = DeviceHandle("fake")
    handle.open(9600)
    with pytest.raises(LookupError):
        handle.attach_decoder("no-such-codec")


def test_read_requires_open_port():
    with pytest.raises(serial.SerialException):
        DeviceHandle("fake").read_chunk()


def test_output_flushed_only_after_write(fake_serial):
    handle = DeviceHandle("fake")
    handle.open(9600)
    handle.close_output()
    assert fake_serial[0].flushed == 0
    assert handle.write(b"hi\n") == 3
    handle.close_output()
    assert fake_serial[0].flushed == 1
    assert fake_serial[0].written == b"hi\n"


def test_cancel_and_close(fake_serial):
    handle = DeviceHandle("fake")
    handle.cancel_read()
    handle.close()
    handle.open(9600)
    handle.cancel_read()
    assert fake_serial[0].cancelled == 1
    handle.close()
    assert not fake_serial[0].is_open
    assert not handle.is_open
    handle.close()


def test_request_device(monkeypatch):
    monkeypatch.setattr(transport_module, "get_likely_ports", lambda: ["/dev/ttyUSB0", "/dev/ttyS0"])

    assert SerialTransport().request_device().port == "/dev/ttyUSB0"
    assert SerialTransport().request_device("loop://").port == "loop://"

    offered = []

    def chooser(ports):
        offered.append(ports)
        return ports[1]

    assert SerialTransport(chooser=chooser).request_device().port == "/dev/ttyS0"
    assert offered == [["/dev/ttyUSB0", "/dev/ttyS0"]]
    assert SerialTransport(chooser=lambda ports: None).request_device() is None


def test_request_device_without_ports(monkeypatch):
    monkeypatch.setattr(transport_module, "get_likely_ports", lambda: [])
    assert SerialTransport().request_device() is None


def test_likely_ports_linux(monkeypatch):
    monkeypatch.setattr(transport_module.platform, "system", lambda: "Linux")
    monkeypatch.setattr(transport_module.list_ports, "comports", lambda: [
        PortInfo("/dev/ttyS0", "ttyS0"),
        PortInfo("/dev/ttyACM0", "Arduino"),
        PortInfo("/dev/rfcomm0", "bt"),
        PortInfo("/dev/ttyUSB1", "CP2102"),
    ])
    assert get_likely_ports() == ["/dev/ttyACM0", "/dev/ttyUSB1", "/dev/ttyS0", "/dev/rfcomm0"]


def test_likely_ports_windows(monkeypatch):
    monkeypatch.setattr(transport_module.platform, "system", lambda: "Windows")
    monkeypatch.setattr(transport_module.list_ports, "comports", lambda: [
        PortInfo("COM10", ""), PortInfo("COM3", ""),
    ])
    assert get_likely_ports() == ["COM3", "COM10"]


def test_likely_ports_macos(monkeypatch):
    monkeypatch.setattr(transport_module.platform, "system", lambda: "Darwin")
    monkeypatch.setattr(transport_module.list_ports, "comports", lambda: [
        PortInfo("/dev/cu.Bluetooth-Incoming-Port", "n/a"),
        PortInfo("/dev/cu.SLAB_USBtoUART", "CP2102"),
        PortInfo("/dev/cu.usbmodem1101", "Arduino"),
    ])
    assert get_likely_ports() == [
        "/dev/cu.usbmodem1101", "/dev/cu.SLAB_USBtoUART", "/dev/cu.Bluetooth-Incoming-Port",
    ]


def test_likely_ports_unknown_platform(monkeypatch):
    monkeypatch.setattr(transport_module.platform, "system", lambda: "Plan9")
    monkeypatch.setattr(transport_module.list_ports, "comports", lambda: [
        PortInfo("/dev/b", ""), PortInfo("/dev/a", ""),
    ])
    assert get_likely_ports() == ["/dev/a", "/dev/b"]
