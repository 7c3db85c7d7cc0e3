"""Shared fixtures: a scripted serial channel, a fake clock and a sample manifest."""

import copy

import pytest

from firmware_verifier.errors import ChannelError
from firmware_verifier.manifest import Manifest


MANIFEST_DOC = {
    "timestamp": 1500000000,
    "firmwareImages": [
        {
            "name": "stock-1.0",
            "url": "https://example.invalid/stock-1.0.hex",
            "hash": "00" * 32,
            "permitted": True,
        },
        {
            "name": "banned-2.0",
            "url": "https://example.invalid/banned-2.0.hex",
            "hash": "11" * 32,
            "permitted": False,
        },
    ],
    "modSpecs": [
        {
            "name": "turbo",
            "permitted": True,
            "valueSpecs": [
                {"name": "speed", "minVal": 0, "maxVal": 100},
                {"name": "boost", "minVal": 1, "maxVal": 5},
            ],
        },
        {
            "name": "macro",
            "permitted": False,
            "valueSpecs": [{"name": "slots", "minVal": 0, "maxVal": 4}],
        },
    ],
}


class FakeClock:
    """Clock whose time only moves when something sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeTransport:
    """
    Scripted serial channel.

    Nothing is readable until ``answer_after`` writes have happened; then
    each read_available() call hands out the next chunk.
    """

    def __init__(self, chunks=(), answer_after=1, fail_on=None, fail_close=False, port="/dev/fake0"):
        self.port = port
        self.chunks = list(chunks)
        self.answer_after = answer_after
        self.fail_on = fail_on
        self.fail_close = fail_close
        self.writes = []
        self.lines = []
        self.opened = False
        self.closed = False

    def open(self):
        if self.fail_on == "open":
            raise ChannelError("Cannot open port: busy")
        self.opened = True

    def close(self):
        self.closed = True
        if self.fail_close:
            raise ChannelError("Cannot close port")

    def set_control_lines(self, dtr, rts):
        self.lines.append((dtr, rts))

    def send_raw(self, data):
        if self.fail_on == "write":
            raise ChannelError("Write error: device disconnected")
        self.writes.append(data)

    def bytes_waiting(self):
        if len(self.writes) < self.answer_after or not self.chunks:
            return 0
        return len(self.chunks[0])

    def read_available(self):
        return self.chunks.pop(0) if self.chunks else b""


@pytest.fixture
def manifest_doc():
    return copy.deepcopy(MANIFEST_DOC)


@pytest.fixture
def manifest(manifest_doc):
    return Manifest.from_dict(manifest_doc)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def hex_line():
    """Build an Intel HEX line with a correct checksum."""

    def build(address, data, record_type=0):
        body = bytes([len(data), address >> 8, address & 0xFF, record_type]) + bytes(data)
        checksum = (-sum(body)) & 0xFF
        return ":" + (body + bytes([checksum])).hex().upper()

    return build
