"""Fake bleak objects injected through the client/scanner factories."""

import asyncio
from types import SimpleNamespace
from typing import Any, List, Optional

import pytest

from scootctl.core import CCCD_UUID

ADDRESS = "AA:BB:CC:DD:EE:FF"


class FakeCharacteristic:
    def __init__(self, uuid: str, properties: List[str], cccd: bool = True) -> None:
        self.uuid = uuid
        self.properties = properties
        self._descriptors = {CCCD_UUID: SimpleNamespace(uuid=CCCD_UUID)} if cccd else {}

    def get_descriptor(self, specifier: str) -> Optional[Any]:
        return self._descriptors.get(specifier)


class FakeService:
    def __init__(self, *characteristics: FakeCharacteristic) -> None:
        self.characteristics = list(characteristics)


def uart_services(write_props: Optional[List[str]] = None, cccd: bool = True) -> List[FakeService]:
    """A typical UART-like service: one write and one notify characteristic."""
    return [
        FakeService(
            FakeCharacteristic("0000fff1", ["read"]),
            FakeCharacteristic("0000fff2", write_props or ["write"]),
            FakeCharacteristic("0000fff3", ["notify"], cccd=cccd),
        )
    ]


class FakeClient:
    def __init__(self, address, disconnected_callback=None, timeout=None, services=None,
                 connect_error=None, write_error=None, connect_delay=0.0, **kwargs) -> None:
        self.address = address
        self.disconnected_callback = disconnected_callback
        self.timeout = timeout
        self.services = services if services is not None else uart_services()
        self.connect_error = connect_error
        self.write_error = write_error
        self.connect_delay = connect_delay
        self.connected = False
        self.writes: List[tuple] = []
        self.notify_callbacks = {}
        self.stopped_notify: List[Any] = []
        self.disconnect_calls = 0

    async def connect(self) -> bool:
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True
        return True

    async def disconnect(self) -> bool:
        self.disconnect_calls += 1
        self.connected = False
        return True

    async def start_notify(self, characteristic, callback) -> None:
        self.notify_callbacks[characteristic.uuid] = callback

    async def stop_notify(self, characteristic) -> None:
        self.stopped_notify.append(characteristic)

    async def write_gatt_char(self, characteristic, data, response=False) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((characteristic.uuid, bytes(data), response))

    def notify(self, data: bytes) -> None:
        for uuid, callback in self.notify_callbacks.items():
            callback(uuid, bytearray(data))

    def drop_link(self) -> None:
        self.connected = False
        if self.disconnected_callback is not None:
            self.disconnected_callback(self)


class ClientFactory:
    """Records every client it builds; options apply to the next clients."""

    def __init__(self) -> None:
        self.clients: List[FakeClient] = []
        self.options: dict = {}

    def __call__(self, address, **kwargs) -> FakeClient:
        client = FakeClient(address, **kwargs, **self.options)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeClient:
        return self.clients[-1]


class FakeScanner:
    def __init__(self, detection_callback=None, scanning_mode=None, start_error=None, **kwargs) -> None:
        self.detection_callback = detection_callback
        self.scanning_mode = scanning_mode
        self.start_error = start_error
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    def emit(self, address: str, name: Optional[str] = None, rssi: int = -60) -> None:
        device = SimpleNamespace(address=address, name=name)
        advertisement = SimpleNamespace(local_name=name, rssi=rssi)
        self.detection_callback(device, advertisement)


class ScannerFactory:
    def __init__(self) -> None:
        self.scanners: List[FakeScanner] = []
        self.options: dict = {}

    def __call__(self, **kwargs) -> FakeScanner:
        scanner = FakeScanner(**kwargs, **self.options)
        self.scanners.append(scanner)
        return scanner

    @property
    def last(self) -> FakeScanner:
        return self.scanners[-1]


@pytest.fixture
def client_factory():
    return ClientFactory()


@pytest.fixture
def scanner_factory():
    return ScannerFactory()


@pytest.fixture
def recorder():
    """Collects published events; subscribe with ``bus.subscribe(recorder.append)``."""
    return []
