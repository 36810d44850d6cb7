"""Tests for the connection manager, using fake bleak clients."""

import asyncio

import pytest
from bleak.exc import BleakDeviceNotFoundError, BleakError

from conftest import ADDRESS, FakeCharacteristic, FakeService, uart_services
from scootctl.connection import (
    ConnectionManager,
    ConnectionState,
    find_write_and_notify,
    is_valid_address,
)
from scootctl.errors import (
    AdapterDisabledError,
    AdapterUnavailableError,
    ConnectionFailedError,
    InvalidAddressError,
    ServicesIncompatibleError,
)
from scootctl.events import (
    ConnectionFailed,
    Connected,
    DataReceived,
    Disconnected,
    ServicesDiscovered,
)


@pytest.fixture
def manager(client_factory, recorder):
    manager = ConnectionManager(client_factory=client_factory)
    manager.events.subscribe(recorder.append)
    return manager


def of_type(events, kind):
    return [e for e in events if isinstance(e, kind)]


def test_is_valid_address():
    assert is_valid_address("AA:BB:CC:DD:EE:FF")
    assert is_valid_address("aa:bb:cc:dd:ee:ff")
    assert is_valid_address(" AA:BB:CC:DD:EE:FF ")
    assert is_valid_address("12345678-1234-1234-1234-123456789ABC")
    assert not is_valid_address("")
    assert not is_valid_address("AA:BB:CC:DD:EE")
    assert not is_valid_address("AA-BB-CC-DD-EE-FF")
    assert not is_valid_address("GG:BB:CC:DD:EE:FF")


def test_find_write_and_notify_takes_first_matches():
    services = [
        FakeService(
            FakeCharacteristic("a", ["read"]),
            FakeCharacteristic("b", ["write-without-response"]),
            FakeCharacteristic("c", ["notify"]),
        ),
        FakeService(FakeCharacteristic("d", ["write", "notify"])),
    ]
    write_char, notify_char = find_write_and_notify(services)
    assert write_char.uuid == "b"
    assert notify_char.uuid == "c"


def test_find_write_and_notify_across_services():
    services = [
        FakeService(FakeCharacteristic("a", ["notify"])),
        FakeService(FakeCharacteristic("b", ["read"]), FakeCharacteristic("c", ["write"])),
    ]
    write_char, notify_char = find_write_and_notify(services)
    assert write_char.uuid == "c"
    assert notify_char.uuid == "a"


def test_find_write_and_notify_single_characteristic_both_roles():
    services = [FakeService(FakeCharacteristic("a", ["write", "notify"]))]
    write_char, notify_char = find_write_and_notify(services)
    assert write_char is notify_char


def test_find_write_and_notify_missing():
    assert find_write_and_notify([]) == (None, None)
    write_char, notify_char = find_write_and_notify([FakeService(FakeCharacteristic("a", ["read"]))])
    assert write_char is None and notify_char is None


@pytest.mark.asyncio
async def test_send_without_connection(manager):
    assert not manager.is_connected
    assert await manager.send_command("AA") is False


@pytest.mark.asyncio
async def test_connect_success(manager, client_factory, recorder):
    task = manager.connect(ADDRESS.lower())
    assert isinstance(task, asyncio.Task)
    assert await task is True

    client = client_factory.last
    assert client.address == ADDRESS
    assert client.disconnected_callback is not None
    assert manager.state is ConnectionState.SERVICES_READY
    assert manager.is_connected
    assert manager.address == ADDRESS
    assert manager.write_channel.uuid == "0000fff2"
    assert manager.notify_channel.uuid == "0000fff3"
    assert "0000fff3" in client.notify_callbacks

    assert recorder[0] == Connected(address=ADDRESS)
    assert recorder[1] == ServicesDiscovered(has_both_channels=True)


@pytest.mark.asyncio
async def test_connect_returns_immediately(manager, recorder):
    task = manager.connect(ADDRESS)
    assert recorder == []
    assert manager.state is ConnectionState.DISCONNECTED
    await task


@pytest.mark.asyncio
async def test_invalid_address(manager, client_factory, recorder):
    assert await manager.connect("not-an-address") is False
    assert client_factory.clients == []
    failures = of_type(recorder, ConnectionFailed)
    assert len(failures) == 1
    assert isinstance(failures[0].error, InvalidAddressError)


@pytest.mark.asyncio
async def test_device_not_found(manager, client_factory, recorder):
    client_factory.options = {"connect_error": BleakDeviceNotFoundError(ADDRESS)}
    assert await manager.connect(ADDRESS) is False
    assert manager.state is ConnectionState.DISCONNECTED
    assert not manager.is_connected
    failure = of_type(recorder, ConnectionFailed)[0]
    assert isinstance(failure.error, ConnectionFailedError)
    assert of_type(recorder, Connected) == []


@pytest.mark.asyncio
async def test_connect_timeout(manager, client_factory, recorder):
    client_factory.options = {"connect_error": asyncio.TimeoutError()}
    assert await manager.connect(ADDRESS) is False
    assert isinstance(of_type(recorder, ConnectionFailed)[0].error, ConnectionFailedError)


@pytest.mark.asyncio
async def test_adapter_disabled(manager, client_factory, recorder):
    client_factory.options = {"connect_error": BleakError("Bluetooth device is turned off")}
    assert await manager.connect(ADDRESS) is False
    assert isinstance(of_type(recorder, ConnectionFailed)[0].error, AdapterDisabledError)

    # A disabled adapter may be switched on later, so retrying is allowed
    client_factory.options = {}
    assert await manager.connect(ADDRESS) is True


@pytest.mark.asyncio
async def test_adapter_unavailable_is_remembered(manager, client_factory, recorder):
    client_factory.options = {"connect_error": BleakError("No Bluetooth adapters found.")}
    assert await manager.connect(ADDRESS) is False
    assert isinstance(of_type(recorder, ConnectionFailed)[0].error, AdapterUnavailableError)

    with pytest.raises(AdapterUnavailableError):
        manager.connect(ADDRESS)
    assert len(client_factory.clients) == 1


@pytest.mark.asyncio
async def test_missing_write_channel(manager, client_factory, recorder):
    client_factory.options = {"services": [FakeService(FakeCharacteristic("n", ["notify"]))]}
    assert await manager.connect(ADDRESS) is False

    assert manager.state is ConnectionState.CONNECTED
    assert not manager.is_connected
    discovered = of_type(recorder, ServicesDiscovered)[0]
    assert discovered.has_both_channels is False
    assert isinstance(discovered.error, ServicesIncompatibleError)
    assert await manager.send_command("D707A0000101A9") is False


@pytest.mark.asyncio
async def test_missing_notify_channel_still_sends(manager, client_factory, recorder):
    client_factory.options = {"services": [FakeService(FakeCharacteristic("w", ["write"]))]}
    assert await manager.connect(ADDRESS) is True

    assert manager.state is ConnectionState.SERVICES_READY
    assert of_type(recorder, ServicesDiscovered)[0].has_both_channels is False
    assert await manager.send_command("D707A0000101A9") is True


@pytest.mark.asyncio
async def test_missing_cccd_skips_subscription(manager, client_factory):
    client_factory.options = {"services": uart_services(cccd=False)}
    assert await manager.connect(ADDRESS) is True
    assert client_factory.last.notify_callbacks == {}
    assert manager.notify_channel is not None


@pytest.mark.asyncio
async def test_send_command_writes_bytes(manager, client_factory):
    await manager.connect(ADDRESS)
    assert await manager.send_command("D707A0000101A9") is True
    assert client_factory.last.writes == [
        ("0000fff2", bytes([0xD7, 0x07, 0xA0, 0x00, 0x01, 0x01, 0xA9]), True)
    ]


@pytest.mark.asyncio
async def test_write_without_response(manager, client_factory):
    client_factory.options = {"services": uart_services(write_props=["write-without-response"])}
    await manager.connect(ADDRESS)
    assert await manager.send_command("D706A30001AA") is True
    assert client_factory.last.writes[0][2] is False


@pytest.mark.asyncio
async def test_send_malformed_hex(manager, client_factory):
    await manager.connect(ADDRESS)
    assert await manager.send_command("D707A45A00005") is False
    assert await manager.send_command("XYZW") is False
    assert client_factory.last.writes == []
    assert manager.is_connected


@pytest.mark.asyncio
async def test_write_rejected(manager, client_factory):
    client_factory.options = {"write_error": BleakError("Write not permitted")}
    await manager.connect(ADDRESS)
    assert await manager.send_command("D707A0000101A9") is False
    assert manager.is_connected


@pytest.mark.asyncio
async def test_notifications_published(manager, client_factory, recorder):
    await manager.connect(ADDRESS)
    client_factory.last.notify(b"\xd7\x07\xa0")
    client_factory.last.notify(b"")

    received = of_type(recorder, DataReceived)
    assert received == [DataReceived(data=b"\xd7\x07\xa0")]
    assert received[0].hex == "D707A0"


@pytest.mark.asyncio
async def test_link_lost(manager, client_factory, recorder):
    await manager.connect(ADDRESS)
    client_factory.last.drop_link()

    assert manager.state is ConnectionState.DISCONNECTED
    assert not manager.is_connected
    assert manager.write_channel is None
    assert of_type(recorder, Disconnected) == [Disconnected(address=ADDRESS)]
    assert await manager.send_command("D707A0000101A9") is False


@pytest.mark.asyncio
async def test_disconnect_emits_once(manager, client_factory, recorder):
    await manager.connect(ADDRESS)
    client = client_factory.last
    await manager.disconnect()
    await manager.disconnect()

    assert client.disconnect_calls == 1
    assert len(client.stopped_notify) == 1
    assert manager.state is ConnectionState.DISCONNECTED
    assert of_type(recorder, Disconnected) == [Disconnected(address=ADDRESS)]

    # Late callback from the released client is ignored
    client.drop_link()
    assert len(of_type(recorder, Disconnected)) == 1


@pytest.mark.asyncio
async def test_disconnect_when_idle(manager, recorder):
    await manager.disconnect()
    assert recorder == []


@pytest.mark.asyncio
async def test_connect_replaces_existing_session(manager, client_factory, recorder):
    await manager.connect(ADDRESS)
    first = client_factory.last
    assert await manager.connect("11:22:33:44:55:66") is True

    assert first.disconnect_calls == 1
    assert len(client_factory.clients) == 2
    assert manager.address == "11:22:33:44:55:66"
    assert of_type(recorder, Disconnected) == [Disconnected(address=ADDRESS)]


@pytest.mark.asyncio
async def test_cleanup_detaches_subscribers(manager):
    await manager.connect(ADDRESS)
    await manager.cleanup()
    assert manager.events.subscriber_count == 0
    assert manager.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_client_construction_failure(recorder):
    def broken_factory(address, **kwargs):
        raise BleakError("Unsupported platform: Plan9")

    manager = ConnectionManager(client_factory=broken_factory)
    manager.events.subscribe(recorder.append)

    assert await manager.connect(ADDRESS) is False
    assert manager.state is ConnectionState.DISCONNECTED
    assert not manager.is_connected
    failures = of_type(recorder, ConnectionFailed)
    assert len(failures) == 1
    assert isinstance(failures[0].error, AdapterUnavailableError)


@pytest.mark.asyncio
async def test_client_construction_unexpected_error(recorder):
    def broken_factory(address, **kwargs):
        raise RuntimeError("boom")

    manager = ConnectionManager(client_factory=broken_factory)
    manager.events.subscribe(recorder.append)

    assert await manager.connect(ADDRESS) is False
    assert manager.state is ConnectionState.DISCONNECTED
    assert isinstance(of_type(recorder, ConnectionFailed)[0].error, ConnectionFailedError)


@pytest.mark.asyncio
async def test_disconnect_during_connect(manager, client_factory, recorder):
    client_factory.options = {"connect_delay": 1.0}
    task = manager.connect(ADDRESS)
    await asyncio.sleep(0.01)
    assert manager.state is ConnectionState.CONNECTING

    await manager.disconnect()
    await asyncio.wait({task})

    assert task.cancelled()
    assert manager.state is ConnectionState.DISCONNECTED
    assert manager.write_channel is None
    assert manager.notify_channel is None
    assert client_factory.last.disconnect_calls == 1
    assert of_type(recorder, Disconnected) == [Disconnected(address=ADDRESS)]
    assert of_type(recorder, Connected) == []
