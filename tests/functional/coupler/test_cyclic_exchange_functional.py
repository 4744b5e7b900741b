# tests/functional/coupler/test_cyclic_exchange_functional.py
"""
Functional tests: full session lifecycles against a wired coupler.

The coupler is an in-memory station whose output module is wired back to
its input module, so a value set on an output shows up on the matching
input one cycle later.
"""

import asyncio

import pytest

from coupler_doubles import COUPLER_NAME, FakeModule, RecordingTransport, build_coupler_transport
from iocoupler.devices.codec import Address
from iocoupler.devices.coupler import CouplerSession, SessionState
from iocoupler.errors import SessionStateError, TransportError
from iocoupler.protocols.modbus.register_map import (
    ADDR_PACKED_PROCESS_INPUT_DATA,
    ADDR_PACKED_PROCESS_OUTPUT_DATA,
)

DI = FakeModule.UR20_4DI_P
DO = FakeModule.UR20_4DO_P


class LoopbackStation(RecordingTransport):
    """Output channels are wired to input channels of the same index."""

    async def write_multiple_registers(self, address, values):
        await super().write_multiple_registers(address, values)
        if address == ADDR_PACKED_PROCESS_OUTPUT_DATA:
            self.input_registers[ADDR_PACKED_PROCESS_INPUT_DATA] = list(values)


def loopback_station():
    station = LoopbackStation()
    template = build_coupler_transport(modules=[DI, DO])
    station.input_registers.update(template.input_registers)
    station.holding_registers.update(template.holding_registers)
    return station


def test_loopback_station_matches_template():
    """Functional test: the station starts with the normal discovery registers."""
    station = loopback_station()

    assert station.input_registers == build_coupler_transport(modules=[DI, DO]).input_registers


@pytest.mark.asyncio
async def test_output_reaches_wired_input(codec):
    """
    Functional test: set_output -> tick writes the output, the next tick
    reads it back through the wiring.
    """
    station = loopback_station()
    session = await CouplerSession.open(station, codec)
    assert session.coupler_id == COUPLER_NAME

    session.set_output(Address(1, 2), True)
    await session.tick()
    assert session.inputs()[Address(0, 2)] is False

    await session.tick()
    assert session.inputs()[Address(0, 2)] is True
    assert session.outputs()[Address(1, 2)] is True

    session.set_output(Address(1, 2), False)
    await session.tick()
    await session.tick()
    assert session.inputs()[Address(0, 2)] is False

    await session.disconnect()


@pytest.mark.asyncio
async def test_scan_loop_stopped_from_another_task(codec):
    """
    Functional test: run() keeps cycling until a supervising task sets the
    stop event.
    """
    station = loopback_station()
    stop = asyncio.Event()

    async with await CouplerSession.open(station, codec) as session:

        async def supervisor():
            while session.cycle_count < 5:
                await asyncio.sleep(0)
            stop.set()

        completed, _ = await asyncio.gather(
            session.run(interval=0, stop_event=stop),
            supervisor(),
        )

        assert completed >= 5
        assert session.cycle_count == completed

    assert station.connected is False


@pytest.mark.asyncio
async def test_recover_after_connection_loss(codec):
    """
    Functional test: a dropped connection ends the session; reconnect()
    rediscovers and the cycle resumes with the coupler's current outputs.
    """
    station = loopback_station()
    session = await CouplerSession.open(station, codec)
    session.set_output(Address(1, 0), True)
    await session.tick()

    station.failures[("read_input_registers", ADDR_PACKED_PROCESS_INPUT_DATA)] = TransportError(
        "connection reset by peer"
    )
    with pytest.raises(TransportError):
        await session.tick()
    assert session.state is SessionState.DISCONNECTED

    with pytest.raises(SessionStateError):
        session.set_output(Address(1, 1), True)

    del station.failures[("read_input_registers", ADDR_PACKED_PROCESS_INPUT_DATA)]
    session = await session.reconnect()

    await session.tick()
    assert session.outputs()[Address(1, 0)] is True
    assert session.inputs()[Address(0, 0)] is True
    assert station.connect_count == 2

    await session.disconnect()
