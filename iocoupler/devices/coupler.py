# iocoupler/devices/coupler.py
"""
Coupler session: discovery, channel access and the cyclic I/O exchange.

A CouplerSession exclusively owns one transport connection. It is created by
a successful discovery handshake and stays READY until it is disconnected or
the transport fails:

    DISCONNECTED -> DISCOVERING -> READY (tick, tick, ...) -> DISCONNECTED

Output mutations are staged locally with set_output() and reach the coupler
on the next tick(). The session does not lock: callers must not run two
transport operations (tick, identity) on the same session at the same time.
Overlap is detected and rejected with SessionStateError.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any

from iocoupler.devices.codec import (
    Address,
    BaseCouplerState,
    BaseDeviceCodec,
    ChannelValue,
    ModuleType,
)
from iocoupler.devices.discovery import DiscoveryResult, DiscoverySequencer, decode_coupler_id
from iocoupler.errors import (
    CouplerError,
    ProtocolViolationError,
    SessionStateError,
    TransportError,
    ValidationError,
)
from iocoupler.logging_system import EventCategory, EventSeverity, get_logger
from iocoupler.protocols.modbus.pymodbus_3114 import ModbusTcpTransport

logger = get_logger(__name__)

__all__ = ["SessionState", "CouplerSession"]


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    DISCOVERING = "discovering"
    READY = "ready"


def _flatten(tables) -> dict[Address, ChannelValue]:
    return {
        Address(module, channel): value
        for module, values in enumerate(tables)
        for channel, value in enumerate(values)
    }


class CouplerSession:
    """
    A Modbus TCP fieldbus coupler session.

    Example:
        >>> session = await CouplerSession.connect("192.168.0.222", codec)
        >>> print(f"Connected to {session.coupler_id}")
        >>> session.set_output(Address(module=3, channel=2), True)
        >>> await session.tick()
        >>> await session.disconnect()
    """

    def __init__(self, transport, codec: BaseDeviceCodec):
        """
        Use connect() or open(); a bare instance is not discovered yet.

        Args:
            transport: Transport collaborator, exclusively owned from here on
            codec: Device codec used to decode discovery data and images
        """
        self._transport = transport
        self._codec = codec
        self._state = SessionState.DISCONNECTED
        self._busy = False

        self._coupler_id = ""
        self._modules: tuple[ModuleType, ...] = ()
        self._input_count = 0
        self._output_count = 0
        self._device: BaseCouplerState | None = None

        self.cycle_count = 0
        self.last_cycle_duration = 0.0

    def __repr__(self) -> str:
        return f"CouplerSession({self._transport!r}, state={self._state.value})"

    # ----------------------------------------------------------------
    # Construction
    # ----------------------------------------------------------------

    @classmethod
    async def connect(
        cls,
        host: str,
        codec: BaseDeviceCodec,
        port: int = 502,
        device_id: int = 1,
        timeout: float = 3.0,
        retries: int = 3,
    ) -> CouplerSession:
        """Open a fresh Modbus TCP connection and run discovery over it."""
        transport = ModbusTcpTransport(
            host=host,
            port=port,
            device_id=device_id,
            timeout=timeout,
            retries=retries,
        )
        return await cls.open(transport, codec)

    @classmethod
    async def open(cls, transport, codec: BaseDeviceCodec) -> CouplerSession:
        """
        Connect an injected transport and run discovery over it.

        On any failure the transport is closed and the error re-raised; no
        session is returned.
        """
        session = cls(transport, codec)
        await session._discover()
        return session

    async def _discover(self) -> None:
        self._state = SessionState.DISCOVERING
        try:
            await self._transport.connect()
            sequencer = DiscoverySequencer(self._transport, self._codec)
            result = await sequencer.run()
            device = sequencer.build_state(result)
        except BaseException as exc:
            logger.error(f"Discovery failed: {exc}")
            self._state = SessionState.DISCONNECTED
            try:
                await self._transport.disconnect()
            except Exception as close_exc:
                logger.warning(f"Disconnect after failed discovery also failed: {close_exc}")
            raise

        self._apply(result, device)
        self._state = SessionState.READY

    def _apply(self, result: DiscoveryResult, device: BaseCouplerState) -> None:
        self._coupler_id = result.coupler_id
        self._modules = result.modules
        self._input_count = result.input_count
        self._output_count = result.output_count
        self._device = device

    # ----------------------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    async def disconnect(self) -> None:
        """Close the connection. Safe to call more than once."""
        if self._state is SessionState.DISCONNECTED:
            return
        self._state = SessionState.DISCONNECTED
        await self._transport.disconnect()
        logger.info(f"Disconnected from {self._coupler_id or self._transport!r}")

    async def reconnect(self) -> CouplerSession:
        """Run a full rediscovery over the same transport; returns a new session."""
        if self._state is not SessionState.DISCONNECTED:
            raise SessionStateError("reconnect() requires a disconnected session")
        return await type(self).open(self._transport, self._codec)

    async def __aenter__(self) -> CouplerSession:
        self._require_ready()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    def _require_ready(self) -> None:
        if self._state is not SessionState.READY:
            raise SessionStateError(f"Session is {self._state.value}, expected ready")

    @asynccontextmanager
    async def _exclusive(self, operation: str):
        """Guard one transport operation; fatal failures invalidate the session."""
        self._require_ready()
        if self._busy:
            raise SessionStateError(f"{operation}: another operation is in progress")
        self._busy = True
        try:
            yield
        except (TransportError, asyncio.CancelledError) as exc:
            logger.log_event(
                EventSeverity.ERROR,
                EventCategory.COMMUNICATION,
                f"{operation} aborted, connection state unknown: {exc!r}",
            )
            self._state = SessionState.DISCONNECTED
            await self._transport.disconnect()
            raise
        finally:
            self._busy = False

    # ----------------------------------------------------------------
    # Device information
    # ----------------------------------------------------------------

    @property
    def coupler_id(self) -> str:
        """Coupler identity as read during discovery."""
        return self._coupler_id

    async def identity(self) -> str:
        """Read the coupler identity block again."""
        async with self._exclusive("identity"):
            registers = await self._transport.read_input_registers(
                self._codec.register_map.coupler_id,
                self._codec.register_map.coupler_id_length,
            )
        return decode_coupler_id(registers)

    def modules(self) -> tuple[ModuleType, ...]:
        self._require_ready()
        return self._modules

    @property
    def input_count(self) -> int:
        return self._input_count

    @property
    def output_count(self) -> int:
        return self._output_count

    # ----------------------------------------------------------------
    # Channel access
    # ----------------------------------------------------------------

    def inputs(self) -> dict[Address, ChannelValue]:
        """Current input state, a copy keyed by (module, channel)."""
        self._require_ready()
        return _flatten(self._device.inputs())

    def outputs(self) -> dict[Address, ChannelValue]:
        """Current output state, a copy keyed by (module, channel)."""
        self._require_ready()
        return _flatten(self._device.outputs())

    def set_output(self, address: Address, value: ChannelValue) -> None:
        """
        Stage an output value. It is written on the next tick().

        Raises:
            ValidationError: If the channel does not exist or the value has
                the wrong type. The session is unaffected.
        """
        self._require_ready()
        try:
            self._device.set_output(address, value)
        except ValidationError:
            raise
        except Exception as exc:
            raise ValidationError(f"Cannot set output {address}: {exc}") from exc

        logger.log_event(
            EventSeverity.INFO,
            EventCategory.PROCESS,
            f"Output {address} staged",
            data={"module": address.module, "channel": address.channel, "value": value},
        )

    def binary_input_data(self) -> dict[Address, bytes | None]:
        """
        Drain every module that carries a raw byte stream.

        Modules without a reader are left out; a reader with nothing pending
        maps to None.
        """
        self._require_ready()
        data: dict[Address, bytes | None] = {}
        for module in range(len(self._modules)):
            reader = self._device.reader(module)
            if reader is None:
                continue
            payload = reader.read()
            data[Address(module, 0)] = bytes(payload) if payload else None
        return data

    # ----------------------------------------------------------------
    # Cyclic exchange
    # ----------------------------------------------------------------

    async def tick(self) -> None:
        """
        Run one I/O cycle.

        Reads the process input and output images, lets the codec fold in
        staged outputs, and writes the new output image back.
        """
        async with self._exclusive("tick"):
            started = time.monotonic()
            register_map = self._codec.register_map

            logger.debug("fetch data")
            input_image = await self._read_image(
                self._transport.read_input_registers,
                register_map.process_input_data,
                self._input_count,
            )
            output_image = await self._read_image(
                self._transport.read_holding_registers,
                register_map.process_output_data,
                self._output_count,
            )

            new_output = self._next_output(input_image, output_image)

            if self._output_count:
                logger.debug("write data")
                await self._transport.write_multiple_registers(
                    register_map.process_output_data, new_output
                )

            self.cycle_count += 1
            self.last_cycle_duration = time.monotonic() - started

    async def tick_and_return(self) -> CouplerSession:
        """Like tick(), but returns the session for call chaining."""
        await self.tick()
        return self

    async def run(
        self,
        interval: float,
        max_cycles: int | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> int:
        """
        Tick repeatedly until max_cycles is reached or stop_event is set.

        The first failing tick ends the loop and its error propagates.

        Args:
            interval: Target cycle time in seconds
            max_cycles: Number of cycles to run (None = until stopped)
            stop_event: Event that ends the loop after the current cycle

        Returns:
            Number of completed cycles
        """
        completed = 0
        logger.info(f"Cyclic exchange started (interval {interval}s)")
        while max_cycles is None or completed < max_cycles:
            if stop_event is not None and stop_event.is_set():
                break
            await self.tick()
            completed += 1
            if max_cycles is not None and completed >= max_cycles:
                break
            delay = max(0.0, interval - self.last_cycle_duration)
            if stop_event is None:
                await asyncio.sleep(delay)
                continue
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        logger.info(f"Cyclic exchange stopped after {completed} cycles")
        return completed

    async def _read_image(self, read, address: int, count: int) -> list[int]:
        if count == 0:
            return []
        registers = await read(address, count)
        if len(registers) < count:
            raise ProtocolViolationError(
                f"Short process image at 0x{address:04X}: expected {count} registers, got {len(registers)}"
            )
        return list(registers[:count])

    def _next_output(self, input_image: list[int], output_image: list[int]) -> list[int]:
        try:
            new_output = list(self._device.next_output(input_image, output_image))
        except CouplerError:
            raise
        except Exception as exc:
            raise ProtocolViolationError(f"Cannot compute next output image: {exc}") from exc

        if len(new_output) != self._output_count:
            raise ProtocolViolationError(
                f"Output image has {len(new_output)} registers, expected {self._output_count}"
            )
        return new_output

    # ----------------------------------------------------------------
    # Introspection
    # ----------------------------------------------------------------

    def get_status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "coupler_id": self._coupler_id,
            "module_count": len(self._modules),
            "input_registers": self._input_count,
            "output_registers": self._output_count,
            "cycle_count": self.cycle_count,
            "last_cycle_duration": self.last_cycle_duration,
        }
