# iocoupler/devices/discovery.py
"""
Discovery handshake for the fieldbus coupler.

Reads the coupler's bookkeeping registers in a fixed order:

    identity -> module count -> module list -> module offsets
    -> process input length -> process output length -> parameters

Each step's register window depends on what earlier steps returned, so the
order is not negotiable. Zero-sized windows are skipped without touching the
transport.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from iocoupler.devices.codec import BaseDeviceCodec, CouplerConfig, ModuleType
from iocoupler.errors import CouplerError, DecodeError, ProtocolViolationError
from iocoupler.logging_system import EventCategory, EventSeverity, get_logger
from iocoupler.protocols.modbus.register_map import register_count_for_bits

logger = get_logger(__name__)


def decode_coupler_id(registers: Sequence[int]) -> str:
    """Each word carries two characters, low byte first. Invalid UTF-8 is replaced."""
    raw = bytearray()
    for word in registers:
        raw.append(word & 0xFF)
        raw.append((word >> 8) & 0xFF)
    return raw.decode("utf-8", errors="replace")


def print_module_list(modules: Sequence[ModuleType]) -> None:
    logger.info("The following I/O modules were detected:")
    for index, module in enumerate(modules):
        name = getattr(module, "name", str(module))
        logger.info(f" {index} - {name.replace('UR20_', '')}")


@dataclass(frozen=True)
class DiscoveryResult:
    """Everything learned during the handshake."""

    coupler_id: str
    modules: tuple[ModuleType, ...]
    offsets: tuple[int, ...]
    params: tuple[tuple[int, ...], ...]
    input_count: int
    output_count: int

    @property
    def config(self) -> CouplerConfig:
        return CouplerConfig(modules=self.modules, offsets=self.offsets, params=self.params)


class DiscoverySequencer:
    """
    Runs the discovery handshake against a connected transport.

    Example:
        >>> sequencer = DiscoverySequencer(transport, codec)
        >>> result = await sequencer.run()
        >>> state = sequencer.build_state(result)
    """

    def __init__(self, transport, codec: BaseDeviceCodec):
        self.transport = transport
        self.codec = codec
        self.register_map = codec.register_map

    async def run(self) -> DiscoveryResult:
        coupler_id = await self.read_coupler_id()
        module_count = await self.read_module_count()
        modules = await self.read_module_list(module_count)
        print_module_list(modules)
        offsets = await self.read_module_offsets(modules)
        input_count = await self.read_process_input_register_count()
        output_count = await self.read_process_output_register_count()
        params = await self.read_parameters(modules)

        result = DiscoveryResult(
            coupler_id=coupler_id,
            modules=tuple(modules),
            offsets=tuple(offsets),
            params=tuple(params),
            input_count=input_count,
            output_count=output_count,
        )
        logger.log_event(
            EventSeverity.NOTICE,
            EventCategory.DIAGNOSTIC,
            f"Discovered '{coupler_id}' with {len(modules)} modules "
            f"({input_count} input / {output_count} output registers)",
        )
        return result

    def build_state(self, result: DiscoveryResult):
        """Hand the discovery snapshot to the codec. Failures become DecodeError."""
        logger.debug("create coupler")
        try:
            return self.codec.create_state(result.config)
        except CouplerError:
            raise
        except Exception as exc:
            raise DecodeError(f"Device model rejected discovery data: {exc}") from exc

    # ----------------------------------------------------------------
    # Individual steps
    # ----------------------------------------------------------------

    async def read_coupler_id(self) -> str:
        logger.debug("Read the coupler ID")
        registers = await self.transport.read_input_registers(
            self.register_map.coupler_id, self.register_map.coupler_id_length
        )
        return decode_coupler_id(registers)

    async def read_module_count(self) -> int:
        logger.debug("Read module count")
        registers = await self.transport.read_input_registers(
            self.register_map.current_module_count, 1
        )
        if not registers:
            raise ProtocolViolationError("Invalid buffer length: empty module count response")
        count = registers[0]
        if count == 0:
            logger.warning("Coupler has no modules!")
        return count

    async def read_module_list(self, count: int) -> list[ModuleType]:
        if count == 0:
            return []
        raw_list = await self.transport.read_input_registers(
            self.register_map.current_module_list, count * 2
        )
        try:
            return list(self.codec.decode_module_list(raw_list))
        except CouplerError:
            raise
        except Exception as exc:
            raise DecodeError(f"Cannot decode module list: {exc}") from exc

    async def read_module_offsets(self, modules: Sequence[ModuleType]) -> list[int]:
        logger.debug("read module offsets")
        if not modules:
            return []
        return await self.transport.read_input_registers(
            self.register_map.module_offsets, len(modules) * 2
        )

    async def read_process_input_register_count(self) -> int:
        logger.debug("read process input length")
        registers = await self.transport.read_input_registers(
            self.register_map.process_input_len, 1
        )
        bits = registers[0] if registers else 0
        return register_count_for_bits(bits)

    async def read_process_output_register_count(self) -> int:
        logger.debug("read process output length")
        registers = await self.transport.read_input_registers(
            self.register_map.process_output_len, 1
        )
        bits = registers[0] if registers else 0
        return register_count_for_bits(bits)

    async def read_parameters(self, modules: Sequence[ModuleType]) -> list[tuple[int, ...]]:
        logger.debug("read parameters")
        params: list[tuple[int, ...]] = []
        for address, register_count in self.codec.parameter_table(modules):
            if register_count == 0:
                params.append(())
                continue
            block = await self.transport.read_holding_registers(address, register_count)
            params.append(tuple(block))
        return params
