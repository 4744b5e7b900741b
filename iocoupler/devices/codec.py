# iocoupler/devices/codec.py
"""
Device codec interfaces and the shared data model.

The coupler session never interprets module identifiers, channel values or
process image bits itself. A device codec does that:

- BaseDeviceCodec turns discovery registers into a module list, tells the
  discovery sequence where each module keeps its parameters, and builds the
  live device state from a CouplerConfig.
- BaseCouplerState holds the live channel tables, validates and stages
  output mutations, and computes the next output image on every tick.

Subclasses must implement every abstract method. ChannelValue and
ModuleType are whatever the codec chooses; the session only moves them
around.
"""

from __future__ import annotations

import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, BinaryIO, Sequence

from iocoupler.protocols.modbus.register_map import DEFAULT_REGISTER_MAP, RegisterMap

__all__ = [
    "Address",
    "CouplerConfig",
    "BaseCouplerState",
    "BaseDeviceCodec",
    "load_codec",
]

ChannelValue = Any
ModuleType = Any


@dataclass(frozen=True, order=True)
class Address:
    """One logical I/O channel: module index plus channel index."""

    module: int
    channel: int

    def __post_init__(self):
        if self.module < 0 or self.channel < 0:
            raise ValueError(f"Address indices must be non-negative: {self.module}/{self.channel}")

    def __str__(self) -> str:
        return f"{self.module}/{self.channel}"


@dataclass(frozen=True)
class CouplerConfig:
    """Snapshot of discovery results handed to BaseDeviceCodec.create_state()."""

    modules: tuple[ModuleType, ...]
    offsets: tuple[int, ...]
    params: tuple[tuple[int, ...], ...]


class BaseCouplerState(ABC):
    """Live device state built by a codec from a CouplerConfig."""

    @abstractmethod
    def inputs(self) -> Sequence[Sequence[ChannelValue]]:
        """Current input channel values, one list per module."""

    @abstractmethod
    def outputs(self) -> Sequence[Sequence[ChannelValue]]:
        """Current output channel values, one list per module."""

    @abstractmethod
    def set_output(self, address: Address, value: ChannelValue) -> None:
        """
        Validate and stage an output mutation.

        Raises:
            Any exception if the channel does not exist or the value does not
            match the channel type. The session reports it as ValidationError.
        """

    @abstractmethod
    def next_output(self, input_image: list[int], output_image: list[int]) -> list[int]:
        """
        Fold the current images and staged mutations into a new output image.

        Staged mutations are consumed by this call.

        Args:
            input_image: Packed process input registers just read
            output_image: Packed process output registers just read

        Returns:
            Packed process output registers to write back
        """

    def reader(self, module: int) -> BinaryIO | None:
        """Byte stream of a module carrying raw payload, or None if it has none."""
        return None


class BaseDeviceCodec(ABC):
    """Translates coupler bookkeeping registers into a device model."""

    register_map: RegisterMap = DEFAULT_REGISTER_MAP

    @abstractmethod
    def decode_module_list(self, registers: list[int]) -> list[ModuleType]:
        """Decode the current module list (two registers per module)."""

    @abstractmethod
    def parameter_table(self, modules: Sequence[ModuleType]) -> list[tuple[int, int]]:
        """One (address, register_count) pair per module; count 0 means no parameters."""

    @abstractmethod
    def create_state(self, config: CouplerConfig) -> BaseCouplerState:
        """Build the live device state. May reject inconsistent configurations."""

    def parse_channel_value(self, text: str) -> ChannelValue:
        """
        Parse a channel value typed on the command line.

        "true"/"false"/"on"/"off" become bools, anything else an int
        (decimal or 0x-prefixed hex). Codecs with richer value types override
        this.
        """
        lowered = text.strip().lower()
        if lowered in ("true", "on"):
            return True
        if lowered in ("false", "off"):
            return False
        return int(lowered, 0)


def load_codec(path: str) -> BaseDeviceCodec:
    """
    Instantiate a codec from a "package.module:attribute" path.

    The attribute may be a BaseDeviceCodec subclass, a zero-argument factory,
    or an already constructed codec instance.

    Raises:
        ValueError: If the path is malformed or does not resolve to a codec
    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Codec path must look like 'package.module:attribute', got {path!r}")

    module = importlib.import_module(module_name)
    try:
        target = getattr(module, attribute)
    except AttributeError as exc:
        raise ValueError(f"Module {module_name!r} has no attribute {attribute!r}") from exc

    codec = target if isinstance(target, BaseDeviceCodec) else target()
    if not isinstance(codec, BaseDeviceCodec):
        raise ValueError(f"{path!r} did not produce a BaseDeviceCodec")
    return codec
