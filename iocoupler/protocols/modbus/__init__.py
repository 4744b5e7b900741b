"""Modbus TCP transport and coupler register layout."""

from iocoupler.protocols.modbus.pymodbus_3114 import ModbusTcpTransport
from iocoupler.protocols.modbus.register_map import (
    DEFAULT_REGISTER_MAP,
    RegisterMap,
    register_count_for_bits,
)

__all__ = [
    "ModbusTcpTransport",
    "RegisterMap",
    "DEFAULT_REGISTER_MAP",
    "register_count_for_bits",
]
