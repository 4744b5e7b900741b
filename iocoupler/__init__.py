"""
Modbus TCP fieldbus coupler driver.

Structure:
    iocoupler/
    ├── devices/
    │   ├── codec.py         # Device codec interfaces, Address, CouplerConfig
    │   ├── discovery.py     # Discovery handshake
    │   └── coupler.py       # CouplerSession (channel access, tick)
    ├── protocols/modbus/
    │   ├── register_map.py  # Register addresses, bit -> register arithmetic
    │   └── pymodbus_3114.py # ModbusTcpTransport
    ├── errors.py
    ├── logging_system.py
    └── config_loader.py

Usage:
    from iocoupler import Address, CouplerSession

    session = await CouplerSession.connect("192.168.0.222", codec)
    session.set_output(Address(module=3, channel=2), True)
    await session.tick()
"""

from iocoupler.devices.codec import (
    Address,
    BaseCouplerState,
    BaseDeviceCodec,
    CouplerConfig,
    load_codec,
)
from iocoupler.devices.coupler import CouplerSession, SessionState
from iocoupler.errors import (
    CouplerError,
    DecodeError,
    DeviceExceptionError,
    ProtocolViolationError,
    SessionStateError,
    TransportError,
    ValidationError,
)

__version__ = "0.1.0"

__all__ = [
    "Address",
    "BaseCouplerState",
    "BaseDeviceCodec",
    "CouplerConfig",
    "CouplerSession",
    "SessionState",
    "load_codec",
    "CouplerError",
    "DecodeError",
    "DeviceExceptionError",
    "ProtocolViolationError",
    "SessionStateError",
    "TransportError",
    "ValidationError",
]
