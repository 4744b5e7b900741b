# iocoupler/protocols/modbus/pymodbus_3114.py
"""
Modbus TCP transport using pymodbus 3.11.4

Transport-only adapter.
No device state.
No register semantics.

Responses are unwrapped to plain register lists. Failures are mapped onto
the coupler error taxonomy: anything that means "unreachable" becomes
TransportError, an exception response from the coupler becomes
DeviceExceptionError.
"""

import asyncio

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

from iocoupler.errors import DeviceExceptionError, TransportError
from iocoupler.logging_system import get_logger

logger = get_logger(__name__)


class ModbusTcpTransport:
    def __init__(
        self,
        host: str,
        port: int = 502,
        device_id: int = 1,
        timeout: float = 3.0,
        retries: int = 3,
    ):
        self.host = host
        self.port = port
        self.device_id = device_id
        self.timeout = timeout
        self.retries = retries

        self.client: AsyncModbusTcpClient | None = None
        self.connected: bool = False

    def __repr__(self) -> str:
        return f"ModbusTcpTransport({self.host}:{self.port}, device_id={self.device_id})"

    # ------------------------------------------------------------------
    # Client lifecycle
    # ------------------------------------------------------------------
    async def connect(self) -> None:
        if not self.client:
            self.client = AsyncModbusTcpClient(
                host=self.host,
                port=self.port,
                timeout=self.timeout,
                retries=self.retries,
            )

        if not self.connected:
            try:
                self.connected = await self.client.connect()
            except (ModbusException, OSError, asyncio.TimeoutError) as exc:
                self.connected = False
                raise TransportError(f"Failed to connect to {self.host}:{self.port}: {exc}") from exc

        if not self.connected:
            raise TransportError(f"Failed to connect to {self.host}:{self.port}")

        logger.debug(f"Connected to {self.host}:{self.port}")

    async def disconnect(self) -> None:
        if self.client:
            self.client.close()
            self.client = None

        self.connected = False

    # ------------------------------------------------------------------
    # Modbus TCP primitives (no semantics)
    # ------------------------------------------------------------------
    async def read_input_registers(self, address: int, count: int) -> list[int]:
        client = self._require_client()
        response = await self._call(
            "read_input_registers",
            client.read_input_registers(address, count=count, device_id=self.device_id),
        )
        self._check(response, "read_input_registers", address)
        return list(response.registers)

    async def read_holding_registers(self, address: int, count: int) -> list[int]:
        client = self._require_client()
        response = await self._call(
            "read_holding_registers",
            client.read_holding_registers(address, count=count, device_id=self.device_id),
        )
        self._check(response, "read_holding_registers", address)
        return list(response.registers)

    async def write_multiple_registers(self, address: int, values: list[int]) -> None:
        client = self._require_client()
        response = await self._call(
            "write_multiple_registers",
            client.write_registers(address, list(values), device_id=self.device_id),
        )
        self._check(response, "write_multiple_registers", address)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require_client(self) -> AsyncModbusTcpClient:
        if not self.client or not self.connected:
            raise TransportError("Client not connected")
        return self.client

    async def _call(self, operation: str, request):
        try:
            return await request
        except (ModbusException, OSError, asyncio.TimeoutError) as exc:
            raise TransportError(f"{operation} failed: {exc}") from exc

    @staticmethod
    def _check(response, operation: str, address: int) -> None:
        if response is None:
            raise TransportError(f"{operation} at 0x{address:04X}: no response")
        if response.isError():
            code = getattr(response, "exception_code", None)
            function = getattr(response, "function_code", None)
            raise DeviceExceptionError(
                f"{operation} at 0x{address:04X} rejected (exception code {code})",
                exception_code=code,
                function=function,
            )

    # ------------------------------------------------------------------
    # Transport-level introspection only
    # ------------------------------------------------------------------
    async def probe(self) -> dict:
        return {
            "transport": "modbus-tcp",
            "host": self.host,
            "port": self.port,
            "device_id": self.device_id,
            "connected": self.connected,
        }
