#!/usr/bin/env python3
# tools/coupler_tool.py
"""
Coupler CLI - connect, inspect and drive a fieldbus coupler.

Reads connection settings from config/coupler.yml; command-line options
override them. The device codec is given as "package.module:attribute".
"""

import argparse
import asyncio
import sys

from iocoupler.config_loader import ConfigLoader
from iocoupler.devices.codec import Address, load_codec
from iocoupler.devices.coupler import CouplerSession
from iocoupler.errors import CouplerError
from iocoupler.logging_system import EventCategory, EventSeverity, configure_logging, get_logger

logger = get_logger(__name__)


class CouplerCLI:
    """Runs one command against a connected session."""

    def __init__(self, session: CouplerSession, codec):
        self.session = session
        self.codec = codec

    async def identity(self, args):
        print(await self.session.identity())
        return 0

    async def modules(self, args):
        for index, module in enumerate(self.session.modules()):
            print(f"{index:3d}  {getattr(module, 'name', module)}")
        return 0

    async def inputs(self, args):
        await self.session.tick()
        self._print_channels(self.session.inputs())
        return 0

    async def outputs(self, args):
        await self.session.tick()
        self._print_channels(self.session.outputs())
        return 0

    async def set_output(self, args):
        address = Address(module=args.module, channel=args.channel)
        value = self.codec.parse_channel_value(args.value)
        self.session.set_output(address, value)
        await self.session.tick()
        logger.log_event(
            EventSeverity.NOTICE,
            EventCategory.AUDIT,
            f"Operator set {address} = {value!r}",
            data={"module": address.module, "channel": address.channel, "value": value},
        )
        print(f"{address} = {value!r}")
        return 0

    async def run(self, args):
        completed = await self.session.run(args.interval, max_cycles=args.cycles)
        print(f"Completed {completed} cycles")
        return 0

    @staticmethod
    def _print_channels(channels):
        for address in sorted(channels):
            print(f"{str(address):>8s}  {channels[address]!r}")


def create_parser():
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(
        description="Coupler CLI - discovery and cyclic I/O exchange",
        epilog="""
Examples:
  # Show the coupler identity
  python tools/coupler_tool.py --host 192.168.0.222 --codec mycodecs.ur20:Codec identity

  # Switch on channel 2 of module 3
  python tools/coupler_tool.py set-output 3 2 true

  # Run 100 I/O cycles, 50 ms apart
  python tools/coupler_tool.py run --cycles 100 --interval 0.05
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--config-dir", default="config", help="Directory holding coupler.yml")
    parser.add_argument("--host", help="Coupler host (overrides config)")
    parser.add_argument("--port", type=int, help="Modbus TCP port (overrides config)")
    parser.add_argument("--device-id", type=int, help="Modbus unit id (overrides config)")
    parser.add_argument("--codec", help="Device codec as package.module:attribute")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("identity", help="Read the coupler identity")
    subparsers.add_parser("modules", help="List detected modules")
    subparsers.add_parser("inputs", help="Tick once and print input channels")
    subparsers.add_parser("outputs", help="Tick once and print output channels")

    set_parser = subparsers.add_parser("set-output", help="Set one output channel and tick")
    set_parser.add_argument("module", type=int, help="Module index")
    set_parser.add_argument("channel", type=int, help="Channel index")
    set_parser.add_argument("value", help="Value, e.g. true, false, 42, 0x10")

    run_parser = subparsers.add_parser("run", help="Run the cyclic exchange")
    run_parser.add_argument("--cycles", type=int, help="Number of cycles (default: config)")
    run_parser.add_argument("--interval", type=float, help="Seconds between cycles (default: config)")

    return parser


async def main(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    config = ConfigLoader(config_dir=args.config_dir).load_all()
    connection = config["connection"]
    configure_logging(log_dir=config["logging"]["log_dir"], level=config["logging"]["level"])

    codec_path = args.codec or config["codec"]
    if not codec_path:
        print("❌ Error: no device codec configured (use --codec or set 'codec' in coupler.yml)")
        return 1

    if args.command == "run":
        if args.cycles is None:
            args.cycles = config["cycle"]["max_cycles"]
        if args.interval is None:
            args.interval = config["cycle"]["interval"]

    handlers = {
        "identity": CouplerCLI.identity,
        "modules": CouplerCLI.modules,
        "inputs": CouplerCLI.inputs,
        "outputs": CouplerCLI.outputs,
        "set-output": CouplerCLI.set_output,
        "run": CouplerCLI.run,
    }

    try:
        codec = load_codec(codec_path)
        session = await CouplerSession.connect(
            args.host or connection["host"],
            codec,
            port=args.port or connection["port"],
            device_id=args.device_id or connection["device_id"],
            timeout=connection["timeout"],
            retries=connection["retries"],
        )
        print(f"Connected to {session.coupler_id}")
        async with session:
            return await handlers[args.command](CouplerCLI(session, codec), args)

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130
    except (CouplerError, ImportError, ValueError) as e:
        print(f"❌ Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
