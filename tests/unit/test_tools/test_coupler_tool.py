# tests/unit/test_tools/test_coupler_tool.py
"""
Unit tests for the coupler CLI.

Sessions are real CouplerSession objects over a RecordingTransport;
only CouplerSession.connect is patched so no socket is opened.
"""

import argparse
from unittest.mock import AsyncMock, patch

import pytest
import yaml

from coupler_doubles import COUPLER_NAME, FakeModule, build_coupler_transport
from iocoupler.devices.codec import Address
from iocoupler.devices.coupler import CouplerSession, SessionState
from iocoupler.errors import TransportError
from iocoupler.logging_system import EventCategory, EventSeverity
from iocoupler.protocols.modbus.register_map import ADDR_PACKED_PROCESS_OUTPUT_DATA
from tools import coupler_tool
from tools.coupler_tool import CouplerCLI, create_parser, main

CODEC_PATH = "coupler_doubles:DigitalCodec"


# ================================================================
# HELPERS
# ================================================================
def make_args(**kwargs):
    """Create argparse.Namespace with sensible defaults."""
    defaults = {"interval": 0, "cycles": 1}
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


# ================================================================
# FIXTURES
# ================================================================
@pytest.fixture
def transport():
    return build_coupler_transport(modules=[FakeModule.UR20_4DI_P, FakeModule.UR20_4DO_P])


@pytest.fixture
async def cli(transport, codec):
    """CouplerCLI over a discovered session."""
    session = await CouplerSession.open(transport, codec)
    return CouplerCLI(session, codec)


@pytest.fixture
def fake_connect(transport):
    """Patch CouplerSession.connect to open over the recording transport."""
    sessions = []

    async def _connect(host, codec, **kwargs):
        session = await CouplerSession.open(transport, codec)
        sessions.append(session)
        return session

    with patch(
        "tools.coupler_tool.CouplerSession.connect", new=AsyncMock(side_effect=_connect)
    ) as connect:
        connect.sessions = sessions
        yield connect


# ================================================================
# PARSER TESTS
# ================================================================
class TestCreateParser:
    """Test command-line parsing."""

    def test_set_output_args(self):
        """Test set-output positional arguments."""
        args = create_parser().parse_args(["set-output", "3", "2", "true"])

        assert args.command == "set-output"
        assert (args.module, args.channel, args.value) == (3, 2, "true")

    def test_run_args(self):
        """Test run options default to None so config can fill them."""
        args = create_parser().parse_args(["run"])

        assert args.cycles is None
        assert args.interval is None

    def test_connection_overrides(self):
        """Test global connection options."""
        args = create_parser().parse_args(
            ["--host", "10.0.0.5", "--port", "5020", "--device-id", "7", "identity"]
        )

        assert args.host == "10.0.0.5"
        assert args.port == 5020
        assert args.device_id == 7


# ================================================================
# COMMAND TESTS
# ================================================================
class TestCouplerCLICommands:
    """Test each command against a live session."""

    @pytest.mark.asyncio
    async def test_identity(self, cli, capsys):
        assert await cli.identity(make_args()) == 0
        assert capsys.readouterr().out.strip() == COUPLER_NAME

    @pytest.mark.asyncio
    async def test_modules(self, cli, capsys):
        assert await cli.modules(make_args()) == 0

        out = capsys.readouterr().out
        assert "0  UR20_4DI_P" in out
        assert "1  UR20_4DO_P" in out

    @pytest.mark.asyncio
    async def test_inputs_ticks_first(self, cli, transport, capsys):
        """Test inputs are printed after a fresh exchange."""
        transport.input_registers[0x0000] = [0b0001]

        assert await cli.inputs(make_args()) == 0

        out = capsys.readouterr().out
        assert "0/0  True" in out
        assert "0/3  False" in out
        assert cli.session.cycle_count == 1

    @pytest.mark.asyncio
    async def test_set_output(self, cli, transport, capsys):
        """Test the value is parsed, staged and written in one tick."""
        assert await cli.set_output(make_args(module=1, channel=3, value="on")) == 0

        assert transport.writes == [(ADDR_PACKED_PROCESS_OUTPUT_DATA, [0b1000])]
        assert "1/3 = True" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_set_output_is_audited(self, cli):
        """Test operator writes are recorded as audit events."""
        coupler_tool.logger.clear_audit_trail()

        await cli.set_output(make_args(module=1, channel=0, value="true"))

        trail = coupler_tool.logger.get_audit_trail(category=EventCategory.AUDIT)
        assert len(trail) == 1
        assert trail[0].severity is EventSeverity.NOTICE
        assert trail[0].data == {"module": 1, "channel": 0, "value": True}

    @pytest.mark.asyncio
    async def test_outputs(self, cli, capsys):
        cli.session.set_output(Address(1, 1), True)

        assert await cli.outputs(make_args()) == 0
        assert "1/1  True" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_run(self, cli, capsys):
        assert await cli.run(make_args(cycles=4)) == 0

        assert "Completed 4 cycles" in capsys.readouterr().out
        assert cli.session.cycle_count == 4


# ================================================================
# MAIN TESTS
# ================================================================
class TestMain:
    """Test the CLI entry point."""

    @pytest.mark.asyncio
    async def test_no_command(self, tmp_path, capsys):
        """Test help is printed and 1 returned without a command."""
        assert await main(["--config-dir", str(tmp_path)]) == 1

    @pytest.mark.asyncio
    async def test_no_codec(self, tmp_path, capsys):
        """Test a missing codec is reported before connecting."""
        assert await main(["--config-dir", str(tmp_path), "identity"]) == 1

        assert "no device codec configured" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_identity_end_to_end(self, tmp_path, fake_connect, transport, capsys):
        """Test connect, command and disconnect."""
        code = await main(
            ["--config-dir", str(tmp_path), "--codec", CODEC_PATH, "--host", "10.0.0.5", "identity"]
        )

        assert code == 0
        out = capsys.readouterr().out
        assert f"Connected to {COUPLER_NAME}" in out
        assert fake_connect.call_args.args[0] == "10.0.0.5"
        assert fake_connect.sessions[0].state is SessionState.DISCONNECTED
        assert transport.connected is False

    @pytest.mark.asyncio
    async def test_connection_settings_from_config(self, tmp_path, fake_connect):
        """Test host, port and codec come from coupler.yml."""
        (tmp_path / "coupler.yml").write_text(
            yaml.safe_dump(
                {"connection": {"host": "10.1.1.1", "port": 5020}, "codec": CODEC_PATH}
            )
        )

        assert await main(["--config-dir", str(tmp_path), "modules"]) == 0

        args, kwargs = fake_connect.call_args
        assert args[0] == "10.1.1.1"
        assert kwargs["port"] == 5020
        assert kwargs["device_id"] == 1

    @pytest.mark.asyncio
    async def test_run_uses_config_cycles(self, tmp_path, fake_connect, capsys):
        """Test run falls back to the configured cycle settings."""
        (tmp_path / "coupler.yml").write_text(
            yaml.safe_dump({"codec": CODEC_PATH, "cycle": {"interval": 0, "max_cycles": 2}})
        )

        assert await main(["--config-dir", str(tmp_path), "run"]) == 0
        assert "Completed 2 cycles" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_connection_failure(self, tmp_path, capsys):
        """Test transport errors are reported and return 1."""
        with patch(
            "tools.coupler_tool.CouplerSession.connect",
            new=AsyncMock(side_effect=TransportError("Cannot connect to 10.0.0.5:502")),
        ):
            code = await main(["--config-dir", str(tmp_path), "--codec", CODEC_PATH, "identity"])

        assert code == 1
        assert "❌ Error: Cannot connect to 10.0.0.5:502" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_bad_codec_path(self, tmp_path, capsys):
        """Test a malformed codec path is reported."""
        code = await main(["--config-dir", str(tmp_path), "--codec", "no_colon", "identity"])

        assert code == 1
        assert "Codec path must look like" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_invalid_output_value(self, tmp_path, fake_connect, capsys):
        """Test a value the codec rejects is reported, not raised."""
        code = await main(
            ["--config-dir", str(tmp_path), "--codec", CODEC_PATH, "set-output", "1", "0", "17"]
        )

        assert code == 1
        assert "Cannot set output 1/0" in capsys.readouterr().out
