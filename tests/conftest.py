# tests/conftest.py
"""Shared pytest fixtures for coupler tests.

The transport and codec doubles live in coupler_doubles.py so test modules
can import the module enum and helpers directly.
"""

import pytest

from coupler_doubles import DigitalCodec, build_coupler_transport


# ----------------------------------------------------------------
# Codec fixtures
# ----------------------------------------------------------------
@pytest.fixture
def codec():
    """Fresh DigitalCodec; created states are kept in codec.states."""
    return DigitalCodec()


# ----------------------------------------------------------------
# Transport fixtures
# ----------------------------------------------------------------
@pytest.fixture
def coupler_transport():
    """Factory for a RecordingTransport pre-loaded with discovery registers.

    Returns:
        build_coupler_transport, taking a module list and image lengths in bits
    """
    return build_coupler_transport
