# iocoupler/protocols/modbus/register_map.py
"""
Published register layout of the Modbus TCP fieldbus coupler.

The addresses below are the coupler's bookkeeping registers as documented for
the UR20-FBC-MOD-TCP. A device codec may hand out a different RegisterMap
when talking to a coupler with a shifted layout.
"""

from dataclasses import dataclass

__all__ = [
    "ADDR_PACKED_PROCESS_INPUT_DATA",
    "ADDR_PACKED_PROCESS_OUTPUT_DATA",
    "ADDR_COUPLER_ID",
    "ADDR_PROCESS_OUTPUT_LEN",
    "ADDR_PROCESS_INPUT_LEN",
    "ADDR_CURRENT_MODULE_COUNT",
    "ADDR_CURRENT_MODULE_LIST",
    "ADDR_MODULE_OFFSETS",
    "ADDR_MODULE_PARAMETERS",
    "COUPLER_ID_REGISTER_COUNT",
    "RegisterMap",
    "DEFAULT_REGISTER_MAP",
    "register_count_for_bits",
]

# ----------------------------------------------------------------
# Process data
# ----------------------------------------------------------------
ADDR_PACKED_PROCESS_INPUT_DATA = 0x0000
ADDR_PACKED_PROCESS_OUTPUT_DATA = 0x0800

# ----------------------------------------------------------------
# Coupler bookkeeping
# ----------------------------------------------------------------
ADDR_COUPLER_ID = 0x1000
ADDR_PROCESS_OUTPUT_LEN = 0x1010  # bits
ADDR_PROCESS_INPUT_LEN = 0x1011  # bits
ADDR_CURRENT_MODULE_COUNT = 0x27FE
ADDR_CURRENT_MODULE_LIST = 0x2A00  # two registers per module
ADDR_MODULE_OFFSETS = 0x2B00  # two registers per module
ADDR_MODULE_PARAMETERS = 0xC000

COUPLER_ID_REGISTER_COUNT = 7

MAX_BIT_LENGTH = 0xFFFF


@dataclass(frozen=True)
class RegisterMap:
    """Base addresses used by discovery and the cyclic exchange."""

    process_input_data: int = ADDR_PACKED_PROCESS_INPUT_DATA
    process_output_data: int = ADDR_PACKED_PROCESS_OUTPUT_DATA
    coupler_id: int = ADDR_COUPLER_ID
    coupler_id_length: int = COUPLER_ID_REGISTER_COUNT
    process_output_len: int = ADDR_PROCESS_OUTPUT_LEN
    process_input_len: int = ADDR_PROCESS_INPUT_LEN
    current_module_count: int = ADDR_CURRENT_MODULE_COUNT
    current_module_list: int = ADDR_CURRENT_MODULE_LIST
    module_offsets: int = ADDR_MODULE_OFFSETS
    module_parameters: int = ADDR_MODULE_PARAMETERS


DEFAULT_REGISTER_MAP = RegisterMap()


def register_count_for_bits(bits: int) -> int:
    """
    Number of 16-bit registers needed to hold a process image of ``bits``.

    The image is packed byte-wise first, then the bytes are packed into
    words, so 9 bits need 2 bytes and therefore 1 register.

    Args:
        bits: Process image length in bits (0-65535)

    Returns:
        Register count (0 for an empty image)

    Raises:
        ValueError: If bits does not fit in a 16-bit register
    """
    if not 0 <= bits <= MAX_BIT_LENGTH:
        raise ValueError(f"Process image length out of range: {bits}")

    byte_count = (bits + 7) // 8
    return (byte_count + 1) // 2
