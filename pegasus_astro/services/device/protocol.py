"""
PPBA Serial Protocol Codec

Frames are ASCII mnemonics rendered from fixed numeric command codes:

- Request: hex(command) [+ hex(utf-8 value)] + "\\n"
- Response: colon-delimited ASCII text terminated by "\\r\\n"
- Rejection: a response whose second field is "ERR" (e.g. "P2:ERR")
"""

from enum import IntEnum

from pegasus_astro.common.exceptions import ComError, InvalidValueError

TERMINATOR = b"\n"
RESPONSE_SUFFIX_LEN = 2  # "\r\n"
FIELD_SEPARATOR = ":"
ERROR_SENTINEL = "ERR"


class Command(IntEnum):
    """Serial command codes (the hex bytes of the ASCII mnemonic)"""
    STATUS = 0x5023                 # P#
    FIRMWARE_VERSION = 0x5056       # PV
    POWER_CONSUMPTION_STATS = 0x5053  # PS
    POWER_METRICS = 0x5043          # PC
    POWER_SENSOR_READINGS = 0x5041  # PA
    QUAD_PORT_STATUS = 0x50313A     # P1:
    ADJUSTABLE_OUTPUT = 0x50323A    # P2:
    DEW_A_POWER = 0x50333A          # P3:
    DEW_B_POWER = 0x50343A          # P4:
    POWER_STATUS_ON_BOOT = 0x50453A  # PE:
    REBOOT = 0x5046                 # PF

    @property
    def mnemonic(self) -> str:
        return bytes.fromhex(f"{self.value:X}").decode("ascii")


def encode(command: int, value: str | None = None) -> bytes:
    """
    Build a request frame.

    Args:
        command: Numeric command code (see Command)
        value: Optional argument appended after the mnemonic

    Returns:
        Frame bytes terminated by a newline
    """
    hex_command = f"{command:X}"
    if value is not None:
        hex_command += value.encode("utf-8").hex()
    return bytes.fromhex(hex_command) + TERMINATOR


def decode(raw: bytes) -> str:
    """
    Turn an accumulated response buffer into its text.

    Raises:
        ComError: buffer is not a terminated ASCII frame
        InvalidValueError: device answered with the ERR sentinel
    """
    if len(raw) < RESPONSE_SUFFIX_LEN or not raw.endswith(TERMINATOR):
        raise ComError(f"Incomplete frame: {raw!r}")

    try:
        response = raw[:-RESPONSE_SUFFIX_LEN].decode("ascii")
    except UnicodeDecodeError as e:
        raise ComError(f"Undecodable frame: {raw!r}") from e

    fields = response.split(FIELD_SEPARATOR)
    if len(fields) > 1 and fields[1] == ERROR_SENTINEL:
        raise InvalidValueError(f"Device rejected command: {response}", value=response)

    return response


def split_fields(response: str) -> list[str]:
    """Return the response fields that follow the leading mnemonic"""
    return response.split(FIELD_SEPARATOR)[1:]
