"""Program and font loading for MULTI-8.

The font table is installed once per initialization (and again on reset) at
FONT_START. Program images are copied verbatim into memory from
PROGRAM_START; images larger than the program region are rejected instead
of silently overrunning memory.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Union

from .constants import FONT_DATA, FONT_START, MAX_PROGRAM_SIZE, PROGRAM_START
from .errors import ProgramLoadError

if TYPE_CHECKING:
    from .state import VMState

logger = logging.getLogger(__name__)


def load_font(state: "VMState") -> None:
    """Install the hexadecimal digit glyphs at FONT_START."""
    state.memory[FONT_START:FONT_START + len(FONT_DATA)] = FONT_DATA


def load_program(state: "VMState", data: bytes) -> int:
    """Copy a program image into memory at PROGRAM_START.

    Args:
        state: Machine state to write into
        data: Raw program bytes

    Returns:
        Number of bytes written

    Raises:
        ProgramLoadError: If the image does not fit the program region
    """
    size = len(data)
    if size > MAX_PROGRAM_SIZE:
        raise ProgramLoadError(
            f"Program too large: {size} bytes (maximum {MAX_PROGRAM_SIZE})"
        )
    state.memory[PROGRAM_START:PROGRAM_START + size] = bytes(data)
    logger.info(f"Loaded program: {size} bytes at 0x{PROGRAM_START:03X}")
    return size


def read_program(path: Union[str, Path]) -> bytes:
    """Read a program image from disk.

    Raises:
        ProgramLoadError: If the file cannot be read
    """
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise ProgramLoadError(f"Cannot read program {path}: {e}") from e
