"""Error types raised by the MULTI-8 core.

Every failure the machine can report belongs to one of three kinds:

    ProgramLoadError: a program image could not be read or does not fit
    OutOfBoundsError: a computed memory or framebuffer index is out of range
    StackError: call depth exceeded (overflow) or return without call (underflow)

All of them derive from VMError so a driver can catch the whole family.
"""

from typing import Optional


class VMError(Exception):
    """Base class for all machine errors."""


class ProgramLoadError(VMError):
    """A program image could not be read or loaded into memory."""


class OutOfBoundsError(VMError):
    """A computed address falls outside its valid range.

    Attributes:
        address: The offending address or index
        limit: Exclusive upper bound that was violated
        region: Name of the region being accessed ("memory", "framebuffer")
    """

    def __init__(self, address: int, limit: int, region: str = "memory", message: Optional[str] = None):
        self.address = address
        self.limit = limit
        self.region = region
        if message is None:
            message = f"{region} access out of bounds: 0x{address:04X} (limit 0x{limit:04X})"
        super().__init__(message)


class StackError(VMError):
    """Checked stack operation failed.

    Attributes:
        sp: Stack pointer at the time of the failure
        capacity: Stack capacity
    """

    def __init__(self, message: str, sp: int, capacity: int):
        self.sp = sp
        self.capacity = capacity
        super().__init__(message)


class StackOverflowError(StackError):
    """CALL with a full stack."""

    def __init__(self, sp: int, capacity: int):
        super().__init__(f"Stack overflow: depth {sp} reached capacity {capacity}", sp, capacity)


class StackUnderflowError(StackError):
    """RET with an empty stack."""

    def __init__(self, sp: int, capacity: int):
        super().__init__(f"Stack underflow: return with empty stack (capacity {capacity})", sp, capacity)
