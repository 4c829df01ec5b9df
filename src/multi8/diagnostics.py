"""Non-fatal diagnostic events raised while executing instructions."""

from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class Diagnostic:
    """A condition the machine recovered from without aborting the step.

    Attributes:
        kind: Short category ("out_of_bounds", "unknown_opcode")
        pc: Address of the instruction that produced it
        opcode: Instruction word
        message: Human readable description
        address: Offending address, if any
    """
    kind: str
    pc: int
    opcode: int
    message: str
    address: Optional[int] = None

    def __str__(self) -> str:
        return f"[{self.kind}] PC=0x{self.pc:03X} OP=0x{self.opcode:04X}: {self.message}"


DiagnosticSink = Callable[[Diagnostic], None]
