"""MULTI-8: an interpreter for the CHIP-8 bytecode family.

This package holds the machine state of an 8-bit virtual machine (memory,
registers, stack, timers, a 64x32 monochrome framebuffer) and executes one
instruction per step against a fixed 35-instruction opcode table.

Architecture:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE
               |         |        |        |
           [PC += 2] [x,y,n,nn,nnn] [OP_*] [Frozen primitives]

Modules:
    state: VMState, the single mutable machine document
    loader: Font table and program image loading
    decoder: Instruction fetch and field decoding
    registry: OpcodeRegistry with the instruction semantics
    sprite: Collision-detecting sprite blit
    vm: VM orchestrator and synchronization boundary
    driver: Runner threads for execution and 60 Hz timers
    config: VMConfig runtime options
    errors: ProgramLoadError, OutOfBoundsError, StackOverflowError, StackUnderflowError
"""

__version__ = "0.1.0"
__author__ = "MULTI-8 Project"

from .config import VMConfig
from .errors import (
    VMError,
    ProgramLoadError,
    OutOfBoundsError,
    StackError,
    StackOverflowError,
    StackUnderflowError,
)
from .state import VMState, create_initial_state
from .decoder import Instruction, decode, fetch, disassemble
from .registry import OpcodeRegistry, get_registry
from .diagnostics import Diagnostic
from .vm import VM, ExecutionTraceEntry
from .driver import Runner, run_headless

__all__ = [
    "VMConfig",
    "VMError",
    "ProgramLoadError",
    "OutOfBoundsError",
    "StackError",
    "StackOverflowError",
    "StackUnderflowError",
    "VMState",
    "create_initial_state",
    "Instruction",
    "decode",
    "fetch",
    "disassemble",
    "OpcodeRegistry",
    "get_registry",
    "Diagnostic",
    "VM",
    "ExecutionTraceEntry",
    "Runner",
    "run_headless",
]
