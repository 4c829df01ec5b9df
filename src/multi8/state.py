"""VMState: the mutable machine document for MULTI-8.

This module defines the single state object that every other component
operates on. It is created once, mutated in place by the dispatcher, and
returned to its power-on configuration by reset() without reallocating any
of its buffers.

State Components:
    - Memory: 64 KiB byte array (0x000-0xFFF architecturally meaningful)
    - Registers: V0-VF (8-bit), VF doubling as the flag register
    - Index: I (16-bit)
    - Stack: fixed-capacity list of return addresses plus stack pointer
    - PC: program counter, 0x200 at power-on
    - Timers: delay and sound (8-bit)
    - Framebuffer: 64x32 single-bit pixels, row-major
    - Keys: 16 pressed/released flags
    - Random source: injectable random.Random
"""

import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .constants import (
    DEFAULT_STACK_SIZE,
    MEMORY_SIZE,
    NUM_KEYS,
    NUM_REGISTERS,
    PROGRAM_START,
    SCREEN_HEIGHT,
    SCREEN_SIZE,
    SCREEN_WIDTH,
)
from .errors import StackOverflowError, StackUnderflowError
from .loader import load_font


def xy_to_index(x: int, y: int) -> int:
    """Convert screen coordinates to a framebuffer index."""
    return y * SCREEN_WIDTH + x


def index_to_xy(index: int) -> Tuple[int, int]:
    """Convert a framebuffer index to screen coordinates."""
    return index % SCREEN_WIDTH, index // SCREEN_WIDTH


@dataclass
class VMState:
    """Mutable machine state.

    Attributes:
        memory: Main memory (MEMORY_SIZE bytes)
        registers: General purpose registers V0-VF
        index: Index register I
        stack: Return address stack (fixed capacity)
        sp: Stack pointer (number of occupied stack slots)
        pc: Program counter
        delay_timer: Delay timer, decremented at 60 Hz by the driver
        sound_timer: Sound timer, decremented at 60 Hz by the driver
        framebuffer: SCREEN_SIZE cells, 1 = lit
        keys: Key pressed flags for keys 0x0-0xF
        rng: Random source used by RND
        seed: Seed the random source is reset to (None = leave as is)
        waiting_for_key: Register index awaiting a key press (Fx0A), or None
        cycle_count: Number of executed instructions
    """
    memory: bytearray = field(default_factory=lambda: bytearray(MEMORY_SIZE))
    registers: bytearray = field(default_factory=lambda: bytearray(NUM_REGISTERS))
    index: int = 0
    stack: List[int] = field(default_factory=lambda: [0] * DEFAULT_STACK_SIZE)
    sp: int = 0
    pc: int = PROGRAM_START
    delay_timer: int = 0
    sound_timer: int = 0
    framebuffer: bytearray = field(default_factory=lambda: bytearray(SCREEN_SIZE))
    keys: List[bool] = field(default_factory=lambda: [False] * NUM_KEYS)
    rng: random.Random = field(default_factory=random.Random)
    seed: Optional[int] = None
    waiting_for_key: Optional[int] = None
    cycle_count: int = 0

    @property
    def stack_capacity(self) -> int:
        return len(self.stack)

    def reset(self) -> None:
        """Return to the power-on configuration in place.

        Memory, registers, stack, framebuffer and keys are cleared without
        reallocating, the font is reinstalled and PC is set to 0x200.
        """
        self.memory[:] = bytes(len(self.memory))
        self.registers[:] = bytes(len(self.registers))
        self.framebuffer[:] = bytes(len(self.framebuffer))
        for i in range(len(self.stack)):
            self.stack[i] = 0
        for i in range(len(self.keys)):
            self.keys[i] = False
        self.index = 0
        self.sp = 0
        self.pc = PROGRAM_START
        self.delay_timer = 0
        self.sound_timer = 0
        self.waiting_for_key = None
        self.cycle_count = 0
        if self.seed is not None:
            self.rng.seed(self.seed)
        load_font(self)

    # =========================================================================
    # Checked stack
    # =========================================================================

    def push(self, address: int) -> None:
        """Push a return address.

        Raises:
            StackOverflowError: If the stack is full
        """
        if self.sp >= self.stack_capacity:
            raise StackOverflowError(self.sp, self.stack_capacity)
        self.stack[self.sp] = address & 0xFFFF
        self.sp += 1

    def pop(self) -> int:
        """Pop the most recent return address.

        Raises:
            StackUnderflowError: If the stack is empty
        """
        if self.sp <= 0:
            raise StackUnderflowError(self.sp, self.stack_capacity)
        self.sp -= 1
        return self.stack[self.sp]

    # =========================================================================
    # Accessors
    # =========================================================================

    def get_register(self, x: int) -> int:
        """Get value of register Vx.

        Raises:
            IndexError: If x is not in 0x0-0xF
        """
        return self.registers[x]

    def set_register(self, x: int, value: int) -> None:
        """Set register Vx, truncating the value to 8 bits."""
        self.registers[x] = value & 0xFF

    def read_byte(self, address: int) -> int:
        return self.memory[address]

    def write_byte(self, address: int, value: int) -> None:
        self.memory[address] = value & 0xFF

    def pixel(self, x: int, y: int) -> int:
        """Get the framebuffer cell at (x, y)."""
        return self.framebuffer[xy_to_index(x, y)]

    def snapshot(self) -> dict:
        """Create a copy of the current state for tracing.

        Returns:
            Dictionary with copies of all state components except memory
        """
        return {
            "registers": list(self.registers),
            "index": self.index,
            "pc": self.pc,
            "sp": self.sp,
            "stack": list(self.stack[:self.sp]),
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "waiting_for_key": self.waiting_for_key,
            "cycle_count": self.cycle_count,
            # Note: memory and framebuffer excluded for size
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Buffer sizes match the machine layout
            - Registers, timers are 8-bit; PC, I and stack entries 16-bit
            - Stack pointer is within [0, capacity]

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.memory) != MEMORY_SIZE:
            return False
        if len(self.registers) != NUM_REGISTERS:
            return False
        if len(self.framebuffer) != SCREEN_SIZE:
            return False
        if len(self.keys) != NUM_KEYS:
            return False

        if not 0 <= self.pc <= 0xFFFF:
            return False
        if not 0 <= self.index <= 0xFFFF:
            return False
        if not 0 <= self.sp <= self.stack_capacity:
            return False
        if any(not 0 <= addr <= 0xFFFF for addr in self.stack):
            return False

        for timer in (self.delay_timer, self.sound_timer):
            if not 0 <= timer <= 0xFF:
                return False

        if self.cycle_count < 0:
            return False

        return True

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values.

        Returns:
            Dictionary of register names (V0-VF, I, PC, SP, DT, ST) to values
        """
        regs = {f"V{i:X}": v for i, v in enumerate(self.registers)}
        regs.update({
            "I": self.index,
            "PC": self.pc,
            "SP": self.sp,
            "DT": self.delay_timer,
            "ST": self.sound_timer,
        })
        return regs

    def __str__(self) -> str:
        """Human-readable state representation."""
        regs = " ".join(f"V{i:X}={v:02X}" for i, v in enumerate(self.registers))
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc:03X} I={self.index:03X} "
            f"SP={self.sp} DT={self.delay_timer} ST={self.sound_timer} {regs}"
        )


def create_initial_state(
    stack_size: int = DEFAULT_STACK_SIZE,
    seed: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> VMState:
    """Create a power-on machine state with the font installed.

    Args:
        stack_size: Call stack capacity
        seed: Seed for the random source (also applied on every reset)
        rng: Explicit random source; a new random.Random(seed) if omitted,
            which draws from operating-system entropy when seed is None

    Returns:
        Fresh VMState
    """
    if rng is None:
        rng = random.Random(seed)
    elif seed is not None:
        rng.seed(seed)
    state = VMState(stack=[0] * stack_size, rng=rng, seed=seed)
    load_font(state)
    return state
