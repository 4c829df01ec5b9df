"""VM: fetch-decode-execute orchestrator for MULTI-8.

This module ties the pipeline together:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE

The VM owns the one VMState and is the synchronization boundary around it.
Instruction steps, timer ticks, key-state writes and framebuffer reads all
happen under the same lock, so an execution thread, a 60 Hz timer thread
and a presenter can share one machine without observing a half-applied
instruction.
"""

import logging
import random
import threading
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, Dict, Iterable, List, Optional, Union

from .config import VMConfig
from .constants import NUM_KEYS, SCREEN_HEIGHT, SCREEN_WIDTH
from .decoder import Instruction, decode, fetch
from .diagnostics import Diagnostic
from .errors import VMError
from .loader import load_program, read_program
from .registry import OpcodeRegistry, get_registry
from .state import VMState, create_initial_state

logger = logging.getLogger(__name__)


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle number (1-indexed, after the step)
        pc: Address the instruction was fetched from
        opcode: Raw instruction word
        instruction: Decoded instruction
        pre_state: State snapshot before execution
        post_state: State snapshot after execution
    """
    cycle: int
    pc: int
    opcode: int
    instruction: Instruction
    pre_state: dict
    post_state: dict

    def format(self) -> str:
        ins = self.instruction
        return (
            f"PC=0x{self.pc:03X} OP=0x{self.opcode:04X} {ins.mnemonic():<16} "
            f"x={ins.x:X} y={ins.y:X} n={ins.n:X} nn=0x{ins.nn:02X} nnn=0x{ins.nnn:03X}"
        )


class VM:
    """MULTI-8 virtual machine.

    Attributes:
        config: VMConfig with runtime options
        state: The machine state
        registry: OpcodeRegistry applying instruction semantics
        diagnostics: Recent non-fatal Diagnostic events
        trace: Recent ExecutionTraceEntry records (trace mode only)
    """

    def __init__(self, config: Optional[VMConfig] = None, rng: Optional[random.Random] = None):
        """Initialize the VM.

        Args:
            config: Runtime options (defaults used if None)
            rng: Random source for RND; random.Random(config.seed) if None
        """
        self.config = (config or VMConfig()).validate()
        self.state: VMState = create_initial_state(
            stack_size=self.config.stack_size,
            seed=self.config.seed,
            rng=rng,
        )
        self.registry: OpcodeRegistry = get_registry(self.config, self._record_diagnostic)
        self.diagnostics: Deque[Diagnostic] = deque(maxlen=self.config.diagnostic_limit)
        self.trace: Deque[ExecutionTraceEntry] = deque(maxlen=self.config.trace_limit)
        self._program: Optional[bytes] = None
        self._lock = threading.RLock()
        self._key_event = threading.Condition(self._lock)

    # =========================================================================
    # Loading and reset
    # =========================================================================

    def load_program(self, data: bytes) -> int:
        """Load a program image at 0x200.

        Returns:
            Number of bytes loaded

        Raises:
            ProgramLoadError: If the image does not fit
        """
        with self._lock:
            size = load_program(self.state, data)
            self._program = bytes(data)
            return size

    def load_rom(self, path: Union[str, Path]) -> int:
        """Read a ROM file and load it.

        Raises:
            ProgramLoadError: If the file cannot be read or does not fit
        """
        return self.load_program(read_program(path))

    def reset(self, reload_program: bool = False) -> None:
        """Return the machine to its power-on configuration.

        Args:
            reload_program: Load the last program image again after resetting
        """
        with self._lock:
            self.state.reset()
            self.diagnostics.clear()
            self.trace.clear()
            if reload_program and self._program is not None:
                load_program(self.state, self._program)
            logger.info("VM reset" + (" (program reloaded)" if reload_program and self._program else ""))
            self._key_event.notify_all()

    # =========================================================================
    # Execution
    # =========================================================================

    def step(self) -> Optional[ExecutionTraceEntry]:
        """Execute a single instruction cycle.

        Performs: FETCH -> DECODE -> EXECUTE

        Returns:
            ExecutionTraceEntry when trace mode is on, otherwise None

        Raises:
            OutOfBoundsError: Fetch or memory-indexed access out of range
            StackOverflowError, StackUnderflowError: Call/return misuse
        """
        with self._lock:
            state = self.state
            pc = state.pc
            pre_state = state.snapshot() if self.config.trace else None

            word = fetch(state)
            instruction = decode(word)
            try:
                self.registry.execute(state, instruction)
            except VMError:
                # Leave PC on the faulting instruction
                state.pc = pc
                raise
            state.cycle_count += 1

            if not self.config.trace:
                return None

            entry = ExecutionTraceEntry(
                cycle=state.cycle_count,
                pc=pc,
                opcode=word,
                instruction=instruction,
                pre_state=pre_state,
                post_state=state.snapshot(),
            )
            self.trace.append(entry)
            logger.debug(entry.format())
            return entry

    def run(self, max_cycles: Optional[int] = None) -> int:
        """Step the machine synchronously.

        Stops after max_cycles steps or when the machine suspends on Fx0A.

        Args:
            max_cycles: Step limit (config.max_cycles if None)

        Returns:
            Number of steps executed

        Raises:
            ValueError: If no limit is given here or in the config
        """
        limit = max_cycles if max_cycles is not None else self.config.max_cycles
        if limit is None:
            raise ValueError("run() needs max_cycles (argument or config)")

        executed = 0
        while executed < limit:
            self.step()
            executed += 1
            if self.is_waiting_for_key():
                break
        return executed

    def tick_timers(self) -> None:
        """Decrement delay and sound timers toward zero (one 60 Hz tick)."""
        with self._lock:
            if self.state.delay_timer > 0:
                self.state.delay_timer -= 1
            if self.state.sound_timer > 0:
                self.state.sound_timer -= 1

    # =========================================================================
    # Input
    # =========================================================================

    def _check_key(self, key: int) -> None:
        if not 0 <= key < NUM_KEYS:
            raise ValueError(f"Invalid key: {key}")

    def press_key(self, key: int) -> None:
        """Mark a key as pressed.

        If the machine is suspended on Fx0A the key completes that
        instruction: it is stored in the waiting register and PC moves past it.
        """
        self._check_key(key)
        with self._lock:
            state = self.state
            state.keys[key] = True
            if state.waiting_for_key is not None:
                state.registers[state.waiting_for_key] = key
                state.waiting_for_key = None
                state.pc = (state.pc + 2) & 0xFFFF
            self._key_event.notify_all()

    def release_key(self, key: int) -> None:
        self._check_key(key)
        with self._lock:
            self.state.keys[key] = False

    def set_keys(self, pressed: Iterable[int]) -> None:
        """Replace the key state with the given set of pressed keys."""
        pressed = set(pressed)
        for key in pressed:
            self._check_key(key)
        with self._lock:
            for key in range(NUM_KEYS):
                if key in pressed and not self.state.keys[key]:
                    self.press_key(key)
                elif key not in pressed:
                    self.release_key(key)

    def is_waiting_for_key(self) -> bool:
        with self._lock:
            return self.state.waiting_for_key is not None

    def wait_for_key(self, timeout: Optional[float] = None,
                     cancel: Optional[threading.Event] = None) -> bool:
        """Block while the machine is suspended on Fx0A.

        Only the calling (execution) thread blocks; timers, key writes and
        framebuffer reads stay available.

        Args:
            timeout: Seconds to wait at most (None = forever)
            cancel: Event that aborts the wait when set

        Returns:
            True once the machine is no longer waiting, False on timeout
            or cancellation
        """
        poll = 0.05
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            while self.state.waiting_for_key is not None:
                if cancel is not None and cancel.is_set():
                    return False
                interval = poll
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return False
                    interval = min(poll, remaining)
                self._key_event.wait(interval)
            return True

    # =========================================================================
    # Presentation
    # =========================================================================

    def framebuffer_snapshot(self) -> bytes:
        """Copy of the framebuffer taken between instruction steps."""
        with self._lock:
            return bytes(self.state.framebuffer)

    def render_text(self, on: str = "#", off: str = ".") -> str:
        """Render the framebuffer as SCREEN_HEIGHT lines of text."""
        pixels = self.framebuffer_snapshot()
        lines = []
        for y in range(SCREEN_HEIGHT):
            row = pixels[y * SCREEN_WIDTH:(y + 1) * SCREEN_WIDTH]
            lines.append("".join(on if p else off for p in row))
        return "\n".join(lines)

    # =========================================================================
    # Diagnostics and inspection
    # =========================================================================

    def _record_diagnostic(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)
        logger.warning(str(diagnostic))

    def get_register(self, x: int) -> int:
        with self._lock:
            return self.state.get_register(x)

    def dump_registers(self) -> Dict[str, int]:
        with self._lock:
            return self.state.dump_registers()

    def get_pc(self) -> int:
        with self._lock:
            return self.state.pc

    def get_cycle_count(self) -> int:
        with self._lock:
            return self.state.cycle_count

    def format_trace(self) -> str:
        """Format the execution trace, one line per step."""
        lines: List[str] = [f"[{entry.cycle:>6}] {entry.format()}" for entry in self.trace]
        return "\n".join(lines)

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        with self._lock:
            return {
                "cycles": self.state.cycle_count,
                "pc": self.state.pc,
                "registers": self.state.dump_registers(),
                "waiting_for_key": self.state.waiting_for_key is not None,
                "lit_pixels": sum(self.state.framebuffer),
                "trace_length": len(self.trace),
                "diagnostics": [str(d) for d in self.diagnostics],
            }
