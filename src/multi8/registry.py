"""OpcodeRegistry: the instruction semantics of MULTI-8.

This module implements the registry pattern for machine operations: each
operation key emitted by the decoder maps to one primitive that applies the
instruction's effect to the state in place. The registry is frozen after
construction so the opcode table cannot change at runtime.

Registry Keys:
    OP_SYS: Machine code call (ignored)
    OP_CLS: Clear the framebuffer
    OP_RET / OP_CALL / OP_JP / OP_JP_V0: Control flow
    OP_SE_IMM / OP_SNE_IMM / OP_SE_REG / OP_SNE_REG: Conditional skips
    OP_SKP / OP_SKNP: Skip on key state
    OP_LD_IMM / OP_ADD_IMM: Immediate load and add (no flag)
    OP_LD_REG / OP_OR / OP_AND / OP_XOR: Register moves and bitwise ops
    OP_ADD_REG / OP_SUB / OP_SUBN / OP_SHR / OP_SHL: Arithmetic with VF flag
    OP_LD_I / OP_ADD_I / OP_LD_F: Index register
    OP_RND: Random byte masked with nn
    OP_DRW: Sprite blit with collision flag
    OP_LD_VX_DT / OP_LD_DT / OP_LD_ST: Timers
    OP_LD_K: Wait for a key press
    OP_BCD / OP_STORE / OP_LOAD: Memory transfers at I
    OP_UNKNOWN: Undefined instruction word (no-op, reported)

Each primitive has the signature (VMState, Instruction) -> None. The
program counter has already been advanced past the instruction when a
primitive runs.
"""

import logging
from typing import Callable, Dict, List, Optional, Set

from .config import BOUNDS_POLICIES, KEY_WAIT_MODES, VMConfig
from .constants import ADDRESS_LIMIT, FLAG_REGISTER, GLYPH_SIZE, FONT_START
from .decoder import Instruction
from .diagnostics import Diagnostic, DiagnosticSink
from .errors import OutOfBoundsError
from .sprite import draw_sprite
from .state import VMState

logger = logging.getLogger(__name__)

Primitive = Callable[[VMState, Instruction], None]


class OpcodeRegistry:
    """Frozen table of instruction primitives.

    Attributes:
        bounds_policy: "raise" or "wrap" for memory-indexed instructions
        key_wait: "suspend" or "ignore" for Fx0A
        on_diagnostic: Callback receiving non-fatal Diagnostic events
    """

    def __init__(
        self,
        bounds_policy: str = "raise",
        key_wait: str = "suspend",
        on_diagnostic: Optional[DiagnosticSink] = None,
    ):
        """Initialize registry with all primitives and freeze it.

        Raises:
            ValueError: If a policy name is not recognised
        """
        if bounds_policy not in BOUNDS_POLICIES:
            raise ValueError(f"Unknown bounds policy: {bounds_policy!r}")
        if key_wait not in KEY_WAIT_MODES:
            raise ValueError(f"Unknown key wait mode: {key_wait!r}")
        self.bounds_policy = bounds_policy
        self.key_wait = key_wait
        self.on_diagnostic = on_diagnostic
        self._primitives: Dict[str, Primitive] = {}
        self._frozen = False
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        """Register all instruction primitives."""
        # Display and control flow
        self.register("OP_SYS", self._op_sys)
        self.register("OP_CLS", self._op_cls)
        self.register("OP_RET", self._op_ret)
        self.register("OP_JP", self._op_jp)
        self.register("OP_CALL", self._op_call)
        self.register("OP_JP_V0", self._op_jp_v0)

        # Conditional skips
        self.register("OP_SE_IMM", self._op_se_imm)
        self.register("OP_SNE_IMM", self._op_sne_imm)
        self.register("OP_SE_REG", self._op_se_reg)
        self.register("OP_SNE_REG", self._op_sne_reg)
        self.register("OP_SKP", self._op_skp)
        self.register("OP_SKNP", self._op_sknp)

        # Register loads and arithmetic
        self.register("OP_LD_IMM", self._op_ld_imm)
        self.register("OP_ADD_IMM", self._op_add_imm)
        self.register("OP_LD_REG", self._op_ld_reg)
        self.register("OP_OR", self._op_or)
        self.register("OP_AND", self._op_and)
        self.register("OP_XOR", self._op_xor)
        self.register("OP_ADD_REG", self._op_add_reg)
        self.register("OP_SUB", self._op_sub)
        self.register("OP_SHR", self._op_shr)
        self.register("OP_SUBN", self._op_subn)
        self.register("OP_SHL", self._op_shl)
        self.register("OP_RND", self._op_rnd)

        # Index register
        self.register("OP_LD_I", self._op_ld_i)
        self.register("OP_ADD_I", self._op_add_i)
        self.register("OP_LD_F", self._op_ld_f)

        # Drawing
        self.register("OP_DRW", self._op_drw)

        # Timers and input
        self.register("OP_LD_VX_DT", self._op_ld_vx_dt)
        self.register("OP_LD_DT", self._op_ld_dt)
        self.register("OP_LD_ST", self._op_ld_st)
        self.register("OP_LD_K", self._op_ld_k)

        # Memory transfers
        self.register("OP_BCD", self._op_bcd)
        self.register("OP_STORE", self._op_store)
        self.register("OP_LOAD", self._op_load)

        self.register("OP_UNKNOWN", self._op_unknown)

    def register(self, key: str, handler: Primitive) -> None:
        """Register a primitive operation.

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if key in self._primitives:
            raise ValueError(f"Primitive already registered: {key}")
        self._primitives[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        return self._frozen

    def get_valid_keys(self) -> Set[str]:
        return set(self._primitives.keys())

    def execute(self, state: VMState, instruction: Instruction) -> None:
        """Apply a decoded instruction to the state.

        Raises:
            KeyError: If the instruction key is not registered
            OutOfBoundsError: Memory-indexed access out of range ("raise" policy)
            StackOverflowError, StackUnderflowError: Checked stack failures
        """
        if instruction.key not in self._primitives:
            raise KeyError(f"Unknown operation key: {instruction.key}")
        self._primitives[instruction.key](state, instruction)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _report(self, state: VMState, ins: Instruction, kind: str, message: str,
                address: Optional[int] = None) -> None:
        # PC already points past the instruction
        diagnostic = Diagnostic(kind, (state.pc - 2) & 0xFFFF, ins.raw, message, address)
        if self.on_diagnostic is not None:
            self.on_diagnostic(diagnostic)
        else:
            logger.warning(str(diagnostic))

    def _addresses(self, state: VMState, ins: Instruction, base: int, count: int) -> List[int]:
        """Resolve count consecutive memory addresses starting at base.

        All addresses are checked before the caller touches memory, so a
        "raise" leaves the state untouched.
        """
        addresses = [base + k for k in range(count)]
        bad = [a for a in addresses if a >= ADDRESS_LIMIT]
        if not bad:
            return addresses
        if self.bounds_policy == "raise":
            raise OutOfBoundsError(bad[0], ADDRESS_LIMIT, "memory")
        self._report(
            state, ins, "out_of_bounds",
            f"I+{bad[0] - base} = 0x{bad[0]:04X} wrapped into 0x{bad[0] & (ADDRESS_LIMIT - 1):03X}",
            bad[0],
        )
        return [a & (ADDRESS_LIMIT - 1) for a in addresses]

    @staticmethod
    def _skip_if(state: VMState, condition: bool) -> None:
        if condition:
            state.pc = (state.pc + 2) & 0xFFFF

    # =========================================================================
    # Display and control flow
    # =========================================================================

    def _op_sys(self, state: VMState, ins: Instruction) -> None:
        """0nnn - Machine code routine call, ignored."""
        logger.debug(f"Ignoring SYS 0x{ins.nnn:03X}")

    def _op_cls(self, state: VMState, ins: Instruction) -> None:
        """00E0 - Clear all framebuffer cells."""
        state.framebuffer[:] = bytes(len(state.framebuffer))

    def _op_ret(self, state: VMState, ins: Instruction) -> None:
        """00EE - Return to the popped address."""
        state.pc = state.pop()

    def _op_jp(self, state: VMState, ins: Instruction) -> None:
        """1nnn - PC := nnn."""
        state.pc = ins.nnn

    def _op_call(self, state: VMState, ins: Instruction) -> None:
        """2nnn - Push the return address, PC := nnn."""
        state.push(state.pc)
        state.pc = ins.nnn

    def _op_jp_v0(self, state: VMState, ins: Instruction) -> None:
        """Bnnn - PC := nnn + V0."""
        state.pc = ins.nnn + state.registers[0]

    # =========================================================================
    # Conditional skips
    # =========================================================================

    def _op_se_imm(self, state: VMState, ins: Instruction) -> None:
        """3xnn - Skip if Vx == nn."""
        self._skip_if(state, state.registers[ins.x] == ins.nn)

    def _op_sne_imm(self, state: VMState, ins: Instruction) -> None:
        """4xnn - Skip if Vx != nn."""
        self._skip_if(state, state.registers[ins.x] != ins.nn)

    def _op_se_reg(self, state: VMState, ins: Instruction) -> None:
        """5xy0 - Skip if Vx == Vy."""
        self._skip_if(state, state.registers[ins.x] == state.registers[ins.y])

    def _op_sne_reg(self, state: VMState, ins: Instruction) -> None:
        """9xy0 - Skip if Vx != Vy."""
        self._skip_if(state, state.registers[ins.x] != state.registers[ins.y])

    def _op_skp(self, state: VMState, ins: Instruction) -> None:
        """Ex9E - Skip if key Vx is pressed."""
        self._skip_if(state, state.keys[state.registers[ins.x] & 0xF])

    def _op_sknp(self, state: VMState, ins: Instruction) -> None:
        """ExA1 - Skip if key Vx is not pressed."""
        self._skip_if(state, not state.keys[state.registers[ins.x] & 0xF])

    # =========================================================================
    # Register loads and arithmetic
    # =========================================================================

    def _op_ld_imm(self, state: VMState, ins: Instruction) -> None:
        """6xnn - Vx := nn."""
        state.registers[ins.x] = ins.nn

    def _op_add_imm(self, state: VMState, ins: Instruction) -> None:
        """7xnn - Vx += nn, VF untouched."""
        state.registers[ins.x] = (state.registers[ins.x] + ins.nn) & 0xFF

    def _op_ld_reg(self, state: VMState, ins: Instruction) -> None:
        """8xy0 - Vx := Vy."""
        state.registers[ins.x] = state.registers[ins.y]

    def _op_or(self, state: VMState, ins: Instruction) -> None:
        """8xy1 - Vx |= Vy."""
        state.registers[ins.x] |= state.registers[ins.y]

    def _op_and(self, state: VMState, ins: Instruction) -> None:
        """8xy2 - Vx &= Vy."""
        state.registers[ins.x] &= state.registers[ins.y]

    def _op_xor(self, state: VMState, ins: Instruction) -> None:
        """8xy3 - Vx ^= Vy."""
        state.registers[ins.x] ^= state.registers[ins.y]

    # Operands are read before the flag is written: with x == 0xF the result wins.

    def _op_add_reg(self, state: VMState, ins: Instruction) -> None:
        """8xy4 - Vx += Vy, VF := carry."""
        regs = state.registers
        total = regs[ins.x] + regs[ins.y]
        regs[FLAG_REGISTER] = 1 if total > 0xFF else 0
        regs[ins.x] = total & 0xFF

    def _op_sub(self, state: VMState, ins: Instruction) -> None:
        """8xy5 - Vx -= Vy, VF := 1 if Vx > Vy (strictly)."""
        regs = state.registers
        vx, vy = regs[ins.x], regs[ins.y]
        regs[FLAG_REGISTER] = 1 if vx > vy else 0
        regs[ins.x] = (vx - vy) & 0xFF

    def _op_shr(self, state: VMState, ins: Instruction) -> None:
        """8xy6 - Vx >>= 1, VF := shifted-out bit."""
        regs = state.registers
        vx = regs[ins.x]
        regs[FLAG_REGISTER] = vx & 0x1
        regs[ins.x] = vx >> 1

    def _op_subn(self, state: VMState, ins: Instruction) -> None:
        """8xy7 - Vx := Vy - Vx, VF := 1 if Vy > Vx."""
        regs = state.registers
        vx, vy = regs[ins.x], regs[ins.y]
        regs[FLAG_REGISTER] = 1 if vy > vx else 0
        regs[ins.x] = (vy - vx) & 0xFF

    def _op_shl(self, state: VMState, ins: Instruction) -> None:
        """8xyE - Vx <<= 1, VF := shifted-out bit."""
        regs = state.registers
        vx = regs[ins.x]
        regs[FLAG_REGISTER] = vx >> 7
        regs[ins.x] = (vx << 1) & 0xFF

    def _op_rnd(self, state: VMState, ins: Instruction) -> None:
        """Cxnn - Vx := random byte & nn."""
        state.registers[ins.x] = state.rng.randrange(256) & ins.nn

    # =========================================================================
    # Index register
    # =========================================================================

    def _op_ld_i(self, state: VMState, ins: Instruction) -> None:
        """Annn - I := nnn."""
        state.index = ins.nnn

    def _op_add_i(self, state: VMState, ins: Instruction) -> None:
        """Fx1E - I += Vx, no flag."""
        state.index = (state.index + state.registers[ins.x]) & 0xFFFF

    def _op_ld_f(self, state: VMState, ins: Instruction) -> None:
        """Fx29 - I := address of the glyph for digit Vx."""
        state.index = FONT_START + state.registers[ins.x] * GLYPH_SIZE

    # =========================================================================
    # Drawing
    # =========================================================================

    def _op_drw(self, state: VMState, ins: Instruction) -> None:
        """Dxyn - Draw n sprite rows from memory[I] at (Vx, Vy)."""
        x = state.registers[ins.x]
        y = state.registers[ins.y]
        rows = [state.memory[a] for a in self._addresses(state, ins, state.index, ins.n)]
        draw_sprite(state, x, y, rows)

    # =========================================================================
    # Timers and input
    # =========================================================================

    def _op_ld_vx_dt(self, state: VMState, ins: Instruction) -> None:
        """Fx07 - Vx := delay timer."""
        state.registers[ins.x] = state.delay_timer

    def _op_ld_dt(self, state: VMState, ins: Instruction) -> None:
        """Fx15 - delay timer := Vx."""
        state.delay_timer = state.registers[ins.x]

    def _op_ld_st(self, state: VMState, ins: Instruction) -> None:
        """Fx18 - sound timer := Vx."""
        state.sound_timer = state.registers[ins.x]

    def _op_ld_k(self, state: VMState, ins: Instruction) -> None:
        """Fx0A - Wait for a key press and store it in Vx.

        With key_wait="suspend" a held key completes the instruction at once;
        otherwise PC is rewound onto this instruction and the state is marked
        as waiting, so the execution cycle repeats it until a key arrives.
        With key_wait="ignore" the instruction does nothing.
        """
        if self.key_wait == "ignore":
            logger.debug("Fx0A ignored (key_wait=ignore)")
            return

        for key, pressed in enumerate(state.keys):
            if pressed:
                state.registers[ins.x] = key
                state.waiting_for_key = None
                return

        state.pc = (state.pc - 2) & 0xFFFF
        state.waiting_for_key = ins.x

    # =========================================================================
    # Memory transfers
    # =========================================================================

    def _op_bcd(self, state: VMState, ins: Instruction) -> None:
        """Fx33 - Store the decimal digits of Vx at I, I+1, I+2."""
        value = state.registers[ins.x]
        hundreds, tens, ones = self._addresses(state, ins, state.index, 3)
        state.memory[hundreds] = value // 100
        state.memory[tens] = (value // 10) % 10
        state.memory[ones] = (value % 100) % 10

    def _op_store(self, state: VMState, ins: Instruction) -> None:
        """Fx55 - Store V0..Vx at I.."""
        for i, address in enumerate(self._addresses(state, ins, state.index, ins.x + 1)):
            state.memory[address] = state.registers[i]

    def _op_load(self, state: VMState, ins: Instruction) -> None:
        """Fx65 - Load V0..Vx from I.."""
        for i, address in enumerate(self._addresses(state, ins, state.index, ins.x + 1)):
            state.registers[i] = state.memory[address]

    def _op_unknown(self, state: VMState, ins: Instruction) -> None:
        """Undefined instruction word - no effect, reported as a diagnostic."""
        self._report(state, ins, "unknown_opcode", f"Undefined instruction 0x{ins.raw:04X}")


def get_registry(
    config: Optional[VMConfig] = None,
    on_diagnostic: Optional[DiagnosticSink] = None,
) -> OpcodeRegistry:
    """Build a frozen registry for the policies named in a VMConfig.

    Args:
        config: Runtime options (defaults used if None)
        on_diagnostic: Callback receiving non-fatal Diagnostic events

    Returns:
        A frozen OpcodeRegistry bound to the config's bounds and key-wait policies
    """
    config = config or VMConfig()
    return OpcodeRegistry(
        bounds_policy=config.bounds_policy,
        key_wait=config.key_wait,
        on_diagnostic=on_diagnostic,
    )
