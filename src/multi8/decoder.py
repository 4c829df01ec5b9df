"""Instruction fetch and decode for MULTI-8.

Architecture:
    memory[PC], memory[PC+1] -> fetch -> 16-bit word -> decode -> Instruction

fetch() reads the big-endian instruction word and advances PC by 2 before
anything executes, so jumps, calls and skips act on the already-advanced
program counter. decode() is a pure function of the word: it splits it into
the register selectors x and y, the immediates n and nn, the address nnn,
and an operation key naming one of the 35 base opcodes.
"""

from dataclasses import dataclass
from typing import List, Tuple

from .constants import PROGRAM_START
from .errors import OutOfBoundsError
from .state import VMState


# Valid operation keys that can be emitted
VALID_KEYS = frozenset({
    "OP_SYS", "OP_CLS", "OP_RET", "OP_JP", "OP_CALL",
    "OP_SE_IMM", "OP_SNE_IMM", "OP_SE_REG", "OP_SNE_REG",
    "OP_LD_IMM", "OP_ADD_IMM",
    "OP_LD_REG", "OP_OR", "OP_AND", "OP_XOR",
    "OP_ADD_REG", "OP_SUB", "OP_SHR", "OP_SUBN", "OP_SHL",
    "OP_LD_I", "OP_JP_V0", "OP_RND", "OP_DRW",
    "OP_SKP", "OP_SKNP",
    "OP_LD_VX_DT", "OP_LD_K", "OP_LD_DT", "OP_LD_ST",
    "OP_ADD_I", "OP_LD_F", "OP_BCD", "OP_STORE", "OP_LOAD",
    "OP_UNKNOWN",
})

# 8xyN: keyed on the low nibble
_ALU_KEYS = {
    0x0: "OP_LD_REG",
    0x1: "OP_OR",
    0x2: "OP_AND",
    0x3: "OP_XOR",
    0x4: "OP_ADD_REG",
    0x5: "OP_SUB",
    0x6: "OP_SHR",
    0x7: "OP_SUBN",
    0xE: "OP_SHL",
}

# FxNN: keyed on the low byte
_MISC_KEYS = {
    0x07: "OP_LD_VX_DT",
    0x0A: "OP_LD_K",
    0x15: "OP_LD_DT",
    0x18: "OP_LD_ST",
    0x1E: "OP_ADD_I",
    0x29: "OP_LD_F",
    0x33: "OP_BCD",
    0x55: "OP_STORE",
    0x65: "OP_LOAD",
}

# Top nibble -> key for opcodes with no secondary selector
_SIMPLE_KEYS = {
    0x1: "OP_JP",
    0x2: "OP_CALL",
    0x3: "OP_SE_IMM",
    0x4: "OP_SNE_IMM",
    0x5: "OP_SE_REG",
    0x6: "OP_LD_IMM",
    0x7: "OP_ADD_IMM",
    0x9: "OP_SNE_REG",
    0xA: "OP_LD_I",
    0xB: "OP_JP_V0",
    0xC: "OP_RND",
    0xD: "OP_DRW",
}


@dataclass(frozen=True)
class Instruction:
    """Decoded instruction with extracted operands.

    Attributes:
        raw: 16-bit instruction word
        key: Operation key (e.g., "OP_ADD_REG")
        x: Bits 8-11, register selector Vx
        y: Bits 4-7, register selector Vy
        n: Bits 0-3, 4-bit immediate
        nn: Bits 0-7, 8-bit immediate
        nnn: Bits 0-11, 12-bit address
    """
    raw: int
    key: str
    x: int
    y: int
    n: int
    nn: int
    nnn: int

    @property
    def valid(self) -> bool:
        return self.key != "OP_UNKNOWN"

    def fields(self) -> dict:
        return {"x": self.x, "y": self.y, "n": self.n, "nn": self.nn, "nnn": self.nnn}

    def mnemonic(self) -> str:
        """Disassemble into conventional assembler syntax."""
        x, y, n, nn, nnn = self.x, self.y, self.n, self.nn, self.nnn
        vx, vy = f"V{x:X}", f"V{y:X}"
        formats = {
            "OP_SYS": f"SYS 0x{nnn:03X}",
            "OP_CLS": "CLS",
            "OP_RET": "RET",
            "OP_JP": f"JP 0x{nnn:03X}",
            "OP_CALL": f"CALL 0x{nnn:03X}",
            "OP_SE_IMM": f"SE {vx}, 0x{nn:02X}",
            "OP_SNE_IMM": f"SNE {vx}, 0x{nn:02X}",
            "OP_SE_REG": f"SE {vx}, {vy}",
            "OP_SNE_REG": f"SNE {vx}, {vy}",
            "OP_LD_IMM": f"LD {vx}, 0x{nn:02X}",
            "OP_ADD_IMM": f"ADD {vx}, 0x{nn:02X}",
            "OP_LD_REG": f"LD {vx}, {vy}",
            "OP_OR": f"OR {vx}, {vy}",
            "OP_AND": f"AND {vx}, {vy}",
            "OP_XOR": f"XOR {vx}, {vy}",
            "OP_ADD_REG": f"ADD {vx}, {vy}",
            "OP_SUB": f"SUB {vx}, {vy}",
            "OP_SHR": f"SHR {vx}",
            "OP_SUBN": f"SUBN {vx}, {vy}",
            "OP_SHL": f"SHL {vx}",
            "OP_LD_I": f"LD I, 0x{nnn:03X}",
            "OP_JP_V0": f"JP V0, 0x{nnn:03X}",
            "OP_RND": f"RND {vx}, 0x{nn:02X}",
            "OP_DRW": f"DRW {vx}, {vy}, {n}",
            "OP_SKP": f"SKP {vx}",
            "OP_SKNP": f"SKNP {vx}",
            "OP_LD_VX_DT": f"LD {vx}, DT",
            "OP_LD_K": f"LD {vx}, K",
            "OP_LD_DT": f"LD DT, {vx}",
            "OP_LD_ST": f"LD ST, {vx}",
            "OP_ADD_I": f"ADD I, {vx}",
            "OP_LD_F": f"LD F, {vx}",
            "OP_BCD": f"LD B, {vx}",
            "OP_STORE": f"LD [I], {vx}",
            "OP_LOAD": f"LD {vx}, [I]",
        }
        return formats.get(self.key, f"DW 0x{self.raw:04X}")


def _key_for(word: int) -> str:
    top = (word & 0xF000) >> 12

    if top in _SIMPLE_KEYS:
        return _SIMPLE_KEYS[top]

    if top == 0x0:
        if word == 0x00E0:
            return "OP_CLS"
        if word == 0x00EE:
            return "OP_RET"
        return "OP_SYS"

    if top == 0x8:
        return _ALU_KEYS.get(word & 0x000F, "OP_UNKNOWN")
    if top == 0xE:
        if word & 0x00FF == 0x9E:
            return "OP_SKP"
        if word & 0x00FF == 0xA1:
            return "OP_SKNP"
    if top == 0xF:
        return _MISC_KEYS.get(word & 0x00FF, "OP_UNKNOWN")

    return "OP_UNKNOWN"


def decode(word: int) -> Instruction:
    """Decode a 16-bit instruction word into its fields.

    Args:
        word: Instruction word (masked to 16 bits)

    Returns:
        Instruction with key and operand fields
    """
    word &= 0xFFFF
    return Instruction(
        raw=word,
        key=_key_for(word),
        x=(word & 0x0F00) >> 8,
        y=(word & 0x00F0) >> 4,
        n=word & 0x000F,
        nn=word & 0x00FF,
        nnn=word & 0x0FFF,
    )


def fetch(state: VMState) -> int:
    """Read the instruction word at PC and advance PC by 2.

    Raises:
        OutOfBoundsError: If the word at PC would extend past memory
    """
    pc = state.pc
    if pc >= len(state.memory) - 1:
        raise OutOfBoundsError(pc, len(state.memory) - 1, "fetch")
    word = state.memory[pc] << 8 | state.memory[pc + 1]
    state.pc = (pc + 2) & 0xFFFF
    return word


def disassemble(data: bytes, origin: int = PROGRAM_START) -> List[Tuple[int, int, str]]:
    """Disassemble a program image word by word.

    A trailing odd byte is reported as a single-byte data word.

    Args:
        data: Program bytes
        origin: Address of the first byte

    Returns:
        List of (address, word, mnemonic) tuples
    """
    listing = []
    for offset in range(0, len(data) - 1, 2):
        word = data[offset] << 8 | data[offset + 1]
        listing.append((origin + offset, word, decode(word).mnemonic()))
    if len(data) % 2:
        last = data[-1]
        listing.append((origin + len(data) - 1, last, f"DB 0x{last:02X}"))
    return listing
