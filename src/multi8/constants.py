"""Machine constants for MULTI-8."""

# Memory layout
MEMORY_SIZE = 0x10000     # addressable bytes
ADDRESS_LIMIT = 0x1000    # architecturally meaningful memory (0x000-0xFFF)
PROGRAM_START = 0x200
FONT_START = 0x000
GLYPH_SIZE = 5

# Registers and stack
NUM_REGISTERS = 16
FLAG_REGISTER = 0xF
DEFAULT_STACK_SIZE = 0x1E

# Display and input
SCREEN_WIDTH = 64
SCREEN_HEIGHT = 32
SCREEN_SIZE = SCREEN_WIDTH * SCREEN_HEIGHT
NUM_KEYS = 16

# Hexadecimal digit sprites 0-F, 5 bytes each
FONT_DATA = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

# Largest program image that fits between PROGRAM_START and ADDRESS_LIMIT
MAX_PROGRAM_SIZE = ADDRESS_LIMIT - PROGRAM_START
