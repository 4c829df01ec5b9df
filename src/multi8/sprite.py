"""Collision-detecting sprite blit.

A sprite is up to 15 rows of 8 pixels, one byte per row, most significant
bit leftmost. Every set bit toggles one framebuffer cell; coordinates wrap
around the screen edges instead of clipping. The flag register reports
whether any lit pixel was turned off.
"""

from typing import Sequence

from .constants import FLAG_REGISTER, SCREEN_HEIGHT, SCREEN_WIDTH
from .errors import OutOfBoundsError
from .state import VMState, xy_to_index


def draw_sprite(state: VMState, x: int, y: int, rows: Sequence[int]) -> bool:
    """XOR a sprite onto the framebuffer.

    Args:
        state: Machine state (framebuffer and VF are updated)
        x: Origin column (any value, wrapped modulo 64)
        y: Origin row (any value, wrapped modulo 32)
        rows: Sprite bytes, top row first

    Returns:
        True if any pixel went from lit to unlit

    Raises:
        OutOfBoundsError: If a computed framebuffer index is out of range
    """
    framebuffer = state.framebuffer
    state.registers[FLAG_REGISTER] = 0
    collision = False

    for k, row in enumerate(rows):
        for j in range(8):
            if (row >> (7 - j)) & 0x1:
                target = xy_to_index((x + j) % SCREEN_WIDTH, (y + k) % SCREEN_HEIGHT)
                if target >= len(framebuffer):
                    raise OutOfBoundsError(target, len(framebuffer), "framebuffer")
                framebuffer[target] ^= 1
                if framebuffer[target] == 0:
                    collision = True
                    state.registers[FLAG_REGISTER] = 1

    return collision
