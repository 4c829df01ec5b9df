"""Tests for the collision-detecting sprite blit."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from multi8.constants import FONT_DATA
from multi8.sprite import draw_sprite
from multi8.state import create_initial_state


@pytest.fixture
def state():
    return create_initial_state()


class TestDrawSprite:
    """Test XOR drawing, wrapping and the collision flag."""

    def test_draw_single_row(self, state):
        collision = draw_sprite(state, 0, 0, [0b10100000])
        assert collision is False
        assert state.pixel(0, 0) == 1
        assert state.pixel(1, 0) == 0
        assert state.pixel(2, 0) == 1
        assert sum(state.framebuffer) == 2
        assert state.registers[0xF] == 0

    def test_draw_twice_restores_framebuffer(self, state):
        """Drawing the same sprite twice at one spot is an identity."""
        state.framebuffer[5] = 1
        state.framebuffer[700] = 1
        before = bytes(state.framebuffer)
        glyph = FONT_DATA[0x8 * 5:0x8 * 5 + 5]

        draw_sprite(state, 3, 4, glyph)
        assert bytes(state.framebuffer) != before
        draw_sprite(state, 3, 4, glyph)
        assert bytes(state.framebuffer) == before
        assert state.registers[0xF] == 1

    def test_collision_sets_flag(self, state):
        draw_sprite(state, 10, 10, [0xFF])
        assert draw_sprite(state, 14, 10, [0x80]) is True
        assert state.registers[0xF] == 1
        assert state.pixel(14, 10) == 0

    def test_flag_cleared_before_drawing(self, state):
        """VF is zeroed up front when no pixel is erased."""
        state.registers[0xF] = 1
        draw_sprite(state, 0, 0, [0x80])
        assert state.registers[0xF] == 0

    def test_collision_is_cumulative(self, state):
        """A collision on an early row is not undone by later rows."""
        state.framebuffer[0] = 1
        draw_sprite(state, 0, 0, [0x80, 0x80, 0x80])
        assert state.registers[0xF] == 1

    def test_horizontal_wrap(self, state):
        """x = 63 with 8 columns writes {63, 0, 1, ..., 6}."""
        draw_sprite(state, 63, 0, [0xFF])
        lit = [x for x in range(64) if state.pixel(x, 0)]
        assert lit == [0, 1, 2, 3, 4, 5, 6, 63]

    def test_vertical_wrap(self, state):
        draw_sprite(state, 0, 30, [0x80, 0x80, 0x80, 0x80])
        lit = [y for y in range(32) if state.pixel(0, y)]
        assert lit == [0, 1, 30, 31]

    def test_origin_beyond_screen_wraps(self, state):
        draw_sprite(state, 64 + 2, 32 + 1, [0x80])
        assert state.pixel(2, 1) == 1

    def test_empty_sprite(self, state):
        state.registers[0xF] = 1
        assert draw_sprite(state, 0, 0, []) is False
        assert sum(state.framebuffer) == 0
        assert state.registers[0xF] == 0
