"""Tests for the VM orchestrator."""

import random
import sys
import threading
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from multi8 import VM, VMConfig
from multi8.errors import OutOfBoundsError, ProgramLoadError, StackUnderflowError


def program(*words):
    return b"".join(w.to_bytes(2, "big") for w in words)


@pytest.fixture
def vm():
    return VM(VMConfig(seed=0))


class TestConfig:
    """Test VMConfig validation."""

    def test_defaults(self):
        config = VMConfig()
        assert config.stack_size == 30
        assert config.bounds_policy == "raise"
        assert config.key_wait == "suspend"
        assert config.cpu_hz == 1000.0
        assert config.timer_hz == 60.0

    @pytest.mark.parametrize("options", [
        {"stack_size": 0},
        {"bounds_policy": "clamp"},
        {"key_wait": "block"},
        {"cpu_hz": 0},
        {"max_cycles": -1},
    ])
    def test_invalid(self, options):
        with pytest.raises(ValueError):
            VMConfig(**options).validate()

    def test_from_dict_ignores_unknown(self):
        config = VMConfig.from_dict({"seed": 5, "colour": "green"})
        assert config.seed == 5
        assert config.to_dict()["seed"] == 5


class TestLoadAndStep:
    """Test loading and single stepping."""

    def test_load_program(self, vm):
        assert vm.load_program(program(0x6005)) == 2
        vm.step()
        assert vm.get_register(0) == 5
        assert vm.get_pc() == 0x202
        assert vm.get_cycle_count() == 1

    def test_load_rom(self, vm, tmp_path):
        rom = tmp_path / "prog.ch8"
        rom.write_bytes(program(0x6A07))
        vm.load_rom(rom)
        vm.step()
        assert vm.get_register(0xA) == 7

    def test_load_rom_missing(self, vm, tmp_path):
        with pytest.raises(ProgramLoadError):
            vm.load_rom(tmp_path / "nope.ch8")

    def test_step_error_keeps_pc(self, vm):
        """A failing step leaves PC on the faulting instruction."""
        vm.load_program(program(0x00EE))
        with pytest.raises(StackUnderflowError):
            vm.step()
        assert vm.get_pc() == 0x200
        assert vm.get_cycle_count() == 0

    def test_out_of_bounds_fetch(self, vm):
        vm.state.pc = 0xFFFF
        with pytest.raises(OutOfBoundsError):
            vm.step()

    def test_run_limit(self, vm):
        vm.load_program(program(0x7001, 0x1200))
        assert vm.run(10) == 10
        assert vm.get_register(0) == 5

    def test_run_requires_limit(self, vm):
        with pytest.raises(ValueError):
            vm.run()

    def test_run_uses_config_limit(self):
        vm = VM(VMConfig(max_cycles=3))
        vm.load_program(program(0x7001, 0x7001, 0x7001, 0x7001))
        assert vm.run() == 3
        assert vm.get_register(0) == 3

    def test_seeded_machines_agree(self):
        """Equal seeds give equal RND streams; the default seed is None."""
        assert VMConfig().seed is None
        a = VM(VMConfig(seed=7))
        b = VM(VMConfig(seed=7))
        for machine in (a, b):
            machine.load_program(program(0xC0FF, 0xC1FF))
            machine.run(2)
        assert a.dump_registers() == b.dump_registers()

    def test_registry_follows_config(self):
        vm = VM(VMConfig(bounds_policy="wrap", key_wait="ignore"))
        assert vm.registry.bounds_policy == "wrap"
        assert vm.registry.key_wait == "ignore"
        assert vm.registry.is_frozen() is True

    def test_injected_random_source(self):
        a = VM(rng=random.Random(12))
        b = VM(rng=random.Random(12))
        for machine in (a, b):
            machine.load_program(program(0xC0FF, 0xC1FF, 0xC2FF))
            machine.run(3)
        assert a.dump_registers() == b.dump_registers()


class TestReset:
    """Test VM reset."""

    def test_reset(self, vm):
        vm.load_program(program(0x6005, 0x1202))
        vm.run(2)
        vm.reset()
        assert vm.get_pc() == 0x200
        assert vm.get_register(0) == 0
        assert vm.state.memory[0x200] == 0

    def test_reset_reload(self, vm):
        vm.load_program(program(0x6005, 0x1202))
        vm.run(2)
        vm.reset(reload_program=True)
        assert vm.state.memory[0x200] == 0x60
        vm.step()
        assert vm.get_register(0) == 5


class TestTimers:
    """Test the separately clocked timer decrement."""

    def test_step_does_not_tick(self, vm):
        vm.load_program(program(0x6010, 0xF015, 0x1204))
        vm.run(5)
        assert vm.state.delay_timer == 0x10

    def test_tick_decrements_to_zero(self, vm):
        vm.state.delay_timer = 2
        vm.state.sound_timer = 1
        vm.tick_timers()
        assert vm.state.delay_timer == 1
        assert vm.state.sound_timer == 0
        vm.tick_timers()
        vm.tick_timers()
        assert vm.state.delay_timer == 0
        assert vm.state.sound_timer == 0


class TestKeys:
    """Test key-state writes and Fx0A suspension."""

    def test_press_release(self, vm):
        vm.press_key(0xA)
        assert vm.state.keys[0xA] is True
        vm.release_key(0xA)
        assert vm.state.keys[0xA] is False

    def test_invalid_key(self, vm):
        with pytest.raises(ValueError):
            vm.press_key(16)

    def test_set_keys(self, vm):
        vm.set_keys([1, 2])
        assert [k for k, pressed in enumerate(vm.state.keys) if pressed] == [1, 2]
        vm.set_keys([3])
        assert [k for k, pressed in enumerate(vm.state.keys) if pressed] == [3]

    def test_run_stops_on_key_wait(self, vm):
        vm.load_program(program(0xF50A, 0x6101))
        assert vm.run(100) == 1
        assert vm.is_waiting_for_key() is True
        assert vm.get_pc() == 0x200

    def test_waiting_step_repeats(self, vm):
        vm.load_program(program(0xF50A))
        vm.step()
        vm.step()
        assert vm.get_pc() == 0x200
        assert vm.is_waiting_for_key() is True

    def test_key_press_completes_wait(self, vm):
        """A key event stores the key and moves past Fx0A."""
        vm.load_program(program(0xF50A, 0x6101))
        vm.run(100)
        vm.press_key(0xB)
        assert vm.is_waiting_for_key() is False
        assert vm.get_register(5) == 0xB
        assert vm.get_pc() == 0x202
        vm.step()
        assert vm.get_register(1) == 1

    def test_wait_for_key_timeout(self, vm):
        vm.load_program(program(0xF50A))
        vm.step()
        assert vm.wait_for_key(timeout=0.05) is False

    def test_wait_for_key_cancel(self, vm):
        vm.load_program(program(0xF50A))
        vm.step()
        cancel = threading.Event()
        cancel.set()
        assert vm.wait_for_key(cancel=cancel) is False

    def test_wait_for_key_woken_by_press(self, vm):
        vm.load_program(program(0xF50A))
        vm.step()
        timer = threading.Timer(0.05, vm.press_key, args=(4,))
        timer.start()
        try:
            assert vm.wait_for_key(timeout=2.0) is True
        finally:
            timer.cancel()
        assert vm.get_register(5) == 4

    def test_wait_for_key_timeout_survives_early_wakeups(self, vm):
        """Wakeups that complete nothing do not shorten the timeout."""
        vm.load_program(program(0xF50A))
        vm.step()
        stop = threading.Event()

        def nudge():
            while not stop.is_set():
                with vm._key_event:
                    vm._key_event.notify_all()
                time.sleep(0.005)

        thread = threading.Thread(target=nudge, daemon=True)
        thread.start()
        try:
            start = time.monotonic()
            assert vm.wait_for_key(timeout=0.25) is False
            elapsed = time.monotonic() - start
        finally:
            stop.set()
            thread.join(1.0)
        assert elapsed >= 0.2

    def test_wait_for_key_not_waiting(self, vm):
        assert vm.wait_for_key(timeout=0) is True


class TestPresentation:
    """Test framebuffer handoff."""

    def test_snapshot_is_copy(self, vm):
        snapshot = vm.framebuffer_snapshot()
        assert len(snapshot) == 2048
        vm.state.framebuffer[0] = 1
        assert snapshot[0] == 0

    def test_render_text(self, vm):
        vm.state.framebuffer[0] = 1
        lines = vm.render_text().splitlines()
        assert len(lines) == 32
        assert all(len(line) == 64 for line in lines)
        assert lines[0].startswith("#.")

    def test_concurrent_snapshots_see_whole_steps(self, vm):
        """A presenter never sees the screen between CLS and the next draw."""
        # loop: CLS; DRW V0, V0, 1 (I -> 0x000 glyph row 0xF0); JP loop
        vm.load_program(program(0x00E0, 0xD001, 0x1200))
        vm.step()
        vm.step()
        stop = threading.Event()

        def execute():
            while not stop.is_set():
                vm.step()

        thread = threading.Thread(target=execute, daemon=True)
        thread.start()
        try:
            counts = set()
            deadline = time.time() + 0.2
            while time.time() < deadline:
                counts.add(sum(vm.framebuffer_snapshot()))
        finally:
            stop.set()
            thread.join(1.0)
        assert counts <= {0, 4}


class TestDiagnosticsAndTrace:
    """Test diagnostics and trace mode."""

    def test_wrap_policy_records_diagnostic(self):
        vm = VM(VMConfig(bounds_policy="wrap"))
        vm.load_program(program(0xAFFF, 0xF133))
        vm.run(2)
        assert len(vm.diagnostics) == 1
        assert vm.diagnostics[0].kind == "out_of_bounds"
        assert vm.get_summary()["diagnostics"]

    def test_trace_disabled(self, vm):
        vm.load_program(program(0x6005))
        assert vm.step() is None
        assert len(vm.trace) == 0

    def test_trace_entries(self):
        vm = VM(VMConfig(trace=True))
        vm.load_program(program(0x6042, 0x7001))
        vm.run(2)
        assert len(vm.trace) == 2
        first = vm.trace[0]
        assert first.pc == 0x200
        assert first.opcode == 0x6042
        assert first.instruction.key == "OP_LD_IMM"
        assert first.pre_state["registers"][0] == 0
        assert first.post_state["registers"][0] == 0x42
        assert "LD V0, 0x42" in vm.format_trace()

    def test_trace_limit(self):
        vm = VM(VMConfig(trace=True, trace_limit=3))
        vm.load_program(program(0x1200))
        vm.run(10)
        assert len(vm.trace) == 3

    def test_summary(self, vm):
        vm.load_program(program(0x6005))
        vm.step()
        summary = vm.get_summary()
        assert summary["cycles"] == 1
        assert summary["pc"] == 0x202
        assert summary["registers"]["V0"] == 5
        assert summary["waiting_for_key"] is False
