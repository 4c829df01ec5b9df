"""Tests for the command line front end."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
import main


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["main.py", *argv])
    return main.main()


class TestParseInline:
    """Test inline hex program parsing."""

    def test_words(self):
        assert main.parse_inline("00E0 1200") == bytes([0x00, 0xE0, 0x12, 0x00])

    def test_semicolons(self):
        assert main.parse_inline("6005;7003") == bytes([0x60, 0x05, 0x70, 0x03])

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            main.parse_inline("12345")


class TestMain:
    """Test end-to-end CLI runs."""

    def test_delay_timer_loop_completes(self, monkeypatch, capsys):
        """Timers tick during a headless run, so the polling loop exits."""
        status = run_cli(
            monkeypatch,
            "--inline", "6003 F015 F107 3100 1204 120A",
            "--max-cycles", "5000", "-q",
        )
        out = capsys.readouterr().out
        assert status == 0
        assert f"PC={0x20A}" in out
        assert "DT=" not in out
        assert "V1=" not in out

    def test_execution_error_exit_status(self, monkeypatch, capsys):
        status = run_cli(monkeypatch, "--inline", "00EE", "--max-cycles", "5", "-q")
        assert status == 1
        assert "Execution error" in capsys.readouterr().out

    def test_missing_rom(self, monkeypatch, tmp_path, capsys):
        status = run_cli(monkeypatch, "--rom", str(tmp_path / "nope.ch8"), "-q")
        assert status == 1
        assert "Error" in capsys.readouterr().out

    def test_disassemble(self, monkeypatch, capsys):
        status = run_cli(monkeypatch, "--inline", "00E0 1200", "--disassemble")
        out = capsys.readouterr().out
        assert status == 0
        assert "200: 00E0  CLS" in out
        assert "202: 1200" in out
