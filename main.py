#!/usr/bin/env python3
"""MULTI-8 Command Line Interface.

Run CHIP-8 programs headlessly with the MULTI-8 interpreter.

Usage:
    python main.py --rom roms/caveexplorer.ch8 --max-cycles 5000 --screen
    python main.py --inline "6005 7003 8001" --max-cycles 3 --trace
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from multi8 import VM, VMConfig, VMError, ProgramLoadError, disassemble, run_headless
from multi8.loader import read_program


def parse_inline(text: str) -> bytes:
    """Parse whitespace/semicolon separated hex words into a program image."""
    words = text.replace(";", " ").split()
    data = bytearray()
    for word in words:
        value = int(word, 16)
        if not 0 <= value <= 0xFFFF:
            raise ValueError(f"Instruction word out of range: {word}")
        data += value.to_bytes(2, "big")
    return bytes(data)


def main():
    parser = argparse.ArgumentParser(
        description="MULTI-8: CHIP-8 bytecode interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a ROM for 10000 instructions and print the screen
    python main.py --rom roms/caveexplorer.ch8 --max-cycles 10000 --screen

    # Run inline hex words with a full trace
    python main.py --inline "6005 7003 6102 8011" --max-cycles 4 --trace

    # Disassemble a ROM without running it
    python main.py --rom roms/caveexplorer.ch8 --disassemble
        """
    )

    parser.add_argument(
        "--rom", "-r",
        type=str,
        help="Path to program image (.ch8)"
    )
    parser.add_argument(
        "--inline", "-i",
        type=str,
        help="Inline program as hex instruction words (e.g. \"00E0 1200\")"
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=10000,
        help="Number of instructions to execute. Default: 10000"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the RND instruction"
    )
    parser.add_argument(
        "--bounds",
        choices=["raise", "wrap"],
        default="raise",
        help="Out-of-bounds memory policy. Default: raise"
    )
    parser.add_argument(
        "--disassemble", "-d",
        action="store_true",
        help="Print a disassembly listing and exit"
    )
    parser.add_argument(
        "--screen", "-s",
        action="store_true",
        help="Print the framebuffer after execution"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print full execution trace"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (non-zero registers only)"
    )

    args = parser.parse_args()

    # Validate arguments
    if not args.rom and not args.inline:
        parser.error("Either --rom or --inline is required")

    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    # Load program
    try:
        if args.rom:
            program = read_program(args.rom)
        else:
            program = parse_inline(args.inline)
    except ValueError as e:
        parser.error(str(e))
    except ProgramLoadError as e:
        print(f"Error: {e}")
        return 1

    if args.disassemble:
        for address, word, text in disassemble(program):
            print(f"{address:03X}: {word:04X}  {text}")
        return 0

    config = VMConfig(
        seed=args.seed,
        bounds_policy=args.bounds,
        key_wait="suspend",
        trace=args.trace,
        max_cycles=args.max_cycles,
    )
    vm = VM(config)

    try:
        vm.load_program(program)
    except ProgramLoadError as e:
        print(f"Error: {e}")
        return 1

    if not args.quiet:
        print("-" * 60)
        print("Executing...")
        print("-" * 60)

    status = 0
    try:
        run_headless(vm)
    except VMError as e:
        print(f"Execution error: {e}")
        status = 1

    # Output
    if args.trace:
        print(vm.format_trace())

    if args.quiet:
        regs = vm.dump_registers()
        for reg in sorted(regs.keys()):
            if regs[reg] != 0:
                print(f"{reg}={regs[reg]}")
    else:
        print()
        summary = vm.get_summary()
        print(f"Cycles: {summary['cycles']}")
        print(f"PC: 0x{summary['pc']:03X}")
        print(f"Registers: {summary['registers']}")
        if summary["waiting_for_key"]:
            print("Waiting for key press")
        if summary["diagnostics"]:
            print(f"Diagnostics: {summary['diagnostics']}")

    if args.screen:
        print(vm.render_text())

    return status


if __name__ == "__main__":
    sys.exit(main())
