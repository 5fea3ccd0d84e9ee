#!/usr/bin/env python3
"""chip8-vm Command Line Interface.

Run CHIP-8 ROMs headlessly and print the final display and machine state.

Usage:
    python main.py --rom roms/IBM_Logo.ch8
    python main.py --inline "00E0 6005 700A 1206" --frames 2 --trace
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_vm import Chip8Error, Emulator, Quirks, Rom
from chip8_vm.decode import disassemble


def main():
    parser = argparse.ArgumentParser(
        description="chip8-vm: CHIP-8 interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a ROM for 10 seconds of emulated time
    python main.py --rom roms/IBM_Logo.ch8 --frames 600

    # Run inline instruction words with full trace output
    python main.py --inline "6005 700A 1204" --frames 1 --trace

    # Shift VX in place instead of VY (CHIP-48 style)
    python main.py --rom game.ch8 --quirk shift_uses_vy
        """
    )

    parser.add_argument(
        "--rom", "-r",
        type=str,
        help="Path to a CHIP-8 ROM file"
    )
    parser.add_argument(
        "--inline", "-i",
        type=str,
        help="Inline program as 16-bit hex words (separate with spaces or ;)"
    )
    parser.add_argument(
        "--frames", "-f",
        type=int,
        default=600,
        help="Number of 60Hz frames to run. Default: 600"
    )
    parser.add_argument(
        "--ipf",
        type=int,
        default=Emulator.DEFAULT_INSTRUCTIONS_PER_FRAME,
        help=f"Instructions per frame. Default: {Emulator.DEFAULT_INSTRUCTIONS_PER_FRAME}"
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=Emulator.DEFAULT_MAX_CYCLES,
        help=f"Maximum instructions (safety limit). Default: {Emulator.DEFAULT_MAX_CYCLES}"
    )
    parser.add_argument(
        "--quirk",
        action="append",
        default=[],
        choices=Quirks.names(),
        help="Toggle a quirk from its VIP default (repeatable)"
    )
    parser.add_argument(
        "--disassemble", "-d",
        action="store_true",
        help="Print a disassembly of the program and exit"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print the execution trace"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (display only)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging"
    )

    args = parser.parse_args()

    if not args.rom and not args.inline:
        parser.error("Either --rom or --inline is required")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
    )

    try:
        if args.rom:
            program_path = Path(args.rom)
            if not program_path.exists():
                print(f"Error: ROM file not found: {args.rom}")
                return 1
            rom = Rom.from_path(program_path)
        else:
            rom = Rom.from_hex(args.inline)
    except (Chip8Error, ValueError) as e:
        print(f"Error: {e}")
        return 1

    if args.disassemble:
        print("\n".join(disassemble(rom.data)))
        return 0

    quirks = Quirks()
    for name in args.quirk:
        quirks = quirks.toggled(name)

    emulator = Emulator(
        rom=rom,
        quirks=quirks,
        instructions_per_frame=args.ipf,
        max_cycles=args.max_cycles,
    )

    if not args.quiet:
        print(f"Loading ROM: {rom!r}")
        print("-" * 64)

    try:
        emulator.run(args.frames)
    except RuntimeError as e:
        print(f"Execution error: {e}")

    if args.trace:
        emulator.print_trace()

    print(emulator.render_text())

    if not args.quiet:
        summary = emulator.get_summary()
        print("-" * 64)
        print(f"Frames: {summary['frames']}  Cycles: {summary['cycles']}")
        print(f"PC: 0x{summary['pc']:03X}  I: 0x{summary['i']:03X}  "
              f"Stack: {summary['stack_depth']}")
        regs = " ".join(f"{name}={value:02X}" for name, value in summary["registers"].items())
        print(f"Registers: {regs}")
        if summary["awaiting_key"] is not None:
            print(f"Waiting for key into V{summary['awaiting_key']:X}")
        if summary["error"]:
            print(f"Error: {summary['error']}")

    return 1 if emulator.error else 0


if __name__ == "__main__":
    sys.exit(main())
