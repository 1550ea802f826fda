"""
CHIP-8 Emulator CLI Entry Point

Usage:
    python -m chip8_emulator [options] [rom]

Options:
    -d, --debug     Start in debug mode
    -r, --run       Run program headless and print the screen
    --visual        Start the terminal UI
    -h, --help      Show help
"""

import argparse
import logging
import sys
from pathlib import Path

from . import __version__
from .cpu import QuirkConfig
from .debugger import CLIDebugger
from .emulator import Chip8Emulator, EmulatorConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='CHIP-8 Virtual Machine',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m chip8_emulator game.ch8              # Load and debug
    python -m chip8_emulator -r test.ch8           # Run headless, print screen
    python -m chip8_emulator --visual game.ch8     # Play in the terminal
    python -m chip8_emulator --quirks chip8 -r x.ch8
"""
    )

    parser.add_argument('rom', nargs='?', help='ROM file to load (.ch8, .c8, .bin)')
    parser.add_argument('-d', '--debug', action='store_true', help='Start in debug mode')
    parser.add_argument('-r', '--run', action='store_true', help='Run program headless')
    parser.add_argument('--visual', action='store_true', help='Start terminal UI')
    parser.add_argument('--quirks', choices=QuirkConfig.PRESETS, default='default',
                        help='Behaviour preset (default: %(default)s)')
    parser.add_argument('--hz', type=int, default=500,
                        help='Instruction clock in Hz (default: %(default)s)')
    parser.add_argument('--seed', type=int, default=None, help='Seed for RND')
    parser.add_argument('--max-instructions', type=int, default=1000000,
                        help='Instruction limit for headless run (default: %(default)s)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)-7s %(name)s: %(message)s',
    )

    config = EmulatorConfig(
        cpu_hz=max(1, args.hz),
        quirks=QuirkConfig.preset(args.quirks),
        seed=args.seed,
        trace_enabled=args.verbose,
    )
    emu = Chip8Emulator(config)

    print(f"CHIP-8 Virtual Machine v{__version__}")
    print("=" * 40)

    # プログラムロード
    if args.rom:
        filepath = Path(args.rom)
        if not filepath.exists():
            print(f"Error: File not found: {args.rom}")
            sys.exit(1)

        print(f"Loading: {args.rom}")
        result = emu.load_program(str(filepath))

        if result.success:
            print(f"Loaded {result.size} bytes at 0x{result.entry_point:03X}")
        else:
            print(f"Load failed: {'; '.join(result.errors)}")
            sys.exit(1)

    # ビジュアルモード
    if args.visual:
        from .visual_ui import run_visual_ui
        run_visual_ui(emu)

    # 実行モード
    elif args.run:
        print("\nRunning program...")
        executed = emu.run(max_instructions=args.max_instructions)
        print(f"Executed {executed} instructions")
        print(f"Final PC: 0x{emu.cpu.regs.pc:03X}")
        print(f"Result: {emu.cpu.last_result.describe()}")
        print()
        print(emu.display.render_text(on='#', off='.'))
        if emu.last_error:
            sys.exit(2)

    # デバッグモード
    else:
        print("\nStarting debugger...")
        debugger = CLIDebugger(emu)
        debugger.run_cli()

    print("\nEmulator terminated.")


if __name__ == '__main__':
    main()
