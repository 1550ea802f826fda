"""
CHIP-8 仮想マシン実行環境

対象範囲:
- 35命令のデコードと実行
- 4KBメモリ・16本のレジスタ・コールスタック
- 遅延タイマ / サウンドタイマ (60Hz)
- 64x32 モノクロ画面と16キーのキーパッド
- デバッガとターミナルUI
"""

__version__ = "0.1.0"
__author__ = "CHIP-8 Emulator Team"

from .cpu import Chip8Cpu, QuirkConfig, StepResult, StepStatus
from .decoder import Instruction, Opcode, UnknownOpcode, decode
from .memory import Chip8Error, MemoryController, ProgramLoadError
from .display import Display
from .clock import ClockController
from .timer import TimerController
from .loader import BinaryLoader
from .board import VirtualBoard
from .emulator import Chip8Emulator, EmulatorConfig

__all__ = [
    "Chip8Cpu",
    "QuirkConfig",
    "StepResult",
    "StepStatus",
    "Instruction",
    "Opcode",
    "UnknownOpcode",
    "decode",
    "Chip8Error",
    "ProgramLoadError",
    "MemoryController",
    "Display",
    "ClockController",
    "TimerController",
    "BinaryLoader",
    "VirtualBoard",
    "Chip8Emulator",
    "EmulatorConfig",
]
