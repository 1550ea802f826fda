"""
CHIP-8エミュレータ メインモジュール

全モジュールを統合してCHIP-8仮想マシン環境を提供
"""

import logging
import random
import threading
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, List, Optional

from .board import VirtualBoard
from .clock import ClockConfig, ClockController, ExecutionController
from .cpu import Chip8Cpu, CPUState, QuirkConfig, StepResult, StepStatus
from .display import Display
from .loader import BinaryLoader, LoadResult
from .memory import MemoryController
from .timer import TIMER_HZ, TimerController

logger = logging.getLogger(__name__)


@dataclass
class EmulatorConfig:
    """エミュレータ設定"""
    # クロック設定
    cpu_hz: int = 500
    timer_hz: int = TIMER_HZ

    # 実装差異
    quirks: QuirkConfig = field(default_factory=QuirkConfig)

    # 乱数シード (Noneなら非決定的)
    seed: Optional[int] = None

    # デバッグ設定
    trace_enabled: bool = False


class Chip8Emulator:
    """
    CHIP-8仮想エミュレータ

    全てのコンポーネントを統合して仮想CHIP-8環境を提供
    """

    def __init__(self, config: Optional[EmulatorConfig] = None):
        self.config = config or EmulatorConfig()

        # コンポーネント初期化
        self.cpu = Chip8Cpu(self.config.quirks, random.Random(self.config.seed))
        self.memory = MemoryController()
        self.display = Display()
        self.board = VirtualBoard()
        self.timer = TimerController()
        self.clock = ClockController(ClockConfig(self.config.cpu_hz, self.config.timer_hz))
        self.execution = ExecutionController()
        self.loader = BinaryLoader()

        # 2つの周期からのアクセスを直列化する
        self.lock = threading.RLock()

        # コンポーネント接続
        self._connect_components()

        # イベントコールバック
        self.on_step: Optional[Callable] = None
        self.on_halt: Optional[Callable] = None
        self.on_breakpoint: Optional[Callable] = None
        self.on_error: Optional[Callable] = None

        # 実行状態
        self.running: bool = False
        self.last_error: Optional[str] = None

    def _connect_components(self) -> None:
        """コンポーネントを相互接続"""
        # CPU接続
        self.cpu.connect_memory(self.memory)
        self.cpu.connect_display(self.display)
        self.cpu.connect_input(self.board.keypad)
        self.cpu.trace_enabled = self.config.trace_enabled

        # タイマ接続
        self.timer.connect_cpu(self.cpu)
        self.timer.connect_buzzer(self.board.buzzer)

        # ローダー接続
        self.loader.connect_memory(self.memory)

        # クロック接続
        self.clock.step_callback = self._on_clock_step
        self.clock.register_tick_callback(self.tick_timers)

    def _on_clock_step(self) -> bool:
        """クロックからの1命令実行"""
        if self.execution.is_breakpoint(self.cpu.regs.pc) and self.clock.cycle_count > 1:
            self._notify_breakpoint()
            return False
        return not self.step().halted

    def _notify_breakpoint(self) -> None:
        logger.info(f"Breakpoint hit at 0x{self.cpu.regs.pc:03X}")
        if self.on_breakpoint:
            self.on_breakpoint(self.cpu.regs.pc)

    def load_program(self, filepath: str) -> LoadResult:
        """ROMファイルをロード (マシン状態は初期化される)"""
        with self.lock:
            self.reset()
            return self.loader.load_file(filepath)

    def load_binary_data(self, data: bytes) -> LoadResult:
        """バイナリデータを直接ロード (マシン状態は初期化される)"""
        with self.lock:
            self.reset()
            return self.loader.load_bytes(data)

    def reset(self) -> None:
        """システムリセット"""
        with self.lock:
            self.memory.reset()
            self.cpu.reset()
            self.display.reset()
            self.board.reset()
            self.timer.reset()
            self.clock.reset()
            self.running = False
            self.last_error = None

    def step(self) -> StepResult:
        """1命令実行"""
        with self.lock:
            was_running = self.cpu.state == CPUState.RUNNING
            result = self.cpu.step()

            # サウンドタイマの設定を即座にブザーへ反映
            self.timer.sync_buzzer()

            if self.on_step:
                self.on_step(self.cpu.regs.pc, self.cpu.instruction_count)

            if result.halted and was_running:
                self._on_halted(result)

            return result

    def _on_halted(self, result: StepResult) -> None:
        self.running = False
        if result.status in (StepStatus.UNKNOWN_OPCODE, StepStatus.STACK_FAULT):
            self.last_error = result.describe()
            if self.on_error:
                self.on_error(self.last_error)
        if self.on_halt:
            self.on_halt(result)

    def run(self, max_instructions: int = 0) -> int:
        """連続実行 (停止・ブレークポイント・上限で終了)"""
        self.running = True
        executed = 0

        while self.running:
            if max_instructions > 0 and executed >= max_instructions:
                break

            if executed > 0 and self.execution.is_breakpoint(self.cpu.regs.pc):
                self._notify_breakpoint()
                break

            if self.step().halted:
                break

            executed += 1

        self.running = False
        return executed

    def run_for(self, seconds: float) -> int:
        """仮想時間で seconds 秒分を実行 (タイマも進む)"""
        with self.lock:
            if self.cpu.halted:
                return 0
            self.running = True
            self.clock.cycle_count = 0
            executed = self.clock.advance(seconds)
            self.running = False
            return executed

    def tick_timers(self) -> None:
        """60Hzティック"""
        with self.lock:
            self.timer.tick()

    def stop(self) -> None:
        """実行停止"""
        self.running = False

    @property
    def halted(self) -> bool:
        return self.cpu.halted

    def add_breakpoint(self, address: int) -> None:
        """ブレークポイント追加"""
        self.execution.add_breakpoint(address)

    def remove_breakpoint(self, address: int) -> None:
        """ブレークポイント削除"""
        self.execution.remove_breakpoint(address)

    def toggle_breakpoint(self, address: int) -> bool:
        """ブレークポイントトグル"""
        return self.execution.toggle_breakpoint(address)

    def clear_breakpoints(self) -> None:
        """全ブレークポイント削除"""
        self.execution.clear_all()

    def get_register(self, name: str) -> Optional[int]:
        """レジスタ値取得"""
        name = name.upper()
        regs = self.cpu.regs
        if name == 'PC':
            return regs.pc
        elif name == 'I':
            return regs.i
        elif name == 'SP':
            return regs.sp
        elif name == 'DT':
            return regs.delay_timer
        elif name == 'ST':
            return regs.sound_timer
        elif len(name) == 2 and name[0] == 'V':
            try:
                return regs.v[int(name[1], 16)]
            except ValueError:
                return None
        return None

    def set_register(self, name: str, value: int) -> bool:
        """レジスタ値設定"""
        name = name.upper()
        regs = self.cpu.regs

        if name == 'PC':
            regs.pc = value & 0xFFFF
        elif name == 'I':
            regs.i = value & 0xFFFF
        elif name == 'DT':
            regs.delay_timer = value & 0xFF
        elif name == 'ST':
            regs.sound_timer = value & 0xFF
        elif len(name) == 2 and name[0] == 'V':
            try:
                regs.v[int(name[1], 16)] = value & 0xFF
            except ValueError:
                return False
        else:
            return False
        return True

    def read_memory(self, address: int) -> int:
        """メモリ読み込み"""
        return self.memory.read8(address)

    def write_memory(self, address: int, value: int) -> None:
        """メモリ書き込み"""
        self.memory.write8(address, value)

    def dump_memory(self, start: int, size: int) -> str:
        """メモリダンプ"""
        return self.memory.dump_hex(start, size)

    def press_key(self, key: int) -> None:
        """キーを押す"""
        self.board.press_key(key)

    def release_key(self, key: int) -> None:
        """キーを離す"""
        self.board.release_key(key)

    def get_display_buffer(self) -> memoryview:
        """フレームバッファ (読み取り専用)"""
        return self.display.buffer

    @property
    def audio_active(self) -> bool:
        """サウンドタイマが非0なら発音"""
        return self.cpu.regs.sound_timer > 0

    def get_state(self) -> dict:
        """システム状態取得"""
        return {
            'cpu': self.cpu.get_state(),
            'timer': self.timer.get_state(),
            'clock': self.clock.get_state(),
            'execution': self.execution.get_state(),
            'board': self.board.get_state(),
            'quirks': self.get_quirks(),
            'last_error': self.last_error,
        }

    def get_cpu_state(self) -> dict:
        """CPU状態取得"""
        return self.cpu.get_state()

    def get_quirks(self) -> Dict[str, bool]:
        """実装差異設定を取得"""
        return asdict(self.cpu.quirks)

    def get_memory_map(self) -> List[dict]:
        """メモリマップ取得"""
        return self.memory.get_memory_map()
