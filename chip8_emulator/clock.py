"""
クロック/実行制御モジュール

ホスト側の2つの周期を再現
- 命令クロック (既定 500Hz): step() を呼ぶ
- 60Hz周期: タイマ減算と再描画

マシン状態への全アクセスはエミュレータのロックで直列化する。
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, TYPE_CHECKING

from .timer import TIMER_HZ

if TYPE_CHECKING:
    from .emulator import Chip8Emulator

logger = logging.getLogger(__name__)


@dataclass
class ClockConfig:
    """クロック設定"""
    cpu_hz: int = 500           # 命令クロック
    timer_hz: int = TIMER_HZ    # タイマ/再描画周期


class ClockController:
    """
    クロックコントローラ

    仮想時間を進め、命令ステップとタイマティックを決定的に交互実行する
    """

    def __init__(self, config: Optional[ClockConfig] = None):
        self.config = config or ClockConfig()

        # 1命令実行コールバック (継続ならTrueを返す)
        self.step_callback: Optional[Callable[[], bool]] = None

        # 周期コールバック
        self.tick_callbacks: List[Callable] = []

        # 端数の累積
        self._cpu_phase: float = 0.0
        self._timer_phase: float = 0.0

        self.cycle_count: int = 0
        self.tick_count: int = 0

    def register_tick_callback(self, callback: Callable) -> None:
        """60Hzティックコールバックを登録"""
        self.tick_callbacks.append(callback)

    def tick(self) -> None:
        """60Hzティック"""
        self.tick_count += 1
        for callback in self.tick_callbacks:
            callback()

    def advance(self, seconds: float) -> int:
        """仮想時間を seconds 秒進め、実行した命令数を返す"""
        cpu_hz = self.config.cpu_hz
        ticks_per_cycle = self.config.timer_hz / cpu_hz

        self._cpu_phase += seconds * cpu_hz
        cycles = int(self._cpu_phase)
        self._cpu_phase -= cycles

        executed = 0
        for _ in range(cycles):
            self._timer_phase += ticks_per_cycle
            while self._timer_phase >= 1.0:
                self._timer_phase -= 1.0
                self.tick()

            self.cycle_count += 1
            if self.step_callback is not None and not self.step_callback():
                break
            executed += 1

        return executed

    def reset(self) -> None:
        """クロックをリセット"""
        self._cpu_phase = 0.0
        self._timer_phase = 0.0
        self.cycle_count = 0
        self.tick_count = 0

    def get_state(self) -> dict:
        """クロック状態を取得"""
        return {
            'cpu_hz': self.config.cpu_hz,
            'timer_hz': self.config.timer_hz,
            'cycle_count': self.cycle_count,
            'tick_count': self.tick_count,
        }


class ThreadedRunner:
    """
    スレッド実行

    命令スレッドと60Hzスレッドを独立に動かし、
    各クリティカルセクションでエミュレータのロックを取る
    """

    def __init__(self, emulator: 'Chip8Emulator',
                 on_frame: Optional[Callable] = None):
        self.emu = emulator
        self.on_frame = on_frame
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        """両スレッドを開始"""
        if self.running:
            return
        self._stop.clear()
        self._threads = [
            threading.Thread(target=self._instruction_loop, name="chip8-cpu", daemon=True),
            threading.Thread(target=self._frame_loop, name="chip8-60hz", daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        logger.info(f"Runner started ({self.emu.clock.config.cpu_hz} Hz)")

    def stop(self) -> None:
        """停止要求"""
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        for thread in self._threads:
            thread.join(timeout)

    def _instruction_loop(self) -> None:
        period = 1.0 / self.emu.clock.config.cpu_hz
        next_time = time.perf_counter()

        while not self._stop.is_set():
            with self.emu.lock:
                result = self.emu.step()
            if result.halted:
                logger.info(f"Runner stopped: {result.describe()}")
                self._stop.set()
                break

            next_time += period
            delay = next_time - time.perf_counter()
            if delay > 0:
                time.sleep(delay)
            else:
                next_time = time.perf_counter()

    def _frame_loop(self) -> None:
        period = 1.0 / self.emu.clock.config.timer_hz

        while not self._stop.wait(period):
            with self.emu.lock:
                self.emu.tick_timers()
                if self.on_frame is not None and self.emu.display.dirty:
                    self.on_frame(self.emu)
                    self.emu.display.dirty = False


class ExecutionController:
    """
    実行制御

    ブレークポイントの管理
    """

    def __init__(self):
        self.breakpoints: set = set()

    def add_breakpoint(self, address: int) -> None:
        """ブレークポイントを追加"""
        self.breakpoints.add(address)

    def remove_breakpoint(self, address: int) -> None:
        """ブレークポイントを削除"""
        self.breakpoints.discard(address)

    def toggle_breakpoint(self, address: int) -> bool:
        """ブレークポイントをトグル"""
        if address in self.breakpoints:
            self.breakpoints.remove(address)
            return False
        else:
            self.breakpoints.add(address)
            return True

    def is_breakpoint(self, address: int) -> bool:
        """ブレークポイントかチェック"""
        return address in self.breakpoints

    def clear_all(self) -> None:
        """全ブレークポイントを削除"""
        self.breakpoints.clear()

    def get_state(self) -> dict:
        """実行制御状態を取得"""
        return {
            'breakpoints': sorted(self.breakpoints),
        }
