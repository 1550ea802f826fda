"""
タイマモジュール

ディレイタイマ/サウンドタイマの60Hz減算

CPUコアは自分ではタイマを減算しない。ホスト側の60Hz周期から
tick() が呼ばれるたびに両タイマを1ずつ減らす。
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .board import Buzzer
    from .cpu import Chip8Cpu

TIMER_HZ = 60


class TimerController:
    """
    タイマコントローラ

    CPUのタイマレジスタを減算し、ブザーへサウンドタイマ値を通知する
    """

    def __init__(self):
        self.cpu: Optional['Chip8Cpu'] = None
        self.buzzer: Optional['Buzzer'] = None

        self.tick_count: int = 0

    def connect_cpu(self, cpu: 'Chip8Cpu') -> None:
        """CPUを接続"""
        self.cpu = cpu

    def connect_buzzer(self, buzzer: 'Buzzer') -> None:
        """ブザーを接続"""
        self.buzzer = buzzer

    def tick(self, count: int = 1) -> None:
        """60Hzティック"""
        if not self.cpu:
            return

        regs = self.cpu.regs
        for _ in range(count):
            if regs.delay_timer > 0:
                regs.delay_timer -= 1
            if regs.sound_timer > 0:
                regs.sound_timer -= 1
            self.tick_count += 1

        self.sync_buzzer()

    def sync_buzzer(self) -> None:
        """サウンドタイマ値をブザーへ反映"""
        if self.cpu and self.buzzer:
            self.buzzer.update(self.cpu.regs.sound_timer)

    def reset(self) -> None:
        self.tick_count = 0

    def get_state(self) -> dict:
        """タイマ状態を取得"""
        if not self.cpu:
            return {'delay_timer': 0, 'sound_timer': 0, 'ticks': self.tick_count}
        return {
            'delay_timer': self.cpu.regs.delay_timer,
            'sound_timer': self.cpu.regs.sound_timer,
            'ticks': self.tick_count,
            'frequency_hz': TIMER_HZ,
        }
