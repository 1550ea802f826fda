"""
ビジュアルUI モジュール

CHIP-8マシンを視覚的に表示するターミナルUI
- 64x32 フレームバッファ (半角ブロックで2行を1文字に圧縮)
- レジスタ / タイマ / スタックのリアルタイム表示
- キーパッド状態
- ホストキーボードからのキー入力
"""

import select
import sys
import termios
import time
import tty
from typing import Dict

from rich import box
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .clock import ThreadedRunner
from .display import SCREEN_HEIGHT, SCREEN_WIDTH
from .emulator import Chip8Emulator


class ScreenRenderer:
    """
    フレームバッファのテキスト描画

    上下2ピクセルを1文字 (▀ ▄ █) にまとめる
    """

    UPPER = "▀"
    LOWER = "▄"
    FULL = "█"
    EMPTY = " "

    def __init__(self, emulator: Chip8Emulator):
        self.emu = emulator

    def render(self) -> Text:
        buffer = self.emu.get_display_buffer()
        text = Text(style="bright_green on black")

        for row in range(0, SCREEN_HEIGHT, 2):
            upper_base = row * SCREEN_WIDTH
            lower_base = (row + 1) * SCREEN_WIDTH
            line = []
            for col in range(SCREEN_WIDTH):
                upper = buffer[upper_base + col]
                lower = buffer[lower_base + col]
                if upper and lower:
                    line.append(self.FULL)
                elif upper:
                    line.append(self.UPPER)
                elif lower:
                    line.append(self.LOWER)
                else:
                    line.append(self.EMPTY)
            text.append(''.join(line))
            if row < SCREEN_HEIGHT - 2:
                text.append('\n')

        return text


class RichVisualUI:
    """
    Rich ライブラリを使ったビジュアルUI
    """

    # 端末はキーを離したことを通知しないので一定時間押下扱いにする
    KEY_HOLD_SECONDS = 0.15

    def __init__(self, emulator: Chip8Emulator):
        self.emu = emulator
        self.console = Console()
        self.running = False
        self.screen = ScreenRenderer(emulator)
        self.runner = ThreadedRunner(emulator)

        # 押下中キー → 離す時刻
        self.held_keys: Dict[int, float] = {}

    def create_screen_panel(self) -> Panel:
        """画面パネルを作成"""
        return Panel(self.screen.render(), title="[bold green]CHIP-8[/bold green]",
                     border_style="green", box=box.HEAVY)

    def create_cpu_panel(self) -> Panel:
        """CPUステータスパネルを作成"""
        state = self.emu.get_cpu_state()

        table = Table(show_header=True, header_style="bold cyan", box=box.SIMPLE)
        for _ in range(4):
            table.add_column("Reg", style="cyan", width=3)
            table.add_column("Val", style="green", width=4)

        regs = state['registers']
        for row in range(0, 16, 4):
            cells = []
            for n in range(row, row + 4):
                cells.extend([f"V{n:X}", f"{regs[f'V{n:X}']:02X}"])
            table.add_row(*cells)

        info = Text()
        info.append("PC: ", style="bold yellow")
        info.append(f"0x{state['pc']:03X}   ", style="bright_green")
        info.append("I: ", style="bold yellow")
        info.append(f"0x{state['i']:03X}   ", style="bright_green")
        info.append("SP: ", style="bold yellow")
        info.append(f"{state['sp']}\n", style="bright_green")
        info.append("DT: ", style="bold yellow")
        info.append(f"{state['delay_timer']:3d}   ", style="bright_green")
        info.append("ST: ", style="bold yellow")
        sound_style = "bold red" if state['sound_timer'] else "bright_green"
        info.append(f"{state['sound_timer']:3d}", style=sound_style)

        status = Text(f"\nState: {state['state']}",
                      style="bright_green" if state['state'] == 'RUNNING' else "yellow")
        status.append(f"  ({state['last_result']})")
        status.append(f"\nInstructions: {state['instructions']}")

        return Panel(Group(info, table, status), title="[bold blue]CPU[/bold blue]",
                     border_style="blue", box=box.ROUNDED)

    def create_keypad_panel(self) -> Panel:
        """キーパッドパネルを作成"""
        keypad = self.emu.board.keypad
        text = Text()
        layout = [[0x1, 0x2, 0x3, 0xC],
                  [0x4, 0x5, 0x6, 0xD],
                  [0x7, 0x8, 0x9, 0xE],
                  [0xA, 0x0, 0xB, 0xF]]
        for row in layout:
            for key in row:
                style = "bold black on bright_yellow" if keypad.is_key_down(key) else "dim"
                text.append(f" {key:X} ", style=style)
                text.append(" ")
            text.append("\n")

        buzzer = self.emu.board.buzzer
        text.append("\nBuzzer: ", style="bold")
        text.append(buzzer.state.name, style="bold red" if buzzer.playing else "dim")

        return Panel(text, title="[bold yellow]Keypad[/bold yellow]",
                     border_style="yellow", box=box.ROUNDED)

    def create_help_panel(self) -> Panel:
        """ヘルプパネルを作成"""
        help_text = Text()
        help_text.append("Keys:\n", style="bold")
        help_text.append("  1234 QWER\n  ASDF ZXCV\n", style="cyan")
        help_text.append("  Esc/Ctrl-C ", style="cyan")
        help_text.append("Quit\n", style="dim")

        return Panel(help_text, title="[bold white]Help[/bold white]",
                     border_style="white", box=box.ROUNDED)

    def create_layout(self) -> Layout:
        """全体レイアウトを作成"""
        layout = Layout()

        layout.split_row(
            Layout(name="screen", size=SCREEN_WIDTH + 4),
            Layout(name="side")
        )

        layout["side"].split_column(
            Layout(name="cpu", size=12),
            Layout(name="keypad", size=9),
            Layout(name="help")
        )

        return layout

    def update_layout(self, layout: Layout) -> None:
        """レイアウトを更新"""
        with self.emu.lock:
            layout["screen"].update(self.create_screen_panel())
            layout["cpu"].update(self.create_cpu_panel())
            layout["keypad"].update(self.create_keypad_panel())
            layout["help"].update(self.create_help_panel())
            self.emu.display.dirty = False

    def handle_key(self, char: str) -> None:
        """キー入力を処理"""
        if char in ('\x1b', '\x03'):
            self.running = False
            return

        key = self.emu.board.key_for_char(char)
        if key is None:
            return

        with self.emu.lock:
            self.emu.press_key(key)
        self.held_keys[key] = time.monotonic() + self.KEY_HOLD_SECONDS

    def _release_expired_keys(self) -> None:
        now = time.monotonic()
        for key, deadline in list(self.held_keys.items()):
            if now >= deadline:
                with self.emu.lock:
                    self.emu.release_key(key)
                del self.held_keys[key]

    def run_interactive(self) -> None:
        """インタラクティブモードで実行"""
        layout = self.create_layout()
        fd = sys.stdin.fileno()
        old_settings = termios.tcgetattr(fd)

        self.running = True
        self.runner.start()

        try:
            tty.setcbreak(fd)
            with Live(layout, console=self.console, refresh_per_second=30, screen=True):
                while self.running:
                    self.update_layout(layout)

                    # 非ブロッキングでキー入力を取得
                    if select.select([sys.stdin], [], [], 1 / 60)[0]:
                        self.handle_key(sys.stdin.read(1))
                    self._release_expired_keys()

                    if not self.runner.running and self.emu.halted:
                        self.update_layout(layout)
                        time.sleep(0.5)
                        self.running = False

        except KeyboardInterrupt:
            pass
        finally:
            self.runner.stop()
            self.runner.join(timeout=1.0)
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)

        result = self.emu.cpu.last_result
        self.console.print(f"\n[yellow]Emulator stopped.[/yellow] {result.describe()}")

    def show_static(self) -> None:
        """静的表示（1回だけ表示）"""
        layout = self.create_layout()
        self.update_layout(layout)
        self.console.print(layout)


def run_visual_ui(emulator: Chip8Emulator) -> None:
    """ビジュアルUIを起動"""
    ui = RichVisualUI(emulator)
    ui.run_interactive()
