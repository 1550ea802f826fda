"""
デバッガ/UIモジュール

内部状態可視化と操作:
- Run / Step
- レジスタ・タイマ・スタック表示
- メモリ表示 / 逆アセンブル
- キーパッド操作
- 画面表示
"""

from dataclasses import dataclass
from typing import Callable, List, Optional

from .decoder import decode, format_instruction
from .emulator import Chip8Emulator


@dataclass
class DisassembledInstruction:
    """逆アセンブル結果"""
    address: int
    word: int
    text: str

    def __str__(self) -> str:
        return f"0x{self.address:03X}: {self.word:04X}  {self.text}"


class Disassembler:
    """
    逆アセンブラ

    全ての命令は2バイト固定長
    """

    def __init__(self, emulator: Chip8Emulator):
        self.emu = emulator

    def disassemble(self, address: int, count: int = 10) -> List[DisassembledInstruction]:
        """指定アドレスから逆アセンブル"""
        result = []
        current = address

        for _ in range(count):
            word = self.emu.memory.read16(current)
            text = "HALT" if word == 0x0000 else format_instruction(decode(word))
            result.append(DisassembledInstruction(current, word, text))
            current += 2

        return result


class Debugger:
    """
    デバッガ

    エミュレータのデバッグ機能を提供
    """

    def __init__(self, emulator: Chip8Emulator):
        self.emu = emulator
        self.disasm = Disassembler(emulator)

        # 履歴
        self.command_history: List[str] = []
        self.execution_history: List[dict] = []

        # 出力コールバック
        self.output_callback: Optional[Callable] = None

    def output(self, text: str) -> None:
        """出力"""
        if self.output_callback:
            self.output_callback(text)
        else:
            print(text)

    def show_registers(self) -> None:
        """レジスタ表示"""
        state = self.emu.get_cpu_state()

        self.output("=== CPU Registers ===")
        self.output(f"PC: 0x{state['pc']:03X}   I: 0x{state['i']:03X}   SP: {state['sp']}")
        self.output(f"DT: {state['delay_timer']:3d}     ST: {state['sound_timer']:3d}")

        regs = state['registers']
        for row in range(0, 16, 8):
            line = ' '.join(f"V{n:X}={regs[f'V{n:X}']:02X}" for n in range(row, row + 8))
            self.output(line)

        stack = ' '.join(f"{addr:03X}" for addr in state['stack'])
        self.output(f"Stack: {stack if stack else '(empty)'}")
        self.output(f"State: {state['state']} ({state['last_result']})  "
                    f"Instructions: {state['instructions']}")

    def show_memory(self, address: int, size: int = 64) -> None:
        """メモリ表示"""
        self.output(f"=== Memory Dump: 0x{address:03X} ===")
        self.output(self.emu.dump_memory(address, size))

    def show_disassembly(self, address: Optional[int] = None, count: int = 10) -> None:
        """逆アセンブル表示"""
        if address is None:
            address = self.emu.cpu.regs.pc

        self.output(f"=== Disassembly: 0x{address:03X} ===")
        for instr in self.disasm.disassemble(address, count):
            marker = '>' if instr.address == self.emu.cpu.regs.pc else ' '
            bp_marker = '*' if self.emu.execution.is_breakpoint(instr.address) else ' '
            self.output(f"{marker}{bp_marker} {instr}")

    def show_keypad(self) -> None:
        """キーパッド表示"""
        self.output("=== Keypad ===")
        self.output(self.emu.board.keypad.get_display())
        self.output(f"Buzzer: {self.emu.board.buzzer.state.name}")

    def show_screen(self) -> None:
        """画面表示"""
        width = len(self.emu.display.rows()[0])
        self.output('+' + '-' * width + '+')
        for line in self.emu.display.render_text(on='#', off=' ').split('\n'):
            self.output('|' + line + '|')
        self.output('+' + '-' * width + '+')

    def show_quirks(self) -> None:
        """実装差異設定表示"""
        self.output("=== Quirks ===")
        for name, enabled in self.emu.get_quirks().items():
            self.output(f"  {name:<30} {'on' if enabled else 'off'}")

    def show_breakpoints(self) -> None:
        """ブレークポイント表示"""
        self.output("=== Breakpoints ===")
        bps = self.emu.execution.breakpoints
        if bps:
            for bp in sorted(bps):
                self.output(f"  0x{bp:03X}")
        else:
            self.output("  (none)")

    def step(self, count: int = 1) -> None:
        """ステップ実行"""
        for _ in range(count):
            pc_before = self.emu.cpu.regs.pc
            result = self.emu.step()
            pc_after = self.emu.cpu.regs.pc

            # 履歴記録
            self.execution_history.append({
                'pc_before': pc_before,
                'pc_after': pc_after,
                'result': result.status.name,
            })

            if result.halted:
                self.output(f"Halted: {result.describe()}")
                break

    def run_until(self, address: int) -> int:
        """指定アドレスまで実行"""
        self.emu.add_breakpoint(address)
        executed = self.emu.run()
        self.emu.remove_breakpoint(address)
        return executed

    def parse_key(self, text: str) -> int:
        """キー番号 (16進1桁) を解析"""
        key = int(text, 16)
        if not 0 <= key <= 0xF:
            raise ValueError(f"key out of range: {text}")
        return key

    def show_help(self) -> None:
        """ヘルプ表示"""
        help_text = """
=== Debugger Commands ===
  r, regs       - Show registers
  m <addr> [n]  - Show memory (n bytes, default 64)
  d [addr] [n]  - Disassemble (n instructions, default 10)
  s [n]         - Step (n instructions, default 1)
  g [n]         - Run (up to n instructions)
  b <addr>      - Toggle breakpoint
  bl            - List breakpoints
  bc            - Clear all breakpoints
  u <addr>      - Run until address
  kp <key>      - Press keypad key (0-F)
  kr <key>      - Release keypad key
  keys          - Show keypad state
  screen        - Show display
  tick [n]      - Advance timers by n 60Hz ticks
  quirks        - Show quirk settings
  set <reg> <v> - Set register (V0-VF, I, PC, DT, ST)
  reset         - Reset system (program is cleared)
  q, quit       - Quit debugger
  h, help       - Show this help
"""
        self.output(help_text)


class CLIDebugger(Debugger):
    """
    CLIデバッガ

    コマンドライン対話型デバッガ
    """

    def __init__(self, emulator: Chip8Emulator):
        super().__init__(emulator)
        self.running_cli = True

    def run_cli(self) -> None:
        """CLI実行"""
        self.output("CHIP-8 Emulator Debugger")
        self.output("Type 'help' for commands")
        self.output("")

        self.show_registers()

        while self.running_cli:
            try:
                cmd = input("\n(c8dbg) ").strip()
                if cmd:
                    self.execute_command(cmd)
            except EOFError:
                break
            except KeyboardInterrupt:
                self.output("\nInterrupted")
                self.emu.stop()

    def execute_command(self, cmd: str) -> None:
        """コマンド実行"""
        self.command_history.append(cmd)
        parts = cmd.split()

        if not parts:
            return

        command = parts[0].lower()
        args = parts[1:]

        try:
            if command in ('r', 'regs'):
                self.show_registers()

            elif command in ('m', 'mem'):
                addr = int(args[0], 0) if args else self.emu.cpu.regs.i
                size = int(args[1], 0) if len(args) > 1 else 64
                self.show_memory(addr, size)

            elif command in ('d', 'dis', 'disasm'):
                addr = int(args[0], 0) if args else None
                count = int(args[1]) if len(args) > 1 else 10
                self.show_disassembly(addr, count)

            elif command in ('s', 'step'):
                count = int(args[0]) if args else 1
                self.step(count)
                self.show_registers()
                self.show_disassembly(count=3)

            elif command in ('g', 'go', 'run', 'c', 'continue'):
                max_inst = int(args[0]) if args else 100000
                executed = self.emu.run(max_inst)
                self.output(f"Executed {executed} instructions")
                if self.emu.halted:
                    self.output(f"Halted: {self.emu.cpu.last_result.describe()}")
                self.show_registers()

            elif command in ('b', 'bp', 'break'):
                if args:
                    addr = int(args[0], 0)
                    if self.emu.toggle_breakpoint(addr):
                        self.output(f"Breakpoint set at 0x{addr:03X}")
                    else:
                        self.output(f"Breakpoint removed at 0x{addr:03X}")
                else:
                    self.show_breakpoints()

            elif command in ('bl', 'blist'):
                self.show_breakpoints()

            elif command == 'bc':
                self.emu.clear_breakpoints()
                self.output("All breakpoints cleared")

            elif command in ('u', 'until'):
                if args:
                    executed = self.run_until(int(args[0], 0))
                    self.output(f"Executed {executed} instructions")
                    self.show_registers()

            elif command == 'kp':
                if args:
                    key = self.parse_key(args[0])
                    self.emu.press_key(key)
                    self.output(f"Key {key:X} pressed")

            elif command == 'kr':
                if args:
                    key = self.parse_key(args[0])
                    self.emu.release_key(key)
                    self.output(f"Key {key:X} released")

            elif command in ('keys', 'keypad'):
                self.show_keypad()

            elif command == 'screen':
                self.show_screen()

            elif command == 'tick':
                count = int(args[0]) if args else 1
                for _ in range(count):
                    self.emu.tick_timers()
                self.output(f"DT={self.emu.cpu.regs.delay_timer} ST={self.emu.cpu.regs.sound_timer}")

            elif command == 'quirks':
                self.show_quirks()

            elif command == 'reset':
                self.emu.reset()
                self.output("System reset")
                self.show_registers()

            elif command in ('q', 'quit', 'exit'):
                self.running_cli = False

            elif command in ('h', 'help', '?'):
                self.show_help()

            elif command == 'set':
                if len(args) >= 2:
                    name = args[0].upper()
                    value = int(args[1], 0)
                    if self.emu.set_register(name, value):
                        self.output(f"{name} = 0x{value:X}")
                    else:
                        self.output(f"Unknown register: {name}")

            else:
                self.output(f"Unknown command: {command}")
                self.output("Type 'help' for available commands")

        except (ValueError, IndexError) as e:
            self.output(f"Invalid argument: {e}")
