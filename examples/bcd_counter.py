"""
BCDカウンタサンプルプログラム

CHIP-8仮想環境でカウンタ値を3桁の10進数として画面に描くデモ
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from chip8_emulator import Chip8Emulator

LOOP_END = 0x224


def create_counter_program():
    """カウンタプログラムを生成"""
    # CHIP-8 アセンブリ:
    #         LD V3, 0          ; カウンタ
    # loop:   CLS
    #         LD I, 0x300
    #         LD B, V3          ; 3桁に分解
    #         LD V2, [I]        ; V0..V2 = 百・十・一の位
    #         LD V4, 0          ; x
    #         LD V5, 0          ; y
    #         LD F, V0 / DRW V4, V5, 5 / ADD V4, 5
    #         LD F, V1 / DRW V4, V5, 5 / ADD V4, 5
    #         LD F, V2 / DRW V4, V5, 5
    #         ADD V3, 1
    #         LD V6, 2
    #         LD ST, V6         ; 短いビープ
    #         JP loop
    words = [
        0x6300,
        # loop (0x202)
        0x00E0,
        0xA300,
        0xF333,
        0xF265,
        0x6400,
        0x6500,
        0xF029, 0xD455, 0x7405,
        0xF129, 0xD455, 0x7405,
        0xF229, 0xD455,
        0x7301,
        0x6602,
        0xF618,
        # 0x224
        0x1202,
    ]
    return b''.join(word.to_bytes(2, 'big') for word in words)


def main():
    print("CHIP-8 BCD Counter Demo")
    print("=" * 40)

    emu = Chip8Emulator()

    program = create_counter_program()
    result = emu.load_binary_data(program)

    print(f"Program loaded at 0x{result.entry_point:03X}")
    print(f"Program size: {result.size} bytes")
    print()

    def on_buzzer_change(state):
        print(f"  Buzzer: {state.name}")

    emu.board.buzzer.register_callback(on_buzzer_change)

    # 1周ごとに停止させる
    emu.add_breakpoint(LOOP_END)

    try:
        for cycle in range(12):
            emu.run()
            print(f"--- Loop {cycle + 1}, V3={emu.get_register('V3')} ---")
            print('\n'.join(emu.display.render_text(on='#', off='.').split('\n')[:5]))
            # 60Hzティック2回でビープが終わる
            emu.tick_timers()
            emu.tick_timers()
            print()

    except KeyboardInterrupt:
        print("\nInterrupted")

    print()
    print("Final State:")
    print(f"  PC: 0x{emu.cpu.regs.pc:03X}")
    print(f"  Instructions executed: {emu.cpu.instruction_count}")
    print(f"  Result: {emu.cpu.last_result.describe()}")


if __name__ == '__main__':
    main()
