"""
CHIP-8 CPU Tests

命令実行とフラグ・描画・スタックのテスト
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from chip8_emulator import Chip8Emulator, EmulatorConfig, QuirkConfig
from chip8_emulator.cpu import Chip8Cpu, StackFaultKind, StackOverflow, StackUnderflow, StepStatus
from chip8_emulator.decoder import decode
from chip8_emulator.display import Display
from chip8_emulator.memory import MemoryController


def make_emulator(*words, quirks=None, seed=1):
    """命令ワード列をロードしたエミュレータを作成"""
    emu = Chip8Emulator(EmulatorConfig(quirks=quirks or QuirkConfig(), seed=seed))
    program = b''.join(word.to_bytes(2, 'big') for word in words)
    result = emu.load_binary_data(program)
    assert result.success, f"Load failed: {result.errors}"
    return emu


def run_steps(emu, count):
    for _ in range(count):
        result = emu.step()
        assert result.status == StepStatus.CONTINUED, f"Unexpected {result.describe()}"


def make_cpu():
    """メモリと画面を接続した単体CPUを作成"""
    cpu = Chip8Cpu()
    cpu.connect_memory(MemoryController())
    cpu.connect_display(Display())
    return cpu


def test_fetch_big_endian():
    """フェッチはビッグエンディアン、PCは2進む"""
    print("Testing fetch...")

    emu = make_emulator(0x6005)
    assert emu.read_memory(0x200) == 0x60
    assert emu.read_memory(0x201) == 0x05

    emu.step()
    assert emu.get_register('PC') == 0x202, f"PC: {emu.get_register('PC'):#x}"
    assert emu.get_register('V0') == 0x05

    print("  Fetch: OK")


def test_load_and_add_immediate():
    """LD Vx, kk / ADD Vx, kk はフラグを変えない"""
    print("Testing LD/ADD immediate...")

    emu = make_emulator(0x6005, 0x7003, 0x61FF, 0x7102)
    emu.set_register('VF', 0xAA)
    run_steps(emu, 4)

    assert emu.get_register('V0') == 8, f"V0: {emu.get_register('V0')}"
    assert emu.get_register('V1') == 0x01, "ADD immediate should wrap"
    assert emu.get_register('VF') == 0xAA, "ADD immediate must not touch VF"

    print("  LD/ADD immediate: OK")


def test_add_register_carry():
    """ADD Vx, Vy のキャリー"""
    print("Testing ADD carry...")

    emu = make_emulator(0x60FF, 0x6102, 0x8014)
    run_steps(emu, 3)
    assert emu.get_register('V0') == 0x01
    assert emu.get_register('VF') == 1, "Carry expected"

    emu = make_emulator(0x6010, 0x6120, 0x8014)
    run_steps(emu, 3)
    assert emu.get_register('V0') == 0x30
    assert emu.get_register('VF') == 0, "No carry expected"

    print("  ADD carry: OK")


def test_flag_written_after_result():
    """x == F のとき VF はフラグ値で上書きされる"""
    print("Testing VF write order...")

    emu = make_emulator(0x6F10, 0x6020, 0x8F04)
    run_steps(emu, 3)
    assert emu.get_register('VF') == 0, f"VF: {emu.get_register('VF')}"

    emu = make_emulator(0x6F02, 0x8F06)
    run_steps(emu, 2)
    assert emu.get_register('VF') == 0, "Shifted-out bit should win"

    print("  VF write order: OK")


def test_subtract_flags():
    """SUB / SUBN の借りフラグ"""
    print("Testing SUB/SUBN...")

    cases = [
        (5, 3, 0x8015, 2, 1),
        (3, 5, 0x8015, 0xFE, 0),
        (4, 4, 0x8015, 0, 1),
        (3, 5, 0x8017, 2, 1),
        (5, 3, 0x8017, 0xFE, 0),
    ]
    for a, b, op, expected, flag in cases:
        emu = make_emulator(0x6000 | a, 0x6100 | b, op)
        run_steps(emu, 3)
        assert emu.get_register('V0') == expected, \
            f"{op:04X} with {a},{b}: V0={emu.get_register('V0'):#x}"
        assert emu.get_register('VF') == flag, \
            f"{op:04X} with {a},{b}: VF={emu.get_register('VF')}"

    print("  SUB/SUBN: OK")


def test_shift_flags():
    """SHR / SHL"""
    print("Testing shifts...")

    emu = make_emulator(0x6005, 0x8006)
    run_steps(emu, 2)
    assert emu.get_register('V0') == 0x02
    assert emu.get_register('VF') == 1

    emu = make_emulator(0x6081, 0x800E)
    run_steps(emu, 2)
    assert emu.get_register('V0') == 0x02
    assert emu.get_register('VF') == 1

    emu = make_emulator(0x6040, 0x800E)
    run_steps(emu, 2)
    assert emu.get_register('V0') == 0x80
    assert emu.get_register('VF') == 0

    # Vy をシフトする設定
    emu = make_emulator(0x6000, 0x6103, 0x8016, quirks=QuirkConfig(shift_uses_vy=True))
    run_steps(emu, 3)
    assert emu.get_register('V0') == 0x01, "Vy >> 1 expected"
    assert emu.get_register('VF') == 1

    print("  Shifts: OK")


def test_logic_ops():
    """OR / AND / XOR"""
    print("Testing logic ops...")

    emu = make_emulator(0x6F05, 0x600C, 0x610A, 0x8011)
    run_steps(emu, 4)
    assert emu.get_register('V0') == 0x0E
    assert emu.get_register('VF') == 0x05, "VF untouched by default"

    emu = make_emulator(0x600C, 0x610A, 0x8012)
    run_steps(emu, 3)
    assert emu.get_register('V0') == 0x08

    emu = make_emulator(0x6F05, 0x600C, 0x610A, 0x8013,
                        quirks=QuirkConfig(logic_resets_vf=True))
    run_steps(emu, 4)
    assert emu.get_register('V0') == 0x06
    assert emu.get_register('VF') == 0, "VF reset expected"

    print("  Logic ops: OK")


def test_skip_instructions():
    """SE / SNE"""
    print("Testing skips...")

    emu = make_emulator(0x6005, 0x3005)
    run_steps(emu, 2)
    assert emu.get_register('PC') == 0x206

    emu = make_emulator(0x6005, 0x4005)
    run_steps(emu, 2)
    assert emu.get_register('PC') == 0x204

    emu = make_emulator(0x6005, 0x6105, 0x5010, 0x9010)
    run_steps(emu, 3)
    assert emu.get_register('PC') == 0x208, "SE V0, V1 should skip"

    emu = make_emulator(0x6005, 0x6106, 0x9010)
    run_steps(emu, 3)
    assert emu.get_register('PC') == 0x208, "SNE V0, V1 should skip"

    print("  Skips: OK")


def test_jumps():
    """JP / SYS / JP V0"""
    print("Testing jumps...")

    emu = make_emulator(0x1234)
    run_steps(emu, 1)
    assert emu.get_register('PC') == 0x234

    # SYS nnn はジャンプとして扱う
    emu = make_emulator(0x0300)
    run_steps(emu, 1)
    assert emu.get_register('PC') == 0x300

    emu = make_emulator(0x6004, 0xB300)
    run_steps(emu, 2)
    assert emu.get_register('PC') == 0x304

    emu = make_emulator(0x6304, 0x6000, 0xB300, quirks=QuirkConfig(jump_uses_vx=True))
    run_steps(emu, 3)
    assert emu.get_register('PC') == 0x304, "BXNN should add V3"

    print("  Jumps: OK")


def test_call_and_return():
    """CALL / RET"""
    print("Testing CALL/RET...")

    emu = make_emulator(0x2300)
    emu.write_memory(0x300, 0x00)
    emu.write_memory(0x301, 0xEE)

    run_steps(emu, 1)
    assert emu.get_register('PC') == 0x300
    assert emu.get_register('SP') == 1
    assert emu.get_cpu_state()['stack'] == [0x202]

    run_steps(emu, 1)
    assert emu.get_register('PC') == 0x202, f"PC: {emu.get_register('PC'):#x}"
    assert emu.get_register('SP') == 0

    print("  CALL/RET: OK")


def test_stack_overflow():
    """16段目のCALLでスタックフォールト"""
    print("Testing stack overflow...")

    emu = make_emulator(0x2200)
    executed = emu.run(100)
    assert executed == 15, f"Expected 15 nested calls, got {executed}"

    result = emu.cpu.last_result
    assert result.status == StepStatus.STACK_FAULT
    assert result.fault == StackFaultKind.OVERFLOW
    assert emu.get_register('PC') == 0x200, "PC should point at the faulting CALL"
    assert emu.get_register('SP') == 15
    assert emu.halted
    assert emu.last_error == "Stack overflow"

    print("  Stack overflow: OK")


def test_stack_underflow():
    """空スタックでRET"""
    print("Testing stack underflow...")

    emu = make_emulator(0x00EE)
    result = emu.step()
    assert result.status == StepStatus.STACK_FAULT
    assert result.fault == StackFaultKind.UNDERFLOW
    assert emu.get_register('PC') == 0x200
    assert emu.get_register('SP') == 0

    print("  Stack underflow: OK")


def test_unknown_opcode():
    """未定義命令で停止"""
    print("Testing unknown opcode...")

    emu = make_emulator(0x6005, 0x8128)
    emu.step()
    result = emu.step()

    assert result.status == StepStatus.UNKNOWN_OPCODE
    assert result.word == 0x8128
    assert emu.get_register('PC') == 0x202
    assert emu.halted

    # 停止後は状態を変えずに同じ結果を返す
    again = emu.step()
    assert again == result
    assert emu.get_register('PC') == 0x202

    print("  Unknown opcode: OK")


def test_halt_sentinel():
    """0x0000 で通常停止、状態は変わらない"""
    print("Testing halt sentinel...")

    emu = make_emulator()
    before = emu.get_cpu_state()
    result = emu.step()

    assert result.status == StepStatus.HALTED
    assert result.halted
    after = emu.get_cpu_state()
    for key in ('pc', 'i', 'sp', 'registers', 'delay_timer', 'sound_timer', 'instructions'):
        assert before[key] == after[key], f"{key} changed on halt"
    assert emu.last_error is None

    emu = make_emulator(0x6005)
    assert emu.run(100) == 1
    assert emu.get_register('PC') == 0x202

    print("  Halt sentinel: OK")


def test_random_mask():
    """RND は乱数とマスクのAND"""
    print("Testing RND...")

    for seed in range(20):
        emu = make_emulator(0x60FF, 0xC000, seed=seed)
        run_steps(emu, 2)
        assert emu.get_register('V0') == 0, f"seed {seed}: mask 0 must yield 0"

    emu = make_emulator(0xC00F, seed=5)
    run_steps(emu, 1)
    assert emu.get_register('V0') <= 0x0F

    first = make_emulator(0xC0FF, seed=42)
    second = make_emulator(0xC0FF, seed=42)
    run_steps(first, 1)
    run_steps(second, 1)
    assert first.get_register('V0') == second.get_register('V0'), "Seeded RND must repeat"

    print("  RND: OK")


def test_index_operations():
    """LD I / ADD I / LD F"""
    print("Testing index ops...")

    emu = make_emulator(0xA0FF, 0x6002, 0xF01E)
    run_steps(emu, 3)
    assert emu.get_register('I') == 0x101

    emu = make_emulator(0x600A, 0xF029)
    run_steps(emu, 2)
    assert emu.get_register('I') == 50, "Glyph A at 5 * 10"

    print("  Index ops: OK")


def test_bcd_round_trip():
    """LD B で書いた桁を LD Vx, [I] で読み戻す"""
    print("Testing BCD...")

    emu = make_emulator(0xA300, 0x60FE, 0xF033, 0xF265)
    run_steps(emu, 4)

    assert [emu.read_memory(0x300 + n) for n in range(3)] == [2, 5, 4]
    assert emu.get_register('V0') == 2
    assert emu.get_register('V1') == 5
    assert emu.get_register('V2') == 4

    print("  BCD: OK")


def test_register_block_transfer():
    """LD [I], Vx / LD Vx, [I] と I の扱い"""
    print("Testing register block transfer...")

    program = (0xA300, 0x6011, 0x6122, 0xF155)

    emu = make_emulator(*program)
    run_steps(emu, 4)
    assert emu.read_memory(0x300) == 0x11
    assert emu.read_memory(0x301) == 0x22
    assert emu.read_memory(0x302) == 0x00, "Only V0..V1 stored"
    assert emu.get_register('I') == 0x300, "I unchanged by default"

    emu = make_emulator(*program, quirks=QuirkConfig(load_store_increments_index=True))
    run_steps(emu, 4)
    assert emu.get_register('I') == 0x302, "I += x + 1"

    print("  Register block transfer: OK")


def test_timer_loads():
    """LD DT / LD ST / LD Vx, DT"""
    print("Testing timer loads...")

    emu = make_emulator(0x6010, 0xF015, 0xF107, 0x6205, 0xF218)
    run_steps(emu, 5)

    assert emu.get_register('DT') == 0x10
    assert emu.get_register('V1') == 0x10
    assert emu.get_register('ST') == 5
    assert emu.audio_active
    assert emu.board.buzzer.playing, "Buzzer follows ST immediately"

    print("  Timer loads: OK")


def test_key_wait():
    """LD Vx, K はキーが無ければ同じ命令に留まる"""
    print("Testing key wait...")

    emu = make_emulator(0xF00A)
    result = emu.step()
    assert result.status == StepStatus.CONTINUED
    assert emu.get_register('PC') == 0x200, "PC net-unchanged while waiting"

    emu.press_key(0x7)
    emu.press_key(0xC)
    emu.step()
    assert emu.get_register('V0') == 0x7, "Lowest pressed key wins"
    assert emu.get_register('PC') == 0x202

    print("  Key wait: OK")


def test_key_skips():
    """SKP / SKNP"""
    print("Testing key skips...")

    emu = make_emulator(0x6007, 0xE09E)
    emu.press_key(0x7)
    run_steps(emu, 2)
    assert emu.get_register('PC') == 0x206

    emu = make_emulator(0x6007, 0xE0A1)
    run_steps(emu, 2)
    assert emu.get_register('PC') == 0x206

    # 範囲外のキー番号は押されていない扱い
    emu = make_emulator(0x6020, 0xE09E)
    emu.press_key(0x0)
    run_steps(emu, 2)
    assert emu.get_register('PC') == 0x204

    print("  Key skips: OK")


def test_draw_and_collision():
    """XOR描画と衝突フラグ"""
    print("Testing draw...")

    # フォント "0" (F0 90 90 90 F0) を 0,0 に2回描く
    emu = make_emulator(0x6000, 0x6100, 0xA000, 0xD015, 0xD015)
    run_steps(emu, 4)

    display = emu.display
    assert [display.pixel(x, 0) for x in range(5)] == [1, 1, 1, 1, 0]
    assert [display.pixel(x, 1) for x in range(5)] == [1, 0, 0, 1, 0]
    assert display.lit_count() == 14
    assert emu.get_register('VF') == 0

    run_steps(emu, 1)
    assert display.lit_count() == 0, "Second draw erases"
    assert emu.get_register('VF') == 1, "Collision expected"

    print("  Draw: OK")


def test_clear_screen():
    """CLS"""
    print("Testing CLS...")

    emu = make_emulator(0xA000, 0xD005, 0x00E0)
    run_steps(emu, 2)
    assert emu.display.lit_count() > 0

    run_steps(emu, 1)
    assert emu.display.lit_count() == 0
    assert not any(emu.get_display_buffer())

    print("  CLS: OK")


def test_draw_clips_horizontally():
    """右端をはみ出したビットは捨てる"""
    print("Testing horizontal clip...")

    # 0x208 にスプライト 0xFF を置く
    emu = make_emulator(0x603C, 0x6100, 0xA208, 0xD011, 0xFF00)
    run_steps(emu, 4)

    display = emu.display
    assert [display.pixel(x, 0) for x in range(60, 64)] == [1, 1, 1, 1]
    assert [display.pixel(x, 0) for x in range(4)] == [0, 0, 0, 0], "Must not wrap"
    assert [display.pixel(x, 1) for x in range(4)] == [0, 0, 0, 0]
    assert display.lit_count() == 4

    print("  Horizontal clip: OK")


def test_draw_wraps_vertically():
    """下端を越えた行は先頭行へ折り返す"""
    print("Testing vertical wrap...")

    # 0x208 にスプライト 0x80, 0x80 (2行)
    program = (0x6005, 0x611F, 0xA208, 0xD012, 0x8080)

    emu = make_emulator(*program)
    run_steps(emu, 4)
    assert emu.display.pixel(5, 31) == 1
    assert emu.display.pixel(5, 0) == 1, "Row past the bottom lands on row 0"
    assert emu.display.lit_count() == 2

    emu = make_emulator(*program, quirks=QuirkConfig(clip_sprites_vertically=True))
    run_steps(emu, 4)
    assert emu.display.pixel(5, 31) == 1
    assert emu.display.pixel(5, 0) == 0, "Strict clipping drops the row"
    assert emu.display.lit_count() == 1

    print("  Vertical wrap: OK")


def test_draw_coordinates_wrap():
    """開始座標は画面サイズで剰余"""
    print("Testing start coordinate wrap...")

    emu = make_emulator(0x6044, 0x6122, 0xA208, 0xD011, 0x8000)
    run_steps(emu, 4)
    assert emu.display.pixel(4, 2) == 1, "68 % 64 = 4, 34 % 32 = 2"

    print("  Start coordinate wrap: OK")


def test_arithmetic_all_pairs():
    """8xy4 / 8xy5 / 8xy7 を全オペランド組で検証"""
    print("Testing arithmetic over all operand pairs...")

    cpu = make_cpu()
    add, sub, subn = decode(0x8014), decode(0x8015), decode(0x8017)

    for a in range(256):
        for b in range(256):
            cpu.regs.v[0], cpu.regs.v[1] = a, b
            cpu.execute(add)
            assert cpu.regs.v[0] == (a + b) & 0xFF, f"ADD {a}+{b}: {cpu.regs.v[0]}"
            assert cpu.regs.v[0xF] == int(a + b > 255), f"ADD carry {a}+{b}"

            cpu.regs.v[0], cpu.regs.v[1] = a, b
            cpu.execute(sub)
            assert cpu.regs.v[0] == (a - b) & 0xFF, f"SUB {a}-{b}: {cpu.regs.v[0]}"
            assert cpu.regs.v[0xF] == int(a >= b), f"SUB borrow {a}-{b}"

            cpu.regs.v[0], cpu.regs.v[1] = a, b
            cpu.execute(subn)
            assert cpu.regs.v[0] == (b - a) & 0xFF, f"SUBN {b}-{a}: {cpu.regs.v[0]}"
            assert cpu.regs.v[0xF] == int(b >= a), f"SUBN borrow {b}-{a}"

    print("  Arithmetic all pairs: OK")


def test_shift_all_values():
    """8xy6 / 8xyE を全値で検証"""
    print("Testing shifts over all values...")

    cpu = make_cpu()
    shr, shl = decode(0x8006), decode(0x800E)

    for value in range(256):
        cpu.regs.v[0] = value
        cpu.execute(shr)
        assert cpu.regs.v[0] == value >> 1, f"SHR {value}: {cpu.regs.v[0]}"
        assert cpu.regs.v[0xF] == value & 1, f"SHR flag {value}"

        cpu.regs.v[0] = value
        cpu.execute(shl)
        assert cpu.regs.v[0] == (value << 1) & 0xFF, f"SHL {value}: {cpu.regs.v[0]}"
        assert cpu.regs.v[0xF] == value >> 7, f"SHL flag {value}"

    print("  Shifts all values: OK")


def test_bcd_all_values():
    """Fx33 を全値で検証"""
    print("Testing BCD over all values...")

    cpu = make_cpu()
    bcd = decode(0xF033)

    for value in range(256):
        cpu.regs.v[0] = value
        cpu.regs.i = 0x300
        cpu.execute(bcd)
        hundreds, tens, ones = (cpu.memory.read8(0x300 + n) for n in range(3))
        assert all(digit <= 9 for digit in (hundreds, tens, ones)), f"BCD {value}: digit > 9"
        assert 100 * hundreds + 10 * tens + ones == value, \
            f"BCD {value}: {hundreds} {tens} {ones}"

    print("  BCD all values: OK")


def test_draw_collision_off_origin():
    """原点以外での2回描画と衝突フラグ"""
    print("Testing off-origin draw...")

    # フォント "0" を (20, 10) に2回描く
    emu = make_emulator(0x6014, 0x610A, 0xA000, 0xD015, 0xD015)
    run_steps(emu, 4)

    display = emu.display
    assert [display.pixel(x, 10) for x in range(19, 25)] == [0, 1, 1, 1, 1, 0]
    assert [display.pixel(x, 11) for x in range(20, 24)] == [1, 0, 0, 1]
    assert display.pixel(0, 0) == 0, "Origin must stay dark"
    assert display.lit_count() == 14
    assert emu.get_register('VF') == 0, "No collision on first draw"

    run_steps(emu, 1)
    assert display.lit_count() == 0, "Second draw erases"
    assert emu.get_register('VF') == 1, "Collision expected"

    print("  Off-origin draw: OK")


def test_stack_fault_carries_no_pc():
    """スタック例外は種別のみを持ち、PCは結果側で報告する"""
    print("Testing stack fault payload...")

    fault = StackOverflow("Call stack depth exceeded")
    assert fault.kind == StackFaultKind.OVERFLOW
    assert not hasattr(fault, 'pc'), "Fault should not carry a PC"
    assert StackUnderflow("x").kind == StackFaultKind.UNDERFLOW

    print("  Stack fault payload: OK")


def run_all_tests():
    """全テスト実行"""
    print("=" * 50)
    print("CHIP-8 CPU Test Suite")
    print("=" * 50)
    print()

    tests = [
        test_fetch_big_endian,
        test_load_and_add_immediate,
        test_add_register_carry,
        test_flag_written_after_result,
        test_subtract_flags,
        test_shift_flags,
        test_logic_ops,
        test_skip_instructions,
        test_jumps,
        test_call_and_return,
        test_stack_overflow,
        test_stack_underflow,
        test_unknown_opcode,
        test_halt_sentinel,
        test_random_mask,
        test_index_operations,
        test_bcd_round_trip,
        test_register_block_transfer,
        test_timer_loads,
        test_key_wait,
        test_key_skips,
        test_draw_and_collision,
        test_clear_screen,
        test_draw_clips_horizontally,
        test_draw_wraps_vertically,
        test_draw_coordinates_wrap,
        test_arithmetic_all_pairs,
        test_shift_all_values,
        test_bcd_all_values,
        test_draw_collision_off_origin,
        test_stack_fault_carries_no_pc,
    ]

    passed = 0
    failed = 0

    for test in tests:
        try:
            test()
            passed += 1
        except AssertionError as e:
            print(f"  FAILED: {e}")
            failed += 1
        except Exception as e:
            print(f"  ERROR: {e}")
            failed += 1

    print()
    print("=" * 50)
    print(f"Results: {passed} passed, {failed} failed")
    print("=" * 50)

    return failed == 0


if __name__ == '__main__':
    success = run_all_tests()
    sys.exit(0 if success else 1)
