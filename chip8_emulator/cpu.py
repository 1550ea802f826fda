"""
CHIP-8 CPUコアモジュール

命令フェッチ・デコード・実行サイクルを行う中核モジュール

レジスタ構成:
- 汎用レジスタ: V0〜VF (8ビット, VFはフラグ出力にも使われる)
- I: インデックスレジスタ (16ビット)
- PC: プログラムカウンタ (0x200開始, 2バイト単位)
- SP / スタック: 16段のリターンアドレス
- DT / ST: ディレイタイマ / サウンドタイマ (外部の60Hzで減算)
"""

import logging
import random
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Dict, List, Optional, TYPE_CHECKING

from .decoder import Instruction, LoadTarget, Opcode, UnknownOpcode, decode
from .display import SCREEN_HEIGHT, SCREEN_SIZE, SCREEN_WIDTH
from .memory import FONT_GLYPH_SIZE, PROGRAM_START, Chip8Error

if TYPE_CHECKING:
    from .board import KeyInput
    from .display import Display
    from .memory import MemoryController

logger = logging.getLogger(__name__)

STACK_DEPTH = 16
HALT_SENTINEL = 0x0000


class CPUState(IntEnum):
    """CPU状態"""
    RUNNING = 1
    HALTED = 2


class StepStatus(IntEnum):
    """1ステップの結果種別"""
    CONTINUED = 0
    HALTED = 1
    UNKNOWN_OPCODE = 2
    STACK_FAULT = 3


class StackFaultKind(IntEnum):
    """スタック異常の種別"""
    OVERFLOW = 0
    UNDERFLOW = 1


class StackFault(Chip8Error):
    """スタック異常 (致命的)"""
    kind: StackFaultKind


class StackOverflow(StackFault):
    kind = StackFaultKind.OVERFLOW


class StackUnderflow(StackFault):
    kind = StackFaultKind.UNDERFLOW


@dataclass(frozen=True)
class StepResult:
    """step() の戻り値"""
    status: StepStatus
    word: Optional[int] = None
    fault: Optional[StackFaultKind] = None

    @property
    def halted(self) -> bool:
        return self.status != StepStatus.CONTINUED

    def describe(self) -> str:
        if self.status == StepStatus.UNKNOWN_OPCODE:
            return f"Unknown opcode 0x{self.word:04X}"
        if self.status == StepStatus.STACK_FAULT:
            return f"Stack {self.fault.name.lower()}"
        return self.status.name.replace('_', ' ').capitalize()


CONTINUED = StepResult(StepStatus.CONTINUED)


@dataclass
class QuirkConfig:
    """
    実装差異 (Quirk) の設定

    既定値は全てFalse:
    - load_store_increments_index: FX55/FX65 の後に I += x + 1
    - clip_sprites_vertically: 縦方向もクリップ (既定は縦のみラップ)
    - shift_uses_vy: 8XY6/8XYE で Vy をシフトして Vx へ格納
    - logic_resets_vf: 8XY1/8XY2/8XY3 の後に VF = 0
    - jump_uses_vx: BXNN で XNN + Vx へジャンプ
    """
    load_store_increments_index: bool = False
    clip_sprites_vertically: bool = False
    shift_uses_vy: bool = False
    logic_resets_vf: bool = False
    jump_uses_vx: bool = False

    PRESETS = ('default', 'chip8', 'schip')

    @classmethod
    def preset(cls, name: str) -> 'QuirkConfig':
        """名前付きプリセット"""
        if name == 'chip8':
            # COSMAC VIP 相当
            return cls(load_store_increments_index=True,
                       clip_sprites_vertically=True,
                       shift_uses_vy=True,
                       logic_resets_vf=True)
        if name == 'schip':
            return cls(clip_sprites_vertically=True, jump_uses_vx=True)
        if name == 'default':
            return cls()
        raise ValueError(f"Unknown quirk preset: {name}")


@dataclass
class CPURegisters:
    """CPUレジスタセット"""
    # 汎用レジスタ V0-VF
    v: List[int] = field(default_factory=lambda: [0] * 16)

    # インデックスレジスタ
    i: int = 0

    # プログラムカウンタ
    pc: int = PROGRAM_START

    # スタックポインタとコールスタック
    sp: int = 0
    stack: List[int] = field(default_factory=lambda: [0] * STACK_DEPTH)

    # タイマ
    delay_timer: int = 0
    sound_timer: int = 0

    @property
    def vf(self) -> int:
        """フラグレジスタ (VFのエイリアス)"""
        return self.v[0xF]

    @vf.setter
    def vf(self, value: int) -> None:
        self.v[0xF] = value & 0xFF


class Chip8Cpu:
    """
    CHIP-8 CPUエミュレータコア

    デコード (読み取りのみ) と実行 (状態の書き換え) を分離して1命令ずつ処理する
    """

    def __init__(self, quirks: Optional[QuirkConfig] = None,
                 rng: Optional[random.Random] = None):
        self.regs = CPURegisters()
        self.state = CPUState.RUNNING
        self.quirks = quirks or QuirkConfig()
        self.rng = rng or random.Random()

        self.memory: Optional['MemoryController'] = None
        self.display: Optional['Display'] = None
        self.input: Optional['KeyInput'] = None

        # 実行統計
        self.instruction_count: int = 0

        # 停止時の結果
        self.last_result: StepResult = CONTINUED

        # 命令テーブル
        self._instruction_table: Dict[Opcode, Callable[[Instruction], None]] = {}
        self._build_instruction_table()

        # トレース用コールバック
        self.trace_callback: Optional[Callable] = None
        self.trace_enabled: bool = False

    def connect_memory(self, memory: 'MemoryController') -> None:
        """メモリコントローラを接続"""
        self.memory = memory

    def connect_display(self, display: 'Display') -> None:
        """フレームバッファを接続"""
        self.display = display

    def connect_input(self, key_input: 'KeyInput') -> None:
        """キー入力を接続"""
        self.input = key_input

    def reset(self) -> None:
        """CPUリセット"""
        self.regs = CPURegisters()
        self.state = CPUState.RUNNING
        self.instruction_count = 0
        self.last_result = CONTINUED

    @property
    def halted(self) -> bool:
        return self.state == CPUState.HALTED

    def step(self) -> StepResult:
        """1命令実行"""
        if self.memory is None or self.display is None:
            raise RuntimeError("Memory/display not connected")

        if self.state == CPUState.HALTED:
            return self.last_result

        pc = self.regs.pc
        word = self._fetch()

        if word == HALT_SENTINEL:
            # 終端: PCを戻して状態を変えずに停止
            self.regs.pc = pc
            logger.info(f"Halt sentinel reached at 0x{pc:03X}")
            return self._halt(StepResult(StepStatus.HALTED, word))

        decoded = decode(word)

        if self.trace_callback:
            self.trace_callback(pc, word, decoded)
        if self.trace_enabled:
            logger.debug(f"0x{pc:03X}: {word:04X}")

        if isinstance(decoded, UnknownOpcode):
            self.regs.pc = pc
            logger.warning(f"Unknown opcode 0x{word:04X} at PC=0x{pc:03X}")
            return self._halt(StepResult(StepStatus.UNKNOWN_OPCODE, word))

        try:
            self.execute(decoded)
        except StackFault as e:
            self.regs.pc = pc
            logger.error(f"{e} at PC=0x{pc:03X}")
            return self._halt(StepResult(StepStatus.STACK_FAULT, word, e.kind))

        self.instruction_count += 1
        return CONTINUED

    def run(self, max_instructions: int = 0) -> int:
        """停止するまで連続実行"""
        executed = 0

        while self.state == CPUState.RUNNING:
            if max_instructions > 0 and executed >= max_instructions:
                break
            if self.step().halted:
                break
            executed += 1

        return executed

    def _halt(self, result: StepResult) -> StepResult:
        self.state = CPUState.HALTED
        self.last_result = result
        return result

    def _fetch(self) -> int:
        """命令フェッチ (2バイト, ビッグエンディアン)"""
        word = self.memory.read16(self.regs.pc)
        self.regs.pc = (self.regs.pc + 2) & 0xFFFF
        return word

    def _skip(self) -> None:
        """次の命令をスキップ"""
        self.regs.pc = (self.regs.pc + 2) & 0xFFFF

    def execute(self, instruction: Instruction) -> None:
        """デコード済み命令を実行"""
        handler = self._instruction_table[instruction.opcode]
        handler(instruction)

    def _build_instruction_table(self) -> None:
        """命令テーブル構築"""
        table = self._instruction_table

        # フロー制御
        table[Opcode.SYS] = self._op_jp
        table[Opcode.CLS] = self._op_cls
        table[Opcode.RET] = self._op_ret
        table[Opcode.JP] = self._op_jp
        table[Opcode.CALL] = self._op_call
        table[Opcode.JP_V0] = self._op_jp_v0

        # 条件スキップ
        table[Opcode.SE_BYTE] = self._op_se_byte
        table[Opcode.SNE_BYTE] = self._op_sne_byte
        table[Opcode.SE_REG] = self._op_se_reg
        table[Opcode.SNE_REG] = self._op_sne_reg
        table[Opcode.SKP] = self._op_skp
        table[Opcode.SKNP] = self._op_sknp

        # ロード (書き込み先は LoadTarget で決まる)
        for opcode in (Opcode.LD_BYTE, Opcode.LD_REG, Opcode.LD_VX_DT,
                       Opcode.LD_DT_VX, Opcode.LD_ST_VX):
            table[opcode] = self._op_load
        table[Opcode.LD_I] = self._op_ld_i
        table[Opcode.LD_VX_K] = self._op_ld_key

        # 演算
        table[Opcode.ADD_BYTE] = self._op_add_byte
        table[Opcode.OR] = self._op_or
        table[Opcode.AND] = self._op_and
        table[Opcode.XOR] = self._op_xor
        table[Opcode.ADD_REG] = self._op_add_reg
        table[Opcode.SUB] = self._op_sub
        table[Opcode.SUBN] = self._op_subn
        table[Opcode.SHR] = self._op_shr
        table[Opcode.SHL] = self._op_shl
        table[Opcode.RND] = self._op_rnd

        # インデックス/メモリ
        table[Opcode.ADD_I] = self._op_add_i
        table[Opcode.LD_F] = self._op_ld_font
        table[Opcode.LD_B] = self._op_ld_bcd
        table[Opcode.LD_MEM_REGS] = self._op_store_regs
        table[Opcode.LD_REGS_MEM] = self._op_load_regs

        # 描画
        table[Opcode.DRW] = self._op_draw

    # === 命令実装 ===

    def _op_cls(self, inst: Instruction) -> None:
        """CLS - 画面クリア"""
        self.display.clear()

    def _op_ret(self, inst: Instruction) -> None:
        """RET - サブルーチンから復帰"""
        if self.regs.sp == 0:
            raise StackUnderflow("Return with empty call stack")
        self.regs.pc = self.regs.stack[self.regs.sp]
        self.regs.sp -= 1

    def _op_jp(self, inst: Instruction) -> None:
        """JP nnn / SYS nnn"""
        self.regs.pc = inst.operands[0]

    def _op_jp_v0(self, inst: Instruction) -> None:
        """JP V0, nnn"""
        nnn = inst.operands[0]
        reg = (nnn >> 8) & 0x0F if self.quirks.jump_uses_vx else 0
        self.regs.pc = (nnn + self.regs.v[reg]) & 0xFFFF

    def _op_call(self, inst: Instruction) -> None:
        """CALL nnn - サブルーチン呼び出し"""
        if self.regs.sp >= STACK_DEPTH - 1:
            raise StackOverflow("Call stack depth exceeded")
        self.regs.sp += 1
        self.regs.stack[self.regs.sp] = self.regs.pc
        self.regs.pc = inst.operands[0]

    def _op_se_byte(self, inst: Instruction) -> None:
        x, kk = inst.operands
        if self.regs.v[x] == kk:
            self._skip()

    def _op_sne_byte(self, inst: Instruction) -> None:
        x, kk = inst.operands
        if self.regs.v[x] != kk:
            self._skip()

    def _op_se_reg(self, inst: Instruction) -> None:
        x, y = inst.operands
        if self.regs.v[x] == self.regs.v[y]:
            self._skip()

    def _op_sne_reg(self, inst: Instruction) -> None:
        x, y = inst.operands
        if self.regs.v[x] != self.regs.v[y]:
            self._skip()

    def _op_skp(self, inst: Instruction) -> None:
        """SKP Vx - キーが押されていればスキップ"""
        if self._key_down(self.regs.v[inst.operands[0]]):
            self._skip()

    def _op_sknp(self, inst: Instruction) -> None:
        """SKNP Vx - キーが押されていなければスキップ"""
        if not self._key_down(self.regs.v[inst.operands[0]]):
            self._skip()

    def _key_down(self, key: int) -> bool:
        return self.input is not None and self.input.is_key_down(key)

    def _op_load(self, inst: Instruction) -> None:
        """LD系 - 値を求めて書き込み先へ格納"""
        op = inst.opcode
        x = inst.operands[0]

        if op == Opcode.LD_BYTE:
            value = inst.operands[1]
        elif op == Opcode.LD_REG:
            value = self.regs.v[inst.operands[1]]
        elif op == Opcode.LD_VX_DT:
            value = self.regs.delay_timer
        else:
            value = self.regs.v[x]

        self._store(inst.target, x, value)

    def _store(self, target: LoadTarget, x: int, value: int) -> None:
        value &= 0xFF
        if target == LoadTarget.DELAY_TIMER:
            self.regs.delay_timer = value
        elif target == LoadTarget.SOUND_TIMER:
            self.regs.sound_timer = value
        else:
            self.regs.v[x] = value

    def _op_ld_i(self, inst: Instruction) -> None:
        """LD I, nnn"""
        self.regs.i = inst.operands[0]

    def _op_ld_key(self, inst: Instruction) -> None:
        """LD Vx, K - キー入力待ち

        ブロックせず、キーが無ければPCを戻して同じ命令を再実行させる
        """
        key = self.input.first_key_down() if self.input is not None else None
        if key is None:
            self.regs.pc = (self.regs.pc - 2) & 0xFFFF
        else:
            self.regs.v[inst.operands[0]] = key

    def _op_add_byte(self, inst: Instruction) -> None:
        """ADD Vx, kk (フラグ変化なし)"""
        x, kk = inst.operands
        self.regs.v[x] = (self.regs.v[x] + kk) & 0xFF

    def _op_or(self, inst: Instruction) -> None:
        x, y = inst.operands
        self.regs.v[x] |= self.regs.v[y]
        self._post_logic()

    def _op_and(self, inst: Instruction) -> None:
        x, y = inst.operands
        self.regs.v[x] &= self.regs.v[y]
        self._post_logic()

    def _op_xor(self, inst: Instruction) -> None:
        x, y = inst.operands
        self.regs.v[x] ^= self.regs.v[y]
        self._post_logic()

    def _post_logic(self) -> None:
        if self.quirks.logic_resets_vf:
            self.regs.vf = 0

    # VFを書く命令は結果の後にVFを書く (x == F のときはフラグが残る)

    def _op_add_reg(self, inst: Instruction) -> None:
        """ADD Vx, Vy - キャリーでVF=1"""
        x, y = inst.operands
        total = self.regs.v[x] + self.regs.v[y]
        self.regs.v[x] = total & 0xFF
        self.regs.vf = int(total > 0xFF)

    def _op_sub(self, inst: Instruction) -> None:
        """SUB Vx, Vy - 借りが無ければVF=1"""
        x, y = inst.operands
        vx, vy = self.regs.v[x], self.regs.v[y]
        self.regs.v[x] = (vx - vy) & 0xFF
        self.regs.vf = int(vx >= vy)

    def _op_subn(self, inst: Instruction) -> None:
        """SUBN Vx, Vy - Vx = Vy - Vx"""
        x, y = inst.operands
        vx, vy = self.regs.v[x], self.regs.v[y]
        self.regs.v[x] = (vy - vx) & 0xFF
        self.regs.vf = int(vy >= vx)

    def _op_shr(self, inst: Instruction) -> None:
        """SHR Vx - VF = シフトアウトしたLSB"""
        x, y = inst.operands
        value = self.regs.v[y if self.quirks.shift_uses_vy else x]
        self.regs.v[x] = value >> 1
        self.regs.vf = value & 0x01

    def _op_shl(self, inst: Instruction) -> None:
        """SHL Vx - VF = シフトアウトしたMSB"""
        x, y = inst.operands
        value = self.regs.v[y if self.quirks.shift_uses_vy else x]
        self.regs.v[x] = (value << 1) & 0xFF
        self.regs.vf = (value >> 7) & 0x01

    def _op_rnd(self, inst: Instruction) -> None:
        """RND Vx, kk - 乱数とマスクのAND"""
        x, kk = inst.operands
        self.regs.v[x] = self.rng.randint(0, 0xFF) & kk

    def _op_add_i(self, inst: Instruction) -> None:
        """ADD I, Vx (フラグ変化なし)"""
        self.regs.i = (self.regs.i + self.regs.v[inst.operands[0]]) & 0xFFFF

    def _op_ld_font(self, inst: Instruction) -> None:
        """LD F, Vx - フォントグリフのアドレス"""
        self.regs.i = FONT_GLYPH_SIZE * self.regs.v[inst.operands[0]]

    def _op_ld_bcd(self, inst: Instruction) -> None:
        """LD B, Vx - 10進3桁を I, I+1, I+2 へ"""
        value = self.regs.v[inst.operands[0]]
        i = self.regs.i
        self.memory.write8(i, value // 100)
        self.memory.write8(i + 1, (value // 10) % 10)
        self.memory.write8(i + 2, value % 10)

    def _op_store_regs(self, inst: Instruction) -> None:
        """LD [I], Vx - V0..Vx をメモリへ"""
        x = inst.operands[0]
        for reg in range(x + 1):
            self.memory.write8(self.regs.i + reg, self.regs.v[reg])
        self._post_block_transfer(x)

    def _op_load_regs(self, inst: Instruction) -> None:
        """LD Vx, [I] - メモリから V0..Vx へ"""
        x = inst.operands[0]
        for reg in range(x + 1):
            self.regs.v[reg] = self.memory.read8(self.regs.i + reg)
        self._post_block_transfer(x)

    def _post_block_transfer(self, x: int) -> None:
        if self.quirks.load_store_increments_index:
            self.regs.i = (self.regs.i + x + 1) & 0xFFFF

    def _op_draw(self, inst: Instruction) -> None:
        """DRW Vx, Vy, n - スプライトのXOR描画

        横方向ははみ出したビットを捨て (クリップ)、縦方向は
        バッファ長を超えたオフセットを64で割った余りに折り返す。
        """
        x, y, height = inst.operands
        column = self.regs.v[x] % SCREEN_WIDTH
        top = self.regs.v[y] % SCREEN_HEIGHT
        collided = False

        for row_index in range(height):
            row = top + row_index
            if row >= SCREEN_HEIGHT and self.quirks.clip_sprites_vertically:
                break

            sprite = self.memory.read8(self.regs.i + row_index)
            for bit in range(8):
                col = column + bit
                if col >= SCREEN_WIDTH:
                    break
                if not sprite & (0x80 >> bit):
                    continue

                offset = row * SCREEN_WIDTH + col
                if offset >= SCREEN_SIZE:
                    offset %= SCREEN_WIDTH
                if self.display.xor_pixel(offset):
                    collided = True

        self.regs.vf = int(collided)

    def get_state(self) -> dict:
        """CPU状態を辞書形式で取得"""
        return {
            'state': self.state.name,
            'pc': self.regs.pc,
            'i': self.regs.i,
            'sp': self.regs.sp,
            'stack': list(self.regs.stack[1:self.regs.sp + 1]),
            'delay_timer': self.regs.delay_timer,
            'sound_timer': self.regs.sound_timer,
            'registers': {f'V{n:X}': self.regs.v[n] for n in range(16)},
            'instructions': self.instruction_count,
            'last_result': self.last_result.describe(),
        }
