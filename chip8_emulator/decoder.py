"""
命令デコーダモジュール

16ビット命令ワードをタグ付き命令記述子へ変換する純粋関数群

フィールド抽出規約:
- 上位ニブル: 命令ファミリ
- 第2ニブル: レジスタ番号 x
- 第3ニブル: レジスタ番号 y
- 下位バイト / 下位ニブル: 即値またはサブオペコード
- 下位12ビット: アドレス nnn
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Tuple, Union


class Opcode(Enum):
    """命令タグ (35種)"""
    SYS = "SYS"                  # 0nnn
    CLS = "CLS"                  # 00E0
    RET = "RET"                  # 00EE
    JP = "JP"                    # 1nnn
    CALL = "CALL"                # 2nnn
    SE_BYTE = "SE_BYTE"          # 3xkk
    SNE_BYTE = "SNE_BYTE"        # 4xkk
    SE_REG = "SE_REG"            # 5xy0
    LD_BYTE = "LD_BYTE"          # 6xkk
    ADD_BYTE = "ADD_BYTE"        # 7xkk
    LD_REG = "LD_REG"            # 8xy0
    OR = "OR"                    # 8xy1
    AND = "AND"                  # 8xy2
    XOR = "XOR"                  # 8xy3
    ADD_REG = "ADD_REG"          # 8xy4
    SUB = "SUB"                  # 8xy5
    SHR = "SHR"                  # 8xy6
    SUBN = "SUBN"                # 8xy7
    SHL = "SHL"                  # 8xyE
    SNE_REG = "SNE_REG"          # 9xy0
    LD_I = "LD_I"                # Annn
    JP_V0 = "JP_V0"              # Bnnn
    RND = "RND"                  # Cxkk
    DRW = "DRW"                  # Dxyn
    SKP = "SKP"                  # Ex9E
    SKNP = "SKNP"                # ExA1
    LD_VX_DT = "LD_VX_DT"        # Fx07
    LD_VX_K = "LD_VX_K"          # Fx0A
    LD_DT_VX = "LD_DT_VX"        # Fx15
    LD_ST_VX = "LD_ST_VX"        # Fx18
    ADD_I = "ADD_I"              # Fx1E
    LD_F = "LD_F"                # Fx29
    LD_B = "LD_B"                # Fx33
    LD_MEM_REGS = "LD_MEM_REGS"  # Fx55
    LD_REGS_MEM = "LD_REGS_MEM"  # Fx65


class LoadTarget(IntEnum):
    """ロード系命令の書き込み先"""
    REGISTER = 0
    DELAY_TIMER = 1
    SOUND_TIMER = 2


@dataclass(frozen=True)
class Instruction:
    """デコード済み命令

    operands はオペコードごとに以下の形:
    - (nnn,)          : SYS, JP, CALL, LD_I, JP_V0
    - (x, kk)         : SE_BYTE, SNE_BYTE, LD_BYTE, ADD_BYTE, RND
    - (x, y)          : SE_REG, SNE_REG, LD_REG, OR, AND, XOR, ADD_REG, SUB, SUBN, SHR, SHL
    - (x, y, n)       : DRW
    - (x,)            : SKP, SKNP, LD_VX_DT, LD_VX_K, LD_DT_VX, LD_ST_VX, ADD_I, LD_F, LD_B,
                        LD_MEM_REGS, LD_REGS_MEM
    - ()              : CLS, RET
    """
    opcode: Opcode
    operands: Tuple[int, ...]
    word: int

    @property
    def target(self) -> LoadTarget:
        """ロード系命令の書き込み先"""
        return _LOAD_TARGETS.get(self.opcode, LoadTarget.REGISTER)


@dataclass(frozen=True)
class UnknownOpcode:
    """デコード失敗"""
    word: int


DecodeResult = Union[Instruction, UnknownOpcode]


_LOAD_TARGETS = {
    Opcode.LD_DT_VX: LoadTarget.DELAY_TIMER,
    Opcode.LD_ST_VX: LoadTarget.SOUND_TIMER,
}

_ALU_OPS = {
    0x0: Opcode.LD_REG,
    0x1: Opcode.OR,
    0x2: Opcode.AND,
    0x3: Opcode.XOR,
    0x4: Opcode.ADD_REG,
    0x5: Opcode.SUB,
    0x6: Opcode.SHR,
    0x7: Opcode.SUBN,
    0xE: Opcode.SHL,
}

_KEY_OPS = {
    0x9E: Opcode.SKP,
    0xA1: Opcode.SKNP,
}

_MISC_OPS = {
    0x07: Opcode.LD_VX_DT,
    0x0A: Opcode.LD_VX_K,
    0x15: Opcode.LD_DT_VX,
    0x18: Opcode.LD_ST_VX,
    0x1E: Opcode.ADD_I,
    0x29: Opcode.LD_F,
    0x33: Opcode.LD_B,
    0x55: Opcode.LD_MEM_REGS,
    0x65: Opcode.LD_REGS_MEM,
}


def decode(word: int) -> DecodeResult:
    """命令ワードをデコード (状態の変更なし)"""
    word &= 0xFFFF
    family = (word & 0xF000) >> 12
    x = (word & 0x0F00) >> 8
    y = (word & 0x00F0) >> 4
    n = word & 0x000F
    kk = word & 0x00FF
    nnn = word & 0x0FFF

    if family == 0x0:
        if word == 0x00E0:
            return Instruction(Opcode.CLS, (), word)
        if word == 0x00EE:
            return Instruction(Opcode.RET, (), word)
        return Instruction(Opcode.SYS, (nnn,), word)

    if family == 0x1:
        return Instruction(Opcode.JP, (nnn,), word)
    if family == 0x2:
        return Instruction(Opcode.CALL, (nnn,), word)
    if family == 0x3:
        return Instruction(Opcode.SE_BYTE, (x, kk), word)
    if family == 0x4:
        return Instruction(Opcode.SNE_BYTE, (x, kk), word)
    if family == 0x5:
        return Instruction(Opcode.SE_REG, (x, y), word)
    if family == 0x6:
        return Instruction(Opcode.LD_BYTE, (x, kk), word)
    if family == 0x7:
        return Instruction(Opcode.ADD_BYTE, (x, kk), word)
    if family == 0x8:
        opcode = _ALU_OPS.get(n)
        if opcode is None:
            return UnknownOpcode(word)
        return Instruction(opcode, (x, y), word)
    if family == 0x9:
        return Instruction(Opcode.SNE_REG, (x, y), word)
    if family == 0xA:
        return Instruction(Opcode.LD_I, (nnn,), word)
    if family == 0xB:
        return Instruction(Opcode.JP_V0, (nnn,), word)
    if family == 0xC:
        return Instruction(Opcode.RND, (x, kk), word)
    if family == 0xD:
        return Instruction(Opcode.DRW, (x, y, n), word)
    if family == 0xE:
        opcode = _KEY_OPS.get(kk)
        if opcode is None:
            return UnknownOpcode(word)
        return Instruction(opcode, (x,), word)

    # 0xF
    opcode = _MISC_OPS.get(kk)
    if opcode is None:
        return UnknownOpcode(word)
    return Instruction(opcode, (x,), word)


def format_instruction(result: DecodeResult) -> str:
    """ニーモニック表記に変換"""
    if isinstance(result, UnknownOpcode):
        return f"DW 0x{result.word:04X}"

    op = result.opcode
    args = result.operands

    if op in (Opcode.CLS, Opcode.RET):
        return op.value
    if op in (Opcode.SYS, Opcode.JP, Opcode.CALL):
        return f"{op.value} 0x{args[0]:03X}"
    if op == Opcode.LD_I:
        return f"LD I, 0x{args[0]:03X}"
    if op == Opcode.JP_V0:
        return f"JP V0, 0x{args[0]:03X}"
    if op in (Opcode.SE_BYTE, Opcode.SNE_BYTE, Opcode.LD_BYTE, Opcode.ADD_BYTE, Opcode.RND):
        mnemonic = op.value.split('_')[0]
        return f"{mnemonic} V{args[0]:X}, 0x{args[1]:02X}"
    if op in (Opcode.SHR, Opcode.SHL):
        return f"{op.value} V{args[0]:X}, V{args[1]:X}"
    if op == Opcode.DRW:
        return f"DRW V{args[0]:X}, V{args[1]:X}, {args[2]}"
    if len(args) == 2:
        mnemonic = op.value.split('_')[0]
        return f"{mnemonic} V{args[0]:X}, V{args[1]:X}"

    x = args[0]
    single = {
        Opcode.SKP: f"SKP V{x:X}",
        Opcode.SKNP: f"SKNP V{x:X}",
        Opcode.LD_VX_DT: f"LD V{x:X}, DT",
        Opcode.LD_VX_K: f"LD V{x:X}, K",
        Opcode.LD_DT_VX: f"LD DT, V{x:X}",
        Opcode.LD_ST_VX: f"LD ST, V{x:X}",
        Opcode.ADD_I: f"ADD I, V{x:X}",
        Opcode.LD_F: f"LD F, V{x:X}",
        Opcode.LD_B: f"LD B, V{x:X}",
        Opcode.LD_MEM_REGS: f"LD [I], V{x:X}",
        Opcode.LD_REGS_MEM: f"LD V{x:X}, [I]",
    }
    return single[op]
