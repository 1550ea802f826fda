"""
メモリモジュール

CHIP-8の4KBアドレス空間を仮想再現
- フォント領域 (0x000-0x04F, 読み取り専用)
- インタプリタ予約領域 (0x050-0x1FF)
- プログラム領域 (0x200-0xFFF)
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional

logger = logging.getLogger(__name__)


# 組み込みフォント (16グリフ x 5バイト)
FONT_SET = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

FONT_GLYPH_SIZE = 5

MEMORY_SIZE = 0x1000
ADDRESS_MASK = 0x0FFF
PROGRAM_START = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_START  # 3584バイト


class Chip8Error(Exception):
    """エミュレータ共通例外"""


class ProgramLoadError(Chip8Error):
    """プログラムロード失敗"""


class MemoryRegion(IntEnum):
    """メモリ領域タイプ"""
    FONT = 0
    INTERPRETER = 1
    PROGRAM = 2


@dataclass
class MemoryBlock:
    """メモリブロック定義"""
    name: str
    start: int
    size: int
    region_type: MemoryRegion
    readonly: bool = False

    @property
    def end(self) -> int:
        return self.start + self.size - 1

    def contains(self, address: int) -> bool:
        return self.start <= address <= self.end


class MemoryController:
    """
    メモリコントローラ

    4096バイトのフラットなアドレス空間を管理する。
    アドレスは常に12ビットでマスクされ、フォント領域への書き込みは無視される。
    """

    def __init__(self):
        self.data = bytearray(MEMORY_SIZE)
        self.blocks: List[MemoryBlock] = [
            MemoryBlock("Font", 0x000, len(FONT_SET), MemoryRegion.FONT, readonly=True),
            MemoryBlock("Interpreter", len(FONT_SET), PROGRAM_START - len(FONT_SET),
                        MemoryRegion.INTERPRETER),
            MemoryBlock("Program", PROGRAM_START, MAX_PROGRAM_SIZE, MemoryRegion.PROGRAM),
        ]
        self.program_size: int = 0
        self._load_font()

    def _load_font(self) -> None:
        """フォントを0x000から書き込む (構築時のみ)"""
        self.data[0:len(FONT_SET)] = FONT_SET

    def _find_block(self, address: int) -> Optional[MemoryBlock]:
        for block in self.blocks:
            if block.contains(address):
                return block
        return None

    def read8(self, address: int) -> int:
        """8ビット読み込み"""
        return self.data[address & ADDRESS_MASK]

    def read16(self, address: int) -> int:
        """16ビット読み込み (ビッグエンディアン)"""
        high = self.read8(address)
        low = self.read8(address + 1)
        return (high << 8) | low

    def write8(self, address: int, value: int) -> None:
        """8ビット書き込み"""
        address = address & ADDRESS_MASK
        block = self._find_block(address)
        if block is not None and block.readonly:
            logger.debug(f"Ignored write to read-only {block.name} at 0x{address:03X}")
            return
        self.data[address] = value & 0xFF

    def load_program(self, image: bytes) -> int:
        """プログラムイメージを0x200からロード

        サイズ超過の場合は何も書き込まずに ProgramLoadError を送出する。
        """
        if len(image) > MAX_PROGRAM_SIZE:
            raise ProgramLoadError(
                f"Program too large: {len(image)} bytes (max {MAX_PROGRAM_SIZE})"
            )
        self.data[PROGRAM_START:PROGRAM_START + len(image)] = image
        self.program_size = len(image)
        return len(image)

    def dump(self, start: int, size: int) -> bytes:
        """メモリ領域をダンプ"""
        return bytes(self.read8(start + i) for i in range(size))

    def dump_hex(self, start: int, size: int, bytes_per_line: int = 16) -> str:
        """メモリを16進ダンプ形式で取得"""
        lines = []
        data = self.dump(start, size)

        for i in range(0, size, bytes_per_line):
            addr = (start + i) & ADDRESS_MASK
            hex_part = ' '.join(f'{b:02X}' for b in data[i:i+bytes_per_line])
            lines.append(f'{addr:03X}: {hex_part}')

        return '\n'.join(lines)

    def reset(self) -> None:
        """フォント以外をゼロクリア"""
        self.data = bytearray(MEMORY_SIZE)
        self.program_size = 0
        self._load_font()

    def get_memory_map(self) -> List[dict]:
        """メモリマップ情報を取得"""
        return [{
            'name': block.name,
            'start': f'0x{block.start:03X}',
            'end': f'0x{block.end:03X}',
            'size': block.size,
            'type': block.region_type.name,
            'readonly': block.readonly
        } for block in self.blocks]
