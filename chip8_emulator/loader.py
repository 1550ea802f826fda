"""
ROMローダーモジュール

CHIP-8のバイナリイメージを0x200からロードする

サポートするフォーマット:
- Raw Binary (.ch8 / .c8 / .bin)
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, TYPE_CHECKING

from .memory import PROGRAM_START, ProgramLoadError

if TYPE_CHECKING:
    from .memory import MemoryController

logger = logging.getLogger(__name__)

ROM_EXTENSIONS = ('.ch8', '.c8', '.bin', '.rom')


@dataclass
class LoadResult:
    """ロード結果"""
    success: bool = False
    entry_point: int = PROGRAM_START
    size: int = 0
    source: str = ""
    errors: List[str] = field(default_factory=list)


class BinaryLoader:
    """
    バイナリローダー

    Raw バイナリをメモリのプログラム領域へロード
    """

    def __init__(self):
        self.memory: Optional['MemoryController'] = None

    def connect_memory(self, memory: 'MemoryController') -> None:
        """メモリコントローラを接続"""
        self.memory = memory

    def load_bytes(self, data: bytes, source: str = "<bytes>") -> LoadResult:
        """バイト列をロード"""
        result = LoadResult(source=source)

        if self.memory is None:
            result.errors.append("Memory not connected")
            return result

        try:
            result.size = self.memory.load_program(bytes(data))
            result.success = True
            logger.info(f"Loaded {result.size} bytes from {source}")
        except ProgramLoadError as e:
            result.errors.append(str(e))
            logger.error(f"Load failed for {source}: {e}")

        return result

    def load_file(self, filepath: str) -> LoadResult:
        """ROMファイルをロード"""
        path = Path(filepath)

        try:
            data = path.read_bytes()
        except OSError as e:
            result = LoadResult(source=str(path))
            result.errors.append(str(e))
            logger.error(f"Cannot read {path}: {e}")
            return result

        if path.suffix.lower() not in ROM_EXTENSIONS:
            logger.debug(f"Unrecognised extension {path.suffix!r}, loading as raw binary")

        return self.load_bytes(data, source=str(path))
