"""
ディスプレイモジュール

64x32 モノクロフレームバッファ
- 画面クリア / XOR描画のみが内容を変更する
- 外部レンダラ向けに読み取り専用ビューを公開
"""

from typing import List

SCREEN_WIDTH = 64
SCREEN_HEIGHT = 32
SCREEN_SIZE = SCREEN_WIDTH * SCREEN_HEIGHT


class Display:
    """
    フレームバッファ

    1ピクセル1バイト (0 = 消灯, 非0 = 点灯) の線形バッファ
    """

    PIXEL_ON = "█"
    PIXEL_OFF = " "

    def __init__(self):
        self._pixels = bytearray(SCREEN_SIZE)

        # 再描画が必要か (ホストが描画後にクリアする)
        self.dirty: bool = True

    @property
    def buffer(self) -> memoryview:
        """読み取り専用バッファ"""
        return memoryview(self._pixels).toreadonly()

    def clear(self) -> None:
        """全ピクセル消灯"""
        self._pixels[:] = bytes(SCREEN_SIZE)
        self.dirty = True

    def xor_pixel(self, offset: int) -> bool:
        """ピクセルをXOR反転し、点灯→消灯になった場合Trueを返す"""
        collided = self._pixels[offset] != 0
        self._pixels[offset] ^= 1
        self.dirty = True
        return collided

    def pixel(self, x: int, y: int) -> int:
        return self._pixels[y * SCREEN_WIDTH + x]

    def rows(self) -> List[bytes]:
        """行単位のピクセル列"""
        return [
            bytes(self._pixels[row * SCREEN_WIDTH:(row + 1) * SCREEN_WIDTH])
            for row in range(SCREEN_HEIGHT)
        ]

    def lit_count(self) -> int:
        return sum(1 for p in self._pixels if p)

    def render_text(self, on: str = PIXEL_ON, off: str = PIXEL_OFF) -> str:
        """ASCII表示 (CLI用)"""
        return '\n'.join(
            ''.join(on if p else off for p in row)
            for row in self.rows()
        )

    def reset(self) -> None:
        self.clear()
