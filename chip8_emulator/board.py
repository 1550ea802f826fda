"""
仮想CHIP-8ボードモデル

実機相当のI/O表現:
- 16キーの16進キーパッド
- ブザー (サウンドタイマ連動)
- ホストキーボードとの対応表
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class KeyState(IntEnum):
    """キー状態"""
    RELEASED = 0
    PRESSED = 1


class BuzzerState(IntEnum):
    """ブザー状態"""
    SILENT = 0
    PLAYING = 1


class KeyInput(Protocol):
    """CPUが参照する入力インタフェース"""

    def is_key_down(self, key: int) -> bool:
        ...

    def first_key_down(self) -> Optional[int]:
        ...


# COSMAC VIP配列 → ホストキーボード
#   1 2 3 C      1 2 3 4
#   4 5 6 D  →   Q W E R
#   7 8 9 E      A S D F
#   A 0 B F      Z X C V
DEFAULT_KEYMAP: Dict[str, int] = {
    '1': 0x1, '2': 0x2, '3': 0x3, '4': 0xC,
    'q': 0x4, 'w': 0x5, 'e': 0x6, 'r': 0xD,
    'a': 0x7, 's': 0x8, 'd': 0x9, 'f': 0xE,
    'z': 0xA, 'x': 0x0, 'c': 0xB, 'v': 0xF,
}


@dataclass
class Key:
    """キー定義"""
    index: int
    state: KeyState = KeyState.RELEASED


class VirtualKeypad:
    """
    仮想16進キーパッド

    押下状態の保持のみを行い、CPUからは問い合わせだけを受ける
    """

    def __init__(self):
        self.keys: List[Key] = [Key(i) for i in range(16)]
        self.key_change_callbacks: List[Callable] = []

    def _notify(self, key: Key) -> None:
        for callback in self.key_change_callbacks:
            callback(key.index, key.state)

    def press(self, index: int) -> None:
        """キーを押す"""
        key = self.keys[index & 0xF]
        key.state = KeyState.PRESSED
        self._notify(key)

    def release(self, index: int) -> None:
        """キーを離す"""
        key = self.keys[index & 0xF]
        key.state = KeyState.RELEASED
        self._notify(key)

    def toggle(self, index: int) -> None:
        if self.keys[index & 0xF].state == KeyState.PRESSED:
            self.release(index)
        else:
            self.press(index)

    def release_all(self) -> None:
        for key in self.keys:
            key.state = KeyState.RELEASED

    def is_key_down(self, key: int) -> bool:
        """キーKが押されているか (範囲外はFalse)"""
        if not 0 <= key < 16:
            return False
        return self.keys[key].state == KeyState.PRESSED

    def first_key_down(self) -> Optional[int]:
        """押されているキーのうち最小の番号"""
        for key in self.keys:
            if key.state == KeyState.PRESSED:
                return key.index
        return None

    def register_callback(self, callback: Callable) -> None:
        """キー変更コールバックを登録"""
        self.key_change_callbacks.append(callback)

    def get_display(self) -> str:
        """キーパッド表示用文字列 (CLI表示用)"""
        layout = [[0x1, 0x2, 0x3, 0xC],
                  [0x4, 0x5, 0x6, 0xD],
                  [0x7, 0x8, 0x9, 0xE],
                  [0xA, 0x0, 0xB, 0xF]]
        lines = []
        for row in layout:
            lines.append(' '.join(
                f"[{k:X}]" if self.is_key_down(k) else f" {k:X} " for k in row
            ))
        return '\n'.join(lines)


class Buzzer:
    """
    ブザー

    サウンドタイマが非0の間だけ鳴る。実際の発音は外部オーディオ層に委ねる。
    """

    def __init__(self):
        self.state = BuzzerState.SILENT
        self.change_callbacks: List[Callable] = []

    def update(self, sound_timer: int) -> bool:
        """サウンドタイマ値から状態を更新し、変化したらTrue"""
        new_state = BuzzerState.PLAYING if sound_timer > 0 else BuzzerState.SILENT
        changed = new_state != self.state
        self.state = new_state
        if changed:
            logger.debug(f"Buzzer {new_state.name}")
            for callback in self.change_callbacks:
                callback(new_state)
        return changed

    def register_callback(self, callback: Callable) -> None:
        self.change_callbacks.append(callback)

    @property
    def playing(self) -> bool:
        return self.state == BuzzerState.PLAYING


class VirtualBoard:
    """
    仮想CHIP-8ボード

    キーパッドとブザー、ホストキー対応表をまとめる
    """

    def __init__(self, keymap: Optional[Dict[str, int]] = None):
        self.keypad = VirtualKeypad()
        self.buzzer = Buzzer()
        self.keymap: Dict[str, int] = dict(keymap or DEFAULT_KEYMAP)

    def key_for_char(self, char: str) -> Optional[int]:
        """ホストキーからキーパッド番号を取得"""
        return self.keymap.get(char.lower())

    def press_key(self, key: int) -> None:
        self.keypad.press(key)

    def release_key(self, key: int) -> None:
        self.keypad.release(key)

    def get_state(self) -> dict:
        """ボード状態を取得"""
        return {
            'keys': {
                f'{key.index:X}': key.state.name
                for key in self.keypad.keys
            },
            'buzzer': self.buzzer.state.name,
        }

    def reset(self) -> None:
        """ボードをリセット"""
        self.keypad.release_all()
        self.buzzer.update(0)
