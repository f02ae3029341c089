"""Mode gate that time-multiplexes pipelines sharing one output stream."""

from __future__ import annotations

from .table import Entry

SWITCH_KEY = "PumpkinSwitch"
DEFAULT_SIGNAL = 0.0


def should_run(signal_value: float, expected_value: float) -> bool:
    return signal_value == expected_value


class ModeGate:
    """共有テーブルの切り替え信号を毎フレーム読み、処理を行うかを判定する。

    Args:
        entry: 切り替え信号のエントリ。
        expected_value: このパイプラインが動作する信号値。
        default: 信号が存在しない場合に使う値。
    """

    def __init__(self, entry: Entry, expected_value: float, default: float = DEFAULT_SIGNAL) -> None:
        self.entry = entry
        self.expected_value = expected_value
        self.default = default

    def is_open(self) -> bool:
        return should_run(self.entry.get_number(self.default), self.expected_value)
