"""只追加的会话上下文。"""

from typing import Iterable, Iterator, List, Optional, Sequence

from roundtable_core.domain.models import Turn


class ConversationContext:
    """按时间顺序排列的 Turn 日志，作为每次生成调用的 prompt 基础。

    运行期间只允许追加，不允许重排或原地修改。
    baseline 记录运行开始时的长度，suffix() 返回本次运行追加的部分。
    """

    def __init__(self, turns: Optional[Iterable[Turn]] = None):
        self._turns: List[Turn] = list(turns or [])
        self._baseline = len(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    @property
    def turns(self) -> Sequence[Turn]:
        return tuple(self._turns)

    @property
    def last(self) -> Optional[Turn]:
        return self._turns[-1] if self._turns else None

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)

    def mark_baseline(self) -> None:
        self._baseline = len(self._turns)

    def suffix(self) -> List[Turn]:
        return self._turns[self._baseline:]

    def since_last_user(self, speaker_id: str) -> List[Turn]:
        """返回最近一条用户消息之后由 speaker_id 发出的 Turn；没有用户消息时为空。"""

        for idx in range(len(self._turns) - 1, -1, -1):
            if self._turns[idx].is_user:
                return [t for t in self._turns[idx + 1:] if t.speaker_id == speaker_id]
        return []

    def recent(self, limit: int) -> List[Turn]:
        return self._turns[-limit:] if limit > 0 else []
