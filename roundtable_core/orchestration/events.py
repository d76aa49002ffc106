"""编排运行对外发出的事件。

调用方（UI/会话层）通过 EventChannel.subscribe() 订阅，不需要直接持有函数引用；
测试中可以订阅一个 list.append 来断言事件序列。

kind:
    - "run_started": 运行开始，携带触发 Turn（总结运行时为 None）。
    - "turn_starting": 某个角色开始生成，携带其显示名，仅用于可视化。
    - "turn_appended": 一条角色发言成功追加（预览更新通知）。
    - "run_completed": 队列全部消费完毕，携带本次追加的全部 Turn。
    - "run_aborted": 分发失败导致中断，携带本次追加的全部 Turn（含失败提示）与错误摘要。
"""

from dataclasses import dataclass, field
from typing import Callable, List, Literal, Optional

from roundtable_core.domain.models import Turn

EventKind = Literal["run_started", "turn_starting", "turn_appended", "run_completed", "run_aborted"]


@dataclass
class RunEvent:
    kind: EventKind
    run_id: str
    persona_name: Optional[str] = None
    turn: Optional[Turn] = None
    turns: List[Turn] = field(default_factory=list)
    error: Optional[str] = None


Subscriber = Callable[[RunEvent], None]


class EventChannel:
    """同步的事件通道：emit 时按订阅顺序依次回调。"""

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """订阅事件，返回取消订阅函数。"""

        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def emit(self, event: RunEvent) -> None:
        for callback in list(self._subscribers):
            callback(event)
