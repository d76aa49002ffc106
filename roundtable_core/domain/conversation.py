from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Protocol

from .models import Turn


@dataclass
class ChatRecord:
    id: str
    last_message: str
    updated_at: datetime
    meta: Dict[str, Any]


class TurnStore(Protocol):
    def get_chat(self, chat_id: str) -> ChatRecord:
        ...

    def load_turns(self, chat_id: str) -> List[Turn]:
        ...

    def append_turns(self, chat_id: str, turns: Iterable[Turn]) -> None:
        ...

    def update_preview(self, chat_id: str, text: str) -> None:
        ...

    def clear_turns(self, chat_id: str) -> None:
        ...
