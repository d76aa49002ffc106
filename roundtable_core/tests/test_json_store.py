import tempfile
from pathlib import Path

import pytest

from roundtable_core.domain.exceptions import BusinessError
from roundtable_core.domain.models import Turn
from roundtable_core.infrastructure.storage.json_store import JsonTurnStore


def test_append_and_load_preserves_order_and_fields():
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonTurnStore(root=tmp)
        turns = [
            Turn.from_user("你好"),
            Turn(speaker_id="a", speaker_name="name-a", text="嗨", meta={"provider": "deepseek"}),
            Turn.system_notice("连接异常，会议中断。"),
        ]
        store.append_turns("chat-1", turns[:2])
        store.append_turns("chat-1", turns[2:])

        loaded = store.load_turns("chat-1")
        assert loaded == turns
        assert loaded[2].is_system
        assert store.load_turns("chat-unknown") == []


def test_corrupt_lines_are_skipped():
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonTurnStore(root=tmp)
        store.append_turns("c", [Turn.from_user("ok")])
        path = Path(tmp) / "chats" / "c" / "turns.jsonl"
        with path.open("a", encoding="utf-8") as f:
            f.write("{not json\n")
        store.append_turns("c", [Turn.from_user("still ok")])
        assert [t.text for t in store.load_turns("c")] == ["ok", "still ok"]


def test_preview_and_clear():
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonTurnStore(root=tmp)
        assert store.get_chat("c").last_message == ""
        store.append_turns("c", [Turn.from_user("hi")])
        store.update_preview("c", "hi")
        assert store.get_chat("c").last_message == "hi"

        store.clear_turns("c")
        assert store.load_turns("c") == []
        assert store.get_chat("c").last_message == ""


def test_rejects_path_traversal():
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonTurnStore(root=tmp)
        with pytest.raises(BusinessError) as exc_info:
            store.load_turns("../outside")
        assert exc_info.value.code == "INVALID_CHAT_ID"
