import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List
from uuid import uuid4

from roundtable_core.config.settings import settings
from roundtable_core.domain.conversation import ChatRecord, TurnStore
from roundtable_core.domain.exceptions import BusinessError
from roundtable_core.domain.models import Turn
from roundtable_core.infrastructure.logging.logger import logger


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_dt(raw: str) -> datetime:
    return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))


class JsonTurnStore(TurnStore):
    """每个群聊一个目录：turns.jsonl 追加写发言，meta.json 保存预览等元数据。"""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._chat_root = self._root / "chats"
        self._chat_root.mkdir(parents=True, exist_ok=True)

    def get_chat(self, chat_id: str) -> ChatRecord:
        cdir = self._chat_dir(chat_id)
        meta_path = cdir / "meta.json"
        if not meta_path.exists():
            return ChatRecord(id=chat_id, last_message="", updated_at=datetime.now(timezone.utc), meta={})
        try:
            data = json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        return ChatRecord(
            id=data["id"],
            last_message=data.get("last_message") or "",
            updated_at=_parse_dt(data["updated_at"]),
            meta=data.get("meta") or {},
        )

    def load_turns(self, chat_id: str) -> List[Turn]:
        msgs_path = self._chat_dir(chat_id) / "turns.jsonl"
        items: List[Turn] = []
        if not msgs_path.exists():
            return items
        try:
            lines = msgs_path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        for line in lines:
            if not line.strip():
                continue
            try:
                items.append(self._to_turn(json.loads(line)))
            except (ValueError, KeyError):
                logger.warning("store.skip_corrupt_line", extra={"extra": {"chat_id": chat_id}})
                continue
        return items

    def append_turns(self, chat_id: str, turns: Iterable[Turn]) -> None:
        cdir = self._chat_dir(chat_id)
        cdir.mkdir(parents=True, exist_ok=True)
        msgs_path = cdir / "turns.jsonl"
        lines = [json.dumps(self._to_payload(t), ensure_ascii=False) for t in turns]
        if not lines:
            return
        try:
            with msgs_path.open("a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
        logger.info("store.append", extra={"extra": {"chat_id": chat_id, "count": len(lines)}})

    def update_preview(self, chat_id: str, text: str) -> None:
        rec = self.get_chat(chat_id)
        rec.last_message = text
        rec.updated_at = datetime.now(timezone.utc)
        self._write_meta(rec)

    def clear_turns(self, chat_id: str) -> None:
        msgs_path = self._chat_dir(chat_id) / "turns.jsonl"
        try:
            if msgs_path.exists():
                msgs_path.unlink()
        except OSError as e:
            raise BusinessError(code="STORE_DELETE_ERROR", message=str(e))
        self.update_preview(chat_id, "")

    def _chat_dir(self, chat_id: str) -> Path:
        cdir = (self._chat_root / chat_id).resolve()
        if cdir.parent != self._chat_root.resolve():
            raise BusinessError(code="INVALID_CHAT_ID", message=chat_id)
        return cdir

    def _write_meta(self, rec: ChatRecord) -> None:
        cdir = self._chat_dir(rec.id)
        cdir.mkdir(parents=True, exist_ok=True)
        meta_path = cdir / "meta.json"
        tmp_path = cdir / f"meta.{uuid4().hex}.json.tmp"
        obj = {
            "id": rec.id,
            "last_message": rec.last_message,
            "updated_at": _iso(rec.updated_at),
            "meta": rec.meta,
        }
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, meta_path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    @staticmethod
    def _to_payload(turn: Turn) -> Dict[str, Any]:
        return {
            "id": turn.id,
            "speaker_id": turn.speaker_id,
            "speaker_name": turn.speaker_name,
            "text": turn.text,
            "timestamp": _iso(turn.timestamp),
            "is_system": turn.is_system,
            "meta": turn.meta,
        }

    @staticmethod
    def _to_turn(data: Dict[str, Any]) -> Turn:
        return Turn(
            id=data["id"],
            speaker_id=data["speaker_id"],
            speaker_name=data.get("speaker_name") or "",
            text=data.get("text") or "",
            timestamp=_parse_dt(data["timestamp"]),
            is_system=bool(data.get("is_system", False)),
            meta=data.get("meta") or {},
        )
