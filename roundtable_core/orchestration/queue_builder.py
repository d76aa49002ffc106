"""发言队列构建。

纯函数：(成员名单, 成员设置, 策略, 固定顺序) -> 有序的发言队列，无 I/O、无副作用。

- fixed: 先按 fixed_order（剔除已不在名单中的 ID），再追加名单中未出现在
  fixed_order 里的新成员；每个角色按 reply_count 连续出现（A, A, B）。
- random: 与 fixed 相同的 (角色 × reply_count) 实例集合，整体做一次均匀洗牌。
- auto_discussion: 忽略 reply_count，每个成员固定 2 次，整体均匀洗牌。
"""

import random
from typing import List, Mapping, Optional, Protocol, Sequence

from roundtable_core.domain.exceptions import ValidationError
from roundtable_core.domain.models import (
    ORDERING_POLICIES,
    MemberSettings,
    OrderingPolicy,
    Persona,
    SpeechQueueEntry,
)

AUTO_DISCUSSION_TURNS = 2


class RandomSource(Protocol):
    def randrange(self, stop: int) -> int:
        ...


def reply_count(member_settings: Mapping[str, MemberSettings], persona_id: str) -> int:
    """成员的发言次数；未配置时为 1，小于 1 的值按 1 处理。"""

    cfg = member_settings.get(persona_id)
    if cfg is None:
        return 1
    return max(1, int(cfg.reply_count or 1))


def fisher_yates(items: List, rng: RandomSource) -> List:
    """原地均匀洗牌并返回同一个列表。"""

    for i in range(len(items) - 1, 0, -1):
        j = rng.randrange(i + 1)
        items[i], items[j] = items[j], items[i]
    return items


def _unique_members(roster: Sequence[Persona]) -> List[Persona]:
    """按 ID 去重，保留首次出现的位置。"""

    members: List[Persona] = []
    seen = set()
    for persona in roster:
        if persona.id not in seen:
            members.append(persona)
            seen.add(persona.id)
    return members


def _ordered_roster(roster: Sequence[Persona], fixed_order: Sequence[str]) -> List[Persona]:
    by_id = {p.id: p for p in roster}
    ordered: List[Persona] = []
    seen = set()
    for pid in fixed_order:
        if pid in by_id and pid not in seen:
            ordered.append(by_id[pid])
            seen.add(pid)
    for persona in roster:
        if persona.id not in seen:
            ordered.append(persona)
            seen.add(persona.id)
    return ordered


def build_speech_queue(
    roster: Sequence[Persona],
    member_settings: Mapping[str, MemberSettings],
    policy: OrderingPolicy,
    fixed_order: Sequence[str] = (),
    rng: Optional[RandomSource] = None,
) -> List[SpeechQueueEntry]:
    """构建本次触发的发言队列。

    Args:
        roster: 已解析的成员角色（名单顺序）。
        member_settings: 以角色 ID 为键的成员设置；不在名单中的键会被忽略。
        policy: "fixed" / "random" / "auto_discussion"。
        fixed_order: 仅 fixed 策略使用的显式顺序。
        rng: 随机源，测试时可注入固定种子的 random.Random 或桩对象。

    Returns:
        SpeechQueueEntry 列表；名单为空时返回空列表。
    """

    if policy not in ORDERING_POLICIES:
        raise ValidationError(code="UNKNOWN_ORDERING_POLICY", message=f"Unknown ordering policy: {policy!r}")
    if not roster:
        return []

    roster = _unique_members(roster)

    if policy == "auto_discussion":
        personas = [p for p in roster for _ in range(AUTO_DISCUSSION_TURNS)]
        fisher_yates(personas, rng or random.SystemRandom())
    elif policy == "random":
        personas = [p for p in roster for _ in range(reply_count(member_settings, p.id))]
        fisher_yates(personas, rng or random.SystemRandom())
    else:
        personas = [
            p
            for p in _ordered_roster(roster, fixed_order)
            for _ in range(reply_count(member_settings, p.id))
        ]

    return [SpeechQueueEntry(persona=p, position=i) for i, p in enumerate(personas)]
