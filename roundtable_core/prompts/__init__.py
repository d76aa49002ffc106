"""群聊 prompt 拼装工具。

两种调用约定共用同一套规则：告诉模型它正在群聊中扮演指定角色，
不要重复别人的观点，保持口语化，并把回复控制在固定字数以内。
"""

import json
from typing import Iterable, List, Sequence

from roundtable_core.domain.models import Persona, Turn

# 单条回复的字数上限，不对外开放配置
MAX_REPLY_CHARS = 200

SUMMARY_INSTRUCTION = "请对上述所有讨论进行总结，提炼出核心观点和结论。"

USER_LABEL = "用户(User)"

CHAT_NAME_HISTORY_LIMIT = 20


def persona_system_instruction(persona: Persona, *, with_style: bool = True) -> str:
    """角色的系统指令。

    with_style=False 时只包含身份与性格（原生约定把表达要求放在正文 prompt 里）。
    """

    text = f'你正在扮演一个叫 "{persona.name}" 的角色参与群聊。你的性格设定是: {persona.system_instruction}'
    if not with_style:
        return text
    return (
        f"{text}. 不要重复别人的话，要有自己的观点，保持口语化。"
        f"请用中文回复，字数控制在{MAX_REPLY_CHARS}字以内。"
    )


def speaker_label(turn: Turn) -> str:
    return USER_LABEL if turn.is_user else (turn.speaker_name or "Unknown AI")


def prompt_turns(turns: Iterable[Turn]) -> List[Turn]:
    """参与 prompt 拼装的 Turn：系统提示（例如中断通知）不发给模型。"""

    return [t for t in turns if not t.is_system]


def render_history(turns: Iterable[Turn]) -> str:
    return "\n".join(f"{speaker_label(t)}: {t.text}" for t in prompt_turns(turns))


def self_reference_instruction(trigger_text: str, previous: Sequence[str]) -> str:
    """角色在本轮讨论中已发言过时追加的连续发言指令；没有历史发言时返回空串。"""

    if not previous:
        return ""
    return (
        "[特别指令 / Special Instruction]\n"
        f'检测到你在当前针对用户问题 "{trigger_text}" 的讨论中，已经有过 {len(previous)} 次发言。\n'
        f"你之前的发言内容是: {json.dumps(list(previous), ensure_ascii=False)}\n"
        "此次发言必须遵守以下规则：\n"
        f'1. 继续回应用户的提问 "{trigger_text}"。\n'
        "2. 必须回应或结合你自己之前的发言，进行补充、延伸或连贯的逻辑阐述。\n"
        "3. 语气要自然，模拟在群聊中连续发送多条消息的感觉（例如：“另外...”、“还有就是...”）。\n"
        "4. 不要单纯重复你之前已经说过的观点。"
    )


def native_prompt(persona: Persona, trigger_text: str, turns: Iterable[Turn], self_reference: str = "") -> str:
    """原生约定使用的整段 prompt 文本。"""

    sections = [
        "这是一个多人聊天室的场景。",
        f"历史聊天记录:\n{render_history(turns)}",
        f'用户刚才提问: "{trigger_text}"',
    ]
    if self_reference:
        sections.append(self_reference)
    sections.append("轮到你发言了。")
    sections.append(f"请记住你的设定: {persona.system_instruction}")
    sections.append(
        "请根据前文的讨论，以你的角色回复。不要重复别人的话，要有自己的观点。"
        f"保持口语化，像在群聊一样。字数控制在{MAX_REPLY_CHARS}字以内。"
    )
    return "\n\n".join(sections)


def chat_name_prompt(turns: Sequence[Turn]) -> str:
    history = "\n".join(
        f"{'用户' if t.is_user else (t.speaker_name or 'AI')}: {t.text}" for t in prompt_turns(turns)
    )
    return (
        "请阅读以下聊天记录，并生成一个简洁的群聊名称。\n\n"
        "要求：\n"
        "1. 必须精准反映聊天的主题。\n"
        "2. 字数严格限制在 3 到 10 个汉字之间。\n"
        "3. 只返回名称，不要包含任何标点符号、引号或解释性文字。\n\n"
        f"聊天记录:\n{history}"
    )
