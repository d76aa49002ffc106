from roundtable_core.domain.models import Persona, ProviderBinding, Turn


def make_persona(pid: str, provider: str = "deepseek", model: str = "") -> Persona:
    return Persona(
        id=pid,
        name=f"name-{pid}",
        role="tester",
        system_instruction=f"instruction for {pid}",
        binding=ProviderBinding(provider=provider, model_id=model or None),
    )


class FakeDispatcher:
    """按调用顺序返回预设结果（字符串或异常），并记录每次调用时上下文的长度。"""

    def __init__(self, outcomes=None):
        self.outcomes = dict(outcomes or {})
        self.calls = []

    def generate(self, persona, trigger_text, context, provider_settings, *, continuation=True, log_ctx=None):
        self.calls.append(
            {
                "persona": persona.id,
                "trigger": trigger_text,
                "context_len": len(context),
                "continuation": continuation,
            }
        )
        outcome = self.outcomes.get(len(self.calls) - 1)
        if isinstance(outcome, Exception):
            raise outcome
        text = outcome or f"reply {len(self.calls)} from {persona.id}"
        return Turn(speaker_id=persona.id, speaker_name=persona.name, text=text)


class FakeResponse:
    def __init__(self, payload=None, status_code=200, text=""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


def fake_httpx_client(responses, captured):
    """返回一个替换 httpx.Client 的桩类：按顺序返回 responses，记录每次 post 的 url/json/headers。"""

    queue = list(responses)

    class Client:
        def __init__(self, *a, **kw):
            captured.setdefault("client_kwargs", []).append(kw)

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, **_):
            captured.setdefault("calls", []).append({"url": url, "json": json, "headers": headers})
            item = queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

    return Client
