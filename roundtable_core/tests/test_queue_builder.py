import random
from collections import Counter

import pytest

from roundtable_core.domain.exceptions import ValidationError
from roundtable_core.domain.models import MemberSettings
from roundtable_core.orchestration.queue_builder import build_speech_queue, fisher_yates
from roundtable_core.tests.helpers import make_persona

A = make_persona("a")
B = make_persona("b")
C = make_persona("c")


def ids(queue):
    return [e.persona.id for e in queue]


def test_fixed_order_groups_reply_counts():
    settings = {"a": MemberSettings(reply_count=2), "b": MemberSettings(reply_count=1)}
    queue = build_speech_queue([A, B], settings, "fixed", ["a", "b"])
    assert ids(queue) == ["a", "a", "b"]
    assert [e.position for e in queue] == [0, 1, 2]


def test_fixed_order_drops_stale_and_appends_new_members():
    queue = build_speech_queue([A, B, C], {}, "fixed", ["ghost", "b"])
    assert ids(queue) == ["b", "a", "c"]
    assert "ghost" not in ids(queue)


def test_fixed_order_follows_configured_order():
    settings = {"c": MemberSettings(reply_count=3)}
    queue = build_speech_queue([A, B, C], settings, "fixed", ["c", "a", "b"])
    assert ids(queue) == ["c", "c", "c", "a", "b"]


def test_settings_for_non_members_are_ignored():
    settings = {"zzz": MemberSettings(reply_count=5)}
    queue = build_speech_queue([A], settings, "fixed", [])
    assert ids(queue) == ["a"]


def test_reply_count_below_one_is_clamped():
    queue = build_speech_queue([A], {"a": MemberSettings(reply_count=0)}, "fixed", [])
    assert ids(queue) == ["a"]


def test_random_order_preserves_multiset():
    settings = {"a": MemberSettings(reply_count=3), "b": MemberSettings(reply_count=1), "c": MemberSettings(reply_count=2)}
    fixed = build_speech_queue([A, B, C], settings, "fixed", ["a", "b", "c"])
    for seed in range(20):
        shuffled = build_speech_queue([A, B, C], settings, "random", ["a", "b", "c"], rng=random.Random(seed))
        assert Counter(ids(shuffled)) == Counter(ids(fixed))


def test_random_order_is_deterministic_with_seed():
    settings = {"a": MemberSettings(reply_count=2), "b": MemberSettings(reply_count=2)}
    first = build_speech_queue([A, B, C], settings, "random", rng=random.Random(7))
    second = build_speech_queue([A, B, C], settings, "random", rng=random.Random(7))
    assert ids(first) == ids(second)


def test_auto_discussion_ignores_reply_count():
    settings = {"a": MemberSettings(reply_count=5), "b": MemberSettings(reply_count=1)}
    queue = build_speech_queue([A, B, C], settings, "auto_discussion", rng=random.Random(3))
    assert len(queue) == 6
    assert Counter(ids(queue)) == {"a": 2, "b": 2, "c": 2}


def test_auto_discussion_single_member():
    queue = build_speech_queue([A], {}, "auto_discussion", rng=random.Random(0))
    assert ids(queue) == ["a", "a"]


@pytest.mark.parametrize("policy", ["fixed", "random", "auto_discussion"])
def test_empty_roster_yields_empty_queue(policy):
    assert build_speech_queue([], {"a": MemberSettings(reply_count=2)}, policy, ["a"]) == []


def test_unknown_policy_rejected():
    with pytest.raises(ValidationError):
        build_speech_queue([A], {}, "round_robin")


def test_fisher_yates_uses_injected_source():
    class ZeroSource:
        def __init__(self):
            self.calls = []

        def randrange(self, stop):
            self.calls.append(stop)
            return 0

    src = ZeroSource()
    items = [1, 2, 3, 4]
    assert fisher_yates(items, src) == [2, 3, 4, 1]
    assert src.calls == [4, 3, 2]


def test_duplicate_roster_ids_count_once_for_every_policy():
    roster = [A, B, A]
    settings = {"a": MemberSettings(reply_count=2)}
    fixed = build_speech_queue(roster, settings, "fixed")
    shuffled = build_speech_queue(roster, settings, "random", rng=random.Random(7))
    auto = build_speech_queue(roster, settings, "auto_discussion", rng=random.Random(7))
    assert ids(fixed) == ["a", "a", "b"]
    assert Counter(ids(shuffled)) == Counter(ids(fixed))
    assert Counter(ids(auto)) == Counter({"a": 2, "b": 2})
