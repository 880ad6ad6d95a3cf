import time

from eth_account import Account

from core import sessions
from core.sessions import PendingInputs, Session


def _session(user_id):
    return Session(user_id=user_id, account=Account.create())


def test_get_returns_none_for_unknown_user(store):
    assert store.get(1) is None
    assert 1 not in store


def test_compare_and_swap_creates_only_when_absent(store):
    first = _session(1)
    second = _session(1)

    assert store.compare_and_swap(1, None, first) is True
    assert store.compare_and_swap(1, None, second) is False
    assert store.get(1) is first
    assert len(store) == 1


def test_compare_and_swap_with_stale_expectation(store):
    first = _session(1)
    replacement = _session(1)
    store.put(1, first)
    store.put(1, replacement)

    assert store.compare_and_swap(1, first, _session(1)) is False
    assert store.get(1) is replacement


def test_put_overwrites(store):
    first = _session(1)
    second = _session(1)
    store.put(1, first)
    store.put(1, second)

    assert store.get(1) is second


def test_pending_input_is_scoped_to_user_and_chat():
    pending = PendingInputs()
    pending.begin(user_id=10, chat_id=100)

    assert pending.is_awaiting(10, 100)
    assert not pending.is_awaiting(11, 100)
    assert not pending.is_awaiting(10, 200)

    pending.clear(10)
    assert not pending.is_awaiting(10, 100)


def test_pending_input_expires():
    pending = PendingInputs(ttl=-1)
    pending.begin(user_id=10, chat_id=100)

    assert not pending.is_awaiting(10, 100)
    assert 10 not in pending


def test_abandoned_prompts_are_dropped_when_another_import_begins(monkeypatch):
    clock = [1_000.0]
    monkeypatch.setattr(sessions.time, "time", lambda: clock[0])
    pending = PendingInputs(ttl=300)
    pending.begin(user_id=10, chat_id=100)
    pending.begin(user_id=11, chat_id=110)

    clock[0] += 301
    pending.begin(user_id=12, chat_id=120)

    assert 10 not in pending
    assert 11 not in pending
    assert len(pending) == 1
    assert pending.is_awaiting(12, 120)


def test_prune_keeps_live_prompts():
    pending = PendingInputs(ttl=300)
    pending.begin(user_id=10, chat_id=100)

    assert pending.prune() == 0
    assert pending.prune(now=time.time() + 301) == 1
    assert len(pending) == 0
