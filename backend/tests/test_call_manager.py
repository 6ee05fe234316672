import asyncio

import pytest

from circle_calls.services.call import (
    CallSessionManager,
    CallNotFoundError,
    NotAllowedError,
    CallEndedError,
    CallConflictError,
    CallStoreError,
)
from tests.helpers import assert_rosters_disjoint

ADMIN = "admin-1"
GROUP = "circle-1"


@pytest.mark.asyncio
async def test_start_call(manager):
    call = await manager.start_call(ADMIN, GROUP)

    assert call.admin == ADMIN
    assert call.group == GROUP
    assert call.is_ongoing is True
    assert call.participants == []
    assert call.listeners == []
    assert call.speaker_queue == []
    assert call.is_muted == {}


@pytest.mark.asyncio
async def test_group_may_host_several_calls(manager):
    first = await manager.start_call(ADMIN, GROUP)
    second = await manager.start_call("admin-2", GROUP)

    calls = await manager.list_group_calls(GROUP)
    assert {c.id for c in calls} == {first.id, second.id}


@pytest.mark.asyncio
async def test_join_is_idempotent(manager):
    call = await manager.start_call(ADMIN, GROUP)

    once = await manager.join_call("u1", call.id)
    twice = await manager.join_call("u1", call.id)

    assert once.participants == ["u1"]
    assert twice.participants == ["u1"]
    assert (await manager.get_call(call.id)).participants == ["u1"]


@pytest.mark.asyncio
async def test_switch_mode_twice_restores_roster(manager):
    call = await manager.start_call(ADMIN, GROUP)
    await manager.join_call("u1", call.id)

    switched = await manager.switch_participant_mode("u1", call.id)
    assert switched.participants == []
    assert switched.listeners == ["u1"]

    restored = await manager.switch_participant_mode("u1", call.id)
    assert restored.participants == ["u1"]
    assert restored.listeners == []


@pytest.mark.asyncio
async def test_next_speaker_pops_head_in_order(manager):
    call = await manager.start_call(ADMIN, GROUP)
    for user in ("u1", "u2", "u3"):
        await manager.request_to_speak(user, call.id)

    assert await manager.call_next_speaker(ADMIN, call.id) == "u1"
    stored = await manager.get_call(call.id)
    assert stored.speaker_queue == ["u2", "u3"]
    # the popped user is not promoted automatically
    assert "u1" not in stored.participants


@pytest.mark.asyncio
async def test_next_speaker_on_empty_queue(manager):
    call = await manager.start_call(ADMIN, GROUP)
    before = await manager.get_call(call.id)

    assert await manager.call_next_speaker(ADMIN, call.id) is None

    after = await manager.get_call(call.id)
    assert after.version == before.version
    assert after.speaker_queue == []


@pytest.mark.asyncio
async def test_next_speaker_requires_admin(manager):
    call = await manager.start_call(ADMIN, GROUP)
    await manager.request_to_speak("u1", call.id)

    with pytest.raises(NotAllowedError):
        await manager.call_next_speaker("u1", call.id)
    assert (await manager.get_call(call.id)).speaker_queue == ["u1"]


@pytest.mark.asyncio
async def test_request_to_speak_is_idempotent(manager):
    call = await manager.start_call(ADMIN, GROUP)
    await manager.request_to_speak("u1", call.id)
    call = await manager.request_to_speak("u1", call.id)
    assert call.speaker_queue == ["u1"]


@pytest.mark.asyncio
async def test_mute_switch_toggles(manager):
    call = await manager.start_call(ADMIN, GROUP)

    results = [await manager.mute_switch("u1", call.id) for _ in range(3)]

    assert results == [True, False, True]
    assert (await manager.get_call(call.id)).is_muted == {"u1": True}


@pytest.mark.asyncio
async def test_leave_is_idempotent_and_keeps_queue(manager):
    call = await manager.start_call(ADMIN, GROUP)
    await manager.join_call("u1", call.id)
    await manager.request_to_speak("u1", call.id)

    await manager.leave_call("u1", call.id)
    left = await manager.leave_call("u1", call.id)

    assert left.participants == []
    assert left.listeners == []
    assert left.speaker_queue == ["u1"]


@pytest.mark.asyncio
async def test_only_admin_can_end(manager):
    call = await manager.start_call(ADMIN, GROUP)

    with pytest.raises(NotAllowedError):
        await manager.end_call("u1", call.id)
    assert (await manager.get_call(call.id)).is_ongoing is True

    ended = await manager.end_call(ADMIN, call.id)
    assert ended.is_ongoing is False
    assert ended.ended_at is not None


@pytest.mark.asyncio
async def test_end_twice_confirms(manager):
    call = await manager.start_call(ADMIN, GROUP)
    first = await manager.end_call(ADMIN, call.id)
    second = await manager.end_call(ADMIN, call.id)
    assert second.is_ongoing is False
    assert second.version == first.version


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", [
    "join_call",
    "switch_participant_mode",
    "request_to_speak",
    "mute_switch",
    "leave_call",
])
async def test_ended_call_rejects_mutations(manager, operation):
    call = await manager.start_call(ADMIN, GROUP)
    await manager.end_call(ADMIN, call.id)

    with pytest.raises(CallEndedError):
        await getattr(manager, operation)("u1", call.id)
    with pytest.raises(CallEndedError):
        await manager.call_next_speaker(ADMIN, call.id)


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", [
    "join_call",
    "switch_participant_mode",
    "request_to_speak",
    "call_next_speaker",
    "mute_switch",
    "leave_call",
    "end_call",
])
async def test_unknown_call_is_not_found(manager, operation):
    with pytest.raises(CallNotFoundError):
        await getattr(manager, operation)(ADMIN, "missing-call")


@pytest.mark.asyncio
async def test_scenario(manager):
    call = await manager.start_call("A", "G")
    assert call.is_ongoing

    call = await manager.join_call("U1", call.id)
    assert call.participants == ["U1"]

    call = await manager.switch_participant_mode("U1", call.id)
    assert (call.participants, call.listeners) == ([], ["U1"])

    call = await manager.switch_participant_mode("U1", call.id)
    assert (call.participants, call.listeners) == (["U1"], [])

    assert await manager.mute_switch("U1", call.id) is True

    call = await manager.leave_call("U1", call.id)
    assert (call.participants, call.listeners) == ([], [])

    call = await manager.end_call("A", call.id)
    assert call.is_ongoing is False

    with pytest.raises(CallEndedError):
        await manager.join_call("U1", call.id)


@pytest.mark.asyncio
async def test_roster_stays_disjoint_through_mixed_operations(manager):
    call = await manager.start_call(ADMIN, GROUP)
    steps = [
        ("join_call", "u1"), ("join_call", "u2"), ("switch_participant_mode", "u1"),
        ("join_call", "u1"), ("switch_participant_mode", "u3"), ("leave_call", "u2"),
        ("switch_participant_mode", "u1"), ("switch_participant_mode", "u2"), ("leave_call", "u3"),
    ]
    for operation, user in steps:
        call = await getattr(manager, operation)(user, call.id)
        assert_rosters_disjoint(call)


@pytest.mark.asyncio
async def test_concurrent_joins_lose_no_update(manager):
    call = await manager.start_call(ADMIN, GROUP)
    users = [f"u{i}" for i in range(20)]

    await asyncio.gather(*(manager.join_call(u, call.id) for u in users))

    stored = await manager.get_call(call.id)
    assert sorted(stored.participants) == sorted(users)


class _RacingStore:
    """Lets another writer slip in before the first N conditional updates."""

    def __init__(self, inner, races=1):
        self.inner = inner
        self.races = races

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def partial_update_one(self, call_id, fields, expected_version):
        if self.races > 0:
            self.races -= 1
            current = await self.inner.read_one(call_id)
            await self.inner.partial_update_one(
                call_id, {"listeners": current.listeners + ["intruder"]}, current.version
            )
        return await self.inner.partial_update_one(call_id, fields, expected_version)


@pytest.mark.asyncio
async def test_lost_race_is_retried_from_fresh_state(store):
    manager = CallSessionManager(_RacingStore(store, races=1))
    call = await manager.start_call(ADMIN, GROUP)

    joined = await manager.join_call("u1", call.id)

    assert joined.participants == ["u1"]
    assert joined.listeners == ["intruder"]
    stored = await store.read_one(call.id)
    assert stored.participants == ["u1"]
    assert stored.listeners == ["intruder"]


@pytest.mark.asyncio
async def test_persistent_conflict_raises(store):
    manager = CallSessionManager(_RacingStore(store, races=10), max_retries=3)
    call = await manager.start_call(ADMIN, GROUP)

    with pytest.raises(CallConflictError):
        await manager.join_call("u1", call.id)


class _BrokenStore:
    async def read_one(self, call_id):
        raise CallStoreError("store unavailable")


@pytest.mark.asyncio
async def test_store_failure_propagates():
    manager = CallSessionManager(_BrokenStore())
    with pytest.raises(CallStoreError):
        await manager.join_call("u1", "c1")


@pytest.mark.asyncio
async def test_explicit_retry_count_is_kept(store):
    assert CallSessionManager(store, max_retries=0).max_retries == 0
    assert CallSessionManager(store, max_retries=2).max_retries == 2


@pytest.mark.asyncio
async def test_retry_count_defaults_to_setting(store, monkeypatch):
    monkeypatch.setattr("circle_calls.services.call.service.settings.CALL_UPDATE_MAX_RETRIES", 7)
    assert CallSessionManager(store).max_retries == 7


@pytest.mark.asyncio
async def test_single_attempt_gives_up_on_first_lost_race(store):
    manager = CallSessionManager(_RacingStore(store, races=1), max_retries=1)
    call = await manager.start_call(ADMIN, GROUP)

    with pytest.raises(CallConflictError):
        await manager.join_call("u1", call.id)
