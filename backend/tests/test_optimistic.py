"""Tests for optimistic response mutations and their rollback.

Covers:
- the local store reflects set_response before any remote confirmation
- failed submissions roll back only their own entry
- a stale failure never removes a newer entry (out-of-order completions)
- last write wins regardless of confirmation order
"""
import asyncio
from datetime import timedelta

from fomo.models.response import ResponseValue
from fomo.services.history_store import ResponseHistoryStore
from fomo.services.optimistic import MutationStatus, OptimisticMutationEngine
from fomo.services.reconciliation import CaptureSession
from tests.conftest import NOW, make_entry


class RecordingSink:
    def __init__(self):
        self.submitted = []

    async def submit(self, entry):
        self.submitted.append(entry)


class FailingSink:
    async def submit(self, entry):
        raise ConnectionError("backend unreachable")


class GatedSink:
    """Each submission waits until the test releases it as a success or a failure."""

    def __init__(self):
        self.gates = {}

    def _gate(self, entry_id):
        if entry_id not in self.gates:
            self.gates[entry_id] = asyncio.get_running_loop().create_future()
        return self.gates[entry_id]

    async def submit(self, entry):
        if not await self._gate(entry.id):
            raise ConnectionError("backend rejected the mutation")

    def release(self, entry_id, ok):
        self._gate(entry_id).set_result(ok)


def _engine(sink, *entries, clock=lambda: NOW):
    store = ResponseHistoryStore(entries)
    return OptimisticMutationEngine(store, sink, clock=clock), store


class TestLocalAppend:
    def test_change_is_visible_before_submission(self):
        engine, store = _engine(RecordingSink())
        pending = engine.set_response("u1", "e1", "going")

        assert store.resolve("u1", "e1") == ResponseValue.going
        assert pending.status == MutationStatus.queued
        assert engine.pending == [pending]

    def test_initial_response_is_the_previous_resolution(self):
        engine, store = _engine(RecordingSink(), make_entry("u1", "e1", "interested", NOW - timedelta(hours=1)))
        pending = engine.set_response("u1", "e1", "going")

        assert pending.entry.initial_response == ResponseValue.interested
        assert pending.entry.final_response == ResponseValue.going

    def test_invitation_keeps_the_inviter(self):
        engine, _ = _engine(RecordingSink())
        pending = engine.set_response("u2", "e1", "invited", invited_by_user_id="u1")
        assert pending.entry.invited_by_user_id == "u1"

    def test_same_millisecond_calls_still_supersede(self):
        engine, store = _engine(RecordingSink())
        first = engine.set_response("u1", "e1", "going")
        second = engine.set_response("u1", "e1", "interested")

        assert second.entry.created_at > first.entry.created_at
        assert store.latest("u1", "e1") == second.entry
        assert second.entry.initial_response == ResponseValue.going

    def test_entry_ids_are_unique(self):
        engine, _ = _engine(RecordingSink())
        ids = {engine.set_response("u1", f"e{i}", "seen").entry.id for i in range(20)}
        assert len(ids) == 20
        assert all(i.startswith("resp_") for i in ids)

    def test_toggle_twice_clears(self):
        engine, store = _engine(RecordingSink())
        engine.toggle_response("u1", "e1", "going")
        engine.toggle_response("u1", "e1", "going")
        assert store.resolve("u1", "e1") == ResponseValue.cleared


class TestFlush:
    def test_successful_flush_confirms(self):
        sink = RecordingSink()
        engine, store = _engine(sink)
        pending = engine.set_response("u1", "e1", "going")

        assert asyncio.run(engine.flush()) == [True]
        assert pending.status == MutationStatus.confirmed
        assert sink.submitted == [pending.entry]
        assert engine.pending == []
        assert store.resolve("u1", "e1") == ResponseValue.going

    def test_failed_flush_rolls_back_without_raising(self):
        engine, store = _engine(FailingSink(), make_entry("u1", "e1", "interested", NOW - timedelta(hours=1)))
        pending = engine.set_response("u1", "e1", "going")

        assert asyncio.run(engine.flush()) == [False]
        assert pending.status == MutationStatus.rolled_back
        assert store.resolve("u1", "e1") == ResponseValue.interested
        assert len(store) == 1

    def test_stale_failure_does_not_remove_newer_entry(self):
        engine, store = _engine(FailingSink())
        older = engine.set_response("u1", "e1", "going")
        newer = engine.set_response("u1", "e1", "interested")

        asyncio.run(engine.submit(older))

        assert older.status == MutationStatus.superseded
        assert store.latest("u1", "e1") == newer.entry

    def test_rollback_only_targets_its_own_pair(self):
        engine, store = _engine(FailingSink())
        failing = engine.set_response("u1", "e1", "going")
        engine.set_response("u1", "e2", "going")

        asyncio.run(engine.submit(failing))

        assert store.resolve("u1", "e1") is None
        assert store.resolve("u1", "e2") == ResponseValue.going


class TestRunningLoop:
    def test_submission_is_scheduled_on_the_running_loop(self):
        sink = RecordingSink()

        async def scenario():
            engine, store = _engine(sink)
            pending = engine.set_response("u1", "e1", "going")
            assert pending.task is not None
            assert engine.pending == []
            await pending.task
            return pending

        pending = asyncio.run(scenario())
        assert pending.status == MutationStatus.confirmed
        assert sink.submitted == [pending.entry]

    def test_out_of_order_completions_keep_the_latest_write(self):
        sink = GatedSink()

        async def scenario():
            engine, store = _engine(sink)
            first = engine.set_response("u1", "e1", "going")
            second = engine.set_response("u1", "e1", "not_interested")
            await asyncio.sleep(0)

            sink.release(second.entry.id, True)
            await second.task
            sink.release(first.entry.id, False)
            await first.task
            return store, first, second

        store, first, second = asyncio.run(scenario())
        assert store.latest("u1", "e1") == second.entry
        assert first.status == MutationStatus.superseded
        assert second.status == MutationStatus.confirmed

    def test_confirmation_order_does_not_change_resolution(self):
        sink = GatedSink()

        async def scenario():
            engine, store = _engine(sink)
            mutations = [engine.set_response("u1", "e1", v) for v in ("going", "interested", "cleared")]
            await asyncio.sleep(0)
            for pending in reversed(mutations):
                sink.release(pending.entry.id, True)
                await pending.task
            return store, mutations

        store, mutations = asyncio.run(scenario())
        assert store.latest("u1", "e1") == mutations[-1].entry
        assert store.resolve("u1", "e1") == ResponseValue.cleared

    def test_drain_waits_for_rollbacks_of_discarded_mutations(self):
        async def scenario():
            store = ResponseHistoryStore()
            engine = OptimisticMutationEngine(store, FailingSink(), clock=lambda: NOW)
            session = CaptureSession(store, engine.set_response)
            session.on_open("u1", "e1")
            session.on_close("u1", "e1")

            # The close path drops the returned mutation; the engine still tracks it.
            assert len(engine.in_flight) == 1
            assert store.resolve("u1", "e1") == ResponseValue.seen

            assert await engine.drain() == [False]
            return engine, store

        engine, store = asyncio.run(scenario())
        assert engine.in_flight == []
        assert len(store) == 0

    def test_flush_also_drains_in_flight_submissions(self):
        sink = RecordingSink()

        async def scenario():
            engine, _ = _engine(sink)
            engine.set_response("u1", "e1", "going")
            engine.set_response("u1", "e2", "interested")
            assert await engine.flush() == []
            return engine

        engine = asyncio.run(scenario())
        assert engine.in_flight == []
        assert [e.event_id for e in sink.submitted] == ["e1", "e2"]
