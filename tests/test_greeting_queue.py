import asyncio
import threading

from conftest import FakePlayer, FakeSynthesizer, make_identity, vector
from face_greeter.exceptions import DatabaseError
from face_greeter.face_types import GreetingQueueItem
from face_greeter.gallery import Gallery
from face_greeter.greeting_cache import GreetingCache
from face_greeter.greeting_queue import GreetingQueue


def build_queue(store, synthesizer, player, gallery=None, api_key=None):
    cache = GreetingCache(store, synthesizer, fallback_api_key=api_key)
    return GreetingQueue(
        store,
        cache,
        player,
        gallery=gallery,
        item_delay_seconds=0.0,
        missing_person_retry_seconds=0.0,
    )


def item(identity_id, name=None, at=0.0):
    return GreetingQueueItem(identity_id=identity_id, display_name=name or identity_id, enqueued_at=at)


def test_same_identity_is_queued_once_before_the_worker_drains(keyed_store, synthesizer, player):
    keyed_store.put(make_identity("alice", vector(0.1), name="Alice"))
    queue = build_queue(keyed_store, synthesizer, player)

    async def scenario():
        first = queue.enqueue(item("alice"))
        second = queue.enqueue(item("alice"))
        assert (first, second) == (True, False)
        assert len(queue) == 1
        assert "alice" in queue
        await queue.join()

    asyncio.run(scenario())
    assert player.played == [b"P"]
    assert "alice" not in queue
    assert not queue.is_processing


def test_cached_audio_is_reused_without_synthesis(keyed_store, synthesizer, player):
    keyed_store.put(make_identity("alice", vector(0.1), name="Alice"))
    queue = build_queue(keyed_store, synthesizer, player)

    async def scenario():
        queue.enqueue(item("alice"))
        await queue.join()
        queue.enqueue(item("alice"))
        await queue.join()

    asyncio.run(scenario())

    assert len(synthesizer.calls) == 1
    assert player.played == [b"P", b"P"]
    assert keyed_store.get("alice").cached_greeting_audio == b"P"


def test_synthesis_uses_greeting_template_and_stored_key(keyed_store, synthesizer, player):
    keyed_store.put(make_identity("alice", vector(0.1), name="Alice"))
    queue = build_queue(keyed_store, synthesizer, player, api_key="env-key")

    async def scenario():
        queue.enqueue(item("alice"))
        await queue.join()

    asyncio.run(scenario())

    text, _, api_key = synthesizer.calls[0]
    assert text == queue.cache.greeting_text("Alice")
    assert "Alice" in text
    assert api_key == "test-key"


def test_missing_credential_drops_item_silently(store, synthesizer, player):
    store.put(make_identity("alice", vector(0.1)))
    queue = build_queue(store, synthesizer, player, api_key=None)

    async def scenario():
        queue.enqueue(item("alice"))
        await queue.join()

    asyncio.run(scenario())

    assert synthesizer.calls == []
    assert player.played == []
    assert store.get("alice").cached_greeting_audio is None


def test_synthesis_failure_is_not_retried_and_queue_keeps_draining(keyed_store, player):
    keyed_store.put(make_identity("alice", vector(0.1)))
    carol = make_identity("carol", vector(0.3))
    carol.cached_greeting_audio = b"C"
    keyed_store.put(carol)

    synthesizer = FakeSynthesizer(fail=True)
    queue = build_queue(keyed_store, synthesizer, player)

    async def scenario():
        queue.enqueue(item("alice"))
        queue.enqueue(item("carol"))
        await queue.join()

    asyncio.run(scenario())

    assert len(synthesizer.calls) == 1
    assert player.played == [b"C"]
    assert len(queue) == 0


def test_missing_person_is_skipped(keyed_store, synthesizer, player):
    keyed_store.put(make_identity("bob", vector(0.2)))
    queue = build_queue(keyed_store, synthesizer, player)

    async def scenario():
        queue.enqueue(item("deleted"))
        queue.enqueue(item("bob"))
        await queue.join()

    asyncio.run(scenario())

    assert len(synthesizer.calls) == 1
    assert player.played == [b"P"]


def test_playback_error_is_swallowed_and_audio_still_cached(keyed_store, synthesizer):
    keyed_store.put(make_identity("alice", vector(0.1)))
    player = FakePlayer(fail=True)
    queue = build_queue(keyed_store, synthesizer, player)

    async def scenario():
        queue.enqueue(item("alice"))
        await queue.join()

    asyncio.run(scenario())

    assert player.played == [b"P"]
    assert keyed_store.get("alice").cached_greeting_audio == b"P"


def test_cache_writes_through_to_gallery_snapshot(keyed_store, synthesizer, player):
    keyed_store.put(make_identity("alice", vector(0.1)))
    gallery = Gallery()
    gallery.load(keyed_store)
    queue = build_queue(keyed_store, synthesizer, player, gallery=gallery)

    async def scenario():
        queue.enqueue(item("alice"))
        await queue.join()

    asyncio.run(scenario())

    assert gallery.get("alice").cached_greeting_audio == b"P"


def test_stalled_playback_holds_the_queue(keyed_store, synthesizer):
    # No timeout is applied to playback: a stuck clip blocks every later greeting.
    keyed_store.put(make_identity("alice", vector(0.1)))
    keyed_store.put(make_identity("bob", vector(0.2)))
    gate = threading.Event()
    player = FakePlayer(gate=gate)
    queue = build_queue(keyed_store, synthesizer, player)

    async def scenario():
        queue.enqueue(item("alice"))
        queue.enqueue(item("bob"))
        await asyncio.sleep(0.1)

        assert queue.is_processing
        assert "alice" in queue
        assert len(queue) == 1
        assert player.played == []

        gate.set()
        await queue.join()

    asyncio.run(scenario())
    assert player.played == [b"P", b"P"]
    assert len(synthesizer.calls) == 2


def test_enqueue_outside_event_loop_waits_for_join(keyed_store, synthesizer, player):
    keyed_store.put(make_identity("alice", vector(0.1)))
    queue = build_queue(keyed_store, synthesizer, player)

    assert queue.enqueue(item("alice")) is True
    assert not queue.is_processing

    asyncio.run(queue.join())
    assert player.played == [b"P"]


def test_store_error_while_reading_key_drops_only_that_item(keyed_store, synthesizer, player, monkeypatch):
    keyed_store.put(make_identity("alice", vector(0.1)))
    keyed_store.put(make_identity("bob", vector(0.2)))
    original = keyed_store.get_setting
    failures = iter([DatabaseError("database is locked")])

    def flaky_get_setting(key):
        error = next(failures, None)
        if error is not None:
            raise error
        return original(key)

    monkeypatch.setattr(keyed_store, "get_setting", flaky_get_setting)
    queue = build_queue(keyed_store, synthesizer, player)

    async def scenario():
        queue.enqueue(item("alice"))
        queue.enqueue(item("bob"))
        await queue.join()

    asyncio.run(scenario())

    assert player.played == [b"P"]
    assert "bob" not in queue
    assert len(queue) == 0
    assert not queue.is_processing


def test_unexpected_player_error_does_not_stop_the_worker(keyed_store, synthesizer):
    keyed_store.put(make_identity("alice", vector(0.1)))
    keyed_store.put(make_identity("bob", vector(0.2)))

    class BrokenOncePlayer:
        def __init__(self):
            self.played = []

        def play(self, audio):
            self.played.append(audio)
            if len(self.played) == 1:
                raise RuntimeError("audio device vanished")

    player = BrokenOncePlayer()
    queue = build_queue(keyed_store, synthesizer, player)

    async def scenario():
        queue.enqueue(item("alice"))
        queue.enqueue(item("bob"))
        await queue.join()

    asyncio.run(scenario())

    assert player.played == [b"P", b"P"]
    assert len(queue) == 0
