from __future__ import annotations

import pytest

import gameplay_models
from demo_chain import DemoChain

PLAYER = "0xAbC"


@pytest.fixture
def chain(song) -> DemoChain:
    return DemoChain(
        song,
        lead_in_blocks=20,
        perfect_window_blocks=2,
        good_window_blocks=6,
        confirmation_delay_blocks=1,
    )


def _collect(chain: DemoChain, event_name: str):
    received = []
    chain.subscribe(event_name, lambda logs: received.extend(logs))
    return received


def _start(chain: DemoChain) -> None:
    chain.request_session_start(gameplay_models.RequestSessionStart(identity=PLAYER, song_id=0))


def _hit(chain: DemoChain, index: int) -> None:
    chain.attempt_note_hit(gameplay_models.AttemptNoteHit(identity=PLAYER, note_index=index))


def test_start_log_is_delivered_after_confirmation_delay(chain):
    started = _collect(chain, "GameStarted")
    _start(chain)

    assert started == []
    chain.advance()
    assert started == [{"eventName": "GameStarted", "args": {"player": PLAYER, "startBlock": 21}}]


def test_hits_are_judged_by_block_distance(chain):
    hits = _collect(chain, "NoteHit")
    _start(chain)

    chain.advance(20)
    _hit(chain, 0)
    chain.advance(50 + 4)
    _hit(chain, 1)
    chain.advance(70 + 7 - 4)
    _hit(chain, 2)
    chain.advance()

    assert [log["args"]["score"] for log in hits] == [100, 50, 0]
    assert chain.game_points(PLAYER) == 150


def test_game_finishes_after_last_note(chain):
    finished = _collect(chain, "GameFinished")
    _start(chain)
    for index in range(3):
        _hit(chain, index)
    chain.advance()

    assert finished == [{"eventName": "GameFinished", "args": {"player": PLAYER}}]


def test_out_of_order_hits_are_rejected(chain):
    hits = _collect(chain, "NoteHit")
    _start(chain)
    _hit(chain, 1)
    _hit(chain, 0)
    _hit(chain, 0)
    chain.advance()

    assert [log["args"]["noteIndex"] for log in hits] == [0]


def test_hit_without_game_is_rejected(chain):
    hits = _collect(chain, "NoteHit")
    _hit(chain, 0)
    chain.advance(3)
    assert hits == []


def test_duplicate_delivery_repeats_batches(song):
    chain = DemoChain(song, confirmation_delay_blocks=0, duplicate_delivery=True)
    batches = []
    chain.subscribe("GameStarted", batches.append)

    _start(chain)

    assert len(batches) == 2
    assert batches[0] == batches[1]


def test_unsubscribe_stops_delivery(chain):
    received = []
    subscription = chain.subscribe("GameStarted", received.append)
    subscription.unsubscribe()
    subscription.unsubscribe()

    _start(chain)
    chain.advance(2)

    assert received == []
    assert chain.subscriber_count() == 0


def test_block_number_advances(chain):
    assert chain.block_number() == 1
    assert chain.advance(5) == 6
    assert chain.block_number() == 6
