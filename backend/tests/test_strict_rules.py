import pytest
from conftest import NOW, finish, place

from ito.game.models import (
    IN_HAND,
    PLAYING_EXPRESSION,
    PLAYING_SUBMISSION,
    RESULT_REVEAL,
    RESULT_VOTING,
    PhaseTimer,
)

EXPRESSION_END = NOW + 60_000
SUBMISSION_END = EXPRESSION_END + 60_000


@pytest.fixture()
def strict_room(make_room, machine):
    def _make(players=2, **settings):
        room = make_room(players=players, ruleset='strict', **settings)
        assert machine.start_game(room, 'u0', now=NOW).ok
        return room
    return _make


def _to_submission(machine, room):
    machine.on_deadline(room, now=EXPRESSION_END)
    assert room.phase == PLAYING_SUBMISSION


def test_round_opens_with_timed_expression(strict_room):
    room = strict_room()
    assert room.phase == PLAYING_EXPRESSION
    assert room.theme_candidates == []
    assert room.timer == PhaseTimer(phase=PLAYING_EXPRESSION, deadline_ms=EXPRESSION_END)
    assert room.settings.deck_policy == 'fresh'


def test_clues_only_during_expression(strict_room, machine):
    room = strict_room()
    card = room.hand_of('u0')[0]

    out = machine.submit_metaphor(room, 'u0', card.id, 'warm')
    assert card.metaphor == 'warm'
    assert [e.event for e in out.events] == ['cards:public_update']

    assert machine.move_card(room, 'u0', card.id, 0).events == []
    assert card.order == IN_HAND

    _to_submission(machine, room)
    machine.submit_metaphor(room, 'u0', card.id, 'cold')
    assert card.metaphor == 'warm'


def test_expression_timeout_arms_submission_timer(strict_room, machine):
    room = strict_room()
    out = machine.on_deadline(room, now=EXPRESSION_END)
    assert room.phase == PLAYING_SUBMISSION
    assert room.timer == PhaseTimer(phase=PLAYING_SUBMISSION, deadline_ms=SUBMISSION_END)
    assert out.events[0].payload == {'phase': PLAYING_SUBMISSION, 'phaseEndTime': SUBMISSION_END}


def test_only_owner_moves_and_done_locks(strict_room, machine):
    room = strict_room()
    _to_submission(machine, room)
    mine = room.hand_of('u0')[0]
    theirs = room.hand_of('u1')[0]

    machine.move_card(room, 'u0', theirs.id, 0)
    assert theirs.order == IN_HAND

    machine.move_card(room, 'u0', mine.id, 0)
    assert mine.order == 0

    # Done without an empty hand is allowed and final.
    machine.submit_done(room, 'u1')
    assert room.players['u1'].is_submitted
    assert theirs.is_submitted
    assert machine.submit_done(room, 'u1').events == []
    assert room.players['u1'].is_submitted
    machine.move_card(room, 'u1', theirs.id, 0)
    assert theirs.order == IN_HAND


def test_submission_timeout_appends_unplaced_cards_and_evaluates(strict_room, machine):
    room = strict_room(initial_hand_count=2)
    _to_submission(machine, room)
    a, b, c, d = room.cards
    for card, number in zip((a, b, c, d), (30, 40, 10, 20)):
        card.number = number
    machine.move_card(room, c.owner_id, c.id, 0)

    out = machine.on_deadline(room, now=SUBMISSION_END)

    assert [x.id for x in room.table_cards()] == [c.id, a.id, b.id, d.id]
    assert room.result_invalid_card_ids == [b.id, d.id]
    assert room.phase == RESULT_VOTING
    assert any(e.event == 'cards:reveal' for e in out.events)


def test_all_done_evaluates_immediately(strict_room, machine):
    room = strict_room()
    _to_submission(machine, room)
    place(machine, room, sorted(room.cards, key=lambda x: x.number))
    finish(machine, room)
    assert room.phase == RESULT_REVEAL
    assert room.success_count == 1


def _fail_round(machine, room):
    _to_submission(machine, room)
    place(machine, room, sorted(room.cards, key=lambda x: x.number, reverse=True), now=EXPRESSION_END)
    finish(machine, room, now=EXPRESSION_END)
    assert room.phase == RESULT_VOTING


def test_voting_timeout_forces_tally_with_missing_votes_as_continue(strict_room, machine):
    room = strict_room(players=3, initial_hand_count=2)
    _fail_round(machine, room)
    machine.vote(room, 'u0', 'REDUCE')
    machine.vote(room, 'u1', 'REDUCE')

    machine.on_deadline(room, now=EXPRESSION_END + 30_000)

    assert room.current_hand_count == 1
    assert room.current_round == 2
    assert room.phase == PLAYING_EXPRESSION
    # Fresh deck every round.
    assert len(room.deck) == 100 - 3
    assert sorted(room.deck + [c.number for c in room.cards]) == list(range(1, 101))


def test_single_reduce_vote_is_outvoted_by_absentees(strict_room, machine):
    room = strict_room(players=3, initial_hand_count=2)
    _fail_round(machine, room)
    machine.vote(room, 'u0', 'REDUCE')

    machine.on_deadline(room, now=EXPRESSION_END + 30_000)

    assert room.current_hand_count == 2
    assert len(room.cards) == 6


def test_timer_cannot_be_paused(strict_room, machine):
    room = strict_room()
    assert machine.pause_timer(room, 'u0', now=NOW).error[0] == 'INVALID_PHASE'
