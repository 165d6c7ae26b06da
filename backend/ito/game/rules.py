"""Rulesets: the two game designs that share one room data model.

A room picks one by ``settings.ruleset``. The state machine asks the ruleset
which phases accept which actions and who may touch a card, so neither design
leaks into the other.
"""
from __future__ import annotations

from .models import (
    PLAYING,
    PLAYING_EXPRESSION,
    PLAYING_SUBMISSION,
    THEME_SELECTION,
    Card,
    Phase,
    Player,
    Room,
)


class Ruleset:
    name = ""
    # Phase a freshly dealt round opens in.
    round_phase: Phase = PLAYING
    clue_phases: tuple[Phase, ...] = ()
    move_phases: tuple[Phase, ...] = ()
    done_phases: tuple[Phase, ...] = ()
    done_toggles = False
    done_requires_empty_hand = False
    evaluate_requires_full_table = False
    move_clears_done = False
    locked_after_done = False
    echo_hand_on_clue = False
    pausable = False
    force_vote_on_timeout = False
    default_deck_policy = "recycle"

    def may_move(self, room: Room, player: Player, card: Card, to_hand: bool) -> bool:
        raise NotImplementedError

    def round_complete(self, room: Room) -> bool:
        players = room.active_players()
        if not players or not all(p.is_submitted for p in players):
            return False
        if self.evaluate_requires_full_table:
            return all(c.on_table for c in room.cards)
        return True


class CooperativeRules(Ruleset):
    """Free placement: one shared table, theme picked each round, pausable clock."""

    name = "cooperative"
    round_phase = THEME_SELECTION
    clue_phases = (PLAYING,)
    move_phases = (PLAYING,)
    done_phases = (PLAYING,)
    done_toggles = True
    done_requires_empty_hand = True
    evaluate_requires_full_table = True
    move_clears_done = True
    echo_hand_on_clue = True
    pausable = True
    default_deck_policy = "recycle"

    def may_move(self, room: Room, player: Player, card: Card, to_hand: bool) -> bool:
        if not player.is_active:
            return False
        if card.owner_id == player.user_id:
            return True
        # Anyone at the table may reorder a placed card, only its owner takes it back.
        return card.on_table and not to_hand


class StrictRules(Ruleset):
    """Timed expression phase, then a submission phase where each player places their own cards."""

    name = "strict"
    round_phase = PLAYING_EXPRESSION
    clue_phases = (PLAYING_EXPRESSION,)
    move_phases = (PLAYING_SUBMISSION,)
    done_phases = (PLAYING_SUBMISSION,)
    locked_after_done = True
    force_vote_on_timeout = True
    default_deck_policy = "fresh"

    def may_move(self, room: Room, player: Player, card: Card, to_hand: bool) -> bool:
        if not player.is_active or card.owner_id != player.user_id:
            return False
        return not (self.locked_after_done and player.is_submitted)


RULESETS: dict[str, Ruleset] = {r.name: r for r in (CooperativeRules(), StrictRules())}


def ruleset_for(room: Room) -> Ruleset:
    return RULESETS.get(room.settings.ruleset) or RULESETS["cooperative"]
