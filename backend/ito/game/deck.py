from __future__ import annotations

import logging
import random
import uuid

from .models import IN_HAND, MAX_CARD_NUMBER, Card, Room

log = logging.getLogger(__name__)


def build_deck(rng: random.Random) -> list[int]:
    """Full 1..100 deck, uniformly shuffled (random.shuffle is Fisher-Yates)."""
    deck = list(range(1, MAX_CARD_NUMBER + 1))
    rng.shuffle(deck)
    return deck


def fits(player_count: int, hand_count: int) -> bool:
    return player_count * hand_count <= MAX_CARD_NUMBER


def deal(room: Room) -> bool:
    """Replace the room's cards with a fresh hand per active player.

    Numbers are popped from the deck tail. Returns False, leaving the room
    untouched, when the deck cannot cover every hand.
    """
    players = room.active_players()
    needed = len(players) * room.current_hand_count
    if not fits(len(players), room.current_hand_count) or len(room.deck) < needed:
        log.info(
            "[deal-reject] room=%s players=%d hand=%d deck=%d",
            room.room_id, len(players), room.current_hand_count, len(room.deck),
        )
        return False

    cards: list[Card] = []
    for p in players:
        p.is_ready = False
        p.is_submitted = False
        p.vote = None
        for _ in range(room.current_hand_count):
            cards.append(Card(id=str(uuid.uuid4()), number=room.deck.pop(), owner_id=p.user_id, order=IN_HAND))

    room.cards = cards
    room.result_invalid_card_ids = []
    log.info(
        "[deal] room=%s round=%d players=%d hand=%d deck_left=%d",
        room.room_id, room.current_round, len(players), room.current_hand_count, len(room.deck),
    )
    return True


class FreshDeck:
    """Every round starts from a newly shuffled 1..100 deck."""

    name = "fresh"

    def replenish(self, room: Room, rng: random.Random) -> None:
        room.deck = build_deck(rng)


class RecycleDeck:
    """Numbers from the round just played go back into the deck, then reshuffle."""

    name = "recycle"

    def replenish(self, room: Room, rng: random.Random) -> None:
        room.deck.extend(c.number for c in room.cards)
        rng.shuffle(room.deck)


DECK_POLICIES = {policy.name: policy for policy in (FreshDeck(), RecycleDeck())}


def deck_policy(name: str) -> FreshDeck | RecycleDeck:
    return DECK_POLICIES.get(name) or DECK_POLICIES["recycle"]
