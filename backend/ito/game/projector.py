from __future__ import annotations

from dataclasses import asdict

from .models import ENDED, RESULT_REVEAL, RESULT_VOTING, Card, Player, Room, Settings, Theme

# Phases in which every number has already been shown to the whole room.
REVEALED_PHASES = (RESULT_REVEAL, RESULT_VOTING, ENDED)

_SETTINGS_KEYS = {
    "initial_hand_count": "initialHandCount",
    "max_lifes": "maxLifes",
    "win_condition_count": "winConditionCount",
    "time_limit_game": "timeLimitGame",
    "time_limit_expression": "timeLimitExpression",
    "time_limit_submission": "timeLimitSubmission",
    "time_limit_voting": "timeLimitVoting",
    "max_spectators": "maxSpectators",
    "ruleset": "ruleset",
    "deck_policy": "deckPolicy",
}


def settings_view(settings: Settings) -> dict:
    return {camel: getattr(settings, snake) for snake, camel in _SETTINGS_KEYS.items()}


def settings_field(camel: str) -> str | None:
    for snake, key in _SETTINGS_KEYS.items():
        if key == camel:
            return snake
    return None


def theme_view(theme: Theme) -> dict:
    return {
        "id": theme.id,
        "category": theme.category,
        "title": theme.title,
        "scaleMin": theme.scale_min,
        "scaleMax": theme.scale_max,
        "editingUserId": theme.editing_user_id,
        "lockExpiresAt": theme.lock_expires_at,
    }


def player_view(player: Player) -> dict:
    # Never expose the connection id to other clients.
    return {
        "userId": player.user_id,
        "name": player.name,
        "color": player.color,
        "role": player.role,
        "status": player.status,
        "isReady": player.is_ready,
        "isSubmitted": player.is_submitted,
        "vote": player.vote,
    }


def player_list(room: Room) -> list[dict]:
    return [player_view(p) for p in room.players.values()]


def card_view(card: Card, with_number: bool) -> dict:
    d = {
        "id": card.id,
        "ownerId": card.owner_id,
        "metaphor": card.metaphor,
        "order": card.order,
        "isSubmitted": card.is_submitted,
    }
    if with_number:
        d["number"] = card.number
    return d


def public_cards(room: Room, viewer_id: str | None = None) -> list[dict]:
    revealed = room.phase in REVEALED_PHASES
    return [card_view(c, revealed or (viewer_id is not None and c.owner_id == viewer_id)) for c in room.cards]


def hand(room: Room, user_id: str) -> list[dict]:
    return [card_view(c, True) for c in room.hand_of(user_id)]


def reveal(room: Room) -> list[dict]:
    return [card_view(c, True) for c in room.cards]


def room_snapshot(room: Room, viewer_id: str | None = None) -> dict:
    return {
        "roomId": room.room_id,
        "hostId": room.host_id,
        "phase": room.phase,
        "phaseEndTime": room.phase_end_time,
        "isPaused": room.paused_remaining_ms is not None,
        "settings": settings_view(room.settings),
        "currentRound": room.current_round,
        "currentHandCount": room.current_hand_count,
        "successCount": room.success_count,
        "currentLifes": room.current_lifes,
        "resultMessage": room.result_message,
        "resultInvalidCardIds": list(room.result_invalid_card_ids),
        "theme": theme_view(room.theme),
        "themeCandidates": [theme_view(t) for t in room.theme_candidates],
        "players": player_list(room),
        "cards": public_cards(room, viewer_id),
    }


def room_update(room: Room, *fields: str) -> dict:
    """Partial snapshot limited to the given camelCase keys."""
    snapshot = room_snapshot(room)
    return {k: snapshot[k] for k in fields if k in snapshot}


def admin_view(room: Room) -> dict:
    """Everything, numbers and deck included. Admin endpoints only."""
    payload = room_snapshot(room)
    payload["cards"] = reveal(room)
    payload["deckSize"] = len(room.deck)
    payload["timer"] = asdict(room.timer) if room.timer else None
    return payload
