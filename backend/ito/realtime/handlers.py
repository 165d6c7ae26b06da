from __future__ import annotations

from typing import Any, Callable

from flask import request
from flask_socketio import SocketIO, emit, join_room, leave_room

from ..game import projector
from ..game.models import Player, Room
from ..game.registry import RoomFullError, RoomRegistry
from ..game.service import GameMachine, Outcome
from .events import dispatch
from .scheduler import DeadlineSweeper


def _validate_name(name: str) -> bool:
    n = (name or "").strip()
    if not n:
        return False
    if len(n) > 16:
        return False
    # Avoid obvious HTML/script injection.
    if "<" in n or ">" in n:
        return False
    # No control characters.
    for ch in n:
        if ord(ch) < 32:
            return False
    return True


def _validate_room_id(room_id: str) -> bool:
    return 0 < len(room_id) <= 64 and all(ord(ch) >= 32 for ch in room_id)


def _as_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _as_text(raw: Any) -> str | None:
    return raw if isinstance(raw, str) else None


def register_socketio_handlers(
    socketio: SocketIO,
    registry: RoomRegistry,
    machine: GameMachine,
    sweeper: DeadlineSweeper | None = None,
) -> None:
    def _act(action: Callable[[Room, Player], Outcome]) -> dict:
        room, player = registry.resolve(request.sid)
        if room is None:
            return {"ok": False, "error": "not_in_room"}
        with room.lock:
            outcome = action(room, player)
            dispatch(socketio, room, outcome, sid=request.sid)
        if outcome.error:
            return {"ok": False, "error": outcome.error[0]}
        return {"ok": True}

    def _broadcast_players(room: Room) -> None:
        with room.lock:
            socketio.emit("player:update", projector.player_list(room), to=room.room_id)

    @socketio.on("join")
    def on_join(data):
        payload = data or {}
        room_id = str(payload.get("roomId", "")).strip()
        name = str(payload.get("name", "")).strip()
        user_id = str(payload.get("userId") or "").strip() or None

        if not _validate_room_id(room_id) or not _validate_name(name):
            emit("error", {"code": "INVALID_INPUT", "message": "Room ID and Name are required."})
            return {"ok": False, "error": "INVALID_INPUT"}

        previous, _ = registry.resolve(request.sid)

        try:
            room, player = registry.join(room_id, name, request.sid, user_id=user_id)
        except RoomFullError:
            emit("error", {"code": "ROOM_FULL", "message": "No seats left in this room."})
            return {"ok": False, "error": "ROOM_FULL"}

        if previous is not None and previous.room_id != room_id:
            leave_room(previous.room_id)
            _broadcast_players(previous)

        join_room(room_id)
        with room.lock:
            emit(
                "room:sync",
                {
                    "publicState": projector.room_snapshot(room, viewer_id=player.user_id),
                    "myHand": projector.hand(room, player.user_id),
                    "userId": player.user_id,
                },
            )
        _broadcast_players(room)

        if sweeper is not None:
            sweeper.ensure_started()
        return {"ok": True, "userId": player.user_id}

    @socketio.on("game:start")
    def on_start(data=None):
        return _act(lambda room, player: machine.start_game(room, player.user_id))

    @socketio.on("game:select_theme")
    def on_select_theme(data):
        payload = data or {}
        theme_id = _as_text(payload.get("themeId"))
        custom = payload.get("customTheme")
        return _act(
            lambda room, player: machine.select_theme(
                room,
                player.user_id,
                theme_id=theme_id,
                custom=custom if isinstance(custom, dict) else None,
            )
        )

    @socketio.on("game:update_theme_text")
    def on_update_theme_text(data):
        payload = data or {}
        return _act(
            lambda room, player: machine.update_theme_text(
                room,
                player.user_id,
                title=_as_text(payload.get("title")),
                scale_min=_as_text(payload.get("scaleMin")),
                scale_max=_as_text(payload.get("scaleMax")),
            )
        )

    @socketio.on("game:pause_timer")
    def on_pause_timer(data=None):
        return _act(lambda room, player: machine.pause_timer(room, player.user_id))

    @socketio.on("game:resume_timer")
    def on_resume_timer(data=None):
        return _act(lambda room, player: machine.resume_timer(room, player.user_id))

    @socketio.on("game:submit_metaphor")
    def on_submit_metaphor(data):
        payload = data or {}
        card_id = str(payload.get("cardId", ""))
        text = payload.get("text", payload.get("metaphor", ""))
        if not card_id or not isinstance(text, str):
            return {"ok": False, "error": "invalid_payload"}
        return _act(lambda room, player: machine.submit_metaphor(room, player.user_id, card_id, text))

    @socketio.on("game:move_card")
    def on_move_card(data):
        payload = data or {}
        card_id = str(payload.get("cardId", ""))
        target = _as_int(payload.get("index", payload.get("order")))
        if not card_id or target is None:
            return {"ok": False, "error": "invalid_payload"}
        return _act(lambda room, player: machine.move_card(room, player.user_id, card_id, target))

    @socketio.on("game:submit_done")
    def on_submit_done(data=None):
        return _act(lambda room, player: machine.submit_done(room, player.user_id))

    @socketio.on("vote")
    def on_vote(data):
        choice = str((data or {}).get("choice", ""))
        return _act(lambda room, player: machine.vote(room, player.user_id, choice))

    @socketio.on("room:update_settings")
    def on_update_settings(data):
        payload = data or {}
        partial = payload.get("settings") if isinstance(payload.get("settings"), dict) else payload
        return _act(lambda room, player: machine.update_settings(room, player.user_id, partial))

    @socketio.on("player:update_color")
    def on_update_color(data):
        color = str((data or {}).get("color", "")).strip()
        return _act(lambda room, player: machine.update_color(room, player.user_id, color))

    @socketio.on("admin:reset_lobby")
    def on_reset_lobby(data=None):
        return _act(lambda room, player: machine.reset_lobby(room, player.user_id))

    @socketio.on("disconnect")
    def on_disconnect(*args):
        room, _ = registry.disconnect(request.sid)
        if room is not None:
            _broadcast_players(room)
