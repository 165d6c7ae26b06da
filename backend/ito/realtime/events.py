from __future__ import annotations

import logging

from flask_socketio import SocketIO

from ..game.models import Room
from ..game.service import Outcome

log = logging.getLogger(__name__)


def emit_error(socketio: SocketIO, sid: str, code: str, message: str) -> None:
    socketio.emit("error", {"code": code, "message": message}, to=sid)


def dispatch(socketio: SocketIO, room: Room, outcome: Outcome, sid: str | None = None) -> None:
    """Deliver an outcome: room events to the room, player events to that player's live connection."""
    if outcome.error and sid:
        code, message = outcome.error
        log.debug("[reject] room=%s sid=%s code=%s", room.room_id, sid, code)
        emit_error(socketio, sid, code, message)

    for ev in outcome.events:
        if ev.user_id is None:
            socketio.emit(ev.event, ev.payload, to=room.room_id)
            continue
        player = room.players.get(ev.user_id)
        if player is None or player.status != "ONLINE":
            continue
        socketio.emit(ev.event, ev.payload, to=player.sid)
