from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..game import projector
from ..realtime.events import dispatch

bp = Blueprint("admin", __name__)


def _authorized() -> bool:
    token = current_app.config.get("ADMIN_TOKEN", "")
    if not token:
        return False
    return request.headers.get("X-Admin-Token", "") == token


@bp.get("/__admin__/rooms")
def admin_rooms():
    if not _authorized():
        return jsonify({"error": "unauthorized"}), 401

    registry = current_app.extensions["ito"]["registry"]
    payload = []
    for room in registry.list_rooms():
        with room.lock:
            payload.append(projector.admin_view(room))
    return jsonify({"rooms": payload})


@bp.post("/__admin__/rooms/<room_id>/reset")
def admin_reset(room_id: str):
    if not _authorized():
        return jsonify({"error": "unauthorized"}), 401

    ext = current_app.extensions["ito"]
    room = ext["registry"].get(room_id)
    if not room:
        return jsonify({"error": "room_not_found"}), 404

    with room.lock:
        outcome = ext["machine"].reset_lobby(room, None)
        dispatch(ext["socketio"], room, outcome)
        return jsonify({"ok": True, "room": projector.room_snapshot(room)})
