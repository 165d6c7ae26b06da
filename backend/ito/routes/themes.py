from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..game import projector
from ..game.themes import pick_themes

bp = Blueprint("themes", __name__)


@bp.get("/themes")
def get_themes():
    try:
        count = int(request.args.get("count", str(current_app.config.get("THEME_CHOICES_COUNT", 3))))
    except ValueError:
        count = 3

    machine = current_app.extensions["ito"]["machine"]
    choices = pick_themes(machine.rng, count, machine.themes)
    return jsonify({"themes": [projector.theme_view(t) for t in choices]})
