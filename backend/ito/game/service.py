from __future__ import annotations

import logging
import re
import random
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

from . import projector
from .deck import DECK_POLICIES, build_deck, deal, deck_policy, fits
from .models import (
    ENDED,
    IN_HAND,
    LOBBY,
    PLAYING,
    PLAYING_EXPRESSION,
    PLAYING_SUBMISSION,
    RESULT_REVEAL,
    RESULT_VOTING,
    THEME_SELECTION,
    Phase,
    PhaseTimer,
    Room,
    Theme,
)
from .rules import RULESETS, ruleset_for
from .themes import custom_theme, pick_themes

log = logging.getLogger(__name__)

GAME_CLEAR = "GAME CLEAR!"
EXTRA_CLEAR = "EXTRA CLEAR!"
GAME_OVER = "GAME OVER"
TIME_UP = "TIME UP"
NOT_ENOUGH_CARDS = "NOT ENOUGH CARDS"

VOTE_CHOICES = ("CONTINUE", "REDUCE")

SETTING_RANGES: dict[str, tuple[int, int]] = {
    "initial_hand_count": (1, 10),
    "max_lifes": (1, 10),
    "win_condition_count": (1, 10),
    "time_limit_game": (0, 600),
    "time_limit_expression": (10, 300),
    "time_limit_submission": (10, 300),
    "time_limit_voting": (10, 60),
    "max_spectators": (0, 20),
}

_ROUND_FIELDS = (
    "phase",
    "phaseEndTime",
    "isPaused",
    "currentRound",
    "currentLifes",
    "currentHandCount",
    "successCount",
    "resultMessage",
    "resultInvalidCardIds",
    "theme",
    "themeCandidates",
)


def now_ms() -> int:
    return int(time.time() * 1000)


_COLOR_RE = re.compile(r"#[0-9A-Fa-f]{6}")


def is_valid_color(color: str) -> bool:
    return isinstance(color, str) and bool(_COLOR_RE.fullmatch(color))


@dataclass
class Outbound:
    event: str
    payload: Any
    # None means the whole room.
    user_id: str | None = None


@dataclass
class Outcome:
    events: list[Outbound] = field(default_factory=list)
    error: tuple[str, str] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_room(self, event: str, payload: Any) -> None:
        self.events.append(Outbound(event, payload))

    def to_player(self, user_id: str, event: str, payload: Any) -> None:
        self.events.append(Outbound(event, payload, user_id=user_id))


def _fail(code: str, message: str) -> Outcome:
    return Outcome(error=(code, message))


class GameMachine:
    """Phase transitions for one room at a time.

    Callers hold ``room.lock`` around every call. Each call mutates the room
    and returns the events to send; nothing here touches the transport.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        reveal_duration_sec: int = 5,
        theme_choices: int = 3,
        metaphor_max_length: int = 50,
        themes: list[Theme] | None = None,
    ):
        self.rng = rng or random.Random()
        self.reveal_duration_sec = reveal_duration_sec
        self.theme_choices = theme_choices
        self.metaphor_max_length = metaphor_max_length
        self.themes = themes

    @classmethod
    def from_config(cls, config: Mapping[str, Any], rng: random.Random | None = None) -> "GameMachine":
        return cls(
            rng=rng,
            reveal_duration_sec=int(config.get("REVEAL_DURATION_SEC", 5)),
            theme_choices=int(config.get("THEME_CHOICES_COUNT", 3)),
            metaphor_max_length=int(config.get("METAPHOR_MAX_LENGTH", 50)),
        )

    # ---- timers ----

    def _arm(self, room: Room, phase: Phase, seconds: int, now: int) -> None:
        # A room has one timer; arming replaces whatever was pending.
        deadline = now + seconds * 1000
        room.timer = PhaseTimer(phase=phase, deadline_ms=deadline)
        room.phase_end_time = deadline
        room.paused_remaining_ms = None
        log.info("[timer-set] room=%s phase=%s duration=%ss deadline=%d", room.room_id, phase, seconds, deadline)

    def _cancel(self, room: Room) -> None:
        room.timer = None
        room.phase_end_time = 0
        room.paused_remaining_ms = None

    @staticmethod
    def _touch(room: Room, now: int | None) -> int:
        now = now if now is not None else now_ms()
        room.last_activity_at = now
        return now

    # ---- round lifecycle ----

    def _round_events(self, room: Room, out: Outcome) -> None:
        out.to_room("room:update", projector.room_update(room, *_ROUND_FIELDS))
        out.to_room("cards:public_update", projector.public_cards(room))
        for p in room.active_players():
            out.to_player(p.user_id, "hand:update", projector.hand(room, p.user_id))
        out.to_room("player:update", projector.player_list(room))

    def _enter_round(self, room: Room, now: int, out: Outcome) -> None:
        rules = ruleset_for(room)
        room.phase = rules.round_phase
        room.result_message = None
        if room.phase == THEME_SELECTION:
            self._cancel(room)
            room.theme_candidates = pick_themes(self.rng, self.theme_choices, self.themes)
        elif room.phase == PLAYING_EXPRESSION:
            self._arm(room, PLAYING_EXPRESSION, room.settings.time_limit_expression, now)
        self._round_events(room, out)

    def _end(self, room: Room, message: str) -> None:
        room.phase = ENDED
        room.result_message = message
        self._cancel(room)
        log.info("[game-end] room=%s message=%s", room.room_id, message)

    def _next_round(self, room: Room, now: int, out: Outcome) -> None:
        room.current_round += 1
        deck_policy(room.settings.deck_policy).replenish(room, self.rng)
        if not deal(room):
            self._end(room, NOT_ENOUGH_CARDS)
            out.to_room("room:update", projector.room_update(room, *_ROUND_FIELDS))
            return
        self._enter_round(room, now, out)

    def start_game(self, room: Room, user_id: str, now: int | None = None) -> Outcome:
        player = room.players.get(user_id)
        if player is None:
            return Outcome()
        if room.host_id != user_id:
            return _fail("FORBIDDEN", "Only host can start the game.")
        if room.phase not in (LOBBY, ENDED):
            return _fail("INVALID_PHASE", "Game already running.")
        players = room.active_players()
        if not players or not fits(len(players), room.settings.initial_hand_count):
            return _fail("CONFIG_ERROR", "Not enough cards.")

        now = self._touch(room, now)
        room.current_round = 1
        room.success_count = 0
        room.current_lifes = room.settings.max_lifes
        room.current_hand_count = room.settings.initial_hand_count
        room.result_message = None
        room.result_invalid_card_ids = []
        room.deck = build_deck(self.rng)
        deal(room)
        log.info("[game-start] room=%s ruleset=%s players=%d", room.room_id, room.settings.ruleset, len(players))

        out = Outcome()
        self._enter_round(room, now, out)
        return out

    # ---- theme ----

    def select_theme(
        self,
        room: Room,
        user_id: str,
        theme_id: str | None = None,
        custom: Mapping[str, Any] | None = None,
        now: int | None = None,
    ) -> Outcome:
        if room.host_id != user_id or room.phase != THEME_SELECTION:
            return Outcome()

        chosen: Theme | None = None
        if theme_id:
            chosen = next((t for t in room.theme_candidates if t.id == theme_id), None)
        if chosen is None and isinstance(custom, Mapping):
            title = str(custom.get("title") or "").strip()
            if title:
                chosen = custom_theme(
                    title,
                    str(custom.get("scaleMin") or ""),
                    str(custom.get("scaleMax") or ""),
                    max_length=self.metaphor_max_length,
                )
        if chosen is None:
            return Outcome()

        now = self._touch(room, now)
        room.theme = chosen
        room.theme_candidates = []
        room.phase = PLAYING
        if room.settings.time_limit_game > 0:
            self._arm(room, PLAYING, room.settings.time_limit_game, now)
        else:
            self._cancel(room)

        out = Outcome()
        out.to_room("room:update", projector.room_update(room, "phase", "phaseEndTime", "isPaused", "theme", "themeCandidates"))
        return out

    def update_theme_text(
        self,
        room: Room,
        user_id: str,
        title: str | None = None,
        scale_min: str | None = None,
        scale_max: str | None = None,
        now: int | None = None,
    ) -> Outcome:
        if user_id not in room.players:
            return Outcome()
        if room.host_id != user_id:
            return _fail("FORBIDDEN", "Only host can edit the theme.")

        self._touch(room, now)
        limit = self.metaphor_max_length
        if isinstance(title, str):
            room.theme.title = title[:limit]
        if isinstance(scale_min, str):
            room.theme.scale_min = scale_min[:limit]
        if isinstance(scale_max, str):
            room.theme.scale_max = scale_max[:limit]

        out = Outcome()
        out.to_room("room:update", projector.room_update(room, "theme"))
        return out

    def pause_timer(self, room: Room, user_id: str, now: int | None = None) -> Outcome:
        if user_id not in room.players:
            return Outcome()
        if room.host_id != user_id:
            return _fail("FORBIDDEN", "Only host can pause the timer.")
        if not ruleset_for(room).pausable or room.phase != PLAYING:
            return _fail("INVALID_PHASE", "Timer cannot be paused now.")
        if room.timer is None:
            return Outcome()

        now = self._touch(room, now)
        remaining = max(0, room.timer.deadline_ms - now)
        room.timer = None
        room.phase_end_time = 0
        room.paused_remaining_ms = remaining
        log.info("[timer-pause] room=%s remaining=%dms", room.room_id, remaining)

        out = Outcome()
        out.to_room("room:update", projector.room_update(room, "phaseEndTime", "isPaused"))
        return out

    def resume_timer(self, room: Room, user_id: str, now: int | None = None) -> Outcome:
        if user_id not in room.players:
            return Outcome()
        if room.host_id != user_id:
            return _fail("FORBIDDEN", "Only host can resume the timer.")
        if not ruleset_for(room).pausable or room.phase != PLAYING:
            return _fail("INVALID_PHASE", "Timer cannot be resumed now.")
        if room.paused_remaining_ms is None:
            return Outcome()

        now = self._touch(room, now)
        deadline = now + room.paused_remaining_ms
        room.timer = PhaseTimer(phase=PLAYING, deadline_ms=deadline)
        room.phase_end_time = deadline
        room.paused_remaining_ms = None
        log.info("[timer-resume] room=%s deadline=%d", room.room_id, deadline)

        out = Outcome()
        out.to_room("room:update", projector.room_update(room, "phaseEndTime", "isPaused"))
        return out

    # ---- cards ----

    def submit_metaphor(self, room: Room, user_id: str, card_id: str, text: str, now: int | None = None) -> Outcome:
        rules = ruleset_for(room)
        if room.phase not in rules.clue_phases:
            return Outcome()
        card = room.find_card(card_id)
        if card is None or card.owner_id != user_id:
            return Outcome()

        self._touch(room, now)
        card.metaphor = str(text or "")[: self.metaphor_max_length]

        out = Outcome()
        out.to_room("cards:public_update", projector.public_cards(room))
        if rules.echo_hand_on_clue:
            out.to_player(user_id, "hand:update", projector.hand(room, user_id))
        return out

    def move_card(self, room: Room, user_id: str, card_id: str, target: int, now: int | None = None) -> Outcome:
        """Place, reorder or (target == -1) take back a card, then re-rank the table densely."""
        rules = ruleset_for(room)
        player = room.players.get(user_id)
        if player is None or room.phase not in rules.move_phases:
            return Outcome()
        card = room.find_card(card_id)
        if card is None:
            return Outcome()
        to_hand = target == IN_HAND
        if to_hand and not card.on_table:
            return Outcome()
        if not rules.may_move(room, player, card, to_hand):
            return Outcome()

        self._touch(room, now)
        table = [c for c in room.table_cards() if c.id != card.id]
        if to_hand:
            card.order = IN_HAND
        else:
            index = max(0, min(target, len(table)))
            table.insert(index, card)
        for i, c in enumerate(table):
            c.order = i

        out = Outcome()
        out.to_room("cards:public_update", projector.public_cards(room))
        if rules.move_clears_done and player.is_submitted:
            player.is_submitted = False
            player.is_ready = False
            out.to_room("player:update", projector.player_list(room))
        return out

    def submit_done(self, room: Room, user_id: str, now: int | None = None) -> Outcome:
        rules = ruleset_for(room)
        player = room.players.get(user_id)
        if player is None or not player.is_active or room.phase not in rules.done_phases:
            return Outcome()

        out = Outcome()
        if player.is_submitted:
            if rules.done_toggles:
                self._touch(room, now)
                player.is_submitted = False
                player.is_ready = False
                out.to_room("player:update", projector.player_list(room))
            return out

        if rules.done_requires_empty_hand and any(not c.on_table for c in room.hand_of(user_id)):
            return _fail("CARDS_IN_HAND", "Place all of your cards first.")

        now = self._touch(room, now)
        player.is_submitted = True
        player.is_ready = True
        if rules.locked_after_done:
            for c in room.hand_of(user_id):
                c.is_submitted = True

        if rules.round_complete(room):
            self._evaluate(room, now, out)
        else:
            out.to_room("player:update", projector.player_list(room))
        return out

    # ---- evaluation ----

    @staticmethod
    def find_inversions(room: Room) -> list[str]:
        """Ids of both cards of every adjacent out-of-order pair, first seen first."""
        table = room.table_cards()
        invalid: list[str] = []
        for left, right in zip(table, table[1:]):
            if left.number > right.number:
                invalid.extend((left.id, right.id))
        return list(dict.fromkeys(invalid))

    def _evaluate(self, room: Room, now: int, out: Outcome) -> None:
        room.result_invalid_card_ids = self.find_inversions(room)
        room.phase = RESULT_REVEAL
        self._cancel(room)
        out.to_room("cards:reveal", projector.reveal(room))

        players = room.active_players()
        if not room.result_invalid_card_ids:
            room.success_count += 1
            if not fits(len(players), room.current_hand_count + 1):
                self._end(room, EXTRA_CLEAR)
            elif room.success_count >= room.settings.win_condition_count:
                self._end(room, GAME_CLEAR)
            else:
                room.current_hand_count += 1
                self._arm(room, RESULT_REVEAL, self.reveal_duration_sec, now)
        else:
            room.current_lifes = max(0, room.current_lifes - 1)
            if room.current_lifes <= 0:
                self._end(room, GAME_OVER)
            else:
                room.phase = RESULT_VOTING
                for p in players:
                    p.vote = None
                self._arm(room, RESULT_VOTING, room.settings.time_limit_voting, now)

        log.info(
            "[evaluate] room=%s round=%d invalid=%d successes=%d lifes=%d phase=%s",
            room.room_id, room.current_round, len(room.result_invalid_card_ids),
            room.success_count, room.current_lifes, room.phase,
        )
        out.to_room("room:update", projector.room_update(room, *_ROUND_FIELDS))
        out.to_room("player:update", projector.player_list(room))

    # ---- voting ----

    def vote(self, room: Room, user_id: str, choice: str, now: int | None = None) -> Outcome:
        player = room.players.get(user_id)
        if player is None or not player.is_active or room.phase != RESULT_VOTING:
            return Outcome()
        if choice not in VOTE_CHOICES:
            return Outcome()

        now = self._touch(room, now)
        player.vote = choice  # type: ignore[assignment]

        out = Outcome()
        if all(p.vote for p in room.active_players()):
            self._tally(room, now, out)
        else:
            out.to_room("player:update", projector.player_list(room))
        return out

    def _tally(self, room: Room, now: int, out: Outcome) -> None:
        # Missing votes only exist on a forced tally and count as CONTINUE.
        players = room.active_players()
        reduce_votes = sum(1 for p in players if p.vote == "REDUCE")
        continue_votes = len(players) - reduce_votes
        if reduce_votes > continue_votes:
            room.current_hand_count = max(1, room.current_hand_count - 1)
        log.info(
            "[tally] room=%s reduce=%d continue=%d hand=%d",
            room.room_id, reduce_votes, continue_votes, room.current_hand_count,
        )
        self._next_round(room, now, out)

    # ---- lobby / admin ----

    def reset_lobby(self, room: Room, user_id: str | None, now: int | None = None) -> Outcome:
        """Back to LOBBY keeping every player. ``user_id=None`` bypasses the host check (admin)."""
        if user_id is not None:
            if user_id not in room.players:
                return Outcome()
            if room.host_id != user_id:
                return _fail("FORBIDDEN", "Only host can reset the lobby.")

        self._touch(room, now)
        self._cancel(room)
        room.phase = LOBBY
        room.current_round = 0
        room.success_count = 0
        room.current_lifes = room.settings.max_lifes
        room.current_hand_count = room.settings.initial_hand_count
        room.cards = []
        room.deck = []
        room.result_message = None
        room.result_invalid_card_ids = []
        room.theme = Theme()
        room.theme_candidates = []
        for p in room.players.values():
            p.is_ready = False
            p.is_submitted = False
            p.vote = None
        log.info("[reset-lobby] room=%s", room.room_id)

        out = Outcome()
        out.to_room("room:update", projector.room_snapshot(room))
        out.to_room("cards:public_update", [])
        for p in room.players.values():
            out.to_player(p.user_id, "hand:update", [])
        out.to_room("player:update", projector.player_list(room))
        return out

    def update_settings(self, room: Room, user_id: str, partial: Mapping[str, Any], now: int | None = None) -> Outcome:
        if user_id not in room.players:
            return Outcome()
        if room.host_id != user_id:
            return _fail("FORBIDDEN", "Only host can change settings.")
        if room.phase != LOBBY:
            return _fail("INVALID_PHASE", "Settings can only change in the lobby.")

        self._touch(room, now)
        settings = room.settings
        for key, raw in (partial or {}).items():
            name = projector.settings_field(key)
            if name is None:
                continue
            if name == "ruleset":
                if raw in RULESETS and raw != settings.ruleset:
                    settings.ruleset = raw
                    if "deckPolicy" not in partial:
                        settings.deck_policy = RULESETS[raw].default_deck_policy
            elif name == "deck_policy":
                if raw in DECK_POLICIES:
                    settings.deck_policy = raw
            else:
                if isinstance(raw, bool):
                    continue
                try:
                    value = int(raw)
                except (TypeError, ValueError):
                    continue
                lo, hi = SETTING_RANGES[name]
                setattr(settings, name, max(lo, min(hi, value)))

        room.current_hand_count = settings.initial_hand_count
        room.current_lifes = settings.max_lifes

        out = Outcome()
        out.to_room("room:update", projector.room_update(room, "settings", "currentHandCount", "currentLifes"))
        return out

    def update_color(self, room: Room, user_id: str, color: str, now: int | None = None) -> Outcome:
        player = room.players.get(user_id)
        if player is None or not is_valid_color(color):
            return Outcome()
        if any(p.color.lower() == color.lower() for p in room.active_players() if p.user_id != user_id):
            return _fail("COLOR_TAKEN", "That color is already taken.")

        self._touch(room, now)
        player.color = color
        out = Outcome()
        out.to_room("player:update", projector.player_list(room))
        return out

    # ---- deadlines ----

    def on_deadline(self, room: Room, now: int | None = None) -> Outcome:
        """Fire the room's timer if it is due and still belongs to the current phase."""
        now = now if now is not None else now_ms()
        timer = room.timer
        out = Outcome()
        if timer is None or now < timer.deadline_ms:
            return out
        room.timer = None
        if timer.phase != room.phase:
            log.info("[timer-abort] room=%s timer_phase=%s phase=%s", room.room_id, timer.phase, room.phase)
            return out
        log.info("[timer-fire] room=%s phase=%s", room.room_id, room.phase)

        if room.phase == PLAYING:
            self._end(room, TIME_UP)
            out.to_room("cards:reveal", projector.reveal(room))
            out.to_room("room:update", projector.room_update(room, *_ROUND_FIELDS))
        elif room.phase == PLAYING_EXPRESSION:
            room.phase = PLAYING_SUBMISSION
            self._arm(room, PLAYING_SUBMISSION, room.settings.time_limit_submission, now)
            out.to_room("room:update", projector.room_update(room, "phase", "phaseEndTime"))
        elif room.phase == PLAYING_SUBMISSION:
            # Unplaced cards join the end of the table in deal order.
            placed = len(room.table_cards())
            for i, c in enumerate([c for c in room.cards if not c.on_table]):
                c.order = placed + i
            self._evaluate(room, now, out)
        elif room.phase == RESULT_REVEAL:
            self._next_round(room, now, out)
        elif room.phase == RESULT_VOTING:
            if ruleset_for(room).force_vote_on_timeout:
                self._tally(room, now, out)
            else:
                room.phase_end_time = 0
                out.to_room("room:update", projector.room_update(room, "phaseEndTime"))
        return out
