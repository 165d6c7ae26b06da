from __future__ import annotations

from dataclasses import dataclass, field
from threading import RLock
from typing import Literal


Phase = Literal[
    "LOBBY",
    "THEME_SELECTION",
    "PLAYING",
    "PLAYING_EXPRESSION",
    "PLAYING_SUBMISSION",
    "RESULT_REVEAL",
    "RESULT_VOTING",
    "ENDED",
]
PlayerRole = Literal["PLAYER", "SPECTATOR"]
ConnectionStatus = Literal["ONLINE", "OFFLINE"]
VoteChoice = Literal["CONTINUE", "REDUCE"]

LOBBY: Phase = "LOBBY"
THEME_SELECTION: Phase = "THEME_SELECTION"
PLAYING: Phase = "PLAYING"
PLAYING_EXPRESSION: Phase = "PLAYING_EXPRESSION"
PLAYING_SUBMISSION: Phase = "PLAYING_SUBMISSION"
RESULT_REVEAL: Phase = "RESULT_REVEAL"
RESULT_VOTING: Phase = "RESULT_VOTING"
ENDED: Phase = "ENDED"

# Card order for a card still held in its owner's hand.
IN_HAND = -1
MAX_CARD_NUMBER = 100


@dataclass
class Player:
    user_id: str
    sid: str
    name: str
    color: str = ""
    role: PlayerRole = "PLAYER"
    status: ConnectionStatus = "ONLINE"
    is_ready: bool = False
    is_submitted: bool = False
    vote: VoteChoice | None = None
    joined_at: int = 0
    last_active_at: int = 0

    @property
    def is_active(self) -> bool:
        return self.role == "PLAYER"


@dataclass
class Card:
    id: str
    number: int
    owner_id: str
    metaphor: str = ""
    order: int = IN_HAND
    is_submitted: bool = False

    @property
    def on_table(self) -> bool:
        return self.order >= 0


@dataclass
class Theme:
    id: str = "default"
    category: str = "Default"
    title: str = "Waiting for Theme..."
    scale_min: str = "1"
    scale_max: str = "100"
    editing_user_id: str | None = None
    lock_expires_at: int | None = None


@dataclass
class Settings:
    initial_hand_count: int = 1
    max_lifes: int = 2
    win_condition_count: int = 3
    time_limit_game: int = 120
    time_limit_expression: int = 60
    time_limit_submission: int = 60
    time_limit_voting: int = 30
    max_spectators: int = 10
    ruleset: str = "cooperative"
    deck_policy: str = "recycle"


@dataclass
class PhaseTimer:
    phase: Phase
    deadline_ms: int


@dataclass
class Room:
    room_id: str
    host_id: str
    phase: Phase = LOBBY
    phase_end_time: int = 0
    created_at: int = 0
    last_activity_at: int = 0
    settings: Settings = field(default_factory=Settings)
    current_round: int = 0
    current_hand_count: int = 1
    success_count: int = 0
    current_lifes: int = 2
    result_message: str | None = None
    result_invalid_card_ids: list[str] = field(default_factory=list)
    theme: Theme = field(default_factory=Theme)
    theme_candidates: list[Theme] = field(default_factory=list)
    players: dict[str, Player] = field(default_factory=dict)
    deck: list[int] = field(default_factory=list)
    cards: list[Card] = field(default_factory=list)
    timer: PhaseTimer | None = None
    paused_remaining_ms: int | None = None
    lock: RLock = field(default_factory=RLock, repr=False, compare=False)

    def active_players(self) -> list[Player]:
        return [p for p in self.players.values() if p.is_active]

    def find_card(self, card_id: str) -> Card | None:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def table_cards(self) -> list[Card]:
        return sorted((c for c in self.cards if c.on_table), key=lambda c: c.order)

    def hand_of(self, user_id: str) -> list[Card]:
        return [c for c in self.cards if c.owner_id == user_id]
