from __future__ import annotations

import logging
import random
import uuid
from threading import RLock

from .models import LOBBY, Player, Room, Settings
from .rules import RULESETS
from .service import now_ms

log = logging.getLogger(__name__)

PALETTE = ["#E63946", "#F1FAEE", "#A8DADC", "#457B9D", "#1D3557", "#E76F51", "#F4A261", "#2A9D8F"]


class RoomFullError(Exception):
    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(f"Room '{room_id}' has no spectator seats left")


class RoomRegistry:
    """All live rooms plus a connection index.

    The index maps a transient Socket.IO sid to the (room, durable user id) pair
    it currently speaks for, so handlers never scan every room.
    """

    def __init__(self, rng: random.Random | None = None, default_ruleset: str = "cooperative"):
        self._lock = RLock()
        self._rooms: dict[str, Room] = {}
        self._sid_index: dict[str, tuple[str, str]] = {}
        self._rng = rng or random.Random()
        self._default_ruleset = default_ruleset if default_ruleset in RULESETS else "cooperative"

    def get(self, room_id: str) -> Room | None:
        with self._lock:
            return self._rooms.get(room_id)

    def list_rooms(self) -> list[Room]:
        with self._lock:
            return list(self._rooms.values())

    def remove(self, room_id: str) -> bool:
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                return False
            with room.lock:
                self._drop(room)
            return True

    def _drop(self, room: Room) -> None:
        # Registry lock and room lock both held, always taken in that order.
        self._rooms.pop(room.room_id, None)
        room.timer = None
        for sid, (rid, _) in list(self._sid_index.items()):
            if rid == room.room_id:
                del self._sid_index[sid]
        log.info("[room-remove] room=%s", room.room_id)

    def resolve(self, sid: str) -> tuple[Room, Player] | tuple[None, None]:
        with self._lock:
            entry = self._sid_index.get(sid)
            if not entry:
                return None, None
            room = self._rooms.get(entry[0])
            player = room.players.get(entry[1]) if room else None
            if room is None or player is None or player.sid != sid:
                self._sid_index.pop(sid, None)
                return None, None
            return room, player

    def _new_settings(self) -> Settings:
        ruleset = RULESETS[self._default_ruleset]
        return Settings(ruleset=ruleset.name, deck_policy=ruleset.default_deck_policy)

    def _pick_color(self, room: Room) -> str:
        taken = {p.color for p in room.active_players()}
        free = [c for c in PALETTE if c not in taken]
        return self._rng.choice(free or PALETTE)

    def _room_for_join(self, room_id: str, uid: str, sid: str, now: int) -> Room:
        with self._lock:
            # One connection speaks for one player at a time.
            self._release_sid(sid, now)

            room = self._rooms.get(room_id)
            if room is None:
                settings = self._new_settings()
                room = Room(
                    room_id=room_id,
                    host_id=uid,
                    created_at=now,
                    last_activity_at=now,
                    settings=settings,
                    current_hand_count=settings.initial_hand_count,
                    current_lifes=settings.max_lifes,
                )
                self._rooms[room_id] = room
                log.info("[room-create] room=%s host=%s", room_id, uid)
            return room

    def join(
        self,
        room_id: str,
        name: str,
        sid: str,
        user_id: str | None = None,
        now: int | None = None,
    ) -> tuple[Room, Player]:
        """Create, reconnect or admit. Raises RoomFullError when no seat is left."""
        now = now if now is not None else now_ms()
        uid = (user_id or "").strip() or str(uuid.uuid4())

        while True:
            room = self._room_for_join(room_id, uid, sid, now)
            with room.lock:
                # Idle collection may have dropped the room before we got its lock.
                if self._rooms.get(room_id) is not room:
                    continue
                old_sid, player = self._seat(room, uid, name, sid, now)
                break

        with self._lock:
            if old_sid and old_sid != sid and self._sid_index.get(old_sid) == (room_id, uid):
                del self._sid_index[old_sid]
            self._sid_index[sid] = (room_id, uid)
        return room, player

    def _seat(self, room: Room, uid: str, name: str, sid: str, now: int) -> tuple[str | None, Player]:
        player = room.players.get(uid)
        old_sid = None
        if player is not None:
            old_sid = player.sid
            player.sid = sid
            player.status = "ONLINE"
            player.name = name
            player.last_active_at = now
            log.info("[reconnect] room=%s user=%s", room.room_id, uid)
        else:
            role = "PLAYER" if room.phase == LOBBY else "SPECTATOR"
            if role == "SPECTATOR":
                spectators = sum(1 for p in room.players.values() if p.role == "SPECTATOR")
                if spectators >= room.settings.max_spectators:
                    raise RoomFullError(room.room_id)
            player = Player(
                user_id=uid,
                sid=sid,
                name=name,
                color=self._pick_color(room) if role == "PLAYER" else self._rng.choice(PALETTE),
                role=role,
                joined_at=now,
                last_active_at=now,
            )
            room.players[uid] = player
            log.info("[join] room=%s user=%s role=%s", room.room_id, uid, role)
        room.last_activity_at = now
        return old_sid, player

    def _release_sid(self, sid: str, now: int) -> None:
        entry = self._sid_index.pop(sid, None)
        if not entry:
            return
        room = self._rooms.get(entry[0])
        if room is None:
            return
        with room.lock:
            player = room.players.get(entry[1])
            if player is not None and player.sid == sid:
                player.status = "OFFLINE"
                player.last_active_at = now

    def disconnect(self, sid: str, now: int | None = None) -> tuple[Room, Player] | tuple[None, None]:
        now = now if now is not None else now_ms()
        room, player = self.resolve(sid)
        if room is None:
            return None, None
        with room.lock:
            if player.sid == sid:
                player.status = "OFFLINE"
                player.last_active_at = now
                room.last_activity_at = now
        with self._lock:
            self._sid_index.pop(sid, None)
        log.info("[disconnect] room=%s user=%s", room.room_id, player.user_id)
        return room, player

    def collect_idle(self, ttl_ms: int, now: int | None = None) -> list[str]:
        """Drop rooms nobody is connected to and nobody touched for ttl_ms."""
        now = now if now is not None else now_ms()
        removed = []
        with self._lock:
            for room in list(self._rooms.values()):
                with room.lock:
                    if any(p.status == "ONLINE" for p in room.players.values()):
                        continue
                    if now - room.last_activity_at < ttl_ms:
                        continue
                    self._drop(room)
                removed.append(room.room_id)
        return removed
