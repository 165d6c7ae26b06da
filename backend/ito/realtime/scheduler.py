from __future__ import annotations

import logging
from threading import Lock

from flask_socketio import SocketIO

from ..game.registry import RoomRegistry
from ..game.service import GameMachine, now_ms
from .events import dispatch

log = logging.getLogger(__name__)


class DeadlineSweeper:
    """Single background loop that fires due room timers.

    Every room is driven by this pull-style sweep only; nothing else schedules
    callbacks, so a timer cannot fire twice.
    """

    def __init__(
        self,
        socketio: SocketIO,
        registry: RoomRegistry,
        machine: GameMachine,
        interval_sec: float = 0.25,
        idle_ttl_sec: int = 600,
    ):
        self.socketio = socketio
        self.registry = registry
        self.machine = machine
        self.interval_sec = interval_sec
        self.idle_ttl_ms = idle_ttl_sec * 1000
        self._running = False
        self._lock = Lock()

    @property
    def running(self) -> bool:
        return self._running

    def ensure_started(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
        log.info("[sweep-start] interval=%ss", self.interval_sec)
        self.socketio.start_background_task(self._run)

    def stop(self) -> None:
        self._running = False

    def sweep(self, now: int | None = None) -> None:
        now = now if now is not None else now_ms()
        for room in self.registry.list_rooms():
            with room.lock:
                if room.timer is None:
                    continue
                outcome = self.machine.on_deadline(room, now)
                dispatch(self.socketio, room, outcome)

        for room_id in self.registry.collect_idle(self.idle_ttl_ms, now):
            log.info("[room-gc] room=%s", room_id)

    def _run(self) -> None:
        while self._running:
            try:
                self.sweep()
            except Exception:
                log.exception("[sweep-error]")
            self.socketio.sleep(self.interval_sec)
        log.info("[sweep-stop]")
