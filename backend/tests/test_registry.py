import pytest
from conftest import NOW

from ito.game.registry import PALETTE, RoomFullError


def test_first_joiner_creates_room_and_hosts(registry):
    room, player = registry.join('r1', 'Alice', 'sid-a', now=NOW)

    assert room.host_id == player.user_id
    assert player.role == 'PLAYER'
    assert player.status == 'ONLINE'
    assert player.color in PALETTE
    assert registry.get('r1') is room
    assert registry.resolve('sid-a') == (room, player)


def test_reconnect_with_same_user_id_does_not_duplicate(registry):
    room, first = registry.join('r1', 'Alice', 'sid-a', user_id='u-a', now=NOW)
    registry.disconnect('sid-a', now=NOW + 1)
    assert first.status == 'OFFLINE'

    room2, again = registry.join('r1', 'Alice2', 'sid-b', user_id='u-a', now=NOW + 2)

    assert room2 is room
    assert again is first
    assert len(room.players) == 1
    assert again.sid == 'sid-b'
    assert again.status == 'ONLINE'
    assert again.name == 'Alice2'
    assert registry.resolve('sid-a') == (None, None)


def test_joining_mid_game_makes_a_spectator(make_room, machine, registry):
    room = make_room()
    machine.start_game(room, 'u0', now=NOW)
    _, late = registry.join('r1', 'Late', 'sid-x', now=NOW)
    assert late.role == 'SPECTATOR'
    assert late not in room.active_players()


def test_spectator_seats_are_limited(make_room, machine, registry):
    room = make_room(max_spectators=1)
    machine.start_game(room, 'u0', now=NOW)
    registry.join('r1', 'S1', 'sid-s1', now=NOW)

    with pytest.raises(RoomFullError):
        registry.join('r1', 'S2', 'sid-s2', now=NOW)
    assert len(room.players) == 3
    assert registry.resolve('sid-s2') == (None, None)


def test_offline_players_stay_in_the_game(make_room, registry):
    room = make_room()
    room_, player = registry.disconnect('sid-1', now=NOW)
    assert room_ is room
    assert player.status == 'OFFLINE'
    assert player in room.active_players()
    assert registry.disconnect('sid-1') == (None, None)


def test_new_players_get_distinct_colors(registry):
    for i in range(len(PALETTE)):
        registry.join('r1', f'P{i}', f'sid-{i}', now=NOW)
    colors = [p.color for p in registry.get('r1').players.values()]
    assert len(set(colors)) == len(PALETTE)


def test_reusing_a_connection_releases_the_old_binding(registry):
    room1, p1 = registry.join('r1', 'Alice', 'sid-a', user_id='u-a', now=NOW)
    room2, p2 = registry.join('r2', 'Alice', 'sid-a', user_id='u-a', now=NOW)

    assert room2 is not room1
    assert p1.status == 'OFFLINE'
    assert registry.resolve('sid-a') == (room2, p2)


def test_idle_rooms_are_collected(registry):
    registry.join('quiet', 'A', 'sid-a', now=NOW)
    registry.join('busy', 'B', 'sid-b', now=NOW)
    registry.disconnect('sid-a', now=NOW)

    assert registry.collect_idle(60_000, now=NOW + 59_999) == []
    assert registry.collect_idle(60_000, now=NOW + 60_000) == ['quiet']
    assert registry.get('quiet') is None
    assert registry.get('busy') is not None


def test_default_ruleset_applies_to_new_rooms():
    from ito.game.registry import RoomRegistry

    room, _ = RoomRegistry(default_ruleset='strict').join('r', 'A', 'sid', now=NOW)
    assert room.settings.ruleset == 'strict'
    assert room.settings.deck_policy == 'fresh'


def test_superseded_connection_no_longer_speaks_for_the_player(registry):
    room, _ = registry.join('r1', 'Host', 'sid-old', user_id='u0', now=NOW)
    registry.join('r1', 'Host', 'sid-new', user_id='u0', now=NOW + 1)

    assert registry.resolve('sid-old') == (None, None)
    assert registry.resolve('sid-new') == (room, room.players['u0'])
    # The old connection closing must not mark the player offline.
    assert registry.disconnect('sid-old') == (None, None)
    assert room.players['u0'].status == 'ONLINE'


def test_remove_cancels_timer_and_unbinds_connections(playing_room, registry):
    room = playing_room()
    assert room.timer is not None

    assert registry.remove('r1')

    assert room.timer is None
    assert registry.resolve('sid-0') == (None, None)
    assert registry.remove('r1') is False


def test_idle_collection_skips_rooms_someone_returned_to(registry):
    room, _ = registry.join('r1', 'A', 'sid-a', user_id='a', now=NOW)
    registry.disconnect('sid-a', now=NOW)
    registry.join('r1', 'A', 'sid-b', user_id='a', now=NOW + 10)

    assert registry.collect_idle(1, now=NOW + 60_000) == []
    assert registry.get('r1') is room


def test_join_retries_when_room_is_dropped_before_it_is_locked(registry):
    stale, _ = registry.join('r1', 'A', 'sid-a', user_id='a', now=NOW)
    registry.remove('r1')
    calls = []
    original = registry._room_for_join

    def racing(*args):
        calls.append(args)
        return stale if len(calls) == 1 else original(*args)

    registry._room_for_join = racing
    room, player = registry.join('r1', 'A', 'sid-b', user_id='a', now=NOW)

    assert len(calls) == 2
    assert room is not stale
    assert registry.get('r1') is room
    assert stale.players['a'].sid == 'sid-a'
    assert registry.resolve('sid-b') == (room, player)
