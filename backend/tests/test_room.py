import pytest

from songquiz.services.games import FINISHED, PAUSED, PLAYING, WAITING
from songquiz.services.games import room as room_module
from songquiz.services.games.modes import StandardMode

from conftest import FakeClock, FakeStats


def _start(room, scheduler):
    assert room.start_game()
    scheduler.fire('intro')


def _play_out(room, scheduler):
    while room.status == PLAYING:
        scheduler.fire()


class FakeWatchLists:
    def __init__(self, lists):
        self.lists = lists

    def watched_ids(self, user_ids):
        return self.lists


# ---- start ----

def test_start_game_broadcasts_and_arms_intro(make_room, scheduler, events, provider):
    room = make_room()
    assert room.start_game()

    assert room.status == PLAYING
    assert room.current_round_index == -1
    assert len(room.playlist) == 3
    started = events.last('game_started')
    assert started['total_rounds'] == 3
    assert started['first_video'] == 'video-1'
    assert started['intro_duration'] == 3
    assert scheduler.active_phases == ['intro']
    assert provider.requests[0][0] == 3


def test_start_game_is_noop_while_playing(make_room, scheduler):
    room = make_room()
    room.start_game()
    assert not room.start_game()
    assert scheduler.active_phases == ['intro']


def test_first_round_starts_after_intro(make_room, scheduler, events):
    room = make_room()
    _start(room, scheduler)

    assert room.current_round_index == 0
    start = events.last('round_start')
    assert start['round'] == 1
    assert start['total_rounds'] == 3
    assert start['duration'] == 20
    assert 'Anime 1' in start['choices'] and len(start['choices']) == 4
    assert 'Anime 1' in start['duo'] and len(start['duo']) == 2
    handle, _ = scheduler.active[0]
    assert handle.phase == 'guess'
    assert handle.delay == pytest.approx(20.5)


def test_guess_duration_setting_is_applied_to_rounds(make_room, scheduler, events):
    room = make_room(guess_duration=30)
    _start(room, scheduler)
    assert events.last('round_start')['duration'] == 30
    assert scheduler.active[0][0].delay == pytest.approx(30.5)


def test_no_songs_keeps_room_waiting(make_room, events, provider):
    provider.items = []
    room = make_room()

    assert not room.start_game()
    assert room.status == WAITING
    assert events.last('error')['message']
    assert 'game_started' not in events.names()


def test_provider_failure_on_start_keeps_room_waiting(make_room, scheduler, events, provider):
    provider.fail = True
    room = make_room()

    assert not room.start_game()
    assert room.status == WAITING
    assert 'error' in events.names()
    assert scheduler.active == []


def test_fallback_notice_follows_game_started(make_room, events, provider):
    provider.fallback_used = True
    room = make_room(sound_selection='watched', watched_mode='union',
                     watchlists=FakeWatchLists([[3, 1], [2, 1]]))
    room.start_game()

    names = events.names()
    assert names.index('game_started') < names.index('fallback_notice')
    assert provider.requests[0][1]['watched_ids'] == [1, 2, 3]


def test_choice_failure_degrades_to_target_only(make_room, scheduler, events, provider):
    provider.fail_choices = True
    room = make_room()
    _start(room, scheduler)

    start = events.last('round_start')
    assert start['choices'] == ['Anime 1']
    assert start['duo'] == ['Anime 1']
    assert scheduler.active_phases == ['guess']


# ---- answers ----

def test_answers_are_hidden_until_reveal_then_scored(make_room, scheduler, events):
    room = make_room()
    _start(room, scheduler)

    assert room.submit_answer('p1', 'anime 1', 'typing')
    assert not room.submit_answer('p1', 'second try', 'typing')
    assert room.submit_answer('p2', 'Something else', 'typing')
    roster = events.last('update_players')['players']
    assert all(p['has_answered'] for p in roster)
    assert all(p['current_answer'] is None for p in roster)

    scheduler.fire('guess')
    reveal = events.last('round_reveal')
    assert reveal['round'] == 1
    assert reveal['correct_answer'] == 'Anime 1'
    assert reveal['next_video'] == 'video-2'
    by_id = {p['id']: p for p in reveal['players']}
    assert (by_id['p1']['score'], by_id['p1']['is_correct']) == (5, True)
    assert (by_id['p2']['score'], by_id['p2']['is_correct']) == (0, False)
    assert by_id['p2']['current_answer'] == 'Something else'
    assert scheduler.active_phases == ['reveal']


def test_answer_mode_must_match_response_type(make_room, scheduler):
    room = make_room(response_type='qcm')
    _start(room, scheduler)
    assert not room.submit_answer('p1', 'Anime 1', 'typing')
    assert room.submit_answer('p1', 'Anime 1', 'carre')


def test_answers_outside_guess_phase_are_ignored(make_room, scheduler):
    room = make_room()
    assert not room.submit_answer('p1', 'Anime 1', 'typing')
    _start(room, scheduler)
    scheduler.fire('guess')
    assert not room.submit_answer('p1', 'Anime 1', 'typing')


# ---- full game ----

def test_full_game_ends_with_game_over_and_stats(make_room, scheduler, events):
    stats = FakeStats()
    room = make_room(stats=stats)
    _start(room, scheduler)
    room.submit_answer('p1', 'Anime 1', 'typing')
    _play_out(room, scheduler)

    assert room.status == FINISHED
    assert [s['round'] for s in events.payloads('round_start')] == [1, 2, 3]
    assert [s['round'] for s in events.payloads('round_reveal')] == [1, 2, 3]
    victory = events.last('game_over')['victory_data']
    assert victory['winner_ids'] == ['p1']
    assert victory['max_possible_score'] == 15
    assert len(victory['history']) == 3
    assert scheduler.active == []

    players, winners = stats.games[0]
    assert winners == ['p1']
    assert sorted(p.seen_song_ids for p in players)[0] == [1, 2, 3]


def test_round_index_is_monotonic(make_room, scheduler):
    room = make_room()
    room.start_game()
    seen = [room.current_round_index]
    while room.status == PLAYING:
        scheduler.fire()
        seen.append(room.current_round_index)
    assert seen == sorted(seen)
    assert seen[-1] == 3


def test_stats_failure_does_not_block_game_over(make_room, scheduler, events):
    room = make_room(stats=FakeStats(fail=True))
    _start(room, scheduler)
    _play_out(room, scheduler)

    assert room.status == FINISHED
    assert 'game_over' in events.names()


def test_game_can_restart_after_game_over(make_room, scheduler):
    room = make_room()
    _start(room, scheduler)
    room.submit_answer('p1', 'Anime 1', 'typing')
    _play_out(room, scheduler)

    assert room.start_game()
    assert room.players['p1'].score == 0
    assert room.current_round_index == -1


# ---- pause / skip ----

def test_pause_vote_waits_for_phase_boundary(make_room, scheduler, events):
    room = make_room()
    _start(room, scheduler)

    room.toggle_pause('p1')
    assert events.last('vote_update') == {'type': 'pause', 'count': 1, 'required': 1, 'is_pending': True}
    assert room.status == PLAYING
    assert scheduler.active_phases == ['guess']

    scheduler.fire('guess')
    assert room.status == PLAYING
    assert 'round_reveal' in events.names()

    scheduler.fire('reveal')
    assert room.status == PAUSED
    assert events.last('game_paused') == {'is_paused': True}
    assert room.current_round_index == 0
    assert scheduler.active == []

    room.toggle_pause('p2')
    assert events.last('game_resuming') == {'duration': 3}
    assert scheduler.active_phases == ['resume']

    scheduler.fire('resume')
    assert room.status == PLAYING
    assert events.last('game_paused') == {'is_paused': False}
    assert room.current_round_index == 1
    assert events.last('round_start')['round'] == 2


def test_pause_vote_toggled_back_cancels_pending(make_room, scheduler):
    room = make_room(names=('Alice', 'Bob', 'Cara'))
    _start(room, scheduler)
    room.toggle_pause('p1')
    room.toggle_pause('p2')
    assert room.votes.pause_pending
    room.toggle_pause('p2')
    assert not room.votes.pause_pending

    scheduler.fire('guess')
    scheduler.fire('reveal')
    assert room.status == PLAYING
    assert room.current_round_index == 1


def test_skip_quorum_cuts_guess_and_reveal(make_room, scheduler, events):
    room = make_room(names=('Alice', 'Bob', 'Cara'))
    _start(room, scheduler)
    guess_handle, _ = scheduler.active[0]

    room.vote_skip('p1')
    assert 'round_reveal' not in events.names()
    assert events.last('vote_update') == {'type': 'skip', 'count': 1, 'required': 2}

    room.vote_skip('p2')
    assert len(events.payloads('round_reveal')) == 1
    assert guess_handle.cancelled
    assert scheduler.active_phases == ['reveal']
    assert room.votes.skip_votes == set()

    room.vote_skip('p1')
    room.vote_skip('p3')
    assert room.current_round_index == 1
    assert events.last('round_start')['round'] == 2
    assert scheduler.active_phases == ['guess']


def test_stale_guess_timer_after_skip_does_nothing(make_room, scheduler, events):
    room = make_room()
    _start(room, scheduler)
    _, stale_callback = scheduler.active[0]

    room.vote_skip('p1')
    stale_callback()

    assert len(events.payloads('round_reveal')) == 1
    assert scheduler.active_phases == ['reveal']
    assert room.current_round_index == 0


def test_skip_is_ignored_outside_rounds(make_room, scheduler, events):
    room = make_room()
    room.vote_skip('p1')
    assert events.names() == []

    room.start_game()
    room.vote_skip('p1')
    assert 'round_reveal' not in events.names()
    assert scheduler.active_phases == ['intro']


def test_round_cannot_reveal_twice(make_room, scheduler, events):
    room = make_room()
    _start(room, scheduler)
    assert room.force_end_round()
    assert not room.force_end_round()
    assert len(events.payloads('round_reveal')) == 1


# ---- roster ----

def test_cancel_game_resets_to_waiting(make_room, scheduler, events):
    room = make_room()
    _start(room, scheduler)
    _, stale_callback = scheduler.active[0]

    room.cancel_game()
    assert room.status == WAITING
    assert room.current_round_index == -1
    assert scheduler.active == []
    assert 'game_cancelled' in events.names()

    stale_callback()
    assert 'round_reveal' not in events.names()


def test_remove_player_twice_is_noop(make_room):
    room = make_room()
    assert room.remove_player('p2')
    assert not room.remove_player('p2')
    assert list(room.players) == ['p1']


def test_last_player_leaving_stops_room(make_room, scheduler):
    room = make_room()
    _start(room, scheduler)
    room.remove_player('p1')
    room.remove_player('p2')

    assert room.is_empty
    assert room.status == FINISHED
    assert scheduler.active == []


def test_leaving_voter_is_removed_from_quorum(make_room, scheduler, events):
    room = make_room(names=('Alice', 'Bob', 'Cara'))
    _start(room, scheduler)
    room.vote_skip('p2')
    room.remove_player('p2')
    # the departed vote no longer counts; 2 players left, quorum 1
    assert room.votes.skip_votes == set()
    room.vote_skip('p1')
    assert len(events.payloads('round_reveal')) == 1


def test_departure_reaching_skip_quorum_ends_guess(make_room, scheduler, events):
    room = make_room(names=('Alice', 'Bob', 'Cara'))
    _start(room, scheduler)
    room.vote_skip('p1')
    assert 'round_reveal' not in events.names()

    room.remove_player('p3')
    assert len(events.payloads('round_reveal')) == 1
    assert scheduler.active_phases == ['reveal']


def test_departure_reaching_skip_quorum_ends_reveal(make_room, scheduler, events):
    room = make_room(names=('Alice', 'Bob', 'Cara', 'Dan'))
    _start(room, scheduler)
    scheduler.fire('guess')
    room.vote_skip('p1')

    room.remove_player('p4')
    assert room.current_round_index == 0
    assert scheduler.active_phases == ['reveal']

    room.remove_player('p3')
    assert room.current_round_index == 1
    assert events.last('round_start')['round'] == 2
    assert scheduler.active_phases == ['guess']


def test_host_leaving_promotes_alphabetical_first(make_room, events):
    room = make_room(names=('Zed', 'bob', 'Amy'))
    room.remove_player('p1')

    assert room.host_id == 'p3'
    assert ('host_promoted', {'host_id': 'p3'}, 'p3') in events.events
    assert room.players['p3'].is_ready


def test_players_returning_to_lobby_reset_room(make_room, scheduler):
    room = make_room()
    _start(room, scheduler)
    _play_out(room, scheduler)

    room.return_to_lobby('p1')
    assert room.status == FINISHED
    room.return_to_lobby('p2')
    assert room.status == WAITING
    assert not any(p['is_in_game'] for p in room.roster())


def test_late_joiner_waits_in_lobby(make_room, scheduler):
    room = make_room()
    _start(room, scheduler)
    room.add_player('p3', 'Cara')

    by_id = {p['id']: p for p in room.roster()}
    assert by_id['p3']['is_in_game'] is False
    assert by_id['p1']['is_in_game'] is True

    room.remove_player('p1')
    room.remove_player('p2')
    assert room.status == WAITING
    assert room.host_id == 'p3'


def test_late_joiner_is_left_out_of_scoring_and_victory(make_room, scheduler, events):
    stats = FakeStats()
    room = make_room(names=('Alice',), stats=stats)
    _start(room, scheduler)
    room.add_player('p9', 'Lurker')
    assert not room.submit_answer('p9', 'Anime 1', 'typing')
    _play_out(room, scheduler)

    victory = events.last('game_over')['victory_data']
    assert victory['is_solo'] is True
    # nothing answered, well below the solo target
    assert victory['winner_ids'] == []
    assert [r['id'] for r in victory['rankings']] == ['p1']
    assert all(a['player_id'] == 'p1' for h in victory['history'] for a in h['answers'])
    assert room.players['p9'].seen_song_ids == []
    players, _ = stats.games[0]
    assert [p.id for p in players] == ['p1']


def test_player_back_in_lobby_mid_game_drops_out_of_result(make_room, scheduler, events):
    room = make_room(names=('Alice', 'Bob'))
    _start(room, scheduler)
    room.return_to_lobby('p2')
    assert room.status == PLAYING
    room.submit_answer('p1', 'Anime 1', 'typing')
    _play_out(room, scheduler)

    victory = events.last('game_over')['victory_data']
    assert victory['is_solo'] is True
    assert victory['solo_target_score'] == 9
    assert victory['winner_ids'] == []


def test_late_joiners_do_not_count_toward_quorum(make_room, scheduler, events):
    room = make_room(names=('Alice', 'Bob'))
    _start(room, scheduler)
    room.add_player('p3', 'Cara')
    room.add_player('p4', 'Dan')

    room.vote_skip('p4')
    room.toggle_pause('p4')
    assert room.votes.skip_votes == set()
    assert room.votes.pause_votes == set()

    room.vote_skip('p1')
    assert {'type': 'skip', 'count': 1, 'required': 1} in events.payloads('vote_update')
    assert len(events.payloads('round_reveal')) == 1


def test_update_settings_is_host_only_and_clamped(make_room, scheduler, events):
    room = make_room()
    assert not room.update_settings('p2', {'round_count': 20})
    assert room.update_settings('p1', {'round_count': 100, 'guess_duration': 1, 'response_type': 'bogus'})
    assert room.settings.round_count == 50
    assert room.settings.guess_duration == 5
    assert room.settings.response_type == 'typing'
    assert events.last('room_updated')['settings']['round_count'] == 50

    room.start_game()
    assert not room.update_settings('p1', {'round_count': 10})


def test_game_type_change_reselects_rules(make_room, monkeypatch):
    chosen = []

    def fake_mode_for(game_type):
        chosen.append(game_type)
        return StandardMode()

    monkeypatch.setattr(room_module, 'mode_for', fake_mode_for)
    room = make_room()
    before = room.mode
    room.update_settings('p1', {'round_count': 5})
    assert chosen == [] and room.mode is before

    room.update_settings('p1', {'game_type': 'duel'})
    assert chosen == ['duel']
    assert room.mode is not before


def test_ready_and_host_transfer(make_room):
    room = make_room()
    assert not room.toggle_ready('p1')
    assert room.toggle_ready('p2')
    assert room.players['p2'].is_ready

    assert not room.transfer_host('p2', 'p1')
    assert room.transfer_host('p1', 'p2')
    assert room.host_id == 'p2'


# ---- sync ----

def test_sync_state_follows_phases(make_room, scheduler):
    clock = FakeClock(1000.0)
    room = make_room(clock=clock)
    room.start_game()

    state = room.get_sync_state()
    assert state['is_intro'] is True
    assert state['intro_data']['first_video'] == 'video-1'

    scheduler.fire('intro')
    clock.now = 1007.5
    state = room.get_sync_state()
    assert state['current_round'] == 1
    assert state['round_data']['elapsed'] == pytest.approx(7.5)
    assert state['reveal_data'] is None

    scheduler.fire('guess')
    state = room.get_sync_state()
    assert state['round_data'] is None
    assert state['reveal_data']['correct_answer'] == 'Anime 1'
    assert state['votes']['pause']['required'] == 1
