"""
Tests for the Domino Clash JSON API.
"""

import pytest
import random

from src.engine.characters import Difficulty, MatchConfig
from src.engine.game import Game, Phase, PlayerId, Tile
from src.web import app as web


# ============================================================
# Helper utilities
# ============================================================

def tiles(*labels: str) -> list:
    out = []
    for label in labels:
        first, second = label.split('-')
        out.append(Tile(int(first), int(second)))
    return out


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def install_game(
        game_id,
        player,
        computer,
        board    = (),
        boneyard = (),
        turn     = PlayerId.player,
        clock    = None,
        target   = 100,
) -> Game:
    game = Game(
        MatchConfig(Difficulty.hard, target),
        rng            = random.Random(0),
        clock          = clock if clock is not None else FakeClock(),
        computer_delay = 1.0,
    )
    game.hands                 = {
        PlayerId.player:   tiles(*player),
        PlayerId.computer: tiles(*computer),
    }
    game.board                 = tiles(*board)
    game.boneyard              = tiles(*boneyard)
    game.starting_tile         = None
    game.pending_computer_move = None
    if turn == PlayerId.player:
        game._begin_player_turn()
    else:
        game._begin_computer_turn()

    web.games[game_id] = game
    return game


@pytest.fixture
def client():
    web.app.config['TESTING'] = True
    web.games.clear()
    with web.app.test_client() as client:
        yield client
    web.games.clear()


# ============================================================
# Match creation and state
# ============================================================

class TestNewGame:
    def test_characters(self, client):
        resp = client.get('/api/characters')
        data = resp.get_json()
        assert resp.status_code == 200
        assert [c['name'] for c in data['characters']] == ['Yosu', 'Bomba', 'Claat']
        assert data['target_scores'] == [25, 50, 100]

    def test_new_game(self, client):
        resp = client.post('/api/new_game', json={'difficulty': 'easy', 'target_score': 25})
        data = resp.get_json()
        assert resp.status_code == 200
        assert data['game_id'] in web.games
        assert len(data['player_hand']) == 7
        assert data['computer_hand_size'] == 7
        assert data['boneyard_size'] == 14
        assert data['board'] == []
        assert data['target_score'] == 25
        assert data['opponent'] == 'Yosu'
        assert data['scores'] == {'player': 0, 'computer': 0}
        assert len(data['actions']) == 1
        assert 'computer_hand' not in data

    def test_new_game_defaults(self, client):
        data = client.post('/api/new_game', json={}).get_json()
        assert data['difficulty'] == 'medium'
        assert data['target_score'] == 100

    def test_new_game_opener(self, client):
        data = client.post('/api/new_game', json={'difficulty': 'hard'}).get_json()
        if data['current_player'] == 'player':
            assert data['phase'] == 'awaiting_player_move'
            assert len(data['playable']) == 1
        else:
            assert data['phase'] == 'computer_turn'
            assert 'computer_move_due_in' in data

    def test_unknown_difficulty(self, client):
        resp = client.post('/api/new_game', json={'difficulty': 'impossible'})
        assert resp.status_code == 400

    def test_unknown_target(self, client):
        resp = client.post('/api/new_game', json={'target_score': 42})
        assert resp.status_code == 400

    def test_state(self, client):
        install_game('g1', ['2-3'], ['0-0'], ['1-2'])
        data = client.get('/api/state/g1').get_json()
        assert data['player_hand'] == [[2, 3]]
        assert data['board'] == [[1, 2]]
        assert data['playable'] == [0]

    def test_state_unknown_game(self, client):
        assert client.get('/api/state/nope').status_code == 404


# ============================================================
# Actions
# ============================================================

class TestActions:
    def test_play(self, client):
        install_game('g1', ['5-6', '2-3'], ['0-0', '4-4'], ['1-2'])
        resp = client.post('/api/play', json={'game_id': 'g1', 'tile_idx': 1})
        data = resp.get_json()
        assert resp.status_code == 200
        assert data['board'] == [[1, 2], [2, 3]]
        assert data['phase'] == 'computer_turn'
        assert data['current_player'] == 'computer'

    def test_play_unknown_game(self, client):
        resp = client.post('/api/play', json={'game_id': 'nope', 'tile_idx': 0})
        assert resp.status_code == 404

    def test_play_illegal_tile(self, client):
        game = install_game('g1', ['5-6', '2-3'], ['0-0'], ['1-2'])
        resp = client.post('/api/play', json={'game_id': 'g1', 'tile_idx': 0})
        data = resp.get_json()
        assert resp.status_code == 400
        assert data['error'] == 'Action rejected'
        assert data['state']['board'] == [[1, 2]]
        assert game.board == tiles('1-2')

    def test_play_missing_index(self, client):
        install_game('g1', ['2-3'], ['0-0'], ['1-2'])
        resp = client.post('/api/play', json={'game_id': 'g1'})
        assert resp.status_code == 400

    def test_choose_side(self, client):
        install_game('g1', ['3-5', '1-1'], ['6-6'], ['3-5'])
        data = client.post('/api/play', json={'game_id': 'g1', 'tile_idx': 0}).get_json()
        assert data['phase'] == 'awaiting_side_choice'
        assert data['pending_tile'] == [3, 5]

        resp = client.post('/api/choose_side', json={'game_id': 'g1', 'side': 'end'})
        data = resp.get_json()
        assert resp.status_code == 200
        assert data['board'] == [[3, 5], [5, 3]]

    def test_choose_unknown_side(self, client):
        install_game('g1', ['3-5', '1-1'], ['6-6'], ['3-5'])
        client.post('/api/play', json={'game_id': 'g1', 'tile_idx': 0})
        resp = client.post('/api/choose_side', json={'game_id': 'g1', 'side': 'middle'})
        assert resp.status_code == 400

    def test_draw(self, client):
        install_game('g1', ['5-6'], ['0-0'], ['1-2'], ['4-4', '2-6'])
        resp = client.post('/api/draw', json={'game_id': 'g1'})
        data = resp.get_json()
        assert resp.status_code == 200
        assert data['player_hand'] == [[5, 6], [2, 6]]
        assert data['boneyard_size'] == 1

    def test_draw_with_legal_move_rejected(self, client):
        install_game('g1', ['1-6'], ['0-0'], ['1-2'], ['4-4'])
        resp = client.post('/api/draw', json={'game_id': 'g1'})
        assert resp.status_code == 400

    def test_computer_move_waits_for_delay(self, client):
        clock = FakeClock()
        install_game('g1', ['4-6'], ['2-4', '5-5'], ['1-2'],
                     turn=PlayerId.computer, clock=clock)

        resp = client.post('/api/computer_move', json={'game_id': 'g1'})
        assert resp.status_code == 400
        assert resp.get_json()['state']['computer_move_due_in'] == 1.0

        clock.now = 1.5
        resp = client.post('/api/computer_move', json={'game_id': 'g1'})
        data = resp.get_json()
        assert resp.status_code == 200
        assert data['board'] == [[1, 2], [2, 4]]
        assert data['phase'] == 'awaiting_player_move'


# ============================================================
# Round and match lifecycle
# ============================================================

class TestLifecycle:
    def test_round_review_reveals_computer_hand(self, client):
        install_game('g1', ['2-3'], ['6-6', '0-0'], ['1-2'])
        data = client.post('/api/play', json={'game_id': 'g1', 'tile_idx': 0}).get_json()
        assert data['phase'] == 'round_review'
        assert data['round_winner'] == 'player'
        assert data['round_points'] == {'player': 12, 'computer': 0}
        assert data['computer_hand'] == [[6, 6], [0, 0]]

    def test_next_round(self, client):
        install_game('g1', ['2-3'], ['6-6', '0-0'], ['1-2'])
        client.post('/api/play', json={'game_id': 'g1', 'tile_idx': 0})
        resp = client.post('/api/next_round', json={'game_id': 'g1'})
        data = resp.get_json()
        assert resp.status_code == 200
        assert len(data['player_hand']) == 7
        assert data['scores']['player'] == 12

    def test_acknowledge_match_over(self, client):
        game = install_game('g1', ['2-3'], ['6-6', '0-3'], ['1-2'])
        game.scores = {PlayerId.player: 90, PlayerId.computer: 80}
        client.post('/api/play', json={'game_id': 'g1', 'tile_idx': 0})

        assert client.post('/api/next_round', json={'game_id': 'g1'}).status_code == 400

        data = client.post('/api/acknowledge', json={'game_id': 'g1'}).get_json()
        assert data['is_game_over']
        assert data['winner'] == 'player'
        assert data['phase'] == 'match_over'
        assert game.phase == Phase.match_over
