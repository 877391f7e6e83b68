import sys
import os
import threading
import uuid

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from flask import Flask, request, jsonify
from src.engine.characters import Difficulty, MatchConfig, CHARACTERS, TARGET_SCORES
from src.engine.game import Game, Side, COMPUTER_DELAY

app = Flask(__name__)

# In-memory game store: game_id -> Game
games = {}

# Engine transitions must not interleave across request threads
games_lock = threading.Lock()


def tile_to_list(tile):
    return [tile.first, tile.second]


def tiles_to_list(tiles):
    return [tile_to_list(tile) for tile in tiles]


def build_response(game_id, game):
    snap  = game.snapshot()
    moves = game.player_moves()

    resp = {
        'game_id':        game_id,
        'phase':          snap.phase.name,
        'current_player': snap.current_player.name,
        'difficulty':     game.config.difficulty.name,
        'opponent':       game.computer_name,
        'player_hand':    tiles_to_list(snap.player_hand),
        'playable':       [
            i for i, tile in enumerate(snap.player_hand)
            if any(move.tile == tile for move in moves)
        ],
        'board':          tiles_to_list(snap.board),
        'boneyard_size':  len(snap.boneyard),
        'scores':         {
            'player':   snap.player_score,
            'computer': snap.computer_score,
        },
        'target_score':   snap.target_score,
        'winner':         snap.winner.name if snap.winner else None,
        'is_game_over':   snap.is_game_over,
        'actions':        list(snap.actions),
        'pending_tile':   tile_to_list(snap.pending_tile) if snap.pending_tile else None,
    }

    # The computer's hand stays hidden until the round is reviewed
    if snap.round_winner is not None:
        resp['computer_hand'] = tiles_to_list(snap.computer_hand)
        resp['round_winner']  = snap.round_winner.name
        resp['round_points']  = {
            'player':   snap.round_points[0],
            'computer': snap.round_points[1],
        }
    else:
        resp['computer_hand_size'] = len(snap.computer_hand)

    ticket = game.pending_computer_move
    if ticket is not None:
        resp['computer_move_due_in'] = max(0.0, ticket.due_at - game.clock())

    return resp


def _get_game(data):
    game_id = data.get('game_id')
    if game_id not in games:
        return game_id, None
    return game_id, games[game_id]


def _run_action(action):
    """Apply ``action(game, data)`` to the requested game under the store lock."""
    data = request.get_json(force=True, silent=True) or {}

    with games_lock:
        game_id, game = _get_game(data)
        if game is None:
            return jsonify({'error': 'Game not found'}), 404

        try:
            accepted = action(game, data)
        except (KeyError, ValueError, TypeError) as exc:
            return jsonify({'error': f'Invalid request data: {exc}'}), 400

        if not accepted:
            return jsonify({
                'error': 'Action rejected',
                'state': build_response(game_id, game),
            }), 400

        return jsonify(build_response(game_id, game))


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.route('/api/characters')
def characters():
    return jsonify({
        'characters': [
            {
                'name':        char.name,
                'difficulty':  char.difficulty.name,
                'description': char.description,
            }
            for char in CHARACTERS.values()
        ],
        'target_scores': list(TARGET_SCORES),
    })


@app.route('/api/new_game', methods=['POST'])
def new_game():
    data = request.get_json(force=True, silent=True) or {}

    try:
        config = MatchConfig(
            difficulty   = Difficulty[data.get('difficulty', 'medium')],
            target_score = int(data.get('target_score', TARGET_SCORES[-1])),
        )
    except (KeyError, ValueError, TypeError) as exc:
        return jsonify({'error': f'Invalid match settings: {exc}'}), 400

    game_id = str(uuid.uuid4())
    game    = Game(config, computer_delay=COMPUTER_DELAY)

    with games_lock:
        games[game_id] = game
        return jsonify(build_response(game_id, game))


@app.route('/api/state/<game_id>')
def state(game_id):
    with games_lock:
        if game_id not in games:
            return jsonify({'error': 'Game not found'}), 404
        return jsonify(build_response(game_id, games[game_id]))


@app.route('/api/play', methods=['POST'])
def play():
    return _run_action(lambda game, data: game.play_tile(int(data['tile_idx'])))


@app.route('/api/choose_side', methods=['POST'])
def choose_side():
    return _run_action(lambda game, data: game.choose_side(Side[data['side']]))


@app.route('/api/draw', methods=['POST'])
def draw():
    return _run_action(lambda game, data: game.draw())


@app.route('/api/computer_move', methods=['POST'])
def computer_move():
    return _run_action(lambda game, data: game.run_pending_computer_move())


@app.route('/api/next_round', methods=['POST'])
def next_round():
    return _run_action(lambda game, data: game.advance_round())


@app.route('/api/acknowledge', methods=['POST'])
def acknowledge():
    return _run_action(lambda game, data: game.acknowledge_match_over())


if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=5000)
