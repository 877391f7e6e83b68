from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple
from enum import Enum, auto
from functools import total_ordering
from abc import ABC, abstractmethod
import random
import time

from src.engine.characters import Difficulty, MatchConfig


MAX_PIP        = 6
HAND_SIZE      = 7
NARRATION_SIZE = 3
# Seconds the computer waits before its move is applied
COMPUTER_DELAY = 1.2


class Side(Enum):
    start = auto()
    end   = auto()


class PlayerId(Enum):
    player   = auto()
    computer = auto()


class RoundWinner(Enum):
    player   = auto()
    computer = auto()
    blocked  = auto()


class Phase(Enum):
    awaiting_player_move = auto()
    awaiting_player_draw = auto()
    awaiting_side_choice = auto()
    computer_turn        = auto()
    round_review         = auto()
    match_over           = auto()


@total_ordering
class Tile:
    def __init__(self, first: int, second: int):
        if not (0 <= first <= MAX_PIP and 0 <= second <= MAX_PIP):
            raise ValueError(f'Tile out of range: {first}-{second}')

        self.first  = first
        self.second = second

    def __repr__(self) -> str:
        return f'[{self.first}|{self.second}]'

    def _identity(self) -> Tuple[int, int]:
        return min(self.first, self.second), max(self.first, self.second)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Tile):
            raise NotImplementedError

        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Tile):
            raise NotImplementedError

        return self.rank() < other.rank()

    def is_double(self) -> bool:
        return self.first == self.second

    def pip_sum(self) -> int:
        return self.first + self.second

    def high(self) -> int:
        return max(self.first, self.second)

    def rank(self) -> Tuple[int, int, int]:
        # Pip sum first, then the larger pip
        return self.pip_sum(), self.high(), min(self.first, self.second)

    def has(self, value: int) -> bool:
        return self.first == value or self.second == value

    def flipped(self) -> 'Tile':
        return Tile(self.second, self.first)


class Move(NamedTuple):
    tile : Tile
    side : Side


class StartingInfo(NamedTuple):
    player  : PlayerId
    tile    : Optional[Tile]
    message : str


class ComputerMoveTicket(NamedTuple):
    sequence : int
    due_at   : float


class GameSnapshot(NamedTuple):
    player_hand    : Tuple[Tile, ...]
    computer_hand  : Tuple[Tile, ...]
    board          : Tuple[Tile, ...]
    boneyard       : Tuple[Tile, ...]
    current_player : PlayerId
    phase          : Phase
    player_score   : int
    computer_score : int
    target_score   : int
    winner         : Optional[PlayerId]
    is_game_over   : bool
    actions        : Tuple[str, ...]
    starting_tile  : Optional[Tile]
    pending_tile   : Optional[Tile]
    round_winner   : Optional[RoundWinner]
    round_points   : Optional[Tuple[int, int]]


# ============================================================
# Deck
# ============================================================

def create_deck() -> List[Tile]:
    return [
        Tile(i, j)
        for i in range(MAX_PIP + 1)
        for j in range(i, MAX_PIP + 1)
    ]


def shuffle(deck: Sequence[Tile], rng: Optional[random.Random] = None) -> List[Tile]:
    """Fisher-Yates shuffle returning a new list; ``deck`` is left untouched."""
    if rng is None:
        rng = random.Random()

    tiles = list(deck)
    for i in range(len(tiles) - 1, 0, -1):
        j = rng.randint(0, i)
        tiles[i], tiles[j] = tiles[j], tiles[i]

    return tiles


def deal(deck: Sequence[Tile]) -> Tuple[List[Tile], List[Tile], List[Tile]]:
    """Split a deck into (player hand, computer hand, boneyard)."""
    if len(deck) < 2 * HAND_SIZE:
        return [], [], list(deck)

    return (
        list(deck[:HAND_SIZE]),
        list(deck[HAND_SIZE:2 * HAND_SIZE]),
        list(deck[2 * HAND_SIZE:]),
    )


# ============================================================
# Placement
# ============================================================

def open_values(board: Sequence[Tile]) -> Optional[Tuple[int, int]]:
    if len(board) == 0:
        return None

    return board[0].first, board[-1].second


def possible_placements(tile: Tile, board: Sequence[Tile]) -> List[Side]:
    ends = open_values(board)
    if ends is None:
        return [Side.start]

    left, right = ends
    sides = []
    if tile.has(left):
        sides.append(Side.start)
    if tile.has(right):
        sides.append(Side.end)

    return sides


def can_play(tile: Tile, board: Sequence[Tile]) -> Optional[Side]:
    sides = possible_placements(tile, board)
    if len(sides) == 0:
        return None

    return sides[0]


def valid_moves(hand: Sequence[Tile], board: Sequence[Tile]) -> List[Move]:
    return [
        Move(tile, side)
        for tile in hand
        for side in possible_placements(tile, board)
    ]


def place_tile(tile: Tile, side: Side, board: Sequence[Tile]) -> List[Tile]:
    """Return a new board with ``tile`` attached on ``side``.

    The tile is flipped when needed so that neighbouring tiles always share
    the touching pip. An empty board takes the tile as it is.
    """
    if len(board) == 0:
        return [tile]

    if side not in possible_placements(tile, board):
        raise ValueError(f'{tile} cannot be placed on the {side.name} side')

    if side == Side.start:
        placed = tile if tile.second == board[0].first else tile.flipped()
        return [placed] + list(board)

    placed = tile if tile.first == board[-1].second else tile.flipped()
    return list(board) + [placed]


def exposed_pip(move: Move, board: Sequence[Tile]) -> int:
    """Pip left open on the board once ``move`` is played."""
    ends = open_values(board)
    if ends is None:
        open_value = None
    elif move.side == Side.start:
        open_value = ends[0]
    else:
        open_value = ends[1]

    if move.tile.first == open_value:
        return move.tile.second

    return move.tile.first


# ============================================================
# Scoring
# ============================================================

def score(hand: Sequence[Tile]) -> int:
    return sum(tile.pip_sum() for tile in hand)


def round_points(
        winner        : RoundWinner,
        player_hand   : Sequence[Tile],
        computer_hand : Sequence[Tile]
) -> Tuple[int, int]:
    """Points gained by (player, computer) at the end of a round."""
    player_left   = score(player_hand)
    computer_left = score(computer_hand)

    if winner == RoundWinner.player:
        return computer_left, 0
    if winner == RoundWinner.computer:
        return 0, player_left

    # Blocked: the lighter hand collects the heavier one
    if player_left < computer_left:
        return computer_left, 0
    if computer_left < player_left:
        return 0, player_left

    return 0, 0


def match_winner(
        player_score   : int,
        computer_score : int,
        target_score   : int
) -> Optional[PlayerId]:
    if player_score < target_score and computer_score < target_score:
        return None

    # Equal scores at or above target: another round decides
    if player_score == computer_score:
        return None

    if player_score > computer_score:
        return PlayerId.player

    return PlayerId.computer


# ============================================================
# Starting player
# ============================================================

def _find_tile(hand: Sequence[Tile], tile: Tile) -> Optional[Tile]:
    for held in hand:
        if held == tile:
            return held

    return None


def highest_tile(hand: Sequence[Tile]) -> Optional[Tile]:
    if len(hand) == 0:
        return None

    return max(hand, key=lambda tile: (tile.pip_sum(), tile.high()))


def find_starting_info(
        player_hand   : Sequence[Tile],
        computer_hand : Sequence[Tile],
        computer_name : str
) -> StartingInfo:
    for value in range(MAX_PIP, -1, -1):
        double = Tile(value, value)

        player_double = _find_tile(player_hand, double)
        if player_double is not None:
            if value == MAX_PIP:
                message = f'You hold the double {value}, you open!'
            else:
                message = (
                    'Nobody holds a higher double, '
                    f'you open with the double {value}!'
                )
            return StartingInfo(PlayerId.player, player_double, message)

        computer_double = _find_tile(computer_hand, double)
        if computer_double is not None:
            if value == MAX_PIP:
                message = f'{computer_name} holds the double {value} and opens.'
            else:
                message = (
                    'Nobody holds a higher double, '
                    f'{computer_name} opens with the double {value}.'
                )
            return StartingInfo(PlayerId.computer, computer_double, message)

    player_high   = highest_tile(player_hand)
    computer_high = highest_tile(computer_hand)

    player_leads = player_high is not None and (
        computer_high is None or
        (player_high.pip_sum(), player_high.high()) >
        (computer_high.pip_sum(), computer_high.high())
    )

    if player_leads:
        return StartingInfo(
            PlayerId.player,
            player_high,
            'No doubles! You open with your biggest tile '
            f'({player_high.first}-{player_high.second}).'
        )

    if computer_high is None:
        return StartingInfo(PlayerId.player, None, 'Nobody holds a tile.')

    return StartingInfo(
        PlayerId.computer,
        computer_high,
        f'No doubles! {computer_name} opens with their biggest tile '
        f'({computer_high.first}-{computer_high.second}).'
    )


# ============================================================
# Computer strategies
# ============================================================

class Player(ABC):
    @abstractmethod
    def get_move(
            self,
            hand  : Sequence[Tile],
            board : Sequence[Tile]
    ) -> Optional[Move]:
        raise NotImplementedError


class RandomPlayer(Player):
    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.Random()

    def get_move(
            self,
            hand  : Sequence[Tile],
            board : Sequence[Tile]
    ) -> Optional[Move]:
        moves = valid_moves(hand, board)
        if len(moves) == 0:
            return None

        return self.rng.choice(moves)


class GreedyPlayer(Player):
    """Sheds the heaviest playable tile first."""
    def get_move(
            self,
            hand  : Sequence[Tile],
            board : Sequence[Tile]
    ) -> Optional[Move]:
        moves = valid_moves(hand, board)
        if len(moves) == 0:
            return None

        # max() keeps the first of equal candidates
        return max(moves, key=lambda move: move.tile.pip_sum())


class HeuristicPlayer(Player):
    """End-control strategy.

    Doubles are played as soon as possible, heaviest first. Otherwise each
    move is rated by how many pips matching the end it leaves open remain in
    hand, with a small bonus for heavy tiles.
    """
    def _move_value(
            self,
            move  : Move,
            hand  : Sequence[Tile],
            board : Sequence[Tile]
    ) -> float:
        remaining = list(hand)
        remaining.remove(move.tile)
        pip       = exposed_pip(move, board)
        count     = sum(
            (tile.first == pip) + (tile.second == pip)
            for tile in remaining
        )

        return count + move.tile.pip_sum() / 20

    def get_move(
            self,
            hand  : Sequence[Tile],
            board : Sequence[Tile]
    ) -> Optional[Move]:
        moves = valid_moves(hand, board)
        if len(moves) == 0:
            return None

        doubles = [move for move in moves if move.tile.is_double()]
        if len(doubles) > 0:
            return max(doubles, key=lambda move: move.tile.pip_sum())

        return max(
            moves,
            key=lambda move: self._move_value(move, hand, board)
        )


def strategy_for(
        difficulty : Difficulty,
        rng        : Optional[random.Random] = None
) -> Player:
    if difficulty == Difficulty.easy:
        return RandomPlayer(rng)
    if difficulty == Difficulty.medium:
        return GreedyPlayer()
    if difficulty == Difficulty.hard:
        return HeuristicPlayer()

    raise ValueError(f'Unknown difficulty: {difficulty!r}')


def choose_computer_move(
        hand       : Sequence[Tile],
        board      : Sequence[Tile],
        difficulty : Difficulty,
        rng        : Optional[random.Random] = None
) -> Optional[Move]:
    return strategy_for(difficulty, rng).get_move(hand, board)


# ============================================================
# Round / match orchestration
# ============================================================

class Game():
    """One match between the human and the computer.

    Every action returns True when applied and False when rejected; a
    rejected action never changes the state.
    """
    def __init__(
            self,
            config         : Optional[MatchConfig]         = None,
            rng            : Optional[random.Random]       = None,
            clock          : Optional[Callable[[], float]] = None,
            computer_delay : float                         = COMPUTER_DELAY,
            verbose        : bool                          = False,
    ):
        if config is None:
            config = MatchConfig(Difficulty.medium)

        self.config         = config
        self.rng            = rng if rng is not None else random.Random()
        self.clock          = clock if clock is not None else time.monotonic
        self.computer_delay = computer_delay
        self.verbose        = verbose
        self.strategy       = strategy_for(config.difficulty, self.rng)

        self.scores         = {
            player_id: 0
            for player_id in PlayerId
        }
        self.winner: Optional[PlayerId] = None
        self.is_game_over   = False
        self.actions: List[str] = []
        self.round_number   = 0

        self.pending_computer_move: Optional[ComputerMoveTicket] = None
        self._ticket_sequence = 0

        self._start_round()

    def __repr__(self) -> str:
        return (
            '#######\n'
            f'Board: {self.board}\n'
            f'Player hand: {self.hands[PlayerId.player]}\n'
            f'Computer hand: {self.hands[PlayerId.computer]}\n'
            f'Boneyard: {len(self.boneyard)} tiles\n'
            f'Scores: {self.scores[PlayerId.player]} - '
            f'{self.scores[PlayerId.computer]}\n'
            '#######'
        )

    @property
    def computer_name(self) -> str:
        return self.config.character.name

    @property
    def target_score(self) -> int:
        return self.config.target_score

    def _add_action(self, message: str):
        self.actions = (self.actions + [message])[-NARRATION_SIZE:]
        if self.verbose:
            print(message)

    def _start_round(self, prefix: str = ''):
        deck = shuffle(create_deck(), self.rng)
        player_hand, computer_hand, boneyard = deal(deck)

        self.hands          = {
            PlayerId.player:   player_hand,
            PlayerId.computer: computer_hand,
        }
        self.board: List[Tile] = []
        self.boneyard       = boneyard
        self.round_winner: Optional[RoundWinner] = None
        self.round_points: Optional[Tuple[int, int]] = None
        self.pending_tile_index: Optional[int] = None
        self.pending_computer_move = None
        self.round_number  += 1

        info = find_starting_info(player_hand, computer_hand, self.computer_name)
        self.starting_tile = info.tile
        self._add_action(prefix + info.message)

        if info.player == PlayerId.player:
            self._begin_player_turn()
        else:
            self._begin_computer_turn()

    # --------------------------------------------------------
    # Queries
    # --------------------------------------------------------

    def opening_required(self) -> bool:
        return len(self.board) == 0 and self.starting_tile is not None

    def player_moves(self) -> List[Move]:
        hand = self.hands[PlayerId.player]
        if self.opening_required():
            return [
                Move(tile, Side.start)
                for tile in hand
                if tile == self.starting_tile
            ]

        return valid_moves(hand, self.board)

    def is_match_decided(self) -> bool:
        return self.winner is not None

    def snapshot(self) -> GameSnapshot:
        pending_tile = None
        if self.pending_tile_index is not None:
            pending_tile = self.hands[PlayerId.player][self.pending_tile_index]

        return GameSnapshot(
            player_hand    = tuple(self.hands[PlayerId.player]),
            computer_hand  = tuple(self.hands[PlayerId.computer]),
            board          = tuple(self.board),
            boneyard       = tuple(self.boneyard),
            current_player = self.current_player,
            phase          = self.phase,
            player_score   = self.scores[PlayerId.player],
            computer_score = self.scores[PlayerId.computer],
            target_score   = self.target_score,
            winner         = self.winner,
            is_game_over   = self.is_game_over,
            actions        = tuple(self.actions),
            starting_tile  = self.starting_tile,
            pending_tile   = pending_tile,
            round_winner   = self.round_winner,
            round_points   = self.round_points,
        )

    # --------------------------------------------------------
    # Turn changes
    # --------------------------------------------------------

    def _begin_player_turn(self):
        self.current_player = PlayerId.player

        if len(self.player_moves()) > 0:
            self.phase = Phase.awaiting_player_move
        elif len(self.boneyard) > 0:
            self.phase = Phase.awaiting_player_draw
        elif len(valid_moves(self.hands[PlayerId.computer], self.board)) > 0:
            self._add_action('You cannot play and pass.')
            self._begin_computer_turn()
        else:
            self._add_action('The game is blocked!')
            self._end_round(RoundWinner.blocked)

    def _begin_computer_turn(self):
        self.current_player         = PlayerId.computer
        self.phase                  = Phase.computer_turn
        self._ticket_sequence      += 1
        self.pending_computer_move  = ComputerMoveTicket(
            self._ticket_sequence,
            self.clock() + self.computer_delay
        )

    def _end_round(self, winner: RoundWinner):
        self.pending_computer_move = None
        self.pending_tile_index    = None

        player_gain, computer_gain = round_points(
            winner,
            self.hands[PlayerId.player],
            self.hands[PlayerId.computer]
        )
        self.scores[PlayerId.player]   += player_gain
        self.scores[PlayerId.computer] += computer_gain

        self.round_winner = winner
        self.round_points = (player_gain, computer_gain)
        self.winner       = match_winner(
            self.scores[PlayerId.player],
            self.scores[PlayerId.computer],
            self.target_score
        )
        self.phase        = Phase.round_review
        self._add_action('End of the round.')

    # --------------------------------------------------------
    # Human actions
    # --------------------------------------------------------

    def _apply_player_placement(self, index: int, side: Side):
        hand  = list(self.hands[PlayerId.player])
        tile  = hand.pop(index)
        board = place_tile(tile, side, self.board)

        self.hands[PlayerId.player] = hand
        self.board                  = board
        self.starting_tile          = None
        self.pending_tile_index     = None
        self._add_action('You play your move.')

        if len(hand) == 0:
            self._end_round(RoundWinner.player)
        else:
            self._begin_computer_turn()

    def play_tile(self, index: int) -> bool:
        if self.phase != Phase.awaiting_player_move or \
           self.current_player != PlayerId.player:
            return False

        hand = self.hands[PlayerId.player]
        if not 0 <= index < len(hand):
            return False

        tile = hand[index]
        if self.opening_required():
            if tile != self.starting_tile:
                return False
            sides = [Side.start]
        else:
            sides = possible_placements(tile, self.board)

        if len(sides) == 0:
            return False

        if len(sides) > 1:
            self.pending_tile_index = index
            self.phase              = Phase.awaiting_side_choice
            return True

        self._apply_player_placement(index, sides[0])
        return True

    def choose_side(self, side: Side) -> bool:
        if self.phase != Phase.awaiting_side_choice or \
           self.pending_tile_index is None:
            return False

        tile = self.hands[PlayerId.player][self.pending_tile_index]
        if side not in possible_placements(tile, self.board):
            return False

        self._apply_player_placement(self.pending_tile_index, side)
        return True

    def draw(self) -> bool:
        if self.phase != Phase.awaiting_player_draw or \
           self.current_player != PlayerId.player:
            return False

        # A player may not draw to avoid playing
        if len(self.player_moves()) > 0 or len(self.boneyard) == 0:
            return False

        boneyard = list(self.boneyard)
        tile     = boneyard.pop()

        self.hands[PlayerId.player] = self.hands[PlayerId.player] + [tile]
        self.boneyard               = boneyard
        self._add_action('You draw a new tile.')
        self._begin_player_turn()
        return True

    # --------------------------------------------------------
    # Computer turn
    # --------------------------------------------------------

    def run_pending_computer_move(
            self,
            ticket : Optional[ComputerMoveTicket] = None,
            now    : Optional[float]              = None
    ) -> bool:
        """Apply the computer's move once its delay has elapsed.

        A ticket from an earlier turn or round is stale and is ignored.
        """
        pending = self.pending_computer_move
        if pending is None or self.phase != Phase.computer_turn:
            return False

        if ticket is not None and ticket != pending:
            return False

        if now is None:
            now = self.clock()
        if now < pending.due_at:
            return False

        return self.computer_turn()

    def _computer_opens(self) -> bool:
        hand = list(self.hands[PlayerId.computer])
        tile = hand.pop(hand.index(self.starting_tile))

        self.hands[PlayerId.computer] = hand
        self.board                    = place_tile(tile, Side.start, self.board)
        self.starting_tile            = None
        self._add_action(f'{self.computer_name} opens the round.')

        if len(hand) == 0:
            self._end_round(RoundWinner.computer)
        else:
            self._begin_player_turn()
        return True

    def computer_turn(self) -> bool:
        if self.phase != Phase.computer_turn or \
           self.current_player != PlayerId.computer:
            return False

        self.pending_computer_move = None
        if self.opening_required():
            return self._computer_opens()

        hand     = list(self.hands[PlayerId.computer])
        boneyard = list(self.boneyard)
        drew     = False

        move = self.strategy.get_move(hand, self.board)
        while move is None and len(boneyard) > 0:
            hand.append(boneyard.pop())
            drew = True
            move = self.strategy.get_move(hand, self.board)

        if move is not None:
            hand.remove(move.tile)
            self.board                    = place_tile(move.tile, move.side, self.board)
            self.hands[PlayerId.computer] = hand
            self.boneyard                 = boneyard

            if len(hand) == 0:
                self._add_action(f'{self.computer_name} empties their hand!')
                self._end_round(RoundWinner.computer)
            else:
                if drew:
                    self._add_action(f'{self.computer_name} drew, then played.')
                else:
                    self._add_action(f'{self.computer_name} played their move.')
                self._begin_player_turn()
            return True

        self.hands[PlayerId.computer] = hand
        self.boneyard                 = boneyard

        if len(valid_moves(self.hands[PlayerId.player], self.board)) == 0:
            self._add_action('The game is blocked!')
            self._end_round(RoundWinner.blocked)
        else:
            if drew:
                self._add_action(f'{self.computer_name} drew without being able to play.')
            else:
                self._add_action(f'{self.computer_name} cannot play and passes.')
            self._begin_player_turn()
        return True

    # --------------------------------------------------------
    # Round and match lifecycle
    # --------------------------------------------------------

    def advance_round(self) -> bool:
        if self.phase != Phase.round_review or self.is_match_decided():
            return False

        self._start_round(prefix='New round: ')
        return True

    def acknowledge_match_over(self) -> bool:
        if self.phase != Phase.round_review or not self.is_match_decided():
            return False

        self.pending_computer_move = None
        self.phase                 = Phase.match_over
        self.is_game_over          = True
        return True


class GameLoop():
    """Plays a whole match with a strategy sitting in the human seat."""
    def __init__(
            self,
            player  : Player,
            game    : Optional[Game] = None,
            verbose : bool = True,
    ):
        self.player = player
        if game is None:
            self.game = Game()
        else:
            self.game = game
        self.verbose = verbose

    def _play_human_seat(self):
        game = self.game
        hand = game.hands[PlayerId.player]

        if game.opening_required():
            move = Move(game.starting_tile, Side.start)
        else:
            move = self.player.get_move(hand, game.board)
            if move is None:
                raise ValueError('Strategy found no move for a playable hand')

        game.play_tile(hand.index(move.tile))
        if game.phase == Phase.awaiting_side_choice:
            game.choose_side(move.side)

    def _print_round_result(self):
        player_gain, computer_gain = self.game.round_points
        print(
            f'Round {self.game.round_number}: '
            f'{self.game.round_winner.name} '
            f'(+{player_gain} / +{computer_gain}) -> '
            f'{self.game.scores[PlayerId.player]} - '
            f'{self.game.scores[PlayerId.computer]}'
        )

    def step(self):
        game = self.game

        if game.phase == Phase.awaiting_player_move:
            self._play_human_seat()
        elif game.phase == Phase.awaiting_player_draw:
            game.draw()
        elif game.phase == Phase.computer_turn:
            game.computer_turn()
        elif game.phase == Phase.round_review:
            if self.verbose:
                self._print_round_result()
            if game.is_match_decided():
                game.acknowledge_match_over()
            else:
                game.advance_round()

    def run(self) -> Tuple[int, int]:
        game = self.game

        while not game.is_game_over:
            self.step()

        if self.verbose:
            print('Winner:', game.winner.name)

        return game.scores[PlayerId.player], game.scores[PlayerId.computer]
