from enum import Enum, auto
from typing import Dict, Optional


class Difficulty(Enum):
    easy   = auto()
    medium = auto()
    hard   = auto()


# Match targets offered to the player
TARGET_SCORES = (25, 50, 100)
MAX_SCORE     = 100


class Character():
    def __init__(self, name: str, difficulty: Difficulty, description: str):
        self.name        = name
        self.difficulty  = difficulty
        self.description = description

    def __repr__(self) -> str:
        return f'{self.name} ({self.difficulty.name})'


CHARACTERS: Dict[Difficulty, Character] = {
    Difficulty.easy: Character(
        'Yosu',
        Difficulty.easy,
        'A calm and cute little girl dressed all in pink.'
    ),
    Difficulty.medium: Character(
        'Bomba',
        Difficulty.medium,
        'An angry scribble who shouts all the time!'
    ),
    Difficulty.hard: Character(
        'Claat',
        Difficulty.hard,
        'A horned demon straight out of a nightmarish drawing.'
    ),
}


class MatchConfig():
    """Settings chosen before a match starts: opponent tier and target score."""
    def __init__(
            self,
            difficulty   : Difficulty,
            target_score : int                 = MAX_SCORE,
            character    : Optional[Character] = None,
    ):
        if not isinstance(difficulty, Difficulty):
            raise ValueError(f'Unknown difficulty: {difficulty!r}')
        if target_score not in TARGET_SCORES:
            raise ValueError(
                f'Target score must be one of {TARGET_SCORES}, got {target_score!r}'
            )

        self.difficulty   = difficulty
        self.target_score = target_score
        if character is None:
            self.character = CHARACTERS[difficulty]
        else:
            self.character = character

    def __repr__(self) -> str:
        return (
            f'MatchConfig({self.difficulty.name}, '
            f'target={self.target_score}, opponent={self.character.name})'
        )
