from typing import Collection, Mapping, Self, Sequence

import numpy as np

from milestone2048.game import MILESTONES
from milestone2048.game_numba import ITEM_VALUES, Game, GameState

TOP_SCORES = 10


def claimable_milestones(
    milestones: Mapping[int, bool],
    claimed: Collection[int],
) -> list[int]:
    """
    Thresholds reached in this game whose reward has not been claimed yet.

    The claimed set is owned by the caller (the reward contract);
    the engine only reports what was reached.
    """
    return [t for t in sorted(milestones) if milestones[t] and t not in claimed]


class SessionStats:
    """
    Statistics of finished games.

    A game is recorded when it ends, or when it is reset with a
    non-zero score before ending.
    """

    total_games: int
    top_scores: list[int]
    milestone_counts: dict[int, int]

    def __init__(self):
        # counts[k] is the number of games whose largest tile is 2**k
        self.counts = np.zeros((ITEM_VALUES.size,), dtype=np.int32)
        self.reset()

    def reset(self):
        self.counts.fill(0)
        self.total_games = 0
        self.top_scores = []
        self.milestone_counts = dict.fromkeys(MILESTONES, 0)

    def attach(self, game: Game):
        game.add_callback(Game.EVENT_GAME_OVER, self.on_game_over)
        game.add_callback(Game.EVENT_RESET, self.on_reset)

    def detach(self, game: Game):
        game.remove_callback(Game.EVENT_GAME_OVER, self.on_game_over)
        game.remove_callback(Game.EVENT_RESET, self.on_reset)

    def on_game_over(self, game: Game, state: GameState):
        self.record(state)

    def on_reset(self, game: Game, previous: GameState):
        # finished games were already recorded by on_game_over
        if previous.game_over or previous.score == 0:
            return

        self.record(previous)

    def record(self, state: GameState):
        self.total_games += 1

        self.top_scores.append(state.score)
        self.top_scores.sort(reverse=True)
        del self.top_scores[TOP_SCORES:]

        for threshold, reached in state.milestones.items():
            if reached:
                self.milestone_counts[threshold] = (
                    self.milestone_counts.get(threshold, 0) + 1
                )

        largest = max(max(row) for row in state.board)
        rank = int(np.searchsorted(ITEM_VALUES, largest))
        self.counts[rank] += 1

    @property
    def best_score(self) -> int:
        return self.top_scores[0] if self.top_scores else 0

    def summary(self) -> list[tuple[int, int, float]]:
        """(largest tile, games, fraction of games), largest tile first"""
        total = int(self.counts.sum())
        entries = []
        for rank in range(self.counts.size - 1, 0, -1):
            count = self.counts[rank].item()
            if count == 0:
                continue

            entries.append((int(ITEM_VALUES[rank]), count, count / total))

        return entries

    @classmethod
    def combine(cls, seq: Sequence[Self]) -> Self:
        result = cls()
        for s in seq:
            result.counts += s.counts
            result.total_games += s.total_games
            result.top_scores.extend(s.top_scores)
            for threshold, count in s.milestone_counts.items():
                result.milestone_counts[threshold] = (
                    result.milestone_counts.get(threshold, 0) + count
                )

        result.top_scores.sort(reverse=True)
        del result.top_scores[TOP_SCORES:]
        return result
