"""
2048 board engine implemented with numpy and numba

Cells hold tile ranks: 0 is an empty cell and k is a tile of value 2**k.
Values are only materialized at the boundary (snapshots, events, logs).
"""

import logging
from typing import Any, Callable, NamedTuple, Optional, Sequence

import numpy as np
from numba import njit

from milestone2048.event import EventEmitter
from milestone2048.game import (
    CELLS,
    MILESTONES,
    SIZE,
    STEP_NAMES,
    STEPS,
    TWO_PROB,
    parse_direction,
)

# Map rank to its rendered value.
ITEM_VALUES = np.array(
    [
        0,  # 0
        2,
        4,
        8,
        16,
        32,
        64,
        128,
        256,  # 8
        512,
        1024,
        2048,
        4096,
        8192,
        16384,
        32768,
        65536,  # 16
        131072,  # 17, the largest tile a 4x4 board can hold
    ],
    dtype=np.int64,
)

# Largest tile accepted by Game.from_board
MAX_TILE = int(ITEM_VALUES[-1])

# A loaded board may hold several 131072 tiles whose merges go past rank 17.
# The tile sum grows by at most 4 per move, so rank 40 is out of reach.
_MAX_RANK = 40
ITEM_VALUES = np.concatenate(
    [ITEM_VALUES, 2 ** np.arange(ITEM_VALUES.size, _MAX_RANK + 1, dtype=np.int64)]
)

# merged[k] counts pairs of rank k, each producing MERGE_VALUES[k]
MERGE_VALUES = ITEM_VALUES[1:]

# First cell of each line, at the edge the tiles move toward.
# Rows are indexed by step constant.
_LINE_STARTS = np.array(
    [
        [0, 4, 8, 12],  # left
        [3, 7, 11, 15],  # right
        [0, 1, 2, 3],  # up
        [12, 13, 14, 15],  # down
    ],
    dtype=np.int64,
)

# Distance between consecutive cells of a line, walking away from the edge
_LINE_STRIDES = np.array([1, -1, SIZE, -SIZE], dtype=np.int64)

_BOARD_SHAPE = (CELLS,)
_BOARD_DTYPE = np.int8
_MERGED_SHAPE = (MERGE_VALUES.size,)
_MERGED_DTYPE = np.int32
_ACTION_SHAPE = (len(STEPS),)


@njit(inline="always")
def _push_row(
    board: np.ndarray,
    offset: int,
    stride: int,
    merged: np.ndarray,
):
    """
    Compact and merge one line toward board[offset].

    Pairs are matched greedily from the leading edge so a merged tile
    never merges again in the same push.
    """
    memo = 0  # pending rank, not yet written
    w = 0  # write pointer

    for r in range(SIZE):  # read pointer
        num = board[offset + r * stride]

        if num == 0:
            continue
        elif memo == 0:
            memo = num
        elif memo == num:
            memo = 0
            board[offset + w * stride] = num + 1
            w += 1
            merged[num] += 1
        else:
            board[offset + w * stride] = memo
            w += 1
            memo = num

    if memo != 0:
        board[offset + w * stride] = memo
        w += 1

    while w < SIZE:
        board[offset + w * stride] = 0
        w += 1


@njit
def _step_kernel(board: np.ndarray, merged: np.ndarray, action: int):
    stride = _LINE_STRIDES[action]
    for k in range(SIZE):
        _push_row(board, _LINE_STARTS[action, k], stride, merged)


@njit(inline="always")
def _line_movable(board: np.ndarray, offset: int, stride: int) -> bool:
    """Whether pushing the line toward board[offset] changes it"""
    for r in range(1, SIZE):
        num = board[offset + r * stride]
        if num == 0:
            continue

        prev = board[offset + (r - 1) * stride]
        if prev == 0 or prev == num:
            return True

    return False


@njit
def _compute_valid_actions(board: np.ndarray, result: np.ndarray) -> bool:
    """
    Given a board, set the array of valid actions.
    Return True if there is any valid action.
    """
    found = False

    for action in range(_LINE_STARTS.shape[0]):
        stride = _LINE_STRIDES[action]
        movable = False
        for k in range(SIZE):
            if _line_movable(board, _LINE_STARTS[action, k], stride):
                movable = True
                break

        result[action] = movable
        found = found or movable

    return found


@njit
def _can_move(board: np.ndarray) -> bool:
    """Any empty cell or any pair of orthogonally adjacent equal tiles"""
    for i in range(CELLS):
        if board[i] == 0:
            return True

    for j in range(SIZE):
        for i in range(SIZE - 1):
            # horizontal neighbours in row j
            if board[j * SIZE + i] == board[j * SIZE + i + 1]:
                return True
            # vertical neighbours in column j
            if board[i * SIZE + j] == board[(i + 1) * SIZE + j]:
                return True

    return False


def _spawn(board: np.ndarray, prob: float, rand: Any) -> int:
    """
    Spawn one number in an empty cell

    Not jitted so that any generator exposing choice() and uniform()
    can drive it.

    :param prob: probability to spawn 2. otherwise 4.
    :return: the flat index of the new tile, or -1 if the board is full
    """

    empty_indices = np.flatnonzero(board == 0)
    if empty_indices.size == 0:
        return -1

    idx = int(rand.choice(empty_indices))

    chance = rand.uniform()
    if chance < prob:
        board[idx] = 1
    else:
        board[idx] = 2

    return idx


def _to_ranks(board: Sequence[Sequence[int]] | np.ndarray) -> np.ndarray:
    values = np.asarray(board)

    if values.shape != (SIZE, SIZE):
        raise ValueError(f"Board must be {SIZE}x{SIZE}, got shape {values.shape}")
    if not np.issubdtype(values.dtype, np.integer):
        raise ValueError(f"Board must hold integers, got {values.dtype}")

    values = values.astype(np.int64).ravel()

    if (values < 0).any():
        raise ValueError("Tile values must be non-negative")
    if (values > MAX_TILE).any():
        raise ValueError(f"Tile values must not exceed {MAX_TILE}")
    if (values & (values - 1)).any():
        raise ValueError("Tile values must be 0 or a power of two")

    # ITEM_VALUES is sorted so the insertion point is the rank
    return np.searchsorted(ITEM_VALUES, values).astype(_BOARD_DTYPE)


class GameState(NamedTuple):
    board: list[list[int]]
    score: int
    max_tile: int
    game_over: bool
    won: bool
    milestones: dict[int, bool]

    def as_dict(self) -> dict[str, Any]:
        """Shape consumed by the browser UI"""
        return {
            "board": [list(row) for row in self.board],
            "score": self.score,
            "maxTile": self.max_tile,
            "gameOver": self.game_over,
            "won": self.won,
            "milestones": dict(self.milestones),
        }


class Game:
    """
    Single 2048 game driven by one caller at a time.

    Rejected moves (game over, unknown direction, nothing to push)
    return False and leave the state untouched.
    """

    EVENT_MOVED: str = "moved"
    """
    args: (game, direction, gain, spawned)
    """

    EVENT_MILESTONE: str = "milestone"
    """
    args: (game, threshold)
    """

    EVENT_GAME_OVER: str = "game_over"
    """
    args: (game, state)
    """

    EVENT_RESET: str = "reset"
    """
    args: (game, previous_state)
    """

    _rand: Any

    _score: int
    _max_tile: int
    _game_over: bool
    _won: bool
    _milestones: dict[int, bool]

    _board: np.ndarray
    _board_tmp: np.ndarray
    _merged: np.ndarray
    _valid_actions: np.ndarray

    def __init__(
        self,
        seed: Optional[int] = None,
        *,
        rng: Any = None,
        two_prob: float = TWO_PROB,
        logger: logging.Logger | None = None,
    ):
        self._setup(seed, rng, two_prob, logger)
        self._clear()
        self.add_random_tile()
        self.add_random_tile()

    @classmethod
    def from_board(
        cls,
        board: Sequence[Sequence[int]] | np.ndarray,
        *,
        score: int = 0,
        max_tile: Optional[int] = None,
        rng: Any = None,
        seed: Optional[int] = None,
        two_prob: float = TWO_PROB,
        logger: logging.Logger | None = None,
    ) -> "Game":
        """
        Build a game from a grid of tile values without spawning.

        :param max_tile: largest tile seen so far in this game,
            at least the largest tile on the board. Defaults to the latter.
            Milestones are derived from it.
        """
        ranks = _to_ranks(board)
        largest = int(ITEM_VALUES[ranks.max()])

        if score < 0:
            raise ValueError(f"score={score}")

        if max_tile is None:
            max_tile = largest
        elif max_tile < 0 or max_tile & (max_tile - 1) or max_tile > ITEM_VALUES[-1]:
            raise ValueError(f"max_tile={max_tile} is not a tile value")
        elif max_tile < largest:
            raise ValueError(f"max_tile={max_tile} is below the board's {largest}")

        game = cls.__new__(cls)
        game._setup(seed, rng, two_prob, logger)
        game._clear()
        game._board[:] = ranks
        game._score = int(score)
        game._update_max_tile(int(max_tile))
        return game

    def _setup(
        self,
        seed: Optional[int],
        rng: Any,
        two_prob: float,
        logger: logging.Logger | None,
    ):
        if not 0.0 <= two_prob <= 1.0:
            raise ValueError(f"two_prob={two_prob}")

        if rng is None:
            rng = np.random.default_rng(seed)

        self._rand = rng
        self._two_prob = two_prob
        self._logger = logger
        self._emitter = EventEmitter(
            (
                self.EVENT_MOVED,
                self.EVENT_MILESTONE,
                self.EVENT_GAME_OVER,
                self.EVENT_RESET,
            )
        )

        self._board = np.zeros(_BOARD_SHAPE, dtype=_BOARD_DTYPE)
        self._board_tmp = np.empty_like(self._board)
        self._merged = np.zeros(_MERGED_SHAPE, dtype=_MERGED_DTYPE)
        self._valid_actions = np.zeros(_ACTION_SHAPE, dtype=np.bool_)

    def _clear(self):
        self._board.fill(0)
        self._board_tmp.fill(0)
        self._merged.fill(0)
        self._valid_actions.fill(False)

        self._score = 0
        self._max_tile = 0
        self._game_over = False
        self._won = False
        self._milestones = dict.fromkeys(MILESTONES, False)

    def reset(self, seed: Optional[int] = None):
        """
        Start a new game on this instance.

        :param seed: reseed the random source. Keep the current one if None.
        """
        self._emitter.emit(self.EVENT_RESET, (self, self.get_state()))

        if seed is not None:
            self._rand = np.random.default_rng(seed)

        self._clear()
        self.add_random_tile()
        self.add_random_tile()

        if self._logger is not None:
            self._logger.info("New game: %s", self.values().tolist())

    def add_random_tile(self) -> tuple[int, int] | None:
        """
        Place a 2 or a 4 in a random empty cell.

        Return the (row, col) filled, or None if the board is full.
        """
        idx = _spawn(self._board, self._two_prob, self._rand)
        if idx < 0:
            return None

        return divmod(idx, SIZE)

    def _update_max_tile(self, value: int) -> list[int]:
        """Raise max_tile and return the milestones reached for the first time"""
        if value <= self._max_tile:
            return []

        self._max_tile = value

        reached = []
        for threshold in MILESTONES:
            if value >= threshold and not self._milestones[threshold]:
                self._milestones[threshold] = True
                reached.append(threshold)

        return reached

    def move(self, direction: Any) -> bool:
        """
        Push all tiles toward one edge, then spawn a tile.

        Return whether the board changed.
        """
        if self._game_over:
            if self._logger is not None:
                self._logger.debug("Reject %r: game over", direction)
            return False

        step = parse_direction(direction)
        if step is None:
            if self._logger is not None:
                self._logger.debug("Reject %r: unknown direction", direction)
            return False

        # save the board state
        self._board_tmp[:] = self._board
        self._merged.fill(0)

        _step_kernel(self._board, self._merged, step)

        if np.array_equal(self._board, self._board_tmp):
            if self._logger is not None:
                self._logger.debug("Reject %s: nothing to push", STEP_NAMES[step])
            return False

        gain = int(np.dot(self._merged, MERGE_VALUES))
        self._score += gain

        reached = []
        merged_ranks = np.flatnonzero(self._merged)
        if merged_ranks.size:
            reached = self._update_max_tile(int(MERGE_VALUES[merged_ranks[-1]]))

        spawned = self.add_random_tile()
        self._game_over = not _can_move(self._board)

        name = STEP_NAMES[step]
        if self._logger is not None:
            self._logger.debug(
                "%s: gain=%d score=%d spawned=%s", name, gain, self._score, spawned
            )

        self._emitter.emit(self.EVENT_MOVED, (self, name, gain, spawned))

        for threshold in reached:
            if self._logger is not None:
                self._logger.info("Milestone %d reached", threshold)
            self._emitter.emit(self.EVENT_MILESTONE, (self, threshold))

        if self._game_over:
            if self._logger is not None:
                self._logger.info(
                    "Game over: score=%d max_tile=%d", self._score, self._max_tile
                )
            self._emitter.emit(self.EVENT_GAME_OVER, (self, self.get_state()))

        return True

    def can_move(self) -> bool:
        return bool(_can_move(self._board))

    def valid_directions(self) -> list[str]:
        _compute_valid_actions(self._board, self._valid_actions)
        return [STEP_NAMES[step] for step in STEPS if self._valid_actions[step]]

    def values(self) -> np.ndarray:
        return ITEM_VALUES[self._board].reshape((SIZE, SIZE))

    def get_state(self) -> GameState:
        return GameState(
            board=self.values().tolist(),
            score=self._score,
            max_tile=self._max_tile,
            game_over=self._game_over,
            won=self._won,
            milestones=dict(self._milestones),
        )

    @property
    def score(self) -> int:
        return self._score

    @property
    def max_tile(self) -> int:
        return self._max_tile

    @property
    def game_over(self) -> bool:
        return self._game_over

    def add_callback(self, event: str, fn: Callable[..., Any]):
        self._emitter.add_listener(event, fn)

    def remove_callback(self, event: str, fn: Callable[..., Any]) -> bool:
        return self._emitter.remove_listener(event, fn)
