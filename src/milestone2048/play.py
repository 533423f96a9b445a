"""
Play the game in command line.
"""

import logging
import sys
from argparse import ArgumentParser
from typing import Callable, Sequence

from milestone2048.game import STEP_DOWN, STEP_LEFT, STEP_NAMES, STEP_RIGHT, STEP_UP
from milestone2048.game_numba import Game, GameState
from milestone2048.stats import SessionStats, claimable_milestones


def print_board(state: GameState, file=None):
    fmt = "| {:5s} | {:5s} | {:5s} | {:5s} |"

    for row in state.board:
        items = [f"{s:5d}" if s else "" for s in row]
        print(fmt.format(*items), file=file)

    print(f"Score: {state.score}  Best: {state.max_tile}", file=file)


_STEP_LETTERS = {
    "L": STEP_LEFT,
    "R": STEP_RIGHT,
    "U": STEP_UP,
    "D": STEP_DOWN,
}


def parser() -> ArgumentParser:
    p = ArgumentParser(description="Play 2048 in the terminal")
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--verbose", action="store_true", help="log to stderr")
    return p


def main(
    argv: Sequence[str] | None = None,
    input_fn: Callable[[str], str] = input,
) -> int:
    ns = parser().parse_args(argv)

    logger = logging.getLogger("milestone2048")
    if ns.verbose:
        logger.setLevel(logging.DEBUG)
        if not logger.handlers:
            logger.addHandler(logging.StreamHandler(sys.stderr))

    game = Game(ns.seed, logger=logger)
    stats = SessionStats()
    stats.attach(game)

    def on_milestone(game: Game, threshold: int):
        print(f"Milestone {threshold} reached!")

    game.add_callback(Game.EVENT_MILESTONE, on_milestone)

    while True:
        state = game.get_state()
        print_board(state)

        claimable = claimable_milestones(state.milestones, ())
        if claimable:
            print("Claimable:", ", ".join(str(t) for t in claimable))

        if state.game_over:
            print("Game over. N for a new game, Q to quit")

        try:
            ans = input_fn("Move: ").strip()
        except EOFError:
            ans = "Q"

        letter = ans.upper()

        if letter == "Q":
            print(f"Bye. Games: {stats.total_games}, best score: {stats.best_score}")
            return 0

        if letter == "N":
            game.reset()
            continue

        direction = STEP_NAMES.get(_STEP_LETTERS.get(letter), ans.capitalize())

        if not game.move(direction):
            print("Bad action, try again")


if __name__ == "__main__":
    sys.exit(main())
