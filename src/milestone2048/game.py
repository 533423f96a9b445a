"""
Board constants and direction tokens.

+----+----+----+----+
|  0 |  1 |  2 |  3 |
|  4 |  5 |  6 |  7 |
|  8 |  9 | 10 | 11 |
| 12 | 13 | 14 | 15 |
+----+----+----+----+
"""

from typing import Any, Optional

import numpy as np

SIZE = 4
CELLS = SIZE * SIZE

STEP_LEFT = 0
STEP_RIGHT = 1
STEP_UP = 2
STEP_DOWN = 3

STEPS = (STEP_LEFT, STEP_RIGHT, STEP_UP, STEP_DOWN)

STEP_NAMES = {
    STEP_LEFT: "Left",
    STEP_RIGHT: "Right",
    STEP_UP: "Up",
    STEP_DOWN: "Down",
}

# probability to spawn 2. otherwise 4.
TWO_PROB = 0.9

MILESTONES = (2048, 4096, 8192)

_DIRECTION_TOKENS = {
    "Left": STEP_LEFT,
    "Right": STEP_RIGHT,
    "Up": STEP_UP,
    "Down": STEP_DOWN,
    # keyboard event names sent by the browser
    "ArrowLeft": STEP_LEFT,
    "ArrowRight": STEP_RIGHT,
    "ArrowUp": STEP_UP,
    "ArrowDown": STEP_DOWN,
}


def parse_direction(token: Any) -> Optional[int]:
    """
    Map a direction token to a step constant.

    Unrecognized tokens map to None instead of raising.
    """
    if isinstance(token, str):
        return _DIRECTION_TOKENS.get(token)

    if isinstance(token, bool):
        return None

    if isinstance(token, (int, np.integer)) and int(token) in STEP_NAMES:
        return int(token)

    return None
