import pytest


class ScriptedRandom:
    """
    Random source with a fixed outcome.

    Always picks the first empty cell, and draws `chance` for the tile value.
    """

    def __init__(self, chance: float = 0.0):
        self.chance = chance
        self.calls = 0

    def choice(self, indices):
        self.calls += 1
        return indices[0]

    def uniform(self):
        return self.chance


@pytest.fixture
def scripted():
    return ScriptedRandom()
