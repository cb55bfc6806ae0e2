"""Tests for the thread-safe bit-set."""

import threading
from enum import IntFlag

from kwclient.core.bitflag import BitFlag


class State(IntFlag):
    NONE = 0
    A = 1
    B = 2
    C = 4


class TestBitFlag:
    """Tests for BitFlag."""

    def test_set_and_has(self) -> None:
        """Set bits are reported by has()."""
        flags = BitFlag(State.NONE)
        flags.set(State.A)
        assert flags.has(State.A)
        assert not flags.has(State.B)
        assert flags.has(State.A | State.B)

    def test_unset(self) -> None:
        """unset() clears only the given bits."""
        flags = BitFlag(State.A | State.B)
        flags.unset(State.A)
        assert flags.value == State.B

    def test_set_if_unset(self) -> None:
        """Only the first caller wins."""
        flags = BitFlag(State.NONE)
        assert flags.set_if_unset(State.C) is True
        assert flags.set_if_unset(State.C) is False

    def test_set_if_unset_across_threads(self) -> None:
        """Exactly one thread sets the bit."""
        flags = BitFlag(State.NONE)
        winners: list[bool] = []
        lock = threading.Lock()

        def race() -> None:
            won = flags.set_if_unset(State.A)
            with lock:
                winners.append(won)

        threads = [threading.Thread(target=race) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert winners.count(True) == 1
