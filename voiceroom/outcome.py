"""Outcome selection for lucky gifts, the wheel and the slot reels.

The configured win rate decides win or lose first, then the visible option is
chosen to match: a win lands on something the player backed, a loss on
something they did not. The apparent odds therefore follow the configured rate,
not the number of options on screen.
"""
import random
from typing import Iterable, Sequence

_rng = random.SystemRandom()


def roll_win(probability: float, rng: random.Random | None = None) -> bool:
    """Draw r in [0, 100) and win iff r < probability."""
    rng = rng or _rng
    return rng.random() * 100 < probability


def pick_winner(
    probability: float,
    backed: Iterable[str],
    options: Sequence[str],
    rng: random.Random | None = None,
) -> str:
    if not options:
        raise ValueError("no options to pick from")
    rng = rng or _rng
    backed_set = set(backed)
    chosen = [o for o in options if o in backed_set]

    if roll_win(probability, rng):
        # Nothing backed (passive game): any option will do
        return rng.choice(chosen or list(options))

    safe = [o for o in options if o not in backed_set]
    if not safe:
        # Everything was backed, nothing is safe to land on
        return rng.choice(list(options))
    return rng.choice(safe)


def spin_reels(
    probability: float,
    symbols: Sequence[str],
    rng: random.Random | None = None,
) -> tuple[list[str], bool]:
    """Resolve three reels. Returns (reels, win)."""
    if not symbols:
        raise ValueError("no symbols to spin")
    rng = rng or _rng

    if roll_win(probability, rng) or len(set(symbols)) == 1:
        s = rng.choice(list(symbols))
        return [s, s, s], True

    r1, r2, r3 = rng.choice(symbols), rng.choice(symbols), rng.choice(symbols)
    while r1 == r2 == r3:
        r3 = rng.choice(symbols)
    return [r1, r2, r3], False


def pick_lucky_multiplier(table: Sequence, rng: random.Random | None = None):
    """Weighted draw over rows with a ``chance`` weight. Rows with no weight never win."""
    rng = rng or _rng
    rows = [row for row in table if row.chance > 0]
    if not rows:
        raise ValueError("invalid multiplier weights")
    return rng.choices(rows, weights=[row.chance for row in rows], k=1)[0]
