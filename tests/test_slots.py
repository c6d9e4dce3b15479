import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from voiceroom.errors import InvalidBetError
from voiceroom.games import slots as slots_module
from voiceroom.games.slots import REVEAL_SECONDS, symbol_multiplier
from voiceroom.ledger import balances
from voiceroom.models import GameRound, Outcome
from voiceroom.schemas import GameResultEvent, GameSettings

CHIP = 10_000


@pytest.fixture
def player(make_user):
    return make_user("omar", coins=500_000)


def slots(hub, user_id, **overrides):
    hub.settings = GameSettings(**overrides)
    return hub.slots_for(user_id)


def test_win_pays_symbol_multiplier_plus_wager(db, hub, player):
    machine = slots(hub, player, slots_win_rate=100, slots_seven_x=20, slots_fruit_x=5)
    pull = machine.pull(CHIP)

    assert pull.win and len(set(pull.reels)) == 1
    expected_x = 20 if pull.reels[0] in ("seven", "diamond") else 5
    assert pull.payout == CHIP * expected_x + CHIP
    # Money moved at pull time, before the reveal
    assert balances(db, player)["coins"] == 500_000 - CHIP + pull.payout


def test_lose_never_shows_three_of_a_kind(db, hub, scheduler, player):
    machine = slots(hub, player, slots_win_rate=0)
    for _ in range(20):
        pull = machine.pull(CHIP)
        assert not pull.win
        assert len(set(pull.reels)) > 1
        scheduler.advance(REVEAL_SECONDS)
    assert balances(db, player)["coins"] == 500_000 - 20 * CHIP
    rounds = db.scalars(select(GameRound)).all()
    assert len(rounds) == 20 and all(r.outcome == Outcome.lose for r in rounds)


def test_result_is_hidden_until_reveal(hub, scheduler, player):
    machine = slots(hub, player, slots_win_rate=100)
    machine.pull(CHIP)
    assert machine.snapshot() == {"spinning": True, "bet": CHIP}
    assert not any(isinstance(e, GameResultEvent) for e in hub.bus.recent)

    scheduler.advance(REVEAL_SECONDS)
    state = machine.snapshot()
    assert state["spinning"] is False and state["win"] is True
    events = [e for e in hub.bus.recent if isinstance(e, GameResultEvent)]
    assert [(e.game, e.outcome) for e in events] == [("slots", "win")]


def test_cannot_pull_while_spinning(db, hub, scheduler, player):
    machine = slots(hub, player)
    machine.pull(CHIP)
    with pytest.raises(InvalidBetError):
        machine.pull(CHIP)
    scheduler.advance(REVEAL_SECONDS)
    machine.pull(CHIP)


@pytest.mark.parametrize("bet", [0, -5, 5_000, 12_345, 1_000_000])
def test_invalid_pulls_change_nothing(db, hub, player, bet):
    # 1_000_000 is a real chip but more than the player holds
    machine = slots(hub, player)
    with pytest.raises(InvalidBetError):
        machine.pull(bet)
    assert balances(db, player)["coins"] == 500_000
    assert machine.last is None


def test_configured_chips(db, hub, player):
    machine = slots(hub, player, slots_win_rate=0, chips=[250])
    machine.pull(250)
    assert balances(db, player)["coins"] == 500_000 - 250


def test_failed_round_write_still_delivers_the_pull(db, hub, scheduler, player, monkeypatch):
    def broken(**kwargs):
        raise SQLAlchemyError("game_rounds unavailable")

    monkeypatch.setattr(slots_module, "GameRound", broken)
    machine = slots(hub, player, slots_win_rate=100)
    pull = machine.pull(CHIP)

    assert machine.last is pull and pull.payout > 0
    assert balances(db, player)["coins"] == 500_000 - CHIP + pull.payout
    assert db.scalars(select(GameRound)).all() == []

    scheduler.advance(REVEAL_SECONDS)
    assert pull.revealed
    assert any(isinstance(e, GameResultEvent) for e in hub.bus.recent)


def test_close_suppresses_reveal_but_keeps_money(db, hub, scheduler, player):
    machine = slots(hub, player, slots_win_rate=100)
    pull = machine.pull(CHIP)
    hub.close_slots(player)
    scheduler.advance(REVEAL_SECONDS)
    assert not pull.revealed
    assert not any(isinstance(e, GameResultEvent) for e in hub.bus.recent)
    assert balances(db, player)["coins"] == 500_000 - CHIP + pull.payout
    with pytest.raises(InvalidBetError):
        machine.pull(CHIP)


def test_symbol_tiers():
    settings = GameSettings(slots_seven_x=30, slots_fruit_x=4)
    assert symbol_multiplier("seven", settings) == 30
    assert symbol_multiplier("diamond", settings) == 30
    assert symbol_multiplier("cherry", settings) == 4
