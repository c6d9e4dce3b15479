import pytest
from sqlalchemy import func, select

from voiceroom.errors import InsufficientFundsError
from voiceroom.ledger import balances
from voiceroom.models import LedgerEntry
from voiceroom.schemas import ComboEvent, GameSettings

NO_LUCK = GameSettings(lucky_gift_win_rate=0)


@pytest.fixture
def setup(make_user, make_room, make_gift):
    sender = make_user("sami", coins=1_000)
    alice = make_user("alice")
    room = make_room(sender)
    make_gift("rose", cost=100)
    make_gift("star", cost=10)
    return sender, alice, room


def test_first_send_opens_combo_at_one(db, hub, setup):
    sender, alice, room = setup
    receipt = hub.gifts.send(db, sender, room, "rose", [alice], 3, NO_LUCK)
    combo = receipt.combo
    assert combo is hub.gifts.combos.get(sender, room)
    assert (combo.gift_id, combo.recipients, combo.count) == ("rose", [alice], 1)
    assert combo.expires_at == 5.0


def test_hit_within_window_increments_and_resets_expiry(db, hub, scheduler, setup):
    sender, alice, room = setup
    hub.gifts.send(db, sender, room, "rose", [alice], 1, NO_LUCK)

    scheduler.advance(4)
    receipt = hub.gifts.combos.hit(db, sender, room, NO_LUCK)
    assert receipt.combo.count == 2
    assert receipt.combo.expires_at == 9.0
    assert receipt.total_cost == 100  # repeat hits always send quantity 1
    assert balances(db, sender)["coins"] == 800

    # The first window would have closed at t=5; the reset keeps it open
    scheduler.advance(3)
    assert hub.gifts.combos.get(sender, room).count == 2


def test_idle_window_returns_to_idle_and_next_send_restarts(db, hub, scheduler, setup):
    sender, alice, room = setup
    hub.gifts.send(db, sender, room, "rose", [alice], 1, NO_LUCK)
    hub.gifts.combos.hit(db, sender, room, NO_LUCK)

    scheduler.advance(5)
    assert hub.gifts.combos.get(sender, room) is None
    assert hub.gifts.combos.hit(db, sender, room, NO_LUCK) is None
    assert balances(db, sender)["coins"] == 800

    receipt = hub.gifts.send(db, sender, room, "rose", [alice], 1, NO_LUCK)
    assert receipt.combo.count == 1


def test_combo_hits_do_not_nest(db, hub, setup):
    sender, alice, room = setup
    first = hub.gifts.send(db, sender, room, "rose", [alice], 1, NO_LUCK).combo
    hub.gifts.combos.hit(db, sender, room, NO_LUCK)
    hub.gifts.combos.hit(db, sender, room, NO_LUCK)
    assert hub.gifts.combos.get(sender, room) is first
    assert first.count == 3


def test_new_send_replaces_active_combo(db, hub, scheduler, setup):
    sender, alice, room = setup
    hub.gifts.send(db, sender, room, "rose", [alice], 1, NO_LUCK)
    hub.gifts.combos.hit(db, sender, room, NO_LUCK)
    scheduler.advance(2)

    receipt = hub.gifts.send(db, sender, room, "star", [alice, sender], 1, NO_LUCK)
    combo = hub.gifts.combos.get(sender, room)
    assert combo is receipt.combo
    assert (combo.gift_id, combo.count) == ("star", 1)

    # The replaced combo's timer must not kill the new one
    scheduler.advance(4)
    assert hub.gifts.combos.get(sender, room) is combo


def test_failed_hit_abandons_combo(db, hub, setup):
    sender, alice, room = setup
    hub.gifts.send(db, sender, room, "rose", [alice], 9, NO_LUCK)  # 100 coins left
    hub.gifts.combos.hit(db, sender, room, NO_LUCK)  # 0 left
    combo = hub.gifts.combos.get(sender, room)
    entries_before = db.scalar(select(func.count(LedgerEntry.id)))
    combo_events_before = sum(isinstance(e, ComboEvent) for e in hub.bus.recent)

    with pytest.raises(InsufficientFundsError):
        hub.gifts.combos.hit(db, sender, room, NO_LUCK)
    assert combo.count == 2
    assert db.scalar(select(func.count(LedgerEntry.id))) == entries_before
    assert sum(isinstance(e, ComboEvent) for e in hub.bus.recent) == combo_events_before
    assert hub.gifts.combos.get(sender, room) is None
    assert balances(db, sender)["coins"] == 0


def test_combos_are_per_room(db, hub, make_room, setup):
    sender, alice, room = setup
    other = make_room(sender, title="Other")
    hub.gifts.send(db, sender, room, "rose", [alice], 1, NO_LUCK)
    hub.gifts.send(db, sender, other, "star", [alice], 1, NO_LUCK)
    assert hub.gifts.combos.get(sender, room).gift_id == "rose"
    assert hub.gifts.combos.get(sender, other).gift_id == "star"


def test_combo_events(db, hub, setup):
    sender, alice, room = setup
    hub.gifts.send(db, sender, room, "rose", [alice], 1, NO_LUCK)
    hub.gifts.combos.hit(db, sender, room, NO_LUCK)
    counts = [e.count for e in hub.bus.recent if isinstance(e, ComboEvent)]
    assert counts == [1, 2]
