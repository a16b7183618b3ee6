import datetime

import pytest

from splitease.errors import InvalidSplitConfiguration, LedgerError, RecordNotFound
from splitease.storage import LedgerStore
from splitease.tracker import CSV_COLUMNS, LedgerTracker

ME = "user@splitease.local"


@pytest.fixture
def tracker(tmp_path):
    store = LedgerStore(data_file=str(tmp_path / "ledger.json"), use_google_sheets=False)
    return LedgerTracker(store)


def test_add_expense(tracker):
    expense = tracker.add_expense("Dinner", 90.0, [ME, "bob", "carol"], category="food", date="2024-05-01")
    assert expense.id
    assert expense.payer == ME
    assert expense.currency == "USD"
    assert [(s.person, s.amount) for s in expense.splits] == [(ME, 30.0), ("bob", 30.0), ("carol", 30.0)]
    assert len(tracker.list_expenses()) == 1


def test_balances(tracker):
    tracker.add_expense("Dinner", 90.0, [ME, "bob", "carol"])
    tracker.add_expense("Taxi", 40.0, [ME, "bob"], payer="bob")
    summary = tracker.balances()
    assert summary.owed_by_them == {"bob": 10.0, "carol": 30.0}
    assert summary.owe_them == {}
    assert summary.net_total == 40.0


def test_settlement_clears_balance(tracker):
    tracker.add_expense("Dinner", 60.0, [ME, "bob"])
    tracker.record_settlement("bob", 30.0, direction="they_pay", note="cash")
    assert tracker.balances().net == {}
    assert tracker.simplified_payments() == []


def test_delete_settlement_restores_balance(tracker):
    tracker.add_expense("Dinner", 60.0, [ME, "bob"])
    settlement = tracker.record_settlement("bob", 30.0, direction="they_pay")
    assert settlement.from_user == "bob"
    assert settlement.to_user == ME
    assert tracker.delete_settlement(settlement.id) is True
    assert tracker.balances().owed_by_them == {"bob": 30.0}
    assert tracker.list_settlements() == []


def test_settlement_validation(tracker):
    with pytest.raises(LedgerError):
        tracker.record_settlement("", 10.0)
    with pytest.raises(LedgerError):
        tracker.record_settlement(ME, 10.0)
    with pytest.raises(LedgerError):
        tracker.record_settlement("bob", 0)
    with pytest.raises(LedgerError):
        tracker.record_settlement("bob", 5.0, direction="sideways")


def test_simplified_payments_use_my_balance_mapping(tracker):
    # bob owes me 30, I owe carol 30
    tracker.add_expense("Rent", 60.0, [ME, "bob"])
    tracker.add_expense("Tickets", 60.0, [ME, "carol"], payer="carol")
    assert tracker.balances().net == {"bob": 30.0, "carol": -30.0}
    payments = tracker.simplified_payments()
    assert [p.to_dict() for p in payments] == [{"from": "carol", "to": "bob", "amount": 30.0}]


def test_simplified_payments_need_two_counterparties(tracker):
    tracker.add_expense("Rent", 100.0, [ME, "bob"], payer="bob")
    assert tracker.simplified_payments() == []
    plan = tracker.payoff_plan()
    assert [p.to_dict() for p in plan] == [{"from": ME, "to": "bob", "amount": 50.0}]


def test_exact_split_must_add_up(tracker):
    with pytest.raises(InvalidSplitConfiguration):
        tracker.add_expense("Groceries", 100.0, [{"email": ME, "amount": 50.0}, {"email": "bob", "amount": 40.0}],
                            split_method="exact")
    assert tracker.list_expenses() == []


def test_current_user_must_be_in_split(tracker):
    with pytest.raises(InvalidSplitConfiguration):
        tracker.add_expense("Gift", 20.0, ["bob", "carol"])


def test_expense_input_validation(tracker):
    with pytest.raises(LedgerError):
        tracker.add_expense("", 10.0, [ME])
    with pytest.raises(LedgerError):
        tracker.add_expense("Coffee", -3.0, [ME])
    with pytest.raises(LedgerError):
        tracker.add_expense("Coffee", 3.0, [ME], category="snacks")


def test_percentage_and_shares_expenses(tracker):
    pct = tracker.add_expense("Hotel", 200.0, [{"email": ME, "percentage": 25}, {"email": "bob", "percentage": 75}],
                              split_method="percentage")
    assert [s.amount for s in pct.splits] == [50.0, 150.0]
    shares = tracker.add_expense("Fuel", 60.0, [{"email": ME, "shares": 1}, {"email": "bob", "shares": 2}],
                                 split_method="shares")
    assert [s.amount for s in shares.splits] == [20.0, 40.0]


def test_edit_expense_recomputes_split(tracker):
    expense = tracker.add_expense("Dinner", 90.0, [ME, "bob", "carol"])
    edited = tracker.edit_expense(expense.id, amount=120.0, description="Late dinner")
    assert edited.description == "Late dinner"
    assert edited.amount == 120.0
    assert [s.amount for s in edited.splits] == [40.0, 40.0, 40.0]
    assert edited.payers[0].amount == 120.0
    assert tracker.balances().owed_by_them == {"bob": 40.0, "carol": 40.0}


def test_edit_expense_keeps_split_when_untouched(tracker):
    expense = tracker.add_expense("Lunch", 30.0, [{"email": ME, "amount": 10.0}, {"email": "bob", "amount": 20.0}],
                                  split_method="exact")
    edited = tracker.edit_expense(expense.id, category="food")
    assert edited.category == "food"
    assert [s.amount for s in edited.splits] == [10.0, 20.0]


def test_edit_unknown_expense(tracker):
    with pytest.raises(RecordNotFound):
        tracker.edit_expense("missing", description="x")


def test_delete_expense(tracker):
    expense = tracker.add_expense("Dinner", 90.0, [ME, "bob"])
    assert tracker.delete_expense(expense.id) is True
    assert tracker.delete_expense(expense.id) is False
    assert tracker.balances().net == {}


def test_list_expenses_filters(tracker):
    tracker.add_expense("Pizza night", 30.0, [ME, "bob"], date="2024-04-10", category="food")
    tracker.add_expense("Train", 20.0, [ME, "bob"], date="2024-05-02", category="transportation")
    assert [e.description for e in tracker.list_expenses(month=5)] == ["Train"]
    assert sorted(e.description for e in tracker.list_expenses(year=2024)) == ["Pizza night", "Train"]
    assert [e.description for e in tracker.list_expenses(search="pizza")] == ["Pizza night"]
    assert tracker.list_expenses(year=2023) == []
    assert tracker.available_periods() == ([2024], {2024: [4, 5]})


def test_group_scoping(tracker):
    group = tracker.create_group("Trip", ["bob"])
    tracker.add_expense("Cabin", 100.0, [ME, "bob"], group_id=group.id)
    tracker.add_expense("Coffee", 10.0, [ME, "carol"])
    assert tracker.balances(group.id).owed_by_them == {"bob": 50.0}
    assert tracker.balances().owed_by_them == {"bob": 50.0, "carol": 5.0}
    assert [e.description for e in tracker.list_expenses(group_id=group.id)] == ["Cabin"]


def test_create_group_includes_me(tracker):
    group = tracker.create_group("Flat", ["bob", "bob", ME], type="home")
    assert group.members == [ME, "bob"]
    assert tracker.get_group(group.id).type == "home"
    assert [g.name for g in tracker.list_groups()] == ["Flat"]
    with pytest.raises(LedgerError):
        tracker.create_group("  ")
    assert tracker.delete_group(group.id) is True
    assert tracker.list_groups() == []


def test_payoff_plan_and_who_pays_next(tracker):
    tracker.add_expense("Dinner", 90.0, [ME, "bob", "carol"])
    tracker.add_expense("Drinks", 30.0, [ME, "bob", "carol"], payer="bob")
    plan = {(p.from_person, p.to_person, p.amount) for p in tracker.payoff_plan()}
    assert plan == {("bob", ME, 10.0), ("carol", ME, 40.0)}
    assert tracker.who_should_pay_next() == "carol"


def test_history_ordering_and_filter(tracker):
    tracker.add_expense("Dinner", 60.0, [ME, "bob"], date="2024-05-01")
    tracker.record_settlement("bob", 30.0, direction="they_pay", date="2024-05-03")
    tracker.add_expense("Lunch", 20.0, [ME, "bob"], date="2024-04-20")
    history = tracker.history()
    assert [(h["type"], h["date"]) for h in history] == [
        ("settlement", "2024-05-03"),
        ("expense", "2024-05-01"),
        ("expense", "2024-04-20"),
    ]
    assert {h["type"] for h in tracker.history("expenses")} == {"expense"}
    assert len(tracker.history("settlements")) == 1
    with pytest.raises(LedgerError):
        tracker.history("comments")


def test_analytics(tracker):
    tracker.add_expense("Dinner", 90.0, [ME, "bob"], date="2024-05-01", category="food")
    tracker.add_expense("Bus", 20.0, [ME, "bob"], date="2024-03-10", category="transportation")
    tracker.add_expense("Snacks", 10.5, [ME], date="2024-05-12", category="food")
    assert tracker.total_spent() == 120.5
    assert list(tracker.totals_by_category().items()) == [("food", 100.5), ("transportation", 20.0)]
    assert tracker.monthly_totals(months=3, today=datetime.date(2024, 5, 15)) == [
        ("Mar 2024", 20.0),
        ("Apr 2024", 0.0),
        ("May 2024", 100.5),
    ]


def test_export_csv(tracker):
    tracker.add_expense("Dinner", 60.0, [ME, "bob"], date="2024-05-01")
    tracker.record_settlement("bob", 30.0, direction="they_pay", date="2024-05-03")
    lines = tracker.export_csv().splitlines()
    assert lines[0] == ",".join(CSV_COLUMNS)
    assert len(lines) == 3
    assert lines[1].startswith("2024-05-03,Payment Settlement,30.0")
    assert "bob" in lines[2]


def test_export_import_json(tracker, tmp_path):
    tracker.add_expense("Dinner", 60.0, [ME, "bob"])
    tracker.add_friend("bob", "Bob")
    dump = tracker.export_json()

    other = LedgerTracker(LedgerStore(data_file=str(tmp_path / "copy.json"), use_google_sheets=False))
    other.import_json(dump)
    assert [e.description for e in other.list_expenses()] == ["Dinner"]
    assert [f.friend_email for f in other.list_friends()] == ["bob"]
    assert other.balances() == tracker.balances()


def test_import_rejects_bad_json(tracker):
    with pytest.raises(LedgerError):
        tracker.import_json("not json")
    with pytest.raises(LedgerError):
        tracker.import_json("[1, 2]")


def test_friends(tracker):
    friend = tracker.add_friend("bob@example.com", "Bob")
    assert friend.friend_name == "Bob"
    with pytest.raises(LedgerError):
        tracker.add_friend("bob@example.com")
    with pytest.raises(LedgerError):
        tracker.add_friend(ME)
    tracker.add_expense("Coffee", 8.0, [ME, "carol@example.com"])
    assert tracker.known_people() == ["bob@example.com", "carol@example.com"]
    assert tracker.remove_friend(friend.id) is True
    assert tracker.list_friends() == []


def test_update_profile(tracker):
    user = tracker.update_profile(full_name="Ada", default_currency="eur")
    assert user["default_currency"] == "EUR"
    expense = tracker.add_expense("Museum", 24.0, [ME, "bob"])
    assert expense.currency == "EUR"


def test_email_cannot_be_changed(tracker):
    tracker.add_expense("Dinner", 60.0, [ME, "bob"])
    with pytest.raises(LedgerError):
        tracker.update_profile(email="ada@example.com")
    assert tracker.me == ME
    assert tracker.known_people() == ["bob"]
    assert tracker.balances().owed_by_them == {"bob": 30.0}
    # resubmitting the current email alongside other fields is fine
    assert tracker.update_profile(email=ME, full_name="Ada")["full_name"] == "Ada"


def test_upi_link(tracker):
    assert tracker.upi_link() is None
    tracker.update_profile(full_name="Ada Lovelace", upi_id=" ada@okbank ")
    assert tracker.upi_link() == "upi://pay?pa=ada%40okbank&pn=Ada%20Lovelace&cu=INR"
    assert tracker.upi_link(30.0, note="Dinner split") == (
        "upi://pay?pa=ada%40okbank&pn=Ada%20Lovelace&am=30.00&cu=INR&tn=Dinner%20split"
    )


def test_upi_link_falls_back_to_email(tracker):
    tracker.update_profile(full_name="", upi_id="me@upi")
    assert tracker.upi_link(12.5) == "upi://pay?pa=me%40upi&pn=user%40splitease.local&am=12.50&cu=INR"


def test_clear(tracker):
    tracker.add_expense("Dinner", 60.0, [ME, "bob"])
    tracker.record_settlement("bob", 10.0)
    tracker.clear()
    assert tracker.list_expenses() == []
    assert tracker.list_settlements() == []
    assert tracker.me == ME


def test_data_survives_new_tracker(tmp_path):
    path = str(tmp_path / "ledger.json")
    first = LedgerTracker(LedgerStore(data_file=path, use_google_sheets=False))
    first.add_expense("Dinner", 100.0, [ME, "bob"])
    second = LedgerTracker(LedgerStore(data_file=path, use_google_sheets=False))
    assert len(second.list_expenses()) == 1
    assert second.list_expenses()[0].amount == 100.0
    assert second.balances().owed_by_them == {"bob": 50.0}
