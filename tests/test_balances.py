import pytest

from splitease.balances import aggregate_balances, net_positions, who_should_pay_next
from splitease.errors import MalformedRecord
from splitease.models import Expense, Payer, Settlement, Split
from splitease.splits import compute_split


def _expense(payer, amount, shares):
    """shares: {person: amount}"""
    return Expense(
        amount=amount,
        payers=[Payer(payer, amount)],
        splits=[Split(p, amount=a) for p, a in shares.items()],
    )


def test_payer_is_owed_by_participants():
    exp = _expense("A", 90.0, {"A": 30.0, "B": 30.0, "C": 30.0})
    summary = aggregate_balances("A", [exp], [])
    assert summary.owed_by_them == {"B": 30.0, "C": 30.0}
    assert summary.owe_them == {}
    assert summary.net_total == 60.0


def test_reference_owes_payer():
    exp = _expense("B", 90.0, {"A": 30.0, "B": 30.0, "C": 30.0})
    summary = aggregate_balances("A", [exp], [])
    assert summary.owe_them == {"B": 30.0}
    assert summary.owed_by_them == {}
    # C and B are not tracked against each other from A's point of view
    assert "C" not in summary.net


def test_settlement_clears_balance():
    exp = _expense("A", 90.0, {"A": 30.0, "B": 30.0, "C": 30.0})
    payment = Settlement(from_user="B", to_user="A", amount=30.0)
    summary = aggregate_balances("A", [exp], [payment])
    assert "B" not in summary.owed_by_them
    assert "B" not in summary.net
    assert summary.owed_by_them == {"C": 30.0}


def test_settlement_from_reference_creates_credit():
    payment = Settlement(from_user="A", to_user="D", amount=12.5)
    summary = aggregate_balances("A", [], [payment])
    assert summary.owed_by_them == {"D": 12.5}


def test_unrelated_settlement_ignored():
    payment = Settlement(from_user="B", to_user="C", amount=10.0)
    assert aggregate_balances("A", [], [payment]).net == {}


def test_only_first_payer_counts():
    exp = Expense(
        amount=100.0,
        payers=[Payer("A", 50.0), Payer("B", 50.0)],
        splits=[Split("A", amount=50.0), Split("B", amount=50.0)],
    )
    summary = aggregate_balances("A", [exp], [])
    assert summary.owed_by_them == {"B": 50.0}


def test_near_zero_balances_dropped():
    exp = _expense("A", 10.004, {"A": 10.0, "B": 0.004})
    summary = aggregate_balances("A", [exp], [])
    assert summary.net == {}


def test_accepts_stored_dicts():
    record = {
        "amount": 40,
        "payers": [{"email": "A", "amount": 40}],
        "splits": [{"email": "A", "amount": 20}, {"email": "B", "amount": 20}],
    }
    settlement = {"from_user": "B", "to_user": "A", "amount": 5}
    summary = aggregate_balances("A", [record], [settlement])
    assert summary.owed_by_them == {"B": 15.0}


def test_legacy_string_payer():
    record = {"amount": 40, "payers": ["A"], "splits": [{"email": "A", "amount": 20}, {"email": "B", "amount": 20}]}
    assert aggregate_balances("B", [record], []).owe_them == {"A": 20.0}


def test_balances_are_symmetric_between_counterparties():
    expenses = [
        _expense("A", 90.0, {"A": 30.0, "B": 30.0, "C": 30.0}),
        _expense("B", 45.0, {"A": 15.0, "B": 15.0, "C": 15.0}),
        _expense("C", 20.0, {"A": 5.0, "C": 15.0}),
    ]
    settlements = [Settlement("C", "A", 10.0), Settlement("A", "B", 7.5)]
    people = ["A", "B", "C"]
    views = {p: aggregate_balances(p, expenses, settlements) for p in people}
    for p in people:
        for q in people:
            if p == q:
                continue
            assert views[p].net.get(q, 0.0) == -views[q].net.get(p, 0.0)


def test_aggregation_is_idempotent():
    expenses = [_expense("A", 33.0, {"A": 11.0, "B": 11.0, "C": 11.0})]
    settlements = [Settlement("B", "A", 4.0)]
    assert aggregate_balances("A", expenses, settlements) == aggregate_balances("A", expenses, settlements)


def test_missing_expense_fields_fail_fast():
    with pytest.raises(MalformedRecord) as exc:
        aggregate_balances("A", [{"payers": [{"email": "A"}], "splits": []}], [])
    assert exc.value.missing == ["amount"]
    with pytest.raises(MalformedRecord):
        aggregate_balances("A", [{"amount": 10, "payers": [], "splits": []}], [])


def test_missing_settlement_fields_fail_fast():
    with pytest.raises(MalformedRecord) as exc:
        aggregate_balances("A", [], [{"from_user": "A", "amount": 3}])
    assert exc.value.missing == ["to_user"]


def test_net_positions_sum_to_zero():
    expenses = [
        _expense("A", 100.0, {"A": 100.0 / 3, "B": 100.0 / 3, "C": 100.0 / 3}),
        _expense("B", 60.0, {"B": 20.0, "C": 40.0}),
    ]
    settlements = [Settlement("C", "A", 10.0)]
    positions = net_positions(expenses, settlements)
    assert positions == {"A": 56.67, "B": 6.67, "C": -63.33}
    # each person is rounded once, so the total may be a cent off zero
    assert abs(sum(positions.values())) < 0.02


def test_who_should_pay_next():
    expenses = [
        _expense("A", 90.0, {"A": 30.0, "B": 30.0, "C": 30.0}),
        _expense("B", 20.0, {"B": 10.0, "C": 10.0}),
    ]
    # B consumed 40 and paid 20; C consumed 40 and paid nothing
    assert who_should_pay_next("A", expenses) == "C"
    assert who_should_pay_next("A", []) is None


def _thirds(count):
    return [Expense(amount=10.0, payers=[Payer("A", 10.0)], splits=compute_split(10.0, "equal", ["A", "B", "C"]))
            for _ in range(count)]


def test_repeated_thirds_do_not_drift():
    expenses = _thirds(10)
    summary = aggregate_balances("A", expenses, [])
    assert summary.owed_by_them == {"B": 33.33, "C": 33.33}
    assert abs(summary.owed_by_them["B"] - 100.0 / 3) < 0.01

    positions = net_positions(expenses, [])
    assert positions["A"] == 66.67
    assert abs(positions["A"] - 200.0 / 3) < 0.01
    assert positions["B"] == -33.33


def test_thirds_settle_to_exact_total():
    expenses = _thirds(3)
    payment = Settlement(from_user="B", to_user="A", amount=10.0)
    # B owed exactly 10.00 across three 3.333... shares
    assert "B" not in aggregate_balances("A", expenses, [payment]).net
