import pytest

from splitease.errors import InvalidSplitConfiguration
from splitease.models import Split
from splitease.splits import compute_split, validate_split


def _amounts(splits):
    return {s.person: s.amount for s in splits}


def test_percentage_split():
    result = compute_split(100.0, "percentage", [
        {"email": "A", "percentage": 60},
        {"email": "B", "percentage": 40},
    ])
    assert _amounts(result) == {"A": 60.0, "B": 40.0}


def test_shares_split():
    result = compute_split(100.0, "shares", [Split("A", shares=1), Split("B", shares=3)])
    assert _amounts(result) == {"A": 25.0, "B": 75.0}


def test_unset_shares_count_as_one():
    result = compute_split(90.0, "shares", [Split("A", shares=None), Split("B", shares=2)])
    assert _amounts(result) == {"A": 30.0, "B": 60.0}
    assert result[0].shares == 1


def test_equal_split_is_exact_division():
    result = compute_split(100.0, "equal", ["A", "B", "C"])
    for s in result:
        assert s.amount == 100.0 / 3


def test_equal_split_keeps_order():
    result = compute_split(90.0, "equal", ["C", "A", "B"])
    assert [s.person for s in result] == ["C", "A", "B"]
    assert [s.amount for s in result] == [30.0, 30.0, 30.0]


@pytest.mark.parametrize("method,participants", [
    ("equal", ["A", "B", "C"]),
    ("exact", [{"email": "A", "amount": 33.34}, {"email": "B", "amount": 33.33}, {"email": "C", "amount": 33.33}]),
    ("percentage", [{"email": "A", "percentage": 33.3}, {"email": "B", "percentage": 33.3},
                    {"email": "C", "percentage": 33.4}]),
    ("shares", [{"email": "A", "shares": 1}, {"email": "B", "shares": 1}, {"email": "C", "shares": 5}]),
])
def test_split_conserves_total(method, participants):
    result = compute_split(100.0, method, participants)
    assert abs(sum(s.amount for s in result) - 100.0) <= 0.01
    validate_split(100.0, result)


def test_exact_split_keeps_amounts():
    result = compute_split(50.0, "exact", [{"email": "A", "amount": 20.0}, {"email": "B", "amount": 30.0}])
    assert _amounts(result) == {"A": 20.0, "B": 30.0}


def test_inputs_are_not_mutated():
    participants = [Split("A", amount=5.0), Split("B", amount=5.0)]
    compute_split(40.0, "equal", participants)
    assert [p.amount for p in participants] == [5.0, 5.0]


def test_zero_participants_rejected():
    with pytest.raises(InvalidSplitConfiguration):
        compute_split(10.0, "equal", [])


def test_zero_total_shares_rejected():
    with pytest.raises(InvalidSplitConfiguration):
        compute_split(10.0, "shares", [Split("A", shares=0), Split("B", shares=0)])


def test_unknown_method_rejected():
    with pytest.raises(InvalidSplitConfiguration):
        compute_split(10.0, "weighted", ["A"])


def test_percentage_out_of_range_rejected():
    with pytest.raises(InvalidSplitConfiguration):
        compute_split(10.0, "percentage", [{"email": "A", "percentage": 120}])


def test_percentages_not_summing_to_100_fail_validation():
    # the calculator itself accepts it; validation catches it
    result = compute_split(100.0, "percentage", [{"email": "A", "percentage": 50}, {"email": "B", "percentage": 30}])
    assert _amounts(result) == {"A": 50.0, "B": 30.0}
    with pytest.raises(InvalidSplitConfiguration):
        validate_split(100.0, result)


def test_validate_split_tolerance():
    validate_split(10.0, [Split("A", amount=3.33), Split("B", amount=3.33), Split("C", amount=3.33)])
    with pytest.raises(InvalidSplitConfiguration):
        validate_split(10.0, [Split("A", amount=3.0), Split("B", amount=3.0)])


def test_validate_split_rejects_duplicates_and_negatives():
    with pytest.raises(InvalidSplitConfiguration):
        validate_split(10.0, [Split("A", amount=5.0), Split("A", amount=5.0)])
    with pytest.raises(InvalidSplitConfiguration):
        validate_split(10.0, [Split("A", amount=15.0), Split("B", amount=-5.0)])
    with pytest.raises(InvalidSplitConfiguration):
        validate_split(0.0, [])
