from metrics.status import (
    CRITICAL,
    HEALTHY,
    WARNING,
    classify_status,
    round_half_up,
    round_int,
    status_from_score,
)


def test_classify_status_boundaries():
    assert classify_status(0) == HEALTHY
    assert classify_status(9.99) == HEALTHY
    assert classify_status(10) == WARNING
    assert classify_status(24.99) == WARNING
    assert classify_status(25) == CRITICAL
    assert classify_status(100) == CRITICAL


def test_status_from_score_inverts_score():
    # score 91 -> 9% violation, score 90 -> 10%
    assert status_from_score(91) == HEALTHY
    assert status_from_score(90) == WARNING
    assert status_from_score(75) == CRITICAL


def test_round_half_up_rounds_halves_away_from_even():
    assert round_int(56.5) == 57
    assert round_int(56.3) == 56
    assert round_int(2.5) == 3  # built-in round() gives 2
    assert round_half_up(0.25, 1) == 0.3
    assert round_half_up(33.3333, 1) == 33.3
