import pytest

from loyalty_ledger.services.tier_service import (
    BRONZE,
    DEFAULT_BENEFITS_BY_TIER,
    DIAMANTE,
    ORO,
    PLATA,
    PLATINO,
    benefits_of,
    compute_tier,
    tier_of,
    tier_rank,
)


@pytest.mark.parametrize(
    "balance,expected",
    [
        (0, BRONZE),
        (999, BRONZE),
        (1000, PLATA),
        (4999, PLATA),
        (5000, ORO),
        (14999, ORO),
        (15000, PLATINO),
        (49999, PLATINO),
        (50000, DIAMANTE),
        (10_000_000, DIAMANTE),
    ],
)
def test_tier_of_thresholds(balance, expected):
    assert tier_of(balance) == expected


def test_tier_monotonic_over_balances():
    balances = list(range(0, 60000, 250)) + [999, 1000, 4999, 5000, 14999, 15000, 49999, 50000]
    balances.sort()
    ranks = [tier_rank(tier_of(b)) for b in balances]
    assert ranks == sorted(ranks)


def test_compute_tier_reports_distance_to_next():
    info = compute_tier(1200)
    assert info.current == PLATA
    assert info.next_tier == ORO
    assert info.points_to_next == 3800
    assert info.progress_pct == 24.0


def test_compute_tier_at_top_has_no_next():
    info = compute_tier(75000)
    assert info.current == DIAMANTE
    assert info.next_tier is None
    assert info.points_to_next is None


class _Program:
    def __init__(self, benefits_by_tier):
        self.benefits_by_tier = benefits_by_tier


def test_benefits_of_configured_tier():
    program = _Program({BRONZE: {"discount": 1}, ORO: {"discount": 10}})
    assert benefits_of(ORO, program) == {"discount": 10}


def test_benefits_of_unconfigured_tier_defaults_to_bronze():
    program = _Program({BRONZE: {"discount": 1}})
    assert benefits_of(PLATINO, program) == {"discount": 1}


def test_benefits_of_without_configuration_uses_catalogue():
    assert benefits_of(DIAMANTE, _Program({})) == DEFAULT_BENEFITS_BY_TIER[DIAMANTE]
