"""Unit tests for domain distribution."""

import random
from dataclasses import dataclass

import pytest

from cryptowire.services.distribution import DistributionStrategy, select_target


@dataclass
class Domain:
    id: int
    name: str


DOMAINS = [Domain(1, "alpha"), Domain(2, "beta"), Domain(3, "gamma")]


class TestRoundRobin:
    """Tests for round-robin distribution."""

    def test_cycles_through_domains(self) -> None:
        """Should use the success count as the cursor."""
        picks = [
            select_target(DOMAINS, DistributionStrategy.ROUND_ROBIN, success_count=i).name
            for i in range(7)
        ]
        assert picks == ["alpha", "beta", "gamma", "alpha", "beta", "gamma", "alpha"]

    def test_even_spread(self) -> None:
        """Should give each domain floor or ceil of N / D articles."""
        counts = {d.id: 0 for d in DOMAINS}
        for i in range(10):
            domain = select_target(DOMAINS, DistributionStrategy.ROUND_ROBIN, success_count=i)
            counts[domain.id] += 1
        assert sorted(counts.values()) == [3, 3, 4]


class TestWeighted:
    """Tests for weighted distribution."""

    def test_follows_weights(self) -> None:
        """Should pick heavier domains proportionally more often."""
        rng = random.Random(42)
        weights = {1: 8, 2: 1, 3: 1}
        counts = {d.id: 0 for d in DOMAINS}
        for _ in range(1000):
            counts[select_target(DOMAINS, DistributionStrategy.WEIGHTED, weights, rng=rng).id] += 1
        assert counts[1] > 700
        assert counts[2] > 0
        assert counts[3] > 0

    def test_missing_weights_default_to_one(self) -> None:
        """Should reach every domain when no weights are set."""
        rng = random.Random(1)
        picks = {
            select_target(DOMAINS, DistributionStrategy.WEIGHTED, rng=rng).id for _ in range(200)
        }
        assert picks == {1, 2, 3}

    def test_zero_weights(self) -> None:
        """Should fall back to the first domain when every weight is zero."""
        weights = {1: 0, 2: 0, 3: 0}
        assert select_target(DOMAINS, DistributionStrategy.WEIGHTED, weights).id == 1


class TestEdgeCases:
    """Tests for the degenerate inputs."""

    @pytest.mark.parametrize("strategy", list(DistributionStrategy))
    def test_single_domain(self, strategy: DistributionStrategy) -> None:
        """Should always return the only domain."""
        assert select_target(DOMAINS[:1], strategy, success_count=5).id == 1

    def test_empty_domains(self) -> None:
        """Should refuse to choose from nothing."""
        with pytest.raises(ValueError):
            select_target([], DistributionStrategy.RANDOM)

    def test_random_is_member(self) -> None:
        """Should return one of the configured domains."""
        rng = random.Random(3)
        assert select_target(DOMAINS, DistributionStrategy.RANDOM, rng=rng) in DOMAINS
