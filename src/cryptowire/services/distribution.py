"""Choice of publishing domain for accepted articles."""

import random
from enum import Enum
from typing import Protocol, TypeVar


class DistributionStrategy(str, Enum):
    ROUND_ROBIN = "round_robin"
    WEIGHTED = "weighted"
    RANDOM = "random"


class HasId(Protocol):
    id: int


D = TypeVar("D", bound=HasId)


def select_target(
    domains: list[D],
    strategy: DistributionStrategy,
    weights: dict[int, int] | None = None,
    success_count: int = 0,
    rng: random.Random | None = None,
) -> D:
    """Pick the domain that receives the next article.

    Args:
        domains: Active target domains, in configured order.
        strategy: Distribution strategy from the parser configuration.
        weights: Per-domain weights keyed by domain id; missing entries count as 1.
        success_count: Articles accepted so far, across runs. Round robin uses
            it as its cursor so no other state is needed.
        rng: Random source for the weighted and random strategies.

    Raises:
        ValueError: If domains is empty.
    """
    if not domains:
        raise ValueError("no target domains configured")
    if len(domains) == 1:
        return domains[0]

    rng = rng or random.Random()

    if strategy is DistributionStrategy.ROUND_ROBIN:
        return domains[success_count % len(domains)]

    if strategy is DistributionStrategy.WEIGHTED:
        weights = weights or {}
        domain_weights = [max(weights.get(d.id, 1), 0) for d in domains]
        total = sum(domain_weights)
        if total == 0:
            return domains[0]
        point = rng.uniform(0, total)
        cumulative = 0
        for domain, weight in zip(domains, domain_weights):
            cumulative += weight
            if point < cumulative:
                return domain
        return domains[-1]

    return rng.choice(domains)
