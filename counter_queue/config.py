from __future__ import annotations

# Scheduler tunables.
#
# The load formula, the selection/rebalancing thresholds and the wait estimate
# are fixed heuristics. They live here so deployments can adjust them without
# touching the algorithms. Defaults reproduce the production behaviour:
#
#   open counter:  load = min(queue_len * 10, 80)
#   busy counter:  load = min(80 + waiting * 5, 99)
#   not usable:    load = 100
#   wait estimate: max(0, (queue_len - 1) * 3) minutes

from dataclasses import dataclass


@dataclass(frozen=True)
class SchedulerConfig:
    open_load_per_head: int = 10
    open_load_cap: int = 80
    busy_load_base: int = 80
    busy_load_per_waiting: int = 5
    busy_load_cap: int = 99
    unusable_load: int = 100

    # Normal-priority tickets prefer counters below this load.
    selection_load_threshold: int = 50
    # RebalancingAdvisor default "overloaded" threshold.
    overload_threshold: int = 70
    # Counters below this load count as underutilized.
    underutilized_threshold: int = 30

    minutes_per_head: int = 3

    monitor_interval: float = 10.0
    store_timeout: float = 5.0
    rebalance_batch: int = 20
    # Seconds a counter may hold a ticket that is not serving there before
    # housekeeping releases it.
    orphan_grace: float = 30.0

    def __post_init__(self) -> None:
        if not 0 <= self.open_load_cap <= self.unusable_load:
            raise ValueError("open_load_cap must be within [0, unusable_load]")
        if not 0 <= self.busy_load_cap <= self.unusable_load:
            raise ValueError("busy_load_cap must be within [0, unusable_load]")
        if self.unusable_load != 100:
            raise ValueError("unusable_load must be 100")
        if self.open_load_per_head < 0 or self.busy_load_per_waiting < 0:
            raise ValueError("per-head load increments must be >= 0")
        if self.minutes_per_head < 0:
            raise ValueError("minutes_per_head must be >= 0")
        if self.monitor_interval <= 0:
            raise ValueError("monitor_interval must be > 0")
        if self.store_timeout <= 0:
            raise ValueError("store_timeout must be > 0")
        if self.rebalance_batch <= 0:
            raise ValueError("rebalance_batch must be > 0")
        if self.orphan_grace < 0:
            raise ValueError("orphan_grace must be >= 0")


DEFAULT_CONFIG = SchedulerConfig()
