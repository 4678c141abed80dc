"""Counter assignment scheduler for a multi-department service queue.

The package routes waiting tickets to service counters:
- priority scoring of tickets (tier, submitter attributes, time waited)
- per-counter load measurement and load-aware counter selection
- advisory rebalancing between overloaded and idle counters
- guarded (compare-and-swap) ticket/counter state transitions
- a periodic load monitor that publishes dashboard snapshots

An optional MQTT adapter exposes the scheduler to other processes.
See `python -m counter_queue.app -h`.
"""
from __future__ import annotations
