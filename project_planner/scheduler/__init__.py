"""Resource assignment scheduler."""

from project_planner.scheduler.assigner import ResourceScheduler, priority_order, utilization
from project_planner.scheduler.config import SchedulerConfig
from project_planner.scheduler.profiles import WorkerProfile, build_profile, effective_availability
from project_planner.scheduler.rebalance import RebalanceReport, rebalance_workload
from project_planner.scheduler.workload import WorkloadEntry, workload_stats

__all__ = [
    "ResourceScheduler",
    "SchedulerConfig",
    "WorkerProfile",
    "WorkloadEntry",
    "RebalanceReport",
    "build_profile",
    "effective_availability",
    "priority_order",
    "rebalance_workload",
    "utilization",
    "workload_stats",
]
