"""Fleet core - directory loading, user aggregation and optimistic mutations."""

from .state import FleetState, filter_users
from .directory import ServerDirectory
from .aggregator import FleetUserAggregator
from .mutations import MutationCoordinator, SUPPRESSED_ERROR

__all__ = [
    "FleetState",
    "filter_users",
    "ServerDirectory",
    "FleetUserAggregator",
    "MutationCoordinator",
    "SUPPRESSED_ERROR",
]
