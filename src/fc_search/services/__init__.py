"""Background services driving channel refreshes."""

from .base_scheduler_service import BaseSchedulerService
from .channel_scheduler_service import ChannelSchedulerService
from .discovery_scheduler_service import DiscoverySchedulerService
from .scheduler_protocol import RefreshSchedulerProtocol


__all__ = [
    "BaseSchedulerService",
    "ChannelSchedulerService",
    "DiscoverySchedulerService",
    "RefreshSchedulerProtocol",
]
