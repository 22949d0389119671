"""Orchestration module."""
from .events import EventBus, EventKind, PipelineEvent, Subscription
from .sync import SyncManager, SyncOutcome, DrainReport
from .connectivity import ConnectivityMonitor, StaticConnectivity
from .scheduler import QueueDrainScheduler
from .processor import TransactionPipeline, ProcessingResult, ProcessingOutcome, PipelineStats

__all__ = [
    "EventBus",
    "EventKind",
    "PipelineEvent",
    "Subscription",
    "SyncManager",
    "SyncOutcome",
    "DrainReport",
    "ConnectivityMonitor",
    "StaticConnectivity",
    "QueueDrainScheduler",
    "TransactionPipeline",
    "ProcessingResult",
    "ProcessingOutcome",
    "PipelineStats"
]
