"""Orchestration services: templates, instances, tasks and queue processing."""

from process_engine.orchestrator.engine import InstanceStatusView, ProcessEngine, TaskProgress
from process_engine.orchestrator.processor import DrainResult, QueueProcessor

__all__ = [
    "ProcessEngine",
    "InstanceStatusView",
    "TaskProgress",
    "QueueProcessor",
    "DrainResult",
]
