"""Planning and execution engine."""

from tierforge.engine.executor import NodeExecutor
from tierforge.engine.orchestrator import CompiledConfiguration, Orchestrator
from tierforge.engine.reconciler import DriftReconciler, diff_fields
from tierforge.engine.retry import call_with_retry
from tierforge.engine.scheduler import Scheduler

__all__ = [
    "CompiledConfiguration",
    "DriftReconciler",
    "NodeExecutor",
    "Orchestrator",
    "Scheduler",
    "call_with_retry",
    "diff_fields",
]
