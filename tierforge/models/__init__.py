"""Core data structures for tierforge."""

from tierforge.models.config import TierforgeConfig
from tierforge.models.declarations import DeclarationSet, OutputDecl, ResourceDecl, VariableDecl
from tierforge.models.outcomes import NodeRun, NodeState, Outcome, RunReport
from tierforge.models.plan import Action, DriftConflict, Plan, PlannedChange
from tierforge.models.state import ResourceRecord

__all__ = [
    "Action",
    "DeclarationSet",
    "DriftConflict",
    "NodeRun",
    "NodeState",
    "OutputDecl",
    "Outcome",
    "Plan",
    "PlannedChange",
    "ResourceDecl",
    "ResourceRecord",
    "RunReport",
    "TierforgeConfig",
    "VariableDecl",
]
