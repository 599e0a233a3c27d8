"""Turn decision: provider-backed with a deterministic fallback."""

from everycall.decision.engine import Decision, DecisionEngine
from everycall.decision.fallback import fallback_decision

__all__ = ["Decision", "DecisionEngine", "fallback_decision"]
