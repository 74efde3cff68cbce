"""Dev Agent: goal-driven Git/GitHub workflow with an English-only content gate."""

__version__ = "2.0.0"
