"""Host-facing filing service.

Wires the rule store, evaluator and auto-rule creator together and answers
queries and commands from the mail client host.
"""

from mailfiler.engine.filing import (
    ActionState,
    FilingService,
    MessageMover,
    is_in_folder,
)

__all__ = [
    "ActionState",
    "FilingService",
    "MessageMover",
    "is_in_folder",
]
