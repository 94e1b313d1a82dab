"""
Compensating actions for partially completed provisioning runs.

Each irreversible step pushes an undo action once it succeeds. If a later
fatal step raises inside the ``with`` block, the actions run newest first
and the original exception keeps propagating.
"""

import logging
from typing import Callable, List, Tuple


class Rollback:
    """Ordered stack of undo actions."""

    def __init__(self, reporter=None):
        self.reporter = reporter
        self._actions: List[Tuple[str, Callable[[], None]]] = []
        self.logger = logging.getLogger(__name__)

    def __enter__(self) -> "Rollback":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is not None:
            self.unwind()
        else:
            self._actions.clear()
        return False

    def __len__(self) -> int:
        return len(self._actions)

    def push(self, description: str, action: Callable[[], None]):
        self._actions.append((description, action))

    def unwind(self) -> List[str]:
        """
        Run every pending action in reverse order.

        A failing action is reported and skipped so the remaining ones
        still run.

        Returns:
            Descriptions of the actions that failed
        """
        failed = []
        while self._actions:
            description, action = self._actions.pop()
            self._note("warning", f"Rolling back: {description}")
            try:
                action()
            except Exception as e:
                self.logger.error(f"Rollback step '{description}' failed: {e}")
                self._note("warning", f"Rollback step '{description}' failed, clean up manually: {e}")
                failed.append(description)
        return failed

    def _note(self, level: str, message: str):
        if self.reporter is not None:
            getattr(self.reporter, level)(message)
        else:
            self.logger.warning(message)
