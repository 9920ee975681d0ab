from __future__ import annotations

"""Shared mutable run state.

``AgentState`` is the State Store: the task list and the virtual file table of
one run. It is a plain object passed by reference, so every tool, backend and
nested subagent observes the same data.

A subagent receives ``AgentState(todos=[], files=parent.files)``: the file map
is the *same* dict object, the todo list is fresh. ``merge_files`` applies the
last-writer-wins rule at the subagent boundary.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from .schemas.domain import FileRecord, StateSnapshot, TodoItem


@dataclass
class AgentState:
    todos: List[TodoItem] = field(default_factory=list)
    files: Dict[str, FileRecord] = field(default_factory=dict)

    def snapshot(self) -> StateSnapshot:
        """Return a deep, serializable copy of the current state."""
        return StateSnapshot(
            todos=[t.model_copy() for t in self.todos],
            files={path: rec.model_copy(deep=True) for path, rec in self.files.items()},
        )

    @classmethod
    def from_snapshot(cls, snapshot: StateSnapshot) -> "AgentState":
        return cls(
            todos=[t.model_copy() for t in snapshot.todos],
            files={path: rec.model_copy(deep=True) for path, rec in snapshot.files.items()},
        )

    def for_subagent(self) -> "AgentState":
        return AgentState(todos=[], files=self.files)

    def merge_files(self, other: "AgentState") -> None:
        if other.files is self.files:
            return
        self.files.update(other.files)
