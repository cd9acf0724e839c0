"""
Status definitions and state machines for instances, tasks, and queue items.

The in-memory repository checks status writes against these tables.
"""

from enum import Enum
from typing import ClassVar, Generic, TypeVar


class InstanceStatus(str, Enum):
    """
    Possible states for a workflow instance.

    Only the queue processor changes an instance's status:
    - RUNNING -> RUNNING (advanced to a non-END node)
    - RUNNING -> COMPLETED (reached END or a node without transitions)
    - RUNNING -> FAILED / ERROR (operator intervention)
    """

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    ERROR = "ERROR"


class TaskStatus(str, Enum):
    """
    Possible states for an instance task.

    State transitions:
    - PENDING -> COMPLETED (assignee submitted valid output)
    - PENDING -> IN_PROGRESS -> COMPLETED (service/agent endpoint call)
    - PENDING | IN_PROGRESS -> FAILED
    """

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class QueueItemStatus(str, Enum):
    """
    Possible states for an execution queue item.

    State transitions:
    - PENDING -> PROCESSING -> COMPLETED
    - PENDING -> PROCESSING -> FAILED
    - PROCESSING -> PENDING (released because another drain holds the instance)
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class InvalidStateTransitionError(Exception):
    """A status write the transition table does not allow."""

    def __init__(self, from_state: Enum, to_state: Enum, allowed: set):
        self.from_state = from_state
        self.to_state = to_state
        names = ", ".join(sorted(s.value for s in allowed)) or "none (terminal)"
        super().__init__(
            f"Invalid state transition from {from_state.value} to {to_state.value}; allowed: {names}"
        )


S = TypeVar("S", bound=Enum)


class StatusMachine(Generic[S]):
    """
    Table-driven status holder.

    Subclasses declare VALID_TRANSITIONS and TERMINAL_STATES.
    """

    VALID_TRANSITIONS: ClassVar[dict] = {}
    TERMINAL_STATES: ClassVar[set] = set()

    def __init__(self, state: S):
        self.state = state

    @property
    def is_terminal(self) -> bool:
        return self.state in self.TERMINAL_STATES

    def allowed(self) -> set[S]:
        return set(self.VALID_TRANSITIONS.get(self.state, set()))

    def can_transition_to(self, to_state: S) -> bool:
        return to_state in self.allowed()

    def transition(self, to_state: S) -> S:
        """
        Move to ``to_state``.

        Returns:
            The previous state

        Raises:
            InvalidStateTransitionError: If the table does not allow the move
        """
        if not self.can_transition_to(to_state):
            raise InvalidStateTransitionError(self.state, to_state, self.allowed())

        previous, self.state = self.state, to_state
        return previous


class TaskStateMachine(StatusMachine[TaskStatus]):
    """State machine for instance task status."""

    VALID_TRANSITIONS: ClassVar[dict] = {
        TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.FAILED},
        TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.FAILED},
        TaskStatus.COMPLETED: set(),  # Terminal state
        TaskStatus.FAILED: set(),     # Terminal state
    }

    TERMINAL_STATES: ClassVar[set] = {TaskStatus.COMPLETED, TaskStatus.FAILED}

    def __init__(self, initial_state: TaskStatus = TaskStatus.PENDING):
        super().__init__(TaskStatus(initial_state))


class QueueItemStateMachine(StatusMachine[QueueItemStatus]):
    """State machine for execution queue item status."""

    VALID_TRANSITIONS: ClassVar[dict] = {
        QueueItemStatus.PENDING: {QueueItemStatus.PROCESSING},
        QueueItemStatus.PROCESSING: {
            QueueItemStatus.COMPLETED,
            QueueItemStatus.FAILED,
            QueueItemStatus.PENDING,
        },
        QueueItemStatus.COMPLETED: set(),  # Terminal state
        QueueItemStatus.FAILED: set(),     # Terminal state
    }

    TERMINAL_STATES: ClassVar[set] = {QueueItemStatus.COMPLETED, QueueItemStatus.FAILED}

    def __init__(self, initial_state: QueueItemStatus = QueueItemStatus.PENDING):
        super().__init__(QueueItemStatus(initial_state))
