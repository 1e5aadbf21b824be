"""Per-run loop state for the orchestration loop.

A fresh LoopState is built for every run and discarded once the trace is
written. Nothing in it is shared between runs.
"""

from dataclasses import dataclass, field

from conductor.actions import SessionGraph, StepLog, TaskThreadState
from conductor.text import clamp_text


@dataclass
class LoopState:
    """Mutable state owned by a single orchestration run.

    Attributes:
        shared_notes_max_chars: Character budget for the notes shown to the planner
        recent_events_window: Number of recent events kept (oldest evicted first)
        notes: Running notes in the order they were added
        events: Sliding window of one-line events
        task_threads: Task threads keyed by task key
        session_graph: Sessions that took part in the run
        steps: Step log, one entry per loop iteration
        delegation_count: Delegations dispatched so far
    """

    shared_notes_max_chars: int = 12_000
    recent_events_window: int = 10
    notes: list[str] = field(default_factory=list)
    events: list[str] = field(default_factory=list)
    task_threads: dict[str, TaskThreadState] = field(default_factory=dict)
    session_graph: SessionGraph = field(default_factory=SessionGraph)
    steps: list[StepLog] = field(default_factory=list)
    delegation_count: int = 0

    def add_note(self, note: str) -> None:
        self.notes.append(note)

    def add_event(self, event: str) -> None:
        """Append an event, evicting the oldest ones beyond the window."""
        self.events.append(event)
        overflow = len(self.events) - self.recent_events_window
        if overflow > 0:
            del self.events[:overflow]

    def shared_notes(self, max_chars: int | None = None) -> str:
        """Notes joined and clamped to the character budget."""
        budget = self.shared_notes_max_chars if max_chars is None else max_chars
        return clamp_text("\n\n".join(self.notes), budget)

    def find_thread(self, task_key: str, agent_id: str) -> TaskThreadState | None:
        """Return the thread for a task key only if it belongs to the agent."""
        thread = self.task_threads.get(task_key)
        if thread is None or thread.agent_id != agent_id:
            return None
        return thread

    def upsert_thread(
        self,
        task_key: str,
        agent_id: str,
        step: int,
        provider_id: str | None = None,
        provider_session_id: str | None = None,
        session_key: str | None = None,
        session_id: str | None = None,
        last_response: str | None = None,
        fresh_provider_session: bool = False,
    ) -> TaskThreadState:
        """Create or update the thread for a task key.

        An existing thread keeps its ``created_step``; everything else is
        refreshed. Handles that come back empty keep their previous value,
        except the provider session handle after a fresh provider session,
        which is stored as given.

        Returns:
            The stored thread
        """
        existing = self.task_threads.get(task_key)
        if existing is None or existing.agent_id != agent_id:
            thread = TaskThreadState(
                task_key=task_key,
                agent_id=agent_id,
                created_step=step,
                updated_step=step,
                provider_id=provider_id,
                provider_session_id=provider_session_id,
                session_key=session_key,
                session_id=session_id,
                last_response=last_response,
            )
        else:
            thread = TaskThreadState(
                task_key=task_key,
                agent_id=agent_id,
                created_step=existing.created_step,
                updated_step=step,
                provider_id=provider_id or existing.provider_id,
                provider_session_id=(
                    provider_session_id
                    if fresh_provider_session
                    else provider_session_id or existing.provider_session_id
                ),
                session_key=session_key or existing.session_key,
                session_id=session_id or existing.session_id,
                last_response=last_response,
            )
        self.task_threads[task_key] = thread
        return thread

    def thread_list(self) -> list[TaskThreadState]:
        return list(self.task_threads.values())
