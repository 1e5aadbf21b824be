"""File-backed conversational sessions.

Each agent has a session store at ``<sessions>/<agent>/sessions.json``
mapping session keys (``agent:<id>:main`` by default) to the current session
id and its JSONL transcript. Transcripts hold one header record, optional
compaction records, then the messages in order.

When a transcript grows past the compaction thresholds, the older messages
are folded into a single summary record and only the most recent ones are
kept verbatim.
"""

import json
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from conductor.config import DEFAULT_AGENT_ID
from conductor.log import get_logger
from conductor.models import (
    PreparedSessionRun,
    SessionCompactionResult,
    SessionHistory,
    SessionRequest,
    SessionRunInfo,
    SessionSummary,
)
from conductor.paths import ConductorPaths
from conductor.text import clamp_text, normalize_agent_id, summarize_text

logger = get_logger(__name__)

STORE_SCHEMA_VERSION = 1
STORE_FILENAME = "sessions.json"


@dataclass
class SessionSettings:
    """Tuning for session context and compaction.

    Attributes:
        main_key: Session segment used when no reference is given
        context_max_chars: Budget for the context prompt handed to providers
        context_messages: Number of recent messages included in the context
        compaction_trigger_messages: Compact once a transcript has this many messages
        compaction_trigger_chars: ...or this many characters of message content
        keep_recent_messages: Messages kept verbatim after compaction
        summary_max_chars: Budget for a compaction summary
    """

    main_key: str = "main"
    context_max_chars: int = 12_000
    context_messages: int = 12
    compaction_trigger_messages: int = 80
    compaction_trigger_chars: int = 32_000
    keep_recent_messages: int = 20
    summary_max_chars: int = 4_000


class FileSessionStore:
    """Session port backed by JSON stores and JSONL transcripts."""

    def __init__(
        self,
        settings: SessionSettings | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.settings = settings or SessionSettings()
        self._clock = clock or time.time

    async def prepare_run_session(
        self, paths: ConductorPaths, agent_id: str, request: SessionRequest
    ) -> PreparedSessionRun:
        """Resolve or create the session for an agent turn.

        The user message is appended to the transcript. The context prompt
        covers the history that existed before this turn.

        Args:
            paths: Conductor directory layout
            agent_id: Agent the turn runs as
            request: Session reference, flags and user message

        Returns:
            Prepared session, or a disabled one when sessions are turned off
        """
        if request.disable_session:
            return PreparedSessionRun(enabled=False)

        agent_id = normalize_agent_id(agent_id) or DEFAULT_AGENT_ID
        store = self._read_store(paths, agent_id)
        sessions = store["sessions"]
        session_key = self.resolve_session_key(agent_id, sessions, request.session_ref)

        entry = sessions.get(session_key)
        is_new = request.force_new or entry is None
        if is_new:
            session_id = uuid.uuid4().hex
            transcript_path = self._sessions_dir(paths, agent_id) / f"{session_id}.jsonl"
            entry = {"session_id": session_id, "compaction_count": 0}
        else:
            session_id = entry["session_id"]
            transcript_path = Path(entry["transcript_file"])

        workspace_path = paths.workspace(agent_id)
        entry.update(
            {
                "updated_at": self._clock(),
                "transcript_file": str(transcript_path),
                "workspace_path": str(workspace_path),
            }
        )
        sessions[session_key] = entry
        self._write_store(paths, agent_id, store)

        if is_new or not transcript_path.exists():
            self._write_records(
                transcript_path,
                [
                    {
                        "type": "session",
                        "schema_version": STORE_SCHEMA_VERSION,
                        "agent_id": agent_id,
                        "session_key": session_key,
                        "session_id": session_id,
                        "created_at": self._clock(),
                    }
                ],
            )
            logger.debug(f"Created session {session_key} ({session_id})")

        info = SessionRunInfo(
            agent_id=agent_id,
            session_key=session_key,
            session_id=session_id,
            transcript_path=str(transcript_path),
            workspace_path=str(workspace_path),
            is_new_session=is_new,
        )

        compaction = self._compact(paths, info, store)
        context_prompt = self.build_context_prompt(self._read_records(transcript_path))
        self._append_message(transcript_path, "user", request.user_message)

        return PreparedSessionRun(
            enabled=True,
            info=info,
            context_prompt=context_prompt,
            compaction_applied=compaction.applied,
        )

    async def record_assistant_reply(
        self, paths: ConductorPaths, info: SessionRunInfo, content: str
    ) -> SessionCompactionResult:
        """Append the agent's reply and compact if the transcript is too long."""
        self._append_message(Path(info.transcript_path), "assistant", content)
        store = self._read_store(paths, info.agent_id)
        return self._compact(paths, info, store)

    async def list_sessions(
        self, paths: ConductorPaths, agent_id: str
    ) -> list[SessionSummary]:
        """Sessions of an agent, most recently updated first."""
        agent_id = normalize_agent_id(agent_id) or DEFAULT_AGENT_ID
        sessions = self._read_store(paths, agent_id)["sessions"]
        summaries = [
            SessionSummary(
                session_key=key,
                session_id=entry["session_id"],
                updated_at=entry.get("updated_at", 0.0),
                compaction_count=entry.get("compaction_count", 0),
                transcript_path=entry.get("transcript_file", ""),
            )
            for key, entry in sessions.items()
        ]
        return sorted(summaries, key=lambda s: s.updated_at, reverse=True)

    async def get_history(
        self,
        paths: ConductorPaths,
        agent_id: str,
        session_ref: str | None = None,
        limit: int | None = None,
        include_compaction: bool = False,
    ) -> SessionHistory:
        """Read the transcript of one session.

        Args:
            paths: Conductor directory layout
            agent_id: Agent owning the session
            session_ref: Session reference, the main session when None
            limit: Keep only the last ``limit`` records
            include_compaction: Include compaction summary records

        Returns:
            The session's records; empty when the session does not exist
        """
        agent_id = normalize_agent_id(agent_id) or DEFAULT_AGENT_ID
        sessions = self._read_store(paths, agent_id)["sessions"]
        session_key = self.resolve_session_key(agent_id, sessions, session_ref)
        entry = sessions.get(session_key)
        if entry is None:
            return SessionHistory(session_key=session_key)

        wanted = {"message", "compaction"} if include_compaction else {"message"}
        records = [
            r
            for r in self._read_records(Path(entry["transcript_file"]))
            if r.get("type") in wanted
        ]
        if limit:
            records = records[-limit:]
        return SessionHistory(
            session_key=session_key,
            session_id=entry["session_id"],
            transcript_path=entry["transcript_file"],
            messages=records,
        )

    def resolve_session_key(
        self, agent_id: str, sessions: dict[str, Any], reference: str | None
    ) -> str:
        """Map a session reference to a session key.

        A reference may be blank or ``main`` (the main session), a session
        id, an existing key, a full ``a:b:c`` key, or a short name.
        """
        main_key = f"agent:{agent_id}:{self.settings.main_key}"
        ref = (reference or "").strip().lower()
        if not ref or ref == "main":
            return main_key

        for key, entry in sessions.items():
            if entry.get("session_id") == ref:
                return key

        if ref in sessions or ":" in ref:
            return ref

        return f"agent:{agent_id}:{normalize_agent_id(ref) or self.settings.main_key}"

    def build_context_prompt(self, records: list[dict[str, Any]]) -> str:
        """Render earlier conversation as context for the next turn."""
        summaries = [r["summary"] for r in records if r.get("type") == "compaction"]
        messages = [r for r in records if r.get("type") == "message"]
        if not summaries and not messages:
            return ""

        lines = ["Conversation context from previous turns:"]
        if summaries:
            lines += ["", "Earlier summary:", summaries[-1]]
        recent = messages[-self.settings.context_messages :]
        if recent:
            lines += ["", "Recent messages:"]
            lines += [f"{m['role']}: {m['content']}" for m in recent]
        return clamp_text("\n".join(lines), self.settings.context_max_chars)

    def _compact(
        self, paths: ConductorPaths, info: SessionRunInfo, store: dict[str, Any]
    ) -> SessionCompactionResult:
        transcript_path = Path(info.transcript_path)
        not_applied = SessionCompactionResult(
            session_key=info.session_key,
            session_id=info.session_id,
            transcript_path=info.transcript_path,
            applied=False,
        )

        records = self._read_records(transcript_path)
        messages = [r for r in records if r.get("type") == "message"]
        total_chars = sum(len(m["content"]) for m in messages)
        settings = self.settings

        if (
            len(messages) < settings.compaction_trigger_messages
            and total_chars < settings.compaction_trigger_chars
        ):
            return not_applied

        keep = max(1, settings.keep_recent_messages)
        if len(messages) <= keep:
            return not_applied

        compacted = messages[:-keep]
        kept = messages[-keep:]
        summary = clamp_text(
            "\n".join(
                f"- {m['role']}: {summarize_text(m['content'])}" for m in compacted
            ),
            settings.summary_max_chars,
        )

        header = [r for r in records if r.get("type") == "session"][:1]
        previous = [r for r in records if r.get("type") == "compaction"][-3:]
        compaction_record = {
            "type": "compaction",
            "summary": summary,
            "compacted_messages": len(compacted),
            "kept_messages": len(kept),
            "timestamp": self._clock(),
        }
        self._write_records(transcript_path, header + previous + [compaction_record] + kept)

        entry = store["sessions"].get(info.session_key)
        if entry is not None:
            entry["compaction_count"] = entry.get("compaction_count", 0) + 1
            entry["updated_at"] = self._clock()
            self._write_store(paths, info.agent_id, store)

        logger.info(
            f"Compacted session {info.session_key}: {len(compacted)} messages summarized"
        )
        return SessionCompactionResult(
            session_key=info.session_key,
            session_id=info.session_id,
            transcript_path=info.transcript_path,
            applied=True,
            compacted_messages=len(compacted),
            summary=summary,
        )

    def _append_message(self, transcript_path: Path, role: str, content: str) -> None:
        content = content.strip()
        if not content:
            return
        record = {
            "type": "message",
            "role": role,
            "content": content,
            "timestamp": self._clock(),
        }
        with open(transcript_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")

    def _sessions_dir(self, paths: ConductorPaths, agent_id: str) -> Path:
        return paths.sessions_dir / agent_id

    def _read_store(self, paths: ConductorPaths, agent_id: str) -> dict[str, Any]:
        path = self._sessions_dir(paths, agent_id) / STORE_FILENAME
        if not path.exists():
            return {"schema_version": STORE_SCHEMA_VERSION, "sessions": {}}
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    def _write_store(
        self, paths: ConductorPaths, agent_id: str, store: dict[str, Any]
    ) -> None:
        directory = self._sessions_dir(paths, agent_id)
        directory.mkdir(parents=True, exist_ok=True)
        with open(directory / STORE_FILENAME, "w", encoding="utf-8") as f:
            json.dump(store, f, indent=2)

    @staticmethod
    def _read_records(transcript_path: Path) -> list[dict[str, Any]]:
        if not transcript_path.exists():
            return []
        records = []
        with open(transcript_path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    records.append(json.loads(line))
        return records

    @staticmethod
    def _write_records(transcript_path: Path, records: list[dict[str, Any]]) -> None:
        transcript_path.parent.mkdir(parents=True, exist_ok=True)
        with open(transcript_path, "w", encoding="utf-8") as f:
            for record in records:
                f.write(json.dumps(record) + "\n")
