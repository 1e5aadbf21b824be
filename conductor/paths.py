"""Filesystem layout for a Conductor home directory."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ConductorPaths:
    """Resolved directories used by orchestration runs.

    Attributes:
        home_dir: Root of all conductor state
        workspaces_dir: One workspace directory per agent
        skills_dir: Managed skill templates shared between agents
        sessions_dir: Per-agent session stores and transcripts
        runs_dir: One JSON trace file per run
    """

    home_dir: Path
    workspaces_dir: Path
    skills_dir: Path
    sessions_dir: Path
    runs_dir: Path

    @classmethod
    def from_home(cls, home_dir: Path) -> "ConductorPaths":
        home = Path(home_dir)
        return cls(
            home_dir=home,
            workspaces_dir=home / "workspaces",
            skills_dir=home / "skills",
            sessions_dir=home / "sessions",
            runs_dir=home / "runs",
        )

    def workspace(self, agent_id: str) -> Path:
        """Return the workspace directory for an agent."""
        return self.workspaces_dir / agent_id
