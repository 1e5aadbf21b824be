"""Ports consumed by the orchestration service.

The orchestration loop only talks to the outside world through these
protocols. Concrete adapters live in ``conductor.providers``,
``conductor.sessions``, ``conductor.manifests``, ``conductor.skills`` and
``conductor.filesystem``; tests substitute fakes.
"""

from pathlib import Path
from typing import Protocol

from conductor.models import (
    AgentManifest,
    AgentProviderBinding,
    ExecutionResult,
    InvokeOptions,
    PreparedSessionRun,
    SessionCompactionResult,
    SessionRequest,
    SessionRunInfo,
    SkillInstallRequest,
    SkillInstallResult,
)
from conductor.paths import ConductorPaths


class AgentExecutionPort(Protocol):
    async def invoke_agent(
        self, paths: ConductorPaths, agent_id: str, options: InvokeOptions
    ) -> ExecutionResult:
        """Run one turn of an agent. Must not raise for provider failures."""
        ...

    async def get_agent_provider(
        self, paths: ConductorPaths, agent_id: str
    ) -> AgentProviderBinding: ...


class SessionPort(Protocol):
    async def prepare_run_session(
        self, paths: ConductorPaths, agent_id: str, request: SessionRequest
    ) -> PreparedSessionRun: ...

    async def record_assistant_reply(
        self, paths: ConductorPaths, info: SessionRunInfo, content: str
    ) -> SessionCompactionResult: ...


class ManifestSource(Protocol):
    async def list_manifests(self, paths: ConductorPaths) -> list[AgentManifest]: ...


class SkillInstaller(Protocol):
    async def install_skill(
        self, paths: ConductorPaths, request: SkillInstallRequest
    ) -> SkillInstallResult: ...


class FilePort(Protocol):
    async def exists(self, path: Path) -> bool: ...

    async def read_file(self, path: Path) -> str: ...

    async def write_file(self, path: Path, content: str) -> None: ...

    async def ensure_dir(self, path: Path) -> None: ...
