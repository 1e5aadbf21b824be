"""File-backed agent manifests.

Each agent owns a workspace directory holding an ``AGENTS.md`` file. The
file starts with YAML front matter describing the agent, followed by free
markdown instructions:

    ---
    id: writer
    name: Writer
    description: Drafts documents.
    provider: command
    tags: [writing, docs]
    priority: 60
    delegation:
      canReceive: true
      canDelegate: false
    ---

    # Writer
    ...
"""

import re
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from conductor.config import DEFAULT_AGENT_ID
from conductor.errors import ManifestError
from conductor.log import get_logger
from conductor.models import AgentDelegation, AgentManifest, AgentMetadata
from conductor.paths import ConductorPaths
from conductor.text import normalize_agent_id

logger = get_logger(__name__)

MANIFEST_FILENAME = "AGENTS.md"
DEFAULT_PROVIDER_ID = "command"

_FRONT_MATTER = re.compile(r"\A---\n(.*?)\n---\n?(.*)\Z", re.DOTALL)


class DelegationFrontMatter(BaseModel):
    """Delegation flags as written in front matter."""

    model_config = ConfigDict(populate_by_name=True)

    can_receive: bool = Field(default=True, alias="canReceive")
    can_delegate: bool = Field(default=False, alias="canDelegate")


class ManifestFrontMatter(BaseModel):
    """Validated AGENTS.md front matter."""

    id: str | None = None
    name: str | None = None
    description: str = ""
    provider: str = DEFAULT_PROVIDER_ID
    tags: list[str] = Field(default_factory=list)
    priority: int = 50
    delegation: DelegationFrontMatter | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, value):
        """Accept a YAML list or a comma separated string."""
        if value is None:
            return []
        if isinstance(value, str):
            return [tag.strip() for tag in value.split(",") if tag.strip()]
        return value

    @field_validator("description", "provider", mode="before")
    @classmethod
    def blank_if_none(cls, value):
        return "" if value is None else value


def parse_manifest(text: str, agent_id: str, path: Path | None = None) -> AgentManifest:
    """Parse AGENTS.md content into a manifest.

    Files without front matter are accepted; their metadata is derived from
    the directory name.

    Args:
        text: File content
        agent_id: Agent id derived from the workspace directory name
        path: Location of the file, recorded on the manifest

    Returns:
        Parsed manifest

    Raises:
        ManifestError: If the front matter is not valid YAML or fails validation
    """
    normalized = text.replace("\r\n", "\n")
    match = _FRONT_MATTER.match(normalized)
    raw: dict = {}
    body = normalized
    if match:
        try:
            raw = yaml.safe_load(match.group(1)) or {}
        except yaml.YAMLError as e:
            raise ManifestError(f"Invalid YAML front matter in {path or agent_id}: {e}") from e
        if not isinstance(raw, dict):
            raise ManifestError(f"Front matter in {path or agent_id} must be a mapping")
        body = match.group(2).lstrip("\n")

    try:
        front = ManifestFrontMatter.model_validate(raw)
    except ValidationError as e:
        raise ManifestError(f"Invalid agent manifest {path or agent_id}: {e}") from e

    resolved_id = normalize_agent_id(front.id or agent_id) or normalize_agent_id(agent_id)
    name = (front.name or "").strip() or resolved_id
    is_default = resolved_id == DEFAULT_AGENT_ID
    description = front.description.strip() or (
        "Primary orchestration agent." if is_default else f"Agent {name}."
    )

    if front.delegation is None:
        delegation = AgentDelegation(can_receive=not is_default, can_delegate=is_default)
    else:
        delegation = AgentDelegation(
            can_receive=front.delegation.can_receive,
            can_delegate=front.delegation.can_delegate,
        )

    tags: list[str] = []
    for tag in front.tags:
        tag = str(tag).strip().lower()
        if tag and tag not in tags:
            tags.append(tag)

    return AgentManifest(
        agent_id=resolved_id,
        metadata=AgentMetadata(
            id=resolved_id,
            name=name,
            description=description,
            provider=front.provider.strip() or DEFAULT_PROVIDER_ID,
            tags=tags,
            priority=front.priority,
            delegation=delegation,
        ),
        body=body,
        path=path,
    )


def format_manifest(metadata: AgentMetadata, body: str) -> str:
    """Render a manifest back to AGENTS.md content."""
    front = {
        "id": metadata.id,
        "name": metadata.name,
        "description": metadata.description,
        "provider": metadata.provider,
        "tags": list(metadata.tags),
        "priority": metadata.priority,
        "delegation": {
            "canReceive": metadata.delegation.can_receive,
            "canDelegate": metadata.delegation.can_delegate,
        },
    }
    front_text = yaml.safe_dump(front, default_flow_style=False, sort_keys=False)
    return f"---\n{front_text}---\n\n{body.strip()}\n"


class FileManifestSource:
    """Manifest source reading ``<workspaces>/<agent>/AGENTS.md`` files."""

    async def list_manifests(self, paths: ConductorPaths) -> list[AgentManifest]:
        """Load every agent manifest, sorted by agent id.

        Workspace directories without an AGENTS.md file are skipped.
        """
        if not paths.workspaces_dir.exists():
            return []

        manifests = []
        for workspace in sorted(paths.workspaces_dir.iterdir()):
            manifest_path = workspace / MANIFEST_FILENAME
            if not workspace.is_dir() or not manifest_path.exists():
                continue
            manifests.append(
                parse_manifest(
                    manifest_path.read_text(encoding="utf-8"),
                    agent_id=workspace.name,
                    path=manifest_path,
                )
            )

        manifests.sort(key=lambda m: m.agent_id)
        return manifests

    async def get_manifest(
        self, paths: ConductorPaths, agent_id: str
    ) -> AgentManifest | None:
        manifest_path = paths.workspace(agent_id) / MANIFEST_FILENAME
        if not manifest_path.exists():
            return None
        return parse_manifest(
            manifest_path.read_text(encoding="utf-8"), agent_id=agent_id, path=manifest_path
        )

    async def create_agent(
        self,
        paths: ConductorPaths,
        name: str,
        description: str = "",
        provider: str = DEFAULT_PROVIDER_ID,
        tags: list[str] | None = None,
        priority: int = 50,
        can_receive: bool = True,
        can_delegate: bool = False,
        body: str | None = None,
    ) -> AgentManifest:
        """Create a new agent workspace with its manifest.

        Args:
            paths: Conductor directory layout
            name: Display name; the agent id is derived from it
            description: What the agent is good at (used for routing)
            provider: Provider id backing the agent
            tags: Routing tags
            priority: Routing priority boost
            can_receive: Whether the orchestrator may delegate to it
            can_delegate: Whether it may delegate itself
            body: Markdown instructions; a heading is generated if omitted

        Returns:
            The created manifest

        Raises:
            ManifestError: If the name is empty or the agent already exists
        """
        agent_id = normalize_agent_id(name)
        if not agent_id:
            raise ManifestError(f"Invalid agent name: {name!r}")

        workspace = paths.workspace(agent_id)
        manifest_path = workspace / MANIFEST_FILENAME
        if manifest_path.exists():
            raise ManifestError(f"Agent '{agent_id}' already exists")

        display_name = name.strip()
        metadata = AgentMetadata(
            id=agent_id,
            name=display_name,
            description=description.strip() or f"Agent {display_name}.",
            provider=provider,
            tags=list(tags or []),
            priority=priority,
            delegation=AgentDelegation(
                can_receive=can_receive, can_delegate=can_delegate
            ),
        )
        content = format_manifest(metadata, body or f"# {display_name}\n\n{metadata.description}")

        workspace.mkdir(parents=True, exist_ok=True)
        manifest_path.write_text(content, encoding="utf-8")
        logger.info(f"Created agent '{agent_id}' at {workspace}")

        return parse_manifest(content, agent_id=agent_id, path=manifest_path)

    async def ensure_default_agent(
        self, paths: ConductorPaths, provider: str = DEFAULT_PROVIDER_ID
    ) -> AgentManifest:
        """Create the orchestrator agent if it does not exist yet."""
        existing = await self.get_manifest(paths, DEFAULT_AGENT_ID)
        if existing is not None:
            return existing

        return await self.create_agent(
            paths,
            name=DEFAULT_AGENT_ID,
            description="Primary orchestration agent.",
            provider=provider,
            priority=100,
            can_receive=False,
            can_delegate=True,
            body=(
                "# Orchestrator\n\n"
                "Plans the work for a user request and delegates sub-tasks to "
                "specialized agents. Replies with a single JSON decision per step."
            ),
        )
