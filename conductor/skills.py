"""Skill installation into agent workspaces.

A skill is a directory holding a ``SKILL.md`` file. Installed skills live at
``<workspaces>/<agent>/skills/<skill_id>/``. The content comes from one of:

- ``source-path``: a skill directory (or its SKILL.md) on disk, copied whole
- ``managed``: a shared template at ``<skills>/<skill_id>/``
- ``inline``: markdown supplied with the request
- ``generated``: a minimal template rendered from the name and description
"""

from pathlib import Path

from conductor.config import DEFAULT_AGENT_ID
from conductor.errors import SkillInstallError
from conductor.filesystem import LocalFileSystem
from conductor.log import get_logger
from conductor.models import SkillInstallRequest, SkillInstallResult
from conductor.paths import ConductorPaths
from conductor.text import ensure_trailing_newline, normalize_agent_id

logger = get_logger(__name__)

SKILL_FILENAME = "SKILL.md"


def render_skill_markdown(skill_id: str, description: str) -> str:
    return "\n".join(
        [
            "---",
            f"name: {skill_id}",
            f"description: {description}",
            "---",
            "",
            f"# {skill_id}",
            "",
            "## When to Use",
            f"- {description}",
            "",
            "## Steps",
            "1. Read the request and confirm the expected outcome.",
            "2. Do the work using the tools available in your workspace.",
            "3. Report what changed and anything left to do.",
        ]
    )


class FileSkillInstaller:
    """Skill installer writing into agent workspaces."""

    def __init__(self, file_system: LocalFileSystem | None = None):
        self._fs = file_system or LocalFileSystem()

    async def install_skill(
        self, paths: ConductorPaths, request: SkillInstallRequest
    ) -> SkillInstallResult:
        """Install a skill for an agent, replacing any previous copy.

        Args:
            paths: Conductor directory layout
            request: Skill name, target agent and optional source or content

        Returns:
            Where the skill was installed and where it came from

        Raises:
            SkillInstallError: If the name is unusable or the source is missing
        """
        skill_name = request.skill_name.strip()
        skill_id = normalize_agent_id(skill_name)
        if not skill_id:
            raise SkillInstallError(
                "Skill name must contain at least one alphanumeric character."
            )

        agent_id = normalize_agent_id(request.agent_id or "") or DEFAULT_AGENT_ID
        skills_root = paths.workspace(agent_id) / "skills"
        target_dir = skills_root / skill_id
        target_file = target_dir / SKILL_FILENAME
        replaced = await self._fs.exists(target_dir)

        managed_dir = paths.skills_dir / skill_id

        if request.source_path and request.source_path.strip():
            source_dir = self._resolve_source_dir(Path(request.source_path.strip()))
            await self._fs.ensure_dir(skills_root)
            await self._fs.remove_dir(target_dir)
            await self._fs.copy_dir(source_dir, target_dir)
            source = "source-path"
        elif request.content and request.content.strip():
            await self._fs.ensure_dir(target_dir)
            await self._fs.write_file(
                target_file, ensure_trailing_newline(request.content.strip())
            )
            source = "inline"
        elif await self._fs.exists(managed_dir / SKILL_FILENAME):
            await self._fs.ensure_dir(skills_root)
            await self._fs.remove_dir(target_dir)
            await self._fs.copy_dir(managed_dir, target_dir)
            source = "managed"
        else:
            description = (
                request.description or ""
            ).strip() or f"Skill instructions for {skill_name}."
            await self._fs.ensure_dir(target_dir)
            await self._fs.write_file(
                target_file,
                ensure_trailing_newline(render_skill_markdown(skill_id, description)),
            )
            source = "generated"

        logger.info(f"Installed skill '{skill_id}' for {agent_id} ({source})")
        return SkillInstallResult(
            skill_id=skill_id,
            skill_name=skill_name,
            agent_id=agent_id,
            source=source,
            installed_path=str(target_file),
            replaced=replaced,
        )

    async def list_skills(self, paths: ConductorPaths, agent_id: str) -> list[str]:
        """Return ids of skills installed for an agent."""
        skills_root = paths.workspace(normalize_agent_id(agent_id)) / "skills"
        if not skills_root.exists():
            return []
        return sorted(
            entry.name
            for entry in skills_root.iterdir()
            if (entry / SKILL_FILENAME).exists()
        )

    @staticmethod
    def _resolve_source_dir(source: Path) -> Path:
        source = source.expanduser()
        if source.is_file() and source.name == SKILL_FILENAME:
            return source.parent
        if source.is_dir() and (source / SKILL_FILENAME).exists():
            return source
        raise SkillInstallError(
            f"Skill source must be a directory containing {SKILL_FILENAME}: {source}"
        )
