"""Tests for skill installation."""

import pytest

from conductor.errors import SkillInstallError
from conductor.models import SkillInstallRequest
from conductor.paths import ConductorPaths
from conductor.skills import FileSkillInstaller, render_skill_markdown


@pytest.fixture
def paths(tmp_path) -> ConductorPaths:
    return ConductorPaths.from_home(tmp_path / "home")


class TestInstallSkill:
    """Test installing skills from each source."""

    @pytest.mark.asyncio
    async def test_generated(self, paths):
        """Without a source a template is generated from the description."""
        result = await FileSkillInstaller().install_skill(
            paths,
            SkillInstallRequest(
                skill_name="Release Notes", agent_id="Writer", description="Write notes."
            ),
        )

        skill_file = paths.workspace("writer") / "skills" / "release-notes" / "SKILL.md"
        assert result.skill_id == "release-notes"
        assert result.skill_name == "Release Notes"
        assert result.agent_id == "writer"
        assert result.source == "generated"
        assert result.installed_path == str(skill_file)
        assert result.replaced is False
        content = skill_file.read_text()
        assert content.startswith("---\nname: release-notes\ndescription: Write notes.\n---")
        assert content.endswith("\n")

    @pytest.mark.asyncio
    async def test_default_agent_and_description(self, paths):
        """The orchestrator is the default target and a description is derived."""
        result = await FileSkillInstaller().install_skill(
            paths, SkillInstallRequest(skill_name="triage")
        )

        assert result.agent_id == "orchestrator"
        skill_file = paths.workspace("orchestrator") / "skills" / "triage" / "SKILL.md"
        assert "Skill instructions for triage." in skill_file.read_text()

    @pytest.mark.asyncio
    async def test_inline_content(self, paths):
        result = await FileSkillInstaller().install_skill(
            paths, SkillInstallRequest(skill_name="notes", content="# Notes\nDo it.")
        )

        assert result.source == "inline"
        assert (
            paths.workspace("orchestrator") / "skills" / "notes" / "SKILL.md"
        ).read_text() == "# Notes\nDo it.\n"

    @pytest.mark.asyncio
    async def test_source_path(self, paths, tmp_path):
        """A source directory is copied whole, replacing an earlier install."""
        source = tmp_path / "src-skill"
        source.mkdir()
        (source / "SKILL.md").write_text("# From disk\n")
        (source / "helper.sh").write_text("echo hi\n")
        installer = FileSkillInstaller()
        await installer.install_skill(paths, SkillInstallRequest(skill_name="disk"))

        result = await installer.install_skill(
            paths,
            SkillInstallRequest(skill_name="disk", source_path=str(source / "SKILL.md")),
        )

        target = paths.workspace("orchestrator") / "skills" / "disk"
        assert result.source == "source-path"
        assert result.replaced is True
        assert (target / "SKILL.md").read_text() == "# From disk\n"
        assert (target / "helper.sh").exists()

    @pytest.mark.asyncio
    async def test_managed_template(self, paths):
        """A shared template under the skills directory is used when present."""
        managed = paths.skills_dir / "lint"
        managed.mkdir(parents=True)
        (managed / "SKILL.md").write_text("# Lint\n")

        result = await FileSkillInstaller().install_skill(
            paths, SkillInstallRequest(skill_name="Lint", agent_id="writer")
        )

        assert result.source == "managed"
        assert (
            paths.workspace("writer") / "skills" / "lint" / "SKILL.md"
        ).read_text() == "# Lint\n"

    @pytest.mark.asyncio
    async def test_invalid_name(self, paths):
        with pytest.raises(SkillInstallError, match="alphanumeric"):
            await FileSkillInstaller().install_skill(
                paths, SkillInstallRequest(skill_name="!!!")
            )

    @pytest.mark.asyncio
    async def test_missing_source(self, paths, tmp_path):
        with pytest.raises(SkillInstallError, match="SKILL.md"):
            await FileSkillInstaller().install_skill(
                paths,
                SkillInstallRequest(skill_name="x", source_path=str(tmp_path / "nope")),
            )


class TestListSkills:
    @pytest.mark.asyncio
    async def test_lists_installed(self, paths):
        installer = FileSkillInstaller()
        await installer.install_skill(paths, SkillInstallRequest(skill_name="b"))
        await installer.install_skill(paths, SkillInstallRequest(skill_name="a"))

        assert await installer.list_skills(paths, "orchestrator") == ["a", "b"]
        assert await installer.list_skills(paths, "writer") == []


def test_render_skill_markdown():
    content = render_skill_markdown("triage", "Sort incoming issues.")

    assert "# triage" in content
    assert "- Sort incoming issues." in content
