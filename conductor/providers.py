"""Agent execution through pluggable providers.

ProviderService implements the agent execution port. It looks up which
provider backs an agent (the ``provider`` field of its manifest) and runs one
turn through it. Providers report failures as non-zero exit codes; they only
raise for misconfiguration.

Built-in providers:
- CommandProvider: runs a CLI agent (``claude -p`` by default) as a subprocess
- OpenAICompatibleProvider: calls a chat-completions HTTP endpoint with httpx
"""

import json
import os
import re
import subprocess
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Protocol

import httpx

from conductor.config import DEFAULT_AGENT_ID, ConductorConfig
from conductor.errors import ProviderNotFoundError
from conductor.log import get_logger
from conductor.manifests import DEFAULT_PROVIDER_ID, FileManifestSource
from conductor.models import AgentProviderBinding, ExecutionResult, InvokeOptions
from conductor.paths import ConductorPaths
from conductor.text import normalize_agent_id

logger = get_logger(__name__)

COMMAND_NOT_FOUND_CODE = 127
TIMEOUT_CODE = 124

_SESSION_ID_PATTERNS = [
    re.compile(r'"session_?id"\s*:\s*"([^"\s]+)"', re.IGNORECASE),
    re.compile(r'"chatId"\s*:\s*"([^"\s]+)"', re.IGNORECASE),
    re.compile(r"\bsession(?:\s+id)?\s*[:=]\s*([a-z0-9][a-z0-9._-]{5,})\b", re.IGNORECASE),
    re.compile(r"\bchat(?:\s+id)?\s*[:=]\s*([a-z0-9][a-z0-9._-]{5,})\b", re.IGNORECASE),
]
_UUID_PATTERN = re.compile(
    r"\b[0-9a-f]{8}-[0-9a-f]{4}-[1-8][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}\b",
    re.IGNORECASE,
)


def extract_provider_session_id(raw: str) -> str | None:
    """Find a provider session id in free-form provider output.

    Tries explicit ``session id`` style markers first, then any UUID.
    """
    text = raw.strip()
    if not text:
        return None
    for pattern in _SESSION_ID_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    match = _UUID_PATTERN.search(text)
    return match.group(0) if match else None


def compose_prompt(options: InvokeOptions) -> str:
    """Prefix the message with session context when there is any."""
    context = (options.session_context or "").strip()
    if not context:
        return options.message
    return f"{context}\n\n{options.message}"


class Provider(Protocol):
    id: str

    async def invoke(
        self, agent_id: str, options: InvokeOptions, workspace: Path
    ) -> ExecutionResult: ...


@dataclass
class CommandProvider:
    """Runs an agent turn through a command-line agent.

    The prompt is passed as the last positional argument. When the CLI
    prints JSON with ``result`` and ``session_id`` fields (``claude -p
    --output-format json``), those become stdout and the provider session id.

    Attributes:
        id: Provider id referenced by agent manifests
        command: Executable and leading arguments
        json_output: Request and parse JSON output
        resume_flag: Flag used to continue a provider session
        timeout: Maximum execution time in seconds
    """

    id: str = "command"
    command: list[str] = field(default_factory=lambda: ["claude", "-p"])
    json_output: bool = True
    resume_flag: str = "--resume"
    timeout: int = 600

    def build_command(self, options: InvokeOptions) -> list[str]:
        cmd = [*self.command, compose_prompt(options)]
        if self.json_output:
            cmd += ["--output-format", "json"]
        if options.model:
            cmd += ["--model", options.model]
        if options.provider_session_id and not options.force_new_provider_session:
            cmd += [self.resume_flag, options.provider_session_id]
        return cmd

    async def invoke(
        self, agent_id: str, options: InvokeOptions, workspace: Path
    ) -> ExecutionResult:
        cmd = self.build_command(options)
        env = {**os.environ, **(options.env or {})}
        cwd = options.cwd or str(workspace)

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                cwd=cwd,
                env=env,
            )
        except FileNotFoundError:
            return ExecutionResult(
                agent_id=agent_id,
                provider_id=self.id,
                code=COMMAND_NOT_FOUND_CODE,
                stdout="",
                stderr=f"Command not found: {cmd[0]}",
            )
        except subprocess.TimeoutExpired:
            return ExecutionResult(
                agent_id=agent_id,
                provider_id=self.id,
                code=TIMEOUT_CODE,
                stdout="",
                stderr=f"Command timed out after {self.timeout}s",
            )

        code = result.returncode
        stdout = result.stdout
        session_id = None
        if self.json_output:
            try:
                output = json.loads(result.stdout)
            except json.JSONDecodeError:
                output = None
            if isinstance(output, dict):
                stdout = str(output.get("result", ""))
                session_id = output.get("session_id") or None
                if output.get("is_error") and code == 0:
                    code = 1

        if options.on_stdout and stdout:
            options.on_stdout(stdout)
        if options.on_stderr and result.stderr:
            options.on_stderr(result.stderr)

        return ExecutionResult(
            agent_id=agent_id,
            provider_id=self.id,
            code=code,
            stdout=stdout,
            stderr=result.stderr,
            provider_session_id=session_id,
        )


@dataclass
class OpenAICompatibleProvider:
    """Runs an agent turn against a chat-completions endpoint.

    Chat completions are stateless, so continuity comes from the session
    context prompt rather than a provider session.
    """

    id: str = "openai-compatible"
    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    model: str = "gpt-4o-mini"
    timeout: float = 600.0
    transport: httpx.AsyncBaseTransport | None = None

    async def invoke(
        self, agent_id: str, options: InvokeOptions, workspace: Path
    ) -> ExecutionResult:
        messages = []
        if options.session_context and options.session_context.strip():
            messages.append({"role": "system", "content": options.session_context})
        messages.append({"role": "user", "content": options.message})

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        def failure(message: str) -> ExecutionResult:
            return ExecutionResult(
                agent_id=agent_id,
                provider_id=self.id,
                code=1,
                stdout="",
                stderr=message,
            )

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(
                    f"{self.base_url.rstrip('/')}/chat/completions",
                    json={"model": options.model or self.model, "messages": messages},
                    headers=headers,
                )
        except httpx.TimeoutException:
            return failure("Request timed out")
        except httpx.HTTPError as e:
            return failure(f"HTTP error: {e}")

        if response.status_code >= 400:
            return failure(f"HTTP {response.status_code}: {response.text}")

        try:
            content = response.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError):
            return failure(f"Unexpected response: {response.text[:500]}")

        if options.on_stdout and content:
            options.on_stdout(content)

        return ExecutionResult(
            agent_id=agent_id, provider_id=self.id, code=0, stdout=content, stderr=""
        )


class ProviderService:
    """Agent execution port backed by a provider registry."""

    def __init__(
        self,
        manifest_source: FileManifestSource,
        providers: list[Provider] | None = None,
        default_provider_id: str = DEFAULT_PROVIDER_ID,
    ):
        self._manifests = manifest_source
        self._providers: dict[str, Provider] = {}
        self.default_provider_id = default_provider_id
        for provider in providers or []:
            self.register(provider)

    @classmethod
    def from_config(cls, config: ConductorConfig) -> "ProviderService":
        """Build a service with the built-in providers.

        Environment variables:
            OPENAI_BASE_URL: Chat-completions base URL
            OPENAI_API_KEY: API key for the HTTP provider
            OPENAI_MODEL: Default model for the HTTP provider
        """
        return cls(
            FileManifestSource(),
            providers=[
                CommandProvider(timeout=config.provider_timeout_seconds),
                OpenAICompatibleProvider(
                    base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
                    api_key=os.getenv("OPENAI_API_KEY"),
                    model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
                    timeout=float(config.provider_timeout_seconds),
                ),
            ],
        )

    def register(self, provider: Provider) -> None:
        self._providers[provider.id] = provider

    def provider_ids(self) -> list[str]:
        return sorted(self._providers)

    async def get_agent_provider(
        self, paths: ConductorPaths, agent_id: str
    ) -> AgentProviderBinding:
        agent_id = normalize_agent_id(agent_id) or DEFAULT_AGENT_ID
        manifest = await self._manifests.get_manifest(paths, agent_id)
        provider_id = manifest.metadata.provider if manifest else self.default_provider_id
        return AgentProviderBinding(agent_id=agent_id, provider_id=provider_id)

    async def invoke_agent(
        self, paths: ConductorPaths, agent_id: str, options: InvokeOptions
    ) -> ExecutionResult:
        """Run one agent turn through the agent's provider.

        Args:
            paths: Conductor directory layout
            agent_id: Agent to run
            options: Message and invocation options

        Returns:
            Execution result; provider failures are non-zero codes

        Raises:
            ProviderNotFoundError: If the agent's provider is not registered
        """
        binding = await self.get_agent_provider(paths, agent_id)
        provider = self._providers.get(binding.provider_id)
        if provider is None:
            raise ProviderNotFoundError(
                f"Provider '{binding.provider_id}' for agent '{binding.agent_id}' "
                f"is not registered (available: {', '.join(self.provider_ids())})"
            )

        workspace = paths.workspace(binding.agent_id)
        workspace.mkdir(parents=True, exist_ok=True)

        logger.info(f"Invoking {binding.agent_id} via {binding.provider_id}")
        result = await provider.invoke(binding.agent_id, options, workspace)
        if result.code != 0:
            logger.warning(
                f"{binding.agent_id} exited with code {result.code}: {result.stderr.strip()[:200]}"
            )

        session_id = result.provider_session_id or extract_provider_session_id(
            f"{result.stdout}\n{result.stderr}"
        )
        return replace(
            result,
            agent_id=binding.agent_id,
            provider_id=binding.provider_id,
            provider_session_id=session_id,
        )
