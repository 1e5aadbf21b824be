"""Orchestration loop executor.

Runs one user message against an entry agent. A non-orchestrator entry agent
is invoked once directly. The orchestrator instead runs a bounded planning
loop: each step asks the orchestrator agent for a JSON decision, executes
that action, and feeds the outcome back into the next prompt.

Failures inside the loop are recorded as notes in the trace rather than
raised. Only the step and delegation limits stop the loop early.
"""

import time
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from opentelemetry import trace

from conductor import telemetry
from conductor.actions import (
    AgentCall,
    ArtifactIO,
    DelegateToAgentAction,
    FinishAction,
    InstallSkillAction,
    ReadWorkspaceFileAction,
    RespondUserAction,
    SessionEdge,
    SessionGraph,
    SessionNode,
    StepLog,
    WriteWorkspaceFileAction,
)
from conductor.config import DEFAULT_AGENT_ID, ConductorConfig
from conductor.errors import SkillInstallError
from conductor.log import get_logger
from conductor.models import (
    AgentManifest,
    ExecutionResult,
    InvokeOptions,
    RoutingDecision,
    RunSession,
    SessionRequest,
    SkillInstallRequest,
)
from conductor.paths import ConductorPaths
from conductor.planner import PlannerEngine, PlannerInput, is_fallback_decision
from conductor.ports import (
    AgentExecutionPort,
    FilePort,
    ManifestSource,
    SessionPort,
    SkillInstaller,
)
from conductor.routing import RoutingService, resolve_entry_agent_id
from conductor.state import LoopState
from conductor.text import (
    clamp_text,
    ensure_trailing_newline,
    normalize_agent_id,
    summarize_text,
)
from conductor.trace import OrchestrationTrace, RunTrace

logger = get_logger(__name__)

PLANNER_FALLBACK_MESSAGE = (
    "I could not complete orchestration due to planner output parsing issues."
)
DELEGATION_LIMIT_MESSAGE = (
    "Stopped orchestration after reaching delegation safety limit."
)
STEP_LIMIT_MESSAGE = (
    "Orchestration stopped at safety step limit without a final response."
)
BLOCKED_PATH = "coordination/unsafe-path-blocked.md"
DEFAULT_CONTEXT_PATH = "coordination/context.md"

READ_NOTE_MAX_CHARS = 2_500
DELEGATION_NOTE_MAX_CHARS = 2_000
HANDOFF_NOTES_MAX_CHARS = 4_000
SYNTHESIS_MAX_CHARS = 2_000


@dataclass
class AgentInvocation:
    """Outcome of invoking an agent with session bookkeeping."""

    execution: ExecutionResult
    session: RunSession | None = None


@dataclass
class LoopResult:
    final_message: str
    execution: ExecutionResult
    state: LoopState


@dataclass
class OrchestrationRunResult:
    """What run_agent returns: the final execution plus run context.

    Attributes:
        agent_id: Agent that produced the final execution
        provider_id: Provider that backed the final execution
        code: Exit code of the final execution
        stdout: Final user-facing output
        stderr: Error output of the final execution
        provider_session_id: Provider session handle, if any
        entry_agent_id: Agent the run entered through
        run_id: Identifier of the run and its trace file
        routing: Routing decision recorded for the run
        trace_path: Location of the written trace
        session: Session details for single-agent runs
        orchestration: Loop details
    """

    agent_id: str
    provider_id: str
    code: int
    stdout: str
    stderr: str
    entry_agent_id: str
    run_id: str
    routing: RoutingDecision
    trace_path: Path
    provider_session_id: str | None = None
    session: RunSession | None = None
    orchestration: OrchestrationTrace | None = None

    @classmethod
    def from_execution(
        cls, execution: ExecutionResult, **kwargs
    ) -> "OrchestrationRunResult":
        return cls(
            agent_id=execution.agent_id,
            provider_id=execution.provider_id,
            code=execution.code,
            stdout=execution.stdout,
            stderr=execution.stderr,
            provider_session_id=execution.provider_session_id,
            **kwargs,
        )


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _generate_run_id() -> str:
    return str(uuid.uuid4())


@dataclass
class _StepContext:
    """Everything an action handler needs for one step."""

    paths: ConductorPaths
    run_id: str
    step: int
    manifests: list[AgentManifest]
    options: InvokeOptions
    state: LoopState
    step_log: StepLog
    rationale: str = ""


class OrchestrationService:
    """Entry point for running messages against agents.

    All collaborators are injected so the loop can be driven by fakes in
    tests. Loop state is created per run and never shared.
    """

    def __init__(
        self,
        agent_port: AgentExecutionPort,
        session_port: SessionPort,
        manifest_source: ManifestSource,
        skill_installer: SkillInstaller,
        file_port: FilePort,
        config: ConductorConfig | None = None,
        planner: PlannerEngine | None = None,
        routing: RoutingService | None = None,
        now_iso: Callable[[], str] | None = None,
        run_id_factory: Callable[[], str] | None = None,
        tracer: trace.Tracer | None = None,
    ):
        self._agents = agent_port
        self._sessions = session_port
        self._manifests = manifest_source
        self._skills = skill_installer
        self._files = file_port
        self._config = config or ConductorConfig()
        self._planner = planner or PlannerEngine()
        self._routing = routing or RoutingService()
        self._now_iso = now_iso or _utc_now_iso
        self._new_run_id = run_id_factory or _generate_run_id
        self._tracer = tracer or trace.get_tracer("conductor")

    async def route_message(
        self, paths: ConductorPaths, entry_agent_id: str, message: str
    ) -> RoutingDecision:
        """Compute an advisory routing decision for a message."""
        manifests = await self._manifests.list_manifests(paths)
        resolved = resolve_entry_agent_id(entry_agent_id, manifests)
        return self._routing.decide(resolved, message, manifests)

    async def run_agent(
        self, paths: ConductorPaths, entry_agent_id: str, options: InvokeOptions
    ) -> OrchestrationRunResult:
        """Run a message against an entry agent and write its trace.

        The orchestrator runs the planning loop. Any other agent is invoked
        once with session bookkeeping.

        Args:
            paths: Conductor directory layout
            entry_agent_id: Requested entry agent (id or name)
            options: Message and invocation options

        Returns:
            Final execution fields plus routing, trace path and loop details

        Raises:
            OSError: If the workspace or trace cannot be written
        """
        run_id = self._new_run_id()
        started_at = self._now_iso()
        started = time.monotonic()
        manifests = await self._manifests.list_manifests(paths)
        resolved = resolve_entry_agent_id(entry_agent_id, manifests)

        logger.info(f"Run {run_id} started (entry agent: {resolved})")

        with self._tracer.start_as_current_span("conductor.run") as span:
            span.set_attribute("run.id", run_id)
            span.set_attribute("run.entry_agent_id", resolved)

            if resolved != DEFAULT_AGENT_ID:
                mode = "single-agent"
                direct = await self._invoke_agent_with_session(
                    paths, resolved, options
                )
                execution = direct.execution
                session = direct.session
                routing = RoutingDecision(
                    entry_agent_id=resolved,
                    target_agent_id=resolved,
                    confidence=1.0,
                    reason="Direct invocation of a non-orchestrator agent.",
                    rewritten_message=options.message,
                )
                graph = SessionGraph()
                graph.add_node(_session_node(resolved, direct))
                orchestration = OrchestrationTrace(
                    mode=mode,
                    steps=[],
                    final_message=execution.stdout,
                    session_graph=graph,
                )
            else:
                mode = "ai-loop"
                loop = await self._run_loop(paths, run_id, manifests, options)
                execution = loop.execution
                session = None
                routing = RoutingDecision(
                    entry_agent_id=DEFAULT_AGENT_ID,
                    target_agent_id=DEFAULT_AGENT_ID,
                    confidence=0.9,
                    reason="AI orchestration loop executed by orchestrator.",
                    rewritten_message=options.message,
                )
                orchestration = OrchestrationTrace(
                    mode=mode,
                    steps=loop.state.steps,
                    final_message=loop.final_message,
                    session_graph=loop.state.session_graph,
                    task_threads=loop.state.thread_list(),
                )

            duration = time.monotonic() - started
            run_trace = RunTrace(
                run_id=run_id,
                started_at=started_at,
                completed_at=self._now_iso(),
                entry_agent_id=resolved,
                user_message=options.message,
                routing=routing,
                execution=execution,
                session=session,
                orchestration=orchestration,
                duration_seconds=round(duration, 3),
            )
            trace_path = await self._write_trace(paths, run_trace)

            span.set_attribute("run.mode", mode)
            span.set_attribute("run.code", execution.code)
            span.set_attribute("run.steps", len(orchestration.steps))

        telemetry.record("runs_counter", 1, {"mode": mode, "code": str(execution.code)})
        telemetry.record("run_duration", duration, {"mode": mode})
        logger.info(
            f"Run {run_id} completed in {duration:.2f}s "
            f"(mode: {mode}, code: {execution.code}, steps: {len(orchestration.steps)})"
        )

        return OrchestrationRunResult.from_execution(
            execution,
            entry_agent_id=resolved,
            run_id=run_id,
            routing=routing,
            trace_path=trace_path,
            session=session,
            orchestration=orchestration,
        )

    async def _run_loop(
        self,
        paths: ConductorPaths,
        run_id: str,
        manifests: list[AgentManifest],
        options: InvokeOptions,
    ) -> LoopResult:
        config = self._config
        state = LoopState(
            shared_notes_max_chars=config.shared_notes_max_chars,
            recent_events_window=config.recent_events_window,
        )
        final_message = ""
        last_execution = await self._synthetic_execution(paths, DEFAULT_AGENT_ID)

        for step in range(1, config.max_orchestration_steps + 1):
            with self._tracer.start_as_current_span("conductor.step") as span:
                span.set_attribute("step.number", step)

                prompt = self._planner.build_prompt(
                    PlannerInput(
                        user_message=options.message,
                        step=step,
                        max_steps=config.max_orchestration_steps,
                        shared_notes=state.shared_notes(),
                        recent_events=list(state.events),
                        agents=manifests,
                        task_threads=state.thread_list(),
                    )
                )

                planner_call = await self._invoke_agent_with_session(
                    paths,
                    DEFAULT_AGENT_ID,
                    replace(
                        options,
                        message=prompt,
                        force_new_session=options.force_new_session if step == 1 else False,
                        provider_session_id=None,
                        force_new_provider_session=False,
                    ),
                    silent=True,
                )
                planner_raw = (
                    planner_call.execution.stdout.strip()
                    or planner_call.execution.stderr.strip()
                )
                decision = self._planner.parse_decision(
                    planner_raw, PLANNER_FALLBACK_MESSAGE
                )
                state.session_graph.add_node(
                    _session_node(DEFAULT_AGENT_ID, planner_call)
                )

                action = decision.action
                span.set_attribute("step.action", action.type)
                telemetry.record("steps_counter", 1, {"action": action.type})
                if is_fallback_decision(decision):
                    logger.warning(
                        f"Run {run_id} step {step}: planner output could not be parsed"
                    )
                    telemetry.record("planner_fallbacks_counter", 1)
                else:
                    logger.debug(
                        f"Run {run_id} step {step}: {action.type} ({decision.rationale})"
                    )

                step_log = StepLog(
                    step=step,
                    timestamp=self._now_iso(),
                    planner_raw_output=planner_raw,
                    planner_decision=decision,
                )
                ctx = _StepContext(
                    paths=paths,
                    run_id=run_id,
                    step=step,
                    manifests=manifests,
                    options=options,
                    state=state,
                    step_log=step_log,
                    rationale=decision.rationale,
                )

                if isinstance(action, (FinishAction, RespondUserAction)):
                    final_message, last_execution = await self._finish(ctx, action)
                    state.steps.append(step_log)
                    break

                if isinstance(action, ReadWorkspaceFileAction):
                    await self._read_workspace_file(ctx, action)
                elif isinstance(action, WriteWorkspaceFileAction):
                    await self._write_workspace_file(ctx, action)
                elif isinstance(action, InstallSkillAction):
                    await self._install_skill(ctx, action)
                else:
                    execution = await self._delegate(ctx, action)
                    if execution is not None:
                        last_execution = execution
                    state.delegation_count += 1

                state.steps.append(step_log)

                if state.delegation_count >= config.max_delegation_steps:
                    logger.warning(
                        f"Run {run_id} stopped after {state.delegation_count} delegations"
                    )
                    final_message = DELEGATION_LIMIT_MESSAGE
                    break

        if not final_message:
            logger.warning(f"Run {run_id} reached the step limit")
            if state.notes:
                synthesis = clamp_text("\n\n".join(state.notes), SYNTHESIS_MAX_CHARS)
                final_message = (
                    f"Orchestration reached step limit.\n\nCurrent synthesis:\n{synthesis}"
                )
            else:
                final_message = STEP_LIMIT_MESSAGE

        if not last_execution.stdout.strip():
            last_execution = replace(
                last_execution, code=0, stdout=ensure_trailing_newline(final_message)
            )

        return LoopResult(
            final_message=final_message, execution=last_execution, state=state
        )

    async def _finish(
        self, ctx: _StepContext, action: FinishAction | RespondUserAction
    ) -> tuple[str, ExecutionResult]:
        message = action.message.strip() or "Completed."
        ctx.step_log.note = action.reason
        ctx.state.add_event(summarize_text(f"Step {ctx.step}: {action.type}"))
        synthetic = await self._synthetic_execution(ctx.paths, DEFAULT_AGENT_ID)
        return message, replace(
            synthetic, code=0, stdout=ensure_trailing_newline(message)
        )

    async def _read_workspace_file(
        self, ctx: _StepContext, action: ReadWorkspaceFileAction
    ) -> None:
        resolved = resolve_workspace_path(ctx.paths, action.path)
        if await self._files.exists(resolved):
            content = await self._files.read_file(resolved)
        else:
            content = f"[MISSING] {resolved}"

        ctx.state.add_note(
            clamp_text(f"Read {action.path}:\n{content}", READ_NOTE_MAX_CHARS)
        )
        ctx.step_log.artifact_io = ArtifactIO(read_path=str(resolved))
        ctx.state.add_event(summarize_text(f"Read file {action.path}"))

    async def _write_workspace_file(
        self, ctx: _StepContext, action: WriteWorkspaceFileAction
    ) -> None:
        resolved = resolve_workspace_path(ctx.paths, action.path)
        await self._files.ensure_dir(resolved.parent)
        await self._files.write_file(resolved, ensure_trailing_newline(action.content))
        ctx.step_log.artifact_io = ArtifactIO(write_path=str(resolved))
        ctx.state.add_event(summarize_text(f"Wrote file {action.path}"))

    async def _install_skill(
        self, ctx: _StepContext, action: InstallSkillAction
    ) -> None:
        target = normalize_agent_id(action.target_agent_id or "") or DEFAULT_AGENT_ID
        try:
            result = await self._skills.install_skill(
                ctx.paths,
                SkillInstallRequest(
                    skill_name=action.skill_name,
                    agent_id=target,
                    source_path=action.source_path,
                    description=action.description,
                    content=action.content,
                ),
            )
        except SkillInstallError as e:
            note = f"Skill install failed: {e}"
            logger.warning(f"Run {ctx.run_id} step {ctx.step}: {note}")
            ctx.state.add_note(note)
            ctx.step_log.note = note
            ctx.state.add_event(summarize_text(note))
            return

        note = (
            f"Installed skill {result.skill_id} for {result.agent_id} "
            f"(source: {result.source}) at {result.installed_path}"
        )
        ctx.state.add_note(note)
        ctx.step_log.note = note
        ctx.step_log.artifact_io = ArtifactIO(write_path=result.installed_path)
        ctx.state.add_event(summarize_text(note))
        logger.info(f"Run {ctx.run_id}: {note}")

    async def _delegate(
        self, ctx: _StepContext, action: DelegateToAgentAction
    ) -> ExecutionResult | None:
        """Delegate one sub-task to another agent.

        Returns:
            The delegate's execution, or None if the target was invalid
        """
        state = ctx.state
        target = normalize_agent_id(action.target_agent_id)
        manifest = next((m for m in ctx.manifests if m.agent_id == target), None)
        if (
            manifest is None
            or target == DEFAULT_AGENT_ID
            or not manifest.metadata.delegation.can_receive
        ):
            note = f'Invalid delegation target "{action.target_agent_id}".'
            logger.warning(f"Run {ctx.run_id} step {ctx.step}: {note}")
            state.add_note(note)
            ctx.step_log.note = note
            state.add_event(summarize_text(note))
            return None

        task_key = action.task_key or f"{target}-step-{ctx.step}"
        thread = state.find_thread(task_key, target)

        if action.session_policy == "reuse" and thread is None:
            note = (
                f'No existing task thread "{task_key}" for {target}; '
                "starting a new session instead of reusing."
            )
            logger.warning(f"Run {ctx.run_id} step {ctx.step}: {note}")
            state.add_note(note)
            ctx.step_log.note = note
            state.add_event(summarize_text(note))

        reuse = thread is not None and action.session_policy != "new"
        provider_session_id = thread.provider_session_id if reuse else None

        handoff_dir = (
            ctx.paths.workspace(DEFAULT_AGENT_ID) / "coordination" / ctx.run_id
        )
        writes_artifacts = action.mode in ("artifacts", "hybrid")
        outbound_path: Path | None = None
        if writes_artifacts:
            await self._files.ensure_dir(handoff_dir)
            outbound_path = handoff_dir / f"step-{ctx.step:02d}-to-{target}.md"
            await self._files.write_file(
                outbound_path,
                ensure_trailing_newline(
                    render_handoff_document(
                        step=ctx.step,
                        user_message=ctx.options.message,
                        delegate_message=action.message,
                        expected_output=action.expected_output,
                        shared_notes=state.notes,
                    )
                ),
            )
            ctx.step_log.artifact_io = ArtifactIO(write_path=str(outbound_path))

        delegate_message = render_delegate_message(
            step=ctx.step,
            user_message=ctx.options.message,
            delegate_message=action.message,
            expected_output=action.expected_output,
            task_key=task_key,
            mode=action.mode,
            outbound_path=outbound_path,
            shared_notes=state.notes,
        )

        delegate_call = await self._invoke_agent_with_session(
            ctx.paths,
            target,
            InvokeOptions(
                message=delegate_message,
                cwd=ctx.options.cwd,
                env=ctx.options.env,
                session_ref=(
                    thread.session_key
                    if reuse and thread.session_key
                    else f"agent:{target}:task:{task_key}"
                ),
                force_new_session=not reuse,
                provider_session_id=provider_session_id,
                force_new_provider_session=not reuse,
            ),
            silent=True,
        )
        execution = delegate_call.execution
        response = execution.stdout.strip()
        if not response and execution.stderr.strip():
            response = f"[stderr] {execution.stderr.strip()}"

        if writes_artifacts:
            inbound_path = handoff_dir / f"step-{ctx.step:02d}-from-{target}.md"
            await self._files.write_file(
                inbound_path, ensure_trailing_newline(response or "(empty response)")
            )
            ctx.step_log.artifact_io = ArtifactIO(
                read_path=str(inbound_path),
                write_path=str(outbound_path) if outbound_path else None,
            )

        session_info = delegate_call.session.info if delegate_call.session else None
        returned_session_id = execution.provider_session_id or provider_session_id

        ctx.step_log.agent_call = AgentCall(
            target_agent_id=target,
            request=delegate_message,
            response=response,
            code=execution.code,
            provider_id=execution.provider_id,
            task_key=task_key,
            session_policy=action.session_policy,
            session_key=session_info.session_key if session_info else None,
            session_id=session_info.session_id if session_info else None,
            provider_session_id=returned_session_id,
        )

        state.upsert_thread(
            task_key=task_key,
            agent_id=target,
            step=ctx.step,
            provider_id=execution.provider_id,
            provider_session_id=returned_session_id,
            session_key=session_info.session_key if session_info else None,
            session_id=session_info.session_id if session_info else None,
            last_response=summarize_text(response) if response else None,
            fresh_provider_session=not reuse,
        )

        state.session_graph.add_node(_session_node(target, delegate_call))
        state.session_graph.add_edge(
            SessionEdge(
                from_agent_id=DEFAULT_AGENT_ID,
                to_agent_id=target,
                reason=action.reason or ctx.rationale,
            )
        )

        note = f"Delegated to {target} [{task_key}]: {summarize_text(response or '(no response)')}"
        state.add_note(clamp_text(note, DELEGATION_NOTE_MAX_CHARS))
        state.add_event(summarize_text(note))

        telemetry.record("delegations_counter", 1, {"target": target})
        logger.info(
            f"Run {ctx.run_id} step {ctx.step}: delegated to {target} "
            f"(task: {task_key}, reused: {reuse}, code: {execution.code})"
        )
        return execution

    async def _invoke_agent_with_session(
        self,
        paths: ConductorPaths,
        agent_id: str,
        options: InvokeOptions,
        silent: bool = False,
    ) -> AgentInvocation:
        """Invoke an agent inside a prepared session.

        The session is prepared before the call and the reply (or an error
        summary) is recorded after it.

        Args:
            paths: Conductor directory layout
            agent_id: Agent to invoke
            options: Invocation options; session fields go to the session port
            silent: Drop live output callbacks for this call

        Returns:
            The execution and, when sessions are enabled, its session details
        """
        prepared = await self._sessions.prepare_run_session(
            paths,
            agent_id,
            SessionRequest(
                user_message=options.message,
                session_ref=options.session_ref,
                force_new=options.force_new_session,
                disable_session=options.disable_session,
            ),
        )

        invoke_options = replace(
            options,
            session_ref=None,
            force_new_session=False,
            disable_session=False,
            session_context=prepared.context_prompt if prepared.enabled else None,
        )
        if silent:
            invoke_options = replace(invoke_options, on_stdout=None, on_stderr=None)

        execution = await self._agents.invoke_agent(paths, agent_id, invoke_options)

        if not prepared.enabled or prepared.info is None:
            return AgentInvocation(execution=execution)

        if execution.stdout.strip():
            reply = execution.stdout.strip()
        elif execution.stderr.strip():
            reply = f"[Provider error code {execution.code}] {execution.stderr.strip()}"
        else:
            reply = f"[Provider exited with code {execution.code}]"

        compaction = await self._sessions.record_assistant_reply(
            paths, prepared.info, reply
        )
        return AgentInvocation(
            execution=execution,
            session=RunSession(
                info=prepared.info,
                pre_run_compaction_applied=prepared.compaction_applied,
                post_run_compaction=compaction,
            ),
        )

    async def _synthetic_execution(
        self, paths: ConductorPaths, agent_id: str
    ) -> ExecutionResult:
        binding = await self._agents.get_agent_provider(paths, agent_id)
        return ExecutionResult(
            agent_id=binding.agent_id,
            provider_id=binding.provider_id,
            code=0,
            stdout="",
            stderr="",
        )

    async def _write_trace(self, paths: ConductorPaths, run_trace: RunTrace) -> Path:
        await self._files.ensure_dir(paths.runs_dir)
        trace_path = run_trace.path(paths.runs_dir)
        if await self._files.exists(trace_path):
            raise FileExistsError(f"Trace already written: {trace_path}")
        await self._files.write_file(trace_path, run_trace.to_json())
        return trace_path


def resolve_workspace_path(paths: ConductorPaths, requested: str) -> Path:
    """Resolve a planner supplied path inside the orchestrator workspace.

    Any ``..`` segment redirects to a fixed sentinel file instead of leaving
    the workspace. Leading slashes are stripped, and a blank path resolves to
    the shared coordination context file.
    """
    workspace = paths.workspace(DEFAULT_AGENT_ID)
    normalized = requested.replace("\\", "/").strip()
    if ".." in normalized.split("/"):
        return workspace / BLOCKED_PATH
    relative = normalized.lstrip("/")
    return workspace / (relative or DEFAULT_CONTEXT_PATH)


def render_delegate_message(
    step: int,
    user_message: str,
    delegate_message: str,
    expected_output: str | None,
    task_key: str,
    mode: str,
    outbound_path: Path | None,
    shared_notes: list[str],
) -> str:
    """Render the inline message sent to a delegate agent.

    Artifacts and hybrid modes point the delegate at the outbound
    coordination file.
    """
    lines = [
        f"Delegation step: {step}",
        f"Task thread: {task_key}",
        "",
        "Original user request:",
        user_message,
        "",
        "Delegation instruction:",
        delegate_message,
        "",
    ]
    if expected_output and expected_output.strip():
        lines += ["Expected output:", expected_output.strip(), ""]
    if shared_notes:
        lines += [
            "Shared notes from previous steps:",
            clamp_text("\n\n".join(shared_notes), HANDOFF_NOTES_MAX_CHARS),
            "",
        ]
    if mode in ("artifacts", "hybrid") and outbound_path is not None:
        lines += [
            f"Coordination file: {outbound_path}",
            "You may use this markdown artifact for durable handoff context.",
            "",
        ]
    lines.append("Return a concise result for the orchestrator.")
    return "\n".join(lines)


def render_handoff_document(
    step: int,
    user_message: str,
    delegate_message: str,
    expected_output: str | None,
    shared_notes: list[str],
) -> str:
    """Render the markdown handoff written before a delegation."""
    prior_notes = (
        clamp_text("\n\n".join(shared_notes), HANDOFF_NOTES_MAX_CHARS)
        if shared_notes
        else "(none)"
    )
    return "\n".join(
        [
            f"# Delegation Step {step}",
            "",
            "## User Request",
            user_message,
            "",
            "## Delegation Instruction",
            delegate_message,
            "",
            "## Expected Output",
            (expected_output or "").strip() or "(not specified)",
            "",
            "## Prior Notes",
            prior_notes,
        ]
    )


def _session_node(agent_id: str, invocation: AgentInvocation) -> SessionNode:
    info = invocation.session.info if invocation.session else None
    return SessionNode(
        agent_id=agent_id,
        provider_id=invocation.execution.provider_id,
        session_key=info.session_key if info else None,
        session_id=info.session_id if info else None,
        provider_session_id=invocation.execution.provider_session_id,
    )
