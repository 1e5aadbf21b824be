"""Routing decider.

Picks the agent a message should go to before a run starts. Routing is
advisory: it scores the roster against the message and never invokes or
mutates anything.
"""

import re

from conductor.config import DEFAULT_AGENT_ID
from conductor.log import get_logger
from conductor.models import AgentManifest, RoutingCandidate, RoutingDecision
from conductor.text import normalize_agent_id

logger = get_logger(__name__)

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")

NO_MATCH_CONFIDENCE = 0.35
MAX_MATCHED_TERMS = 8
BODY_TOKEN_LIMIT = 80


def resolve_entry_agent_id(hint: str | None, manifests: list[AgentManifest]) -> str:
    """Resolve which agent a run enters through.

    Falls back to the default orchestrator when the hint is blank or unknown,
    and to the first roster entry when even the orchestrator is missing.

    Args:
        hint: Agent id or name supplied by the caller
        manifests: Current roster

    Returns:
        Agent id to enter through
    """
    known = {manifest.agent_id for manifest in manifests}

    normalized = normalize_agent_id(hint or "")
    if normalized and normalized in known:
        return normalized

    if normalized:
        logger.warning(
            f"Unknown entry agent '{hint}', falling back to '{DEFAULT_AGENT_ID}'"
        )

    if DEFAULT_AGENT_ID in known or not manifests:
        return DEFAULT_AGENT_ID

    return manifests[0].agent_id


def is_discoverable(manifest: AgentManifest) -> bool:
    """Whether the orchestrator may route or delegate to this agent."""
    return (
        manifest.agent_id != DEFAULT_AGENT_ID
        and manifest.metadata.delegation.can_receive
    )


class RoutingService:
    """Scores roster agents against a message."""

    def decide(
        self, entry_agent_id: str, message: str, manifests: list[AgentManifest]
    ) -> RoutingDecision:
        """Decide where a message should go.

        Never raises: weak or missing matches lower the confidence instead.

        Args:
            entry_agent_id: Agent the message entered through
            message: Raw user message
            manifests: Current roster

        Returns:
            Routing decision with scored candidates
        """
        entry_agent_id = entry_agent_id.strip().lower()
        message = message.strip()

        if not message:
            return RoutingDecision(
                entry_agent_id=entry_agent_id,
                target_agent_id=entry_agent_id,
                confidence=1.0,
                reason="Empty message; keeping current agent.",
                rewritten_message=message,
            )

        if entry_agent_id != DEFAULT_AGENT_ID:
            return RoutingDecision(
                entry_agent_id=entry_agent_id,
                target_agent_id=entry_agent_id,
                confidence=1.0,
                reason="Direct invocation of a non-orchestrator agent.",
                rewritten_message=message,
            )

        candidates = sorted(
            (
                _score_candidate(message, manifest)
                for manifest in manifests
                if is_discoverable(manifest)
            ),
            key=lambda candidate: candidate.score,
            reverse=True,
        )

        top = candidates[0] if candidates else None
        if top is None or top.score <= 0:
            return RoutingDecision(
                entry_agent_id=entry_agent_id,
                target_agent_id=DEFAULT_AGENT_ID,
                confidence=NO_MATCH_CONFIDENCE,
                reason="No specialized agent strongly matched the request.",
                rewritten_message=message,
                candidates=candidates,
            )

        token_count = len(_tokenize(message))
        confidence = round(min(0.99, top.score / max(4, token_count + 1)), 2)
        reason = f"Matched {len(top.matched_terms)} relevant term(s) for {top.agent_name}."

        return RoutingDecision(
            entry_agent_id=entry_agent_id,
            target_agent_id=top.agent_id,
            confidence=confidence,
            reason=reason,
            rewritten_message=_rewrite_for_delegation(message, top.agent_name, reason),
            candidates=candidates,
        )


def _score_candidate(message: str, manifest: AgentManifest) -> RoutingCandidate:
    meta = manifest.metadata
    metadata_tokens = _tokenize(
        " ".join([meta.id, meta.name, meta.description, *meta.tags])
    )
    body_tokens = _tokenize(manifest.body)[:BODY_TOKEN_LIMIT]
    vocabulary = set(metadata_tokens) | set(body_tokens)

    matched: list[str] = []
    for token in _tokenize(message):
        if token in vocabulary and token not in matched:
            matched.append(token)

    explicit = _includes_word(message, meta.id) or _includes_word(message, meta.name)

    relevance = len(matched) * 2 + (4 if explicit else 0)
    priority_boost = max(0.0, min(3.0, meta.priority / 50)) if relevance > 0 else 0.0

    if explicit:
        reason = f"Explicit mention and {len(matched)} matched metadata terms."
    else:
        reason = f"{len(matched)} matched metadata terms."

    return RoutingCandidate(
        agent_id=manifest.agent_id,
        agent_name=meta.name,
        score=round(relevance + priority_boost, 2),
        matched_terms=matched[:MAX_MATCHED_TERMS],
        reason=reason,
    )


def _rewrite_for_delegation(message: str, agent_name: str, reason: str) -> str:
    return "\n\n".join(
        [
            f"Original user request:\n{message}",
            f"Delegation target: {agent_name}",
            f"Delegation reason: {reason}",
            "Please execute the task and return a concise, user-ready response.",
        ]
    )


def _tokenize(value: str) -> list[str]:
    return [token for token in _TOKEN_SPLIT.split(value.lower()) if len(token) >= 2]


def _includes_word(haystack: str, needle: str) -> bool:
    needle = needle.strip()
    if not needle:
        return False
    return re.search(rf"\b{re.escape(needle)}\b", haystack, re.IGNORECASE) is not None
