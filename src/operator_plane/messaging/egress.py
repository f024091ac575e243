"""Retrying egress pipeline with dead-lettering.

Each outbound envelope becomes an :class:`EgressJob` driven through an
explicit state machine::

    PENDING → RENDERING → ENCODING → SENDING → SUCCESS
                  │           │         │
                  │           │         ├─→ RETRYING → RENDERING ...
                  │           │         └─→ DEAD_LETTERED
                  │           └─(encode failed: fallback JSON payload)
                  └─→ DEAD_LETTERED (render failed, never retried)

    SENDING → DRY_RUN when sending is disabled

Only the send step absorbs backoff.  Render failures mean the message is
malformed and go straight to the dead-letter log; encode failures fall
back to a generic JSON payload so a send is always attempted.  Plans are
re-rendered on every attempt.

Sleep, randomness and the clock are injected so tests never wait::

    pipeline = EgressPipeline(invoker, RetryPolicy(), sink, sleep=lambda s: None)
    result = pipeline.submit("slack", {"text": "hi"}, ctx)
"""

from __future__ import annotations

import json
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from operator_plane.core.logging import LogContext, get_logger
from operator_plane.core.timestamps import now_unix_ms
from operator_plane.execution.context import OperatorContext
from operator_plane.execution.dlq import DeadLetterSink, build_dead_letter_entry
from operator_plane.execution.invoker import ProviderRunner, encode_payload
from operator_plane.execution.models import Domain, OperationOutcome
from operator_plane.execution.retry import EgressJob, RetryPolicy
from operator_plane.messaging.dto import (
    EncodeInV1,
    MessageEnvelope,
    NodeErrorDetails,
    ProviderPayloadV1,
    RenderPlanInV1,
    SendPayloadInV1,
    SendPayloadOutV1,
    TenantHint,
)

logger = get_logger(__name__)


class EgressState(str, Enum):
    PENDING = "pending"
    RENDERING = "rendering"
    ENCODING = "encoding"
    SENDING = "sending"
    RETRYING = "retrying"
    SUCCESS = "success"
    DEAD_LETTERED = "dead_lettered"
    DRY_RUN = "dry_run"


EGRESS_VALID_TRANSITIONS: dict[EgressState, frozenset[EgressState]] = {
    EgressState.PENDING: frozenset({EgressState.RENDERING}),
    EgressState.RENDERING: frozenset({EgressState.ENCODING, EgressState.DEAD_LETTERED}),
    EgressState.ENCODING: frozenset({EgressState.SENDING}),
    EgressState.SENDING: frozenset({
        EgressState.SUCCESS,
        EgressState.RETRYING,
        EgressState.DEAD_LETTERED,
        EgressState.DRY_RUN,
    }),
    EgressState.RETRYING: frozenset({EgressState.RENDERING}),
    EgressState.SUCCESS: frozenset(),  # terminal
    EgressState.DEAD_LETTERED: frozenset(),  # terminal
    EgressState.DRY_RUN: frozenset(),  # terminal
}

TERMINAL_STATES = frozenset(
    state for state, targets in EGRESS_VALID_TRANSITIONS.items() if not targets
)


class InvalidTransitionError(ValueError):
    """Raised when the pipeline attempts an illegal state change."""

    def __init__(self, current: EgressState, target: EgressState) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid EgressState transition: {current.value} → {target.value}")


def validate_transition(current: EgressState, target: EgressState) -> None:
    if target not in EGRESS_VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current, target)


@dataclass
class EgressResult:
    """Terminal state of one job plus what the last step produced."""

    state: EgressState
    job: EgressJob
    output: Any = None
    node_error: NodeErrorDetails | None = None
    history: list[EgressState] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return self.state == EgressState.SUCCESS


@dataclass
class _Attempt:
    """Scratch state of the attempt in flight."""

    plan: Any = None
    payload: ProviderPayloadV1 | None = None
    output: Any = None
    node_error: NodeErrorDetails | None = None


class EgressPipeline:
    """Drives egress jobs for messaging providers."""

    def __init__(
        self,
        runner: ProviderRunner,
        policy: RetryPolicy,
        dead_letters: DeadLetterSink,
        *,
        send: bool = True,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
        clock_ms: Callable[[], int] = now_unix_ms,
    ):
        self.runner = runner
        self.policy = policy
        self.dead_letters = dead_letters
        self.send = send
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._clock_ms = clock_ms

    def submit(self, provider: str, envelope: dict[str, Any], ctx: OperatorContext) -> EgressResult:
        """Wrap ``envelope`` in a fresh job and process it."""
        job = EgressJob(provider=provider, envelope=envelope, max_attempts=self.policy.max_attempts)
        return self.process(job, ctx)

    def process(self, job: EgressJob, ctx: OperatorContext) -> EgressResult:
        envelope = MessageEnvelope.model_validate(job.envelope)
        message = envelope.model_dump(mode="json", exclude_none=True)
        history: list[EgressState] = [EgressState.PENDING]
        state = EgressState.PENDING
        attempt = _Attempt()

        with LogContext(job_id=job.job_id, provider=job.provider, **_ctx_fields(ctx)):
            while state not in TERMINAL_STATES:
                if state in (EgressState.PENDING, EgressState.RETRYING):
                    job.increment_attempt()
                    attempt = _Attempt()
                    target = EgressState.RENDERING
                elif state == EgressState.RENDERING:
                    target = self._render(job, ctx, message, attempt)
                elif state == EgressState.ENCODING:
                    target = self._encode(job, ctx, message, attempt)
                else:
                    target = self._send(job, ctx, envelope, attempt)
                validate_transition(state, target)
                state = target
                history.append(state)

        return EgressResult(
            state=state,
            job=job,
            output=attempt.output,
            node_error=attempt.node_error,
            history=history,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _render(
        self, job: EgressJob, ctx: OperatorContext, message: dict[str, Any], attempt: _Attempt
    ) -> EgressState:
        outcome = self._invoke(job.provider, "render_plan", RenderPlanInV1(message=message).to_payload(), ctx)
        if not outcome.success:
            error = f"{job.provider}.render_plan failed: {outcome.error or 'unknown error'}"
            logger.error("egress.render_failed", attempt=job.attempt, error=outcome.error)
            job.record_error(error)
            attempt.node_error = NodeErrorDetails(code="render-failed", message=error, retryable=False)
            self._dead_letter(job, ctx, attempt.node_error, message)
            return EgressState.DEAD_LETTERED
        attempt.plan = outcome.output if outcome.output is not None else {}
        job.with_plan(attempt.plan)
        return EgressState.ENCODING

    def _encode(
        self, job: EgressJob, ctx: OperatorContext, message: dict[str, Any], attempt: _Attempt
    ) -> EgressState:
        outcome = self._invoke(
            job.provider, "encode", EncodeInV1(message=message, plan=attempt.plan).to_payload(), ctx
        )
        payload: ProviderPayloadV1 | None = None
        reason = outcome.error
        if outcome.success:
            try:
                payload = ProviderPayloadV1.model_validate(outcome.output or {})
            except PydanticValidationError as exc:
                reason = f"invalid ProviderPayloadV1: {exc.error_count()} error(s)"
        if payload is None:
            logger.warning("egress.encode_fallback", attempt=job.attempt, error=reason)
            payload = ProviderPayloadV1.fallback_for(message)
        attempt.payload = payload
        return EgressState.SENDING

    def _send(
        self, job: EgressJob, ctx: OperatorContext, envelope: MessageEnvelope, attempt: _Attempt
    ) -> EgressState:
        if not self.send:
            logger.info("egress.dry_run", attempt=job.attempt, content_type=attempt.payload.content_type)
            return EgressState.DRY_RUN

        reply_scope = getattr(envelope, "reply_scope", None)
        request = SendPayloadInV1(
            provider_type=job.provider,
            payload=attempt.payload,
            tenant=TenantHint(
                tenant=ctx.tenant,
                team=ctx.team,
                correlation_id=envelope.correlation_id or ctx.correlation_id,
            ),
            reply_scope=reply_scope if isinstance(reply_scope, dict) else None,
        )
        outcome = self._invoke(job.provider, "send_payload", request.to_payload(), ctx)
        attempt.output = outcome.output
        node_error = send_failure(outcome)
        if node_error is None:
            logger.info("egress.sent", attempt=job.attempt)
            return EgressState.SUCCESS

        attempt.node_error = node_error
        job.record_error(node_error.message)
        if job.exhausted or not node_error.retryable:
            logger.error(
                "egress.final_failure",
                attempt=job.attempt,
                max_attempts=job.max_attempts,
                code=node_error.code,
                error=node_error.message,
            )
            self._dead_letter(job, ctx, node_error, envelope.model_dump(mode="json"))
            return EgressState.DEAD_LETTERED

        if node_error.backoff_ms is not None:
            delay_ms = node_error.backoff_ms
        else:
            jitter = self._rng.randint(0, self.policy.jitter_ms)
            delay_ms = self.policy.delay_with_jitter_ms(job.attempt, jitter)
        job.schedule_next(delay_ms, self._clock_ms())
        logger.info("egress.retrying", attempt=job.attempt, delay_ms=delay_ms)
        self._sleep(delay_ms / 1000)
        return EgressState.RETRYING

    # ------------------------------------------------------------------

    def _invoke(self, provider: str, op: str, payload: dict[str, Any], ctx: OperatorContext) -> OperationOutcome:
        return self.runner.invoke(Domain.MESSAGING, provider, op, encode_payload(payload), ctx)

    def _dead_letter(
        self, job: EgressJob, ctx: OperatorContext, node_error: NodeErrorDetails, message: dict[str, Any]
    ) -> None:
        summary = MessageEnvelope.model_validate(message).summary()
        self.dead_letters.append(build_dead_letter_entry(job, ctx, node_error.to_record(), summary))


def send_failure(outcome: OperationOutcome) -> NodeErrorDetails | None:
    """Node error for a failed send, or None when the send succeeded."""
    if not outcome.success:
        return parse_node_error(outcome)
    output = outcome.output_dict()
    if "ok" in output:
        try:
            result = SendPayloadOutV1.model_validate(output)
        except PydanticValidationError:
            return None
        if not result.ok:
            return NodeErrorDetails(
                code="send-failed",
                message=result.message or "provider reported ok=false",
                retryable=result.retryable,
            )
    return None


def parse_node_error(outcome: OperationOutcome) -> NodeErrorDetails:
    """Structured node error from ``error`` (or ``raw``); unstructured text is non-retryable."""
    text = outcome.error if outcome.error is not None else outcome.raw
    if text is not None:
        parsed = parse_json_node_error(text)
        if parsed is not None:
            return parsed
    return NodeErrorDetails(message=text or "unknown node error", retryable=False)


def parse_json_node_error(text: str) -> NodeErrorDetails | None:
    start = text.find("{")
    if start < 0:
        return None
    try:
        data = json.loads(text[start:].strip())
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        details = NodeErrorDetails.model_validate(
            {key: value for key, value in data.items() if value is not None}
        )
    except PydanticValidationError:
        return None
    if "message" not in data or data["message"] is None:
        details.message = text
    return details


def _ctx_fields(ctx: OperatorContext) -> dict[str, Any]:
    return {"tenant": ctx.tenant, "team": ctx.team, "correlation_id": ctx.correlation_id}
