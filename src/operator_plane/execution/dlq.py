"""Dead-letter log for terminally failed egress jobs.

WHY
───
A delivery that exhausted its retries (or failed non-retryably) must not
vanish.  Each one leaves a single JSON object on its own line in the
tenant's dead-letter log, which operators can grep, tail or replay.

LAYOUT
──────
::

    <state_dir>/runtime/<tenant>.<team>/dlq.log     (see RuntimePaths)

    DeadLetterSink(path)
      ├── .append(entry)     ─ serialized append, parents created on first use
      └── .entries()         ─ parse the log back (inspection, tests)

The file is append-only; records are never rewritten.

Example::

    sink = DeadLetterSink(RuntimePaths(state_dir, "acme", "ops").dlq_log_path())
    sink.append(build_dead_letter_entry(job, ctx, node_error, summary))
"""

import json
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from operator_plane.core.errors import DeadLetterWriteError
from operator_plane.core.logging import get_logger
from operator_plane.core.timestamps import to_rfc3339
from operator_plane.execution.context import OperatorContext
from operator_plane.execution.retry import EgressJob

logger = get_logger(__name__)


@dataclass(frozen=True)
class DeadLetterEntry:
    """One line of the dead-letter log."""

    ts: str
    job_id: str
    provider: str
    tenant: str
    team: str | None
    session_id: str | None
    correlation_id: str | None
    attempt: int
    max_attempts: int
    node_error: dict[str, Any]
    message_summary: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_dead_letter_entry(
    job: EgressJob,
    ctx: OperatorContext,
    node_error: dict[str, Any],
    message_summary: dict[str, Any],
) -> DeadLetterEntry:
    return DeadLetterEntry(
        ts=to_rfc3339(),
        job_id=job.job_id,
        provider=job.provider,
        tenant=ctx.tenant,
        team=ctx.team,
        session_id=message_summary.get("session_id"),
        correlation_id=message_summary.get("correlation_id") or ctx.correlation_id,
        attempt=job.attempt,
        max_attempts=job.max_attempts,
        node_error=node_error,
        message_summary=message_summary,
    )


class DeadLetterSink:
    """Append-only JSON Lines writer; safe to share between pipeline threads."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, entry: DeadLetterEntry) -> None:
        line = json.dumps(entry.to_dict(), separators=(",", ":"), default=str)
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
        except OSError as exc:
            raise DeadLetterWriteError(
                f"failed to append dead letter to {self.path}: {exc}", cause=exc
            ).with_context(path=str(self.path), provider=entry.provider) from exc
        logger.warning(
            "dlq.appended",
            job_id=entry.job_id,
            provider=entry.provider,
            attempt=entry.attempt,
            code=entry.node_error.get("code"),
        )

    def entries(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        with self._lock, self.path.open(encoding="utf-8") as fh:
            return [json.loads(line) for line in fh if line.strip()]
