"""Per-invocation run artifacts.

Every invocation leaves a small audit trail in its run directory::

    <state_dir>/runs/<domain>/<pack_id>/<flow>/
        input.json          payload handed to the provider
        run.json            metadata + outcome
        summary.txt         one-screen human summary
        transcript.jsonl    newline-delimited {"outputs": ...} records

The run directory is keyed by (domain, pack, flow) and is overwritten by
the next invocation of the same flow.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from operator_plane.core.timestamps import to_rfc3339

TRANSCRIPT_FILE = "transcript.jsonl"


@dataclass
class RunRecord:
    """Contents of ``run.json``."""

    domain: str
    pack_id: str
    flow: str
    tenant: str
    team: str | None
    correlation_id: str | None
    mode: str
    started_at: str
    finished_at: str | None = None
    success: bool | None = None
    error: str | None = None
    exit_code: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in self.__dict__.items()}


def prepare_run_dir(run_dir: Path, payload: Any) -> Path:
    """Create ``run_dir`` fresh and write ``input.json``."""
    run_dir.mkdir(parents=True, exist_ok=True)
    transcript = run_dir / TRANSCRIPT_FILE
    if transcript.exists():
        transcript.unlink()
    (run_dir / "input.json").write_text(json.dumps(to_jsonable(payload), indent=2), encoding="utf-8")
    return run_dir


def to_jsonable(value: Any) -> Any:
    """JSON-safe copy of a decoded payload; CBOR map keys may be bytes or ints."""
    if isinstance(value, dict):
        return {_json_key(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    return str(value)


def _json_key(key: Any) -> str:
    if isinstance(key, str):
        return key
    if isinstance(key, (bytes, bytearray)):
        return bytes(key).hex()
    return str(key)


def write_run_record(run_dir: Path, record: RunRecord) -> None:
    if record.finished_at is None:
        record.finished_at = to_rfc3339()
    (run_dir / "run.json").write_text(json.dumps(record.to_dict(), indent=2), encoding="utf-8")
    status = "ok" if record.success else "failed"
    lines = [
        f"{record.domain}/{record.pack_id}:{record.flow} {status} ({record.mode})",
        f"tenant={record.tenant} team={record.team or 'default'} corr={record.correlation_id or 'none'}",
        f"started={record.started_at} finished={record.finished_at}",
    ]
    if record.error:
        lines.append(f"error: {record.error}")
    (run_dir / "summary.txt").write_text("\n".join(lines) + "\n", encoding="utf-8")


def append_transcript(run_dir: Path, outputs: Any) -> None:
    with (run_dir / TRANSCRIPT_FILE).open("a", encoding="utf-8") as fh:
        fh.write(json.dumps({"outputs": outputs}, default=str) + "\n")


def read_transcript_outputs(run_dir: Path) -> Any | None:
    """Last non-null ``outputs`` value in the run's transcript, if any."""
    path = run_dir / TRANSCRIPT_FILE
    if not path.is_file():
        return None
    last: Any = None
    with path.open(encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(record, dict) and record.get("outputs") is not None:
                last = record["outputs"]
    return last
