"""
Checkpoint Store
================

Append-only snapshots of run state, so an interrupted run can resume.

Two stores are provided:
- MemoryCheckpointStore: keeps records in RAM (the default, like the
  in-memory saver most agent runtimes ship with)
- FileCheckpointStore: one JSON Lines file per run id

File Structure:
    checkpoints/
    ├── 3f2a...c1.jsonl                       # top-level run
    └── 3f2a...c1%2Fresearch-agent-9b1e.jsonl # sub-agent run

Run ids are percent-encoded into file names, so any id round-trips.

Each line is one CheckpointRecord. The latest line wins on resume; older
lines stay as history.

Snapshots are plain JSON-compatible dicts produced by RunState.to_dict(),
so this module does not depend on the agent package.
"""

import asyncio
import json
import urllib.parse
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from deepresearch.utils.logger import Logger

logger = Logger("Checkpoints")


@dataclass(frozen=True)
class CheckpointRecord:
    """
    One saved snapshot.

    Attributes:
        run_id: The run the snapshot belongs to
        sequence: 0-based index within the run's history
        snapshot: The serialized RunState
        timestamp: When the snapshot was saved (ISO format)
    """
    run_id: str
    sequence: int
    snapshot: dict
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "sequence": self.sequence,
            "snapshot": self.snapshot,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CheckpointRecord":
        return cls(
            run_id=data["run_id"],
            sequence=data["sequence"],
            snapshot=data["snapshot"],
            timestamp=data["timestamp"],
        )


class CheckpointStore:
    """
    Base class for checkpoint stores.

    Saves for the same run id are serialized by a per-run lock, so the
    sequence numbers of one run never interleave. The next sequence number
    is read from history once per run and counted in memory after that.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._sequences: dict[str, int] = {}

    def _lock_for(self, run_id: str) -> asyncio.Lock:
        if run_id not in self._locks:
            self._locks[run_id] = asyncio.Lock()
        return self._locks[run_id]

    async def save(self, run_id: str, snapshot: dict) -> CheckpointRecord:
        """Append a snapshot for run_id and return the stored record."""
        # JSON round trip detaches the snapshot from live objects
        frozen = json.loads(json.dumps(snapshot, default=str))

        async with self._lock_for(run_id):
            if run_id not in self._sequences:
                self._sequences[run_id] = len(await self.history(run_id))
            sequence = self._sequences[run_id]
            record = CheckpointRecord(
                run_id=run_id,
                sequence=sequence,
                snapshot=frozen,
                timestamp=datetime.now().isoformat(),
            )
            await self._append(record)
            self._sequences[run_id] = sequence + 1

        logger.debug(f"Saved checkpoint {run_id}#{record.sequence}")
        return record

    def release(self, run_id: str) -> None:
        """
        Forget the in-memory bookkeeping for a run that stopped saving.

        Records are kept; a later save reseeds its sequence from history.
        """
        lock = self._locks.get(run_id)
        if lock is not None and not lock.locked():
            del self._locks[run_id]
            self._sequences.pop(run_id, None)

    async def load_latest(self, run_id: str) -> CheckpointRecord | None:
        """The most recent record for run_id, or None."""
        history = await self.history(run_id)
        return history[-1] if history else None

    async def history(self, run_id: str) -> list[CheckpointRecord]:
        raise NotImplementedError

    async def list_runs(self) -> list[str]:
        raise NotImplementedError

    async def _append(self, record: CheckpointRecord) -> None:
        raise NotImplementedError


class MemoryCheckpointStore(CheckpointStore):
    """
    Checkpoints kept in a dict, lost on restart.

    Example:
        store = MemoryCheckpointStore()
        await store.save("run-1", state.to_dict())
        record = await store.load_latest("run-1")
    """

    def __init__(self):
        super().__init__()
        self._records: dict[str, list[CheckpointRecord]] = {}

    async def history(self, run_id: str) -> list[CheckpointRecord]:
        return list(self._records.get(run_id, []))

    async def list_runs(self) -> list[str]:
        return sorted(self._records)

    async def _append(self, record: CheckpointRecord) -> None:
        self._records.setdefault(record.run_id, []).append(record)


class FileCheckpointStore(CheckpointStore):
    """
    Checkpoints appended to <directory>/<run id>.jsonl.

    File I/O runs in a worker thread so the event loop keeps serving
    other runs while a snapshot is written.
    """

    def __init__(self, directory: Path):
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path_for(self, run_id: str) -> Path:
        safe = urllib.parse.quote(run_id, safe="")
        return self.directory / f"{safe}.jsonl"

    async def history(self, run_id: str) -> list[CheckpointRecord]:
        return await asyncio.to_thread(self._read_sync, run_id)

    def _read_sync(self, run_id: str) -> list[CheckpointRecord]:
        path = self._path_for(run_id)
        if not path.exists():
            return []

        records = []
        with open(path, encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    records.append(CheckpointRecord.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError) as e:
                    # A torn final line from a crash mid-write is skipped
                    logger.warning(f"Skipping unreadable checkpoint line {line_number} in {path.name}: {e}")
        return records

    async def list_runs(self) -> list[str]:
        paths = await asyncio.to_thread(lambda: sorted(self.directory.glob("*.jsonl")))
        return [urllib.parse.unquote(p.stem) for p in paths]

    async def _append(self, record: CheckpointRecord) -> None:
        await asyncio.to_thread(self._append_sync, record)

    def _append_sync(self, record: CheckpointRecord) -> None:
        line = json.dumps(record.to_dict(), ensure_ascii=False)
        with open(self._path_for(record.run_id), "a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()
