"""Checkpoint system for resumable pipelines."""

import asyncio
import hashlib
import json
import os
import re
import shutil
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path

import redis.asyncio as redis
import structlog
from pydantic import ValidationError

from project_planner.errors import PersistenceError
from project_planner.models.checkpoint import (
    Checkpoint,
    CheckpointHandle,
    CheckpointMetadata,
    CheckpointSummary,
    LatestPointer,
)
from project_planner.models.enums import PipelineStatus
from project_planner.models.state import PipelineState

logger = structlog.get_logger()

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def project_dir_name(project_id: str) -> str:
    """Directory name for a project's checkpoints.

    Safe ids are used as-is. Other ids are sanitised and suffixed with
    ``~`` plus a digest of the raw id; ``~`` never occurs in a safe id, so
    distinct ids never share a directory.
    """
    safe = _UNSAFE_CHARS.sub("_", project_id)
    if safe == project_id and safe not in ("", ".", ".."):
        return safe
    digest = hashlib.sha256(project_id.encode("utf-8")).hexdigest()[:12]
    return f"{safe}~{digest}"


class CheckpointStore(ABC):
    """Durable snapshots of pipeline state with a per-project latest pointer.

    Snapshots are appended and never rewritten. The latest pointer is only
    moved after its snapshot has been written, so it never references a
    snapshot that does not exist. Timestamps are strictly increasing per
    project within one store instance.
    """

    def __init__(self):
        self._last_timestamps: dict[str, datetime] = {}

    def _next_timestamp(self, project_id: str) -> datetime:
        now = datetime.now()
        last = self._last_timestamps.get(project_id)
        if last is not None and now <= last:
            now = last + timedelta(microseconds=1)
        self._last_timestamps[project_id] = now
        return now

    def _build_checkpoint(
        self,
        project_id: str,
        state: PipelineState,
        stage_name: str,
    ) -> Checkpoint:
        timestamp = self._next_timestamp(project_id)
        checkpoint_id = (
            f"{_UNSAFE_CHARS.sub('_', project_id)}_{stage_name}_{timestamp:%Y%m%dT%H%M%S%f}"
        )
        return Checkpoint(
            metadata=CheckpointMetadata(
                id=checkpoint_id,
                project_id=project_id,
                stage_name=stage_name,
                timestamp=timestamp,
            ),
            state=state.model_copy(deep=True),
        )

    @abstractmethod
    async def save_state(
        self,
        project_id: str,
        state: PipelineState,
        stage_name: str,
    ) -> CheckpointHandle:
        """Write a snapshot and point ``latest`` at it."""

    @abstractmethod
    async def load_latest_checkpoint(self, project_id: str) -> Checkpoint | None:
        """Load the newest checkpoint, or None if the project has none."""

    @abstractmethod
    async def list_states(self, project_id: str) -> list[CheckpointSummary]:
        """List saved checkpoints, newest first."""

    @abstractmethod
    async def delete_states(self, project_id: str) -> int:
        """Delete every checkpoint of a project. Returns the number removed."""

    async def load_latest_state(self, project_id: str) -> PipelineState | None:
        """Load the state of the newest checkpoint."""
        checkpoint = await self.load_latest_checkpoint(project_id)
        return checkpoint.state if checkpoint else None

    async def has_resumable_state(self, project_id: str) -> bool:
        """Check whether an unfinished run can be resumed.

        Unreadable checkpoints count as not resumable.
        """
        try:
            checkpoint = await self.load_latest_checkpoint(project_id)
        except PersistenceError as e:
            logger.warning("checkpoint_unreadable", project_id=project_id, error=str(e))
            return False
        return checkpoint is not None and checkpoint.state.status != PipelineStatus.COMPLETED

    async def close(self) -> None:
        """Release resources held by the store."""


class FileCheckpointStore(CheckpointStore):
    """Checkpoints as JSON files.

    Layout::

        <base_dir>/<project>/snapshots/<checkpoint_id>.json
        <base_dir>/<project>/latest.json

    Both files are written to a temporary name and moved into place with
    ``os.replace``.
    """

    def __init__(self, base_dir: str | Path):
        super().__init__()
        self.base_dir = Path(base_dir)

    def _project_dir(self, project_id: str) -> Path:
        return self.base_dir / project_dir_name(project_id)

    def _pointer_path(self, project_id: str) -> Path:
        return self._project_dir(project_id) / "latest.json"

    def _snapshot_path(self, project_id: str, checkpoint_id: str) -> Path:
        return self._project_dir(project_id) / "snapshots" / f"{checkpoint_id}.json"

    @staticmethod
    def _atomic_write(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)

    def _seed_timestamp(self, project_id: str) -> None:
        if project_id in self._last_timestamps:
            return
        pointer_path = self._pointer_path(project_id)
        if pointer_path.exists():
            try:
                pointer = LatestPointer.model_validate_json(pointer_path.read_text("utf-8"))
                self._last_timestamps[project_id] = pointer.timestamp
            except (OSError, ValidationError):
                pass

    def _save_sync(
        self,
        project_id: str,
        state: PipelineState,
        stage_name: str,
    ) -> CheckpointHandle:
        self._seed_timestamp(project_id)
        checkpoint = self._build_checkpoint(project_id, state, stage_name)
        meta = checkpoint.metadata
        snapshot_path = self._snapshot_path(project_id, meta.id)

        self._atomic_write(snapshot_path, checkpoint.model_dump_json(indent=2))

        pointer = LatestPointer(
            id=project_id,
            project_id=project_id,
            latest_checkpoint=meta.id,
            stage_name=stage_name,
            timestamp=meta.timestamp,
        )
        self._atomic_write(self._pointer_path(project_id), pointer.model_dump_json(indent=2))

        return CheckpointHandle(
            checkpoint_id=meta.id,
            project_id=project_id,
            stage_name=stage_name,
            timestamp=meta.timestamp,
            location=str(snapshot_path),
        )

    async def save_state(
        self,
        project_id: str,
        state: PipelineState,
        stage_name: str,
    ) -> CheckpointHandle:
        """Write a snapshot and point ``latest`` at it.

        Args:
            project_id: Project identifier
            state: Pipeline state to snapshot
            stage_name: Stage the snapshot was taken after

        Returns:
            Handle describing the written checkpoint

        Raises:
            PersistenceError: If the files cannot be written
        """
        try:
            handle = await asyncio.to_thread(self._save_sync, project_id, state, stage_name)
        except OSError as e:
            raise PersistenceError(
                f"Failed to save checkpoint for '{project_id}': {e}",
                details={"project_id": project_id, "stage": stage_name},
            ) from e

        logger.debug(
            "checkpoint_saved",
            project_id=project_id,
            stage=stage_name,
            checkpoint_id=handle.checkpoint_id,
        )
        return handle

    def _load_sync(self, project_id: str) -> Checkpoint | None:
        pointer_path = self._pointer_path(project_id)
        if not pointer_path.exists():
            return None

        pointer = LatestPointer.model_validate_json(pointer_path.read_text("utf-8"))
        snapshot_path = self._snapshot_path(project_id, pointer.latest_checkpoint)
        return Checkpoint.model_validate_json(snapshot_path.read_text("utf-8"))

    async def load_latest_checkpoint(self, project_id: str) -> Checkpoint | None:
        """Load the newest checkpoint.

        Raises:
            PersistenceError: If the pointer or snapshot is missing or corrupt
        """
        try:
            return await asyncio.to_thread(self._load_sync, project_id)
        except (OSError, ValidationError) as e:
            logger.error("checkpoint_load_failed", project_id=project_id, error=str(e))
            raise PersistenceError(
                f"Failed to load checkpoint for '{project_id}': {e}",
                details={"project_id": project_id},
            ) from e

    def _list_sync(self, project_id: str) -> list[CheckpointSummary]:
        snapshot_dir = self._project_dir(project_id) / "snapshots"
        if not snapshot_dir.is_dir():
            return []

        summaries = []
        for path in snapshot_dir.glob("*.json"):
            try:
                data = json.loads(path.read_text("utf-8"))
                meta = CheckpointMetadata.model_validate(data["metadata"])
            except (OSError, ValueError, KeyError, ValidationError) as e:
                logger.warning("checkpoint_parse_error", path=str(path), error=str(e))
                continue
            summaries.append(
                CheckpointSummary(
                    checkpoint_id=meta.id,
                    stage_name=meta.stage_name,
                    timestamp=meta.timestamp,
                )
            )

        summaries.sort(key=lambda s: s.timestamp, reverse=True)
        return summaries

    async def list_states(self, project_id: str) -> list[CheckpointSummary]:
        """List saved checkpoints, newest first."""
        try:
            return await asyncio.to_thread(self._list_sync, project_id)
        except OSError as e:
            raise PersistenceError(
                f"Failed to list checkpoints for '{project_id}': {e}",
                details={"project_id": project_id},
            ) from e

    def _delete_sync(self, project_id: str) -> int:
        project_dir = self._project_dir(project_id)
        if not project_dir.exists():
            return 0
        count = len(list((project_dir / "snapshots").glob("*.json")))
        shutil.rmtree(project_dir)
        return count

    async def delete_states(self, project_id: str) -> int:
        """Delete every checkpoint of a project."""
        try:
            deleted = await asyncio.to_thread(self._delete_sync, project_id)
        except OSError as e:
            raise PersistenceError(
                f"Failed to delete checkpoints for '{project_id}': {e}",
                details={"project_id": project_id},
            ) from e
        self._last_timestamps.pop(project_id, None)
        logger.info("checkpoints_deleted", project_id=project_id, count=deleted)
        return deleted


class RedisCheckpointStore(CheckpointStore):
    """Checkpoints in Redis.

    Keys per project:
    - ``<prefix><project>:snapshot:<checkpoint_id>`` holds the checkpoint
    - ``<prefix><project>:history`` is a sorted set of summaries by timestamp
    - ``<prefix><project>:latest`` holds the latest pointer

    All three are written in one MULTI/EXEC transaction.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        prefix: str = "planner:checkpoint:",
        ttl_hours: int = 0,
        client: redis.Redis | None = None,
    ):
        super().__init__()
        self._redis_url = redis_url
        self._prefix = prefix
        self._ttl_seconds = ttl_hours * 3600 or None
        self._redis: redis.Redis | None = client

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._redis is None:
            self._redis = redis.from_url(self._redis_url, decode_responses=True)

    async def close(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _key(self, project_id: str, suffix: str) -> str:
        return f"{self._prefix}{project_id}:{suffix}"

    async def _seed_timestamp(self, project_id: str) -> None:
        if project_id in self._last_timestamps:
            return
        raw_pointer = await self._redis.get(self._key(project_id, "latest"))
        if raw_pointer:
            try:
                pointer = LatestPointer.model_validate_json(raw_pointer)
                self._last_timestamps[project_id] = pointer.timestamp
            except ValidationError:
                pass

    async def save_state(
        self,
        project_id: str,
        state: PipelineState,
        stage_name: str,
    ) -> CheckpointHandle:
        """Write a snapshot and point ``latest`` at it."""
        if self._redis is None:
            await self.connect()

        try:
            await self._seed_timestamp(project_id)
        except redis.RedisError as e:
            raise PersistenceError(
                f"Failed to save checkpoint for '{project_id}': {e}",
                details={"project_id": project_id, "stage": stage_name},
            ) from e

        checkpoint = self._build_checkpoint(project_id, state, stage_name)
        meta = checkpoint.metadata
        snapshot_key = self._key(project_id, f"snapshot:{meta.id}")
        summary = CheckpointSummary(
            checkpoint_id=meta.id,
            stage_name=stage_name,
            timestamp=meta.timestamp,
        )
        pointer = LatestPointer(
            id=project_id,
            project_id=project_id,
            latest_checkpoint=meta.id,
            stage_name=stage_name,
            timestamp=meta.timestamp,
        )

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(snapshot_key, checkpoint.model_dump_json(), ex=self._ttl_seconds)
                pipe.zadd(
                    self._key(project_id, "history"),
                    {summary.model_dump_json(): meta.timestamp.timestamp()},
                )
                pipe.set(
                    self._key(project_id, "latest"),
                    pointer.model_dump_json(),
                    ex=self._ttl_seconds,
                )
                if self._ttl_seconds:
                    pipe.expire(self._key(project_id, "history"), self._ttl_seconds)
                await pipe.execute()
        except redis.RedisError as e:
            raise PersistenceError(
                f"Failed to save checkpoint for '{project_id}': {e}",
                details={"project_id": project_id, "stage": stage_name},
            ) from e

        logger.debug(
            "checkpoint_saved",
            project_id=project_id,
            stage=stage_name,
            checkpoint_id=meta.id,
        )
        return CheckpointHandle(
            checkpoint_id=meta.id,
            project_id=project_id,
            stage_name=stage_name,
            timestamp=meta.timestamp,
            location=snapshot_key,
        )

    async def load_latest_checkpoint(self, project_id: str) -> Checkpoint | None:
        """Load the newest checkpoint."""
        if self._redis is None:
            await self.connect()

        try:
            raw_pointer = await self._redis.get(self._key(project_id, "latest"))
            if not raw_pointer:
                return None
            pointer = LatestPointer.model_validate_json(raw_pointer)
            data = await self._redis.get(
                self._key(project_id, f"snapshot:{pointer.latest_checkpoint}")
            )
            if not data:
                raise PersistenceError(
                    f"Latest checkpoint '{pointer.latest_checkpoint}' is missing",
                    details={"project_id": project_id},
                )
            return Checkpoint.model_validate_json(data)
        except (redis.RedisError, ValidationError) as e:
            logger.error("checkpoint_load_failed", project_id=project_id, error=str(e))
            raise PersistenceError(
                f"Failed to load checkpoint for '{project_id}': {e}",
                details={"project_id": project_id},
            ) from e

    async def list_states(self, project_id: str) -> list[CheckpointSummary]:
        """List saved checkpoints, newest first."""
        if self._redis is None:
            await self.connect()

        try:
            members = await self._redis.zrevrange(self._key(project_id, "history"), 0, -1)
        except redis.RedisError as e:
            raise PersistenceError(
                f"Failed to list checkpoints for '{project_id}': {e}",
                details={"project_id": project_id},
            ) from e

        summaries = []
        for member in members:
            try:
                summaries.append(CheckpointSummary.model_validate_json(member))
            except ValidationError as e:
                logger.warning("checkpoint_parse_error", member=member, error=str(e))
        return summaries

    async def delete_states(self, project_id: str) -> int:
        """Delete every checkpoint of a project."""
        if self._redis is None:
            await self.connect()

        try:
            summaries = await self.list_states(project_id)
            keys = [self._key(project_id, f"snapshot:{s.checkpoint_id}") for s in summaries]
            keys += [self._key(project_id, "history"), self._key(project_id, "latest")]
            await self._redis.delete(*keys)
        except redis.RedisError as e:
            raise PersistenceError(
                f"Failed to delete checkpoints for '{project_id}': {e}",
                details={"project_id": project_id},
            ) from e

        self._last_timestamps.pop(project_id, None)
        logger.info("checkpoints_deleted", project_id=project_id, count=len(summaries))
        return len(summaries)


def create_checkpoint_store(settings) -> CheckpointStore:
    """Build the checkpoint store selected in settings."""
    if settings.checkpoint_backend == "redis":
        return RedisCheckpointStore(
            redis_url=settings.redis_url,
            prefix=settings.checkpoint_prefix,
            ttl_hours=settings.checkpoint_ttl_hours,
        )
    return FileCheckpointStore(settings.checkpoint_dir)
