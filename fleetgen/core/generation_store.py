"""
Generation store - durable per-host generation history

Each host has one append-only log file. A line is one transaction holding
full snapshots of every generation it touched; replaying the lines in
order (last snapshot per sequence wins) rebuilds the history. A
transaction is a single write, so activation is all-or-nothing on disk.

    <state_dir>/generations/<host>.jsonl

    {"op": "record",   "at": "...", "records": [{"sequence": 3, "status": "pending", ...}]}
    {"op": "activate", "at": "...", "records": [{"sequence": 3, "status": "active", ...},
                                                {"sequence": 2, "status": "superseded", ...}]}
"""

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from fleetgen.constants import GENERATION_LOG_SUFFIX, GENERATIONS_DIR
from fleetgen.exceptions import ActivationError, RollbackError, StateError
from fleetgen.models import Artifact, Generation, GenerationStatus

SwitchFn = Callable[[Generation], None]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def artifact_path_exists(generation: Generation) -> bool:
    return bool(generation.artifact_path) and Path(generation.artifact_path).exists()


class GenerationLog:
    """Append-only JSON-lines log for one host"""

    def __init__(self, path: Path, host_id: str, logger=None):
        self.path = Path(path)
        self.host_id = host_id
        self.logger = logger

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Dict[int, Generation]:
        """
        Replay the log.

        Returns:
            Mapping of sequence number to latest generation snapshot

        Raises:
            StateError: If a line other than the last is unreadable
        """
        generations: Dict[int, Generation] = {}
        if not self.path.exists():
            return generations

        with open(self.path, "r") as f:
            lines = f.read().split("\n")

        # A torn write can only ever be the final line
        last_index = max((i for i, line in enumerate(lines) if line.strip()), default=-1)

        for index, line in enumerate(lines):
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
                records = entry["records"]
                snapshots = [Generation.from_dict(self.host_id, r) for r in records]
            except (ValueError, KeyError, TypeError) as e:
                if index == last_index:
                    if self.logger:
                        self.logger.log_host(
                            self.host_id,
                            f"Ignoring torn trailing entry in {self.path.name}",
                            "WARNING",
                        )
                    break
                raise StateError(
                    f"Corrupt generation log for host '{self.host_id}'",
                    context=f"{self.path}: line {index + 1}: {e}",
                )
            for snapshot in snapshots:
                generations[snapshot.sequence] = snapshot

        return generations

    def append(self, op: str, records: List[Generation]) -> None:
        """Durably append one transaction"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._drop_torn_tail()

        entry = {
            "op": op,
            "at": utc_now(),
            "records": [g.to_dict() for g in records],
        }
        line = json.dumps(entry, sort_keys=True) + "\n"

        try:
            with open(self.path, "a") as f:
                f.write(line)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise StateError(
                f"Failed to write generation log for host '{self.host_id}'",
                context=str(e),
            )

    def _drop_torn_tail(self) -> None:
        """Truncate a partial last line so the next entry starts cleanly"""
        if not self.path.exists() or self.path.stat().st_size == 0:
            return

        with open(self.path, "rb+") as f:
            data = f.read()
            if data.endswith(b"\n"):
                return
            cut = data.rfind(b"\n") + 1
            f.truncate(cut)
            f.flush()
            os.fsync(f.fileno())


class GenerationStore:
    """
    Owns generation history, activation and rollback for every host.

    Invariants per host:
    - at most one generation is active
    - sequence numbers are strictly increasing, each new one is max + 1
    - every generation's predecessor is the sequence before it, so the
      history is a single linear chain

    Mutations on one host are serialized by that host's lock. There is no
    lock spanning hosts.
    """

    def __init__(
        self,
        state_dir: Path,
        artifact_exists: Callable[[Generation], bool] = artifact_path_exists,
        clock: Callable[[], str] = utc_now,
        logger=None,
    ):
        self.state_dir = Path(state_dir)
        self.generations_dir = self.state_dir / GENERATIONS_DIR
        self.artifact_exists = artifact_exists
        self.clock = clock
        self.logger = logger
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def lock_for(self, host_id: str) -> threading.Lock:
        """Critical section for one host; created on first use"""
        with self._locks_guard:
            lock = self._locks.get(host_id)
            if lock is None:
                lock = self._locks[host_id] = threading.Lock()
            return lock

    def _log(self, host_id: str) -> GenerationLog:
        return GenerationLog(
            self.generations_dir / f"{host_id}{GENERATION_LOG_SUFFIX}",
            host_id,
            logger=self.logger,
        )

    def _load(self, host_id: str) -> Dict[int, Generation]:
        generations = self._log(host_id).read()
        active = [g for g in generations.values() if g.is_active]
        if len(active) > 1:
            raise StateError(
                f"Host '{host_id}' has {len(active)} active generations",
                context=", ".join(f"#{g.sequence}" for g in active),
            )
        return generations

    @staticmethod
    def _active_of(generations: Dict[int, Generation]) -> Optional[Generation]:
        for generation in generations.values():
            if generation.is_active:
                return generation
        return None

    @staticmethod
    def _transition(generation: Generation, status: GenerationStatus, **kwargs):
        try:
            return generation.transition(status, **kwargs)
        except ValueError as e:
            raise StateError(str(e))

    def _host_log(self, host_id: str, message: str, level: str = "INFO") -> None:
        if self.logger:
            self.logger.log_host(host_id, message, level)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def history(self, host_id: str) -> List[Generation]:
        """All generations of a host, oldest first"""
        generations = self._load(host_id)
        return [generations[seq] for seq in sorted(generations)]

    def get(self, host_id: str, sequence: int) -> Optional[Generation]:
        return self._load(host_id).get(sequence)

    def active(self, host_id: str) -> Optional[Generation]:
        """The host's live generation, or None if nothing was ever activated"""
        return self._active_of(self._load(host_id))

    def hosts(self) -> List[str]:
        """Hosts that have a generation log"""
        if not self.generations_dir.exists():
            return []
        return sorted(
            p.name[: -len(GENERATION_LOG_SUFFIX)]
            for p in self.generations_dir.glob(f"*{GENERATION_LOG_SUFFIX}")
        )

    def chain(self, host_id: str) -> List[Generation]:
        """
        Generations reachable from the active one by predecessor links,
        newest first, starting with the active generation itself.
        """
        generations = self._load(host_id)
        active = self._active_of(generations)
        if active is None:
            return []
        return [active] + list(self._walk_predecessors(generations, active))

    @staticmethod
    def _walk_predecessors(
        generations: Dict[int, Generation], start: Generation
    ) -> Iterator[Generation]:
        """Follow predecessor links; a missing sequence is a pruned gap and ends the walk"""
        seen = {start.sequence}
        sequence = start.predecessor
        while sequence is not None and sequence not in seen:
            generation = generations.get(sequence)
            if generation is None:
                return
            seen.add(sequence)
            yield generation
            sequence = generation.predecessor

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def record(self, host_id: str, artifact: Artifact) -> Generation:
        """
        Allocate the next generation for an artifact, in pending state.

        Returns:
            The new pending Generation
        """
        with self.lock_for(host_id):
            generations = self._load(host_id)
            latest = max(generations) if generations else None
            generation = Generation(
                host_id=host_id,
                sequence=(latest or 0) + 1,
                content_hash=artifact.content_hash,
                artifact_path=artifact.path,
                timestamp=self.clock(),
                status=GenerationStatus.PENDING,
                predecessor=latest,
            )
            self._log(host_id).append("record", [generation])

        self._host_log(host_id, f"Recorded generation #{generation.sequence}")
        return generation

    def activate(
        self, generation: Generation, switch: Optional[SwitchFn] = None
    ) -> Generation:
        """
        Make a pending generation the host's active one.

        The switch callable performs the on-host change. If it raises, the
        generation is closed as rolled-back and the previously active
        generation stays active.

        Returns:
            The generation in active state

        Raises:
            ActivationError: If the generation is not pending or the switch fails
        """
        host_id = generation.host_id
        with self.lock_for(host_id):
            generations = self._load(host_id)
            current = generations.get(generation.sequence)
            if current is None:
                raise ActivationError(
                    f"Generation #{generation.sequence} was never recorded",
                    host_id=host_id,
                )
            if current.status != GenerationStatus.PENDING:
                raise ActivationError(
                    f"Generation #{current.sequence} is {current.status.value}, "
                    "only pending generations can be activated",
                    host_id=host_id,
                )

            previous = self._active_of(generations)

            if switch is not None:
                try:
                    switch(current)
                except Exception as e:
                    failed = self._transition(
                        current,
                        GenerationStatus.ROLLED_BACK,
                        reason=f"activation failed: {e}",
                    )
                    self._log(host_id).append("activation-failed", [failed])
                    self._host_log(
                        host_id,
                        f"Activation of #{current.sequence} failed, "
                        f"host stays on #{previous.sequence if previous else 'none'}",
                        "ERROR",
                    )
                    if isinstance(e, ActivationError):
                        raise
                    raise ActivationError(str(e), host_id=host_id) from e

            activated = self._transition(
                current, GenerationStatus.ACTIVE, timestamp=self.clock()
            )
            records = [activated]
            if previous is not None:
                records.append(
                    self._transition(previous, GenerationStatus.SUPERSEDED)
                )
            self._log(host_id).append("activate", records)

        self._host_log(host_id, f"Activated generation #{activated.sequence}")
        return activated

    def _validate_rollback(
        self, host_id: str, generations: Dict[int, Generation], target: int
    ) -> Generation:
        """Return the target generation, or raise RollbackError"""
        active = self._active_of(generations)

        if target not in generations:
            raise RollbackError(
                RollbackError.UNKNOWN_GENERATION,
                f"Generation #{target} does not exist",
                host_id=host_id,
            )
        if active is None:
            raise RollbackError(
                RollbackError.NO_ACTIVE,
                "Host has no active generation to roll back from",
                host_id=host_id,
            )
        if active.sequence == target:
            raise RollbackError(
                RollbackError.ALREADY_ACTIVE,
                f"Generation #{target} is already active",
                host_id=host_id,
            )

        eligible = {
            g.sequence: g
            for g in self._walk_predecessors(generations, active)
            if g.status == GenerationStatus.SUPERSEDED
        }
        if target not in eligible:
            raise RollbackError(
                RollbackError.UNREACHABLE,
                f"Generation #{target} is not reachable from active "
                f"generation #{active.sequence}",
                host_id=host_id,
                context=(
                    "Reachable: "
                    + (", ".join(f"#{s}" for s in sorted(eligible)) or "none")
                ),
            )

        target_generation = eligible[target]
        if not self.artifact_exists(target_generation):
            raise RollbackError(
                RollbackError.ARTIFACT_MISSING,
                f"Artifact of generation #{target} is gone",
                host_id=host_id,
                context=target_generation.artifact_path,
            )
        return target_generation

    def check_rollback(self, host_id: str, target: int) -> Generation:
        """
        Validate a rollback without performing it.

        Returns:
            The target generation

        Raises:
            RollbackError: If rollback(host_id, target) would be refused
        """
        with self.lock_for(host_id):
            return self._validate_rollback(host_id, self._load(host_id), target)

    def rollback(
        self, host_id: str, target: int, switch: Optional[SwitchFn] = None
    ) -> Generation:
        """
        Re-activate the artifact of an earlier generation without rebuilding.

        The target must be reachable from the active generation through
        predecessor links and must not have been rolled back itself. A new
        generation restoring the target's artifact becomes active; every
        later generation that was live or superseded becomes rolled-back.
        The target's own record keeps its status.

        Returns:
            The new active generation (restored_from == target)

        Raises:
            RollbackError: If the rollback is refused (nothing changed)
            ActivationError: If the switch fails (nothing changed)
        """
        with self.lock_for(host_id):
            generations = self._load(host_id)
            target_generation = self._validate_rollback(host_id, generations, target)

            latest = max(generations)
            restored = Generation(
                host_id=host_id,
                sequence=latest + 1,
                content_hash=target_generation.content_hash,
                artifact_path=target_generation.artifact_path,
                timestamp=self.clock(),
                status=GenerationStatus.PENDING,
                predecessor=latest,
                restored_from=target,
            )

            if switch is not None:
                try:
                    switch(restored)
                except ActivationError:
                    raise
                except Exception as e:
                    raise ActivationError(str(e), host_id=host_id) from e

            records = [self._transition(restored, GenerationStatus.ACTIVE)]
            for sequence in sorted(generations):
                generation = generations[sequence]
                if sequence > target and generation.status in (
                    GenerationStatus.ACTIVE,
                    GenerationStatus.SUPERSEDED,
                ):
                    records.append(
                        self._transition(
                            generation,
                            GenerationStatus.ROLLED_BACK,
                            reason=f"rolled back to #{target}",
                        )
                    )
            self._log(host_id).append("rollback", records)

        self._host_log(
            host_id,
            f"Rolled back to #{target} as generation #{restored.sequence}",
        )
        return records[0]
