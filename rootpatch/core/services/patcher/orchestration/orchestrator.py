"""
L5 Orchestration — the single-operation state machine.

One privileged operation at a time:

    idle → resolving → compiling → executing → completed | failed → idle

The lock guards the transition out of ``idle``; a request that arrives
in any other state is rejected with ``OperationInProgressError``.
Resolution and precondition failures are raised to the caller after
the state has returned to idle.  Execution failures are never raised
here: they come back as an unsuccessful ``OperationOutcome``.

Observers get ``(state, snapshot_dict)`` through ``add_listener``;
nothing mutable leaves this class.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from enum import StrEnum
from typing import Any, Callable

from rootpatch.adapters.privilege.base import PrivilegeBoundary
from rootpatch.core.config.settings import Settings
from rootpatch.core.errors import (
    OperationInProgressError,
    PreconditionError,
    ResolutionError,
    RootPatchError,
)
from rootpatch.core.models.outcome import OperationOutcome
from rootpatch.core.models.request import (
    InstallRequest,
    MergeRequest,
    OperationKind,
    OperationRequest,
)
from rootpatch.core.models.step import StepKind, StepSequence
from rootpatch.core.models.volume import VolumeContext
from rootpatch.core.observability.event_log import EventLog
from rootpatch.core.observability.progress import ProgressEstimator
from rootpatch.core.persistence.audit import AuditEntry, AuditWriter
from rootpatch.core.services.patcher.data import constants as C
from rootpatch.core.services.patcher.detection.volume import VolumeResolver
from rootpatch.core.services.patcher.execution.privileged import PrivilegedExecutor
from rootpatch.core.services.patcher.execution.subprocess_runner import (
    HostRunner,
    run_command,
)
from rootpatch.core.services.patcher.resolver.compiler import (
    DestinationProbe,
    OperationCompiler,
    volume_probe,
)

logger = logging.getLogger(__name__)


class OperationState(StrEnum):
    IDLE = "idle"
    RESOLVING = "resolving"
    COMPILING = "compiling"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


StateListener = Callable[[OperationState, dict[str, Any]], None]

# (start, success, failure) event keys per operation kind
_EVENT_KEYS: dict[OperationKind, tuple[str, str, str]] = {
    OperationKind.INSTALL: ("starting_install_kext", "install_completed", "error_installed_failed"),
    OperationKind.MERGE_KDK: ("starting_merging", "kdk_merged_successfully", "error_merged_kdk_failed"),
    OperationKind.REBUILD_CACHE: ("starting_rebuild", "rebuild_successfully", "rebuild_failed"),
    OperationKind.CREATE_SNAPSHOT: ("starting_snapshot", "snapshot_successfully", "snapshot_failed"),
    OperationKind.RESTORE_SNAPSHOT: ("last_sealed_snapshot", "revert_successfully", "revert_failed"),
}


class PatchOrchestrator:
    """Run privileged operations one at a time.

    Args:
        resolver: Builds a fresh ``VolumeContext`` per operation.
        compiler: Turns requests into step sequences.
        executor: Runs a sequence through the privilege boundary.
        event_log: Shared bounded event log (seeded with ``waiting``).
        progress: Liveness heartbeat; created from defaults if omitted.
        audit: Optional NDJSON ledger.
        runner: Host runner used for the restart request.
    """

    def __init__(
        self,
        *,
        resolver: VolumeResolver,
        compiler: OperationCompiler,
        executor: PrivilegedExecutor,
        event_log: EventLog,
        progress: ProgressEstimator | None = None,
        audit: AuditWriter | None = None,
        runner: HostRunner = run_command,
    ) -> None:
        self.resolver = resolver
        self.compiler = compiler
        self.executor = executor
        self.events = event_log
        self.progress = progress or ProgressEstimator(on_change=self._on_progress)
        self.audit = audit
        self._run_host = runner

        self._lock = threading.RLock()
        self._state = OperationState.IDLE
        self._operation_id = ""
        self._kind: OperationKind | None = None
        self._detached = False
        self._last_outcome: OperationOutcome | None = None
        self._listeners: list[StateListener] = []
        self._pool: ThreadPoolExecutor | None = None

        self.events.append("waiting")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        boundary: PrivilegeBoundary,
        *,
        runner: HostRunner = run_command,
        probe: DestinationProbe = volume_probe,
        event_log: EventLog | None = None,
    ) -> PatchOrchestrator:
        """Wire the default collaborators from ``settings``."""
        events = event_log or EventLog(settings.event_log_capacity)
        orchestrator = cls(
            resolver=VolumeResolver(
                runner,
                mount_point=settings.mount_point,
                sealed_os_threshold=settings.sealed_os_threshold,
                event_log=events,
            ),
            compiler=OperationCompiler(
                backup_dir=settings.backup_path,
                probe=probe,
                mount_point=settings.mount_point,
                event_log=events,
            ),
            executor=PrivilegedExecutor(boundary, events),
            event_log=events,
            audit=AuditWriter(settings.audit_file),
            runner=runner,
        )
        p = settings.progress
        orchestrator.progress = ProgressEstimator(
            interval_s=p.interval_s,
            step=p.step,
            cap=p.cap,
            grace_s=p.grace_s,
            on_change=orchestrator._on_progress,
        )
        return orchestrator

    # ── Read ────────────────────────────────────────────────────

    @property
    def state(self) -> OperationState:
        with self._lock:
            return self._state

    @property
    def busy(self) -> bool:
        return self.state != OperationState.IDLE

    @property
    def last_outcome(self) -> OperationOutcome | None:
        with self._lock:
            return self._last_outcome

    def snapshot(self) -> dict[str, Any]:
        """Immutable view of the current state for observers."""
        with self._lock:
            return {
                "state": self._state.value,
                "operation_id": self._operation_id,
                "kind": self._kind.value if self._kind else None,
                "detached": self._detached,
                "progress": self.progress.value,
                "last_outcome": self._last_outcome.to_dict() if self._last_outcome else None,
                "event_seq": self.events.seq,
            }

    def add_listener(self, callback: StateListener) -> Callable[[], None]:
        """Register a state observer; returns a function that removes it."""
        with self._lock:
            self._listeners.append(callback)

        def remove() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return remove

    # ── Operations ──────────────────────────────────────────────

    def plan(self, request: OperationRequest) -> tuple[VolumeContext, StepSequence]:
        """Resolve and compile without executing (dry run).

        Raises:
            OperationInProgressError: Another operation is outstanding.
            ResolutionError / PreconditionError: As for ``run``.
        """
        with self._lock:
            if self._state != OperationState.IDLE:
                raise OperationInProgressError(
                    f"Operation {self._operation_id} is still {self._state}",
                    key="operation_in_progress",
                )
        request.validate_request()
        volume = self.resolver.resolve()
        return volume, self.compiler.compile(request, volume)

    def run(self, request: OperationRequest) -> OperationOutcome:
        """Run one operation to completion on the calling thread.

        Raises:
            OperationInProgressError: Another operation is outstanding.
            ResolutionError: The root volume could not be resolved.
            PreconditionError: The request or its compiled form was rejected.
        """
        op_id = self._begin(request)
        kind = request.kind
        start_key, ok_key, fail_key = _EVENT_KEYS[kind]

        try:
            request.validate_request()
            self.events.append(start_key, *self._start_params(request))
            if isinstance(request, InstallRequest):
                self.events.append("options", *self._install_flags(request))

            volume = self.resolver.resolve()

            self._transition(OperationState.COMPILING)
            steps = self.compiler.compile(request, volume)
        except (ResolutionError, PreconditionError) as e:
            self._reject(request, op_id, fail_key, e)
            raise
        except Exception:
            logger.exception("Operation %s aborted before execution", op_id)
            self._transition(OperationState.IDLE)
            raise

        self._transition(OperationState.EXECUTING)
        if StepKind.REBUILD_CACHE in steps.kinds:
            self.events.append("slow_step")
        self.progress.start()
        try:
            outcome = self.executor.execute(steps, kind, op_id)
        except Exception:
            self.progress.stop()
            self._transition(OperationState.IDLE)
            raise

        with self._lock:
            detached = self._detached
        if detached:
            outcome = outcome.model_copy(update={"detached": True})

        if outcome.succeeded:
            self.progress.complete()
            self.events.append(ok_key)
            self.events.append("op_successfully")
        else:
            self.progress.stop()
            self.events.append(fail_key, outcome.diagnostic_output or "")
            self.events.append("op_failed")

        self._record(request, outcome, volume, steps)
        self._finish(outcome)
        return outcome

    def submit(self, request: OperationRequest) -> Future[OperationOutcome]:
        """Run on the single background worker.

        Rejection of a busy orchestrator happens when the worker picks
        the request up and surfaces through the future.
        """
        with self._lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="rootpatch")
            pool = self._pool
        return pool.submit(self.run, request)

    def cancel(self) -> bool:
        """Stop tracking the in-flight operation.

        The privileged process cannot be interrupted; it keeps running
        and its outcome is still recorded, flagged ``detached``.

        Returns:
            True if an operation was being tracked.
        """
        with self._lock:
            if self._state not in (
                OperationState.RESOLVING,
                OperationState.COMPILING,
                OperationState.EXECUTING,
            ):
                return False
            self._detached = True
            op_id = self._operation_id
        self.progress.stop()
        self.events.append("op_canceled", op_id)
        logger.warning("Stopped tracking operation %s; it keeps running", op_id)
        self._notify()
        return True

    def request_restart(self, confirm: bool) -> dict[str, Any]:
        """Restart the host, only when ``confirm`` is true."""
        if not confirm:
            self.events.append("restart_later")
            return {"ok": True, "restarted": False}
        if self.busy:
            raise OperationInProgressError(
                "Cannot restart while an operation is outstanding",
                key="operation_in_progress",
            )
        self.events.append("restart_now")
        result = self._run_host([C.OSASCRIPT, "-e", C.RESTART_APPLESCRIPT], timeout=60)
        if not result.get("ok"):
            logger.error("Restart request failed: %s", result.get("error"))
            return {"ok": False, "restarted": False, "error": result.get("error", "")}
        return {"ok": True, "restarted": True}

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=wait)
        self.progress.stop()

    # ── State transitions ───────────────────────────────────────

    def _begin(self, request: OperationRequest) -> str:
        with self._lock:
            if self._state != OperationState.IDLE:
                raise OperationInProgressError(
                    f"Operation {self._operation_id} is still {self._state}",
                    key="operation_in_progress",
                )
            self._operation_id = uuid.uuid4().hex[:12]
            self._kind = request.kind
            self._detached = False
            self._state = OperationState.RESOLVING
            op_id = self._operation_id
        logger.info("Operation %s (%s) started", op_id, request.kind)
        self._notify()
        return op_id

    def _transition(self, state: OperationState) -> None:
        with self._lock:
            self._state = state
        self._notify()

    def _finish(self, outcome: OperationOutcome) -> None:
        with self._lock:
            self._last_outcome = outcome
            self._state = OperationState.COMPLETED if outcome.succeeded else OperationState.FAILED
        self._notify()
        self._transition(OperationState.IDLE)

    def _reject(
        self,
        request: OperationRequest,
        op_id: str,
        fail_key: str,
        error: RootPatchError,
    ) -> None:
        key = getattr(error, "key", "") or fail_key
        self.events.append(key, str(error))
        diagnostic = getattr(error, "diagnostic", "")
        if diagnostic:
            self.events.plain(diagnostic)
        logger.error("Operation %s rejected: %s", op_id, error)

        if self.audit is not None:
            self.audit.write(AuditEntry(
                operation_id=op_id,
                operation_type=request.kind.value,
                preset=getattr(request, "preset_name", None) or "",
                status="rejected",
                errors=[f"{type(error).__name__}: {error}"],
            ))

        with self._lock:
            self._state = OperationState.FAILED
        self._notify()
        self._transition(OperationState.IDLE)

    # ── Internals ───────────────────────────────────────────────

    def _start_params(self, request: OperationRequest) -> list[str]:
        if isinstance(request, InstallRequest):
            return [str(len(request.files) + len(request.merge_operations))]
        if isinstance(request, MergeRequest):
            return [request.kdk_path, "full" if request.full_merge else "extensions"]
        return []

    @staticmethod
    def _install_flags(request: InstallRequest) -> list[str]:
        flags = [
            name for name, on in (
                ("force", request.force_overwrite),
                ("backup", request.backup_existing),
                ("rebuild", request.rebuild_cache),
                ("le", request.install_to_legacy_extensions_dir),
                ("private_frameworks", request.install_to_private_frameworks),
                ("kdk", request.merge_kdk),
            ) if on
        ]
        return flags or ["none_out"]

    def _record(
        self,
        request: OperationRequest,
        outcome: OperationOutcome,
        volume: VolumeContext,
        steps: StepSequence,
    ) -> None:
        if self.audit is None:
            return
        errors = []
        if not outcome.succeeded:
            errors.append(
                f"ExecutionError: exit {outcome.exit_code}: {outcome.diagnostic_output or ''}".rstrip()
            )
        self.audit.write(AuditEntry(
            operation_id=outcome.operation_id,
            operation_type=request.kind.value,
            preset=getattr(request, "preset_name", None) or "",
            mount_path=volume.mount_path,
            volume=volume.resolved_identifier,
            step_labels=[s.label for s in steps],
            status=outcome.status,
            exit_code=outcome.exit_code,
            requires_restart=outcome.requires_restart,
            detached=outcome.detached,
            duration_ms=outcome.duration_ms,
            errors=errors,
        ))

    def _on_progress(self, value: float) -> None:
        self._notify()

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
            state = self._state
        if not listeners:
            return
        snap = self.snapshot()
        for listener in listeners:
            try:
                listener(state, snap)
            except Exception as e:
                logger.warning("State listener failed: %s", e)
