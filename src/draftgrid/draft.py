"""Draft reconciliation for in-place grid editing.

:class:`DraftEngine` keeps three pieces of state for one view:

* the :class:`~draftgrid.snapshot.SnapshotStore` holding the last fetched
  collection,
* a working copy of that collection (the *draft*) that operators edit while
  edit mode is active,
* a ledger of pending ``(record id, field) -> raw value`` edits.

Edits never touch the snapshot.  :meth:`DraftEngine.commit_all` coerces the
ledger into one patch per record, sends the patches through the gateway one
at a time and refreshes the snapshot once every patch went through.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Hashable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from .coercion import build_patch
from .errors import (
    CommitError,
    CommitInProgress,
    EditModeError,
    GatewayError,
    NotEditable,
    UnknownRecordError,
)
from .fields import FieldRegistry
from .gateway import CollectionGateway
from .snapshot import Record, SnapshotStore

logger = logging.getLogger(__name__)

CommitPolicy = Literal["fail_fast", "continue"]
COMMIT_POLICIES: tuple[str, ...] = ("fail_fast", "continue")


class EditState(str, Enum):
    """Lifecycle of a grid's edit session."""

    VIEWING = "viewing"
    EDITING = "editing"
    EDITING_DIRTY = "editing-dirty"


@dataclass
class CommitReport:
    """Outcome of one :meth:`DraftEngine.commit_all` run."""

    policy: str
    total: int = 0
    succeeded: list[Hashable] = field(default_factory=list)
    failed: list[tuple[Hashable, str]] = field(default_factory=list)
    skipped: list[Hashable] = field(default_factory=list)
    refreshed: bool = False
    refresh_error: str | None = None

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def summary(self) -> str:
        text = f"updated {len(self.succeeded)} of {self.total} records"
        if not self.failed:
            return text
        if len(self.failed) == 1:
            rid, reason = self.failed[0]
            return f"{text}; failed at record {rid}: {reason}"
        ids = ", ".join(str(rid) for rid, _ in self.failed)
        reasons = "; ".join(f"{rid}: {reason}" for rid, reason in self.failed)
        return f"{text}; failed at records {ids} ({reasons})"


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of a snapshot refresh."""

    applied: bool
    deferred: bool
    count: int


class DraftEngine:
    """Stage field edits across many records and flush them as a batch."""

    def __init__(
        self,
        fields: FieldRegistry,
        gateway: CollectionGateway,
        *,
        snapshot: SnapshotStore | None = None,
        policy: CommitPolicy = "fail_fast",
    ) -> None:
        if policy not in COMMIT_POLICIES:
            raise ValueError(f"unknown commit policy: {policy!r}")
        self.fields = fields
        self.gateway = gateway
        self.snapshot = snapshot or SnapshotStore()
        self.policy: CommitPolicy = policy
        self._draft: dict[Hashable, Record] | None = None
        self._ledger: dict[Hashable, dict[str, Any]] = {}
        self._editing = False
        self._committing = False
        self._deferred: list[Record] | None = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Read-only helpers
    # ------------------------------------------------------------------
    @property
    def state(self) -> EditState:
        with self._lock:
            if not self._editing:
                return EditState.VIEWING
            if self._ledger:
                return EditState.EDITING_DIRTY
            return EditState.EDITING

    @property
    def editing(self) -> bool:
        return self._editing

    @property
    def committing(self) -> bool:
        return self._committing

    @property
    def is_dirty(self) -> bool:
        return bool(self._ledger)

    @property
    def stale(self) -> bool:
        """``True`` while the snapshot carries committed values not yet refetched."""
        return self.snapshot.stale

    @property
    def has_deferred(self) -> bool:
        return self._deferred is not None

    def pending(self) -> dict[Hashable, dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._ledger)

    def pending_count(self) -> int:
        with self._lock:
            return sum(len(edits) for edits in self._ledger.values())

    def dirty_ids(self) -> list[Hashable]:
        with self._lock:
            return [rid for rid, edits in self._ledger.items() if edits]

    def draft(self) -> dict[Hashable, Record]:
        """Return a copy of the working draft.

        Outside edit mode there is no separate working copy and the snapshot
        is returned instead.
        """
        with self._lock:
            if self._draft is None:
                return self.snapshot.clone()
            return copy.deepcopy(self._draft)

    def visible_records(self) -> list[Record]:
        """Records to render: the draft while editing, the snapshot otherwise."""
        with self._lock:
            if self._editing and self._draft is not None:
                return [copy.deepcopy(r) for r in self._draft.values()]
            return self.snapshot.records()

    # ------------------------------------------------------------------
    # Edit mode
    # ------------------------------------------------------------------
    def enter_edit_mode(self) -> None:
        with self._lock:
            if self._editing:
                raise EditModeError("edit mode is already active")
            self._ledger.clear()
            self._apply_deferred_if_clean()
            self._draft = self.snapshot.clone()
            self._editing = True
        logger.debug("entered edit mode with %d records", len(self.snapshot))

    def exit_edit_mode(self, discard: bool = False) -> None:
        """Leave edit mode.

        With ``discard=True`` every pending edit is dropped and the draft is
        reset to the snapshot.  Otherwise the draft and ledger are left as
        they are and only further :meth:`set_field` calls are refused.
        """
        with self._lock:
            if discard:
                dropped = sum(len(e) for e in self._ledger.values())
                self._ledger.clear()
                self._draft = None
                if dropped:
                    logger.info("discarded %d pending edits", dropped)
            self._editing = False
            self._apply_deferred_if_clean()
        logger.debug("left edit mode (discard=%s)", discard)

    def set_field(self, rid: Hashable, name: str, raw: Any) -> None:
        """Record an edit of *name* on record *rid*.

        The raw value is kept as typed; coercion happens at commit time.  A
        second edit of the same cell replaces the first.
        """
        with self._lock:
            if not self._editing or self._draft is None:
                raise NotEditable("edit mode is not active")
            if not self.fields.is_editable(name):
                raise NotEditable(f"field {name!r} is not editable")
            if rid not in self._draft:
                raise UnknownRecordError(f"unknown record: {rid!r}")
            self._draft[rid][name] = raw
            self._ledger.setdefault(rid, {})[name] = raw
        logger.debug("pending %r.%s=%r", rid, name, raw)

    def discard_field(self, rid: Hashable, name: str) -> bool:
        """Drop the pending edit for one cell and restore the snapshot value.

        Returns ``False`` when there was nothing pending for that cell.
        """
        with self._lock:
            edits = self._ledger.get(rid)
            if not edits or name not in edits:
                return False
            del edits[name]
            if not edits:
                del self._ledger[rid]
            if self._draft is not None and rid in self._draft:
                self._restore_cell(rid, name)
            self._apply_deferred_if_clean()
        logger.debug("discarded pending %r.%s", rid, name)
        return True

    def _restore_cell(self, rid: Hashable, name: str) -> None:
        assert self._draft is not None
        if rid in self.snapshot and name in self.snapshot.get(rid):
            self._draft[rid][name] = self.snapshot.value(rid, name)
        else:
            self._draft[rid].pop(name, None)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------
    def commit_all(self, policy: CommitPolicy | None = None) -> CommitReport:
        """Send every pending edit to the gateway.

        Patches are coerced up front; an :class:`~draftgrid.errors.InvalidFieldValue`
        aborts the commit before any remote call.  Records are then updated
        one at a time.  Under ``"fail_fast"`` the first gateway failure stops
        the batch; under ``"continue"`` every record is attempted.  Records
        that went through leave the ledger, the others stay.  When anything
        failed a :class:`~draftgrid.errors.CommitError` carrying the report is
        raised.
        """
        policy = policy or self.policy
        if policy not in COMMIT_POLICIES:
            raise ValueError(f"unknown commit policy: {policy!r}")
        with self._lock:
            if self._committing:
                raise CommitInProgress("a commit is already running")
            self._committing = True
        try:
            return self._commit(policy)
        finally:
            with self._lock:
                self._committing = False
                self._apply_deferred_if_clean()

    def _commit(self, policy: str) -> CommitReport:
        with self._lock:
            batch = [(rid, dict(edits)) for rid, edits in self._ledger.items() if edits]
        report = CommitReport(policy=policy, total=len(batch))
        if not batch:
            return report
        patches = [(rid, build_patch(self.fields, edits), edits) for rid, edits in batch]
        logger.info("committing %d records (%s)", len(patches), policy)
        written: list[tuple[Hashable, dict[str, Any]]] = []

        for index, (rid, patch, sent) in enumerate(patches):
            try:
                self.gateway.update_by_id(rid, patch)
            except GatewayError as exc:
                logger.error("update of record %r failed: %s", rid, exc)
                report.failed.append((rid, str(exc)))
                if policy == "fail_fast":
                    report.skipped = [r for r, _, _ in patches[index + 1 :]]
                    break
                continue
            report.succeeded.append(rid)
            written.append((rid, patch))
            with self._lock:
                self._settle(rid, sent)

        if not report.ok:
            logger.warning("commit incomplete: %s", report.summary())
            raise CommitError(report)

        try:
            records = self._fetch_all()
        except GatewayError as exc:
            logger.error("refresh after commit failed: %s", exc)
            report.refresh_error = str(exc)
            with self._lock:
                # show what the API accepted until a refresh succeeds
                for rid, patch in written:
                    self.snapshot.patch(rid, patch)
                if not self._ledger:
                    self._editing = False
                    self._draft = None
            return report
        with self._lock:
            if self._ledger:
                # edits made while the commit was running survive the refresh
                self._rebase(records)
            else:
                self._apply(records)
                self._editing = False
                self._draft = None
            report.refreshed = True
        logger.info("commit done: %s", report.summary())
        return report

    def _settle(self, rid: Hashable, sent: Mapping[str, Any]) -> None:
        """Remove the ledger entries for *rid* that were just written."""
        edits = self._ledger.get(rid)
        if edits is None:
            return
        for name, raw in sent.items():
            if name in edits and edits[name] == raw:
                del edits[name]
        if not edits:
            del self._ledger[rid]

    # ------------------------------------------------------------------
    # Snapshot refresh
    # ------------------------------------------------------------------
    def _fetch_all(self) -> list[Record]:
        records = list(self.gateway.fetch_all())
        try:
            self.snapshot.index(records)
        except ValueError as exc:
            raise GatewayError(f"malformed collection: {exc}") from exc
        return records

    def refresh(self) -> RefreshResult:
        """Fetch the collection and replace the snapshot.

        While edits are pending (or a commit is running) the fetched records
        are held back so the draft is not silently replaced; they are applied
        on the next return to a clean state or through :meth:`apply_deferred`.
        """
        records = self._fetch_all()
        with self._lock:
            if self._committing or self.state is EditState.EDITING_DIRTY:
                self._deferred = records
                logger.warning(
                    "snapshot refresh deferred: %d pending edits",
                    self.pending_count(),
                )
                return RefreshResult(applied=False, deferred=True, count=len(records))
            self._apply(records)
        logger.info("snapshot refreshed with %d records", len(records))
        return RefreshResult(applied=True, deferred=False, count=len(records))

    def apply_deferred(self, *, rebase: bool = False) -> bool:
        """Apply a held-back refresh.

        With ``rebase=True`` the refresh is applied even while edits are
        pending: the draft is rebuilt from the new snapshot and the pending
        edits are replayed on top of it.  Edits for records that no longer
        exist are dropped.
        """
        with self._lock:
            if self._deferred is None or self._committing:
                return False
            if self._ledger and self._editing:
                if not rebase:
                    return False
                self._rebase(self._deferred)
                return True
            self._apply(self._deferred)
            return True

    def delete_record(self, rid: Hashable) -> None:
        """Delete *rid* remotely and reconcile the local copies."""
        with self._lock:
            if self._committing:
                raise CommitInProgress("cannot delete while a commit is running")
        self.gateway.delete_by_id(rid)
        logger.info("deleted record %r", rid)
        records = self._fetch_all()
        with self._lock:
            self._ledger.pop(rid, None)
            self._rebase(records)

    def _apply(self, records: list[Record]) -> None:
        self.snapshot.replace(records)
        self._deferred = None
        if self._editing:
            self._draft = self.snapshot.clone()
            self._ledger.clear()

    def _rebase(self, records: list[Record]) -> None:
        self.snapshot.replace(records)
        self._deferred = None
        if not self._editing:
            return
        draft = self.snapshot.clone()
        for rid in list(self._ledger):
            if rid not in draft:
                logger.warning("dropping pending edits for vanished record %r", rid)
                del self._ledger[rid]
                continue
            draft[rid].update(self._ledger[rid])
        self._draft = draft

    def _apply_deferred_if_clean(self) -> None:
        if self._deferred is None or self._committing:
            return
        if self._ledger:
            return
        self._apply(self._deferred)
        logger.info("applied deferred snapshot refresh")


__all__ = [
    "COMMIT_POLICIES",
    "CommitPolicy",
    "CommitReport",
    "DraftEngine",
    "EditState",
    "RefreshResult",
]
