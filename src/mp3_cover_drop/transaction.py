from __future__ import annotations

import logging
import os
from typing import Optional, Sequence

from mp3_cover_drop.config import CoverDropConfig
from mp3_cover_drop.cover_editor import CoverArtEditor
from mp3_cover_drop.cover_types import (
    ConflictAction,
    CoverArtSnapshot,
    OutcomeStatus,
    Tag,
    TransactionOutcome,
    TransactionState,
)
from mp3_cover_drop.errors import (
    CoverDropError,
    DualFailureError,
    ImageLoadError,
    TagEncodeError,
    TransactionStateError,
)
from mp3_cover_drop.mp3_file import Mp3File
from mp3_cover_drop.tag_codec import TagCodec

log = logging.getLogger(__name__)


class TagTransaction:
    """Snapshot -> mutate -> commit/rollback for the covers of one MP3 file.

    IDLE -> SNAPSHOTTED -> MUTATED -> COMMITTED
                                   -> ROLLED_BACK
    any step may end in FAILED. COMMITTED, ROLLED_BACK and FAILED are
    terminal; the file handle is closed when one is reached.
    """

    def __init__(
        self,
        path: str,
        config: Optional[CoverDropConfig] = None,
        editor: Optional[CoverArtEditor] = None,
        codec: Optional[TagCodec] = None,
    ) -> None:
        self.path = path
        self.config = config or CoverDropConfig()
        self.editor = editor or CoverArtEditor(self.config)
        self.codec = codec or TagCodec(self.config)

        self.state = TransactionState.IDLE
        self.outcome: Optional[TransactionOutcome] = None
        self.created_tag = False
        self.added = 0
        self.removed = 0

        self._file = Mp3File(path)
        self._base: Optional[Tag] = None
        self._tag: Optional[Tag] = None
        self._snapshot: Optional[CoverArtSnapshot] = None

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def snapshot(self) -> Optional[CoverArtSnapshot]:
        return self._snapshot

    @property
    def tag(self) -> Optional[Tag]:
        """The working (possibly mutated, not yet written) tag."""
        return self._tag

    def __enter__(self) -> "TagTransaction":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._file.close()

    # ---------- internals ----------

    def _require(self, *states: TransactionState) -> None:
        if self.state not in states:
            raise TransactionStateError(
                f"{self.path}: cannot do that in state {self.state.value}"
            )

    def _finish(
        self, outcome: TransactionOutcome, state: TransactionState
    ) -> TransactionOutcome:
        self.outcome = outcome
        self.state = state
        self.close()
        return outcome

    def _fail(
        self, error: BaseException, reason: str, dual: bool = False
    ) -> TransactionOutcome:
        log.error(f"[FAILED] {self.name}: {reason}")
        return self._finish(
            TransactionOutcome(
                status=OutcomeStatus.FAILED,
                path=self.path,
                reason=reason,
                error=error,
                dual_failure=dual,
            ),
            TransactionState.FAILED,
        )

    def _discard_created_tag(self) -> Optional[str]:
        """Remove the empty tag `begin` persisted; returns a problem note or None."""
        if not self.created_tag:
            return None
        try:
            self.codec.delete_tag(self._file.fileobj)
        except CoverDropError as e:
            log.error(
                f"[TAG-CREATE] {self.name}: could not remove the empty tag again: {e!r}"
            )
            return f"the empty tag created for this edit is still in the file ({e})"
        self.created_tag = False
        log.info(f"[TAG-CREATE] {self.name}: removed the empty tag again")
        return None

    # ---------- steps ----------

    def begin(self) -> CoverArtSnapshot:
        """Open the file, read (or create and persist) its tag, snapshot covers."""
        self._require(TransactionState.IDLE)
        try:
            self._file.open()
            tag = self.codec.read_tag(self._file.fileobj)
            if tag is None:
                tag = Tag(version=self.config.write_version)
                self.codec.write_tag(self._file.fileobj, tag)
                self.created_tag = True
                log.info(f"[TAG-CREATE] {self.name}: no ID3v2 tag, wrote an empty one")
        except CoverDropError as e:
            self._fail(e, f"cannot read the tag: {e}")
            raise

        self._base = tag
        self._tag = tag.copy()
        self._snapshot = CoverArtSnapshot.capture(tag)
        self.state = TransactionState.SNAPSHOTTED
        log.info(f"[BEGIN] {self.name}: {len(self._snapshot)} existing cover(s)")
        return self._snapshot

    def mutate(self, clear: bool = False, images: Sequence[str] = ()) -> Tag:
        """Clear and/or append covers in memory. Nothing is written here."""
        self._require(TransactionState.SNAPSHOTTED, TransactionState.MUTATED)
        tag = self._tag
        try:
            if clear:
                tag = self.editor.clear_covers(tag)
            if images:
                tag = self.editor.append_covers(tag, images)
        except ImageLoadError as e:
            reason = f"cannot load image: {e}"
            note = self._discard_created_tag()
            if note:
                reason = f"{reason}; {note}"
            self._fail(e, reason)
            raise

        if clear:
            self.removed = len(self._snapshot)
            self.added = 0
        self.added += len(images)
        self._tag = tag
        self.state = TransactionState.MUTATED
        return tag

    def commit(self) -> TransactionOutcome:
        """Replace the on-disk tag with the working tag.

        A write fault triggers `rollback`; if that fails too a
        DualFailureError is raised.
        """
        self._require(TransactionState.SNAPSHOTTED, TransactionState.MUTATED)
        fh = self._file.fileobj
        # pre-write check only: delete_tag must not run for a tag that cannot
        # be written back; write_tag renders again from the same Tag
        try:
            self.codec.render_tag(self._tag)
        except TagEncodeError as e:
            self._fail(e, f"cannot encode the new tag: {e}")
            raise

        try:
            self.codec.delete_tag(fh)
            self.codec.write_tag(fh, self._tag, conflict=ConflictAction.REPLACE)
        except CoverDropError as e:
            log.error(
                f"[COMMIT] {self.name}: {e!r}, restoring {len(self._snapshot)} cover(s)"
            )
            return self.rollback(reason=f"writing covers failed: {e}", cause=e)

        total = len(self.editor.get_covers(self._tag))
        log.info(
            f"[COMMIT] {self.name}: added={self.added} removed={self.removed} total={total}"
        )
        return self._finish(
            TransactionOutcome(
                status=OutcomeStatus.COMMITTED,
                path=self.path,
                added=self.added,
                removed=self.removed,
                total=total,
            ),
            TransactionState.COMMITTED,
        )

    def rollback(
        self,
        reason: str = "rolled back by caller",
        cause: Optional[BaseException] = None,
    ) -> TransactionOutcome:
        """Write back the tag as read by `begin`, with exactly the snapshot covers."""
        self._require(TransactionState.SNAPSHOTTED, TransactionState.MUTATED)
        restored = self._snapshot.apply(self._base)
        try:
            self.codec.write_tag(
                self._file.fileobj, restored, conflict=ConflictAction.REPLACE
            )
        except CoverDropError as e:
            err = DualFailureError(self.path, cause, e, len(self._snapshot))
            self._fail(err, str(err), dual=True)
            raise err from e

        self._tag = restored
        log.info(f"[ROLLBACK] {self.name}: restored {len(self._snapshot)} cover(s)")
        return self._finish(
            TransactionOutcome(
                status=OutcomeStatus.ROLLED_BACK,
                path=self.path,
                total=len(self._snapshot),
                reason=reason,
                error=cause,
            ),
            TransactionState.ROLLED_BACK,
        )


def run_cover_drop(
    path: str,
    images: Sequence[str],
    replace: bool = False,
    config: Optional[CoverDropConfig] = None,
) -> TransactionOutcome:
    """Add (or, with `replace`, swap in) cover images for one MP3 file.

    Never raises the package's errors; inspect the returned outcome instead.
    """
    txn = TagTransaction(path, config=config)
    try:
        txn.begin()
        txn.mutate(clear=replace, images=images)
        return txn.commit()
    except CoverDropError as e:
        if txn.outcome is None:
            txn._fail(e, str(e))
        return txn.outcome
    finally:
        txn.close()
