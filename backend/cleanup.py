"""Cleanup — the reaper that reclaims expired, exhausted and orphaned storage.

Run standalone: python cleanup.py [--loop]
Started as a background thread by the API when CLEANUP_INTERVAL > 0.

The reaper only reclaims storage. Expiry is enforced by the access gate at
read time, so a late or skipped pass never lets an expired file through.
"""

import argparse
import logging
import queue
import threading
import time
from datetime import datetime, timezone

from config import CLEANUP_INTERVAL, DELETE_ON_EXHAUSTION, ORPHAN_GRACE_SECONDS
from api.files.dto.file import FileObject
from api.files.repositories import files_repository
from api.files.services import files_service
from errors import LifecycleError
from storage import blob_store

logger = logging.getLogger(__name__)


def _destroy(file: FileObject, reason: str) -> bool:
    try:
        files_service.destroy(file)
    except LifecycleError:
        logger.exception("Failed to remove %s file %s", reason, file.id)
        return False
    logger.info("Removed %s file %s", reason, file.id)
    return True


def _sweep_orphans() -> int:
    """Remove blobs that no live row references.

    Only blobs older than the grace period are considered, so an upload whose
    ledger row is still being written keeps its content.
    """
    count = 0
    for key in list(blob_store.keys(older_than=ORPHAN_GRACE_SECONDS)):
        if files_repository.storage_key_in_use(key):
            continue
        if blob_store.delete(key):
            logger.info("Removed orphaned blob %s", key)
            count += 1
    count += blob_store.purge_partial(older_than=ORPHAN_GRACE_SECONDS)
    return count


def reap_expired(file_ids, now: datetime | None = None) -> int:
    """Destroy the given files if they are live and expired. Returns how many went."""
    now = now or datetime.now(timezone.utc)
    count = 0
    for file_id in file_ids:
        file = files_repository.get_by_id(file_id)
        if file and file.is_expired(now):
            count += _destroy(file, "expired")
    return count


def run_cleanup(now: datetime | None = None) -> int:
    """Delete expired files, exhausted files (if enabled) and orphaned blobs.
    Returns the number of files cleaned up."""
    now = now or datetime.now(timezone.utc)
    count = 0

    # Expired files
    for file in files_repository.get_expired(now):
        count += _destroy(file, "expired")

    # Max downloads reached
    if DELETE_ON_EXHAUSTION:
        for file in files_repository.get_exhausted():
            count += _destroy(file, "exhausted")

    orphans = _sweep_orphans()

    logger.info("Cleanup pass removed %d files and %d orphaned blobs", count, orphans)
    return count


class Reaper:
    """Runs run_cleanup every interval seconds in a daemon thread.

    hint() never blocks: it queues a file id and wakes the thread, which reaps
    just the hinted files without waiting for the next full pass.
    """

    def __init__(self, interval: int = CLEANUP_INTERVAL):
        self.interval = interval
        self._hints: queue.SimpleQueue = queue.SimpleQueue()
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def hint(self, file_id: str) -> None:
        self._hints.put(file_id)
        self._wake.set()

    def _drain_hints(self) -> set[str]:
        hinted = set()
        while True:
            try:
                hinted.add(self._hints.get_nowait())
            except queue.Empty:
                return hinted

    def _run(self) -> None:
        next_pass = time.monotonic()
        while not self._stop.is_set():
            hinted = self._drain_hints()
            try:
                if time.monotonic() >= next_pass:
                    run_cleanup()
                    next_pass = time.monotonic() + self.interval
                elif hinted:
                    reap_expired(hinted)
            except Exception:
                logger.exception("Cleanup pass failed")
            self._wake.wait(max(0.0, next_pass - time.monotonic()))
            self._wake.clear()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.interval <= 0 or self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="reaper", daemon=True)
        self._thread.start()
        logger.info("Reaper started (interval %ds)", self.interval)

    def stop(self, timeout: float | None = 5) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


reaper = Reaper()


if __name__ == "__main__":
    import log_config

    log_config.configure()

    parser = argparse.ArgumentParser(description="Reclaim expired and orphaned files.")
    parser.add_argument("--loop", action="store_true", help="keep running every CLEANUP_INTERVAL seconds")
    args = parser.parse_args()
    if args.loop and reaper.interval <= 0:
        parser.error("--loop needs CLEANUP_INTERVAL > 0")

    if args.loop:
        reaper.start()
        try:
            threading.Event().wait()
        except KeyboardInterrupt:
            reaper.stop()
    else:
        run_cleanup()
