"""
Job Store for the print queue.

SQLite storage for badge jobs with WAL mode:
- Atomic uid-uniqueness check and insert (BEGIN IMMEDIATE + partial unique index)
- Atomic claim (conditional UPDATE queued -> processing)
- FIFO queue ordering by created_at, then insertion sequence
- Backoff gate (retry_after) so a job waiting for its retry is not claimable

Provides storage only. Scheduling decisions live in Dispatcher and
RetryController.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence, Tuple

from .entities import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    ActiveCounts,
    Job,
    JobStatus,
    now_iso,
)
from .errors import (
    CapacityExceededError,
    ConcurrencyViolationError,
    DuplicateUIDError,
    JobNotFoundError,
)


# Seconds to wait on a locked database before giving up
BUSY_TIMEOUT_SECONDS = 30.0


class JobStore:
    """
    SQLite-based persistence for badge jobs.

    - Every operation opens its own connection, so the store is safe to use
      from the dispatcher thread, attempt threads and API handlers at once
    - Does NOT contain scheduling logic
    """

    def __init__(self, db_path: str | Path):
        """
        Initialize the job store.

        Args:
            db_path: Path to SQLite database file. Parent directories are created.
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with WAL mode enabled."""
        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT_SECONDS)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for read-only database connections."""
        conn = self._get_connection()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database transactions.

        Args:
            immediate: Take the write lock up front (BEGIN IMMEDIATE) so that
                reads inside the transaction cannot be invalidated by another
                writer before commit.
        """
        conn = self._get_connection()
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS badge_jobs (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    template_id TEXT NOT NULL,
                    uid TEXT NOT NULL,
                    badge_name TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'queued',
                    created_at TEXT NOT NULL,
                    processed_at TEXT,
                    retry_count INTEGER NOT NULL DEFAULT 0,
                    error_message TEXT,
                    retry_after TEXT
                )
            """)

            # Queue ordering
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_badge_jobs_queue_order
                ON badge_jobs (status, created_at ASC, seq ASC)
            """)

            # uid is unique among active jobs only; terminal jobs free it
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_badge_jobs_active_uid
                ON badge_jobs (uid)
                WHERE status IN ('queued', 'processing')
            """)

    def _row_to_job(self, row: sqlite3.Row) -> Job:
        """Convert a database row to a Job entity."""
        return Job(
            id=row["id"],
            template_id=row["template_id"],
            uid=row["uid"],
            badge_name=row["badge_name"],
            status=JobStatus(row["status"]),
            created_at=row["created_at"],
            processed_at=row["processed_at"],
            retry_count=row["retry_count"],
            error_message=row["error_message"],
            retry_after=row["retry_after"],
            seq=row["seq"],
        )

    def _fetch(self, conn: sqlite3.Connection, job_id: str) -> Optional[Job]:
        row = conn.execute(
            "SELECT * FROM badge_jobs WHERE id = ?",
            (job_id,),
        ).fetchone()
        return self._row_to_job(row) if row is not None else None

    @staticmethod
    def _placeholders(values: Sequence) -> str:
        return ", ".join("?" for _ in values)

    # =========================================================================
    # Creation
    # =========================================================================

    def create(
        self,
        template_id: str,
        uid: str,
        badge_name: str,
        max_active: Optional[int] = None,
    ) -> Job:
        """
        Atomically check uid uniqueness among active jobs and insert a new job.

        Args:
            template_id: Template reference
            uid: Badge identifier, unique among queued/processing jobs
            badge_name: Display name
            max_active: Optional capacity re-checked inside the transaction

        Raises:
            DuplicateUIDError: If uid belongs to an active job
            CapacityExceededError: If max_active is given and already reached
        """
        job = Job.create(template_id=template_id, uid=uid, badge_name=badge_name)
        active = [status.value for status in ACTIVE_STATUSES]

        try:
            with self._transaction(immediate=True) as conn:
                if max_active is not None:
                    row = conn.execute(
                        f"SELECT COUNT(*) AS count FROM badge_jobs "
                        f"WHERE status IN ({self._placeholders(active)})",
                        active,
                    ).fetchone()
                    if row["count"] >= max_active:
                        raise CapacityExceededError(max_active)

                existing = conn.execute(
                    f"SELECT id FROM badge_jobs "
                    f"WHERE uid = ? AND status IN ({self._placeholders(active)})",
                    (uid, *active),
                ).fetchone()
                if existing is not None:
                    raise DuplicateUIDError(uid)

                cursor = conn.execute(
                    """
                    INSERT INTO badge_jobs
                    (id, template_id, uid, badge_name, status, created_at, retry_count)
                    VALUES (?, ?, ?, ?, ?, ?, 0)
                    """,
                    (
                        job.id,
                        job.template_id,
                        job.uid,
                        job.badge_name,
                        job.status.value,
                        job.created_at,
                    ),
                )
                job.seq = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            # Partial unique index caught a racing insert
            raise DuplicateUIDError(uid) from e

        return job

    # =========================================================================
    # Queries
    # =========================================================================

    def find_by_id(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        with self._connection() as conn:
            return self._fetch(conn, job_id)

    def find_all(self, statuses: Optional[Sequence[JobStatus]] = None) -> list[Job]:
        """
        List jobs in queue order, optionally filtered by status.

        Args:
            statuses: A single status, a sequence of statuses, or None for all
        """
        if isinstance(statuses, JobStatus):
            statuses = [statuses]

        sql = "SELECT * FROM badge_jobs"
        values: list = []
        if statuses:
            values = [status.value for status in statuses]
            sql += f" WHERE status IN ({self._placeholders(values)})"
        sql += " ORDER BY created_at ASC, seq ASC"

        with self._connection() as conn:
            rows = conn.execute(sql, values).fetchall()

        return [self._row_to_job(row) for row in rows]

    def next_queued(self, now: Optional[str] = None) -> Optional[Job]:
        """
        Get the oldest claimable queued job.

        A queued job whose backoff window has not elapsed (retry_after in the
        future) is skipped. Ties on created_at fall back to insertion order.
        """
        now = now or now_iso()
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM badge_jobs
                WHERE status = ?
                  AND (retry_after IS NULL OR retry_after <= ?)
                ORDER BY created_at ASC, seq ASC
                LIMIT 1
                """,
                (JobStatus.QUEUED.value, now),
            ).fetchone()

        if row is None:
            return None

        return self._row_to_job(row)

    def count_active(self) -> ActiveCounts:
        """Count queued and processing jobs."""
        counts = self.count_by_status()
        return ActiveCounts(
            queued=counts[JobStatus.QUEUED.value],
            processing=counts[JobStatus.PROCESSING.value],
        )

    def count_by_status(self) -> dict[str, int]:
        """Count jobs for every status (zero-filled)."""
        counts = {status.value: 0 for status in JobStatus}
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS count FROM badge_jobs GROUP BY status"
            ).fetchall()

        for row in rows:
            counts[row["status"]] = row["count"]
        return counts

    def find_history(
        self,
        status: Optional[JobStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[list[Job], int]:
        """
        List terminal jobs, most recently processed first.

        Args:
            status: COMPLETED or FAILED to narrow the result; None for both

        Returns:
            (page of jobs, total matching jobs)
        """
        if status is not None and status in TERMINAL_STATUSES:
            values = [status.value]
        else:
            values = [s.value for s in TERMINAL_STATUSES]
        where = f"WHERE status IN ({self._placeholders(values)})"

        with self._connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM badge_jobs {where}
                ORDER BY processed_at DESC, created_at DESC, seq DESC
                LIMIT ? OFFSET ?
                """,
                (*values, limit, offset),
            ).fetchall()
            total = conn.execute(
                f"SELECT COUNT(*) AS total FROM badge_jobs {where}",
                values,
            ).fetchone()["total"]

        return [self._row_to_job(row) for row in rows], total

    # =========================================================================
    # Mutations
    # =========================================================================

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error_message: Optional[str] = None,
    ) -> Job:
        """
        Set a job's status.

        - processed_at is stamped for terminal statuses and cleared otherwise
        - error_message is kept only for FAILED
        - any backoff gate is cleared

        Raises:
            JobNotFoundError: If the job does not exist
            DuplicateUIDError: If reactivating a job whose uid is now active elsewhere
        """
        processed_at = now_iso() if status in TERMINAL_STATUSES else None
        if status != JobStatus.FAILED:
            error_message = None

        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    """
                    UPDATE badge_jobs
                    SET status = ?, processed_at = ?, error_message = ?, retry_after = NULL
                    WHERE id = ?
                    """,
                    (status.value, processed_at, error_message, job_id),
                )
                if cursor.rowcount == 0:
                    raise JobNotFoundError(job_id)
                job = self._fetch(conn, job_id)
        except sqlite3.IntegrityError as e:
            row = self.find_by_id(job_id)
            raise DuplicateUIDError(row.uid if row else job_id) from e

        return job

    def increment_retry_count(self, job_id: str) -> Job:
        """
        Increment a job's retry count.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE badge_jobs SET retry_count = retry_count + 1 WHERE id = ?",
                (job_id,),
            )
            if cursor.rowcount == 0:
                raise JobNotFoundError(job_id)
            return self._fetch(conn, job_id)

    def delete(self, job_id: str) -> bool:
        """
        Delete a job.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM badge_jobs WHERE id = ?",
                (job_id,),
            )
            if cursor.rowcount == 0:
                raise JobNotFoundError(job_id)
        return True

    def claim(self, job_id: str) -> Job:
        """
        Atomically transition a claimable job QUEUED -> PROCESSING.

        Raises:
            JobNotFoundError: If the job was deleted (cancelled) meanwhile
            ConcurrencyViolationError: If the job is no longer claimable
        """
        with self._transaction(immediate=True) as conn:
            cursor = conn.execute(
                """
                UPDATE badge_jobs
                SET status = ?
                WHERE id = ? AND status = ?
                  AND (retry_after IS NULL OR retry_after <= ?)
                """,
                (
                    JobStatus.PROCESSING.value,
                    job_id,
                    JobStatus.QUEUED.value,
                    now_iso(),
                ),
            )

            if cursor.rowcount == 0:
                job = self._fetch(conn, job_id)
                if job is None:
                    raise JobNotFoundError(job_id)
                raise ConcurrencyViolationError(
                    job_id,
                    expected_status=JobStatus.QUEUED.value,
                    actual_status=job.status.value,
                )

            return self._fetch(conn, job_id)

    def schedule_retry(self, job_id: str, retry_after: str) -> Job:
        """
        Return a processing job to the queue behind a backoff gate.

        The job stays QUEUED but is not claimable until retry_after.

        Raises:
            JobNotFoundError: If the job does not exist
            ConcurrencyViolationError: If the job is not PROCESSING
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE badge_jobs
                SET status = ?, retry_after = ?, processed_at = NULL, error_message = NULL
                WHERE id = ? AND status = ?
                """,
                (
                    JobStatus.QUEUED.value,
                    retry_after,
                    job_id,
                    JobStatus.PROCESSING.value,
                ),
            )

            if cursor.rowcount == 0:
                job = self._fetch(conn, job_id)
                if job is None:
                    raise JobNotFoundError(job_id)
                raise ConcurrencyViolationError(
                    job_id,
                    expected_status=JobStatus.PROCESSING.value,
                    actual_status=job.status.value,
                )

            return self._fetch(conn, job_id)

    def release_retry(self, job_id: str) -> Optional[Job]:
        """
        Clear the backoff gate of a queued job.

        Returns:
            The released job, or None if it no longer exists or is not waiting
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE badge_jobs
                SET retry_after = NULL
                WHERE id = ? AND status = ? AND retry_after IS NOT NULL
                """,
                (job_id, JobStatus.QUEUED.value),
            )
            if cursor.rowcount == 0:
                return None
            return self._fetch(conn, job_id)
