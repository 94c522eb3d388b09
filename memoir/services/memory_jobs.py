"""Memory job management: creation, claiming and batch processing."""

import asyncio
import logging
import time
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from memoir.config import settings
from memoir.db import get_session
from memoir.errors import InvalidRequestError, JobNotFoundError
from memoir.models.conversation_analysis import ProcessingStatus
from memoir.models.memory_job import MemoryJob, MemoryJobStatus, MemoryJobType
from memoir.models.user_profile import UserProfile
from memoir.services.conversations import ConversationStore, ConversationTranscript, conversation_store
from memoir.services.extraction import ExtractionOutcome, ExtractionService, extraction_service
from memoir.services.ledger import AnalysisLedger, LedgerWrite, analysis_ledger
from memoir.services.merge import merge_insights
from memoir.services.profile import ProfileMergeResult, ProfileService, profile_service
from memoir.services.quality import estimate_tokens, evaluate_quality, format_transcript
from memoir.services.selection import ConversationSelector, conversation_selector
from memoir.services.summary import SummaryService, summary_service

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

ANONYMOUS_USER_PREFIX = "anonymous-"


def is_anonymous_user(user_id: str) -> bool:
    """Anonymous users opted out of being remembered."""
    return user_id.startswith(ANONYMOUS_USER_PREFIX)


@dataclass
class BatchStats:
    """Running tallies for one job's batch."""

    examined: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    duplicate: int = 0
    tokens: int = 0
    messages: int = 0
    quality_scores: list[int] = field(default_factory=list)
    insights: list[dict[str, Any]] = field(default_factory=list)
    batch_conversation_ids: list[str] = field(default_factory=list)
    duplicate_conversation_ids: list[str] = field(default_factory=list)

    def count(self, conversation_id: UUID, outcome: ExtractionOutcome, write: LedgerWrite) -> None:
        self.examined += 1
        if write == LedgerWrite.DUPLICATE:
            self.duplicate += 1
            self.duplicate_conversation_ids.append(str(conversation_id))
            return

        self.quality_scores.append(outcome.quality_score)
        if outcome.succeeded:
            self.processed += 1
            self.tokens += outcome.estimated_tokens
            self.messages += outcome.message_count
            self.insights.append(outcome.insights)
        elif outcome.status == ProcessingStatus.FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    @property
    def average_quality_score(self) -> float:
        if not self.quality_scores:
            return 0.0
        return round(sum(self.quality_scores) / len(self.quality_scores), 2)

    @property
    def has_warnings(self) -> bool:
        return self.duplicate > 0 or self.failed > 0

    @property
    def warning_message(self) -> str | None:
        if not self.has_warnings:
            return None
        return f"Completed with warnings: {self.duplicate} duplicates, {self.failed} failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversations_examined": self.examined,
            "conversations_processed": self.processed,
            "conversations_skipped": self.skipped,
            "conversations_failed": self.failed,
            "conversations_duplicate": self.duplicate,
            "batch_conversation_ids": self.batch_conversation_ids,
            "duplicate_conversation_ids": self.duplicate_conversation_ids,
            "total_tokens_processed": self.tokens,
        }


def _progress(examined: int, total: int) -> int:
    if total <= 0:
        return 100
    return min(100, round(examined / total * 100))


class MemoryJobService:
    """Owns the lifecycle of memory processing jobs.

    A job moves ``pending -> processing -> completed | failed``. Only the
    worker that wins the pending->processing compare-and-swap touches the job
    afterwards, and terminal jobs are never re-opened; the next batch gets a
    new job.
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_session,
        selector: ConversationSelector = conversation_selector,
        store: ConversationStore = conversation_store,
        ledger: AnalysisLedger = analysis_ledger,
        extraction: ExtractionService = extraction_service,
        profiles: ProfileService = profile_service,
        summaries: SummaryService = summary_service,
        batch_size: int = settings.memoir_batch_size,
        extraction_delay_seconds: float = settings.memoir_extraction_delay_seconds,
        scheduled_user_delay_seconds: float = settings.memoir_scheduled_user_delay_seconds,
        scheduled_lookback_days: int = settings.memoir_scheduled_lookback_days,
    ):
        self._session_factory = session_factory
        self._selector = selector
        self._store = store
        self._ledger = ledger
        self._extraction = extraction
        self._profiles = profiles
        self._summaries = summaries
        self._batch_size = batch_size
        self._extraction_delay_seconds = extraction_delay_seconds
        self._scheduled_user_delay_seconds = scheduled_user_delay_seconds
        self._scheduled_lookback_days = scheduled_lookback_days
        self._background_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_job(
        self,
        user_id: str,
        batch_size: int | None = None,
        trigger: bool = True,
    ) -> dict:
        """Create a pending job for a user and fire processing in the background.

        Args:
            user_id: User identifier.
            batch_size: Override the maximum conversations this job examines.
            trigger: Start processing immediately (fire-and-forget).

        Returns:
            Dict describing the created job.

        Raises:
            InvalidRequestError: If user_id is empty.
        """
        if not user_id or not str(user_id).strip():
            raise InvalidRequestError("User ID is required")

        size = max(1, batch_size or self._batch_size)

        async with self._session_factory() as session:
            selection = await self._selector.select(session, user_id, size)
            job = MemoryJob(
                user_id=user_id,
                status=MemoryJobStatus.PENDING,
                job_type=MemoryJobType.MEMORY_PROCESSING,
                batch_size=size,
                total_conversations=len(selection.batch),
                processing_details={
                    "message": "Queued",
                    "unprocessed_conversations": selection.unprocessed_count,
                    "all_conversations": selection.total_conversations,
                    "ledgered_conversations": selection.processed_count,
                },
            )
            session.add(job)
            await session.flush()

            payload = {
                "id": str(job.id),
                "user_id": job.user_id,
                "status": job.status.value,
                "total_conversations": job.total_conversations,
                "unprocessed_conversations": selection.unprocessed_count,
                "processed_conversations": 0,
                "progress_percentage": 0,
                "created_at": job.created_at.isoformat(),
            }

        logger.info(
            "Created memory job %s for user %s (%d in batch, %d unprocessed)",
            payload["id"],
            user_id,
            payload["total_conversations"],
            payload["unprocessed_conversations"],
        )

        if trigger:
            payload["triggered"] = self._trigger_processing(job.id)
        return payload

    def _trigger_processing(self, job_id: UUID) -> bool:
        """Schedule processing without waiting for it. Never raises."""
        try:
            loop = asyncio.get_running_loop()
            task = loop.create_task(self._process_in_background(job_id), name=f"memoir-job-{job_id}")
        except Exception:  # noqa: BLE001
            logger.exception("Failed to trigger background processing for job %s", job_id)
            return False
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return True

    async def _process_in_background(self, job_id: UUID) -> None:
        try:
            await self.process_job(job_id)
        except Exception:  # noqa: BLE001
            # process_job has already persisted the failure on the job row
            logger.exception("Background processing failed for job %s", job_id)

    async def wait_for_background_jobs(self) -> None:
        """Wait for all fire-and-forget processing started by this service."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_status(self, job_id: UUID) -> dict:
        """Get job status by ID, with the user's profile once completed."""
        async with self._session_factory() as session:
            job = await session.get(MemoryJob, job_id)
            if not job:
                return {"status": "not_found", "job_id": str(job_id)}

            result = {"status": "found", "job": job.to_dict()}
            if job.status == MemoryJobStatus.COMPLETED:
                profile = await self._profiles.get_profile(session, job.user_id)
                if profile is not None:
                    result["profile"] = profile.to_dict()
            return result

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_job(self, job_id: UUID) -> dict:
        """Claim a pending job and run one batch through the pipeline.

        Re-invoking on a job that is no longer pending is a no-op.

        Args:
            job_id: Job identifier.

        Returns:
            Dict summarizing what the job did.

        Raises:
            JobNotFoundError: If the job does not exist.
            Exception: Any pipeline-fatal error, after the job is marked failed.
        """
        async with self._session_factory() as session:
            job = await session.get(MemoryJob, job_id)
            if job is None:
                raise JobNotFoundError(job_id)

            if not await self._claim(session, job_id):
                await session.refresh(job)
                logger.info("Job %s is not pending (status=%s), nothing to do", job_id, job.status.value)
                return {
                    "status": "noop",
                    "job_id": str(job_id),
                    "job_status": job.status.value,
                    "message": f"Job is already {job.status.value}",
                }
            user_id = job.user_id
            batch_size = job.batch_size

        logger.info("Job %s claimed for user %s", job_id, user_id)

        try:
            return await self._run_pipeline(job_id, user_id, batch_size)
        except Exception as exc:
            await self._mark_failed(job_id, exc)
            raise

    async def _claim(self, session: AsyncSession, job_id: UUID) -> bool:
        """Atomically move a job from pending to processing."""
        now = datetime.utcnow()
        result = await session.execute(
            update(MemoryJob)
            .where(MemoryJob.id == job_id, MemoryJob.status == MemoryJobStatus.PENDING)
            .values(
                status=MemoryJobStatus.PROCESSING,
                started_at=now,
                updated_at=now,
                processing_details={"current_step": "Selecting conversations"},
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _run_pipeline(self, job_id: UUID, user_id: str, batch_size: int) -> dict:
        async with self._session_factory() as session:
            selection = await self._selector.select(session, user_id, batch_size)
            transcripts = await self._store.get_transcripts(session, user_id, selection.batch)

        total = len(transcripts)
        if total == 0:
            await self._complete(
                job_id,
                total=0,
                stats=BatchStats(),
                details={"message": "No conversations to process"},
            )
            logger.info("Job %s completed: no conversations to process", job_id)
            return self._result(job_id, user_id, BatchStats(), message="No conversations to process")

        await self._update_job(
            job_id,
            total_conversations=total,
            processing_details={
                "current_step": "Filtering conversations",
                "unprocessed_conversations": selection.unprocessed_count,
                "conversations_in_batch": total,
            },
        )

        stats = BatchStats(batch_conversation_ids=[str(cid) for cid in selection.batch_ids])
        quality: list[ConversationTranscript] = []
        for transcript in transcripts:
            verdict = evaluate_quality(transcript.messages)
            if verdict.passed:
                quality.append(transcript)
                continue
            outcome = ExtractionOutcome.skipped(
                verdict.reason.value,
                verdict.message_count,
                estimate_tokens(format_transcript(transcript.messages)),
                payload={"quality": verdict.to_dict()},
            )
            await self._record_outcome(job_id, user_id, transcript, outcome, stats)

        logger.info(
            "Job %s: %d of %d conversations passed the quality filter",
            job_id,
            len(quality),
            total,
        )
        await self._report_progress(job_id, stats, total, "Filtering conversations")

        if not quality:
            touched = await self._touch_profile(user_id)
            await self._complete(
                job_id,
                total=total,
                stats=stats,
                details={
                    "message": "Completed - no quality conversations in this batch, but tracked as examined",
                    "quality_conversations_found": 0,
                    "conversations_marked_as_skipped": stats.skipped,
                    "profile_touched": touched,
                },
            )
            logger.info("Job %s completed: no quality conversations among %d examined", job_id, total)
            return self._result(job_id, user_id, stats, message="No quality conversations in this batch")

        for index, transcript in enumerate(quality):
            outcome = await self._extraction.extract(transcript)
            await self._record_outcome(job_id, user_id, transcript, outcome, stats)
            await self._report_progress(
                job_id,
                stats,
                total,
                f"Processing conversation {index + 1}/{len(quality)}",
            )
            if index < len(quality) - 1 and self._extraction_delay_seconds > 0:
                await asyncio.sleep(self._extraction_delay_seconds)

        batch_data = merge_insights(stats.insights)
        if not batch_data:
            touched = await self._touch_profile(user_id)
            await self._complete(
                job_id,
                total=total,
                stats=stats,
                details={
                    "message": "No valid insights could be extracted from the processed conversations",
                    "quality_conversations_found": len(quality),
                    "profile_updated": False,
                    "profile_touched": touched,
                },
            )
            logger.info("Job %s completed: no insights extracted", job_id)
            return self._result(job_id, user_id, stats, message="No insights extracted")

        await self._update_job(job_id, processing_details={
            "current_step": "Merging with existing user profile",
            "extraction_completed": True,
            **stats.to_dict(),
        })

        try:
            profile, merged = await self._merge_and_save(user_id, batch_data, stats)
        except IntegrityError:
            logger.info("Profile for user %s was created concurrently, merging again", user_id)
            profile, merged = await self._merge_and_save(user_id, batch_data, stats)
        profile_id = profile.id
        profile_version = profile.version
        profile_data = profile.profile_data

        logger.info(
            "Job %s saved profile %s for user %s at version %d (merge=%s)",
            job_id,
            profile_id,
            user_id,
            profile_version,
            merged.mode,
        )

        summary_generated = False
        summary_error = None
        if profile_data:
            try:
                summary = await self._summaries.generate(user_id, profile_data)
                async with self._session_factory() as session:
                    updated = await self._profiles.set_summary(session, user_id, summary)
                    if updated is not None:
                        profile_version = updated.version
                summary_generated = True
            except Exception as exc:  # noqa: BLE001
                summary_error = str(exc)
                logger.warning("Job %s: AI summary generation failed: %s", job_id, exc)

        await self._complete(
            job_id,
            total=total,
            stats=stats,
            details={
                "quality_conversations_found": len(quality),
                "profile_id": str(profile_id),
                "profile_version": profile_version,
                "profile_updated": True,
                "merge_mode": merged.mode,
                "summary_generated": summary_generated,
                "summary_error": summary_error,
            },
        )
        logger.info("Job %s completed: %d conversations processed", job_id, stats.processed)

        result = self._result(job_id, user_id, stats)
        result.update({
            "profile_id": str(profile_id),
            "profile_version": profile_version,
            "profile_updated": True,
            "summary_generated": summary_generated,
        })
        return result

    async def _merge_and_save(
        self,
        user_id: str,
        batch_data: dict[str, Any],
        stats: BatchStats,
    ) -> tuple[UserProfile, ProfileMergeResult]:
        async with self._session_factory() as session:
            existing = await self._profiles.get_profile(session, user_id)
            existing_data = existing.profile_data if existing is not None else None

        merged = await self._profiles.merge_with_existing(existing_data, batch_data)

        async with self._session_factory() as session:
            profile = await self._profiles.upsert_profile(
                session,
                user_id,
                merged.data,
                conversation_count=stats.processed,
                message_count=stats.messages,
            )
        return profile, merged

    async def _record_outcome(
        self,
        job_id: UUID,
        user_id: str,
        transcript: ConversationTranscript,
        outcome: ExtractionOutcome,
        stats: BatchStats,
    ) -> LedgerWrite:
        """Ledger an outcome in its own transaction and tally it."""
        try:
            async with self._session_factory() as session:
                write = await self._ledger.record(
                    session,
                    user_id,
                    transcript.id,
                    outcome,
                    job_id=job_id,
                    model=self._extraction.model,
                )
        except IntegrityError:
            # Lost the insert race to a concurrent job
            async with self._session_factory() as session:
                await self._ledger.mark_duplicate(
                    session, user_id, transcript.id, job_id=job_id, duration_ms=outcome.duration_ms
                )
            write = LedgerWrite.DUPLICATE

        if write == LedgerWrite.DUPLICATE:
            logger.warning(
                "Conversation %s already analyzed, recorded job %s attempt as duplicate",
                transcript.id,
                job_id,
            )
        stats.count(transcript.id, outcome, write)
        return write

    async def _report_progress(self, job_id: UUID, stats: BatchStats, total: int, step: str) -> None:
        await self._update_job(
            job_id,
            processed_conversations=stats.examined,
            progress_percentage=_progress(stats.examined, total),
            conversations_skipped=stats.skipped,
            conversations_failed=stats.failed,
            conversations_duplicate=stats.duplicate,
            total_tokens_processed=stats.tokens,
            processing_details={"current_step": step, **stats.to_dict()},
        )

    async def _touch_profile(self, user_id: str) -> bool:
        async with self._session_factory() as session:
            return await self._profiles.touch(session, user_id)

    async def _complete(
        self,
        job_id: UUID,
        total: int,
        stats: BatchStats,
        details: dict[str, Any],
    ) -> None:
        now = datetime.utcnow()
        await self._update_job(
            job_id,
            status=MemoryJobStatus.COMPLETED,
            total_conversations=total,
            processed_conversations=total,
            progress_percentage=100,
            conversations_skipped=stats.skipped,
            conversations_failed=stats.failed,
            conversations_duplicate=stats.duplicate,
            total_tokens_processed=stats.tokens,
            average_quality_score=stats.average_quality_score,
            completed_at=now,
            error_message=stats.warning_message,
            processing_details={**stats.to_dict(), "has_warnings": stats.has_warnings, **details},
        )

    async def _mark_failed(self, job_id: UUID, exc: Exception) -> None:
        logger.error("Job %s failed: %s", job_id, exc)
        try:
            now = datetime.utcnow()
            await self._update_job(
                job_id,
                status=MemoryJobStatus.FAILED,
                error_message=str(exc) or exc.__class__.__name__,
                completed_at=now,
            )
        except Exception:  # noqa: BLE001
            logger.exception("Could not persist failure for job %s", job_id)

    async def _update_job(self, job_id: UUID, **values: Any) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(MemoryJob)
                .where(MemoryJob.id == job_id)
                .values(updated_at=datetime.utcnow(), **values)
                .execution_options(synchronize_session=False)
            )

    def _result(
        self,
        job_id: UUID,
        user_id: str,
        stats: BatchStats,
        message: str | None = None,
    ) -> dict:
        result = {
            "status": MemoryJobStatus.COMPLETED.value,
            "job_id": str(job_id),
            "user_id": user_id,
            "progress_percentage": 100,
            "profile_updated": False,
            **stats.to_dict(),
        }
        if message:
            result["message"] = message
        return result

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def create_jobs_for_active_users(self, lookback_days: int | None = None) -> dict:
        """Create a job for every recently active user with unprocessed conversations.

        Anonymous users are never processed. A failure for one user is
        recorded and the run moves on to the next.

        Args:
            lookback_days: Activity window in days (default from settings).

        Returns:
            Dict with a run summary and per-user results.

        Raises:
            InvalidRequestError: If lookback_days is not a positive integer.
        """
        if lookback_days is not None and (
            isinstance(lookback_days, bool) or not isinstance(lookback_days, int) or lookback_days < 1
        ):
            raise InvalidRequestError("lookback_days must be a positive integer")

        started = time.monotonic()
        days = lookback_days if lookback_days is not None else self._scheduled_lookback_days
        since = datetime.utcnow() - timedelta(days=days)

        async with self._session_factory() as session:
            all_user_ids = await self._store.active_user_ids(session, since)

        user_ids = [uid for uid in all_user_ids if not is_anonymous_user(uid)]
        logger.info(
            "Scheduled run found %d active users (%d anonymous excluded) in the past %d days",
            len(all_user_ids),
            len(all_user_ids) - len(user_ids),
            days,
        )

        results: list[dict[str, Any]] = []
        for index, user_id in enumerate(user_ids):
            try:
                async with self._session_factory() as session:
                    selection = await self._selector.select(
                        session, user_id, self._batch_size, lookback_days=days
                    )
                if selection.unprocessed:
                    job = await self.create_job(user_id)
                    results.append({"user_id": user_id, "success": True, "job_created": True, "job_id": job["id"]})
                else:
                    results.append({"user_id": user_id, "success": True, "job_created": False})
            except Exception as exc:  # noqa: BLE001
                logger.warning("Scheduled job creation failed for user %s: %s", user_id, exc)
                results.append({"user_id": user_id, "success": False, "job_created": False, "error": str(exc)})

            if index < len(user_ids) - 1 and self._scheduled_user_delay_seconds > 0:
                await asyncio.sleep(self._scheduled_user_delay_seconds)

        summary = {
            "unique_users_found": len(user_ids),
            "anonymous_users_excluded": len(all_user_ids) - len(user_ids),
            "users_processed": sum(1 for r in results if r["success"]),
            "users_failed": sum(1 for r in results if not r["success"]),
            "jobs_created": sum(1 for r in results if r["job_created"]),
            "processing_time_ms": int((time.monotonic() - started) * 1000),
            "time_window_days": days,
        }
        logger.info("Scheduled run complete: %s", summary)
        return {"status": "completed", "summary": summary, "results": results}


# Global singleton
memory_job_service = MemoryJobService()
