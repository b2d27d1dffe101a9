"""
CampusNotes Backend: pdftoppm Preview Renderer
================================================

What:  Concrete PreviewRenderer that shells out to poppler's `pdftoppm` to
       produce an 800px wide JPEG of a PDF's first page.
How:   Runs the command with asyncio subprocesses under a timeout, retries
       transient failures with tenacity, and guards the whole thing with a
       circuit breaker so a broken renderer stops costing upload latency.
Who:   Instantiated once (module singleton in note_service); called by
       NoteService.upload_note.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter
    2. Circuit breaker that short-circuits calls after repeated failures
    3. Output is rendered to a temp name and renamed into place, so a
       half-written preview is never visible under its final key
"""

import asyncio
import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import Optional

import aiofiles.os
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from campusnotes.config import Settings
from campusnotes.exceptions import CircuitBreakerOpenError, PreviewRenderError
from campusnotes.services.object_store import TEMP_MARKER
from campusnotes.services.preview_base import PreviewRenderer

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Single-process only: state lives in this object, which is shared by
    all requests of one worker.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns:
            True if the call can proceed (CLOSED, or HALF_OPEN after timeout).

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout hasn't
            elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.monotonic() - (self.last_failure_time or 0.0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed) + 1
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (renderer recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test render failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# pdftoppm Renderer
# ══════════════════════════════════════════════════════════════════════════

class PdftoppmRenderer(PreviewRenderer):
    """
    Invocation:
        pdftoppm -singlefile -jpeg -scale-to-x <width> -scale-to-y -1 <pdf> <prefix>

    pdftoppm appends `.jpg` to the prefix itself.
    """

    def __init__(self, config: Settings):
        self.command = config.preview_command
        self.width = config.preview_width
        self.timeout = config.preview_timeout
        self.max_attempts = config.preview_max_attempts
        self.retry_wait = config.preview_retry_wait
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=config.cb_failure_threshold,
            recovery_timeout=config.cb_recovery_timeout,
        )

    async def render(self, source_pdf: Path, dest_without_extension: Path) -> Path:
        self.circuit_breaker.can_execute()

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(PreviewRenderError),
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential_jitter(
                    multiplier=self.retry_wait,
                    max=self.retry_wait * 8,
                    jitter=self.retry_wait,
                ),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    output = await self._run(source_pdf, dest_without_extension)
        except PreviewRenderError as e:
            self.circuit_breaker.record_failure()
            logger.warning(
                "Preview rendering failed for %s: %s",
                source_pdf.name,
                e.message,
            )
            raise

        self.circuit_breaker.record_success()
        return output

    async def _run(self, source_pdf: Path, dest_without_extension: Path) -> Path:
        final_path = Path(f"{dest_without_extension}.jpg")
        staging_prefix = dest_without_extension.with_name(
            f"{dest_without_extension.name}{TEMP_MARKER}{uuid.uuid4().hex}"
        )
        staged_path = Path(f"{staging_prefix}.jpg")
        start_time = time.perf_counter()

        try:
            await aiofiles.os.makedirs(final_path.parent, exist_ok=True)
            process = await asyncio.create_subprocess_exec(
                self.command,
                "-singlefile",
                "-jpeg",
                "-scale-to-x",
                str(self.width),
                "-scale-to-y",
                "-1",
                str(source_pdf),
                str(staging_prefix),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise PreviewRenderError(
                message=f"Could not start {self.command}",
                context={"os_error": str(e)},
            )

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            await self._discard(staged_path)
            raise PreviewRenderError(
                message=f"{self.command} timed out after {self.timeout:.0f}s",
                context={"source": source_pdf.name},
            )

        if process.returncode != 0:
            await self._discard(staged_path)
            raise PreviewRenderError(
                message=f"{self.command} exited with status {process.returncode}",
                context={"stderr": (stderr or b"").decode(errors="replace")[-500:]},
            )

        try:
            await aiofiles.os.replace(staged_path, final_path)
        except OSError as e:
            await self._discard(staged_path)
            raise PreviewRenderError(
                message=f"{self.command} produced no output",
                context={"os_error": str(e)},
            )

        logger.info(
            "Rendered preview %s in %.0fms",
            final_path.name,
            (time.perf_counter() - start_time) * 1000,
        )
        return final_path

    async def health_check(self) -> bool:
        return shutil.which(self.command) is not None

    @staticmethod
    async def _discard(path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove staged preview %s: %s", path.name, str(e))
