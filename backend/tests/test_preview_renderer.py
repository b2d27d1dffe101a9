"""
CampusNotes Backend: Preview Renderer Tests (Mocked Subprocess)
=================================================================

What:  Tests for PdftoppmRenderer and its CircuitBreaker with the pdftoppm
       process replaced by a mock, so poppler does not need to be installed.

What we test:
    ✅ Circuit breaker state machine
    ✅ Successful render moves the output to `<dest>.jpg`
    ✅ Non-zero exit and timeouts raise PreviewRenderError
    ✅ A transient failure is retried after a backoff wait
    ✅ Repeated failures open the circuit and short-circuit later renders
"""

import asyncio
import time
import warnings
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from campusnotes.exceptions import CircuitBreakerOpenError, PreviewRenderError
from campusnotes.services.preview_renderer import CircuitBreaker, PdftoppmRenderer


def fake_process(returncode: int = 0, stderr: bytes = b"", writes_output: bool = True):
    """Build a create_subprocess_exec replacement that mimics pdftoppm."""

    async def _exec(*args, **kwargs):
        if writes_output and returncode == 0:
            Path(f"{args[-1]}.jpg").write_bytes(b"\xff\xd8jpeg\xff\xd9")
        process = MagicMock()
        process.returncode = returncode
        process.communicate = AsyncMock(return_value=(b"", stderr))
        process.wait = AsyncMock(return_value=returncode)
        return process

    return _exec


class TestCircuitBreaker:
    """Tests for the CircuitBreaker resilience pattern."""

    def test_initial_state_is_closed(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        assert cb.state == "closed"
        assert cb.failure_count == 0

    def test_stays_closed_under_threshold(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        for _ in range(4):
            cb.record_failure()
        assert cb.state == "closed"
        assert cb.can_execute() is True

    def test_opens_at_threshold(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        for _ in range(3):
            cb.record_failure()
        assert cb.state == "open"

    def test_open_circuit_rejects_calls(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        cb.record_failure()

        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            cb.can_execute()
        assert exc_info.value.recovery_time > 0

    def test_half_open_after_recovery_timeout(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        time.sleep(0.01)

        assert cb.can_execute() is True
        assert cb.state == "half_open"

    def test_half_open_failure_reopens(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        cb.can_execute()
        cb.record_failure()
        assert cb.state == "open"

    def test_success_resets(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        cb.can_execute()
        cb.record_success()
        assert cb.state == "closed"
        assert cb.failure_count == 0


class TestPdftoppmRenderer:

    @pytest.fixture
    def pdf_path(self, tmp_path) -> Path:
        path = tmp_path / "notes" / "note.pdf"
        path.parent.mkdir(parents=True)
        path.write_bytes(b"%PDF-1.4")
        return path

    @pytest.mark.asyncio
    async def test_render_success(self, test_settings, pdf_path, tmp_path):
        renderer = PdftoppmRenderer(test_settings)
        dest = tmp_path / "previews" / "note"

        with patch(
            "campusnotes.services.preview_renderer.asyncio.create_subprocess_exec",
            side_effect=fake_process(),
        ) as mock_exec:
            output = await renderer.render(pdf_path, dest)

        assert output == tmp_path / "previews" / "note.jpg"
        assert output.read_bytes().startswith(b"\xff\xd8")
        # Only the final file remains; the staging name is gone
        assert [p.name for p in output.parent.iterdir()] == ["note.jpg"]

        args = mock_exec.call_args.args
        assert args[0] == "pdftoppm"
        assert "-singlefile" in args and "-jpeg" in args
        assert args[args.index("-scale-to-x") + 1] == "800"
        assert args[-2] == str(pdf_path)

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self, test_settings, pdf_path, tmp_path):
        renderer = PdftoppmRenderer(test_settings)

        with patch(
            "campusnotes.services.preview_renderer.asyncio.create_subprocess_exec",
            side_effect=fake_process(returncode=1, stderr=b"Syntax Error: Couldn't read xref"),
        ):
            with pytest.raises(PreviewRenderError) as exc_info:
                await renderer.render(pdf_path, tmp_path / "previews" / "note")

        assert "exited with status 1" in exc_info.value.message
        assert "xref" in exc_info.value.context["stderr"]
        assert not (tmp_path / "previews" / "note.jpg").exists()

    @pytest.mark.asyncio
    async def test_missing_output_raises(self, test_settings, pdf_path, tmp_path):
        renderer = PdftoppmRenderer(test_settings)

        with patch(
            "campusnotes.services.preview_renderer.asyncio.create_subprocess_exec",
            side_effect=fake_process(writes_output=False),
        ):
            with pytest.raises(PreviewRenderError):
                await renderer.render(pdf_path, tmp_path / "previews" / "note")

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, test_settings, pdf_path, tmp_path):
        renderer = PdftoppmRenderer(test_settings)
        renderer.timeout = 0.05

        async def hang():
            await asyncio.sleep(5)
            return b"", b""

        process = MagicMock()
        process.communicate = hang
        process.wait = AsyncMock(return_value=-9)

        with patch(
            "campusnotes.services.preview_renderer.asyncio.create_subprocess_exec",
            AsyncMock(return_value=process),
        ):
            with pytest.raises(PreviewRenderError) as exc_info:
                await renderer.render(pdf_path, tmp_path / "previews" / "note")

        assert "timed out" in exc_info.value.message
        process.kill.assert_called_once()

    @pytest.mark.asyncio
    async def test_missing_command_raises(self, test_settings, pdf_path, tmp_path):
        renderer = PdftoppmRenderer(test_settings)

        with patch(
            "campusnotes.services.preview_renderer.asyncio.create_subprocess_exec",
            AsyncMock(side_effect=FileNotFoundError("pdftoppm")),
        ):
            with pytest.raises(PreviewRenderError):
                await renderer.render(pdf_path, tmp_path / "previews" / "note")

    @pytest.mark.asyncio
    async def test_repeated_failures_open_circuit(self, test_settings, pdf_path, tmp_path):
        renderer = PdftoppmRenderer(test_settings)
        failing = AsyncMock(side_effect=fake_process(returncode=1))

        with patch(
            "campusnotes.services.preview_renderer.asyncio.create_subprocess_exec",
            failing,
        ):
            for _ in range(test_settings.cb_failure_threshold):
                with pytest.raises(PreviewRenderError):
                    await renderer.render(pdf_path, tmp_path / "previews" / "note")

            assert renderer.circuit_breaker.state == "open"
            calls_before = failing.await_count

            with pytest.raises(CircuitBreakerOpenError):
                await renderer.render(pdf_path, tmp_path / "previews" / "note")
            assert failing.await_count == calls_before

    @pytest.mark.asyncio
    async def test_transient_failure_retried_with_backoff(self, test_settings, pdf_path, tmp_path):
        renderer = PdftoppmRenderer(test_settings)
        renderer.max_attempts = 2
        renderer.retry_wait = 0.01
        attempts = [fake_process(returncode=1), fake_process()]

        async def flaky_exec(*args, **kwargs):
            return await attempts.pop(0)(*args, **kwargs)

        with warnings.catch_warnings():
            warnings.filterwarnings("error", message=".*parameter is deprecated", category=DeprecationWarning)
            with patch(
                "campusnotes.services.preview_renderer.asyncio.create_subprocess_exec",
                side_effect=flaky_exec,
            ):
                output = await renderer.render(pdf_path, tmp_path / "previews" / "note")

        assert attempts == []
        assert output.exists()
        assert renderer.circuit_breaker.failure_count == 0
