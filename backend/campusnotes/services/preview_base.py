"""
CampusNotes Backend: Abstract Preview Renderer Interface
==========================================================

What:  Contract for turning the first page of a stored PDF into a JPEG
       preview.
How:   Concrete renderers inherit from PreviewRenderer and implement
       render() and health_check().
Who:   Called by NoteService during the upload workflow, after the PDF is
       durable and before the transaction commits.
"""

from abc import ABC, abstractmethod
from pathlib import Path


class PreviewRenderer(ABC):
    """
    Contract:
        - render() produces exactly `<dest_without_extension>.jpg` or raises
        - all renderer-specific failures are wrapped in PreviewRenderError
        - callers treat every failure as "no preview"; nothing is retried
          by the caller
    """

    @abstractmethod
    async def render(self, source_pdf: Path, dest_without_extension: Path) -> Path:
        """
        Render page one of `source_pdf` as a JPEG.

        Args:
            source_pdf: Absolute path of the stored PDF.
            dest_without_extension: Target path minus the `.jpg` suffix.

        Returns:
            Path of the written JPEG.

        Raises:
            PreviewRenderError: rendering failed or timed out.
            CircuitBreakerOpenError: recent failures disabled the renderer.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True if the renderer can currently be invoked."""
        ...
