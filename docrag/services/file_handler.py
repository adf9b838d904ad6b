"""
File Handler Service
Detects the type of uploaded document buffers.
"""
import os
from typing import Tuple, Optional
import magic
import structlog

logger = structlog.get_logger()


class FileHandler:
    """Handles file type detection for uploaded buffers."""

    # Supported file types and their MIME types
    SUPPORTED_TYPES = {
        "application/pdf": "pdf",
    }

    def detect_file_type(self, data: bytes, filename: Optional[str] = None) -> Tuple[str, str]:
        """
        Detect file type using python-magic.

        Args:
            data: Raw file bytes
            filename: Original filename, used when MIME sniffing is inconclusive

        Returns:
            Tuple of (mime_type, file_extension)

        Raises:
            ValueError: If file type is not supported
        """
        mime_type = magic.from_buffer(data[:4096], mime=True)

        logger.info("Detected file type", filename=filename, mime_type=mime_type)

        if mime_type not in self.SUPPORTED_TYPES:
            # Try to infer from extension
            ext = os.path.splitext(filename or "")[1].lower().lstrip(".")
            for m, e in self.SUPPORTED_TYPES.items():
                if e == ext:
                    logger.warning(
                        "MIME detection failed, using extension",
                        mime_type=mime_type,
                        extension=ext
                    )
                    return m, ext

            raise ValueError(
                f"Unsupported file type: {mime_type}. "
                f"Supported types: {list(self.SUPPORTED_TYPES.values())}"
            )

        return mime_type, self.SUPPORTED_TYPES[mime_type]


# Singleton instance
_file_handler: Optional[FileHandler] = None


def get_file_handler() -> FileHandler:
    """Get singleton file handler instance."""
    global _file_handler
    if _file_handler is None:
        _file_handler = FileHandler()
    return _file_handler
