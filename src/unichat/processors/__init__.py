"""Content processors: normalise raw attachments into context artifacts."""

from .file_processor import FileProcessor
from .image_processor import ImageProcessor, is_supported_image_url

__all__ = ["FileProcessor", "ImageProcessor", "is_supported_image_url"]
