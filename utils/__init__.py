"""Shared utilities: config, logger, backoff, image and JSON helpers, folder reader."""

from utils.config import AppConfig, load_config
from utils.logger import log_structured, setup_logging
from utils.retry import BackoffPolicy
from utils.image_utils import is_readable_image, mime_from_name
from utils.folder_reader import load_input_files

__all__ = [
    "AppConfig",
    "load_config",
    "log_structured",
    "setup_logging",
    "BackoffPolicy",
    "is_readable_image",
    "mime_from_name",
    "load_input_files",
]
