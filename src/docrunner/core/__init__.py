"""Core test discovery functionality."""

from docrunner.core.locator import TestLocator
from docrunner.core.scanner import SourceScanner

__all__ = ["TestLocator", "SourceScanner"]
