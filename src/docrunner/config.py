"""Configuration management for DocRunner."""

import json
import os
import re
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


class DiscoveryConfig(BaseModel):
    """Test discovery configuration."""

    test_file_patterns: list[str] = Field(
        default_factory=lambda: ["test_*.py", "*_test.py"],
        description="Glob patterns a file name must match to be a test file",
    )
    test_function_pattern: str = Field(
        default=r"test", description="Regular expression matched against module-level function names"
    )
    executable_tags: list[str] = Field(
        default_factory=lambda: ["python", "py"],
        description="Fence language tags whose blocks are executed",
    )
    hidden_line_prefix: str = Field(
        default="#|", description="Line prefix marking lines executed but not displayed"
    )

    @field_validator("test_file_patterns", "executable_tags")
    @classmethod
    def validate_not_empty(cls, v: list[str]) -> list[str]:
        if not v or not all(item.strip() for item in v):
            raise ValueError("List must contain at least one non-empty entry")
        return v

    @field_validator("test_function_pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid test function pattern: {e}") from e
        return v

    @field_validator("hidden_line_prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Hidden line prefix cannot be empty")
        return v


class ExecutionConfig(BaseModel):
    """Test execution configuration."""

    jobs: int = Field(default_factory=lambda: os.cpu_count() or 1, description="Maximum parallel work units")
    timeout_seconds: int = Field(default=300, description="Timeout for one function test or one suite")
    environment: dict[str, str] = Field(default_factory=dict, description="Additional environment variables")
    search_paths: list[str] = Field(default_factory=list, description="Extra module search roots")
    isolation: Literal["subprocess", "inprocess"] = Field(
        default="subprocess", description="Run work units in worker processes or in this process"
    )

    @field_validator("jobs")
    @classmethod
    def validate_jobs(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Jobs must be at least 1")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Timeout must be at least 1 second")
        return v


class ReportConfig(BaseModel):
    """Report rendering configuration."""

    format: str = Field(default="text", description="Diagnostic output format (text or json)")
    title: str = Field(default="Test Results", description="HTML report title")
    html_filename: Optional[str] = Field(default=None, description="Write an HTML report to this path")

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        if v.lower() not in allowed:
            raise ValueError(f"Format must be one of: {allowed}")
        return v.lower()


class DocRunnerConfig(BaseModel):
    """Main configuration for DocRunner."""

    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)

    @classmethod
    def from_file(cls, path: Path | str) -> "DocRunnerConfig":
        """Load configuration from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r") as f:
            data = json.load(f)

        return cls.model_validate(data)

    @classmethod
    def find_and_load(cls, start_dir: Path | str | None = None) -> "DocRunnerConfig":
        """Find and load a configuration file, searching up the directory tree.

        Falls back to the default configuration when no file is found.
        """
        if start_dir is None:
            start_dir = Path.cwd()
        else:
            start_dir = Path(start_dir)

        config_names = ["docrunner.json", ".docrunner.json"]

        current = start_dir.resolve()
        for directory in [current, *current.parents]:
            for name in config_names:
                config_path = directory / name
                if config_path.exists():
                    return cls.from_file(config_path)

        return cls()

    def with_overrides(
        self,
        search_paths: Optional[list[str]] = None,
        jobs: Optional[int] = None,
        timeout_seconds: Optional[int] = None,
        report_format: Optional[str] = None,
        html_filename: Optional[str] = None,
    ) -> "DocRunnerConfig":
        """Return a copy with command-line values applied on top."""
        execution = self.execution.model_dump()
        report = self.report.model_dump()

        if search_paths:
            execution["search_paths"] = [*search_paths, *execution["search_paths"]]
        if jobs is not None:
            execution["jobs"] = jobs
        if timeout_seconds is not None:
            execution["timeout_seconds"] = timeout_seconds
        if report_format is not None:
            report["format"] = report_format
        if html_filename is not None:
            report["html_filename"] = html_filename

        return DocRunnerConfig.model_validate(
            {
                "discovery": self.discovery.model_dump(),
                "execution": execution,
                "report": report,
            }
        )
