"""Exception hierarchy for DocRunner."""

from typing import Optional


class DocRunnerError(Exception):
    """Base class for all DocRunner errors."""

    pass


class DiscoveryError(DocRunnerError):
    """A source unit could not be discovered.

    Discovery errors abort only the affected source unit; sibling units
    continue. ``node_id`` names what the error is attached to (a file path
    or a suite identifier).
    """

    kind = "discoveryError"

    def __init__(self, message: str, node_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.node_id = node_id

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {"id": self.node_id, "kind": self.kind, "message": self.message}


class InvalidTestTarget(DiscoveryError):
    """Raised when a file target does not follow the test-file naming convention."""

    kind = "invalidTestTarget"


class MalformedDocBlock(DiscoveryError):
    """Raised when a docstring contains an unterminated code fence."""

    kind = "malformedDocBlock"

    def __init__(self, message: str, node_id: Optional[str] = None, line: Optional[int] = None):
        super().__init__(message, node_id)
        self.line = line


class SourceParseError(DiscoveryError):
    """Raised when a source file cannot be read or is not valid Python."""

    kind = "sourceParseError"


class TestIdError(DocRunnerError):
    """Raised when a test identifier cannot be parsed."""

    __test__ = False
