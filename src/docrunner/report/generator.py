"""HTML report generation using Jinja2 templates."""

from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from docrunner.config import ReportConfig
from docrunner.errors import DiscoveryError
from docrunner.report.tree import ReportNode, compute_totals


class ReportGenerator:
    """Generates a static HTML report from the report tree."""

    def __init__(self, config: ReportConfig):
        """Initialize the report generator.

        Args:
            config: Report configuration (title)
        """
        self.config = config

        template_dir = Path(__file__).parent / "templates"
        self.env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

        self.env.filters["duration_format"] = self._format_duration
        self.env.filters["percentage"] = self._format_percentage

    def generate(self, root: ReportNode, output_path: Path | str, errors: Sequence[DiscoveryError] = ()) -> Path:
        """Render the report and write it to ``output_path``.

        Returns:
            Path to the generated report file
        """
        context = self._prepare_context(root, errors)
        template = self.env.get_template("report.html")
        html_content = template.render(**context)

        report_path = Path(output_path)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(html_content, encoding="utf-8")
        return report_path

    def _prepare_context(self, root: ReportNode, errors: Sequence[DiscoveryError]) -> dict[str, Any]:
        totals = compute_totals(root)
        leaves = [leaf for leaf in root.leaves() if leaf.outcome is not None]

        return {
            "title": self.config.title,
            "root": root.id,
            "generated_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "totals": totals,
            "pass_rate": totals.percentage(totals.passed),
            "results": [
                {
                    "id": leaf.id,
                    "kind": leaf.outcome.kind.value,
                    "status": leaf.outcome.status.value,
                    "error": leaf.outcome.error,
                    "stdout": leaf.outcome.stdout,
                    "stderr": leaf.outcome.stderr,
                    "duration_ms": leaf.outcome.duration_ms,
                }
                for leaf in leaves
            ],
            "errors": [error.to_dict() for error in errors],
        }

    @staticmethod
    def _format_duration(ms: int) -> str:
        """Format duration in milliseconds to human-readable string."""
        if ms < 1000:
            return f"{ms}ms"
        elif ms < 60000:
            return f"{ms / 1000:.2f}s"
        else:
            minutes = ms // 60000
            seconds = (ms % 60000) / 1000
            return f"{minutes}m {seconds:.1f}s"

    @staticmethod
    def _format_percentage(value: float) -> str:
        """Format a percentage value."""
        return f"{value:.1f}%"
