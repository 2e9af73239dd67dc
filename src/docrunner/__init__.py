"""
DocRunner - test discovery and execution for functions and docstring examples.

This package provides tools to:
- Discover test functions and executable docstring code blocks
- Run docstring blocks as sequential, state-sharing suites
- Report outcomes as a readable summary or a JSON tree
"""

__version__ = "0.1.0"
__author__ = "DocRunner Team"
