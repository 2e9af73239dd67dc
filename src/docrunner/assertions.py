"""Assertion helpers for tests and docstring examples."""

from typing import Any, Callable, Optional, Type


def expect_raises(
    fn: Callable[[], Any],
    exc_type: Type[BaseException] = Exception,
    match: Optional[str] = None,
) -> BaseException:
    """Call ``fn`` and check that it raises.

    Passes when ``fn`` raises an instance of ``exc_type`` whose message
    contains ``match`` (when given). Returns the caught exception.

    ```python
    from docrunner.assertions import expect_raises

    error = expect_raises(lambda: int("x"), ValueError, match="invalid literal")
    assert isinstance(error, ValueError)
    ```

    Raises:
        AssertionError: If nothing is raised or the message does not match
    """
    try:
        fn()
    except exc_type as e:
        if match is not None and match not in str(e):
            raise AssertionError(f"Expected message containing {match!r}, got {str(e)!r}") from e
        return e
    raise AssertionError(f"Expected {exc_type.__name__} to be raised")
