"""Tests for fenced block extraction."""

import pytest

from docrunner.core.docblocks import extract_blocks, is_executable, split_hidden_lines
from docrunner.errors import MalformedDocBlock


DOC = """Summary line.

Some prose.

```python
x = 1
```

```text
not code
```

```py
y = x + 1
```
"""


class TestIsExecutable:
    """Tests for fence tag classification."""

    @pytest.mark.parametrize("info", ["python", "py", "Python", "python title=x"])
    def test_executable_tags(self, info):
        """Python tags are executable."""
        assert is_executable(info, ["python", "py"])

    @pytest.mark.parametrize("info", ["", "text", "console", "python notest", "pycon"])
    def test_display_only_tags(self, info):
        """Other tags and notest blocks are display-only."""
        assert not is_executable(info, ["python", "py"])


class TestSplitHiddenLines:
    """Tests for display/execute text splitting."""

    def test_hidden_lines_only_executed(self):
        """Hidden lines are dropped from display but kept for execution."""
        display, execute = split_hidden_lines("#| import math\nprint(math.pi)\n")
        assert display == "print(math.pi)\n"
        assert execute == "import math\nprint(math.pi)\n"

    def test_indentation_preserved(self):
        """Indented hidden lines keep their indentation."""
        display, execute = split_hidden_lines("if True:\n    #| x = 1\n    print(x)\n")
        assert execute == "if True:\n    x = 1\n    print(x)\n"
        assert display == "if True:\n    print(x)\n"

    def test_bare_marker_is_blank_line(self):
        """A bare marker becomes an empty executed line."""
        display, execute = split_hidden_lines("a = 1\n#|\nb = 2\n")
        assert execute == "a = 1\n\nb = 2\n"
        assert display == "a = 1\nb = 2\n"

    def test_line_count_preserved_for_execution(self):
        """Executed text has one line per source line."""
        content = "#| a\nb\n#| c\nd\n"
        _, execute = split_hidden_lines(content)
        assert len(execute.splitlines()) == len(content.splitlines())

    def test_marker_needs_separator(self):
        """'#|x' is an ordinary comment line."""
        display, execute = split_hidden_lines("#|x\n")
        assert display == execute == "#|x\n"

    def test_custom_prefix(self):
        """The hidden-line prefix is configurable."""
        display, execute = split_hidden_lines("%% setup()\nrun()\n", hidden_prefix="%%")
        assert display == "run()\n"
        assert execute == "setup()\nrun()\n"


class TestExtractBlocks:
    """Tests for extract_blocks."""

    def test_all_fences_in_order(self):
        """Every fence is returned in document order."""
        blocks = extract_blocks(DOC)
        assert [b.info for b in blocks] == ["python", "text", "py"]
        assert [b.executable for b in blocks] == [True, False, True]

    def test_block_positions(self):
        """Positions are docstring lines of the fences."""
        first = extract_blocks(DOC)[0]
        assert first.start_line == 4
        assert first.end_line == 6
        assert first.start_column == 0
        assert first.end_column == 3

    def test_executable_text(self):
        """Executable blocks carry both texts."""
        first = extract_blocks(DOC)[0]
        assert first.execute_text == "x = 1\n"
        assert first.display_text == "x = 1\n"

    def test_display_only_not_executed(self):
        """Display-only blocks have no execute text."""
        text_block = extract_blocks(DOC)[1]
        assert text_block.execute_text == ""
        assert text_block.display_text == "not code\n"

    def test_no_fences(self):
        """Plain docstrings yield nothing."""
        assert extract_blocks("Just words.\n\n    indented code block\n") == []

    def test_tilde_fence(self):
        """Tilde fences are recognised."""
        blocks = extract_blocks("~~~python\nz = 3\n~~~\n")
        assert len(blocks) == 1
        assert blocks[0].execute_text == "z = 3\n"

    def test_longer_closing_fence(self):
        """A closing fence may be longer than the opening one."""
        blocks = extract_blocks("```python\nz = 3\n`````\n")
        assert blocks[0].end_line == 2

    def test_unterminated_fence(self):
        """An unclosed fence is a malformed block."""
        with pytest.raises(MalformedDocBlock) as info:
            extract_blocks("Intro.\n\n```python\nx = 1\n", symbol="test_a.py@__doc__")
        assert info.value.node_id == "test_a.py@__doc__"
        assert info.value.line == 2

    def test_unterminated_display_fence(self):
        """Display-only fences must be closed too."""
        with pytest.raises(MalformedDocBlock):
            extract_blocks("```text\nabc\n")

    def test_unterminated_empty_fence(self):
        """A lone opening fence at the end is malformed."""
        with pytest.raises(MalformedDocBlock):
            extract_blocks("Words.\n\n```python")


class TestIndentedFences:
    """Tests for fences nested under docstring section headers."""

    SECTION = "Summary.\n\nExample:\n    ```python\n    x = 1\n    if x:\n        y = 2\n    ```\n"

    def test_fence_under_section_header(self):
        """A fence indented four columns is still a fence."""
        blocks = extract_blocks(self.SECTION)
        assert len(blocks) == 1
        assert blocks[0].executable
        assert blocks[0].execute_text == "x = 1\nif x:\n    y = 2\n"

    def test_positions_keep_original_columns(self):
        """Columns refer to the indented text, not the outdented copy."""
        block = extract_blocks(self.SECTION)[0]
        assert block.start_line == 3
        assert block.end_line == 7
        assert block.start_column == 4
        assert block.end_column == 7

    def test_deeply_indented_fence(self):
        """Nested sections work at any depth."""
        doc = "Args:\n    x: value\n\n        ```py\n        assert True\n        ```\n"
        blocks = extract_blocks(doc)
        assert [b.execute_text for b in blocks] == ["assert True\n"]

    def test_unterminated_indented_fence(self):
        """An unclosed indented fence is a malformed block."""
        with pytest.raises(MalformedDocBlock) as info:
            extract_blocks("Example:\n    ```python\n    x = 1\n", symbol="test_a.py@f.__doc__")
        assert info.value.line == 1

    def test_plain_indented_code_untouched(self):
        """Indented code without fences stays display-only text."""
        assert extract_blocks("Example:\n\n    x = 1\n    y = 2\n") == []
