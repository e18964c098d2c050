"""tests/test_packaging.py -- pyproject.toml metadata."""

from pathlib import Path

_PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


def test_project_table_has_no_readme():
    """Package metadata must not pull in a long description from the design docs."""
    project_table = _PYPROJECT.read_text().split("[project]", 1)[1].split("\n[", 1)[0]
    assert "readme" not in project_table
    assert 'name = "pushgate"' in project_table
