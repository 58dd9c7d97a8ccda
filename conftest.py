# symsolver/conftest.py
"""Run the Python code blocks in docs/ as tests."""

from __future__ import annotations

import os
from pathlib import Path
from tempfile import mkdtemp
from typing import Any

from sybil import Sybil
from sybil.parsers.markdown import PythonCodeBlockParser, SkipParser

_DOCS_DIR = Path(__file__).parent / "docs"


def _enter_scratch_dir(namespace: dict[str, Any]) -> None:
    """Run each document from its own empty working directory."""
    namespace["_previous_cwd"] = Path.cwd()
    os.chdir(mkdtemp(prefix="symsolver-docs-"))


def _leave_scratch_dir(namespace: dict[str, Any]) -> None:
    """Close any adapter left open by the document and restore the cwd."""
    adapter = namespace.get("adapter")
    if adapter is not None and hasattr(adapter, "close"):
        adapter.close()
    os.chdir(namespace["_previous_cwd"])


pytest_collect_file = Sybil(
    parsers=[
        PythonCodeBlockParser(),
        SkipParser(),
    ],
    path=str(_DOCS_DIR),
    pattern="*.md",
    setup=_enter_scratch_dir,
    teardown=_leave_scratch_dir,
).pytest()
