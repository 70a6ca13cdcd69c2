"""Tests that runtime imports are declared as project dependencies."""

import ast
import re
import sys
import tomllib
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent

# import name -> distribution name where they differ
DISTRIBUTIONS = {"paho": "paho-mqtt"}


def _declared():
    project = tomllib.loads((ROOT / "pyproject.toml").read_text())["project"]
    return {re.split(r"[<>=\[ ]", dep, maxsplit=1)[0].lower() for dep in project["dependencies"]}


def _imported():
    names = set()
    for path in (ROOT / "ruuvi_home").rglob("*.py"):
        for node in ast.walk(ast.parse(path.read_text())):
            if isinstance(node, ast.Import):
                names.update(alias.name.split(".")[0] for alias in node.names)
            elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
                names.add(node.module.split(".")[0])
    return names - set(sys.stdlib_module_names) - {"ruuvi_home"}


def test_every_third_party_import_is_declared():
    declared = _declared()
    missing = {
        name
        for name in _imported()
        if DISTRIBUTIONS.get(name, name.replace("_", "-")).lower() not in declared
    }
    assert missing == set()


def test_starlette_declared_explicitly():
    assert "starlette" in _declared()
