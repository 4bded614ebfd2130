"""Architecture boundary tests — enforce Clean Architecture via import analysis.

These tests automatically scan every Python module in stream_core and
verify that layer dependency rules are respected. They fail the build
on any violation.

Clean Architecture layers (inner → outer):
  domain  →  application / infrastructure

Dependency rules:
  domain/         → stdlib + domain only (NO application, NO infrastructure)
  application/    → stdlib + domain + application only (NO infrastructure)
  infrastructure/ → third-party + domain + infrastructure (NO application)

These rules enforce:
- Domain isolation: domain has zero third-party dependencies and no I/O.
- Dependency inversion: the session talks to the EventStore port only.
- Layer separation: application and infrastructure are siblings, not coupled.
"""

from __future__ import annotations

import ast
import sys
from pathlib import Path

import pytest


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_SRC_ROOT = Path(__file__).parent.parent / "src" / "stream_core"
_DOMAIN_DIR = _SRC_ROOT / "domain"
_APPLICATION_DIR = _SRC_ROOT / "application"
_INFRASTRUCTURE_DIR = _SRC_ROOT / "infrastructure"

_LAYERS = {
    "domain": _DOMAIN_DIR,
    "application": _APPLICATION_DIR,
    "infrastructure": _INFRASTRUCTURE_DIR,
}

# Forbidden import targets per layer (within stream_core.*)
_FORBIDDEN_IMPORTS: dict[str, list[str]] = {
    "domain": ["application", "infrastructure"],
    "application": ["infrastructure"],
    "infrastructure": ["application"],
}


# ---------------------------------------------------------------------------
# Import scanner
# ---------------------------------------------------------------------------

def _extract_imports(filepath: Path) -> list[str]:
    """Parse a Python file and return all imported module strings."""
    source = filepath.read_text()
    tree = ast.parse(source, filename=str(filepath))
    imports: list[str] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                imports.append(alias.name)
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                imports.append(node.module)
    return imports


def _python_files(directory: Path) -> list[Path]:
    """Recursively find all .py files, excluding __init__.py."""
    return [
        p for p in directory.rglob("*.py")
        if p.name != "__init__.py"
    ]


def _stream_core_imports(imports: list[str]) -> list[str]:
    return [i for i in imports if i.startswith("stream_core.")]


def _layer_of_import(module_path: str) -> str | None:
    """stream_core.domain.events → 'domain'."""
    parts = module_path.split(".")
    if len(parts) < 2:
        return None
    return parts[1]


def _find_violations(layer_name: str, directory: Path) -> list[str]:
    forbidden = _FORBIDDEN_IMPORTS.get(layer_name, [])
    violations: list[str] = []
    for py_file in _python_files(directory):
        for imp in _stream_core_imports(_extract_imports(py_file)):
            target_layer = _layer_of_import(imp)
            if target_layer in forbidden:
                rel_path = py_file.relative_to(_SRC_ROOT)
                violations.append(
                    f"{rel_path} imports {imp} "
                    f"({layer_name} → {target_layer} is forbidden)"
                )
    return violations


# ---------------------------------------------------------------------------
# Tests: Automatic boundary enforcement per layer
# ---------------------------------------------------------------------------

class TestLayerBoundaries:

    @pytest.mark.parametrize("layer_name", sorted(_LAYERS))
    def test_no_forbidden_imports(self, layer_name: str) -> None:
        violations = _find_violations(layer_name, _LAYERS[layer_name])
        assert violations == [], (
            f"{layer_name} layer boundary violations:\n" +
            "\n".join(f"  - {v}" for v in violations)
        )


# ---------------------------------------------------------------------------
# Tests: Specific forbidden patterns
# ---------------------------------------------------------------------------

class TestForbiddenPatterns:

    def test_domain_imports_stdlib_only(self) -> None:
        """Serialization and config libraries belong to infrastructure."""
        for py_file in _python_files(_DOMAIN_DIR):
            for imp in _extract_imports(py_file):
                top = imp.split(".")[0]
                if top == "stream_core":
                    continue
                assert top in sys.stdlib_module_names, (
                    f"domain/{py_file.name} imports non-stdlib module: {imp}"
                )

    def test_domain_and_application_do_no_file_io(self) -> None:
        for directory in (_DOMAIN_DIR, _APPLICATION_DIR):
            for py_file in _python_files(directory):
                tree = ast.parse(py_file.read_text())
                for node in ast.walk(tree):
                    if isinstance(node, ast.Call):
                        func = node.func
                        if isinstance(func, ast.Name) and func.id == "open":
                            rel_path = py_file.relative_to(_SRC_ROOT)
                            pytest.fail(f"{rel_path} contains open() call")

    def test_infrastructure_does_not_define_aggregates(self) -> None:
        for py_file in _python_files(_INFRASTRUCTURE_DIR):
            tree = ast.parse(py_file.read_text())
            for node in ast.walk(tree):
                if isinstance(node, ast.ClassDef):
                    for base in node.bases:
                        base_name = ""
                        if isinstance(base, ast.Name):
                            base_name = base.id
                        elif isinstance(base, ast.Attribute):
                            base_name = base.attr
                        assert base_name != "Aggregate", (
                            f"infrastructure/{py_file.name} defines aggregate {node.name}"
                        )


# ---------------------------------------------------------------------------
# Tests: Layer existence and structure
# ---------------------------------------------------------------------------

class TestLayerStructure:

    def test_each_layer_exists(self) -> None:
        for layer_name, directory in _LAYERS.items():
            assert directory.is_dir(), f"{layer_name}/ layer directory must exist"

    def test_each_layer_has_init(self) -> None:
        for layer_name, directory in _LAYERS.items():
            init_file = directory / "__init__.py"
            assert init_file.exists(), f"{layer_name}/ missing __init__.py"
