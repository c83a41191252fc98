"""
Import-boundary enforcement.

1. Kernel isolation   -- distribution_kernel/** may not import
                         distribution_config or distribution_services.
2. Domain purity      -- distribution_kernel/domain/** may not import the
                         ORM, the database layer, models, services or
                         selectors at runtime.  Imports under
                         ``if TYPE_CHECKING:`` are annotations only.
3. Wall clock         -- outside domain/clock.py the kernel never reads the
                         wall clock directly.
4. Config direction   -- distribution_config/** may not import
                         distribution_services.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[str]:
    """Return all .py files under *package*, sorted for deterministic order."""
    return sorted(glob.glob(f"{ROOT / package}/**/*.py", recursive=True))


def _is_type_checking_guard(node: ast.AST) -> bool:
    if not isinstance(node, ast.If):
        return False
    test = node.test
    return (isinstance(test, ast.Name) and test.id == "TYPE_CHECKING") or (
        isinstance(test, ast.Attribute) and test.attr == "TYPE_CHECKING"
    )


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every runtime import in *filepath*."""
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)
    annotation_only: set[int] = set()
    for guard in ast.walk(tree):
        if _is_type_checking_guard(guard):
            for stmt in guard.body:
                annotation_only.update(id(n) for n in ast.walk(stmt))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if id(node) in annotation_only:
            continue
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                rel = Path(filepath).relative_to(ROOT)
                found.append(f"{rel}:{lineno} imports {module}")
    return found


class TestKernelIsolation:
    def test_packages_are_present(self):
        assert _python_files("distribution_kernel")
        assert _python_files("distribution_config")
        assert _python_files("distribution_services")

    def test_kernel_does_not_import_outer_layers(self):
        violations = _violations(
            "distribution_kernel", ("distribution_config", "distribution_services"),
        )
        assert violations == [], "\n".join(violations)

    def test_config_does_not_import_services(self):
        violations = _violations("distribution_config", ("distribution_services",))
        assert violations == [], "\n".join(violations)


class TestDomainPurity:
    FORBIDDEN = (
        "sqlalchemy",
        "distribution_kernel.db",
        "distribution_kernel.models",
        "distribution_kernel.services",
        "distribution_kernel.selectors",
    )

    def test_domain_has_no_persistence_imports(self):
        violations = _violations("distribution_kernel/domain", self.FORBIDDEN)
        assert violations == [], "\n".join(violations)

    def test_type_checking_imports_are_ignored(self, tmp_path):
        source = tmp_path / "annotated.py"
        source.write_text(
            "from typing import TYPE_CHECKING\n"
            "import typing\n"
            "if TYPE_CHECKING:\n"
            "    from sqlalchemy.orm import Session\n"
            "if typing.TYPE_CHECKING:\n"
            "    import distribution_kernel.models\n"
            "else:\n"
            "    import distribution_kernel.db\n"
        )
        modules = [m for _, m in _extract_imports(str(source))]
        assert "sqlalchemy.orm" not in modules
        assert "distribution_kernel.models" not in modules
        assert "distribution_kernel.db" in modules

    def test_runtime_import_is_flagged(self, tmp_path):
        source = tmp_path / "eager.py"
        source.write_text("from distribution_kernel.models.history import HistoryEntry\n")
        assert _extract_imports(str(source)) == [(1, "distribution_kernel.models.history")]


class TestWallClock:
    IMPURE = {"datetime.now", "datetime.utcnow", "time.time", "date.today"}

    def test_kernel_reads_time_only_through_clock(self):
        violations = []
        for filepath in _python_files("distribution_kernel"):
            if filepath.endswith("domain/clock.py"):
                continue
            tree = ast.parse(Path(filepath).read_text(), filename=filepath)
            for node in ast.walk(tree):
                if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
                    name = f"{node.value.id}.{node.attr}"
                    if name in self.IMPURE:
                        rel = Path(filepath).relative_to(ROOT)
                        violations.append(f"{rel}:{node.lineno} calls {name}")
        assert violations == [], "\n".join(violations)
