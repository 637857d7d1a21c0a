"""
Import-boundary enforcement.

1. Kernel independence -- cropchain_kernel/** never imports
                          cropchain_services or cropchain_config.
2. Domain purity       -- cropchain_kernel/domain/** imports no ORM, no DB
                          driver and no kernel db/models/services.
3. Config entrypoint   -- outside cropchain_config, only the package itself
                          and its schema are imported; never the loader.
4. Clock discipline    -- only the clock module reads the wall clock, and
                          only cropchain_config reads the environment.

All scanning is done via AST; these tests are read-only.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    try:
        tree = ast.parse(filepath.read_text(), filename=str(filepath))
    except (SyntaxError, UnicodeDecodeError):
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _extract_attribute_calls(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute references."""
    try:
        tree = ast.parse(filepath.read_text(), filename=str(filepath))
    except (SyntaxError, UnicodeDecodeError):
        return []
    return [
        (node.lineno, f"{node.value.id}.{node.attr}")
        for node in ast.walk(tree)
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name)
    ]


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _rel(path: Path) -> str:
    return str(path.relative_to(ROOT))


def test_packages_exist():
    for package in ("cropchain_kernel", "cropchain_services", "cropchain_config"):
        assert _python_files(package), f"{package} not found under {ROOT}"


class TestKernelIndependence:

    FORBIDDEN_PREFIXES = ("cropchain_services", "cropchain_config")

    def test_kernel_never_imports_upward(self):
        violations = [
            f"  {_rel(path)}:{lineno} imports '{module}'"
            for path in _python_files("cropchain_kernel")
            for lineno, module in _extract_imports(path)
            if _matches_any(module, self.FORBIDDEN_PREFIXES)
        ]
        assert not violations, (
            "cropchain_kernel must not depend on services or config:\n" + "\n".join(violations)
        )


class TestDomainPurity:

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "cropchain_kernel.db",
        "cropchain_kernel.models",
        "cropchain_kernel.services",
    )

    def test_domain_has_no_persistence_imports(self):
        violations = [
            f"  {_rel(path)}:{lineno} imports '{module}'"
            for path in _python_files("cropchain_kernel/domain")
            for lineno, module in _extract_imports(path)
            if _matches_any(module, self.FORBIDDEN_PREFIXES)
        ]
        assert not violations, "Domain purity violation:\n" + "\n".join(violations)


class TestConfigEntrypoint:

    ALLOWED = ("cropchain_config", "cropchain_config.schema")

    def test_loader_only_used_inside_config(self):
        violations = []
        for package in ("cropchain_kernel", "cropchain_services"):
            for path in _python_files(package):
                for lineno, module in _extract_imports(path):
                    if _matches_any(module, ("cropchain_config",)) and module not in self.ALLOWED:
                        violations.append(f"  {_rel(path)}:{lineno} imports '{module}'")
        assert not violations, (
            "Use cropchain_config.get_active_config() instead of internal modules:\n"
            + "\n".join(violations)
        )


class TestClockDiscipline:

    WALL_CLOCK = frozenset({"datetime.now", "datetime.utcnow", "date.today", "time.time"})
    ENVIRONMENT = frozenset({"os.environ", "os.getenv"})

    def test_wall_clock_only_in_clock_module(self):
        clock_module = ROOT / "cropchain_kernel" / "domain" / "clock.py"
        violations = [
            f"  {_rel(path)}:{lineno} uses {call}"
            for package in ("cropchain_kernel", "cropchain_services")
            for path in _python_files(package)
            if path != clock_module
            for lineno, call in _extract_attribute_calls(path)
            if call in self.WALL_CLOCK
        ]
        assert not violations, "Read time through a Clock:\n" + "\n".join(violations)

    def test_environment_only_read_by_config(self):
        violations = [
            f"  {_rel(path)}:{lineno} uses {call}"
            for package in ("cropchain_kernel", "cropchain_services")
            for path in _python_files(package)
            for lineno, call in _extract_attribute_calls(path)
            if call in self.ENVIRONMENT
        ]
        assert not violations, "Read settings through cropchain_config:\n" + "\n".join(violations)
