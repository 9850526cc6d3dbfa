"""
Import-boundary enforcement.

1. Engine purity      -- billing_engines/** may not import DB, ORM, models,
                         stores, logging, config, modules or services.
2. Engine no-impure   -- billing_engines/** may not call wall-clock or
                         environment functions.
3. Config centralisation -- only billing_config/ may import its loader.
4. Service boundary   -- billing_services/** talks to storage only through
                         the DocumentStore protocol.
5. Dependency direction -- kernel < engines < config < modules < services.

All scanning is done via AST -- these tests are read-only.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]

PACKAGES = (
    "billing_kernel",
    "billing_engines",
    "billing_config",
    "billing_modules",
    "billing_services",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(root: str) -> list[str]:
    """Return all .py files under *root*, sorted for deterministic order."""
    return sorted(glob.glob(f"{ROOT / root}/**/*.py", recursive=True))


def _relative(filepath: str) -> str:
    return Path(filepath).relative_to(ROOT).as_posix()


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    try:
        source = Path(filepath).read_text()
        tree = ast.parse(source, filename=filepath)
    except (SyntaxError, UnicodeDecodeError):
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    for prefix in prefixes:
        if module == prefix or module.startswith(f"{prefix}."):
            return True
    return False


def _extract_attribute_calls(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute references."""
    try:
        source = Path(filepath).read_text()
        tree = ast.parse(source, filename=filepath)
    except (SyntaxError, UnicodeDecodeError):
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
            results.append((node.lineno, f"{node.value.id}.{node.attr}"))
    return results


def _violations(root: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(root):
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                found.append(f"  {_relative(filepath)}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# 1. TestEnginePurity
# ---------------------------------------------------------------------------

class TestEnginePurity:
    """billing_engines/** may only use the pure kernel domain and exceptions."""

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "yaml",
        "logging",
        "billing_kernel.db",
        "billing_kernel.models",
        "billing_kernel.services",
        "billing_kernel.logging_config",
        "billing_config",
        "billing_modules",
        "billing_services",
    )

    def test_engine_files_exist(self):
        assert _python_files("billing_engines")

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("billing_engines", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Engine purity violation -- billing_engines/** must not import "
            "DB drivers, ORM, stores, logging, config, modules or "
            "services:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 2. TestNoImpureFunctions
# ---------------------------------------------------------------------------

class TestNoImpureFunctions:
    """Engines and services read time only through an injected Clock.

    Forbidden:
        datetime.now, datetime.utcnow, date.today,
        time.time, os.environ, os.getenv
    """

    FORBIDDEN_CALLS = frozenset({
        "datetime.now",
        "datetime.utcnow",
        "date.today",
        "time.time",
        "os.environ",
        "os.getenv",
    })

    def test_no_impure_calls(self):
        violations: list[str] = []
        for root in ("billing_engines", "billing_modules", "billing_services"):
            for filepath in _python_files(root):
                for lineno, qualname in _extract_attribute_calls(filepath):
                    if qualname in self.FORBIDDEN_CALLS:
                        violations.append(
                            f"  {_relative(filepath)}:{lineno} calls '{qualname}'"
                        )

        assert not violations, (
            "Impurity violation -- use the injected Clock instead:\n"
            + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 3. TestConfigCentralization
# ---------------------------------------------------------------------------

class TestConfigCentralization:
    """Only billing_config/ may import billing_config.loader."""

    def test_no_external_import_of_loader(self):
        violations: list[str] = []
        for package in PACKAGES:
            if package == "billing_config":
                continue
            violations.extend(_violations(package, ("billing_config.loader",)))

        assert not violations, (
            "Config centralisation violation -- use "
            "billing_config.get_active_config():\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 4. TestServiceBoundary
# ---------------------------------------------------------------------------

class TestServiceBoundary:
    """billing_services/** receives a DocumentStore; it never builds one."""

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "billing_kernel.db",
        "billing_kernel.models",
        "billing_kernel.services",
    )

    def test_services_do_not_touch_persistence(self):
        violations = _violations("billing_services", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Service boundary violation -- billing_services/** must depend "
            "on the DocumentStore protocol only:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 5. TestDependencyDirection
# ---------------------------------------------------------------------------

class TestDependencyDirection:
    """Lower layers never import higher ones."""

    LAYER_RULES = {
        "billing_kernel": (
            "billing_engines", "billing_config", "billing_modules", "billing_services",
        ),
        "billing_engines": ("billing_config", "billing_modules", "billing_services"),
        "billing_config": ("billing_engines", "billing_modules", "billing_services"),
        "billing_modules": ("billing_services",),
    }

    def test_layers(self):
        violations: list[str] = []
        for package, forbidden in self.LAYER_RULES.items():
            violations.extend(_violations(package, forbidden))

        assert not violations, (
            "Dependency direction violation:\n" + "\n".join(violations)
        )
