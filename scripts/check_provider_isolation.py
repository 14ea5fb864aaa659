#!/usr/bin/env python3
"""Provider isolation check for the dispatch core.

core/, types/ and utils/ must stay vendor-agnostic: they may not import
from notify_dispatch.plugins or notify_dispatch.adapters, and they may not
name a vendor from the provider catalog. Vendor names are taken from
``CHANNEL_PROVIDER_CATALOG`` so the check follows the catalog as it grows.

Exit codes:
    0: No violations found
    1: Violations detected
"""

from __future__ import annotations

import ast
import re
import sys
from pathlib import Path
from typing import Final

from notify_dispatch.plugins.registry import CHANNEL_PROVIDER_CATALOG

RED: Final[str] = "\033[91m"
GREEN: Final[str] = "\033[92m"
RESET: Final[str] = "\033[0m"

PROTECTED_DIRS: Final[tuple[str, ...]] = ("core", "types", "utils")
FORBIDDEN_PACKAGES: Final[tuple[str, ...]] = ("notify_dispatch.plugins", "notify_dispatch.adapters")

type Violation = tuple[int, str]


def vendor_pattern() -> re.Pattern[str]:
    """Build a word-boundary pattern over every catalog vendor name."""
    names = sorted({name for names in CHANNEL_PROVIDER_CATALOG.values() for name in names})
    return re.compile(rf"\b(?:{'|'.join(map(re.escape, names))})\b", re.IGNORECASE)


def _imported_modules(tree: ast.AST) -> list[tuple[int, str]]:
    modules: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            modules.extend((node.lineno, alias.name) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            modules.append((node.lineno, node.module))
    return modules


def check_file(file_path: Path, vendors: re.Pattern[str]) -> list[Violation]:
    """Return (line, description) for every violation in one module."""
    source = file_path.read_text(encoding="utf-8")
    violations: list[Violation] = [
        (line, f"imports {module}")
        for line, module in _imported_modules(ast.parse(source, filename=str(file_path)))
        if module.startswith(FORBIDDEN_PACKAGES)
    ]
    for line_num, line in enumerate(source.splitlines(), start=1):
        match = vendors.search(line)
        if match:
            violations.append((line_num, f"names vendor {match.group(0)!r}: {line.strip()}"))
    return sorted(violations)


def main() -> int:
    package_root = Path(__file__).resolve().parent.parent / "src" / "notify_dispatch"
    if not package_root.is_dir():
        print(f"{RED}Error: {package_root} not found{RESET}", file=sys.stderr)
        return 1

    vendors = vendor_pattern()
    found: dict[Path, list[Violation]] = {}
    for protected in PROTECTED_DIRS:
        for py_file in sorted((package_root / protected).rglob("*.py")):
            violations = check_file(py_file, vendors)
            if violations:
                found[py_file] = violations

    if not found:
        print(f"{GREEN}✓ {', '.join(PROTECTED_DIRS)} are provider-agnostic{RESET}")
        return 0

    total = sum(len(violations) for violations in found.values())
    print(f"{RED}✗ {total} provider isolation violation(s):{RESET}\n")
    for py_file, violations in found.items():
        print(f"{RED}{py_file.relative_to(package_root.parent.parent)}{RESET}")
        for line_num, description in violations:
            print(f"  {line_num}: {description}")
    print("\nMove vendor-specific code to plugins/ or adapters/.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
