#!/usr/bin/env python3
"""
Multi-tenancy scoping lint check.

Scans the route modules for reads that could cross a tenant boundary:
1. Hardcoded tenant ids
2. Tenant ids taken from the query string or request body
3. select() statements with no client_id / member_id predicate nearby
4. Empty Where() predicates
5. Primary-key lookups whose id does not come from a session

USAGE:
    python scripts/check_tenant_scoping.py

    # Or with verbose output
    python scripts/check_tenant_scoping.py -v

    # Fail on CRITICAL/HIGH findings (CI)
    python scripts/check_tenant_scoping.py --strict

EXIT CODES:
    0 - No issues found (or only lower-severity findings)
    1 - CRITICAL/HIGH issues found in --strict mode
"""

import argparse
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

# ────────────────────────────────────────────────────────────────
# Configuration
# ────────────────────────────────────────────────────────────────

SCAN_ROOT = Path(__file__).parent.parent / "Backend" / "dojostorm"

# Only HTTP handlers are checked; helpers take the scope as an argument.
INCLUDE_GLOB = "routes_*.py"

# Lines after a match searched for the scoping predicate (multi-line statements)
CONTEXT_LINES = 6

SCOPE_PREDICATE = re.compile(
    r"Where\.for_(tenant|member)\(|\.client_id\s*==|\.member_id\s*==|client_id\s*=\s*tenant\.client_id"
)

BAD_PATTERNS: List[Tuple[str, str, str]] = [
    # (pattern, severity, description)
    (
        r"client_id\s*==\s*[\"'][^\"']+[\"']",
        "CRITICAL",
        "Hardcoded client_id - tenant must come from resolve_tenant()",
    ),
    (
        r"[\"']default-client[\"']",
        "CRITICAL",
        "Hardcoded default tenant - use DEFAULT_TENANT_SLUG instead",
    ),
    (
        r"alias=[\"'](clientId|client_id|tenantId)[\"']|query_params\.get\([\"'](clientId|client_id|tenantId)",
        "CRITICAL",
        "Tenant id read from the request - only routing data may pick the tenant",
    ),
    (
        r"\bselect\(\s*[A-Z]\w*",
        "HIGH",
        "select() without a client_id/member_id predicate - potential cross-tenant leak",
    ),
    (
        r"\bWhere\(\s*\)",
        "HIGH",
        "Empty Where() - start from Where.for_tenant() or Where.for_member()",
    ),
    (
        r"session\.get\(",
        "MEDIUM",
        "Primary-key lookup has no tenant predicate - id must come from a session",
    ),
]

# Patterns that are OK (suppress false positives)
IGNORE_PATTERNS = [
    r"^\s*#",  # Comments
    r"noqa:\s*tenant-scoping",  # Explicit suppression
    r"session\.get\(\w+,\s*auth\.member_id\)",  # Member row of the portal session
    r"session\.get\(\w+,\s*admin\.user_id\)",  # User row of the staff session
]


# ────────────────────────────────────────────────────────────────
# Data Classes
# ────────────────────────────────────────────────────────────────

@dataclass
class Finding:
    """A single tenant scoping issue."""

    file: Path
    line_num: int
    line_text: str
    severity: str
    description: str

    def __str__(self):
        return f"{self.severity}: {self.file}:{self.line_num} - {self.description}\n  > {self.line_text.strip()}"


# ────────────────────────────────────────────────────────────────
# Scanning Logic
# ────────────────────────────────────────────────────────────────

def should_ignore_line(line: str) -> bool:
    return any(re.search(pattern, line) for pattern in IGNORE_PATTERNS)


def scan_source(source: str, file_path: Path) -> List[Finding]:
    """Scan module source text for tenant scoping issues."""
    findings = []
    lines = source.split("\n")
    in_docstring = False

    for line_num, line in enumerate(lines, 1):
        # Module and function docstrings list endpoints, not queries
        if line.count('"""') == 1:
            in_docstring = not in_docstring
            continue
        if in_docstring or should_ignore_line(line):
            continue

        for pattern, severity, description in BAD_PATTERNS:
            if not re.search(pattern, line):
                continue
            if severity == "HIGH" and "select(" in line:
                context_window = "\n".join(lines[line_num - 1:line_num - 1 + CONTEXT_LINES])
                if SCOPE_PREDICATE.search(context_window):
                    continue
            findings.append(Finding(
                file=file_path,
                line_num=line_num,
                line_text=line,
                severity=severity,
                description=description,
            ))

    return findings


def scan_file(file_path: Path) -> List[Finding]:
    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as e:
        print(f"Warning: Could not read {file_path}: {e}", file=sys.stderr)
        return []
    return scan_source(content, file_path)


def scan_directory(root: Path) -> List[Finding]:
    all_findings = []
    for path in sorted(root.rglob(INCLUDE_GLOB)):
        all_findings.extend(scan_file(path))
    return all_findings


# ────────────────────────────────────────────────────────────────
# Reporting
# ────────────────────────────────────────────────────────────────

SEVERITY_ORDER = ["CRITICAL", "HIGH", "MEDIUM"]


def print_report(findings: List[Finding], verbose: bool = False):
    if not findings:
        print("No tenant scoping issues found.")
        return

    by_severity = {}
    for f in findings:
        by_severity.setdefault(f.severity, []).append(f)

    print("\n" + "=" * 60)
    print("MULTI-TENANCY SCOPING CHECK REPORT")
    print("=" * 60)

    print("\nSUMMARY:")
    for sev in SEVERITY_ORDER:
        count = len(by_severity.get(sev, []))
        if count > 0:
            print(f"  {sev}: {count}")

    print(f"\nTOTAL: {len(findings)} issues")

    if verbose:
        print("\n" + "-" * 60)
        print("DETAILS:")
        print("-" * 60)
        for sev in SEVERITY_ORDER:
            for f in by_severity.get(sev, []):
                print(f"\n{f}")
    else:
        print("\nRun with -v for detailed findings.")


# ────────────────────────────────────────────────────────────────
# Main
# ────────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(
        description="Check route modules for multi-tenancy scoping issues"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show detailed findings"
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with code 1 if CRITICAL/HIGH issues are found (for CI)"
    )
    parser.add_argument(
        "--path",
        type=Path,
        default=SCAN_ROOT,
        help=f"Path to scan (default: {SCAN_ROOT})"
    )

    args = parser.parse_args()

    if not args.path.exists():
        print(f"Error: Path {args.path} does not exist", file=sys.stderr)
        sys.exit(1)

    print(f"Scanning {args.path}...")
    findings = scan_directory(args.path)

    print_report(findings, verbose=args.verbose)

    if args.strict:
        blocking = sum(1 for f in findings if f.severity in ("CRITICAL", "HIGH"))
        if blocking:
            print(f"\n{blocking} critical/high issues found. Failing.")
            sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
