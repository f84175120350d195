#!/usr/bin/env python3
"""Test runner script for Command Center
Runs backend tests with coverage and the ruff linter
"""

import argparse
import os
import subprocess
import sys
from pathlib import Path


def run_command(cmd: list, cwd: Path = None) -> subprocess.CompletedProcess:
    """Run a command and return the result"""
    print(f"Running: {' '.join(cmd)} in {cwd or Path.cwd()}")
    result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True)
    if result.stdout:
        print(result.stdout)
    if result.returncode != 0 and result.stderr:
        print("STDERR:", result.stderr)
    return result


def run_backend_tests(coverage: bool = True, verbose: bool = False) -> bool:
    """Run backend tests with pytest"""
    print("=" * 50)
    print("Running Backend Tests")
    print("=" * 50)

    cmd = [sys.executable, "-m", "pytest"]
    if verbose:
        cmd.append("-v")
    if coverage:
        cmd.extend(
            [
                "--cov=command_center",
                "--cov-report=term-missing",
                "--cov-report=html:htmlcov",
            ]
        )
    cmd.extend(["command_center/backend/tests/", "--tb=short"])

    if run_command(cmd).returncode != 0:
        print("❌ Backend tests failed!")
        return False

    print("✅ Backend tests passed!")
    if coverage:
        print("📊 Coverage report generated in htmlcov/")
    return True


def run_linting() -> bool:
    print("=" * 50)
    print("Running Code Quality Checks")
    print("=" * 50)

    result = run_command([sys.executable, "-m", "ruff", "check", "command_center/", "app.py"])
    if result.returncode != 0:
        print("❌ Linting failed!")
        return False
    print("✅ Linting passed!")
    return True


def main():
    parser = argparse.ArgumentParser(description="Run Command Center tests")
    parser.add_argument("--no-coverage", action="store_true", help="Skip coverage reports")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--no-lint", action="store_true", help="Skip linting")
    args = parser.parse_args()

    # Change to project root
    os.chdir(Path(__file__).parent.parent)

    print("🧪 Command Center Test Suite")
    print(f"Working directory: {Path.cwd()}")
    print()

    all_passed = True
    if not args.no_lint:
        all_passed = run_linting() and all_passed
        print()

    all_passed = run_backend_tests(coverage=not args.no_coverage, verbose=args.verbose) and all_passed

    print("=" * 50)
    if all_passed:
        print("🎉 All checks passed!")
    else:
        print("❌ Some checks failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
