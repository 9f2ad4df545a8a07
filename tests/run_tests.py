"""
Test runner script for the tablestats test suite.
Wraps the common pytest invocations: test categories, coverage and dependency install.
"""

import os
import subprocess
import sys
from pathlib import Path

COMMANDS = {
    "all": ("python -m pytest tests/ -v", "Running all tests"),
    "unit": ("python -m pytest tests/unit/ -v", "Running unit tests"),
    "functional": ("python -m pytest tests/functional/ -v", "Running functional tests"),
    "api": ("python -m pytest tests/functional/test_*_api.py -v", "Running API tests"),
    "coverage": (
        "python -m pytest tests/ --cov=tablestats --cov-report=html --cov-report=term-missing -v",
        "Running tests with coverage report",
    ),
    "grouping": ("python -m pytest tests/ -k 'group' -v", "Running group point tests"),
    "install": ('pip install -e ".[test]"', "Installing test dependencies"),
}


def run_command(command, description):
    """Run a command and handle output"""
    print(f"\n{'=' * 60}")
    print(f"Running: {description}")
    print(f"Command: {command}")
    print(f"{'=' * 60}")

    result = subprocess.run(command, shell=True, capture_output=True, text=True)

    if result.stdout:
        print(result.stdout)
    if result.stderr:
        print("STDERR:", result.stderr)

    return result.returncode == 0


def main():
    """Main test runner"""
    # Change to project root directory
    project_root = Path(__file__).parent.parent
    os.chdir(project_root)

    if len(sys.argv) < 2:
        print("Usage: python tests/run_tests.py [command]")
        print("\nAvailable commands:")
        for name, (_, description) in COMMANDS.items():
            print(f"  {name:<12} - {description}")
        sys.exit(1)

    command = sys.argv[1].lower()
    if command not in COMMANDS:
        print(f"Unknown command: {command}")
        sys.exit(1)

    success = run_command(*COMMANDS[command])
    if success and command == "coverage":
        print("\nCoverage report generated in htmlcov/index.html")

    if success:
        print("\nDone.")
    else:
        print("\nSome tests failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
