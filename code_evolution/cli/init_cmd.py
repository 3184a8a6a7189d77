"""Initialize code-evolution in a project."""

import json
from pathlib import Path
from typing import Optional

from ..config import CONFIG_FILE_NAMES, DEFAULT_CONFIG_DATA


WORKFLOW_TEMPLATE = '''name: Code Evolution

on:
  pull_request:
    types: [opened, synchronize, reopened]

permissions:
  contents: read
  security-events: write

jobs:
  analyze:
    name: Performance Analysis
    runs-on: ubuntu-latest

    steps:
      - uses: actions/checkout@v4

      - uses: actions/setup-python@v5
        with:
          python-version: "3.11"

      - name: Install code-evolution
        run: pip install code-evolution

      - name: Analyze sources
        run: |
          code-evolution analyze . \\
            --format sarif \\
            -o code-evolution.sarif \\
            --fail-on critical

      - uses: github/codeql-action/upload-sarif@v3
        if: always()
        with:
          sarif_file: code-evolution.sarif
'''


def init_repository(target_dir: Optional[Path] = None, with_workflow: bool = False) -> bool:
    """
    Initialize code-evolution in a project.

    Creates:
      - .codeevolutionrc.json
      - .github/workflows/code-evolution.yml (with_workflow, git repositories only)
    """
    target = target_dir or Path.cwd()
    if not target.is_dir():
        print(f"Error: {target} is not a directory")
        return False

    created_files = []

    config_file = target / CONFIG_FILE_NAMES[0]
    existing = [target / name for name in CONFIG_FILE_NAMES if (target / name).exists()]
    if existing:
        print(f"Already exists: {existing[0]}")
    else:
        config_file.write_text(json.dumps(DEFAULT_CONFIG_DATA, indent=2) + "\n", encoding="utf-8")
        print(f"Created: {config_file}")
        created_files.append(config_file)

    if with_workflow:
        if not (target / ".git").exists():
            print(f"Error: {target} is not a git repository")
            return False
        workflow_dir = target / ".github" / "workflows"
        workflow_dir.mkdir(parents=True, exist_ok=True)

        workflow_file = workflow_dir / "code-evolution.yml"
        if workflow_file.exists():
            print(f"Already exists: {workflow_file}")
        else:
            workflow_file.write_text(WORKFLOW_TEMPLATE, encoding="utf-8")
            print(f"Created: {workflow_file}")
            created_files.append(workflow_file)

    if created_files:
        print("\nNext steps:")
        print(f"  1. Review {config_file.name} (detectors, severity thresholds, dbPatterns)")
        print("  2. code-evolution analyze . --solutions")
    else:
        print("\nAlready configured. No changes needed.")

    return True
