"""Convenience shim to run the Jira issue export."""

from __future__ import annotations

import sys

from src.pipeline.jira_runner import main as jira_main


if __name__ == "__main__":
    jira_main(sys.argv[1:])
