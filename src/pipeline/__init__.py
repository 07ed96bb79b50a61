"""Checkpointed activity export pipeline for GitHub and Jira."""

from .runner import main, run_export

__all__ = ["main", "run_export"]
