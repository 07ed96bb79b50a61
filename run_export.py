"""Convenience shim to run the GitHub activity export."""

from __future__ import annotations

import sys

from src.pipeline.runner import main as export_main


if __name__ == "__main__":
    export_main(sys.argv[1:])
