"""Main entry point for the orderflow CLI.

Usage:
    python -m orderflow.main --help
    orderflow --help  # If installed via pip/uv
"""

from orderflow.cli import main

if __name__ == "__main__":
    main()
