"""Main entry point for the techpress CLI.

Usage:
    python -m techpress --help
    techpress --help  # If installed via pip/uv
"""

from techpress.cli import main

if __name__ == "__main__":
    main()
