"""CLI entry point for bedtime.cli module.

Enables execution via: python -m bedtime.cli process
"""

from bedtime.cli.process_jobs import main

if __name__ == "__main__":
    main()
