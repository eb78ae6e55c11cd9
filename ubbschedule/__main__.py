"""
Package entry point.

Allows running the application via:

    python -m ubbschedule

This simply forwards execution to ubbschedule.cli.main().
"""

from ubbschedule.cli import main

if __name__ == "__main__":
    main()
