"""
Package entry point.

Allows running the application via:

    python -m campusschedule

This simply forwards execution to campusschedule.cli.main().
"""

from campusschedule.cli import main

if __name__ == "__main__":
    main()
