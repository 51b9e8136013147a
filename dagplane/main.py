"""
Main entry point for dagplane.

``uvicorn dagplane.main:app`` serves the API with settings from the
environment; ``dagplane serve`` does the same with command line flags.
"""

from .api import create_app

app = create_app()

if __name__ == "__main__":
    from .cli import main

    main()
