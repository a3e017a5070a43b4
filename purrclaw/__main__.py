"""
Entry point for running purrclaw as a module: python -m purrclaw
"""

from purrclaw.cli.commands import app

if __name__ == "__main__":
    app()
