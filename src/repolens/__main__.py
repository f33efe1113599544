"""Entry point for running RepoLens as a module.

Usage:
    python -m repolens [command] [options]

Example:
    python -m repolens analyze https://github.com/owner/repo
    python -m repolens classify ./path/to/checkout
"""

from repolens.cli import app

if __name__ == "__main__":
    app()
