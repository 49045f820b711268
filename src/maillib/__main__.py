"""Allow ``python -m maillib``."""

from maillib.cli import app

if __name__ == "__main__":
    app()
