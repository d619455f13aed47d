"""Allow running as ``python -m usage_lens``."""

from usage_lens.cli.main import app

if __name__ == "__main__":
    app()
