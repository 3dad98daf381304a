"""Entry point for running mailfiler as a module.

Usage:
    python -m mailfiler validate-config
    python -m mailfiler --help
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before any other imports that need env vars

from mailfiler.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
