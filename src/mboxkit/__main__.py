"""Entry point for running mboxkit as a module.

Usage:
    python -m mboxkit info inbox.mbox
    python -m mboxkit --help
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env (MBOXKIT_CONFIG_PATH) before any other imports

from mboxkit.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
