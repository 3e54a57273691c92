"""Allow running the acceptance suite with ``python -m acceptance``."""

from acceptance.cli.main import main

if __name__ == "__main__":
    main()
