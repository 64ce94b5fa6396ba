"""Allow running buckify as ``python -m buckify``."""

from .cli import main

if __name__ == "__main__":
    main()
