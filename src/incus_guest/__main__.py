"""Allow running as `python -m incus_guest`."""

from .cli import main

if __name__ == "__main__":
    main()
