"""Entry point for `python -m campus_cli` and the `campus-billing` console script."""

from __future__ import annotations

from campus_cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
