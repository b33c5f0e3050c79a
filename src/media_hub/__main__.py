"""``python -m media_hub`` runs the same command line as ``media-hub``."""

from .cli.app import app


def main() -> None:
    app(prog_name="media-hub")


if __name__ == "__main__":
    main()
