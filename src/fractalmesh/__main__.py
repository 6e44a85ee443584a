"""Command-line interface."""
from fractalmesh.main import cli

if __name__ == "__main__":
    cli()
