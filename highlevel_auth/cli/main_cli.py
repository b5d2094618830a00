# highlevel_auth/cli/main_cli.py
import typer

from . import config  # noqa: F401  loads the CLI .env before settings are read
from . import sessions_cli

# Main CLI application with help enabled when no arguments are provided
app = typer.Typer(
    name="highlevel-auth",
    help="HighLevel credential lifecycle command line interface.",
    no_args_is_help=True
)

app.add_typer(sessions_cli.app, name="sessions")


@app.callback()
def main_callback():
    """
    Inspect and manage stored HighLevel sessions.
    Use 'highlevel-auth sessions --help' for session commands.
    """
    pass


def cli_entry_point():
    """Entry point function for console script registration in pyproject.toml"""
    app()


if __name__ == "__main__":
    cli_entry_point()
