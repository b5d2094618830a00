# highlevel_auth/cli/config.py
import os
from pathlib import Path

from dotenv import load_dotenv

# The CLI runs from the user's project directory; its .env wins over the process environment.
# Must be imported before highlevel_auth.settings so the values reach Settings().
cli_dotenv_path = Path(os.getenv("HIGHLEVEL_CLI_ENV_FILE", Path.cwd() / ".env"))

if cli_dotenv_path.exists():
    load_dotenv(dotenv_path=cli_dotenv_path, override=True)

# Output style for session listings: "table" or "json"
HIGHLEVEL_CLI_OUTPUT = os.getenv("HIGHLEVEL_CLI_OUTPUT", "table")
