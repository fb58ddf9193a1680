"""Run the forge server over stdio.

    python -m mcp_forge_server [--config forge.yml] [--log-level DEBUG]
"""

import sys

from mcp_forge_cli import cli


if __name__ == "__main__":
    cli(["serve", *sys.argv[1:]])
