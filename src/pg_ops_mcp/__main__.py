"""Entry point for running pg_ops_mcp as a module."""

from pg_ops_mcp.server import cli_entry

if __name__ == "__main__":
    cli_entry()
