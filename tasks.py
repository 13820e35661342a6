from invoke import task


@task
def env(c):
    """
    Create/update the project virtual environment and install dependencies.
    """
    c.run("uv pip install -e '.[dev]'")


@task(pre=[env], help={"transport": "\"stdio\", \"sse\" or \"streamable-http\""})
def run(c, transport="stdio"):
    """
    Launch the FPL MCP server with the given transport.
    """
    c.run(f"uv run python -m fpl_mcp --transport {transport}", pty=True)


@task
def sync(c):
    """
    Run one full FPL data synchronization and exit.
    """
    c.run("uv run python -m fpl_mcp --sync-once", pty=True)


@task
def test(c):
    """
    Run the test suite.
    """
    c.run("uv run pytest tests", pty=True)
