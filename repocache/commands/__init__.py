"""Click commands for the repocache CLI."""
