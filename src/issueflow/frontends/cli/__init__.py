"""CLI frontend for issueflow.

Commands:
    issueflow run           Execute the pipeline for a set of issues
    issueflow plan          Show execution levels without running
    issueflow status        Show configuration and repository status
    issueflow labels sync   Create missing classifier labels

Example:
    $ issueflow plan --issues 12,13,14
    $ issueflow run --issues 12,13,14 --concurrency 2 --dry-run
"""

from issueflow.frontends.cli.main import main

__all__ = ["main"]
