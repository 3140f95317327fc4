"""sprinter: triage Jira sprint issues into linked tasks.

For each issue of a sprint, sprinter asks which tasks (DEV, QE, Upstream,
...) to spawn through the Jira automation, waits for Jira to create them,
then sets size, assignee and sprint on each task and drops the parent
issue from the sprint.

Usage:
    $ sprinter --board 1234
    $ sprinter --board 1234 --assignee someone@redhat.com --dry
"""

try:
    from importlib.metadata import version as _get_version

    __version__ = _get_version("jira-sprinter")
except Exception:
    __version__ = "0.0.0-dev"

__all__ = ["__version__"]
