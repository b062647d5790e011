from __future__ import annotations

import logging

from github import Github, GithubException

logger = logging.getLogger(__name__)

# Hidden marker identifying the summary comment prrelay owns on a PR.
SUMMARY_MARKER = "<!-- prrelay-review -->"


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_pull_requests(repo, state: str = "open"):
    return repo.get_pulls(state=state)


def get_files(pr):
    return pr.get_files()


def find_summary_comment(pr):
    """Return the most recent issue comment carrying SUMMARY_MARKER, or None."""
    found = None
    for comment in pr.get_issue_comments():
        if SUMMARY_MARKER in (comment.body or ""):
            found = comment
    return found


def post_review_comment(pr, body: str) -> None:
    """Post ``body`` as the PR's review summary, replacing an earlier one if present."""
    body = f"{body}\n\n{SUMMARY_MARKER}"
    existing = find_summary_comment(pr)
    if existing is not None:
        logger.debug("Updating existing summary comment %s", existing.id)
        existing.edit(body)
        return
    pr.create_issue_comment(body)


def already_commented(existing_comments, path: str, line: int, body: str) -> bool:
    """Check whether a review comment on ``path``:``line`` already opens like ``body``.

    Only the first 50 characters of ``body`` are compared, so a comment whose
    wording was extended on a later run still counts as a duplicate.
    """
    opening = body.strip()[:50]
    for c in existing_comments:
        # c.line is None once the commented line left the diff (e.g. after a
        # force-push); original_line still points at it.
        comment_line = c.line if c.line is not None else getattr(c, "original_line", None)
        if c.path == path and comment_line == line and opening in (c.body or ""):
            return True
    return False


def post_inline_comments(pr, comments: list[dict]) -> int:
    """Post ``comments`` as line comments on the PR's head commit.

    Each comment is a dict with ``path``, ``line`` and ``body``. Duplicates of
    comments already on the PR, or earlier in ``comments``, are skipped. A
    comment GitHub rejects (usually a line outside the diff) is logged and
    skipped. Returns the number of comments posted.
    """
    existing = list(pr.get_review_comments())
    commit = pr.base.repo.get_commit(pr.head.sha)

    posted = 0
    for comment in comments:
        path, line, body = comment["path"], comment["line"], comment["body"]
        if already_commented(existing, path, line, body):
            logger.debug("Skipping duplicate comment on %s:%d", path, line)
            continue
        try:
            created = pr.create_review_comment(body, commit, path, line=line)
        except GithubException as e:
            logger.warning("Could not comment on %s:%d: %s", path, line, e)
            continue
        existing.append(created)
        posted += 1
    return posted
