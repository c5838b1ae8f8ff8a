"""Git policy precondition, checked before a publish run touches anything."""

from __future__ import annotations

import re

from .errors import PreconditionFailure
from .git import SourceControlGateway


def check_git_policy(
    git: SourceControlGateway, allowed_email_patterns: list[str]
) -> str:
    """Verify the committer identity used for release commits.

    The e-mail must be configured, and must fully match one of the allowed
    patterns when any are configured.

    Returns:
        The committer e-mail.

    Raises:
        PreconditionFailure: If the policy is not met.
    """
    email = git.user_email()
    if not email:
        raise PreconditionFailure(
            "Git user e-mail is not configured. Run:\n"
            '  git config user.email "you@example.com"'
        )
    if allowed_email_patterns and not any(
        re.fullmatch(pattern, email) for pattern in allowed_email_patterns
    ):
        raise PreconditionFailure(
            f"Git user e-mail {email!r} does not match any allowed pattern:\n"
            + "\n".join(f"  - {p}" for p in allowed_email_patterns)
        )
    return email
