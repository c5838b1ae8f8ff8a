"""CLI entry point for monopub."""

from __future__ import annotations

from pathlib import Path

import click
from packaging.utils import canonicalize_name

from .change_manager import ChangeManager
from .changes import ChangeFiles
from .config import PublishOptions, load_config
from .errors import RegistryPublishFailure, ReleaseError
from .git import GitRepository
from .models import ChangeRequest, ChangeType
from .policy import check_git_policy
from .publish import PublishOrchestrator
from .registry import UvPublisher
from .workspace import discover_packages

CHANGE_TYPES = [str(t) for t in ChangeType if t > ChangeType.NONE]


@click.group()
@click.version_option()
def cli() -> None:
    """Monorepo publisher: change requests in, versioned releases out."""


@cli.command()
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Workspace root (defaults to the current directory).",
)
@click.option(
    "--apply", "-a", is_flag=True, help="Write version and changelog updates."
)
@click.option(
    "--publish", "-p", is_flag=True, help="Publish to the registry (not a dry run)."
)
@click.option(
    "--target-branch",
    "-b",
    help="Branch to merge into. Git commands only run with this and --apply.",
)
@click.option("--registry", "-r", help="Alternate registry URL (disables tagging).")
@click.option(
    "--npm-auth-token",
    "--auth-token",
    "auth_token",
    help="Auth token for the registry.",
)
@click.option("--tag", "-t", "dist_tag", help="Named index to publish to.")
@click.option(
    "--include-all",
    is_flag=True,
    help="Publish every package whose version is not on the index yet.",
)
@click.option("--version-policy", help="With --include-all, only this policy.")
@click.option("--prerelease-name", help="Prerelease identifier for bumped versions.")
@click.option("--suffix", help="Suffix appended to bumped versions.")
@click.option("--force", is_flag=True, help="Publish even if the version exists.")
@click.option(
    "--add-commit-details",
    is_flag=True,
    help="Record author and commit hash in changelog entries.",
)
@click.option(
    "--regenerate-changelogs",
    is_flag=True,
    help="Re-render CHANGELOG.md from CHANGELOG.json and exit.",
)
@click.option(
    "--index-url",
    help="Simple index queried for published versions (required with --registry"
    " and --include-all).",
)
def publish(
    root: Path,
    apply: bool,
    publish: bool,
    target_branch: str | None,
    registry: str | None,
    auth_token: str | None,
    dist_tag: str | None,
    include_all: bool,
    version_policy: str | None,
    prerelease_name: str | None,
    suffix: str | None,
    force: bool,
    add_commit_details: bool,
    regenerate_changelogs: bool,
    index_url: str | None,
) -> None:
    """Bump, commit, publish and tag changed packages."""
    root = root.resolve()
    try:
        config = load_config(root)
        packages = discover_packages(root)
        options = PublishOptions(
            apply=apply,
            publish=publish,
            target_branch=target_branch,
            registry_url=registry,
            auth_token=auth_token,
            dist_tag=dist_tag,
            include_all=include_all,
            version_policy=version_policy,
            prerelease_name=prerelease_name,
            suffix=suffix,
            force=force,
            add_commit_details=add_commit_details,
            index_url=index_url,
        )
        git = GitRepository(root, execute=options.should_commit)

        if regenerate_changelogs:
            check_git_policy(git, config.allowed_email_patterns)
            ChangeManager(root, packages).regenerate_changelogs()
            return

        with UvPublisher(root, index_url or config.index_url) as publisher:
            orchestrator = PublishOrchestrator(
                root, packages, git, publisher, options, config
            )
            result = orchestrator.run()
        if not result.ok:
            raise RegistryPublishFailure(result.failed)
    except ReleaseError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command()
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Workspace root (defaults to the current directory).",
)
@click.option("--package", "package_name", required=True, help="Package changed.")
@click.option(
    "--type",
    "-t",
    "change_type",
    type=click.Choice(CHANGE_TYPES, case_sensitive=False),
    required=True,
    help="Size of the change.",
)
@click.option("--message", "-m", default="", help="Changelog comment.")
@click.option("--author", help="Author recorded in the changelog.")
def change(
    root: Path,
    package_name: str,
    change_type: str,
    message: str,
    author: str | None,
) -> None:
    """Record a change request for one package."""
    root = root.resolve()
    try:
        config = load_config(root)
        packages = discover_packages(root)
    except ReleaseError as exc:
        raise click.ClickException(str(exc)) from exc

    name = canonicalize_name(package_name)
    if name not in packages:
        raise click.ClickException(
            f"Unknown package {package_name!r}. "
            f"Workspace packages: {', '.join(sorted(packages))}"
        )

    request = ChangeRequest(
        package_name=name,
        change_type=change_type,
        comment=message,
        author=author,
    )
    path = ChangeFiles(root / config.changes_dir).write(request)
    click.echo(f"✓ Wrote {path.relative_to(root)}")
