"""
Source-control metadata for the info payload.

Uses GitPython; no shell commands.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from callwatch.core.logging import logger
from callwatch.core.utils.datetime_utils import format_iso


@dataclass(frozen=True)
class ScmInfo:
    revision: str
    time: Optional[str]
    scm_type: str
    url: Optional[str]

    def as_params(self) -> Dict[str, Any]:
        return {
            "scm_revision": self.revision,
            "scm_time": self.time,
            "scm_type": self.scm_type,
            "scm_url": self.url,
        }


def detect_scm(path: Union[str, Path, None] = None) -> Optional[ScmInfo]:
    """
    Describe the git checkout containing path (default: working directory).

    Returns None when there is no repository, no commit yet, or git itself is
    unavailable.
    """
    try:
        import git
        from git.exc import InvalidGitRepositoryError, NoSuchPathError
    except ImportError as e:
        # GitPython refuses to import without a git executable
        logger.debug("Git unavailable, no SCM metadata", error=str(e))
        return None

    repo_path = Path(path) if path is not None else Path.cwd()
    try:
        repo = git.Repo(repo_path, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError):
        logger.debug("No git repository found", path=str(repo_path))
        return None

    try:
        commit = repo.head.commit
    except ValueError:
        logger.debug("Git repository has no commits", path=str(repo_path))
        return None

    url = None
    try:
        if repo.remotes:
            remote = repo.remotes.origin if "origin" in [r.name for r in repo.remotes] else repo.remotes[0]
            url = remote.url
    except (git.GitCommandError, AttributeError) as e:
        logger.debug("Could not read git remote", error=str(e))

    return ScmInfo(
        revision=commit.hexsha,
        time=format_iso(commit.committed_datetime),
        scm_type="git",
        url=url,
    )
