"""Read JS/TS sources of a GitHub repository through the contents API."""

import os
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional, Tuple

from github import Github, GithubException
from github.Repository import Repository

from ..utils.logging import get_logger

logger = get_logger("tools.github")


class GitHubSource:
    """
    Enumerates and fetches source files of `owner/repo` at a ref.

    Nothing is cloned; each file is downloaded on demand.
    """

    def __init__(self, repo: str, ref: Optional[str] = None, token: Optional[str] = None):
        """
        Initialize GitHub source.

        Args:
            repo: Repository in format "owner/repo"
            ref: Branch, tag or commit (defaults to the default branch)
            token: GitHub token (defaults to GITHUB_TOKEN env var)
        """
        self.token = token or os.environ.get("GITHUB_TOKEN")
        if not self.token:
            raise ValueError("GitHub token required. Set GITHUB_TOKEN env var or pass token parameter.")

        self.gh = Github(self.token)
        self.repo_name = repo
        self._repo: Optional[Repository] = None
        self._ref = ref

    @property
    def repo(self) -> Repository:
        """Get the repository object (cached)."""
        if self._repo is None:
            self._repo = self.gh.get_repo(self.repo_name)
        return self._repo

    @property
    def ref(self) -> str:
        if self._ref is None:
            self._ref = self.repo.default_branch
        return self._ref

    def list_source_files(
        self,
        extensions: Iterable[str],
        is_ignored=None,
        root: str = "",
    ) -> List[str]:
        """
        Paths of files with one of `extensions`, walking directories iteratively.

        Args:
            extensions: Suffixes to keep, e.g. {".js", ".ts"}
            is_ignored: Optional predicate on a path; ignored paths are skipped
            root: Directory to start from

        Returns:
            Sorted repository paths
        """
        wanted = {e.lower() for e in extensions}
        found = []
        pending = [root]
        while pending:
            directory = pending.pop()
            contents = self.repo.get_contents(directory, ref=self.ref)
            if not isinstance(contents, list):
                contents = [contents]
            for item in contents:
                if is_ignored is not None and is_ignored(item.path):
                    continue
                if item.type == "dir":
                    pending.append(item.path)
                elif item.type == "file" and PurePosixPath(item.path).suffix.lower() in wanted:
                    found.append(item.path)
        return sorted(found)

    def fetch(self, path: str) -> str:
        """Decoded text of one file."""
        content = self.repo.get_contents(path, ref=self.ref)
        if isinstance(content, list):
            raise ValueError(f"{path} is a directory")
        return content.decoded_content.decode("utf-8")

    def fetch_all(self, paths: Iterable[str]) -> Tuple[Dict[str, str], Dict[str, str]]:
        """
        Fetch many files; a failed download does not stop the others.

        Returns:
            Tuple of (text by path, error message by path)
        """
        sources = {}
        errors = {}
        for path in paths:
            try:
                sources[path] = self.fetch(path)
            except (GithubException, UnicodeDecodeError, ValueError) as e:
                logger.warning(f"Failed to fetch {path}: {e}")
                errors[path] = f"Fetch failed: {e}"
        return sources, errors
