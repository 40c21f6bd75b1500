import base64
import logging
from typing import Iterable, Optional
from urllib.parse import quote

import requests

from models import DeployFile

logger = logging.getLogger("github-ops")

COMMIT_MESSAGE = "chore: deploy from app"


class GitHubPublishError(RuntimeError):
    """Raised when a repository cannot be prepared or a file cannot be written."""


class RepositoryUnavailable(GitHubPublishError):
    pass


def encode_content(content: str) -> str:
    """Return the base64 payload for the contents API.

    ``data:...;base64,`` URLs already carry base64 bytes; anything else is
    uploaded as UTF-8 text.
    """
    idx = content.find("base64,")
    if content.startswith("data:") and idx != -1:
        return content[idx + len("base64,"):]
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


def normalize_path(path: Optional[str]) -> str:
    return (path or "").lstrip("/") or "index.html"


class GitHubOps:
    """Publish files to a GitHub repository through the REST contents API.

    The repository is created under the authenticated user when missing and
    every file is created or updated in place on the requested branch.
    """

    def __init__(self, token: str, api_url: str = "https://api.github.com"):
        if not token:
            raise GitHubPublishError("GitHub token is required")
        self.token = token
        self.api_url = api_url.rstrip("/")

    def _headers(self):
        return {"Authorization": f"Bearer {self.token}", "Accept": "application/vnd.github+json"}

    def ensure_repo(self, owner: str, repo: str, create: bool = True) -> bool:
        r = requests.get(f"{self.api_url}/repos/{owner}/{repo}", headers=self._headers(), timeout=10)
        if r.status_code == 200:
            return True
        if r.status_code != 404 or not create:
            logger.warning("Repo lookup %s/%s returned %s", owner, repo, r.status_code)
            return False
        cr = requests.post(f"{self.api_url}/user/repos", headers=self._headers(), json={"name": repo, "private": False}, timeout=10)
        if 200 <= cr.status_code < 300:
            logger.info("Created GitHub repo %s/%s", owner, repo)
            return True
        logger.warning("Create repo returned %s: %s", cr.status_code, cr.text[:500])
        return False

    def _existing_sha(self, owner: str, repo: str, branch: str, path: str) -> Optional[str]:
        url = f"{self.api_url}/repos/{owner}/{repo}/contents/{quote(path)}"
        try:
            r = requests.get(url, headers=self._headers(), params={"ref": branch}, timeout=10)
        except requests.RequestException:
            logger.exception("Looking up %s failed; treating as new file", path)
            return None
        if r.status_code != 200:
            return None
        try:
            data = r.json()
        except ValueError:
            return None
        return data.get("sha") if isinstance(data, dict) else None

    def put_file(self, owner: str, repo: str, branch: str, path: str, content: str,
                 message: str = COMMIT_MESSAGE) -> None:
        payload = {"message": message, "content": encode_content(content), "branch": branch}
        sha = self._existing_sha(owner, repo, branch, path)
        if sha:
            payload["sha"] = sha
        r = requests.put(
            f"{self.api_url}/repos/{owner}/{repo}/contents/{quote(path)}",
            headers=self._headers(),
            json=payload,
            timeout=30,
        )
        if r.status_code not in (200, 201):
            raise GitHubPublishError(f"GitHub put failed for {path}: {r.status_code} {r.text}")
        logger.info("%s %s on %s/%s@%s", "Updated" if sha else "Created", path, owner, repo, branch)

    def publish(self, owner: str, repo: str, files: Iterable[DeployFile], branch: str = "main",
                create_repo: bool = True) -> str:
        if not self.ensure_repo(owner, repo, create=create_repo):
            raise RepositoryUnavailable("Repository not found and could not be created")
        for f in files:
            self.put_file(owner, repo, branch, normalize_path(f.path), f.content or "")
        return f"https://github.com/{owner}/{repo}/tree/{branch}"
