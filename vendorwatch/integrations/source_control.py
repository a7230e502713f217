import base64
import logging

import httpx
from pydantic import BaseModel

from vendorwatch.utils.settings import settings

logger = logging.getLogger(__name__)


class SourceFile(BaseModel):
    path: str
    content: str
    sha: str | None = None


class PullRequest(BaseModel):
    url: str
    number: int
    branch_name: str


class SourceControl:
    async def get_file(self, path: str) -> SourceFile | None:
        raise NotImplementedError

    async def open_pull_request(
        self,
        branch_name: str,
        file: SourceFile,
        new_content: str,
        commit_message: str,
        title: str,
        body: str,
    ) -> PullRequest:
        raise NotImplementedError


class GitHubSourceControl(SourceControl):
    """Reads vendor code and opens draft pull requests over the GitHub REST API."""

    def __init__(
        self,
        repository: str | None = None,
        token: str | None = None,
        base_branch: str | None = None,
        api_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.repository = repository or settings.GITHUB_REPOSITORY
        self.token = token or settings.GITHUB_TOKEN
        self.base_branch = base_branch or settings.GITHUB_BASE_BRANCH
        self.api_url = (api_url or settings.GITHUB_API_URL).rstrip("/")
        self.transport = transport

        if not self.repository or not self.token:
            raise ValueError("GITHUB_REPOSITORY and GITHUB_TOKEN must be set")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.api_url}/repos/{self.repository}",
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/vnd.github+json",
            },
            timeout=30.0,
            transport=self.transport,
        )

    async def get_file(self, path: str) -> SourceFile | None:
        try:
            async with self._client() as client:
                response = await client.get(
                    f"/contents/{path}", params={"ref": self.base_branch}
                )
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                payload = response.json()
            content = base64.b64decode(payload["content"]).decode("utf-8")
        except httpx.HTTPStatusError as e:
            raise ValueError(
                f"Failed to read {path}: {e.response.status_code} - {e.response.text}"
            )
        except httpx.RequestError as e:
            raise ValueError(f"Failed to read {path}: {type(e).__name__}: {e}")
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Failed to read {path}: unexpected payload ({e})")

        return SourceFile(path=path, content=content, sha=payload.get("sha"))

    async def _delete_branch(self, client: httpx.AsyncClient, branch_name: str) -> bool:
        try:
            response = await client.delete(f"/git/refs/heads/{branch_name}")
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Could not delete branch {branch_name}, left orphaned: {e}")
            return False
        logger.info(f"Deleted branch {branch_name} after a failed pull request")
        return True

    async def open_pull_request(
        self,
        branch_name: str,
        file: SourceFile,
        new_content: str,
        commit_message: str,
        title: str,
        body: str,
    ) -> PullRequest:
        async with self._client() as client:
            branch_created = False
            try:
                response = await client.get(f"/git/ref/heads/{self.base_branch}")
                response.raise_for_status()
                base_sha = response.json()["object"]["sha"]

                response = await client.post(
                    "/git/refs",
                    json={"ref": f"refs/heads/{branch_name}", "sha": base_sha},
                )
                response.raise_for_status()
                branch_created = True

                commit = {
                    "message": commit_message,
                    "content": base64.b64encode(new_content.encode("utf-8")).decode(
                        "ascii"
                    ),
                    "branch": branch_name,
                }
                if file.sha:
                    commit["sha"] = file.sha
                response = await client.put(f"/contents/{file.path}", json=commit)
                response.raise_for_status()

                response = await client.post(
                    "/pulls",
                    json={
                        "title": title,
                        "body": body,
                        "head": branch_name,
                        "base": self.base_branch,
                        "draft": True,
                    },
                )
                response.raise_for_status()
                payload = response.json()
                pull_request = PullRequest(
                    url=payload["html_url"],
                    number=payload["number"],
                    branch_name=branch_name,
                )
            except httpx.HTTPStatusError as e:
                reason = f"{e.response.status_code} - {e.response.text}"
            except httpx.RequestError as e:
                reason = f"{type(e).__name__}: {e}"
            except (KeyError, TypeError, ValueError) as e:
                reason = f"unexpected payload ({e})"
            else:
                logger.info(f"Opened draft pull request {pull_request.url}")
                return pull_request

            if branch_created and not await self._delete_branch(client, branch_name):
                reason += f"; branch {branch_name} left orphaned"
        raise ValueError(f"Failed to open pull request: {reason}")
