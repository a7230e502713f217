import logging
import uuid
from typing import Callable

from vendorwatch.inference.core.error_classifier import classify_exception
from vendorwatch.inference.core.logging import (
    attach_run_log_handler,
    detach_run_log_handler,
)
from vendorwatch.inference.core.spec_builder import build_vendor_spec, contract_changed
from vendorwatch.inference.graph.context import RunContext
from vendorwatch.inference.infra.tool_client import ToolClient
from vendorwatch.inference.models.llm_model import LLMModel
from vendorwatch.integrations.notifier import Notifier
from vendorwatch.integrations.source_control import SourceControl
from vendorwatch.schema.changes import ChangeSet
from vendorwatch.schema.results import (
    AnalysisInput,
    AnalysisResult,
    LoginResult,
    SearchResult,
)
from vendorwatch.stores.credential_store import CredentialStore
from vendorwatch.stores.spec_store import SpecStore
from vendorwatch.utils.settings import Settings, settings
from vendorwatch.workflows.login.graph import run_login
from vendorwatch.workflows.login.state import LoginState
from vendorwatch.workflows.patch.graph import run_patch
from vendorwatch.workflows.search.graph import run_search
from vendorwatch.workflows.search.state import SearchState

logger = logging.getLogger(__name__)

CONNECTION_STATUSES = ("CONNECTION_ERROR", "TIMEOUT_ERROR")
SEARCH_COMPLETED_STATUSES = ("SUCCESS", "NOT_FOUND")


def default_tools() -> ToolClient:
    from vendorwatch.inference.infra.browser import Browser

    return Browser()


class AnalysisOrchestrator:
    """Runs login, search and, on breaking drift, patch for one vendor."""

    def __init__(
        self,
        spec_store: SpecStore,
        credential_store: CredentialStore,
        llm: LLMModel | None = None,
        source_control: SourceControl | None = None,
        notifier: Notifier | None = None,
        tools_factory: Callable[[], ToolClient] = default_tools,
        settings: Settings = settings,
    ):
        self.spec_store = spec_store
        self.credential_store = credential_store
        self.llm = llm
        self.source_control = source_control
        self.notifier = notifier
        self.tools_factory = tools_factory
        self.settings = settings

    def _context(
        self, vendor_id: str, run_id: str, tools: ToolClient | None = None
    ) -> RunContext:
        return RunContext(
            vendor_id=vendor_id,
            llm=self.llm,
            spec_store=self.spec_store,
            tools=tools,
            credential_store=self.credential_store,
            source_control=self.source_control,
            settings=self.settings,
            run_id=run_id,
        )

    async def _notify(self, kind: str, system_code: str, message: str):
        logger.info(f"Notify {kind} for {system_code}: {message}")
        if self.notifier is not None:
            await self.notifier.notify(kind, system_code, message)

    async def _browse(
        self, analysis: AnalysisInput, run_id: str
    ) -> tuple[LoginResult, LoginState, SearchResult | None, SearchState | None]:
        async with self.tools_factory() as tools:
            login_result, login_state = await run_login(
                self._context(analysis.vendor_id, run_id, tools),
                analysis.system_code,
                analysis.url,
            )
            logger.info(
                f"Login for {analysis.system_code}: {login_result.status} "
                f"({login_result.confidence})"
            )

            proceed = login_result.status == "SUCCESS" and not (
                login_result.change_set and login_result.change_set.breaking
            )
            if not proceed or analysis.search_query is None:
                return login_result, login_state, None, None

            search_result, search_state = await run_search(
                self._context(analysis.vendor_id, run_id, tools),
                analysis.system_code,
                analysis.url,
                analysis.search_query,
                session=login_result.session,
                path_params=analysis.path_params,
            )
            logger.info(
                f"Search for {analysis.system_code}: {search_result.status} "
                f"({search_result.confidence})"
            )
            return login_result, login_state, search_result, search_state

    async def _patch(
        self,
        analysis: AnalysisInput,
        run_id: str,
        change_set: ChangeSet,
        login: LoginResult,
        search: SearchResult | None = None,
    ) -> AnalysisResult:
        patch_result, _ = await run_patch(
            self._context(analysis.vendor_id, run_id), analysis.system_code, change_set
        )
        if patch_result.status == "SUCCESS":
            await self._notify(
                "PR_CREATED", analysis.system_code, patch_result.pr_url or ""
            )
            return AnalysisResult(
                action="pr_created",
                message=f"Breaking {change_set.change_type} drift, opened "
                f"{patch_result.pr_url}",
                pr_url=patch_result.pr_url,
                login=login,
                search=search,
                patch=patch_result,
            )

        await self._notify(
            "PATCH_FAILED",
            analysis.system_code,
            f"{patch_result.status}: {patch_result.message}; "
            f"changes: {change_set.changes}",
        )
        return AnalysisResult(
            action="needs_review" if patch_result.status == "NEEDS_REVIEW" else "notified",
            message=f"Breaking drift detected but no fix was opened: "
            f"{patch_result.message}",
            login=login,
            search=search,
            patch=patch_result,
        )

    async def _persist_spec(
        self,
        analysis: AnalysisInput,
        login_state: LoginState,
        search_state: SearchState | None,
    ) -> int | None:
        previous = login_state.spec
        candidate = build_vendor_spec(previous, login_state, search_state)
        if not contract_changed(previous, candidate):
            return previous.version if previous is not None else None
        await self.spec_store.put(analysis.vendor_id, candidate)
        return candidate.version

    async def run(self, analysis: AnalysisInput) -> AnalysisResult:
        run_id = uuid.uuid4().hex
        file_handler = attach_run_log_handler(run_id, self.settings.RUNS_DIRECTORY)
        logger.info(f"Analysis run {run_id} for {analysis.system_code}")
        try:
            return await self._run(analysis, run_id)
        finally:
            detach_run_log_handler(file_handler)

    async def _run(self, analysis: AnalysisInput, run_id: str) -> AnalysisResult:
        system_code = analysis.system_code
        try:
            login, login_state, search, search_state = await self._browse(
                analysis, run_id
            )
        except Exception as e:
            info = classify_exception(e)
            logger.error(f"Browser session for {system_code} failed: {e}")
            if info.is_connection_error:
                await self._notify("SERVER_DOWN", system_code, info.summary)
                return AnalysisResult(action="notified", message=info.summary)
            await self._notify("NEEDS_REVIEW", system_code, info.summary)
            return AnalysisResult(action="needs_review", message=info.summary)

        if login.status in CONNECTION_STATUSES:
            await self._notify("SERVER_DOWN", system_code, login.message or login.status)
            return AnalysisResult(
                action="notified",
                message=f"Vendor unreachable: {login.message}",
                login=login,
            )

        if login.change_set is not None and login.change_set.breaking:
            return await self._patch(analysis, run_id, login.change_set, login)

        if login.status != "SUCCESS":
            kind = "NEEDS_REVIEW" if login.status == "NEEDS_REVIEW" else "LOGIN_FAILED"
            await self._notify(kind, system_code, f"{login.status}: {login.message}")
            return AnalysisResult(
                action="needs_review" if kind == "NEEDS_REVIEW" else "notified",
                message=f"Login failed: {login.status}",
                login=login,
            )

        if search is not None:
            if search.change_set is not None and search.change_set.breaking:
                return await self._patch(
                    analysis, run_id, search.change_set, login, search
                )

            if search.status in CONNECTION_STATUSES:
                await self._notify(
                    "SERVER_DOWN", system_code, search.message or search.status
                )
                return AnalysisResult(
                    action="notified",
                    message=f"Vendor unreachable: {search.message}",
                    login=login,
                    search=search,
                )

            if search.status not in SEARCH_COMPLETED_STATUSES:
                kind = "NEEDS_REVIEW" if search.status == "NEEDS_REVIEW" else "SEARCH_FAILED"
                await self._notify(
                    kind, system_code, f"{search.status}: {search.message}"
                )
                return AnalysisResult(
                    action="needs_review" if kind == "NEEDS_REVIEW" else "notified",
                    message=f"Search failed: {search.status}",
                    login=login,
                    search=search,
                )

        previous_version = login_state.spec.version if login_state.spec else None
        spec_version = await self._persist_spec(analysis, login_state, search_state)
        if spec_version == previous_version:
            message = f"{system_code} matches its stored contract"
        else:
            message = f"{system_code} stored as spec version {spec_version}"
        return AnalysisResult(
            action="completed",
            message=message,
            login=login,
            search=search,
            spec_version=spec_version,
        )
