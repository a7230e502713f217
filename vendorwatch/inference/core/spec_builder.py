import logging
import re
from datetime import datetime, timezone
from urllib.parse import parse_qsl, urlsplit

from vendorwatch.inference.core.diff_engine import (
    build_captured_schema,
    endpoint_matches,
    relevant_requests,
    template_path,
)
from vendorwatch.inference.core.locator.chain import MISSING_SELECTOR
from vendorwatch.schema.changes import DiffConfig
from vendorwatch.schema.network import CapturedRequest
from vendorwatch.schema.spec import ApiSpec, FormSpec, SuccessIndicators, VendorSpec
from vendorwatch.utils.utils import url_path
from vendorwatch.workflows.login.state import LoginState
from vendorwatch.workflows.search.state import SearchState

logger = logging.getLogger(__name__)

# fields that change on every write and say nothing about the vendor
VOLATILE_FIELDS = {"captured_at", "version"}


def _is_data_response(request: CapturedRequest) -> bool:
    return 200 <= request.response_status < 300 and isinstance(
        request.response_body, (dict, list)
    )


def _observed_api(
    previous: ApiSpec | None, search_state: SearchState, config: DiffConfig
) -> ApiSpec | None:
    candidates = [
        request
        for request in relevant_requests(search_state.captured_requests, config)
        if _is_data_response(request)
    ]
    if previous is not None:
        on_path = [
            request
            for request in candidates
            if endpoint_matches(previous.endpoint, request.url)
            and request.method.upper() == previous.method
        ]
        if not on_path:
            return previous
        schema = build_captured_schema(previous.endpoint, on_path[-1], config)
        return previous.model_copy(
            update={"response_fields": schema.response.fields or previous.response_fields}
        )

    if not candidates:
        return None

    request = candidates[-1]
    schema = build_captured_schema(None, request, config)
    query = search_state.query
    sent = dict(parse_qsl(urlsplit(request.url).query, keep_blank_values=True))
    if isinstance(request.request_body, dict):
        sent.update(request.request_body)

    request_fields = {}
    for field_name, value in sent.items():
        if str(value) == query:
            request_fields[field_name] = "query"
        elif value in search_state.path_params.values():
            source = next(
                name for name, param in search_state.path_params.items() if param == value
            )
            request_fields[field_name] = source

    method = request.method.upper()
    if method not in ("GET", "POST", "PUT", "PATCH", "DELETE"):
        return None

    # segments carrying a known path parameter keep that parameter's name
    segments = template_path("", request.url).split("/")
    for index, segment in enumerate(url_path(request.url).split("/")):
        for name, value in search_state.path_params.items():
            if segment and segment == value:
                segments[index] = "{" + name + "}"

    return ApiSpec(
        endpoint="/".join(segments),
        method=method,
        params=sorted(schema.query_params) or None,
        request_fields=request_fields or None,
        response_fields=schema.response.fields if schema.response else [],
    )


def _observed_selectors(*states) -> dict[str, str]:
    selectors = {}
    for state in states:
        if state is None:
            continue
        for role, selector in state.observed_selectors.items():
            if selector != MISSING_SELECTOR:
                selectors[role] = selector
    return selectors


def build_vendor_spec(
    previous: VendorSpec | None,
    login_state: LoginState,
    search_state: SearchState | None = None,
    config: DiffConfig | None = None,
) -> VendorSpec:
    """Derive the next known-good spec from a successful run."""
    config = config or DiffConfig.from_settings()

    form = previous.form.model_copy(deep=True) if previous and previous.form else FormSpec()
    form.selectors.update(_observed_selectors(login_state, search_state))

    api = previous.api if previous else None
    if search_state is not None:
        api = _observed_api(api, search_state, config)

    if previous is not None:
        mode = previous.mode
    elif search_state is not None and search_state.search_method == "api":
        mode = "api"
    elif api is not None:
        mode = "hybrid"
    else:
        mode = "dom"

    indicators = (
        previous.success_indicators.model_copy()
        if previous is not None
        else SuccessIndicators()
    )
    if (
        indicators.url_pattern is None
        and login_state.current_url
        and login_state.url_before_submit
        and url_path(login_state.current_url) != url_path(login_state.url_before_submit)
    ):
        indicators.url_pattern = re.escape(url_path(login_state.current_url))

    return VendorSpec(
        system_code=login_state.system_code,
        url=login_state.url,
        captured_at=datetime.now(timezone.utc),
        version=previous.version + 1 if previous is not None else 1,
        mode=mode,
        form=form if form.selectors else None,
        api=api,
        success_indicators=indicators,
        hints=previous.hints if previous is not None else {},
    )


def contract_changed(previous: VendorSpec | None, candidate: VendorSpec) -> bool:
    if previous is None:
        return True
    return previous.model_dump(mode="json", exclude=VOLATILE_FIELDS) != (
        candidate.model_dump(mode="json", exclude=VOLATILE_FIELDS)
    )
