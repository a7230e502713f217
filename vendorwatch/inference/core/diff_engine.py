import difflib
import logging
import re
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from vendorwatch.schema.changes import (
    CapturedApiSchema,
    ChangeSet,
    DiffConfig,
    ObservedContract,
    ResponseSchema,
)
from vendorwatch.schema.network import CapturedRequest
from vendorwatch.schema.spec import VendorSpec
from vendorwatch.utils.utils import is_static_asset, url_path

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{\{?\s*([\w-]+)\s*\}?\}")
ID_SEGMENT = re.compile(r"^(\d+|[0-9a-fA-F]{8}-[0-9a-fA-F-]{27}|[0-9a-fA-F]{24,})$")

DOM_BREAKING_MODES = ("dom", "hybrid")
API_BREAKING_MODES = ("api", "hybrid")


def normalize_selector(selector: str) -> str:
    """Canonical text of a CSS selector, so cosmetic rewrites compare equal."""
    normalized = selector.strip().replace("'", '"')
    normalized = re.sub(r"\s*([>+~,])\s*", r"\1", normalized)
    normalized = re.sub(r"\s+", " ", normalized)
    normalized = re.sub(
        r"\[\s*([\w:-]+)\s*([~|^$*]?=)\s*\"?([^\"\]]*?)\"?\s*\]",
        r'[\1\2"\3"]',
        normalized,
    )
    return normalized


def _path_regex(template: str) -> re.Pattern:
    path = url_path(PLACEHOLDER.sub("__VWPARAM__", template))
    pattern = re.escape(path).replace("__VWPARAM__", "[^/]+")
    return re.compile(f"^{pattern}$")


def endpoint_matches(stored_endpoint: str, url: str) -> bool:
    return bool(_path_regex(stored_endpoint).match(url_path(url)))


def template_path(stored_endpoint: str, url: str) -> str:
    """Captured path with ids replaced by placeholders, reusing stored names."""
    stored_segments = url_path(stored_endpoint).split("/")
    segments = url_path(url).split("/")
    same_shape = len(stored_segments) == len(segments)
    templated = []
    for index, segment in enumerate(segments):
        stored_segment = stored_segments[index] if same_shape else ""
        placeholder = PLACEHOLDER.fullmatch(stored_segment)
        if placeholder:
            templated.append("{" + placeholder.group(1) + "}")
        elif ID_SEGMENT.match(segment):
            templated.append("{id}")
        else:
            templated.append(segment)
    return "/".join(templated)


def _value_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    if value is None:
        return "null"
    text = str(value)
    if text.lower() in ("true", "false"):
        return "boolean"
    if re.fullmatch(r"-?\d+(\.\d+)?", text):
        return "number"
    return "string"


def _response_schema(body: Any, config: DiffConfig) -> ResponseSchema:
    if body is None or body == "":
        return ResponseSchema(type="empty")
    if isinstance(body, dict):
        return ResponseSchema(type="object", fields=list(body.keys()), sample=body)
    if isinstance(body, list):
        first = body[0] if body else None
        fields = list(first.keys()) if isinstance(first, dict) else []
        return ResponseSchema(
            type="array", fields=fields, sample=body[: config.sample_items]
        )
    return ResponseSchema(type="primitive", sample=body)


def build_captured_schema(
    stored_endpoint: str | None, request: CapturedRequest, config: DiffConfig
) -> CapturedApiSchema:
    query_params = {
        key: _value_type(value)
        for key, value in parse_qsl(urlsplit(request.url).query, keep_blank_values=True)
    }
    request_fields = {}
    if isinstance(request.request_body, dict):
        request_fields = {
            key: _value_type(value) for key, value in request.request_body.items()
        }
    return CapturedApiSchema(
        endpoint=template_path(stored_endpoint or "", request.url),
        method=request.method.upper(),
        query_params=query_params,
        request_fields=request_fields,
        response=_response_schema(request.response_body, config),
    )


def relevant_requests(
    requests: list[CapturedRequest], config: DiffConfig
) -> list[CapturedRequest]:
    return [
        request
        for request in requests
        if request.method.upper() not in config.ignored_methods
        and not is_static_asset(request.url)
    ]


def _similarity(stored_endpoint: str, url: str) -> float:
    stored_path = PLACEHOLDER.sub("", url_path(stored_endpoint))
    return difflib.SequenceMatcher(None, stored_path, url_path(url)).ratio()


def diff(
    stored: VendorSpec | None,
    observed: ObservedContract,
    config: DiffConfig | None = None,
) -> ChangeSet:
    """Compare what a run observed against the last known-good spec.

    Only contract elements present in ``stored`` are compared; anything the
    vendor added on top is ignored. Never writes the spec.
    """
    if stored is None:
        return ChangeSet()
    config = config or DiffConfig.from_settings()

    changes: list[str] = []
    warnings: list[str] = []
    dom_changed = False
    api_changed = False
    schema_source: CapturedRequest | None = None

    stored_selectors = stored.form.selectors if stored.form is not None else {}
    for role, old_selector in stored_selectors.items():
        new_selector = observed.selectors.get(role)
        if new_selector is None:
            continue
        if normalize_selector(old_selector) != normalize_selector(new_selector):
            changes.append(f"{role}: {old_selector} -> {new_selector}")
            dom_changed = True

    if stored.api is not None:
        stored_path = url_path(stored.api.endpoint)
        candidates = relevant_requests(observed.requests, config)

        if not candidates:
            if stored.mode in API_BREAKING_MODES:
                warnings.append(
                    f"No API requests captured; {stored.api.method} {stored_path} "
                    "could not be verified"
                )
        else:
            on_path = [
                request
                for request in candidates
                if endpoint_matches(stored.api.endpoint, request.url)
            ]
            if on_path:
                same_method = [
                    request
                    for request in on_path
                    if request.method.upper() == stored.api.method
                ]
                schema_source = (same_method or on_path)[-1]
                if not same_method:
                    changes.append(
                        f"api method: {stored.api.method} -> "
                        f"{on_path[-1].method.upper()} on {stored_path}"
                    )
                    api_changed = True
            else:
                scored = sorted(
                    candidates,
                    key=lambda request: _similarity(stored.api.endpoint, request.url),
                )
                best = scored[-1]
                score = _similarity(stored.api.endpoint, best.url)
                schema_source = best
                if score >= config.endpoint_match_threshold:
                    changes.append(
                        f"api endpoint: {stored.api.method} {stored_path} -> "
                        f"{best.method.upper()} {url_path(best.url)}"
                    )
                    api_changed = True
                else:
                    warnings.append(
                        f"Stored endpoint {stored_path} not observed; closest "
                        f"{url_path(best.url)} (similarity {score:.2f}) is below "
                        f"{config.endpoint_match_threshold}"
                    )

    if dom_changed and api_changed:
        change_type = "both"
    elif dom_changed:
        change_type = "dom"
    elif api_changed:
        change_type = "api"
    else:
        change_type = None

    breaking = (dom_changed and stored.mode in DOM_BREAKING_MODES) or (
        api_changed and stored.mode in API_BREAKING_MODES
    )
    has_changes = dom_changed or api_changed

    captured_api_schema = None
    if has_changes:
        if schema_source is None:
            fallback = relevant_requests(observed.requests, config)
            schema_source = fallback[-1] if fallback else None
        if schema_source is not None:
            captured_api_schema = build_captured_schema(
                stored.api.endpoint if stored.api else None, schema_source, config
            )

    for warning in warnings:
        logger.info(f"{stored.system_code}: {warning}")

    return ChangeSet(
        has_changes=has_changes,
        change_type=change_type,
        changes=changes,
        breaking=breaking,
        warnings=warnings,
        captured_api_schema=captured_api_schema,
    )
