import pytest

from vendorwatch.inference.core.diff_engine import (
    diff,
    endpoint_matches,
    normalize_selector,
    template_path,
)
from vendorwatch.schema.changes import DiffConfig, ObservedContract
from vendorwatch.schema.network import CapturedRequest
from vendorwatch.schema.spec import ApiSpec, FormSpec, VendorSpec

CONFIG = DiffConfig(endpoint_match_threshold=0.6)


def make_spec(mode="api", method="GET", endpoint="/search/{siteId}", selectors=None):
    return VendorSpec(
        system_code="P001",
        url="https://vendor.example",
        mode=mode,
        form=FormSpec(selectors=selectors or {}) if selectors is not None else None,
        api=ApiSpec(endpoint=endpoint, method=method),
    )


def request(url, method="GET", body=None, status=200, response=None):
    return CapturedRequest(
        url=url,
        method=method,
        request_body=body,
        response_status=status,
        response_body=response,
    )


def test_no_stored_spec_means_no_changes():
    change_set = diff(
        None,
        ObservedContract(
            selectors={"username": "#anything"},
            requests=[request("https://vendor.example/api/whatever")],
        ),
        CONFIG,
    )
    assert not change_set.has_changes
    assert not change_set.breaking


def test_capture_of_the_spec_itself_has_no_changes():
    spec = make_spec(
        mode="hybrid",
        selectors={"search_input": "#carNo", "search_button": "#searchBtn"},
    )
    change_set = diff(
        spec,
        ObservedContract(
            selectors={"search_input": "#carNo", "search_button": "#searchBtn"},
            requests=[request("https://vendor.example/search/9981?x=1")],
        ),
        CONFIG,
    )
    assert not change_set.has_changes
    assert change_set.changes == []
    assert change_set.captured_api_schema is None


def test_response_sample_differences_do_not_count():
    spec = make_spec()
    first = diff(
        spec,
        ObservedContract(
            requests=[request("/search/1", response={"data": [{"carNo": "A"}]})]
        ),
        CONFIG,
    )
    second = diff(
        spec,
        ObservedContract(
            requests=[request("/search/2", response={"rows": [], "extra": True})]
        ),
        CONFIG,
    )
    assert not first.has_changes
    assert not second.has_changes


@pytest.mark.parametrize(
    "stored, url",
    [
        ("/search/{siteId}", "https://vendor.example/search/9981?x=1"),
        ("/search/{{siteId}}", "/search/9981"),
        ("/api/v1/{site-id}/cars", "/api/v1/SITE_7/cars/"),
    ],
)
def test_placeholders_are_wildcards(stored, url):
    assert endpoint_matches(stored, url)


def test_placeholders_match_one_segment_only():
    assert not endpoint_matches("/search/{siteId}", "/search/9981/extra")


def test_method_change_is_breaking():
    change_set = diff(
        make_spec(method="GET"),
        ObservedContract(requests=[request("/search/9981", method="POST")]),
        CONFIG,
    )
    assert change_set.has_changes
    assert change_set.change_type == "api"
    assert change_set.breaking
    assert "GET -> POST" in change_set.changes[0]


def test_zero_captured_requests_for_api_mode_is_a_warning():
    change_set = diff(make_spec(), ObservedContract(), CONFIG)
    assert not change_set.has_changes
    assert not change_set.breaking
    assert change_set.warnings


def test_options_and_static_assets_are_ignored():
    change_set = diff(
        make_spec(),
        ObservedContract(
            requests=[
                request("/search/9981", method="OPTIONS"),
                request("/static/app.js"),
                request("/search/9981"),
            ]
        ),
        CONFIG,
    )
    assert not change_set.has_changes


def test_moved_endpoint_is_reported_with_captured_schema():
    change_set = diff(
        make_spec(endpoint="/api/v1/search/{siteId}"),
        ObservedContract(
            requests=[
                request(
                    "/api/v2/search/9981?carNo=123&page=1",
                    response=[{"carNo": "123", "inTime": "10:32"}, {"carNo": "9"}],
                )
            ]
        ),
        CONFIG,
    )
    assert change_set.has_changes
    assert change_set.breaking
    assert "/api/v2/search/9981" in change_set.changes[0]

    schema = change_set.captured_api_schema
    assert schema.endpoint == "/api/v2/search/{siteId}"
    assert schema.method == "GET"
    assert schema.query_params == {"carNo": "number", "page": "number"}
    assert schema.response.type == "array"
    assert schema.response.fields == ["carNo", "inTime"]
    assert len(schema.response.sample) == 1


def test_unrelated_traffic_below_threshold_is_advisory():
    change_set = diff(
        make_spec(endpoint="/api/v1/search/{siteId}"),
        ObservedContract(requests=[request("/telemetry/collect", method="POST")]),
        CONFIG,
    )
    assert not change_set.has_changes
    assert not change_set.breaking
    assert change_set.warnings


def test_threshold_comes_from_config():
    observed = ObservedContract(requests=[request("/telemetry/collect")])
    spec = make_spec(endpoint="/api/v1/search/{siteId}")
    assert diff(spec, observed, DiffConfig(endpoint_match_threshold=0.0)).has_changes


def test_selector_change_in_dom_mode_is_breaking():
    spec = make_spec(mode="dom", selectors={"username": "input[name='userId']"})
    change_set = diff(
        spec,
        ObservedContract(selectors={"username": "#loginId"}),
        CONFIG,
    )
    assert change_set.change_type == "dom"
    assert change_set.breaking
    assert change_set.changes == ["username: input[name='userId'] -> #loginId"]


def test_selector_change_in_api_mode_is_not_breaking():
    spec = make_spec(mode="api", selectors={"search_input": "#carNo"})
    change_set = diff(
        spec,
        ObservedContract(
            selectors={"search_input": "#vehicleNo"},
            requests=[request("/search/9981")],
        ),
        CONFIG,
    )
    assert change_set.has_changes
    assert not change_set.breaking


def test_dom_and_api_changes_combine():
    spec = make_spec(mode="hybrid", selectors={"search_input": "#carNo"})
    change_set = diff(
        spec,
        ObservedContract(
            selectors={"search_input": "#vehicleNo"},
            requests=[request("/search/9981", method="POST", body={"carNo": "1"})],
        ),
        CONFIG,
    )
    assert change_set.change_type == "both"
    assert change_set.breaking
    assert change_set.captured_api_schema.request_fields == {"carNo": "number"}


def test_additions_beyond_the_stored_spec_never_count():
    spec = make_spec(mode="dom", selectors={"search_input": "#carNo"})
    change_set = diff(
        spec,
        ObservedContract(
            selectors={"search_input": "#carNo", "search_button": "#newBtn"},
            requests=[request("/search/9981"), request("/api/new-widget")],
        ),
        CONFIG,
    )
    assert not change_set.has_changes


def test_cosmetic_selector_rewrites_are_equal():
    assert normalize_selector("input[name='userId']") == normalize_selector(
        'input[name="userId"]'
    )
    assert normalize_selector("form  >  input") == normalize_selector("form>input")


def test_template_path_reuses_stored_placeholder_names():
    url = "https://vendor.example/api/sites/9981/cars?x=1"
    assert template_path("/api/sites/{siteId}/cars", url) == "/api/sites/{siteId}/cars"
    assert template_path("", url) == "/api/sites/{id}/cars"
