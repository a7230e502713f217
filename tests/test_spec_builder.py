from tests.conftest import DASHBOARD_URL, LOGIN_URL, RESULTS_URL
from vendorwatch.inference.core.locator.chain import MISSING_SELECTOR
from vendorwatch.inference.core.spec_builder import build_vendor_spec, contract_changed
from vendorwatch.schema.network import CapturedRequest
from vendorwatch.schema.spec import ApiSpec, FormSpec, LocatorHints, VendorSpec
from vendorwatch.workflows.login.state import LoginState
from vendorwatch.workflows.search.state import SearchState


def login_state(**kwargs):
    values = dict(
        system_code="P001",
        url=LOGIN_URL,
        status="SUCCESS",
        current_url=DASHBOARD_URL,
        url_before_submit=LOGIN_URL,
        observed_selectors={
            "username": "#userId",
            "password": "#userPw",
            "login_button": "#loginBtn",
        },
    )
    values.update(kwargs)
    return LoginState(**values)


def search_state(requests=None, **kwargs):
    values = dict(
        system_code="P001",
        url=LOGIN_URL,
        query="12가3456",
        status="SUCCESS",
        search_method="dom",
        observed_selectors={"search_input": "#carNo", "search_button": "#searchBtn"},
        captured_requests=requests or [],
    )
    values.update(kwargs)
    return SearchState(**values)


SEARCH_REQUEST = CapturedRequest(
    url="https://vendor.example/api/search?carNo=12%EA%B0%803456",
    method="GET",
    response_status=200,
    response_body={"data": [{"carNo": "12가3456"}], "total": 1},
)


def test_first_run_builds_hybrid_spec():
    spec = build_vendor_spec(None, login_state(), search_state([SEARCH_REQUEST]))

    assert spec.version == 1
    assert spec.mode == "hybrid"
    assert spec.form.selectors == {
        "username": "#userId",
        "password": "#userPw",
        "login_button": "#loginBtn",
        "search_input": "#carNo",
        "search_button": "#searchBtn",
    }
    assert spec.api.endpoint == "/api/search"
    assert spec.api.params == ["carNo"]
    assert spec.api.request_fields == {"carNo": "query"}
    assert spec.api.response_fields == ["data", "total"]
    assert spec.success_indicators.url_pattern == "/dashboard"


def test_login_only_run_builds_dom_spec():
    spec = build_vendor_spec(None, login_state())
    assert spec.mode == "dom"
    assert spec.api is None
    assert set(spec.form.selectors) == {"username", "password", "login_button"}


def test_same_url_after_login_sets_no_pattern():
    spec = build_vendor_spec(None, login_state(current_url=LOGIN_URL))
    assert spec.success_indicators.url_pattern is None


def test_missing_selectors_are_not_recorded():
    state = login_state(
        observed_selectors={"username": "#userId", "password": MISSING_SELECTOR}
    )
    spec = build_vendor_spec(None, state)
    assert spec.form.selectors == {"username": "#userId"}


def test_path_parameter_names_the_endpoint_segment():
    request = CapturedRequest(
        url="https://vendor.example/api/v2/search/9981",
        method="POST",
        request_body={"carNo": "12가3456"},
        response_status=200,
        response_body=[{"carNo": "12가3456"}],
    )
    state = search_state([request], path_params={"siteId": "9981"})
    spec = build_vendor_spec(None, login_state(), state)

    assert spec.api.endpoint == "/api/v2/search/{siteId}"
    assert spec.api.method == "POST"
    assert spec.api.request_fields == {"carNo": "query"}
    assert spec.api.params is None


def test_error_responses_do_not_become_the_api():
    failed = SEARCH_REQUEST.model_copy(update={"response_status": 500})
    spec = build_vendor_spec(None, login_state(), search_state([failed]))
    assert spec.api is None
    assert spec.mode == "dom"


def test_next_version_keeps_mode_and_hints():
    previous = VendorSpec(
        system_code="P001",
        url=LOGIN_URL,
        version=3,
        mode="api",
        api=ApiSpec(endpoint="/api/search", response_fields=["data"]),
        form=FormSpec(result_row_selector="table tr"),
        hints={"login": LocatorHints(submit_text="Sign in")},
    )
    spec = build_vendor_spec(previous, login_state(), search_state([SEARCH_REQUEST]))

    assert spec.version == 4
    assert spec.mode == "api"
    assert spec.hints["login"].submit_text == "Sign in"
    assert spec.form.result_row_selector == "table tr"
    assert spec.api.response_fields == ["data", "total"]
    assert previous.form.selectors == {}


def test_off_endpoint_traffic_keeps_previous_api():
    previous = VendorSpec(
        system_code="P001",
        url=LOGIN_URL,
        api=ApiSpec(endpoint="/api/search", response_fields=["data"]),
    )
    other = CapturedRequest(
        url=f"{RESULTS_URL}/summary", response_status=200, response_body={"x": 1}
    )
    spec = build_vendor_spec(previous, login_state(), search_state([other]))
    assert spec.api == previous.api


def test_contract_changed_ignores_version_and_timestamp():
    first = build_vendor_spec(None, login_state())
    second = build_vendor_spec(first, login_state())

    assert second.version == 2
    assert not contract_changed(first, second)
    assert contract_changed(None, first)

    drifted = second.model_copy(deep=True)
    drifted.form.selectors["login_button"] = "button.btn-login"
    assert contract_changed(first, drifted)
