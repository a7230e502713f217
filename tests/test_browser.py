from types import SimpleNamespace

from vendorwatch.inference.infra.browser import NETWORK_LOG_LIMIT, Browser
from vendorwatch.inference.infra.network_capture import MASK_TOKEN


class FakeResponse:
    def __init__(self, url, method="GET", post_data=None, status=200, body=None):
        self.url = url
        self.request = SimpleNamespace(method=method, post_data=post_data)
        self.status = status
        self.body = body
        self.reads = 0

    async def json(self):
        self.reads += 1
        return self.body

    async def text(self):
        return ""


async def test_network_log_masks_credentials_when_recorded():
    browser = Browser(headless=True)
    await browser._on_response(
        FakeResponse(
            "https://vendor.example/api/login",
            method="POST",
            post_data='{"userId": "operator", "userPw": "hunter2"}',
            body={"ok": True},
        )
    )

    recorded = browser.network_calls[0]
    assert recorded.request_body == {"userId": "operator", "userPw": MASK_TOKEN}
    assert "hunter2" not in (await browser._network_requests()).text


async def test_network_log_skips_static_assets():
    browser = Browser(headless=True)
    asset = FakeResponse("https://vendor.example/static/app.js")
    await browser._on_response(asset)

    assert browser.network_calls == []
    assert asset.reads == 0


async def test_network_log_keeps_only_recent_responses():
    browser = Browser(headless=True)
    for index in range(NETWORK_LOG_LIMIT + 5):
        await browser._on_response(
            FakeResponse(f"https://vendor.example/api/poll?n={index}", body=[])
        )

    assert len(browser.network_calls) == NETWORK_LOG_LIMIT
    assert browser.network_calls[-1].url.endswith(f"n={NETWORK_LOG_LIMIT + 4}")
    assert browser.network_calls[0].url.endswith("n=5")
