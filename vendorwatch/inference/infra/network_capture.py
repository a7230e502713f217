import logging
import re
from typing import Any
from urllib.parse import parse_qsl

from pydantic import ValidationError

from vendorwatch.inference.infra.tool_client import ToolClient, ToolName
from vendorwatch.schema.network import CapturedRequest
from vendorwatch.utils.settings import settings
from vendorwatch.utils.utils import loads_tool_json, truncate

logger = logging.getLogger(__name__)

MASK_TOKEN = "***MASKED***"
CREDENTIAL_KEY_PATTERN = re.compile(r"pass|pwd", re.IGNORECASE)

# Installs once per page load; a reload clears the window flag and the buffer.
INTERCEPTOR_JS = """() => {
  if (window.__vendorwatchCaptureInstalled) return 'already installed';
  window.__vendorwatchCaptureInstalled = true;
  window.__capturedApiRequests = window.__capturedApiRequests || [];
  const PREVIEW = __PREVIEW_CHARS__;

  const parseBody = (body) => {
    if (body === undefined || body === null) return null;
    if (typeof body === 'string') {
      try { return JSON.parse(body); } catch (e) {}
      try {
        if (body.includes('=')) return Object.fromEntries(new URLSearchParams(body));
      } catch (e) {}
      return body;
    }
    try {
      if (body instanceof URLSearchParams) return Object.fromEntries(body);
      if (body instanceof FormData) {
        const out = {};
        for (const [key, value] of body.entries()) {
          out[key] = typeof value === 'string' ? value : '[File]';
        }
        return out;
      }
    } catch (e) {}
    return '[unreadable body]';
  };

  const mask = (parsed) => {
    if (parsed && typeof parsed === 'object' && !Array.isArray(parsed)) {
      for (const key of Object.keys(parsed)) {
        if (/pass|pwd/i.test(key)) parsed[key] = '***MASKED***';
      }
    }
    return parsed;
  };

  const parseResponse = (text) => {
    try { return JSON.parse(text); } catch (e) { return (text || '').substring(0, PREVIEW); }
  };

  const record = (entry) => {
    try { window.__capturedApiRequests.push(entry); } catch (e) {}
  };

  const originalFetch = window.fetch;
  window.fetch = async function(input, init) {
    const options = init || {};
    const url = typeof input === 'string' ? input : (input && input.url) || String(input);
    const method = (options.method || (input && input.method) || 'GET').toUpperCase();
    const requestBody = mask(parseBody(options.body));
    const timestamp = Date.now();
    try {
      const response = await originalFetch.apply(this, arguments);
      let responseBody = null;
      try { responseBody = parseResponse(await response.clone().text()); } catch (e) {}
      record({url, method, request_body: requestBody, response_status: response.status,
              response_body: responseBody, timestamp, source: 'fetch'});
      return response;
    } catch (err) {
      record({url, method, request_body: requestBody, response_status: 0,
              response_body: String(err && err.message), timestamp, source: 'fetch'});
      throw err;
    }
  };

  const originalOpen = XMLHttpRequest.prototype.open;
  const originalSend = XMLHttpRequest.prototype.send;
  XMLHttpRequest.prototype.open = function(method, url) {
    this.__vwMethod = String(method || 'GET').toUpperCase();
    this.__vwUrl = String(url);
    return originalOpen.apply(this, arguments);
  };
  XMLHttpRequest.prototype.send = function(body) {
    const xhr = this;
    const requestBody = mask(parseBody(body));
    const timestamp = Date.now();
    xhr.addEventListener('loadend', function() {
      let responseBody = null;
      try { responseBody = parseResponse(xhr.responseText); } catch (e) {}
      record({url: xhr.__vwUrl, method: xhr.__vwMethod, request_body: requestBody,
              response_status: xhr.status, response_body: responseBody, timestamp,
              source: 'xhr'});
    });
    return originalSend.apply(this, arguments);
  };
  return 'installed';
}"""

READ_CAPTURED_JS = "() => JSON.stringify(window.__capturedApiRequests || [])"
MARK_JS = "() => { window.__vendorwatchMark = Date.now(); return window.__vendorwatchMark; }"


def redact_body(body: Any) -> Any:
    """Mask credential-like top-level keys of a request body.

    String bodies are parsed as JSON, then as form-encoded text. Nested
    objects are not scanned.
    """
    if isinstance(body, str):
        parsed = loads_tool_json(body)
        if isinstance(parsed, dict):
            body = parsed
        elif "=" in body:
            pairs = parse_qsl(body, keep_blank_values=True)
            if pairs:
                body = dict(pairs)

    if isinstance(body, dict):
        return {
            key: MASK_TOKEN if CREDENTIAL_KEY_PATTERN.search(str(key)) else value
            for key, value in body.items()
        }
    return body


def _to_captured_requests(raw: Any, source: str | None = None) -> list[CapturedRequest]:
    if not isinstance(raw, list):
        logger.warning(f"Unexpected capture payload: {type(raw).__name__}")
        return []

    captured = []
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("url"):
            continue
        entry = dict(entry)
        entry["request_body"] = redact_body(entry.get("request_body"))
        entry["method"] = str(entry.get("method") or "GET").upper()
        if entry.get("response_status") is None:
            entry["response_status"] = 0
        if source is not None:
            entry["source"] = source
        try:
            captured.append(CapturedRequest.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping malformed capture entry: {e}")
    return captured


class CaptureChannel:
    def __init__(self, tools: ToolClient):
        self.tools = tools

    async def install(self) -> bool:
        script = INTERCEPTOR_JS.replace(
            "__PREVIEW_CHARS__", str(settings.CAPTURE_BODY_PREVIEW_CHARS)
        )
        result = await self.tools.call_tool(ToolName.EVALUATE, {"function": script})
        if result.is_error:
            logger.warning(f"Capture install failed: {result.text}")
            return False
        return True

    async def mark(self) -> float | None:
        result = await self.tools.call_tool(ToolName.EVALUATE, {"function": MARK_JS})
        value = loads_tool_json(result.text)
        if result.is_error or not isinstance(value, (int, float)):
            logger.warning(f"Could not mark capture start: {truncate(result.text, 200)}")
            return None
        return float(value)

    async def drain(self, since: float | None = None) -> list[CapturedRequest]:
        """Everything captured so far, oldest first. Does not clear the buffer."""
        result = await self.tools.call_tool(
            ToolName.EVALUATE, {"function": READ_CAPTURED_JS}
        )
        if result.is_error:
            logger.warning(f"Capture drain failed: {result.text}")
            return []

        captured = _to_captured_requests(loads_tool_json(result.text))
        if since is not None:
            captured = [request for request in captured if request.timestamp >= since]
        return captured

    async def network_activity(self, since: float | None = None) -> list[CapturedRequest]:
        result = await self.tools.call_tool(ToolName.NETWORK_REQUESTS, {})
        if result.is_error:
            logger.warning(f"Network log unavailable: {result.text}")
            return []

        captured = _to_captured_requests(loads_tool_json(result.text), "network_log")
        if since is not None:
            captured = [request for request in captured if request.timestamp >= since]
        return captured
