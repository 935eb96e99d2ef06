"""Single synchronous HTTP probe against a deployment target."""

from __future__ import annotations

from typing import Optional

import httpx
import structlog

from deploy_runtime.core.models import ProbeResult, ProbeTarget

logger = structlog.get_logger()


def probe(target: ProbeTarget, timeout_ms: int, *, client: Optional[httpx.Client] = None) -> ProbeResult:
    """Perform exactly one GET against target.url.

    Transport failures (refused connection, DNS, timeout) come back as an
    unsuccessful ProbeResult; they are an expected outcome while an artifact
    is still coming up.
    """
    timeout = httpx.Timeout(max(timeout_ms, 1) / 1000.0)
    owns_client = client is None
    if client is None:
        client = httpx.Client(timeout=timeout, follow_redirects=True)
    try:
        resp = client.get(target.url, timeout=timeout)
        success = resp.status_code < 400
        result = ProbeResult(
            success=success,
            status_code=resp.status_code,
            message=resp.reason_phrase or "",
            body=resp.text,
        )
    except httpx.TimeoutException as e:
        result = ProbeResult(success=False, message=f"Timed out: {e}")
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        result = ProbeResult(success=False, message=f"{e.__class__.__name__}: {e}")
    finally:
        if owns_client:
            client.close()

    logger.debug(
        "Probe completed",
        url=target.url,
        success=result.success,
        status_code=result.status_code,
        status_message=result.message,
    )
    return result
