# api_client.py
from __future__ import annotations

import json
import urllib.error
import urllib.request
from typing import Optional
from urllib.parse import urljoin


class APIError(Exception):
    """Raised when registry requests fail."""
    pass


class APIClient:
    """HTTP client for the StageCI pipeline registry."""

    def __init__(self, base_url: str):
        """
        Initialize API client.

        Args:
            base_url: Base URL of the registry (e.g., "http://localhost:8000")
        """
        # Ensure base_url doesn't end with /
        self.base_url = base_url.rstrip("/")

    def _request(
        self,
        method: str,
        path: str,
        data: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> dict:
        """
        Make an HTTP request to the registry.

        Returns:
            Parsed JSON response as dictionary

        Raises:
            APIError: If the request fails
        """
        url = urljoin(self.base_url + "/", path.lstrip("/"))

        req_headers = {
            "Content-Type": "application/json",
        }
        if headers:
            req_headers.update(headers)

        req_data = None
        if data is not None:
            req_data = json.dumps(data).encode("utf-8")

        req = urllib.request.Request(url, data=req_data, headers=req_headers, method=method)

        try:
            with urllib.request.urlopen(req) as response:
                response_data = response.read().decode("utf-8")
                if response_data:
                    return json.loads(response_data)
                return {}
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else ""
            raise APIError(f"API request failed: {e.code} {e.reason}. {error_body}")
        except urllib.error.URLError as e:
            raise APIError(f"Network error: {e.reason}")
        except json.JSONDecodeError as e:
            raise APIError(f"Invalid JSON response: {e}")

    def submit_pipeline(self, repo: str, graph: dict, stages: list[dict]) -> dict:
        """
        Submit a generated pipeline.

        Returns:
            {"project_id", "revision", "fingerprint", "changed"}
        """
        return self._request(
            "POST",
            "/pipelines",
            data={"repo": repo, "graph": graph, "stages": stages},
        )
