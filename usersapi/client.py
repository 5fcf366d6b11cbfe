"""HTTP client for a running users service."""

from __future__ import annotations

from typing import List, Optional

import httpx

from .models import UserSummary


class UsersAPIError(RuntimeError):
    """Raised when the users service cannot be reached or rejects a request."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _normalize_base_url(base_url: str) -> str:
    cleaned = (base_url or "").strip()
    if not cleaned:
        raise ValueError("Service URL must not be empty")
    return cleaned.rstrip("/")


def _extract_error_message(response: httpx.Response) -> str:
    body = response.text.strip()
    if body:
        return body
    return f"Users service request failed with status {response.status_code}"


class UsersClient:
    """Call the four user endpoints of a users service."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=_normalize_base_url(base_url),
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> "UsersClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def create_user(self, name: str, email: str) -> str:
        return self._send("POST", "/users", {"name": name, "email": email}).text

    def list_users(self) -> List[UserSummary]:
        response = self._send("GET", "/users/list")
        try:
            data = response.json()
        except ValueError as exc:
            raise UsersAPIError(
                "Users service returned an invalid response",
                status_code=response.status_code,
            ) from exc

        if data is None:
            return []
        if not isinstance(data, list):
            raise UsersAPIError(
                "Users service returned an unexpected response payload",
                status_code=response.status_code,
            )

        try:
            return [UserSummary(name=str(item["name"]), email=str(item["email"])) for item in data]
        except (KeyError, TypeError) as exc:
            raise UsersAPIError(
                "Users service response was missing required fields",
                status_code=response.status_code,
            ) from exc

    def update_user(self, old_email: str, name: str, email: str) -> str:
        payload = {"oldEmail": old_email, "name": name, "email": email}
        return self._send("PUT", "/users/update", payload).text

    def delete_user(self, email: str) -> str:
        return self._send("DELETE", "/users/delete", {"email": email}).text

    def _send(self, method: str, path: str, payload: Optional[dict] = None) -> httpx.Response:
        try:
            response = self._client.request(method, path, json=payload)
        except httpx.RequestError as exc:
            raise UsersAPIError(f"Failed to contact users service: {exc}") from exc

        if response.status_code >= 400:
            raise UsersAPIError(
                _extract_error_message(response),
                status_code=response.status_code,
            )
        return response


__all__ = ["UsersAPIError", "UsersClient"]
