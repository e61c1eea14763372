"""
LedgerClient SDK — sync client for Credit-Ledger.

Used by the web front end and back-office tooling to read balances, redeem
codes, meter consumption and (with the admin API key) manage codes and
accounts.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx


@dataclass
class ClientBalance:
    """Balance snapshot returned by the SDK."""

    balance: int = 0
    video_watch_minutes: int = 0
    article_credits: int = 0
    total_earned: int = 0
    total_spent: int = 0


@dataclass
class ClientRedeemResult:
    """Result of redeem() call."""

    success: bool
    code: str = ""
    message: str = ""
    credit_type: str = ""
    balance: int = 0
    video_minutes: int = 0
    article_credits: int = 0


@dataclass
class ClientConsumeResult:
    """Result of a consume or purchase call."""

    success: bool
    code: str = ""
    message: str = ""
    charged: int = 0
    remaining_balance: int = 0
    remaining_minutes: Optional[int] = None
    remaining_credits: Optional[int] = None
    required: Optional[int] = None
    current: Optional[int] = None


@dataclass
class ClientAccessResult:
    """Result of an access check."""

    has_access: bool
    credits_required: int = 0
    free: bool = False
    requires_auth: bool = False
    code: str = ""


@dataclass
class ClientCodeBatch:
    """Result of generate_codes() call."""

    success: bool
    batch_id: str = ""
    codes: list[str] = field(default_factory=list)
    count: int = 0
    requested: int = 0
    code: str = ""
    message: str = ""


class LedgerClient:
    """
    Synchronous HTTP client for Credit-Ledger.

    User calls send ``access_token`` as a bearer token, admin calls send
    ``api_key`` in the X-Ledger-Api-Key header.
    """

    def __init__(
        self,
        server_url: str = "http://localhost:8080",
        access_token: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: int = 30,
        max_retries: int = 3,
        retry_backoff_base: float = 0.5,
    ):
        self.server_url = server_url.rstrip("/")
        self.access_token = access_token
        self.api_key = api_key
        self.max_retries = max_retries
        self.retry_backoff_base = retry_backoff_base
        self._http = httpx.Client(
            base_url=self.server_url,
            timeout=timeout,
        )

    def _user_headers(self) -> dict[str, str]:
        headers = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _admin_headers(self) -> dict[str, str]:
        headers = {}
        if self.api_key:
            headers["X-Ledger-Api-Key"] = self.api_key
        return headers

    @staticmethod
    def _error_body(resp: httpx.Response, fallback_code: str) -> dict[str, Any]:
        try:
            body = resp.json()
        except json.JSONDecodeError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        body.setdefault("error", f"HTTP {resp.status_code}")
        body.setdefault("code", fallback_code)
        body["status_code"] = resp.status_code
        return body

    def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Central HTTP method with retry and structured error handling.

        Retries on:
        - httpx.TimeoutException and other transport errors
        - 5xx status codes
        - 429 (rate limit)

        No retry on other 4xx errors; their JSON error body is returned as-is
        so callers see the ledger's ``code`` (e.g. INSUFFICIENT_BALANCE).
        """
        last_error = None
        for attempt in range(self.max_retries):
            try:
                resp = getattr(self._http, method)(path, **kwargs)
                if resp.status_code >= 500 or resp.status_code == 429:
                    last_error = f"HTTP {resp.status_code}"
                    if attempt < self.max_retries - 1:
                        time.sleep(self.retry_backoff_base * (2 ** attempt))
                        continue
                    return self._error_body(resp, "SERVER_ERROR")
                if resp.status_code >= 400:
                    return self._error_body(resp, "CLIENT_ERROR")
                return resp.json()
            except httpx.TimeoutException:
                last_error = "timeout"
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_backoff_base * (2 ** attempt))
                    continue
            except httpx.HTTPError as e:
                last_error = str(e)
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_backoff_base * (2 ** attempt))
                    continue
            except json.JSONDecodeError:
                return {"error": "Invalid JSON response", "code": "JSON_ERROR"}

        return {"error": f"All {self.max_retries} retries exhausted: {last_error}", "code": "CONNECTION_ERROR"}

    # ── Balance & redemption ──

    def get_balance(self) -> Optional[ClientBalance]:
        data = self._request("get", "/credits/balance", headers=self._user_headers())
        if "error" in data:
            return None
        return ClientBalance(
            balance=data.get("balance", 0),
            video_watch_minutes=data.get("video_watch_minutes", 0),
            article_credits=data.get("article_credits", 0),
            total_earned=data.get("total_earned", 0),
            total_spent=data.get("total_spent", 0),
        )

    def redeem(self, code: str) -> ClientRedeemResult:
        """Redeem a license code for the authenticated user."""
        data = self._request(
            "post", "/credits/redeem", json={"code": code}, headers=self._user_headers(),
        )
        if "error" in data:
            return ClientRedeemResult(
                success=False, code=data.get("code", "ERROR"),
                message=data.get("error", ""),
            )
        credits = data.get("credits", {})
        return ClientRedeemResult(
            success=data.get("success", False),
            message=data.get("message", ""),
            credit_type=data.get("credit_type", ""),
            balance=credits.get("balance", 0),
            video_minutes=credits.get("video_minutes", 0),
            article_credits=credits.get("article_credits", 0),
        )

    # ── Consumption ──

    @staticmethod
    def _consume_result(data: dict[str, Any]) -> ClientConsumeResult:
        if "error" in data:
            return ClientConsumeResult(
                success=False,
                code=data.get("code", "ERROR"),
                message=data.get("error", ""),
                required=data.get("required"),
                current=data.get("current"),
            )
        return ClientConsumeResult(
            success=data.get("success", False),
            message=data.get("message", ""),
            charged=data.get("charged", data.get("charged_minutes", 0)),
            remaining_balance=data.get("remaining_balance", 0),
            remaining_minutes=data.get("remaining_minutes"),
            remaining_credits=data.get("remaining_credits"),
        )

    def consume_video(self, minutes: float, course_id: str) -> ClientConsumeResult:
        data = self._request(
            "post", "/credits/consume-video",
            json={"minutes": minutes, "course_id": course_id},
            headers=self._user_headers(),
        )
        return self._consume_result(data)

    def consume_article(self, article_id: str) -> ClientConsumeResult:
        data = self._request(
            "post", "/credits/consume-article",
            json={"article_id": article_id},
            headers=self._user_headers(),
        )
        return self._consume_result(data)

    def purchase_course(self, course_id: str) -> ClientConsumeResult:
        data = self._request(
            "post", f"/courses/{course_id}/access", headers=self._user_headers(),
        )
        return self._consume_result(data)

    # ── Access checks ──

    def _check_access(self, path: str) -> ClientAccessResult:
        data = self._request("get", path, headers=self._user_headers())
        if "error" in data:
            return ClientAccessResult(has_access=False, code=data.get("code", "ERROR"))
        return ClientAccessResult(
            has_access=data.get("has_access", False),
            credits_required=data.get("credits_required", 0),
            free=data.get("free", False),
            requires_auth=data.get("requires_auth", False),
        )

    def check_article_access(self, article_id: str) -> ClientAccessResult:
        return self._check_access(f"/credits/check-article-access/{article_id}")

    def check_course_access(self, course_id: str) -> ClientAccessResult:
        return self._check_access(f"/credits/check-course-access/{course_id}")

    def list_transactions(
        self, page: int = 1, limit: int = 10, transaction_type: Optional[str] = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if transaction_type:
            params["type"] = transaction_type
        return self._request(
            "get", "/credits/transactions", params=params, headers=self._user_headers(),
        )

    # ── Admin ──

    def generate_codes(
        self,
        amount: int,
        credit_type: str = "universal",
        credit_value: int = 0,
        video_minutes: int = 0,
        article_count: int = 0,
        prefix: Optional[str] = None,
    ) -> ClientCodeBatch:
        body: dict[str, Any] = {
            "amount": amount,
            "credit_type": credit_type,
            "credit_value": credit_value,
            "video_minutes": video_minutes,
            "article_count": article_count,
        }
        if prefix:
            body["prefix"] = prefix
        data = self._request(
            "post", "/admin/codes/generate", json=body, headers=self._admin_headers(),
        )
        if "error" in data:
            return ClientCodeBatch(
                success=False, code=data.get("code", "ERROR"),
                message=data.get("error", ""),
            )
        return ClientCodeBatch(
            success=True,
            batch_id=data.get("batch_id", ""),
            codes=[c.get("code", "") for c in data.get("codes", [])],
            count=data.get("count", 0),
            requested=data.get("requested", 0),
            message=data.get("message", ""),
        )

    def license_report(
        self,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        if status:
            params["status"] = status
        return self._request(
            "get", "/admin/reports/licenses", params=params, headers=self._admin_headers(),
        )

    def open_account(self, user_id: str) -> dict[str, Any]:
        return self._request(
            "post", "/admin/credits/accounts",
            json={"user_id": user_id}, headers=self._admin_headers(),
        )

    def grant_bonus(
        self, user_id: str, amount: int, balance_type: str = "universal", description: str = "",
    ) -> dict[str, Any]:
        return self._request(
            "post", "/admin/credits/bonus",
            json={
                "user_id": user_id,
                "balance_type": balance_type,
                "amount": amount,
                "description": description,
            },
            headers=self._admin_headers(),
        )

    def reconcile(self, user_id: str) -> dict[str, Any]:
        return self._request(
            "get", f"/admin/credits/{user_id}/reconcile", headers=self._admin_headers(),
        )

    def health(self) -> dict[str, Any]:
        return self._request("get", "/health")

    # ── Lifecycle ──

    def close(self) -> None:
        """Close the HTTP client."""
        self._http.close()
