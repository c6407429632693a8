"""
CAPI gateway client.

Every call to the cloud provider goes through one POST endpoint:

    {base}/qcloud-weida/v1/capi?i={serviceType}/{action}

authenticated by the console session cookie, the derived CSRF code and a
rotating ``X-Qcloud-Token`` that the gateway returns in response headers.
Credentials live in an AuthSession owned by the service container, so the
client itself holds no module-level state.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

import httpx

from nldb.clients.csrf import csrf_code_from_cookie
from nldb.config import CloudBaseSettings

logger = logging.getLogger(__name__)

SUCCESS_CODES = ("NORMAL", 0, "0")


class CapiError(Exception):
    """Gateway call failed (transport error, HTTP error or non-success code)."""

    def __init__(self, code: str | int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"CAPI Error [{code}]: {message}")


class AuthRequiredError(CapiError):
    def __init__(self, message: str = "CAPI 调用需要 Cookie，请先登录或配置环境变量"):
        super().__init__("AUTH_REQUIRED", message)


@dataclass
class AuthSession:
    """Console credentials for the current deployment."""

    cookie: str | None = None
    token: str | None = None
    env_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def logged_in(self) -> bool:
        return bool(self.cookie)

    def login(self, cookie: str, env_id: str | None = None) -> None:
        self.cookie = cookie
        self.token = None
        if env_id:
            self.env_id = env_id

    def logout(self) -> None:
        self.cookie = None
        self.token = None


class CapiClient:
    """Async client for the CAPI gateway."""

    def __init__(
        self,
        settings: CloudBaseSettings,
        session: AuthSession | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = settings.capi_base_url.rstrip("/")
        self.region = settings.region
        self.source = settings.source
        self.session = session or AuthSession(cookie=settings.cookie, env_id=settings.env_id)
        self.client = http_client or httpx.AsyncClient(timeout=float(settings.timeout))

    def build_headers(self, cookie: str, token: str | None) -> dict[str, str]:
        return {
            "Content-Type": "application/json; charset=utf-8",
            "Cookie": cookie,
            "X-Qcloud-Token": token or "",
            "X-Req-Id": str(uuid.uuid4()),
            "X-Tcb-Source": self.source,
            "X-CsrfCode": csrf_code_from_cookie(cookie),
            "X-TC-Language": "zh-CN",
        }

    async def request(
        self,
        service_type: str,
        action: str,
        data: dict[str, Any] | None = None,
        region: str | None = None,
        cookie: str | None = None,
        token: str | None = None,
    ) -> Any:
        """
        Call one gateway action and return its ``result`` payload.

        Raises:
            AuthRequiredError: No cookie is available
            CapiError: Transport failure, HTTP error or non-success response code
        """
        cookie = cookie or self.session.cookie
        if not cookie:
            raise AuthRequiredError()

        api_identifier = f"{service_type}/{action}"
        endpoint = f"{self.base_url}/qcloud-weida/v1/capi?i={api_identifier}"
        body = {
            "raw": True,
            "serviceType": service_type,
            "actionName": action,
            "actionParam": data or {},
            "region": region or self.region,
            "signVersion": "v3",
        }

        logger.info(
            "CAPI request",
            extra={"api": api_identifier, "region": body["region"]},
        )

        try:
            response = await self.client.post(
                endpoint,
                json=body,
                headers=self.build_headers(cookie, token or self.session.token),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CapiError("HTTP_ERROR", f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise CapiError("NETWORK_ERROR", str(e)) from e

        new_token = response.headers.get("X-Qcloud-Token")
        if new_token:
            self.session.token = new_token

        payload = response.json()
        code = payload.get("code")
        logger.debug("CAPI response", extra={"api": api_identifier, "code": code})

        if code not in SUCCESS_CODES:
            raise CapiError(code, payload.get("msg") or "Unknown error")

        return payload.get("result")

    async def describe_envs(self) -> list[dict[str, Any]]:
        """List cloud environments visible to the logged-in account."""
        result = await self.request(
            "tcb",
            "DescribeEnvs",
            {
                "EnvTypes": ["weda", "baas"],
                "IsVisible": False,
                "Channels": ["dcloud", "iotenable", "tem", "scene_module"],
            },
        )
        envs = (result or {}).get("EnvList", [])
        return [
            {
                "envId": env.get("EnvId"),
                "alias": env.get("Alias"),
                "region": env.get("Region"),
                "status": env.get("Status"),
            }
            for env in envs
        ]

    async def forward(self, path: str, payload: dict[str, Any] | None = None) -> Any:
        """
        Proxy a raw gateway call.

        ``path`` is ``{serviceType}/{action}``; the payload is sent as the action
        parameters with the current session credentials.
        """
        service_type, _, action = path.strip("/").partition("/")
        if not service_type or not action:
            raise CapiError("INVALID_PATH", f"Expected '<service>/<action>', got '{path}'")
        payload = payload or {}
        return await self.request(
            service_type,
            action,
            payload.get("actionParam", payload),
            region=payload.get("region"),
        )

    async def aclose(self) -> None:
        await self.client.aclose()
