"""
Tests for the CAPI gateway client.

HTTP traffic goes through httpx.MockTransport.
"""

import json

import httpx
import pytest

from nldb.clients.capi import AuthRequiredError, AuthSession, CapiClient, CapiError
from nldb.config import CloudBaseSettings

COOKIE = "uin=o100; skey=abc"


def make_client(handler, cookie=COOKIE, token=None):
    settings = CloudBaseSettings(capi_base_url="https://gateway.test/", region="ap-guangzhou")
    session = AuthSession(cookie=cookie, token=token, env_id="env-1")
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CapiClient(settings, session, http_client)


class TestRequest:
    @pytest.mark.asyncio
    async def test_builds_endpoint_headers_and_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"code": "NORMAL", "result": {"Count": 3}})

        client = make_client(handler, token="tok-1")
        result = await client.request("flexdb", "Count", {"TableName": "users"})

        assert result == {"Count": 3}
        assert seen["url"] == "https://gateway.test/qcloud-weida/v1/capi?i=flexdb/Count"
        assert seen["headers"]["Cookie"] == COOKIE
        assert seen["headers"]["X-CsrfCode"] == "193485963"
        assert seen["headers"]["X-Qcloud-Token"] == "tok-1"
        assert seen["headers"]["X-Tcb-Source"] == "nldb-chat"
        assert seen["headers"]["X-Req-Id"]
        assert seen["body"] == {
            "raw": True,
            "serviceType": "flexdb",
            "actionName": "Count",
            "actionParam": {"TableName": "users"},
            "region": "ap-guangzhou",
            "signVersion": "v3",
        }
        await client.aclose()

    @pytest.mark.asyncio
    async def test_rotates_token_from_response_header(self):
        tokens = []

        def handler(request: httpx.Request) -> httpx.Response:
            tokens.append(request.headers["X-Qcloud-Token"])
            return httpx.Response(
                200,
                json={"code": 0, "result": {}},
                headers={"X-Qcloud-Token": f"tok-{len(tokens)}"},
            )

        client = make_client(handler)
        await client.request("tcb", "DescribeEnvs")
        await client.request("tcb", "DescribeEnvs")

        assert tokens == ["", "tok-1"]
        assert client.session.token == "tok-2"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_non_success_code_raises(self):
        def handler(request):
            return httpx.Response(200, json={"code": "AUTH_FAIL", "msg": "登录态失效"})

        client = make_client(handler)
        with pytest.raises(CapiError) as exc_info:
            await client.request("flexdb", "Query")
        assert exc_info.value.code == "AUTH_FAIL"
        assert exc_info.value.message == "登录态失效"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        client = make_client(lambda request: httpx.Response(500))
        with pytest.raises(CapiError) as exc_info:
            await client.request("flexdb", "Query")
        assert exc_info.value.code == "HTTP_ERROR"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_network_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        client = make_client(handler)
        with pytest.raises(CapiError) as exc_info:
            await client.request("flexdb", "Query")
        assert exc_info.value.code == "NETWORK_ERROR"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_missing_cookie_raises_auth_required(self):
        calls = []
        client = make_client(lambda request: calls.append(request), cookie=None)
        with pytest.raises(AuthRequiredError):
            await client.request("flexdb", "Query")
        assert calls == []
        await client.aclose()


class TestDescribeEnvs:
    @pytest.mark.asyncio
    async def test_maps_env_list(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["actionParam"]["EnvTypes"] == ["weda", "baas"]
            return httpx.Response(
                200,
                json={
                    "code": "NORMAL",
                    "result": {
                        "EnvList": [
                            {"EnvId": "env-1", "Alias": "dev", "Region": "ap-shanghai", "Status": "NORMAL"}
                        ]
                    },
                },
            )

        client = make_client(handler)
        envs = await client.describe_envs()
        assert envs == [
            {"envId": "env-1", "alias": "dev", "region": "ap-shanghai", "status": "NORMAL"}
        ]
        await client.aclose()


class TestForward:
    @pytest.mark.asyncio
    async def test_forwards_action_param_and_region(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"code": "NORMAL", "result": {"ok": True}})

        client = make_client(handler)
        result = await client.forward(
            "/lowcode/DescribeApps/", {"actionParam": {"Limit": 10}, "region": "ap-beijing"}
        )

        assert result == {"ok": True}
        assert seen["url"].endswith("?i=lowcode/DescribeApps")
        assert seen["body"]["actionParam"] == {"Limit": 10}
        assert seen["body"]["region"] == "ap-beijing"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_invalid_path(self):
        client = make_client(lambda request: httpx.Response(200, json={"code": 0}))
        with pytest.raises(CapiError) as exc_info:
            await client.forward("lowcode", {})
        assert exc_info.value.code == "INVALID_PATH"
        await client.aclose()


class TestAuthSession:
    def test_login_resets_token(self):
        session = AuthSession(cookie="old", token="tok")
        session.login("new-cookie", env_id="env-2")
        assert session.cookie == "new-cookie"
        assert session.token is None
        assert session.env_id == "env-2"
        assert session.logged_in

    def test_login_keeps_env_when_not_given(self):
        session = AuthSession(env_id="env-1")
        session.login("cookie")
        assert session.env_id == "env-1"

    def test_logout(self):
        session = AuthSession(cookie="c", token="t", env_id="env-1")
        session.logout()
        assert not session.logged_in
        assert session.token is None
        assert session.env_id == "env-1"
