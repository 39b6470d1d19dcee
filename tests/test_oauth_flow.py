try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from mcp_bridge.clients.provider_auth import ProviderOAuthClient, TokenExchangeError
from mcp_bridge.clients.sqlite_store import SQLiteStore
from mcp_bridge.clients.tenant_config import ConfigurationMissingError, TenantConfigStore
from mcp_bridge.core.config import OAuthSettings, ProviderSettings
from mcp_bridge.models.oauth import AuthorizationStatus
from mcp_bridge.services.oauth_flow import (
    AuthorizationFlow,
    MissingSessionDataError,
    ProviderAuthorizationError,
    StateMismatchError,
)
from mcp_bridge.services.pkce import generate_code_challenge
from mcp_bridge.services.pkce_sessions import PKCESessionStore
from mcp_bridge.services.provider_tokens import ProviderTokenService
from mcp_bridge.services.token_cipher import TokenCipherService
from mcp_bridge.services.token_store import OAuthTokenStore


class TokenEndpoint:
    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.forms: list[dict[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.forms.append({k: v[0] for k, v in parse_qs(request.content.decode()).items()})
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "invalid_grant"})
        return httpx.Response(
            200,
            json={"access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 3600},
        )


@pytest.fixture()
def harness(tmp_path):
    record_store = SQLiteStore(str(tmp_path / "records.sqlite3"))
    tenants = TenantConfigStore(record_store)
    tenants.save(user_id="user-1", account_id="1234567", client_id="client-abc")
    endpoint = TokenEndpoint()
    oauth_settings = OAuthSettings()
    oauth_client = ProviderOAuthClient(
        ProviderSettings(PROVIDER_REDIRECT_URI="https://bridge.example.com/callback"),
        oauth_settings,
        tenants,
        transport=httpx.MockTransport(endpoint),
    )
    sessions = PKCESessionStore(record_store, ttl_seconds=600)
    token_store = OAuthTokenStore(record_store, TokenCipherService(secret="secret"))
    tokens = ProviderTokenService(token_store, oauth_client, oauth_settings)
    flow = AuthorizationFlow(oauth_client, sessions, tokens)
    return flow, sessions, token_store, endpoint, tenants


def test_start_binds_challenge_and_state_to_session(harness) -> None:
    flow, sessions, _, _, _ = harness

    auth_request = flow.start("user-1")

    params = parse_qs(urlsplit(auth_request.authorization_url).query)
    session = sessions.get(auth_request.session.session_id)
    assert session is not None
    assert session.status is AuthorizationStatus.AUTH_REQUESTED
    assert params["state"] == [session.state]
    assert params["code_challenge"] == [generate_code_challenge(session.code_verifier)]
    assert session.code_verifier not in auth_request.authorization_url


def test_start_without_tenant_config_creates_no_session(harness, tmp_path) -> None:
    flow, _, _, _, tenants = harness
    tenants.delete("user-1")

    with pytest.raises(ConfigurationMissingError):
        flow.start("user-1")

    records = SQLiteStore(str(tmp_path / "records.sqlite3"))
    assert records.list_items_with_prefix(partition_key="pkce", sort_key_prefix="session#") == []


@pytest.mark.asyncio
async def test_complete_exchanges_code_and_stores_token(harness) -> None:
    flow, sessions, token_store, endpoint, _ = harness
    auth_request = flow.start("user-1")
    session = auth_request.session

    record = await flow.complete(
        session_id=session.session_id, code="code-1", state=session.state
    )

    assert record.tenant_id == "1234567"
    assert token_store.get("user-1").access_token == "access-1"
    assert endpoint.forms[0]["code_verifier"] == session.code_verifier
    assert sessions.get(session.session_id) is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "tamper",
    [
        lambda state: state[:-1],
        lambda state: state + "x",
        lambda state: state.swapcase(),
        lambda state: "",
        lambda state: "completely-different",
    ],
)
async def test_any_mismatched_state_is_rejected(harness, tamper) -> None:
    flow, sessions, token_store, endpoint, _ = harness
    session = flow.start("user-1").session

    with pytest.raises(StateMismatchError):
        await flow.complete(
            session_id=session.session_id, code="code-1", state=tamper(session.state)
        )

    assert endpoint.forms == []
    assert token_store.get("user-1") is None
    assert sessions.get(session.session_id).status is AuthorizationStatus.FAILED


@pytest.mark.asyncio
async def test_unknown_session_is_state_mismatch(harness) -> None:
    flow, _, _, endpoint, _ = harness

    with pytest.raises(StateMismatchError):
        await flow.complete(session_id="missing", code="code-1", state="state")
    assert endpoint.forms == []


@pytest.mark.asyncio
async def test_failed_attempt_does_not_block_legitimate_callback(harness) -> None:
    flow, _, token_store, _, _ = harness
    session = flow.start("user-1").session

    with pytest.raises(StateMismatchError):
        await flow.complete(session_id=session.session_id, code="x", state="forged")

    await flow.complete(session_id=session.session_id, code="code-1", state=session.state)
    assert token_store.get("user-1") is not None


@pytest.mark.asyncio
async def test_provider_error_is_reported(harness) -> None:
    flow, _, _, endpoint, _ = harness
    session = flow.start("user-1").session

    with pytest.raises(ProviderAuthorizationError) as excinfo:
        await flow.complete(
            session_id=session.session_id, code=None, state=session.state, error="access_denied"
        )

    assert excinfo.value.error_code == "provider_auth_failed"
    assert endpoint.forms == []


@pytest.mark.asyncio
async def test_session_without_verifier_is_missing_data(harness) -> None:
    flow, sessions, _, endpoint, _ = harness
    session = flow.start("user-1").session
    session.code_verifier = None
    sessions.update_status(session, AuthorizationStatus.AUTH_REQUESTED)

    with pytest.raises(MissingSessionDataError):
        await flow.complete(session_id=session.session_id, code="code-1", state=session.state)
    assert endpoint.forms == []


@pytest.mark.asyncio
async def test_missing_code_is_missing_data(harness) -> None:
    flow, _, _, endpoint, _ = harness
    session = flow.start("user-1").session

    with pytest.raises(MissingSessionDataError):
        await flow.complete(session_id=session.session_id, code=None, state=session.state)
    assert endpoint.forms == []


@pytest.mark.asyncio
async def test_rejected_exchange_marks_session_failed(harness) -> None:
    flow, sessions, token_store, endpoint, _ = harness
    endpoint.status_code = 400
    session = flow.start("user-1").session

    with pytest.raises(TokenExchangeError):
        await flow.complete(session_id=session.session_id, code="code-1", state=session.state)

    assert token_store.get("user-1") is None
    assert sessions.get(session.session_id).status is AuthorizationStatus.FAILED
