import pytest
from httpx import AsyncClient

from templink.main import create_app
from templink.services.notifications import MessageKind


async def register(client: AsyncClient, email="user@example.com", password="abcdef") -> str:
    response = await client.post("/api/auth/register", json={"email": email, "password": password})
    assert response.status_code == 200
    return response.json()["token"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "X-Request-Id" in response.headers


@pytest.mark.asyncio
async def test_create_short_link(client: AsyncClient):
    payload = {"url": "https://www.example.com", "custom_slug": "pytest-alias", "max_views": 10}

    response = await client.post("/api/links", json=payload)
    assert response.status_code == 201
    data = response.json()
    assert data["id"] == "pytest-alias"
    assert data["short_url"] == "http://test/pytest-alias"
    assert data["has_password"] is False

    response = await client.get("/api/links/pytest-alias/analytics")
    assert response.status_code == 200
    assert response.json()["total_views"] == 0
    assert response.json()["remaining_views"] == 10


@pytest.mark.asyncio
async def test_create_rejects_invalid_url(client: AsyncClient):
    response = await client.post("/api/links", json={"url": "not-a-url"})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_url"


@pytest.mark.asyncio
async def test_duplicate_slug_conflict(client: AsyncClient):
    payload = {"url": "https://www.example.com", "custom_slug": "dupe-slug"}
    assert (await client.post("/api/links", json=payload)).status_code == 201

    response = await client.post("/api/links", json=payload)
    assert response.status_code == 409
    assert response.json()["error"] == "slug_taken"


@pytest.mark.asyncio
async def test_redirect(client: AsyncClient):
    await client.post("/api/links", json={"url": "https://www.google.com", "custom_slug": "go-google"})

    response = await client.get("/go-google", headers={"User-Agent": "pytest", "Referer": "https://ref.test"})
    assert response.status_code == 307
    assert response.headers["location"] == "https://www.google.com"

    visits = (await client.get("/api/links/go-google/analytics")).json()["recent_visits"]
    assert visits[0]["user_agent"] == "pytest"
    assert visits[0]["referer"] == "https://ref.test"


@pytest.mark.asyncio
async def test_redirect_unknown_is_404(client: AsyncClient):
    response = await client.get("/does-not-exist")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_one_time_link(client: AsyncClient):
    await client.post("/api/links", json={"url": "https://example.com/a", "custom_slug": "once", "max_views": 1})

    assert (await client.get("/once")).status_code == 307
    second = await client.get("/once")
    assert second.status_code == 410
    assert second.json()["error"] == "expired"

    analytics = (await client.get("/api/links/once/analytics")).json()
    assert analytics["is_active"] is False
    assert analytics["total_views"] == 1


@pytest.mark.asyncio
async def test_expired_link(client: AsyncClient, clock):
    await client.post("/api/links", json={"url": "https://example.com", "custom_slug": "short-lived", "expires_in": 60})
    clock.advance(seconds=61)

    response = await client.get("/short-lived")
    assert response.status_code == 410
    assert (await client.get("/api/links/short-lived/analytics")).json()["is_active"] is False


@pytest.mark.asyncio
async def test_password_protected_redirect(client: AsyncClient):
    await client.post("/api/links", json={"url": "https://example.com", "custom_slug": "locked", "password": "pw1234"})

    missing = await client.get("/locked")
    wrong = await client.get("/locked", params={"password": "nope"})
    assert (missing.status_code, missing.json()["error"]) == (401, "password_required")
    assert (wrong.status_code, wrong.json()["error"]) == (401, "password_incorrect")
    assert (await client.get("/api/links/locked/analytics")).json()["total_views"] == 0

    ok = await client.get("/locked", params={"password": "pw1234"})
    assert ok.status_code == 307
    assert (await client.get("/api/links/locked/analytics")).json()["total_views"] == 1


@pytest.mark.asyncio
async def test_analytics_unknown_link(client: AsyncClient):
    response = await client.get("/api/links/missing/analytics")
    assert response.status_code == 404
    assert response.json()["error"] == "link_not_found"


@pytest.mark.asyncio
async def test_register_login_and_me(client: AsyncClient):
    token = await register(client, "a@b.com")

    duplicate = await client.post("/api/auth/register", json={"email": "a@b.com", "password": "abcdef"})
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "email_already_registered"

    login = await client.post("/api/auth/login", json={"email": "a@b.com", "password": "abcdef"})
    assert login.status_code == 200
    assert login.json()["user"]["plan"] == "free"

    await client.post("/api/links", json={"url": "https://example.com"}, headers=bearer(token))
    me = await client.get("/api/auth/me", headers=bearer(token))
    assert me.status_code == 200
    assert me.json()["email"] == "a@b.com"
    assert me.json()["email_verified"] is False
    assert me.json()["stats"] == {"total_links": 1, "total_views": 0}


@pytest.mark.asyncio
async def test_bad_login_is_401(client: AsyncClient):
    await register(client, "a@b.com")
    response = await client.post("/api/auth/login", json={"email": "a@b.com", "password": "wrong!"})
    assert response.status_code == 401
    assert response.json()["error"] == "invalid_credentials"


@pytest.mark.asyncio
async def test_me_requires_token(client: AsyncClient):
    assert (await client.get("/api/auth/me")).status_code == 401
    assert (await client.get("/api/auth/me", headers=bearer("garbage"))).status_code == 401


@pytest.mark.asyncio
async def test_forgot_password_response_is_generic(client: AsyncClient, notifier):
    await register(client, "a@b.com")

    known = await client.post("/api/auth/forgot-password", json={"email": "a@b.com"})
    unknown = await client.post("/api/auth/forgot-password", json={"email": "x@y.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_reset_password_flow(client: AsyncClient, notifier):
    await register(client, "a@b.com")
    await client.post("/api/auth/forgot-password", json={"email": "a@b.com"})
    secret = notifier.last_secret(MessageKind.PASSWORD_RESET)

    first = await client.post("/api/auth/reset-password", json={"token": secret, "password": "newpass1"})
    second = await client.post("/api/auth/reset-password", json={"token": secret, "password": "newpass2"})

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["error"] == "invalid_or_expired_token"
    login = await client.post("/api/auth/login", json={"email": "a@b.com", "password": "newpass1"})
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_verify_email_flow(client: AsyncClient, notifier):
    token = await register(client, "a@b.com")

    assert (await client.post("/api/auth/resend-verification", headers=bearer(token))).status_code == 200
    secret = notifier.last_secret(MessageKind.EMAIL_VERIFICATION)

    response = await client.get("/api/auth/verify-email", params={"token": secret})
    assert response.status_code == 200
    assert (await client.get("/api/auth/me", headers=bearer(token))).json()["email_verified"] is True


@pytest.mark.asyncio
async def test_profile_change_password_and_delete(client: AsyncClient):
    token = await register(client, "a@b.com")

    profile = await client.put("/api/auth/profile", json={"name": "Ann", "email": "ann@b.com"}, headers=bearer(token))
    assert profile.status_code == 200
    assert profile.json()["email"] == "ann@b.com"

    change = await client.post(
        "/api/auth/change-password",
        json={"current_password": "abcdef", "new_password": "ghijkl"},
        headers=bearer(token),
    )
    assert change.status_code == 200

    wrong = await client.request("DELETE", "/api/auth/account", json={"password": "abcdef"}, headers=bearer(token))
    assert wrong.status_code == 401
    deleted = await client.request("DELETE", "/api/auth/account", json={"password": "ghijkl"}, headers=bearer(token))
    assert deleted.status_code == 200

    # The session outlives the account row but no longer authenticates.
    assert (await client.get("/api/auth/me", headers=bearer(token))).status_code == 401


@pytest.mark.asyncio
async def test_owner_can_delete_link(client: AsyncClient):
    owner = await register(client, "owner@example.com")
    other = await register(client, "other@example.com")
    await client.post("/api/links", json={"url": "https://example.com", "custom_slug": "mine"}, headers=bearer(owner))

    assert (await client.delete("/api/links/mine", headers=bearer(other))).status_code == 404
    assert (await client.delete("/api/links/mine", headers=bearer(owner))).status_code == 204
    assert (await client.get("/mine")).status_code == 410


@pytest.mark.asyncio
async def test_recent_links_requires_business_plan(client: AsyncClient, app):
    token = await register(client, "a@b.com")

    response = await client.get("/api/links", headers=bearer(token))
    assert response.status_code == 403
    assert response.json()["error"] == "upgrade_required"

    async with app.state.database.session() as db:
        user_id = app.state.signer.decode_access_token(token)["sub"]
        await app.state.account_service.update_plan(db, user_id, "business")

    await client.post("/api/links", json={"url": "https://example.com", "custom_slug": "listed"})
    response = await client.get("/api/links", headers=bearer(token))
    assert response.status_code == 200
    assert [link["id"] for link in response.json()] == ["listed"]


@pytest.mark.asyncio
async def test_metrics(client: AsyncClient):
    await client.get("/api/health")
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"expires_in": 10**17}, {"max_views": 10**19}, {"max_views": 2**31}])
async def test_create_rejects_oversized_limits(client: AsyncClient, payload):
    response = await client.post("/api/links", json={"url": "https://example.com", **payload})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_janitor_stops_cleanly_on_shutdown(test_settings, notifier, clock):
    settings = test_settings.model_copy(update={"CLEANUP_ENABLED": True, "CLEANUP_INTERVAL_SECONDS": 3600})
    application = create_app(app_settings=settings, notifier=notifier, clock=clock)

    async with application.router.lifespan_context(application):
        janitor = application.state.janitor
        assert janitor is not None
        assert not janitor.done()

    assert janitor.done()
    assert janitor.cancelled()
