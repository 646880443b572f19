"""Demo: walk login → authorize → token → userinfo → refresh with TestClient.

Uses the dev seed user and the dev client credentials, so run it with
APP_ENV=dev and no DATABASE_URL:
    python scripts/demo_login_flow.py
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

from tenant_idp.core.config import SETTINGS
from tenant_idp.main import app

REDIRECT_URI = "http://localhost:3000/callback"
DEMO_EMAIL = "admin@demo.example.com"
DEMO_PASSWORD = "demo-password"


def main() -> None:
    client = TestClient(app, follow_redirects=False)
    oauth = SETTINGS.oauth
    params = {
        "client_id": oauth.client_id,
        "redirect_uri": REDIRECT_URI,
        "response_type": "code",
        "state": "demo-state",
    }

    # ── Step 1: authorize without a session ─────────────────────────
    r = client.get("/oauth/authorize", params=params)
    login_location = r.headers["location"]
    print(f"1. GET  /oauth/authorize (no session) → {r.status_code}  → login")
    resume = parse_qs(urlparse(login_location).query)["redirect"][0]

    # ── Step 2: log in, carrying the authorize URL through ──────────
    r = client.post(
        "/login",
        data={"email": DEMO_EMAIL, "password": DEMO_PASSWORD, "redirect": resume},
    )
    print(f"2. POST /login             → {r.status_code}  (session cookie set)")
    assert r.cookies.get(SETTINGS.session_cookie_name), "no session cookie!"

    # ── Step 3: authorize again, now with the cookie ────────────────
    r = client.get(r.headers["location"])
    query = parse_qs(urlparse(r.headers["location"]).query)
    code = query["code"][0]
    print(
        f"3. GET  /oauth/authorize (session) → {r.status_code}  "
        f"code={code[:12]}…  state={query['state'][0]}"
    )

    # ── Step 4: exchange the code ───────────────────────────────────
    token_body = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": REDIRECT_URI,
        "client_id": oauth.client_id,
        "client_secret": oauth.client_secret,
    }
    r = client.post("/oauth/token", json=token_body)
    tokens = r.json()
    print(
        f"4. POST /oauth/token       → {r.status_code}  "
        f"expires_in={tokens['expires_in']}s"
    )

    # ── Step 5: userinfo ────────────────────────────────────────────
    r = client.get(
        "/oauth/userinfo",
        headers={"Authorization": f"Bearer {tokens['access_token']}"},
    )
    info = r.json()
    print(
        f"5. GET  /oauth/userinfo    → {r.status_code}  "
        f"{info['email']} tenant={info['tenant_subdomain']} "
        f"modules={info['licensed_modules']}"
    )

    # ── Step 6: replay the code ─────────────────────────────────────
    r = client.post("/oauth/token", json=token_body)
    print(f"6. POST /oauth/token (replay)  → {r.status_code}  {r.json()['error']}")

    # ── Step 7: rotate the refresh token ────────────────────────────
    r = client.post(
        "/oauth/token",
        json={
            "grant_type": "refresh_token",
            "refresh_token": tokens["refresh_token"],
            "client_id": oauth.client_id,
            "client_secret": oauth.client_secret,
        },
    )
    print(f"7. POST /oauth/token (refresh) → {r.status_code}  rotated")

    print("\nAll steps completed.")


if __name__ == "__main__":
    main()
