import asyncio
import sys
import uuid

import httpx

BASE_URL = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"


async def run_verification():
    print(f"🚀  Starting Verification against {BASE_URL}...\n")

    async with httpx.AsyncClient(base_url=BASE_URL, timeout=10.0) as client:
        # 1. Health Check
        print("1. [Health] Checking /api/health...")
        try:
            resp = await client.get("/api/health")
            if resp.status_code == 200 and resp.json().get("status") == "ok":
                print("   ✅  Health Check Passed")
            else:
                print(f"   ❌  Health Check Failed: {resp.text}")
                return
        except httpx.HTTPError as e:
            print(f"   ❌  Connection Error: {e}")
            return

        # 2. One-time link
        print("\n2. [API] Creating a one-time link...")
        long_url = "https://www.example.com"
        alias = f"verify-{uuid.uuid4().hex[:8]}"
        resp = await client.post("/api/links", json={"url": long_url, "custom_slug": alias, "max_views": 1})
        if resp.status_code == 201:
            print(f"   ✅  Created: {resp.json()['short_url']}")
        else:
            print(f"   ❌  Create Failed: {resp.status_code} {resp.text}")
            return

        # 3. Redirect, then the cap
        print("\n3. [API] Verifying Redirect and view cap...")
        resp = await client.get(f"/{alias}", follow_redirects=False)
        if resp.status_code == 307 and resp.headers.get("location") == long_url:
            print(f"   ✅  Redirect Location matches: {resp.headers['location']}")
        else:
            print(f"   ❌  Redirect Failed: {resp.status_code} {resp.headers.get('location')}")

        resp = await client.get(f"/{alias}", follow_redirects=False)
        if resp.status_code == 410:
            print("   ✅  Second visit refused (410)")
        else:
            print(f"   ❌  Second visit returned {resp.status_code}")

        # 4. Analytics
        print("\n4. [API] Verifying Analytics...")
        resp = await client.get(f"/api/links/{alias}/analytics")
        if resp.status_code == 200:
            data = resp.json()
            if data["total_views"] == 1 and data["is_active"] is False:
                print(f"   ✅  Views recorded: {data['total_views']}, link retired")
            else:
                print(f"   ❌  Unexpected analytics: {data}")
        else:
            print(f"   ❌  Analytics Failed: {resp.status_code}")

        # 5. Password gate
        print("\n5. [API] Verifying password-protected link...")
        resp = await client.post("/api/links", json={"url": long_url, "password": "verify-pw"})
        link_id = resp.json()["id"]
        locked = await client.get(f"/{link_id}", follow_redirects=False)
        unlocked = await client.get(f"/{link_id}", params={"password": "verify-pw"}, follow_redirects=False)
        if locked.status_code == 401 and unlocked.status_code == 307:
            print("   ✅  Password gate Passed")
        else:
            print(f"   ❌  Password gate Failed: {locked.status_code} / {unlocked.status_code}")

        # 6. Accounts
        print("\n6. [Auth] Register and fetch profile...")
        email = f"{alias}@example.com"
        resp = await client.post("/api/auth/register", json={"email": email, "password": "verify-pass"})
        if resp.status_code == 200:
            token = resp.json()["token"]
            me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
            if me.status_code == 200 and me.json()["email"] == email:
                print(f"   ✅  Profile loaded for {email}")
            else:
                print(f"   ❌  Profile Failed: {me.status_code}")
        else:
            print(f"   ❌  Register Failed: {resp.status_code} {resp.text}")

        # 7. Metrics
        print("\n7. [Observability] Verifying Metrics...")
        resp = await client.get("/metrics")
        if resp.status_code == 200 and "redirect_total" in resp.text:
            print("   ✅  Metrics Endpoint Exposed")
        else:
            print(f"   ❌  Metrics Failed: {resp.status_code}")

    print("\n✨ Verification Complete!")


if __name__ == "__main__":
    asyncio.run(run_verification())
