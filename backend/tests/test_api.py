"""
HTTP tests for the auth, vocals and payments routers.

Runs the full stack (routers, services, error handler) against the
in-memory database; ffmpeg/ffprobe are patched.
"""
import pytest

from conftest import auth_header, fake_ffmpeg
from musga.services.payment_gateway import PaymentOutcome


def _register(client, name, role):
    response = client.post("/auth/register", json={
        "email": f"{name}@musga.com",
        "username": name,
        "password": "password123",
        "firstName": name.title(),
        "lastName": "Tester",
        "role": role,
    })
    assert response.status_code == 201, response.text
    return response.json()


def _upload(client, token, **fields):
    form = {
        "title": "Deep House Vibes",
        "description": "Smooth and soulful vocals",
        "genre": "deep_house",
        "bpm": "120",
        "key": "Am",
        "tone": "Smooth",
        "price": "20.00",
        "licensingType": "non_exclusive",
    }
    form.update(fields)
    with fake_ffmpeg("180.2"):
        return client.post(
            "/vocals/upload",
            data=form,
            files={"audio": ("take1.mp3", b"\xff\xfb" * 512, "audio/mpeg")},
            headers=auth_header(token),
        )


@pytest.fixture
def singer(client):
    return _register(client, "vocalist", "singer")


@pytest.fixture
def dj(client):
    return _register(client, "producer", "dj")


# =============================================================================
# TEST: AUTH
# =============================================================================

class TestAuthRoutes:

    def test_register_hides_password_hash(self, singer):
        assert singer["token"]
        assert singer["user"]["role"] == "singer"
        assert singer["user"]["firstName"] == "Vocalist"
        assert "passwordHash" not in singer["user"]
        assert "password_hash" not in singer["user"]

    def test_duplicate_email_is_409(self, client, singer):
        response = client.post("/auth/register", json={
            "email": "vocalist@musga.com", "username": "someone_else", "password": "password123",
            "firstName": "A", "lastName": "B", "role": "dj",
        })
        assert response.status_code == 409
        assert response.json()["error"] == "Conflict"

    def test_login_and_verify(self, client, singer):
        response = client.post("/auth/login", json={"email": "vocalist@musga.com", "password": "password123"})
        assert response.status_code == 200
        token = response.json()["token"]

        verified = client.get("/auth/verify", headers=auth_header(token))
        assert verified.status_code == 200
        assert verified.json()["valid"] is True
        assert verified.json()["user"]["id"] == singer["user"]["id"]

    def test_bad_login_is_401(self, client, singer):
        response = client.post("/auth/login", json={"email": "vocalist@musga.com", "password": "nope-nope"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"

    def test_missing_token_is_401(self, client):
        response = client.get("/auth/profile")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_update_profile(self, client, dj):
        response = client.patch("/auth/profile", json={"bio": "House DJ"}, headers=auth_header(dj["token"]))
        assert response.status_code == 200
        assert response.json()["bio"] == "House DJ"


# =============================================================================
# TEST: VOCALS
# =============================================================================

class TestVocalRoutes:

    def test_upload_processes_in_background(self, client, singer):
        response = _upload(client, singer["token"])
        assert response.status_code == 201, response.text
        track = response.json()
        assert track["processingStatus"] == "processing"
        assert "filePath" not in track

        # TestClient runs background tasks before returning
        fetched = client.get(f"/vocals/{track['id']}").json()
        assert fetched["processingStatus"] == "ready"
        assert fetched["duration"] == 180
        assert fetched["singer"]["username"] == "vocalist"

        job = client.get(f"/vocals/{track['id']}/processing", headers=auth_header(singer["token"]))
        assert job.json()["status"] == "done"

    def test_dj_cannot_upload(self, client, dj):
        response = _upload(client, dj["token"])
        assert response.status_code == 403

    def test_non_audio_rejected(self, client, singer):
        response = client.post(
            "/vocals/upload",
            data={"title": "x"},
            files={"audio": ("notes.txt", b"hello", "text/plain")},
            headers=auth_header(singer["token"]),
        )
        assert response.status_code == 400

    def test_search_with_filters_and_paging(self, client, singer):
        _upload(client, singer["token"], title="Cheap", price="9.99")
        _upload(client, singer["token"], title="Dear", price="49.99", licensingType="exclusive")

        everything = client.get("/vocals").json()
        assert everything["total"] == 2
        assert everything["page"] == 1
        assert everything["limit"] == 20
        assert everything["totalPages"] == 1

        cheap = client.get("/vocals", params={"maxPrice": "10"}).json()
        assert [t["title"] for t in cheap["data"]] == ["Cheap"]
        assert cheap["data"][0]["price"] == 9.99

        exclusive = client.get("/vocals", params={"licensingType": "exclusive"}).json()
        assert [t["title"] for t in exclusive["data"]] == ["Dear"]

        paged = client.get("/vocals", params={"limit": 1, "page": 2}).json()
        assert paged["totalPages"] == 2
        assert len(paged["data"]) == 1

    def test_bad_limit_is_400(self, client):
        assert client.get("/vocals", params={"limit": 101}).status_code == 400

    def test_get_counts_views(self, client, singer):
        track_id = _upload(client, singer["token"]).json()["id"]
        client.get(f"/vocals/{track_id}")
        assert client.get(f"/vocals/{track_id}").json()["viewCount"] == 2

    def test_unknown_vocal_is_404(self, client):
        response = client.get("/vocals/does-not-exist")
        assert response.status_code == 404
        assert response.json() == {"detail": "Vocal not found", "error": "NotFound"}

    def test_preview_full_and_ranged(self, client, singer):
        track_id = _upload(client, singer["token"]).json()["id"]

        full = client.get(f"/vocals/{track_id}/preview")
        assert full.status_code == 200
        assert full.headers["accept-ranges"] == "bytes"
        size = len(full.content)
        assert size > 0

        partial = client.get(f"/vocals/{track_id}/preview", headers={"Range": "bytes=0-9"})
        assert partial.status_code == 206
        assert partial.headers["content-range"] == f"bytes 0-9/{size}"
        assert partial.content == full.content[:10]

        unsatisfiable = client.get(f"/vocals/{track_id}/preview", headers={"Range": f"bytes={size}-"})
        assert unsatisfiable.status_code == 416

        # Streaming the preview is not a view
        assert client.get(f"/vocals/{track_id}").json()["viewCount"] == 1

    def test_owner_edit_and_delete(self, client, singer, dj):
        track_id = _upload(client, singer["token"]).json()["id"]

        forbidden = client.patch(f"/vocals/{track_id}", json={"price": 30}, headers=auth_header(dj["token"]))
        assert forbidden.status_code == 403

        edited = client.patch(f"/vocals/{track_id}", json={"price": 30, "title": "Renamed"},
                              headers=auth_header(singer["token"]))
        assert edited.status_code == 200
        assert edited.json()["price"] == 30.0
        assert edited.json()["title"] == "Renamed"

        deleted = client.delete(f"/vocals/{track_id}", headers=auth_header(singer["token"]))
        assert deleted.json() == {"message": "Vocal deleted successfully"}
        assert client.get(f"/vocals/{track_id}").status_code == 404

    def test_my_vocals(self, client, singer):
        _upload(client, singer["token"])
        mine = client.get("/vocals/my-vocals", headers=auth_header(singer["token"]))
        assert mine.status_code == 200
        assert mine.json()["total"] == 1


# =============================================================================
# TEST: PAYMENTS
# =============================================================================

class TestPaymentRoutes:

    def _checkout(self, client, token, track_id):
        response = client.post(
            "/payments/create-payment-intent", json={"trackId": track_id}, headers=auth_header(token),
        )
        return response

    def test_purchase_and_download(self, client, singer, dj):
        track_id = _upload(client, singer["token"]).json()["id"]

        intent = self._checkout(client, dj["token"], track_id)
        assert intent.status_code == 200, intent.text
        body = intent.json()
        assert body["amount"] == 20.0
        gateway_ref = body["clientSecret"].split("_secret")[0]

        before = client.get(f"/payments/download/{track_id}", headers=auth_header(dj["token"]))
        assert before.status_code == 404

        confirmed = client.post(f"/payments/confirm-payment/{gateway_ref}", headers=auth_header(dj["token"]))
        assert confirmed.status_code == 200
        result = confirmed.json()
        assert result["success"] is True
        assert result["transaction"]["status"] == "completed"
        assert result["transaction"]["platformFee"] == 2.0
        assert result["transaction"]["sellerAmount"] == 18.0

        download = client.get(f"/payments/download/{track_id}", headers=auth_header(dj["token"]))
        assert download.status_code == 200
        assert download.content == b"\xff\xfb" * 512

        purchases = client.get("/payments/purchases", headers=auth_header(dj["token"])).json()
        assert purchases["total"] == 1
        assert purchases["data"][0]["vocal"]["id"] == track_id

        sales = client.get("/payments/sales", params={"vocalId": track_id}, headers=auth_header(singer["token"]))
        assert sales.json()["total"] == 1

        earnings = client.get("/payments/earnings", headers=auth_header(singer["token"])).json()
        assert earnings == {"totalEarnings": 18.0, "totalSales": 1}

        assert client.get(f"/vocals/{track_id}").json()["downloadCount"] == 1

    def test_exclusive_sold_out(self, client, singer, dj):
        track_id = _upload(client, singer["token"], licensingType="exclusive").json()["id"]
        other = _register(client, "second", "dj")

        ref = self._checkout(client, dj["token"], track_id).json()["clientSecret"].split("_secret")[0]
        client.post(f"/payments/confirm-payment/{ref}", headers=auth_header(dj["token"]))

        assert client.get("/vocals").json()["total"] == 0
        again = self._checkout(client, other["token"], track_id)
        assert again.status_code == 409

    def test_declined_payment(self, client, gateway, singer, dj):
        track_id = _upload(client, singer["token"]).json()["id"]
        ref = self._checkout(client, dj["token"], track_id).json()["clientSecret"].split("_secret")[0]
        gateway.set_outcome(ref, PaymentOutcome.FAILED)

        confirmed = client.post(f"/payments/confirm-payment/{ref}", headers=auth_header(dj["token"])).json()
        assert confirmed["success"] is False
        assert confirmed["reason"] == "Payment failed"
        assert confirmed["transaction"]["status"] == "failed"

    def test_own_track_is_400(self, client, singer):
        track_id = _upload(client, singer["token"]).json()["id"]
        response = self._checkout(client, singer["token"], track_id)
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidArgument"

    def test_requires_auth(self, client):
        assert client.get("/payments/earnings").status_code == 401
