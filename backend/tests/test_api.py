from sqlalchemy.exc import OperationalError

from yogabook.core.clock import to_unix, utcnow
from yogabook.services.booking_engine import BookingEngine
from yogabook.services.membership_ledger import MembershipLedger


def _today_unix():
    return to_unix(utcnow().replace(hour=0, minute=0, second=0, microsecond=0))


class TestBookingEndpoints:
    def test_book_success(self, client, factory, remaining):
        user_id = factory.user("alice")
        card_id = factory.card(user_id, remaining=3)
        lesson_id = factory.lesson()

        response = client.post("/api/v1/bookings/book", json={"lesson_id": lesson_id, "open_id": "alice"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["booking_id"] > 0
        assert body["remaining_classes"] == 2
        assert body["already_booked"] is False
        assert remaining(card_id) == 2

    def test_book_twice_is_idempotent(self, client, factory, remaining):
        user_id = factory.user("alice")
        card_id = factory.card(user_id, remaining=3)
        lesson_id = factory.lesson()
        payload = {"lesson_id": lesson_id, "open_id": "alice"}

        first = client.post("/api/v1/bookings/book", json=payload).json()
        second = client.post("/api/v1/bookings/book", json=payload).json()

        assert second["success"] is True
        assert second["already_booked"] is True
        assert second["booking_id"] == first["booking_id"]
        assert remaining(card_id) == 2

    def test_book_without_membership(self, client, factory):
        factory.user("alice")
        lesson_id = factory.lesson()

        response = client.post("/api/v1/bookings/book", json={"lesson_id": lesson_id, "open_id": "alice"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "NoValidMembership"
        assert body["booking_id"] is None
        assert body["message"]

    def test_book_full_lesson(self, client, factory):
        factory.card(factory.user("alice"))
        factory.card(factory.user("bob"))
        lesson_id = factory.lesson(max_students=1)
        client.post("/api/v1/bookings/book", json={"lesson_id": lesson_id, "open_id": "alice"})

        body = client.post("/api/v1/bookings/book", json={"lesson_id": lesson_id, "open_id": "bob"}).json()

        assert body["success"] is False
        assert body["code"] == "LessonFull"
        assert body["booking_id"] == 0

    def test_book_rejects_malformed_requests(self, client, factory):
        lesson_id = factory.lesson()
        url = "/api/v1/bookings/book"

        assert client.post(url, json={"lesson_id": lesson_id}).status_code == 422
        assert client.post(url, json={"lesson_id": 0, "open_id": "alice"}).status_code == 422
        assert client.post(url, json={"lesson_id": lesson_id, "open_id": "   "}).status_code == 422
        response = client.post(url, json={"lesson_id": lesson_id, "open_id": "alice", "card_id": 1})
        assert response.status_code == 422
        assert "detail" in response.json()

    def test_database_failure_is_503_without_driver_text(self, client, factory, monkeypatch):
        factory.card(factory.user("alice"))
        lesson_id = factory.lesson()

        def broken(self, *args, **kwargs):
            raise OperationalError("UPDATE user_membership_cards", {}, Exception("database is locked"))

        monkeypatch.setattr(BookingEngine, "_book", broken)
        response = client.post("/api/v1/bookings/book", json={"lesson_id": lesson_id, "open_id": "alice"})

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert "locked" not in response.text
        assert "user_membership_cards" not in response.text

    def test_cancel_refunds_once(self, client, factory, remaining):
        user_id = factory.user("alice")
        card_id = factory.card(user_id, remaining=3)
        lesson_id = factory.lesson()
        booking_id = client.post(
            "/api/v1/bookings/book", json={"lesson_id": lesson_id, "open_id": "alice"}
        ).json()["booking_id"]

        first = client.post("/api/v1/bookings/cancel", json={"booking_id": booking_id, "open_id": "alice"}).json()
        second = client.post("/api/v1/bookings/cancel", json={"booking_id": booking_id, "open_id": "alice"}).json()

        assert first == {
            "success": True,
            "cancelled_id": booking_id,
            "refunded": True,
            "classes_refunded": 1,
        }
        assert second["success"] is False
        assert second["code"] == "BookingNotFound"
        assert second["cancelled_id"] == 0
        assert remaining(card_id) == 3

    def test_cancel_someone_elses_booking(self, client, factory):
        factory.card(factory.user("alice"))
        factory.user("mallory")
        lesson_id = factory.lesson()
        booking_id = client.post(
            "/api/v1/bookings/book", json={"lesson_id": lesson_id, "open_id": "alice"}
        ).json()["booking_id"]

        body = client.post("/api/v1/bookings/cancel", json={"booking_id": booking_id, "open_id": "mallory"}).json()
        assert body["success"] is False
        assert body["code"] == "BookingNotFound"

    def test_lessons_listing(self, client, factory):
        factory.card(factory.user("alice"))
        lesson_id = factory.lesson(max_students=4)
        booking_id = client.post(
            "/api/v1/bookings/book", json={"lesson_id": lesson_id, "open_id": "alice"}
        ).json()["booking_id"]

        response = client.get("/api/v1/bookings/lessons", params={"start": _today_unix(), "open_id": "alice"})

        assert response.status_code == 200
        [lesson] = response.json()
        assert lesson["id"] == lesson_id
        assert lesson["current_students"] == 1
        assert lesson["max_students"] == 4
        assert lesson["is_booked"] is True
        assert lesson["booking_id"] == booking_id
        assert isinstance(lesson["start_time"], int)

    def test_lessons_listing_requires_start(self, client):
        assert client.get("/api/v1/bookings/lessons", params={"open_id": "alice"}).status_code == 422

    def test_my_bookings(self, client, factory):
        factory.card(factory.user("alice"))
        lesson_id = factory.lesson(title="Yin")
        client.post("/api/v1/bookings/book", json={"lesson_id": lesson_id, "open_id": "alice"})

        [row] = client.get("/api/v1/bookings/mine", params={"open_id": "alice"}).json()
        assert row["lesson_id"] == lesson_id
        assert row["lesson_title"] == "Yin"
        assert row["status"] == "confirmed"


class TestMembershipEndpoints:
    def test_plans(self, client, factory):
        factory.plan(name="Ten Class Pass", sort_order=1)
        factory.plan(name="Retired", is_active=False)

        plans = client.get("/api/v1/memberships/plans").json()
        assert [p["name"] for p in plans] == ["Ten Class Pass"]
        assert plans[0]["card_type"] == "count_based"

    def test_purchase_then_list_cards(self, client, factory):
        factory.user("alice")
        plan_id = factory.plan(total_classes=8)

        body = client.post("/api/v1/memberships/purchase", json={"open_id": "alice", "plan_id": plan_id}).json()

        assert body["success"] is True
        assert body["card_number"].startswith("YC-")
        [card] = client.get("/api/v1/memberships/cards", params={"open_id": "alice"}).json()
        assert card["id"] == body["card_id"]
        assert card["remaining_classes"] == 8
        assert card["status"] == "active"

    def test_purchase_unknown_plan(self, client, factory):
        factory.user("alice")
        body = client.post("/api/v1/memberships/purchase", json={"open_id": "alice", "plan_id": 404}).json()
        assert body["success"] is False
        assert body["card_id"] is None

    def test_purchase_unknown_user(self, client, factory):
        plan_id = factory.plan()
        body = client.post("/api/v1/memberships/purchase", json={"open_id": "ghost", "plan_id": plan_id}).json()
        assert body == {"success": False, "message": "User not found", "card_id": None, "card_number": None}

    def test_usage_history(self, client, factory):
        user_id = factory.user("alice")
        factory.card(user_id, remaining=2)
        lesson_id = factory.lesson(title="Hatha")
        booking_id = client.post(
            "/api/v1/bookings/book", json={"lesson_id": lesson_id, "open_id": "alice"}
        ).json()["booking_id"]
        client.post("/api/v1/bookings/cancel", json={"booking_id": booking_id, "open_id": "alice"})

        [usage] = client.get("/api/v1/memberships/usage", params={"open_id": "alice"}).json()
        assert usage["lesson_title"] == "Hatha"
        assert usage["usage_type"] == "refund"
        assert usage["classes_consumed"] == 1

    def test_cards_for_unknown_user(self, client):
        assert client.get("/api/v1/memberships/cards", params={"open_id": "ghost"}).json() == []

    def test_expire(self, client, factory):
        user_id = factory.user("alice")
        factory.card(user_id, expires_in_days=-1)
        factory.card(user_id, expires_in_days=10)

        assert client.post("/api/v1/memberships/expire").json() == {"expired": 1}
        assert client.post("/api/v1/memberships/expire").json() == {"expired": 0}

    def test_expire_database_failure_is_503(self, client, monkeypatch):
        def broken(self, now=None):
            raise OperationalError("UPDATE user_membership_cards", {}, Exception("database is locked"))

        monkeypatch.setattr(MembershipLedger, "expire_cards", broken)
        response = client.post("/api/v1/memberships/expire")

        assert response.status_code == 503
        assert response.json()["success"] is False
        assert "locked" not in response.text


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
