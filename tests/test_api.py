"""
HTTP surface tests: each screen endpoint drives the controller and returns
the rendered view; portal errors map to 422 / 409 / 404.
"""

FORM = {
    "roll_number": "21CS1042",
    "program": "MBA",
    "year": "2",
    "purpose": "Medical appointment",
    "departure_date": "2026-10-20",
    "departure_time": "09:00",
    "arrival_date": "2026-10-20",
    "arrival_time": "20:00",
}


def _login(client, role, phone="9876543210"):
    client.post("/api/reset")
    r = client.post("/api/role", json={"role": role})
    assert r.status_code == 200
    r = client.post("/api/login", json={"phone": phone, "password": ""})
    assert r.status_code == 200, r.json()
    return r.json()


def _submit(client, destination="City Center"):
    _login(client, "student")
    r = client.post("/api/apply/open", json={"latitude": 26.8, "longitude": 80.9})
    assert r.json()["screen"] == "apply"
    client.post("/api/apply/destination/pick", json={"value": destination})
    r = client.post("/api/apply", json=FORM)
    assert r.status_code == 200, r.json()
    return r.json()["application_id"]


class TestStatus:
    def test_root(self, client):
        r = client.get("/")
        assert r.json()["status"] == "ok"

    def test_storage_diagnostics(self, client):
        body = client.get("/test").json()
        assert body["storage"] == "memory"
        assert body["applications"] == {"PENDING": 0, "APPROVED": 0, "DECLINED": 0}

    def test_initial_view_after_splash(self, client):
        assert client.get("/api/view").json()["screen"] == "role-select"


class TestLogin:
    def test_short_phone_is_422(self, client):
        client.post("/api/role", json={"role": "student"})
        r = client.post("/api/login", json={"phone": "12345"})
        assert r.status_code == 422
        assert r.json()["field"] == "phone"
        assert client.get("/api/view").json()["screen"] == "login"

    def test_dashboard_for_role(self, client):
        view = _login(client, "authority")
        assert view["screen"] == "dashboard"
        assert view["title"] == "Student Leave Review"
        assert view["user"]["name"] == "Dean Admin"

    def test_signup_toggle_and_phone_input(self, client):
        client.post("/api/role", json={"role": "security"})
        view = client.post("/api/auth/toggle").json()
        assert view["screen"] == "signup"
        view = client.post("/api/phone", json={"value": "98765-43210 ext"}).json()
        assert view["phone"] == "9876543210"
        assert view["can_submit"] is True
        view = client.post("/api/login", json={"password": "anything"}).json()
        assert view["screen"] == "dashboard"
        assert view["title"] == "Gate Clearance Log"

    def test_invalid_role_rejected_by_schema(self, client):
        r = client.post("/api/role", json={"role": "warden"})
        assert r.status_code == 422


class TestWorkflow:
    def test_full_approval_flow(self, client, controller):
        app_id = _submit(client)
        assert controller.state.screen == "dashboard"
        record = controller.store.get(app_id)
        assert record.place == "City Center"
        assert record.program == "MBA"

        _login(client, "authority")
        client.post(f"/api/applications/{app_id}/open")
        r = client.post("/api/details/approve")
        assert r.status_code == 200
        number = r.json()["gate_pass_number"]
        assert len(number) == 6
        assert client.post("/api/details/approve").status_code == 409

        _login(client, "student")
        client.post(f"/api/applications/{app_id}/open")
        r = client.get("/api/details/certificate")
        assert r.status_code == 200
        assert r.headers["content-type"] == "application/pdf"
        assert f"RGIPT_GATEPASS_{number}.pdf" in r.headers["content-disposition"]

        _login(client, "security")
        client.post(f"/api/applications/{app_id}/open")
        out = client.post("/api/details/exit").json()
        assert out["view"]["actions"] == ["record-entry"]
        entry = client.post("/api/details/entry").json()
        assert entry["view"]["actions"] == []
        assert client.post("/api/details/exit").status_code == 409

    def test_decline_flow(self, client, controller):
        app_id = _submit(client)
        _login(client, "authority")
        client.post(f"/api/applications/{app_id}/open")
        client.post("/api/details/decline/start")
        r = client.post("/api/details/decline", json={"reason": "  "})
        assert r.status_code == 422
        r = client.post("/api/details/decline/reason", json={"value": "Insufficient notice"})
        assert r.json()["can_confirm_decline"] is True
        r = client.post("/api/details/decline")
        assert r.status_code == 200
        assert controller.store.get(app_id).decline_reason == "Insufficient notice"

        client.post(f"/api/applications/{app_id}/open")
        view = client.get("/api/view").json()
        assert view["notice"] == "Application Declined"
        assert view["application"]["declineReason"] == "Insufficient notice"
        assert client.post("/api/details/decline/start").status_code == 409

    def test_security_listing_hides_unapproved(self, client):
        app_id = _submit(client)
        _login(client, "security")
        assert client.get("/api/view").json()["applications"] == []
        assert client.post(f"/api/applications/{app_id}/open").status_code == 409

    def test_unknown_application(self, client):
        _login(client, "authority")
        assert client.post("/api/applications/GP-1/open").status_code == 404

    def test_destination_search(self, client):
        _login(client, "student")
        client.post("/api/apply/open")
        view = client.post("/api/apply/destination", json={"value": "City"}).json()
        assert [s["title"] for s in view["destination"]["suggestions"]][0] == "City Center"
        view = client.post("/api/apply/destination/pick", json={"value": "City Mall"}).json()
        assert view["destination"]["query"] == "City Mall"
        assert view["destination"]["suggestions"] == []

    def test_student_cannot_approve(self, client, controller):
        app_id = _submit(client)
        client.post(f"/api/applications/{app_id}/open")
        r = client.post("/api/details/approve")
        assert r.status_code == 409
        assert "student" in r.json()["detail"]
        assert controller.store.get(app_id).gate_pass_number is None
