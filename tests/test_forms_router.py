from tests.conftest import APP_ID

FORM_BODY = {
    "form_id": "koru-contact",
    "title": "Contact",
    "fields_config": [
        {"id": "Name", "type": "text", "label": "Name", "required": True},
        {"id": "Email", "type": "email", "label": "Email", "required": True, "width": "50%"},
    ],
    "layout_settings": {"display_type": "Floating", "position": "Bottom-Left"},
    "email_settings": {"admin_email": "admin@example.com", "subject_line": "Hi {{Name}}"},
}


def test_dashboard_routes_require_token(client):
    response = client.get("/api/forms")

    assert response.status_code == 401
    body = response.json()
    assert body["statusCode"] == 401
    assert body["path"] == "/api/forms"
    assert body["message"]
    assert body["timestamp"]


def test_invalid_token_is_rejected(client):
    response = client.get("/api/forms", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_create_then_list(client, auth_headers):
    headers = auth_headers(websites=("W1", "W2"))

    created = client.post("/api/forms", json=FORM_BODY, headers=headers)

    assert created.status_code == 200
    form = created.json()
    assert form["website_id"] == "W1"
    assert form["status"] == "active"
    assert form["created_by"] == "user-1"
    assert form["fields_config"][0]["width"] == "100%"
    assert form["layout_settings"]["bubble_icon"] == "Envelope"

    listed = client.get("/api/forms", headers=headers).json()
    assert [f["form_id"] for f in listed] == ["koru-contact"]
    assert client.get("/api/forms", headers=auth_headers(websites=("W9",))).json() == []


def test_create_validation_error_is_400(client, auth_headers):
    body = dict(FORM_BODY, email_settings={"admin_email": "not-an-email"})

    response = client.post("/api/forms", json=body, headers=auth_headers())

    assert response.status_code == 400
    assert response.json()["statusCode"] == 400
    assert isinstance(response.json()["message"], list)


def test_create_outside_grant_is_forbidden(client, auth_headers):
    response = client.post("/api/forms", json=dict(FORM_BODY, website_id="W9"), headers=auth_headers())

    assert response.status_code == 403


def test_duplicate_form_id_is_conflict(client, auth_headers, make_form):
    make_form("koru-contact")

    response = client.post("/api/forms", json=FORM_BODY, headers=auth_headers())

    assert response.status_code == 409


def test_get_update_delete_scoped(client, auth_headers, make_form):
    form = make_form(website_id="W1")

    assert client.get(f"/api/forms/{form.id}", headers=auth_headers(websites=("W2",))).status_code == 404

    patched = client.patch(f"/api/forms/{form.id}", json={"title": "Renamed"}, headers=auth_headers())
    assert patched.status_code == 200
    assert patched.json()["title"] == "Renamed"
    assert patched.json()["status"] == "active"

    deleted = client.delete(f"/api/forms/{form.id}", headers=auth_headers())
    assert deleted.json() == {"message": "Form deleted successfully"}
    assert client.get(f"/api/forms/{form.id}", headers=auth_headers()).status_code == 404


def test_admin_sees_every_form(client, auth_headers, make_form):
    make_form("a", website_id="W1")
    make_form("b", website_id="W2")

    response = client.get("/api/forms", headers=auth_headers(websites=(), role="admin"))

    assert len(response.json()) == 2


def test_public_config_flow(client, make_form):
    make_form("koru-x", website_id="W1")

    ok = client.get("/api/forms/config/koru-x", params={"websiteId": "W1"})
    assert ok.status_code == 200
    assert ok.json()["form_id"] == "koru-x"

    denied = client.get("/api/forms/config/koru-x", params={"websiteId": "W2"})
    assert denied.status_code == 403
    assert denied.json()["message"] == "This site is not authorized to use this form"

    assert client.get("/api/forms/config/koru-x").status_code == 400
    assert client.get("/api/forms/config/nope", params={"websiteId": "W1"}).status_code == 404


def test_activate_checks_app_installation(client, auth_headers, make_form, koru_client):
    form = make_form(website_id="W1", status="inactive")
    koru_client.websites["W1"] = {"id": "W1", "apps": [{"app_id": APP_ID}]}

    response = client.patch(f"/api/forms/{form.id}/activate", json={"websiteId": "W1"}, headers=auth_headers())

    assert response.status_code == 200
    assert response.json()["status"] == "active"
    assert koru_client.website_calls == [("W1", "koru-token")]

    koru_client.websites["W1"] = {"id": "W1", "apps": []}
    response = client.patch(f"/api/forms/{form.id}/activate", json={"websiteId": "W1"}, headers=auth_headers())
    assert response.status_code == 403
    assert response.json()["message"] == "This app is not installed on the selected website"


def test_embed_code_and_permissions(client, auth_headers, make_form):
    form = make_form("koru-x", website_id="W1")

    permissions = client.get(f"/api/forms/{form.id}/validate-permissions", headers=auth_headers()).json()
    assert permissions["valid"] is True

    embed = client.get(f"/api/forms/{form.id}/embed-code", headers=auth_headers())
    assert embed.status_code == 200
    assert 'data-form-id="koru-x"' in embed.json()["embed_code"]
    assert 'data-website-id="W1"' in embed.json()["embed_code"]

    denied = client.get(f"/api/forms/{form.id}/embed-code", headers=auth_headers(websites=("W2",)))
    assert denied.status_code == 403
