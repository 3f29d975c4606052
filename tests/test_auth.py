from fieldhub.models.models import User


def _register(client, **overrides):
    payload = {
        "email": "nova@eletromidia.com.br",
        "password": "secret123",
        "name": "Nova Tecnica",
        "role": "TECNICO",
        "portal": "internal",
    }
    payload.update(overrides)
    return client.post("/auth/register", json=payload)


def test_register_and_login_internal(client):
    resp = _register(client)
    assert resp.status_code == 200
    assert resp.json()["token_type"] == "bearer"

    resp = client.post("/auth/login", json={"email": "NOVA@eletromidia.com.br", "password": "secret123"})
    assert resp.status_code == 200
    token = resp.json()["access_token"]
    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["company_id"] == "internal"
    assert me["role"] == "TECNICO"
    assert me["avatar_url"].startswith("https://ui-avatars.com/api/?name=Nova")


def test_register_rejects_portal_role_mismatch(client):
    assert _register(client, role="PARCEIRO_TECNICO").status_code == 400
    assert _register(client, portal="partner", company_id="gf1").status_code == 400
    assert _register(client, role="PARCEIRO_LIDER", portal="partner").status_code == 400


def test_register_partner_needs_known_company(client):
    resp = _register(client, role="PARCEIRO_LIDER", portal="partner", company_id="nope")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Unknown company"
    resp = _register(client, role="PARCEIRO_LIDER", portal="partner", company_id="gf1")
    assert resp.status_code == 200


def test_register_duplicate_email(client, make_user):
    make_user(email="nova@eletromidia.com.br")
    resp = _register(client)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Email already registered"


def test_register_activates_pending_profile(client, db, make_user):
    pending = make_user(email="nova@eletromidia.com.br", name="Nova Importada", password=None, status="PENDING")
    pending.shift = "NOITE"
    db.commit()

    resp = _register(client, name="Outro Nome")
    assert resp.status_code == 200
    db.expire_all()
    user = db.query(User).filter(User.email == "nova@eletromidia.com.br").one()
    assert user.id == pending.id
    assert user.status == "ACTIVE"
    assert user.name == "Nova Importada"
    assert user.shift == "NOITE"


def test_login_failures(client, make_user):
    make_user(email="tec@eletromidia.com.br", password="secret123")
    make_user(email="parceiro@gf1.com.br", company_id="gf1", role="PARCEIRO_TECNICO", password="secret123")
    make_user(email="pendente@eletromidia.com.br", password="secret123", status="PENDING")

    bad = client.post("/auth/login", json={"email": "tec@eletromidia.com.br", "password": "wrong"})
    assert bad.status_code == 401
    wrong_portal = client.post(
        "/auth/login", json={"email": "parceiro@gf1.com.br", "password": "secret123", "portal": "internal"}
    )
    assert wrong_portal.status_code == 403
    assert "partner portal" in wrong_portal.json()["detail"]
    pending = client.post("/auth/login", json={"email": "pendente@eletromidia.com.br", "password": "secret123"})
    assert pending.status_code == 403
    ok = client.post(
        "/auth/login", json={"email": "parceiro@gf1.com.br", "password": "secret123", "portal": "partner"}
    )
    assert ok.status_code == 200


def test_refresh_token(client):
    tokens = _register(client).json()
    resp = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 200
    # Access tokens are not accepted as refresh tokens
    resp = client.post("/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert resp.status_code == 401
    # ...nor refresh tokens as bearer tokens
    resp = client.get("/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
    assert resp.status_code == 401


def test_me_requires_token(client):
    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_update_profile_and_avatar(client, technician, headers_for, storage):
    headers = headers_for(technician)
    resp = client.patch("/auth/me", json={"name": "Tiago Silva"}, headers=headers)
    assert resp.json()["name"] == "Tiago Silva"

    resp = client.post(
        "/auth/me/avatar",
        files={"file": ("me.png", b"\x89PNG fake", "image/png")},
        headers=headers,
    )
    assert resp.status_code == 200
    url = resp.json()["avatar_url"]
    assert f"/files/local/avatars/{technician.id}/" in url
    key = url.split("/files/local/", 1)[1]
    assert storage.exists(key)
