BASE = "/v1/caja/puntos"


def test_admin_creates_cash_point(client, admin_headers):
    response = client.post(f"{BASE}/", headers=admin_headers, json={"name": "Caja Farmacia"})
    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "Caja Farmacia"
    assert body["is_active"] is True


def test_cashier_cannot_create(client, cajero_headers):
    response = client.post(f"{BASE}/", headers=cajero_headers, json={"name": "Caja 9"})
    assert response.status_code == 403


def test_duplicate_name(client, admin_headers, cash_point):
    response = client.post(f"{BASE}/", headers=admin_headers, json={"name": "Recepción"})
    assert response.status_code == 409
    assert response.json()["code"] == "DUPLICATE_ENTRY"


def test_list_and_read(client, cajero_headers, cash_point):
    lista = client.get(f"{BASE}/", headers=cajero_headers)
    assert lista.status_code == 200
    assert [p["name"] for p in lista.json()] == ["Recepción"]

    uno = client.get(f"{BASE}/{cash_point.id}", headers=cajero_headers)
    assert uno.json()["id"] == cash_point.id

    faltante = client.get(f"{BASE}/999", headers=cajero_headers)
    assert faltante.status_code == 404
    assert faltante.json()["code"] == "CASH_POINT_NOT_FOUND"


def test_status_lists_open_sessions(client, cajero_headers, cash_point):
    client.post(
        "/v1/caja/sesiones/open",
        headers=cajero_headers,
        json={"cash_point_id": cash_point.id, "opening_cash_amount": 0},
    )

    response = client.get(f"{BASE}/estado", headers=cajero_headers)
    assert response.status_code == 200
    estado = response.json()
    assert estado[0]["name"] == "Recepción"
    assert estado[0]["active_sessions"][0]["operator_id"] == "cajero-1"
    assert estado[0]["active_sessions"][0]["state"] == "OPEN"


def test_cannot_deactivate_with_open_session(client, cajero_headers, admin_headers, cash_point):
    client.post(
        "/v1/caja/sesiones/open",
        headers=cajero_headers,
        json={"cash_point_id": cash_point.id, "opening_cash_amount": 0},
    )

    response = client.patch(f"{BASE}/{cash_point.id}", headers=admin_headers, json={"is_active": False})
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_rename_and_deactivate(client, admin_headers, cajero_headers, cash_point):
    response = client.patch(
        f"{BASE}/{cash_point.id}", headers=admin_headers, json={"name": "Recepción PB", "is_active": False}
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Recepción PB"
    assert response.json()["is_active"] is False

    abrir = client.post(
        "/v1/caja/sesiones/open",
        headers=cajero_headers,
        json={"cash_point_id": cash_point.id, "opening_cash_amount": 0},
    )
    assert abrir.status_code == 422
