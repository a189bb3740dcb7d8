from datetime import date
from io import BytesIO

from openpyxl import load_workbook

from conftest import XHR, days_ago
from models import Client, Fabric
from routes.fabric_routes import query_fabrics

PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 32


def _form(**overrides):
    data = {
        "article": "GAB-100",
        "color": "Azul marino",
        "description": "Gabardina elastizada",
        "meters": "12,5",
        "shipping_date": "2024-03-15",
        "category": "fabric",
        "pattern": "plain",
        "client_id": "",
        "new_client_name": "",
    }
    data.update(overrides)
    return data


def test_create_fabric(admin_client, db, make_client):
    client = make_client()
    resp = admin_client.post("/fabrics/new", data=_form(client_id=str(client.id)))
    assert resp.status_code == 302

    fabric = Fabric.query.one()
    assert fabric.meters == 12.5
    assert fabric.shipping_date == date(2024, 3, 15)
    assert fabric.client_id == client.id
    assert fabric.deleted_at is None
    assert fabric.image_path is None


def test_create_fabric_with_new_client(admin_client, db):
    resp = admin_client.post(
        "/fabrics/new", data=_form(new_client_name="Textil Norte"), headers=XHR
    )
    assert resp.status_code == 201
    client = Client.query.filter_by(name="Textil Norte").one()
    assert resp.get_json()["fabric"]["client_id"] == client.id


def test_create_fabric_defaults(admin_client, db):
    admin_client.post(
        "/fabrics/new",
        data={"article": "FOR-1", "category": "lining", "pattern": "fancy"},
    )
    fabric = Fabric.query.one()
    assert fabric.meters == 0
    assert fabric.shipping_date == date.today()
    assert fabric.category == "lining"
    assert fabric.pattern == "fancy"
    assert fabric.client_id is None


def test_create_fabric_validation(admin_client, db):
    resp = admin_client.post("/fabrics/new", data=_form(article=""), headers=XHR)
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "article"

    resp = admin_client.post("/fabrics/new", data=_form(meters="-1"), headers=XHR)
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "meters"

    for meters in ("nan", "inf"):
        resp = admin_client.post(
            "/fabrics/new", data=_form(meters=meters), headers=XHR
        )
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "meters"

    resp = admin_client.post("/fabrics/new", data=_form(category="seda"), headers=XHR)
    assert resp.status_code == 400

    resp = admin_client.post("/fabrics/new", data=_form(client_id="999"), headers=XHR)
    assert resp.get_json() == {"error": "Cliente no encontrado", "field": "client_id"}
    assert Fabric.query.count() == 0


def test_create_fabric_with_image(admin_client, db, upload_dir):
    data = _form()
    data["image"] = (BytesIO(PNG), "muestra.png")
    resp = admin_client.post(
        "/fabrics/new", data=data, content_type="multipart/form-data"
    )
    assert resp.status_code == 302

    fabric = Fabric.query.one()
    assert fabric.image_path.startswith("fabrics/")
    assert fabric.image_path.endswith(".png")
    assert (upload_dir / fabric.image_path).read_bytes() == PNG

    served = admin_client.get(f"/fabrics/uploads/{fabric.image_path}")
    assert served.status_code == 200
    assert served.data == PNG

    redirect = admin_client.get(f"/fabrics/{fabric.id}/image")
    assert redirect.status_code == 302
    assert redirect.headers["Location"].endswith(f"/fabrics/uploads/{fabric.image_path}")


def test_rejected_image_keeps_fabric(admin_client, db, upload_dir):
    data = _form()
    data["image"] = (BytesIO(b"MZ"), "virus.exe")
    resp = admin_client.post(
        "/fabrics/new", data=data, content_type="multipart/form-data"
    )
    assert resp.status_code == 302
    fabric = Fabric.query.one()
    assert fabric.image_path is None
    assert not any((upload_dir).rglob("*.exe"))


def test_edit_fabric_replaces_image(admin_client, db, upload_dir, make_fabric):
    old = upload_dir / "fabrics" / "old.png"
    old.parent.mkdir()
    old.write_bytes(PNG)
    fabric = make_fabric(image_path="fabrics/old.png")

    data = _form(article="GAB-200")
    data["image"] = (BytesIO(PNG), "nueva.png")
    resp = admin_client.post(
        f"/fabrics/{fabric.id}/edit", data=data, content_type="multipart/form-data"
    )
    assert resp.status_code == 302
    assert fabric.article == "GAB-200"
    assert fabric.image_path != "fabrics/old.png"
    assert not old.exists()
    assert (upload_dir / fabric.image_path).exists()


def test_edit_fabric_without_image_keeps_current(admin_client, make_fabric):
    fabric = make_fabric(image_path="fabrics/keep.png")
    admin_client.post(f"/fabrics/{fabric.id}/edit", data=_form(color="Rojo"))
    assert fabric.color == "Rojo"
    assert fabric.image_path == "fabrics/keep.png"


def test_delete_fabric_is_soft(admin_client, db, make_fabric):
    fabric = make_fabric()
    resp = admin_client.post(f"/fabrics/{fabric.id}/delete", headers=XHR)
    assert resp.get_json() == {"success": True}
    assert fabric.deleted_at is not None

    html = admin_client.get("/fabrics/").get_data(as_text=True)
    assert "ART-1" not in html
    assert admin_client.get(f"/fabrics/{fabric.id}/edit").status_code == 404


def test_list_fabrics_filters(admin_client, make_client, make_fabric):
    client = make_client("Modas Ana")
    make_fabric("GAB-1", description="Gabardina", client=client)
    make_fabric("SAT-1", description="Satén", category="lining")

    html = admin_client.get("/fabrics/?search=modas").get_data(as_text=True)
    assert "GAB-1" in html
    assert "SAT-1" not in html

    html = admin_client.get("/fabrics/?category=lining").get_data(as_text=True)
    assert "SAT-1" in html
    assert "GAB-1" not in html


def test_query_fabrics_sorting(app, db, make_fabric):
    make_fabric("OLD", shipping_date=date(2023, 1, 1))
    make_fabric("NEW", shipping_date=date(2024, 6, 1))
    make_fabric("MID", shipping_date=date(2024, 1, 1))
    make_fabric("BIN", shipping_date=date(2025, 1, 1), deleted_at=days_ago(1))

    assert [f.article for f in query_fabrics()] == ["NEW", "MID", "OLD"]
    assert [f.article for f in query_fabrics(sort="oldest")] == ["OLD", "MID", "NEW"]
    assert [f.article for f in query_fabrics(search="m")] == ["MID"]


def test_search_escapes_wildcards(app, db, make_fabric):
    make_fabric("A_1")
    make_fabric("AB1")
    assert [f.article for f in query_fabrics(search="a_")] == ["A_1"]


def test_export_fabrics(admin_client, make_client, make_fabric):
    client = make_client("Modas Ana")
    make_fabric("GAB-1", meters=10, client=client)
    make_fabric("SAT-1", meters=2.5, category="lining")

    resp = admin_client.get("/fabrics/export?sort=oldest")
    assert resp.status_code == 200
    assert resp.mimetype.endswith("spreadsheetml.sheet")
    assert "telas_" in resp.headers["Content-Disposition"]

    ws = load_workbook(BytesIO(resp.data))["Telas"]
    rows = list(ws.iter_rows(values_only=True))
    assert rows[0][0] == "Artículo"
    assert rows[1][0] == "GAB-1"
    assert rows[1][7] == "Modas Ana"
    assert rows[2][5] == "Forrería"
    assert rows[3][2] == "Total metros"
    assert rows[3][3] == "=SUM(D2:D3)"
