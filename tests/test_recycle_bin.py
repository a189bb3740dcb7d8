from conftest import XHR, days_ago
from models import Fabric
from routes.recycle_routes import deleted_fabrics


def test_list_deleted_only_shows_bin(admin_client, make_fabric):
    make_fabric("ACTIVA")
    make_fabric("BORRADA", deleted_at=days_ago(1))

    html = admin_client.get("/recycle-bin/").get_data(as_text=True)
    assert "BORRADA" in html
    assert "ACTIVA" not in html


def test_deleted_fabrics_order_and_search(app, db, make_fabric):
    make_fabric("PRIMERA", deleted_at=days_ago(5))
    make_fabric("SEGUNDA", deleted_at=days_ago(1))

    assert [f.article for f in deleted_fabrics()] == ["SEGUNDA", "PRIMERA"]
    assert [f.article for f in deleted_fabrics("prim")] == ["PRIMERA"]


def test_restore_fabric(admin_client, make_fabric):
    fabric = make_fabric(deleted_at=days_ago(1))
    resp = admin_client.post(f"/recycle-bin/{fabric.id}/restore")
    assert resp.status_code == 302
    assert fabric.deleted_at is None


def test_restore_active_fabric_404(admin_client, make_fabric):
    fabric = make_fabric()
    assert admin_client.post(f"/recycle-bin/{fabric.id}/restore").status_code == 404


def test_purge_fabric_deletes_image(admin_client, db, upload_dir, make_fabric):
    image = upload_dir / "fabrics" / "x.png"
    image.parent.mkdir()
    image.write_bytes(b"png")
    fabric = make_fabric(image_path="fabrics/x.png", deleted_at=days_ago(1))
    fabric_id = fabric.id

    resp = admin_client.post(f"/recycle-bin/{fabric_id}/purge", headers=XHR)
    assert resp.get_json() == {"success": True}
    assert db.session.get(Fabric, fabric_id) is None
    assert not image.exists()


def test_purge_fabric_used_by_order_refused(
    admin_client, db, make_client, make_fabric, make_order
):
    client = make_client()
    fabric = make_fabric(client=client)
    make_order(client, [(fabric, 4)])
    fabric.deleted_at = days_ago(1)
    db.session.commit()

    resp = admin_client.post(f"/recycle-bin/{fabric.id}/purge", headers=XHR)
    assert resp.status_code == 422
    assert "no puede eliminarse" in resp.get_json()["detail"]
    assert db.session.get(Fabric, fabric.id) is not None


def test_purge_refusal_redirects_browser(
    admin_client, db, make_client, make_fabric, make_order
):
    client = make_client()
    fabric = make_fabric(client=client)
    make_order(client, [(fabric, 4)])
    fabric.deleted_at = days_ago(1)
    db.session.commit()

    resp = admin_client.post(
        f"/recycle-bin/{fabric.id}/purge",
        headers={"Referer": "http://localhost/recycle-bin/"},
    )
    assert resp.status_code == 302
    assert resp.headers["Location"] == "http://localhost/recycle-bin/"
