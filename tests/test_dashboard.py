from datetime import date

from conftest import days_ago
from routes.main_routes import dashboard_stats


def test_index_redirects_to_dashboard(admin_client):
    resp = admin_client.get("/")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/dashboard")


def test_dashboard_renders(admin_client, make_client, make_fabric):
    make_fabric("GAB-01", client=make_client())
    resp = admin_client.get("/dashboard")
    assert resp.status_code == 200
    html = resp.get_data(as_text=True)
    assert "GAB-01" in html
    assert resp.headers["Cache-Control"] == "no-cache"


def test_dashboard_stats(app, db, make_client, make_fabric, make_order):
    client = make_client()
    fabrics = [
        make_fabric(f"A{i}", client=client, shipping_date=date(2024, 1, i + 1))
        for i in range(6)
    ]
    make_fabric("GONE", deleted_at=days_ago(1))
    make_order(client, [(fabrics[0], 3)], lot_number="L1")
    make_order(client, [(fabrics[1], 3)], lot_number="L2", status="completed")

    stats = dashboard_stats()

    assert stats["client_count"] == 1
    assert stats["fabric_count"] == 6
    assert [f.article for f in stats["recent_fabrics"]] == ["A5", "A4", "A3", "A2", "A1"]
    assert stats["order_counts"] == {"pending": 1, "in_process": 0, "completed": 1}
