"""
API tests through FastAPI's TestClient with the DB, settings and transport overridden.
"""
from unittest import mock

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from edi_outbound.core.config import get_settings
from edi_outbound.core.database import get_session
from edi_outbound.core.errors import ConfigurationError
from edi_outbound.main import app
from edi_outbound.routers.shipments import get_client_factory
from edi_outbound.services.transfer import LocalDirectoryClient

CSV = (
    "Order ID,Order Date,Customer Name,Line,Supplier SKU,EAN,Qty\n"
    "GX-1001,2026-10-01,Galaxus,1,SKU-A,7612345000011,14\n"
    "GX-1002,2026-10-01,Galaxus,1,SKU-B,,1\n"
)


@pytest.fixture
def client(engine, settings):
    def _session():
        with Session(engine) as ses:
            yield ses

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_client_factory] = lambda: LocalDirectoryClient
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def uploaded(client):
    res = client.post("/v1/upload/orders", files={"file": ("orders.csv", CSV.encode(), "text/csv")})
    assert res.status_code == 200, res.text
    return res.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_upload_orders(uploaded):
    assert uploaded["orders"] == {"GX-1001": "created", "GX-1002": "created"}
    assert uploaded["error_rows"] == 0


def test_upload_rejects_unsupported_file(client):
    res = client.post("/v1/upload/orders", files={"file": ("orders.pdf", b"%PDF", "application/pdf")})
    assert res.status_code == 400


def test_pipeline_then_listing(client, uploaded, outbox):
    res = client.post("/v1/orders/GX-1001/pipeline", json={})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["status"] == "done"
    assert [r["status"] for r in body["results"]] == ["uploaded", "uploaded"]
    assert len(list(outbox.iterdir())) == 2

    listing = client.get("/v1/orders/GX-1001/shipments").json()
    assert listing["order_ref"] == "GX-1001"
    assert [s["total_quantity"] for s in listing["shipments"]] == [12, 2]
    assert listing["shipments"][0]["items"][0]["gtin"] == "7612345000011"
    assert "label_zpl" not in listing["shipments"][0]

    docs = client.get("/v1/documents", params={"status": "UPLOADED"}).json()
    assert docs["total"] == 2
    assert client.get("/v1/documents", params={"status": "ERROR"}).json()["total"] == 0


def test_dispatch_skip_and_force(client, uploaded):
    results = client.post("/v1/orders/GX-1001/pipeline").json()["results"]
    shipment_id = results[0]["shipment_id"]

    skipped = client.post(f"/v1/shipments/{shipment_id}/dispatch").json()
    assert skipped["status"] == "skipped"
    forced = client.post(f"/v1/shipments/{shipment_id}/dispatch", params={"force": "true"}).json()
    assert forced["status"] == "uploaded"
    assert forced["filename"] == results[0]["filename"]


def test_label(client, uploaded):
    shipments = client.post("/v1/orders/GX-1001/shipments", json={"capacity": 20}).json()["shipments"]
    assert len(shipments) == 1
    label = client.get(f"/v1/shipments/{shipments[0]['id']}/label").json()
    assert label["container_id"] == shipments[0]["container_id"]
    assert label["zpl"].startswith("^XA")
    assert client.get("/v1/shipments/999/label").status_code == 404


def test_missing_gtin_is_422(client, uploaded, outbox):
    res = client.post("/v1/orders/GX-1002/pipeline")
    assert res.status_code == 422
    assert res.json()["detail"]["line_number"] == 1
    assert list(outbox.iterdir()) == []


def test_unknown_order_is_404(client):
    assert client.post("/v1/orders/NOPE/pipeline").status_code == 404
    assert client.get("/v1/orders/NOPE/shipments").status_code == 404


def test_background_pipeline_is_queued(client, uploaded):
    with mock.patch("edi_outbound.services.dispatch_tasks.run_order_pipeline") as task:
        task.delay.return_value = mock.Mock(id="task-123")
        res = client.post("/v1/orders/GX-1001/pipeline", json={"background": True, "force": True})
    assert res.json() == {"status": "queued", "task_id": "task-123"}
    assert task.delay.call_args.args == ("GX-1001",)
    assert task.delay.call_args.kwargs["force"] is True


def test_lifespan_checks_settings_and_registers_tasks(settings):
    with mock.patch("edi_outbound.main.get_settings", return_value=settings) as get, \
            mock.patch("edi_outbound.main.init_celery") as init:
        with TestClient(app) as c:
            assert c.get("/health").status_code == 200
    get.assert_called_once_with()
    init.assert_called_once_with()


def test_lifespan_fails_on_bad_configuration():
    with mock.patch("edi_outbound.main.get_settings", side_effect=ConfigurationError("bad GS1 prefix")), \
            mock.patch("edi_outbound.main.init_celery") as init:
        with pytest.raises(ConfigurationError):
            with TestClient(app):
                pass
    init.assert_not_called()
