from fastapi.testclient import TestClient
from load_analyzer.main import app

client = TestClient(app)

def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}

def test_index_lists_endpoints():
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["endpoints"]["analysis"] == "/analyze"

def test_analyze_csv_latin1_upload():
    # Latin-1 accents force the decoder off plain UTF-8
    raw = (
        "Load ID;Pickup location;Delivery location;Driver;PU Appt\n"
        "L-1;Montréal;Trois-Rivières;Hélène Côté;2025-09-08 14:30\n"
        "L-2;Lévis;Sherbrooke;André Bélanger;2025-09-09T08:00:00Z\n"
    ).encode("latin-1")

    files = {"file": ("loads.csv", raw, "text/csv")}
    r = client.post("/analyze/csv", files=files, data={"timezone": "America/Toronto"})
    assert r.status_code == 200

    data = r.json()
    assert data["ok"] is True
    assert data["mapping"]["fromAddress"] == "Pickup location"
    first = data["loads"][0]
    assert first["fromAddress"] == "Montréal"
    # Toronto is UTC-4 in September
    assert first["fromAppointmentDateTimeUTC"] == "2025-09-08T18:30:00Z"
    assert data["loads"][1]["fromAppointmentDateTimeUTC"] == "2025-09-09T08:00:00Z"

def test_analyze_csv_rejects_other_files():
    files = {"file": ("loads.xlsx", b"PK\x03\x04", "application/octet-stream")}
    r = client.post("/analyze/csv", files=files)
    assert r.status_code == 422

def test_analyze_csv_without_header_row():
    files = {"file": ("empty.csv", b"\n\n", "text/csv")}
    r = client.post("/analyze/csv", files=files)
    assert r.status_code == 400
