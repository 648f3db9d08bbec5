"""Tests for PIN hashing, the PIN migration and the client PIN gate."""

from __future__ import annotations

import bcrypt

from pins import PIN_HASH_ROUNDS, check_pin, hash_pin, migrate_pins, pin_too_long

TENANT_A = "client-alpha"
TENANT_B = "client-bravo"


class TestHashPin:
    def test_hash_verifies_and_uses_cost_10(self):
        hashed = hash_pin("1234")
        assert bcrypt.checkpw(b"1234", hashed.encode())
        assert hashed.split("$")[2] == f"{PIN_HASH_ROUNDS:02d}"

    def test_numeric_pin_is_hashed_as_text(self):
        assert bcrypt.checkpw(b"4321", hash_pin(4321).encode())

    def test_long_pin_is_hashed_on_its_first_72_bytes(self):
        hashed = hash_pin("7" * 80)
        assert check_pin("7" * 80, {"id": "c", "pin_hash": hashed}) is True
        assert check_pin("7" * 72, {"id": "c", "pin_hash": hashed}) is True
        assert check_pin("7" * 71, {"id": "c", "pin_hash": hashed}) is False

    def test_length_limit_is_in_bytes(self):
        assert pin_too_long("1" * 72) is False
        assert pin_too_long("1" * 73) is True
        assert pin_too_long("\u00e9" * 37) is True


class TestCheckPin:
    def test_hash_is_authoritative_once_set(self):
        client = {"id": "c", "pin": "1111", "pin_hash": hash_pin("2222")}
        assert check_pin("2222", client) is True
        assert check_pin("1111", client) is False

    def test_plaintext_fallback_before_migration(self):
        assert check_pin("1111", {"id": "c", "pin": "1111", "pin_hash": None}) is True
        assert check_pin("1112", {"id": "c", "pin": "1111", "pin_hash": None}) is False

    def test_no_pin_at_all_never_matches(self):
        assert check_pin("", {"id": "c", "pin": None, "pin_hash": None}) is False

    def test_malformed_hash_is_a_mismatch(self):
        assert check_pin("1111", {"id": "c", "pin": "1111", "pin_hash": "not-a-hash"}) is False


# ---------------------------------------------------------------------------
# Migration
# ---------------------------------------------------------------------------


class TestMigratePins:
    def test_second_run_migrates_nothing(self, fake_db):
        assert migrate_pins(fake_db) == 2
        assert migrate_pins(fake_db) == 0

    def test_every_plaintext_pin_gets_a_verifiable_hash(self, fake_db):
        originals = {c["id"]: c["pin"] for c in fake_db.tables["clients"] if c["pin"]}
        migrate_pins(fake_db)
        for client_id, pin in originals.items():
            row = fake_db.row("clients", client_id)
            assert row["pin_hash"] is not None
            assert bcrypt.checkpw(pin.encode(), row["pin_hash"].encode())

    def test_rows_without_pin_are_left_alone(self, fake_db):
        migrate_pins(fake_db)
        assert fake_db.row("clients", "client-charlie")["pin_hash"] is None

    def test_overlong_pin_does_not_block_later_rows(self, fake_db):
        fake_db.tables["clients"].insert(
            0, {"id": "client-long", "slug": "long", "pin": "8" * 80, "pin_hash": None}
        )
        assert migrate_pins(fake_db) == 3
        assert fake_db.row("clients", TENANT_A)["pin_hash"] is not None
        assert check_pin("8" * 80, fake_db.row("clients", "client-long")) is True
        assert migrate_pins(fake_db) == 0

    def test_already_hashed_rows_are_not_rehashed(self, fake_db):
        existing = hash_pin("1234")
        fake_db.row("clients", TENANT_A)["pin_hash"] = existing
        assert migrate_pins(fake_db) == 1
        assert fake_db.row("clients", TENANT_A)["pin_hash"] == existing

    def test_endpoint_reports_count(self, client, admin_headers):
        first = client.post("/api/admin/clients/migrate-pins", headers=admin_headers)
        second = client.post("/api/admin/clients/migrate-pins", headers=admin_headers)
        assert first.json() == {"migrated": 2}
        assert second.json() == {"migrated": 0}

    def test_store_error_is_500_with_message(self, client, fake_db, admin_headers):
        fake_db.fail_tables.add("clients")
        resp = client.post("/api/admin/clients/migrate-pins", headers=admin_headers)
        assert resp.status_code == 500
        assert "clients" in resp.json()["detail"]


# ---------------------------------------------------------------------------
# PIN gate and admin client update
# ---------------------------------------------------------------------------


class TestVerifyPin:
    def test_plaintext_pin_before_migration(self, client):
        resp = client.post("/api/verify-pin", json={"slug": "alpha", "pin": "1234"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

    def test_hashed_pin_after_migration(self, client, admin_headers):
        client.post("/api/admin/clients/migrate-pins", headers=admin_headers)
        assert client.post("/api/verify-pin", json={"slug": "bravo", "pin": "9876"}).status_code == 200
        assert client.post("/api/verify-pin", json={"slug": "bravo", "pin": "0000"}).status_code == 401

    def test_unknown_slug_is_404(self, client):
        resp = client.post("/api/verify-pin", json={"slug": "nobody", "pin": "1234"})
        assert resp.status_code == 404

    def test_missing_fields_are_400(self, client):
        assert client.post("/api/verify-pin", json={"slug": "alpha"}).status_code == 400
        assert client.post("/api/verify-pin", json={"slug": "", "pin": "1"}).status_code == 400


class TestUpdateClient:
    def test_pin_is_stored_only_as_hash(self, client, fake_db, admin_headers):
        resp = client.patch(f"/api/admin/clients/{TENANT_B}", json={"pin": "5555"}, headers=admin_headers)
        assert resp.status_code == 200
        row = fake_db.row("clients", TENANT_B)
        assert row["pin"] is None
        assert bcrypt.checkpw(b"5555", row["pin_hash"].encode())

    def test_pin_hash_in_body_is_ignored(self, client, fake_db, admin_headers):
        resp = client.patch(
            f"/api/admin/clients/{TENANT_B}",
            json={"pin_hash": "forged", "slug": "bravo-2"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert fake_db.row("clients", TENANT_B)["pin_hash"] is None
        assert fake_db.row("clients", TENANT_B)["slug"] == "bravo-2"

    def test_unknown_client_is_404(self, client, admin_headers):
        resp = client.patch("/api/admin/clients/missing", json={"slug": "x"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_overlong_pin_is_400_and_not_stored(self, client, fake_db, admin_headers):
        resp = client.patch(f"/api/admin/clients/{TENANT_B}", json={"pin": "1" * 80}, headers=admin_headers)
        assert resp.status_code == 400
        assert "72" in resp.json()["detail"]
        assert fake_db.row("clients", TENANT_B)["pin_hash"] is None
        assert fake_db.mutations == []

    def test_empty_update_is_400(self, client, admin_headers):
        resp = client.patch(f"/api/admin/clients/{TENANT_A}", json={"id": "other"}, headers=admin_headers)
        assert resp.status_code == 400
