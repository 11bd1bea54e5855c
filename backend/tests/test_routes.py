# Overview: Pytest coverage for the HTTP boundary (status codes and payload shapes).

from conftest import actor_headers


def _parcel_payload(origin, destination, **overrides):
    payload = {
        "sender_name": "Omar",
        "receiver_name": "Huda",
        "receiver_city": "Basra",
        "origin_branch_id": origin.id,
        "destination_branch_id": destination.id,
        "shipping_cost": "10000",
        "payment_type": "prepaid",
    }
    payload.update(overrides)
    return payload


class TestActorRequired:
    def test_missing_actor_header(self, client, db_session):
        response = client.get('/api/parcels')
        assert response.status_code == 401
        assert response.json['error'] == "Actor required"

    def test_non_numeric_actor(self, client, db_session):
        response = client.get('/api/parcels', headers={'X-Actor-Id': 'admin'})
        assert response.status_code == 401


class TestParcelRoutes:
    def test_create_and_fetch_parcel(self, client, counters, origin, destination):
        response = client.post(
            '/api/parcels',
            json=_parcel_payload(origin, destination),
            headers=actor_headers(),
        )
        assert response.status_code == 201
        parcel = response.json['parcel']
        assert parcel['tracking_number'] == "GT100001"
        assert parcel['payment_type'] == "PREPAID"
        assert parcel['is_paid'] is True
        assert parcel['driver_commission'] == "7000.00"
        assert parcel['added_by_user_id'] == 1

        response = client.get('/api/parcels/GT100001', headers=actor_headers())
        assert response.status_code == 200
        assert response.json['parcel']['id'] == parcel['id']

    def test_unknown_field_rejected(self, client, counters, origin, destination):
        response = client.post(
            '/api/parcels',
            json=_parcel_payload(origin, destination, tracking_number="HACKED1"),
            headers=actor_headers(),
        )
        assert response.status_code == 400

    def test_tax_above_cost_rejected(self, client, counters, origin, destination):
        response = client.post(
            '/api/parcels',
            json=_parcel_payload(origin, destination, shipping_cost="1000", shipping_tax="5000"),
            headers=actor_headers(),
        )
        assert response.status_code == 400
        assert response.json['code'] == "InvalidAmountError"

    def test_unprovisioned_tenant_is_configuration_error(self, client, counters, origin, destination):
        response = client.post(
            '/api/parcels',
            json=_parcel_payload(origin, destination),
            headers=actor_headers(tenant_key="unknown"),
        )
        assert response.status_code == 500
        assert response.json['code'] == "ConfigurationError"

    def test_transition_flow(self, client, counters, origin, destination, driver):
        created = client.post(
            '/api/parcels',
            json=_parcel_payload(origin, destination),
            headers=actor_headers(),
        ).json['parcel']

        response = client.post(
            f"/api/parcels/{created['id']}/transition",
            json={"status": "in_transit", "driver_id": "DRV-1"},
            headers=actor_headers(),
        )
        assert response.status_code == 200
        assert response.json['parcel']['status'] == "IN_TRANSIT"

        response = client.post(
            f"/api/parcels/{created['id']}/transition",
            json={"status": "IN_TRANSIT"},
            headers=actor_headers(),
        )
        assert response.status_code == 409
        assert response.json['code'] == "DuplicateTransitionError"

        response = client.get(f"/api/parcels/{created['id']}/logs", headers=actor_headers())
        assert [log['status'] for log in response.json['items']] == ["PROCESSING", "IN_TRANSIT"]

    def test_transition_requires_status(self, client, counters, origin, destination):
        response = client.post('/api/parcels/1/transition', json={}, headers=actor_headers())
        assert response.status_code == 400

    def test_status_counts(self, client, counters, origin, destination):
        client.post('/api/parcels', json=_parcel_payload(origin, destination), headers=actor_headers())
        response = client.get('/api/parcels/status-counts', headers=actor_headers())
        assert response.status_code == 200
        assert response.json['counts']['PROCESSING'] == 1
        assert response.json['counts']['DELIVERED'] == 0


class TestLedgerRoutes:
    def test_expense_and_balance(self, client, db_session, origin):
        response = client.post(
            '/api/expenses',
            json={"branch_id": origin.id, "amount": "2500", "description": "Printer paper", "date_spent": "2026-05-01"},
            headers=actor_headers(),
        )
        assert response.status_code == 201
        assert len(response.json['entries']['cash_transaction_ids']) == 1

        response = client.get(f'/api/cashbox/balance?branch_id={origin.id}', headers=actor_headers())
        assert response.status_code == 200
        assert response.json['expense'] == "2500.00"

    def test_zero_expense_rejected(self, client, db_session, origin):
        response = client.post(
            '/api/expenses',
            json={"branch_id": origin.id, "amount": "0", "description": "Nothing"},
            headers=actor_headers(),
        )
        assert response.status_code == 400

    def test_double_reversal_is_conflict(self, client, db_session, origin):
        created = client.post(
            '/api/expenses',
            json={"branch_id": origin.id, "amount": "1000", "description": "Tea"},
            headers=actor_headers(),
        ).json
        tx_id = created['entries']['cash_transaction_ids'][0]

        first = client.post(f'/api/cashbox/{tx_id}/reverse', headers=actor_headers())
        assert first.status_code == 201
        second = client.post(f'/api/cashbox/{tx_id}/reverse', headers=actor_headers())
        assert second.status_code == 409

    def test_bad_date_filter(self, client, db_session):
        response = client.get('/api/cashbox?start_date=yesterday', headers=actor_headers())
        assert response.status_code == 400


class TestSystemRoutes:
    def test_health_healthy_when_provisioned(self, client, counters):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json['status'] == "healthy"
        assert response.json['checks']['sequences']['details']['sequences'] == ["MANIFEST", "TRACKING"]

    def test_health_degraded_without_sequences(self, client, db_session):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json['status'] == "degraded"

    def test_sequence_routes(self, client, counters):
        response = client.get('/api/sequences/default/tracking', headers=actor_headers())
        assert response.status_code == 200
        assert response.json['sequence']['next_value'] == 100001

        response = client.put(
            '/api/sequences/default/tracking',
            json={"next_value": 100},
            headers=actor_headers(),
        )
        assert response.status_code == 400
