"""HTTP tests for the coinflip routes (TestClient against a temp SQLite DB)."""
from __future__ import annotations

from tests.conftest import ALICE, BOB

TX = "0x" + "2" * 64


def bet(client, address, prediction, amount, name=None):
    return client.post("/api/coinflip/bet", json={
        "agent_address": address,
        "agent_name": name,
        "prediction": prediction,
        "amount": amount,
    })


class TestRoundRoutes:
    def test_current_round(self, client):
        response = client.get("/api/coinflip/round")

        assert response.status_code == 200
        data = response.json()
        assert data["round"]["status"] == "open"
        assert data["round"]["betting_open"] is True
        assert data["round"]["totals"] == {"heads": "0", "tails": "0", "pool": "0"}
        assert data["rules"]["min_bet"] == "10 EMPTOURS"
        assert data["rules"]["betting_window"] == "55 minutes"
        assert data["recent_rounds"] == []

    def test_unknown_round(self, client):
        response = client.get("/api/coinflip/rounds/round_19700101_00")
        assert response.status_code == 404

    def test_history_limit_validated(self, client):
        assert client.get("/api/coinflip/history?limit=0").status_code == 422
        assert client.get("/api/coinflip/history?limit=5").json() == []


class TestBetRoutes:
    def test_place_bet(self, client):
        response = bet(client, ALICE, "heads", "100", "alice")

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Bet placed! 100 EMPTOURS on HEADS"
        assert data["bet"]["participant_address"] == ALICE
        assert data["round"]["totals"]["heads"] == "100"

    def test_duplicate_bet(self, client):
        bet(client, ALICE, "heads", "100")
        response = bet(client, ALICE, "tails", "10")

        assert response.status_code == 400
        assert response.json()["detail"] == "Agent already placed a bet this round"

    def test_invalid_address(self, client):
        response = bet(client, "0x123", "heads", "100")
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid address format"

    def test_below_minimum(self, client):
        response = bet(client, ALICE, "heads", "5")
        assert response.status_code == 400
        assert response.json()["detail"] == "Minimum bet is 10 EMPTOURS"

    def test_invalid_prediction(self, client):
        assert bet(client, ALICE, "edge", "10").status_code == 400


class TestSettlementFlow:
    def test_execute_resolve_and_stats(self, client):
        bet(client, ALICE, "heads", "100", "alice")
        bet(client, BOB, "tails", "50", "bob")

        execute = client.post("/api/coinflip/execute")
        assert execute.status_code == 200
        assert execute.json()["status"] == "executing"
        assert execute.json()["new_round_started"] is False
        round_id = execute.json()["round_id"]

        resolve = client.post("/api/coinflip/resolve", json={"outcome": "heads", "tx_hash": TX})
        assert resolve.status_code == 200
        data = resolve.json()
        assert data["result"]["round_id"] == round_id
        assert data["result"]["winners"][0]["total_payout"] == "150"
        assert data["result"]["losers"] == [BOB]
        assert data["consolation_prizes"][0]["participant_address"] == BOB
        assert data["new_round_id"] != round_id

        # keeper retry
        again = client.post("/api/coinflip/resolve", json={"outcome": "heads", "tx_hash": TX})
        assert again.status_code == 409

        stats = client.get(f"/api/coinflip/agents/{ALICE}/stats").json()
        assert stats["wins"] == 1
        assert stats["total_won"] == "150"

        history = client.get("/api/coinflip/history").json()
        assert [r["id"] for r in history] == [round_id]
        assert history[0]["result"] == "heads"

        resolved = client.get(f"/api/coinflip/rounds/{round_id}").json()
        assert resolved["status"] == "resolved"
        assert resolved["flip_tx_hash"] == TX

    def test_execute_without_bets(self, client):
        first = client.get("/api/coinflip/round").json()["round"]["id"]

        response = client.post("/api/coinflip/execute")

        assert response.status_code == 200
        assert response.json()["new_round_started"] is True
        assert response.json()["round_id"] != first

    def test_resolve_invalid_outcome(self, client):
        response = client.post("/api/coinflip/resolve", json={"outcome": "edge", "tx_hash": TX})
        assert response.status_code == 400

    def test_resolve_requires_tx_hash(self, client):
        response = client.post("/api/coinflip/resolve", json={"outcome": "heads", "tx_hash": ""})
        assert response.status_code == 422

    def test_close_is_idempotent(self, client):
        client.get("/api/coinflip/round")

        assert client.post("/api/coinflip/close").json()["status"] == "ok"
        assert client.post("/api/coinflip/close").json() == {"status": "noop", "round_id": None}

    def test_force_reset(self, client):
        bet(client, ALICE, "heads", "100")
        client.post("/api/coinflip/execute")

        response = client.post("/api/coinflip/force-reset")
        assert response.status_code == 200
        new_id = response.json()["round_id"]

        current = client.get("/api/coinflip/round").json()["round"]
        assert current["id"] == new_id
        assert current["status"] == "open"


class TestAdminKey:
    def test_missing_key_rejected(self, client, settings):
        settings.admin_api_key = "secret"

        assert client.post("/api/coinflip/close").status_code == 401
        assert client.post("/api/coinflip/close", headers={"x-admin-key": "wrong"}).status_code == 401
        assert client.post("/api/coinflip/close", headers={"x-admin-key": "secret"}).status_code == 200

    def test_public_routes_stay_open(self, client, settings):
        settings.admin_api_key = "secret"
        assert client.get("/api/coinflip/round").status_code == 200


class TestAgentRoutes:
    def test_statuses(self, client):
        data = client.get("/api/coinflip/agents/predict").json()

        assert len(data["agents"]) == 8
        assert all(a["has_bet"] is False for a in data["agents"])

    def test_trigger_predictions(self, client):
        response = client.post("/api/coinflip/agents/predict", json={
            "agents": [{"agent_id": "ghost", "address": ALICE, "balance": "1000"}],
        })

        assert response.status_code == 200
        assert response.json()["errors"] == ["ghost: unknown agent"]

    def test_stats_for_unknown_agent(self, client):
        data = client.get(f"/api/coinflip/agents/{BOB}/stats").json()
        assert data["total_bets"] == 0
        assert data["total_won"] == "0"

    def test_stats_invalid_address(self, client):
        assert client.get("/api/coinflip/agents/nope/stats").status_code == 400


class TestRateLimits:
    def test_bet_limited_per_client(self, client):
        addresses = [f"0x{i:040x}" for i in range(1, 7)]

        responses = [bet(client, address, "heads", "10") for address in addresses]

        assert [r.status_code for r in responses] == [200] * 5 + [429]
        assert responses[-1].json()["detail"].startswith("Rate limited. Try again in ")
        assert responses[-1].json()["detail"].endswith("s")

    def test_rejected_bets_count_too(self, client):
        for _ in range(5):
            bet(client, "0x123", "heads", "10")
        assert bet(client, ALICE, "heads", "10").status_code == 429

    def test_forwarded_for_is_the_client(self, client):
        for _ in range(5):
            bet(client, "0x123", "heads", "10")

        response = client.post(
            "/api/coinflip/bet",
            json={"agent_address": ALICE, "prediction": "heads", "amount": "10"},
            headers={"x-forwarded-for": "203.0.113.7, 10.0.0.1"},
        )
        assert response.status_code == 200

    def test_status_limit(self, client, settings):
        settings.status_rate_limit_requests = 3

        codes = [client.get("/api/coinflip/round").status_code for _ in range(4)]
        assert codes == [200, 200, 200, 429]
        # other routes are not limited
        assert client.get("/api/coinflip/history").status_code == 200

    def test_disabled(self, client, settings):
        settings.rate_limit_enabled = False

        codes = [bet(client, "0x123", "heads", "10").status_code for _ in range(8)]
        assert codes == [400] * 8
