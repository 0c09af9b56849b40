"""Integration tests for the /api/coins calculator routes."""
from __future__ import annotations


class TestEntryFee:
    async def test_explicit_inputs(self, client):
        r = await client.get("/api/coins/entry-fee", params={"base_fee": 100, "multiplier": 1.5, "context_factor": 1})
        assert r.status_code == 200
        assert r.json()["entry_fee"] == 150

    async def test_from_belt_type(self, client, seed_belt_settings):
        r = await client.get("/api/coins/entry-fee", params={"belt_type": "CHAMPIONSHIP"})
        assert r.status_code == 200
        data = r.json()
        assert data["entry_fee"] == 338
        assert data["context_factor"] == 3

    async def test_negative_factor(self, client):
        r = await client.get("/api/coins/entry-fee", params={"base_fee": 100, "multiplier": 1.5, "context_factor": -1})
        assert r.status_code == 422


class TestPayoutSplit:
    async def test_split(self, client, seed_belt_settings):
        r = await client.get("/api/coins/payout-split", params={"total_pool": 150})
        assert r.status_code == 200
        assert r.json() == {"total_pool": 150, "winner": 90, "loser": 45, "platform": 15}

    async def test_missing_settings(self, client):
        r = await client.get("/api/coins/payout-split", params={"total_pool": 150})
        assert r.status_code == 500


class TestTournamentBeltCost:
    async def test_medium(self, client, seed_belt_settings):
        r = await client.get("/api/coins/tournament-belt-cost", params={"size": 16})
        assert r.status_code == 200
        assert r.json() == {"size": 16, "cost": 1000}

    async def test_too_small(self, client, seed_belt_settings):
        r = await client.get("/api/coins/tournament-belt-cost", params={"size": 1})
        assert r.status_code == 422
