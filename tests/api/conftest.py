"""Shared fixtures for API tests."""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def bound_client(client: TestClient, ids) -> TestClient:
    """Client whose product has Color (price, media) and Size (weight) bound."""
    response = client.put(
        f"/products/{ids.product}/attributes",
        json={
            "attributes": [
                {"attribute_id": ids.color, "controls_pricing": True, "controls_media": True},
                {"attribute_id": ids.size, "controls_weight": True},
            ]
        },
    )
    assert response.status_code == 200
    return client


@pytest.fixture
def variant_ids(bound_client: TestClient, ids) -> dict[tuple[int, int], int]:
    """Variant IDs of the bound product keyed by (color value, size value)."""
    response = bound_client.get(f"/products/{ids.product}/variants")
    return {
        (v["combination"][str(ids.color)], v["combination"][str(ids.size)]): v["id"]
        for v in response.json()
    }
