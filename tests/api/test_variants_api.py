"""Tests for variant API endpoints."""

from fastapi import status


class TestGetVariant:
    """Tests for GET and PATCH /variants/{id}."""

    def test_get(self, bound_client, variant_ids, ids):
        """A variant comes back with its full combination."""
        variant_id = variant_ids[(ids.red, ids.small)]

        response = bound_client.get(f"/variants/{variant_id}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "id": variant_id,
            "product_id": ids.product,
            "is_active": True,
            "combination": {str(ids.color): ids.red, str(ids.size): ids.small},
        }

    def test_disable(self, bound_client, variant_ids, ids):
        """PATCH toggles the active flag."""
        variant_id = variant_ids[(ids.blue, ids.medium)]

        response = bound_client.patch(f"/variants/{variant_id}", json={"is_active": False})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["is_active"] is False
        assert bound_client.get(f"/variants/{variant_id}").json()["is_active"] is False

    def test_unknown_variant(self, client):
        """A missing variant returns 404."""
        response = client.get("/variants/999")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["details"]["entity_type"] == "ProductVariant"


class TestResolution:
    """Tests for GET /variants/{id}/resolution."""

    def test_facets_resolve_independently(self, bound_client, variant_ids, ids):
        """Price follows Color and weight follows Size."""
        product_url = f"/products/{ids.product}"
        bound_client.post(
            f"{product_url}/price-groups",
            json={"combination": {str(ids.color): ids.blue}, "price": "24"},
        )
        bound_client.post(
            f"{product_url}/weight-groups",
            json={"combination": {str(ids.size): ids.medium}, "weight": "0.3"},
        )
        bound_client.put(
            f"{product_url}/media",
            json={"media": [{"media_id": ids.media[0], "combination": {str(ids.color): ids.blue}}]},
        )

        response = bound_client.get(f"/variants/{variant_ids[(ids.blue, ids.medium)]}/resolution")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["price"]["price"] == "24.00"
        assert data["weight"]["weight"] == "0.30"
        assert [m["id"] for m in data["media_group"]["media"]] == [ids.media[0]]
        assert data["stock"]["quantity"] == 0

    def test_unconfigured_facets_are_null(self, bound_client, variant_ids, ids):
        """A variant with no matching groups resolves to nulls."""
        response = bound_client.get(f"/variants/{variant_ids[(ids.red, ids.small)]}/resolution")

        data = response.json()
        assert data["price"] is None
        assert data["weight"] is None
        assert data["media_group"] is None

    def test_product_level_media_group(self, client, ids):
        """Without a media-controlling attribute the simple media group applies."""
        product_url = f"/products/{ids.product}"
        client.put(f"{product_url}/attributes", json={"attributes": [{"attribute_id": ids.color}]})
        client.put(f"{product_url}/media", json={"media": [{"media_id": ids.media[0], "is_primary": True}]})
        variant_id = client.get(f"{product_url}/variants").json()[0]["id"]

        data = client.get(f"/variants/{variant_id}/resolution").json()

        assert data["media_group"]["combination"] == {}
        assert [m["id"] for m in data["media_group"]["media"]] == [ids.media[0]]
