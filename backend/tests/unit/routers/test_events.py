"""
Unit tests for the page-update webhook (flowme/routers/events.py).
"""
import pytest
from unittest.mock import AsyncMock, patch

from flowme.routers import events


@pytest.mark.unit
class TestPageUpdated:
    """Tests for POST /events/page-updated."""

    def test_accepts_and_runs_cleanup(self, client, site):
        site.add_attachment("42", "Old.mxfile", comment="FlowMe diagram: Old")
        site.set_page("42", storage="<p>No diagrams</p>")

        with patch("flowme.routers.events.get_confluence_client", return_value=site.client(user_token=None)):
            response = client.post("/events/page-updated", json={"content": {"id": "42"}, "updateTrigger": "user"})

        assert response.status_code == 200
        assert response.json() == {"status": "accepted", "pageId": "42"}
        assert site.titles("42") == set()

    def test_event_without_page_id(self, client):
        with patch("flowme.routers.events.handle_page_updated", new_callable=AsyncMock) as mock_handle:
            response = client.post("/events/page-updated", json={"eventType": "x"})

        assert response.json() == {"status": "accepted", "pageId": None}
        mock_handle.assert_awaited_once()

    def test_empty_body(self, client):
        with patch("flowme.routers.events.handle_page_updated", new_callable=AsyncMock):
            response = client.post("/events/page-updated")

        assert response.status_code == 200
        assert response.json()["pageId"] is None


@pytest.mark.unit
class TestRunCleanup:
    """Tests for the background cleanup task."""

    @pytest.mark.asyncio
    async def test_client_unavailable_is_logged(self):
        with patch("flowme.routers.events.get_confluence_client", side_effect=ValueError("not configured")), \
             patch("flowme.routers.events.handle_page_updated", new_callable=AsyncMock) as mock_handle:
            await events.run_cleanup({"contentId": "42"})

        mock_handle.assert_not_called()

    @pytest.mark.asyncio
    async def test_delegates_to_handler(self):
        with patch("flowme.routers.events.get_confluence_client", return_value="client"), \
             patch("flowme.routers.events.handle_page_updated", new_callable=AsyncMock) as mock_handle:
            await events.run_cleanup({"contentId": "42"})

        mock_handle.assert_awaited_once_with("client", {"contentId": "42"})
