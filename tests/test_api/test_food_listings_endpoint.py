"""Tests for the food listings endpoint."""

import json
import pytest
from io import BytesIO
from http.server import BaseHTTPRequestHandler
from unittest.mock import Mock, patch

from api.food.listings import dispatch, handler
from src.models.listing import ListingStatus
from src.services.auth_tokens import issue_access_token, issue_refresh_token
from tests.utils.assertions import assert_error_response, assert_valid_response
from tests.utils.factories import create_listing
from tests.utils.helpers import auth_headers, json_body


async def call(engine, config, method, path, headers=None, body=None):
    raw_body = json.dumps(body) if isinstance(body, dict) else body
    return await dispatch(method, path, headers or {}, raw_body, engine=engine, config=config)


@pytest.mark.unit
def test_listings_handler_class():
    assert issubclass(handler, BaseHTTPRequestHandler)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_available_is_public(engine, config, store, clock, donor):
    listing = await store.insert_listing(create_listing(posted_by=donor.id, created_at=clock.now))

    response = await call(engine, config, "GET", "/api/food")

    assert_valid_response(response, 200)
    body = json_body(response)
    assert body["ok"] is True
    assert [item["id"] for item in body["listings"]] == [listing.id]
    assert body["listings"][0]["donor"]["email"] == donor.email


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_listing(engine, config, donor, listing_payload):
    response = await call(engine, config, "POST", "/api/food", auth_headers(donor.id, config), listing_payload)

    assert_valid_response(response, 201)
    body = json_body(response)
    assert body["ok"] is True
    assert body["listing"]["status"] == "available"
    assert body["listing"]["postedBy"] == donor.id
    assert body["emailStatus"]["success"] is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_listing_without_token(engine, config, store, listing_payload):
    response = await call(engine, config, "POST", "/api/food", {}, listing_payload)

    error = assert_error_response(response, 401, "UNAUTHENTICATED")
    assert error["message"] == "Authentication required"
    assert "No token provided" in error["detail"]
    assert store.rows == {}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_listing_invalid_location(engine, config, donor, listing_payload):
    listing_payload["location"] = {"address": "1 Main St"}

    response = await call(engine, config, "POST", "/api/food", auth_headers(donor.id, config), listing_payload)

    error = assert_error_response(response, 400, "INVALID_INPUT")
    assert error["message"] == "Invalid input"
    assert error["detail"] == "Location must include address, latitude, and longitude"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_malformed_json_body(engine, config, donor):
    response = await call(engine, config, "POST", "/api/food", auth_headers(donor.id, config), "{not json")

    assert_error_response(response, 400, "INVALID_INPUT")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_request_accept_confirm_flow(engine, config, store, clock, donor, receiver, location_data):
    """Test the full request, accept, confirm deal, confirm receipt flow over HTTP."""
    listing = await store.insert_listing(create_listing(posted_by=donor.id, created_at=clock.now))

    response = await call(engine, config, "PUT", f"/api/food/request/{listing.id}", auth_headers(receiver.id, config))
    assert_valid_response(response, 200)
    assert json_body(response)["listing"]["requestedBy"] == [receiver.id]

    response = await call(engine, config, "PUT", f"/api/food/accept-request/{listing.id}",
                          auth_headers(donor.id, config), {"receiverId": receiver.id})
    assert_valid_response(response, 200)
    assert json_body(response)["listing"]["claimedBy"] == receiver.id

    response = await call(engine, config, "PUT", f"/api/food/confirm-deal/{listing.id}",
                          auth_headers(receiver.id, config), {"receiverLocation": location_data})
    assert_valid_response(response, 200)
    assert json_body(response)["listing"]["receiverLocation"]["address"] == location_data["address"]

    response = await call(engine, config, "PUT", f"/api/food/confirm-receipt/{listing.id}",
                          auth_headers(receiver.id, config))
    assert_valid_response(response, 200)
    assert json_body(response)["listing"]["status"] == "received"
    assert store.stored(listing.id).status == ListingStatus.RECEIVED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_listing_infinite_quantity(engine, config, store, donor, listing_payload):
    raw_body = json.dumps({**listing_payload, "quantity": "QTY"}).replace('"QTY"', "1e999")

    response = await call(engine, config, "POST", "/api/food", auth_headers(donor.id, config), raw_body)

    error = assert_error_response(response, 400, "INVALID_INPUT")
    assert "quantity" in error["detail"]
    assert store.rows == {}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_accept_response_hides_requester_addresses(engine, config, store, clock, donor, receiver,
                                                         other_receiver):
    listing = await store.insert_listing(create_listing(posted_by=donor.id, created_at=clock.now))
    for user in (receiver, other_receiver):
        await call(engine, config, "PUT", f"/api/food/request/{listing.id}", auth_headers(user.id, config))

    response = await call(engine, config, "PUT", f"/api/food/accept-request/{listing.id}",
                          auth_headers(donor.id, config), {"receiverId": receiver.id})

    email_status = assert_valid_response(response, 200)["emailStatus"]
    assert len(email_status["deliveries"]) == 2
    assert all("recipient" not in delivery for delivery in email_status["deliveries"])
    assert other_receiver.email not in response["body"]


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("path,status,kind", [
    ("/api/food/request/missing", 404, "NOT_FOUND"),
    ("/api/food/accept-request/{id}", 403, "FORBIDDEN"),
    ("/api/food/confirm-deal/{id}", 403, "FORBIDDEN"),
])
async def test_error_status_mapping(engine, config, store, clock, donor, receiver, path, status, kind):
    listing = await store.insert_listing(create_listing(posted_by=donor.id, created_at=clock.now))

    response = await call(engine, config, "PUT", path.format(id=listing.id), auth_headers(receiver.id, config))

    assert_error_response(response, status, kind)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_state_is_400(engine, config, store, clock, donor, receiver):
    listing = await store.insert_listing(create_listing(posted_by=donor.id, created_at=clock.now))
    headers = auth_headers(receiver.id, config)
    await call(engine, config, "PUT", f"/api/food/request/{listing.id}", headers)

    response = await call(engine, config, "PUT", f"/api/food/request/{listing.id}", headers)

    error = assert_error_response(response, 400, "INVALID_STATE")
    assert error["detail"] == "You have already requested this listing"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_listing(engine, config, store, clock, donor):
    listing = await store.insert_listing(create_listing(posted_by=donor.id, created_at=clock.now))

    response = await call(engine, config, "GET", f"/api/food/{listing.id}?fields=all")

    assert_valid_response(response, 200)
    assert json_body(response)["listing"]["id"] == listing.id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_mine(engine, config, store, clock, donor, receiver):
    mine = await store.insert_listing(create_listing(posted_by=donor.id, created_at=clock.now))
    await store.insert_listing(create_listing(posted_by=receiver.id, created_at=clock.now))

    response = await call(engine, config, "GET", "/api/food/mine/", auth_headers(donor.id, config))

    assert_valid_response(response, 200)
    assert [item["id"] for item in json_body(response)["listings"]] == [mine.id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_refresh_token_issues_new_access_token(engine, config, donor):
    expired = issue_access_token(donor.id, config, ttl_seconds=-10)
    headers = {
        "Authorization": f"Bearer {expired}",
        "X-Refresh-Token": issue_refresh_token(donor.id, config),
    }

    response = await call(engine, config, "GET", "/api/food/mine", headers)

    assert_valid_response(response, 200)
    assert response["headers"]["X-New-Access-Token"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_correlation_id_echoed(engine, config):
    response = await call(engine, config, "GET", "/api/food", {"X-Correlation-ID": "req_abc123"})

    assert response["headers"]["X-Correlation-ID"] == "req_abc123"


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("method,path", [
    ("GET", "/api/other"),
    ("PUT", "/api/food/claim/abc"),
    ("DELETE", "/api/food/abc"),
    ("POST", "/api/food/abc"),
])
async def test_unknown_route(engine, config, method, path):
    response = await call(engine, config, method, path)

    error = assert_error_response(response, 404, "NOT_FOUND")
    assert error["message"] == "Route not found"
    assert error["detail"] == f"{method} {path}"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unexpected_error_is_500(engine, config):
    engine.list_available = Mock(side_effect=RuntimeError("boom"))

    response = await call(engine, config, "GET", "/api/food")

    error = assert_error_response(response, 500, "INTERNAL")
    assert "boom" not in error["message"]
    assert error["detail"] is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_engine_initialization_failure(config):
    with patch('api.food.listings.build_engine', side_effect=RuntimeError("no supabase")):
        response = await dispatch("GET", "/api/food", {}, None, config=config)

    error = assert_error_response(response, 500, "INTERNAL")
    assert error["message"] == "service initialization failed"
    assert error["detail"] is None


@pytest.mark.unit
def test_handler_writes_dispatch_response():
    """Test the HTTP handler relays status, headers and body from dispatch."""
    response = {"statusCode": 200, "headers": {"Content-Type": "application/json"}, "body": '{"ok": true, "listings": []}'}

    async def fake_dispatch(*args, **kwargs):
        return response

    class MockSocket:
        def makefile(self, *args, **kwargs):
            return BytesIO(b"GET /api/food HTTP/1.1\r\n\r\n")
        def sendall(self, data):
            pass
        def close(self):
            pass

    with patch('api.food.listings.dispatch', side_effect=fake_dispatch) as mock_dispatch, \
         patch('api.food.listings.LoggingConfig.ensure_configured'):
        h = handler(MockSocket(), ("127.0.0.1", 8000), None)
        h.wfile = BytesIO()
        h.send_response = Mock()
        h.send_header = Mock()
        h.end_headers = Mock()

        h.do_GET()

    assert mock_dispatch.call_args[0][:2] == ("GET", "/api/food")
    h.send_response.assert_called_once_with(200)
    h.send_header.assert_any_call("Content-Type", "application/json")
    h.wfile.seek(0)
    assert json.loads(h.wfile.read().decode('utf-8')) == {"ok": True, "listings": []}
