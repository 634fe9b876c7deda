"""
Tests for the Google Places adapter, using httpx's mock transport.
"""

import json

import httpx
import pytest

from fakes import _run
from mila.places.google import GooglePlacesProvider, ONBOARDING_FIELDS
from mila.places.models import LocationBias
from mila.places.provider import PlacesTransportError

BASE = "https://places.example/v1"

GOOGLE_PLACE = {
    "id": "ChIJ123",
    "displayName": {"text": "Koffie Lab"},
    "formattedAddress": "Kanaalstraat 1, Amsterdam",
    "location": {"latitude": 52.36, "longitude": 4.87},
    "types": ["cafe", "food"],
    "rating": 4.6,
    "priceLevel": "PRICE_LEVEL_MODERATE",
    "photos": [{"name": "places/ChIJ123/photos/abc"}, {"widthPx": 10}],
    "reviews": [
        {"text": {"text": "Great flat white"}, "rating": 5, "authorAttribution": {"displayName": "Sam"}},
        {"text": "Busy on weekends", "rating": 4},
    ],
    "regularOpeningHours": {"openNow": True, "weekdayDescriptions": ["Monday: 8-17"]},
    "outdoorSeating": True,
    "servesCoffee": True,
}


def provider_for(handler, api_key="test-key"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GooglePlacesProvider(api_key=api_key, base_url=BASE, client=client)


class Recorder:
    def __init__(self, status=200, payload=None):
        self.status = status
        self.payload = payload if payload is not None else {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.payload)

    @property
    def body(self) -> dict:
        return json.loads(self.requests[-1].content)


class TestTransformPlace:
    def test_maps_google_fields(self):
        place = provider_for(Recorder()).transform_place(GOOGLE_PLACE)

        assert place.place_id == "ChIJ123"
        assert place.display_name == "Koffie Lab"
        assert place.price_level == 2
        assert place.location.lat == 52.36
        assert place.photos == [f"{BASE}/places/ChIJ123/photos/abc/media?key=test-key&maxWidthPx=800&maxHeightPx=800"]
        assert [r.text for r in place.reviews] == ["Great flat white", "Busy on weekends"]
        assert place.reviews[1].author_name == "Anonymous"
        assert place.opening_hours.open_now is True
        assert place.attributes() == ["outdoor seating", "serves coffee"]

    def test_sparse_place(self):
        place = provider_for(Recorder()).transform_place({"id": "x"})
        assert place.display_name == ""
        assert place.photos == []
        assert place.location is None
        assert place.price_level is None


class TestSearch:
    def test_nearby_request_shape(self):
        recorder = Recorder(payload={"places": [GOOGLE_PLACE]})
        places = _run(provider_for(recorder).search_nearby(52.37, 4.89, 5000, ["cafe"], max_results=50))

        request = recorder.requests[0]
        assert request.url.path.endswith("places:searchNearby")
        assert request.headers["X-Goog-Api-Key"] == "test-key"
        assert request.headers["X-Goog-FieldMask"] == ONBOARDING_FIELDS
        assert recorder.body["maxResultCount"] == 20
        assert recorder.body["rankPreference"] == "POPULARITY"
        assert recorder.body["includedTypes"] == ["cafe"]
        assert recorder.body["locationRestriction"]["circle"]["radius"] == 5000
        assert [p.place_id for p in places] == ["ChIJ123"]

    def test_text_search_with_bias(self):
        recorder = Recorder(payload={})
        places = _run(provider_for(recorder).search_text(
            "cozy cafe Amsterdam", location_bias=LocationBias(lat=1.0, lng=2.0), included_type="cafe",
        ))

        assert places == []
        assert recorder.body["textQuery"] == "cozy cafe Amsterdam"
        assert recorder.body["locationBias"]["circle"]["center"] == {"latitude": 1.0, "longitude": 2.0}
        assert recorder.body["strictTypeFiltering"] is True

    def test_http_error_raises_transport_error(self):
        recorder = Recorder(status=503, payload={"error": "unavailable"})
        with pytest.raises(PlacesTransportError) as exc_info:
            _run(provider_for(recorder).search_nearby(0, 0, 5000, ["cafe"]))
        assert exc_info.value.status_code == 503

    def test_network_error_raises_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(PlacesTransportError):
            _run(provider_for(handler).search_text("anything"))

    def test_missing_key_fails_without_a_request(self):
        recorder = Recorder()
        with pytest.raises(PlacesTransportError):
            _run(provider_for(recorder, api_key="").search_nearby(0, 0, 5000, ["cafe"]))
        assert recorder.requests == []


class TestDetailsAndAutocomplete:
    def test_details_not_found_is_none(self):
        assert _run(provider_for(Recorder(status=404)).place_details("missing")) is None

    def test_details_fills_in_id(self):
        data = dict(GOOGLE_PLACE)
        del data["id"]
        recorder = Recorder(payload=data)
        place = _run(provider_for(recorder).place_details("ChIJ999"))

        assert place.place_id == "ChIJ999"
        assert recorder.requests[0].method == "GET"
        assert not recorder.requests[0].headers["X-Goog-FieldMask"].startswith("places.")

    def test_autocomplete_parses_predictions(self):
        recorder = Recorder(payload={"suggestions": [
            {"placePrediction": {"placeId": "a", "text": {"text": "Amsterdam, Netherlands"}}},
            {"queryPrediction": {"text": {"text": "amsterdam cafes"}}},
        ]})
        suggestions = _run(provider_for(recorder).autocomplete(
            "Amst", ["locality", "administrative_area_level_1", "a", "b", "c", "d"],
        ))

        assert [(s.place_id, s.description) for s in suggestions] == [("a", "Amsterdam, Netherlands")]
        assert len(recorder.body["includedPrimaryTypes"]) == 5

    def test_autocomplete_without_types_sends_no_filter(self):
        recorder = Recorder(payload={"suggestions": []})
        _run(provider_for(recorder).autocomplete("Amst", []))
        assert "includedPrimaryTypes" not in recorder.body
