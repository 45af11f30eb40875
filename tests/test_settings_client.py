import json
import os
import sys
from typing import Any, Dict, List, Optional

import requests

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from models.map_settings import MapSettings
from models.tile_coordinate import GeoPoint
from services.settings_client import SettingsClient
from services.view_state import MapViewState

STORED = {'provider': 'terrain', 'zoom': 8, 'center': {'lat': 45.0, 'lon': 7.5}}


class DummyResponse:
    def __init__(self, status_code: int, body: Any = None, content_type: str = 'application/json'):
        self.status_code = status_code
        self.headers = {'Content-Type': content_type} if content_type else {}
        self.text = body if isinstance(body, str) else json.dumps(body)

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        return json.loads(self.text)


class DummySession:
    def __init__(self, response: Optional[DummyResponse] = None, error: Optional[Exception] = None,
                 calls: Optional[List] = None):
        self.response = response
        self.error = error
        self.calls = calls if calls is not None else []
        self.closed = False

    def _answer(self, method, url, payload=None):
        self.calls.append((method, url, payload))
        if self.error is not None:
            raise self.error
        return self.response

    def get(self, url, timeout=None):
        return self._answer('GET', url)

    def post(self, url, json=None, timeout=None):
        return self._answer('POST', url, json)

    def close(self):
        self.closed = True


def make_client(response=None, error=None, calls=None, sessions=None) -> SettingsClient:
    client = SettingsClient("http://localhost:8080/")

    def create_session():
        session = DummySession(response, error, calls)
        if sessions is not None:
            sessions.append(session)
        return session

    client.create_session = create_session  # type: ignore
    return client


class TestSettingsClient:

    def test_load_settings(self):
        calls = []
        client = make_client(DummyResponse(200, STORED), calls=calls)
        assert client.load_settings() == MapSettings('terrain', 8, GeoPoint(45.0, 7.5))
        assert calls == [('GET', 'http://localhost:8080/api/settings', None)]

    def test_load_falls_back_on_http_error(self):
        client = make_client(DummyResponse(500, {'error': 'Failed to fetch settings'}))
        assert client.load_settings() == MapSettings.defaults()

    def test_load_falls_back_on_non_json_content_type(self):
        client = make_client(DummyResponse(200, '<html></html>', content_type='text/html'))
        assert client.load_settings() == MapSettings.defaults()

    def test_load_falls_back_on_malformed_body(self):
        client = make_client(DummyResponse(200, '{"provider": '))
        assert client.load_settings() == MapSettings.defaults()

    def test_load_falls_back_on_unexpected_shape(self):
        client = make_client(DummyResponse(200, {'provider': 'osm'}))
        assert client.load_settings() == MapSettings.defaults()

    def test_load_falls_back_on_transport_error(self):
        client = make_client(error=requests.ConnectionError("refused"))
        assert client.load_settings() == MapSettings.defaults()

    def test_save_settings_posts_payload(self):
        calls = []
        client = make_client(DummyResponse(200, STORED), calls=calls)
        settings = MapSettings.from_dict(STORED)

        assert client.save_settings(settings) == settings
        assert calls == [('POST', 'http://localhost:8080/api/settings', STORED)]

    def test_save_failure_returns_none(self):
        assert make_client(DummyResponse(400, {'error': 'Missing required fields'})).save_settings(
            MapSettings.defaults()) is None
        assert make_client(DummyResponse(502, 'Bad gateway', content_type='text/plain')).save_settings(
            MapSettings.defaults()) is None
        assert make_client(DummyResponse(200, 'ok', content_type='text/plain')).save_settings(
            MapSettings.defaults()) is None
        assert make_client(error=requests.Timeout("slow")).save_settings(MapSettings.defaults()) is None

    def test_sessions_are_closed(self):
        sessions = []
        client = make_client(DummyResponse(200, STORED), sessions=sessions)
        client.load_settings()
        client.save_settings(MapSettings.from_dict(STORED))

        failing = make_client(error=requests.ConnectionError("refused"), sessions=sessions)
        failing.load_settings()
        failing.save_settings(MapSettings.defaults())

        assert len(sessions) == 4
        assert all(session.closed for session in sessions)


class FakeTimer:
    """Stands in for threading.Timer; never fires on its own"""
    created: List['FakeTimer'] = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True


class RecordingClient(SettingsClient):
    def __init__(self, fail: bool = False):
        super().__init__("http://localhost:8080")
        self.saved: List[MapSettings] = []
        self.fail = fail

    def load_settings(self) -> MapSettings:
        return MapSettings.from_dict(STORED)

    def save_settings(self, settings: MapSettings) -> Optional[MapSettings]:
        self.saved.append(settings)
        return None if self.fail else settings


class TestMapViewState:

    def setup_method(self):
        FakeTimer.created = []

    def test_load_uses_client(self):
        state = MapViewState(RecordingClient(), timer_factory=FakeTimer)
        assert state.load().provider == 'terrain'
        assert state.settings.zoom == 8

    def test_moves_and_zooms_are_debounced(self):
        client = RecordingClient()
        state = MapViewState(client, save_delay=1.0, timer_factory=FakeTimer)
        state.load()

        state.on_move_end(GeoPoint(1.0, 1.0))
        state.on_zoom_change(10, GeoPoint(2.0, 2.0))
        state.on_move_end(GeoPoint(3.0, 3.0))

        assert client.saved == []
        assert len(FakeTimer.created) == 3
        assert all(t.cancelled for t in FakeTimer.created[:-1])
        assert FakeTimer.created[-1].interval == 1.0

        # Firing the last timer saves only the latest view
        FakeTimer.created[-1].function()
        assert client.saved == [MapSettings('terrain', 10, GeoPoint(3.0, 3.0))]

    def test_base_layer_change_saves_immediately(self):
        client = RecordingClient()
        state = MapViewState(client, timer_factory=FakeTimer)
        state.load()
        state.on_move_end(GeoPoint(5.0, 5.0))

        state.on_base_layer_change('cyclosm')

        assert client.saved == [MapSettings('cyclosm', 8, GeoPoint(5.0, 5.0))]
        assert state.flush() is None

    def test_failed_save_keeps_view_state(self):
        client = RecordingClient(fail=True)
        state = MapViewState(client, timer_factory=FakeTimer)
        state.load()
        state.on_zoom_change(12, GeoPoint(0.5, 0.5))

        assert state.flush() is None
        assert state.settings == MapSettings('terrain', 12, GeoPoint(0.5, 0.5))
        assert len(client.saved) == 1

    def test_invalid_view_is_not_saved(self):
        client = RecordingClient()
        state = MapViewState(client, timer_factory=FakeTimer)
        state.on_zoom_change(None, GeoPoint(0.0, 0.0))
        assert FakeTimer.created == []
        assert state.flush() is None
        assert client.saved == []
