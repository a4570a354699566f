import pytest

from twinbridge.protocols.webthings import (
    WebThing, WebThingsGateway, property_changes, thing_id_from_description,
)


@pytest.mark.parametrize("description, expected", [
    ({"id": "http://gateway.local:8080/things/virtual-things-2"}, "virtual-things-2"),
    ({"href": "/things/zb-0017880103a8f1d2"}, "zb-0017880103a8f1d2"),
    ({"id": "https://gw/things/living%20room/"}, "living room"),
    ({"href": "lamp"}, "lamp"),
])
def test_thing_id_is_last_path_segment(description, expected):
    assert thing_id_from_description(description) == expected


def test_property_status_yields_one_change_per_key():
    message = {"messageType": "propertyStatus", "data": {"on": True, "level": 40}}
    assert property_changes(message) == [("on", True), ("level", 40)]


def test_other_messages_are_ignored():
    assert property_changes({"messageType": "event", "data": {"overheated": {}}}) == []
    assert property_changes({"messageType": "propertyStatus"}) == []


def test_websocket_url_follows_gateway_scheme():
    assert WebThingsGateway("http://gw:8080/", "tok")._ws_url("lamp 1") == "ws://gw:8080/things/lamp%201?jwt=tok"
    assert WebThingsGateway("https://gw", "tok")._ws_url("x") == "wss://gw/things/x?jwt=tok"


def test_dispatch_reaches_every_callback_even_if_one_fails():
    gateway = WebThingsGateway("http://gw", "tok")
    thing = WebThing(gateway, {"id": "http://gw/things/lamp", "title": "Lamp"})
    seen = []

    def broken(name, value):
        raise RuntimeError("boom")

    thing.on_property_changed(broken)
    thing.on_property_changed(lambda name, value: seen.append((name, value)))
    thing.dispatch({"messageType": "propertyStatus", "data": {"on": False}})

    assert thing.id() == "lamp"
    assert thing.title == "Lamp"
    assert seen == [("on", False)]
