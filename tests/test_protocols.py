import json
from types import SimpleNamespace

import paho.mqtt.client as mqtt

from ledgerchat.config import MQTT_TOPIC_CHAT, MQTT_TOPIC_EXPENSES
from ledgerchat.protocols import MQTTHandler


class FakeClient:
    def __init__(self, rc=mqtt.MQTT_ERR_SUCCESS):
        self.rc = rc
        self.published = []

    def publish(self, topic, payload, qos=0):
        self.published.append((topic, json.loads(payload), qos))
        return SimpleNamespace(rc=self.rc)

    def loop_stop(self):
        pass

    def disconnect(self):
        pass


def connected_handler(client):
    handler = MQTTHandler()
    handler.client = client
    handler.connected = True
    return handler


def test_publish_skipped_when_not_connected():
    handler = MQTTHandler()
    assert handler.publish_chat_event("newMessage", {"text": "hi"}) is False
    handler.client = FakeClient()
    assert handler.publish_expense_event("new_expense", 1) is False
    assert handler.client.published == []


def test_publish_chat_event():
    client = FakeClient()
    handler = connected_handler(client)
    assert handler.publish_chat_event("messageDeleted", 7) is True
    assert client.published == [(MQTT_TOPIC_CHAT, {"event": "messageDeleted", "data": 7}, 1)]


def test_publish_expense_event():
    client = FakeClient()
    handler = connected_handler(client)
    handler.publish_expense_event("new_expense", 3, amount=4.5, owner="bob")
    assert client.published == [
        (MQTT_TOPIC_EXPENSES, {"event": "new_expense", "expense_id": 3, "amount": 4.5, "owner": "bob"}, 1)
    ]


def test_publish_failure_is_reported_as_false():
    handler = connected_handler(FakeClient(rc=mqtt.MQTT_ERR_NO_CONN))
    assert handler.publish_chat_event("allMessagesDeleted") is False


def test_expense_routes_publish_events(client, register_and_login, monkeypatch):
    from ledgerchat.protocols import mqtt_handler

    fake = FakeClient()
    monkeypatch.setattr(mqtt_handler, "client", fake)
    monkeypatch.setattr(mqtt_handler, "connected", True)

    register_and_login("bob")
    client.post("/expenses/add", data={"title": "Coffee", "amount": "4.5", "category": "Food"})
    expense_id = client.get("/api/expenses").json()[0]["id"]
    client.get(f"/expenses/delete/{expense_id}")

    events = [payload["event"] for topic, payload, _ in fake.published if topic == MQTT_TOPIC_EXPENSES]
    assert events == ["new_expense", "delete_expense"]
