"""
MQTT mirror for ledgerchat
Publishes chat broadcasts and expense changes to an MQTT broker for outside listeners
"""
import json
import logging
import threading
from typing import Optional
import paho.mqtt.client as mqtt

from .config import MQTT_BROKER, MQTT_PORT, MQTT_CLIENT_ID, MQTT_TOPIC_CHAT, MQTT_TOPIC_EXPENSES

logger = logging.getLogger(__name__)


class MQTTHandler:
    def __init__(self, broker: str = MQTT_BROKER, port: int = MQTT_PORT, client_id: str = MQTT_CLIENT_ID):
        self.broker = broker
        self.port = port
        self.client_id = client_id
        self.client: Optional[mqtt.Client] = None
        self.connected = False
        self._lock = threading.Lock()

    def connect(self):
        """Initialize and connect to MQTT broker"""
        try:
            self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=self.client_id, protocol=mqtt.MQTTv311)
            self.client.on_connect = self._on_connect
            self.client.on_disconnect = self._on_disconnect

            # Start connection in background thread
            self.client.connect_async(self.broker, self.port, keepalive=60)
            self.client.loop_start()
            logger.info(f"[MQTT] Connecting to {self.broker}:{self.port}...")
        except (OSError, ValueError) as e:
            logger.error(f"[MQTT] Failed to initialize: {e}")

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.warning(f"[MQTT] Connection failed: {reason_code}")
        else:
            self.connected = True
            logger.info("[MQTT] Connected to broker")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        self.connected = False
        logger.info(f"[MQTT] Disconnected from broker ({reason_code})")

    def publish(self, message: dict, topic: str = MQTT_TOPIC_EXPENSES) -> bool:
        """Publish a message to MQTT topic. Returns False when nothing was sent."""
        with self._lock:
            if not (self.client and self.connected):
                logger.debug(f"[MQTT] Not connected, skipping publish: {message.get('event', 'unknown')}")
                return False
            try:
                result = self.client.publish(topic, json.dumps(message), qos=1)
            except (OSError, ValueError, TypeError) as e:
                logger.error(f"[MQTT] Publish error: {e}")
                return False
            if result.rc != mqtt.MQTT_ERR_SUCCESS:
                logger.warning(f"[MQTT] Publish failed with rc={result.rc}")
                return False
            logger.debug(f"[MQTT] Published to {topic}: {message.get('event', 'unknown')}")
            return True

    def publish_expense_event(self, event_type: str, expense_id: int, **kwargs) -> bool:
        message = {
            "event": event_type,
            "expense_id": expense_id,
            **kwargs
        }
        return self.publish(message, MQTT_TOPIC_EXPENSES)

    def publish_chat_event(self, event_type: str, data=None) -> bool:
        return self.publish({"event": event_type, "data": data}, MQTT_TOPIC_CHAT)

    def disconnect(self):
        """Gracefully disconnect from broker"""
        if self.client:
            self.client.loop_stop()
            self.client.disconnect()
            self.connected = False
            logger.info("[MQTT] Disconnected")


# Global handler instance; main.py connects it when MQTT_ENABLED is set
mqtt_handler = MQTTHandler()
