import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./expenses.db")

# Session cookie signing
SESSION_SECRET = os.getenv("SESSION_SECRET", "devsecret")
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "app.log")  # empty string disables the file handler

# "claimed" trusts the username sent by the client, "session" uses the logged-in user
CHAT_IDENTITY = os.getenv("CHAT_IDENTITY", "claimed")

# MQTT event mirror
MQTT_ENABLED = os.getenv("MQTT_ENABLED", "0") == "1"
MQTT_BROKER = os.getenv("MQTT_BROKER", "localhost")
MQTT_PORT = int(os.getenv("MQTT_PORT", "1883"))
MQTT_CLIENT_ID = os.getenv("MQTT_CLIENT_ID", "ledgerchat-backend")
MQTT_TOPIC_EXPENSES = "expenses/events"
MQTT_TOPIC_CHAT = "chat/messages"
