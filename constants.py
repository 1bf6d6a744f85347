import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Room used when a join message omits "room" or sends an empty string
DEFAULT_ROOM = os.getenv("DEFAULT_ROOM", "default")

# Browser sender/receiver pages, served only if the directory exists
STATIC_DIR = os.getenv("STATIC_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "public"))

# Wire values of the clientType field
SENDER_CLIENT_TYPE = "sender"
RECEIVER_CLIENT_TYPE = "receiver"

# Frames queued per connection before further sends to it are dropped
OUTBOX_MAX_FRAMES = int(os.getenv("OUTBOX_MAX_FRAMES", 256))
