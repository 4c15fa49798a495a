USERNAME_MIN_LENGTH = 2
USERNAME_MAX_LENGTH = 20
ROOM_NAME_MIN_LENGTH = 2
ROOM_NAME_MAX_LENGTH = 50
ROOM_DESCRIPTION_MAX_LENGTH = 200
MESSAGE_MAX_LENGTH = 1000

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

# The one username that may only join with the configured admin secret.
ADMIN_USERNAME = "admin"

# Tags kept in message bodies; every other tag is stripped.
RICH_TAGS = {"b", "i", "em", "strong", "a"}
RICH_ATTRIBUTES = {"a": {"href"}}

# Rooms created by ``manage.py seed``.
DEFAULT_ROOMS: list[dict[str, str]] = [
    {"name": "General", "description": "General discussion for everyone"},
    {"name": "Random", "description": "Random conversations and fun topics"},
    {"name": "Tech Talk", "description": "Technology and programming discussions"},
]

# WebSocket close code used when the Origin header is not allowed.
WS_CLOSE_FORBIDDEN_ORIGIN = 4403

# Frames buffered per connection before a stalled peer is dropped.
OUTBOUND_QUEUE_SIZE = 256

# -----------------------------
# Client-facing messages
# -----------------------------

ERR_INVALID_USERNAME = "Invalid username."
ERR_USERNAME_LENGTH = (
    f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters."
)
ERR_BLOCKED = "You have been blocked from the chat."
ERR_INVALID_ADMIN_PASSWORD = "Invalid admin password"
ERR_ROOM_NOT_FOUND = "Room not found"
ERR_UNAUTHORIZED = "Unauthorized"
ERR_MESSAGE_TOO_LONG = "Message is too long."
ERR_UNKNOWN_EVENT = "Unknown event"
ERR_INVALID_PAYLOAD = "Invalid payload"

ERR_JOIN_FAILED = "Failed to join room"
ERR_GET_ONLINE_USERS_FAILED = "Failed to get online users"
ERR_SEND_FAILED = "Failed to send message"
ERR_TYPING_FAILED = "Failed to update typing status"
ERR_KICK_FAILED = "Failed to kick user"
ERR_BLOCK_FAILED = "Failed to block user"
ERR_CLEAR_FAILED = "Failed to clear messages"
ERR_CLEAR_ALL_FAILED = "Failed to clear all messages"

KICKED_NOTICE = "You have been kicked from the room"
BLOCKED_NOTICE = "You have been blocked and kicked from the room."
ALL_CLEARED_NOTICE = "All chat history has been cleared by an administrator"

__all__ = [
    "USERNAME_MIN_LENGTH",
    "USERNAME_MAX_LENGTH",
    "ROOM_NAME_MIN_LENGTH",
    "ROOM_NAME_MAX_LENGTH",
    "ROOM_DESCRIPTION_MAX_LENGTH",
    "MESSAGE_MAX_LENGTH",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "ADMIN_USERNAME",
    "RICH_TAGS",
    "RICH_ATTRIBUTES",
    "DEFAULT_ROOMS",
    "WS_CLOSE_FORBIDDEN_ORIGIN",
    "OUTBOUND_QUEUE_SIZE",
]
