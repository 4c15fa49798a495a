from tortoise import fields
from tortoise.models import Model

from .constants import (
    MESSAGE_MAX_LENGTH,
    ROOM_DESCRIPTION_MAX_LENGTH,
    ROOM_NAME_MAX_LENGTH,
    USERNAME_MAX_LENGTH,
)


class User(Model):
    """Chat identity; created on first join, never requires a password."""

    id = fields.IntField(pk=True)
    username = fields.CharField(max_length=USERNAME_MAX_LENGTH, unique=True, index=True)
    # Last known live connection id; cleared when that connection drops.
    socket_id = fields.CharField(max_length=64, null=True, default=None)
    is_online = fields.BooleanField(default=False)
    is_admin = fields.BooleanField(default=False)
    is_blocked = fields.BooleanField(default=False)
    joined_at = fields.DatetimeField(auto_now_add=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "users"


class Room(Model):
    id = fields.IntField(pk=True)
    name = fields.CharField(max_length=ROOM_NAME_MAX_LENGTH, unique=True)
    description = fields.CharField(max_length=ROOM_DESCRIPTION_MAX_LENGTH, default="")
    is_private = fields.BooleanField(default=False)
    max_users = fields.IntField(default=50)
    created_by = fields.ForeignKeyField(
        "models.User", related_name="rooms", null=True, on_delete=fields.SET_NULL
    )
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "rooms"


class Message(Model):
    id = fields.IntField(pk=True)
    content = fields.CharField(max_length=MESSAGE_MAX_LENGTH)
    user = fields.ForeignKeyField("models.User", related_name="messages", on_delete=fields.CASCADE)
    room = fields.ForeignKeyField("models.Room", related_name="messages", on_delete=fields.CASCADE)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)

    class Meta:
        table = "messages"
        ordering = ["created_at", "id"]
