"""Schema package exports."""

from .device_tokens import DevicePushToken
from .sql import ChatRoom, Comment, User

__all__ = ["ChatRoom", "Comment", "DevicePushToken", "User"]
