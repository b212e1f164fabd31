from __future__ import annotations

import json
import uuid

import pytest
from fakes import make_token

from app.notifications.composer import MessageComposer, build_fcm_message, normalize_data_payload, sanitize_image_url
from app.notifications.contracts import PushContent, RecipientRole, RenderMode
from app.notifications.events import parse_trigger_payload
from app.notifications.templates import render_event_content


def _comment_content(role: RecipientRole) -> PushContent:
  event = parse_trigger_payload({"table": "comments", "record": {"id": 42, "post_id": 100, "board_type": "arrest_news", "user_id": 3, "content": "Thanks"}})
  return render_event_content(event, role=role, placeholders={"board": "Arrest News", "post_title": "Ring busted", "actor": "kim", "content": "Thanks"})


def test_every_message_of_one_event_shares_the_same_nid():
  composer = MessageComposer()
  messages = [composer.compose(f"token-{index}", _comment_content(role)) for index, role in enumerate([RecipientRole.AUTHOR, RecipientRole.PARENT_AUTHOR, RecipientRole.MODERATOR])]

  assert {message.nid for message in messages} == {"comment_42"}
  assert {message.data["collapse_key"] for message in messages} == {"comment_42"}


def test_comment_copy_varies_by_role_and_carries_deep_link():
  composer = MessageComposer()

  author = composer.compose("a", _comment_content(RecipientRole.AUTHOR))
  reply = composer.compose("b", _comment_content(RecipientRole.PARENT_AUTHOR))
  moderator = composer.compose("c", _comment_content(RecipientRole.MODERATOR))

  assert author.title == "New comment on 'Ring busted'"
  assert reply.title == "New reply to your comment"
  assert moderator.title == "New comment on Arrest News"
  assert author.body == "kim: Thanks"
  assert author.render_mode is RenderMode.PLATFORM_RENDERED
  assert author.data["screen"] == "ArrestNewsDetail"
  assert author.data["newsId"] == "100"
  assert json.loads(author.data["params"]) == {"id": 100}
  assert author.data["expect_os_alert"] == "1"


def test_link_url_forces_silent_delivery():
  event = parse_trigger_payload({"table": "arrest_news", "record": {"id": 8, "title": "Arrest", "link_url": "https://news.example/8"}})
  content = render_event_content(event, role=RecipientRole.MEMBER, placeholders={"board": "Arrest News", "post_title": "Arrest"})

  message = MessageComposer().compose("tok", content)

  assert message.render_mode is RenderMode.SILENT
  assert message.data["link_url"] == "https://news.example/8"
  assert message.data["expect_os_alert"] == "0"
  assert message.data["nid"] == "post_arrest_news_8"


def test_missing_copy_or_forced_flag_is_silent():
  composer = MessageComposer()

  untitled = composer.compose("tok", PushContent(nid="n1", title=None, body=None, data={"screen": "Home"}))
  forced = composer.compose("tok", PushContent(nid="n2", title="T", body="B", data={}, force_silent=True))
  flagged = composer.compose("tok", PushContent(nid="n3", title="T", body="B", data={"silent": "1"}))

  assert untitled.render_mode is RenderMode.SILENT
  assert forced.render_mode is RenderMode.SILENT
  assert flagged.render_mode is RenderMode.SILENT


@pytest.mark.parametrize(
  ("platform", "data", "expected"),
  [
    ("android", {}, RenderMode.SILENT),
    ("ANDROID", {"link_url": "https://x.example"}, RenderMode.SILENT),
    ("ios", {}, RenderMode.PLATFORM_RENDERED),
    ("ios", {"url": "https://x.example"}, RenderMode.SILENT),
    (None, {}, RenderMode.PLATFORM_RENDERED),
    ("web", {}, RenderMode.PLATFORM_RENDERED),
    (None, {"link_url": "https://x.example"}, RenderMode.SILENT),
  ],
)
def test_render_mode_follows_device_platform(platform, data, expected):
  message = MessageComposer().compose("tok", PushContent(nid="n", title="T", body="B", data=data), platform=platform)

  assert message.render_mode is expected
  assert message.data["expect_os_alert"] == ("1" if expected is RenderMode.PLATFORM_RENDERED else "0")
  assert message.data["title"] == "T"


def test_forced_silent_wins_on_ios():
  message = MessageComposer().compose("tok", PushContent(nid="n", title="T", body="B", data={}, force_silent=True), platform="ios")

  assert message.render_mode is RenderMode.SILENT


def test_compose_all_uses_each_row_platform():
  rows = [make_token(uuid.uuid4(), "droid", platform="android"), make_token(uuid.uuid4(), "phone", platform="ios")]

  messages = MessageComposer().compose_all(rows, PushContent(nid="n", title="T", body="B", data={}))

  assert {message.token: message.render_mode for message in messages} == {"droid": RenderMode.SILENT, "phone": RenderMode.PLATFORM_RENDERED}


def test_data_always_contains_screen_and_nid():
  message = MessageComposer().compose("tok", PushContent(nid="broadcast_1", title="Hi", body="There", data={"count": 3, "skip": None}))

  assert message.data["nid"] == "broadcast_1"
  assert message.data["screen"] == "Home"
  assert message.data["count"] == "3"
  assert "skip" not in message.data


def test_rendered_fcm_message_has_notification_and_platform_blocks():
  content = PushContent(nid="post_notices_1", title="New post in Notices", body="Maintenance", data={"screen": "NoticeDetail"}, image_url=" https://cdn.example/a.png ")
  message = MessageComposer(android_channel_id="alerts").compose("tok", content)

  payload = build_fcm_message(message)

  assert payload["token"] == "tok"
  assert payload["notification"] == {"title": "New post in Notices", "body": "Maintenance", "image": "https://cdn.example/a.png"}
  assert payload["android"]["priority"] == "HIGH"
  assert payload["android"]["notification"] == {"channel_id": "alerts", "tag": "post_notices_1", "image": "https://cdn.example/a.png"}
  assert payload["apns"]["headers"]["apns-push-type"] == "alert"
  assert payload["apns"]["headers"]["apns-collapse-id"] == "post_notices_1"
  assert payload["apns"]["payload"]["aps"]["mutable-content"] == 1
  assert all(isinstance(value, str) for value in payload["data"].values())


def test_silent_fcm_message_is_data_only():
  message = MessageComposer().compose("tok", PushContent(nid="n", title=None, body=None, data={}))

  payload = build_fcm_message(message)

  assert "notification" not in payload
  assert "notification" not in payload["android"]
  assert payload["apns"]["headers"]["apns-push-type"] == "background"
  assert payload["apns"]["headers"]["apns-priority"] == "5"
  assert payload["apns"]["payload"]["aps"] == {"content-available": 1}


def test_normalize_data_payload_and_image_sanitizing():
  assert normalize_data_payload({"a": "x", "b": {"k": 1}, "c": None, "d": True}) == {"a": "x", "b": '{"k": 1}', "d": "true"}
  assert sanitize_image_url("  null ") is None
  assert sanitize_image_url("undefined") is None
  assert sanitize_image_url(42) is None
  assert sanitize_image_url(" https://x/y.png ") == "https://x/y.png"
