"""Tests for email rendering."""
from __future__ import annotations

from classnotify.models.domain import GroupInfo, Recipient
from classnotify.models.schemas import AnnouncementFile, AnnouncementPayload
from classnotify.services.templates import EmailRenderer

GROUP = GroupInfo(id="g1", name="Linux <Basics>", description="")
RECIPIENT = Recipient(id="u1", email="u1@school.test", display_name="Ravi")


def test_announcement_escapes_html_and_lists_files():
    announcement = AnnouncementPayload(
        title="Quiz <b>Friday</b>",
        content="Chapter 4 & 5",
        files=[
            AnnouncementFile(name="notes.pdf", url="https://files.school.test/notes.pdf"),
            AnnouncementFile(name="slides", url="https://files.school.test/slides", is_downloadable=False),
        ],
    )

    message = EmailRenderer(brand_name="LinuxWorld").announcement_message(RECIPIENT, GROUP, announcement)

    assert message.to == "u1@school.test"
    assert message.subject == "New Announcement: Quiz <b>Friday</b> - LinuxWorld"
    assert "Quiz &lt;b&gt;Friday&lt;/b&gt;" in message.html
    assert "Linux &lt;Basics&gt;" in message.html
    assert "Chapter 4 &amp; 5" in message.html
    assert "Attachments (2)" in message.text
    assert "slides (view only)" in message.text
    assert "Hello Ravi," in message.text


def test_group_activity_summary_is_optional():
    renderer = EmailRenderer(brand_name="LinuxWorld")

    bare = renderer.group_activity_message(RECIPIENT, GROUP)
    with_summary = renderer.group_activity_message(RECIPIENT, GROUP, "3 new posts")

    assert bare.subject == "New activity in Linux <Basics> - LinuxWorld"
    assert "3 new posts" not in bare.text
    assert "3 new posts" in with_summary.text


def test_verification_falls_back_to_mailbox_name():
    message = EmailRenderer(brand_name="LinuxWorld").verification_message("meera@school.test", "4821", {}, 10)

    assert "Hello meera," in message.text
    assert "4821" in message.html
    assert "expire in 10 minutes" in message.text
