"""Rendering of notification emails from the packaged Jinja2 templates."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Mapping

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

from classnotify.models.domain import GroupInfo, MailMessage, Recipient


logger = logging.getLogger(__name__)


@lru_cache()
def create_render_environment() -> Environment:
    return Environment(
        loader=PackageLoader("classnotify", "templates"),
        autoescape=select_autoescape(["html", "xml"]),
        undefined=StrictUndefined,
        trim_blocks=True,
    )


class EmailRenderer:
    """Builds subject, HTML and text bodies for each kind of email we send."""

    def __init__(self, brand_name: str = "LinuxWorld", env: Environment | None = None) -> None:
        self.brand_name = brand_name
        self._env = env or create_render_environment()

    def _render_pair(self, name: str, context: Mapping[str, Any]) -> tuple[str, str]:
        ctx = {"brand": self.brand_name, **context}
        html = self._env.get_template(f"email/{name}.html").render(**ctx)
        text = self._env.get_template(f"email/{name}.txt").render(**ctx)
        return html, text

    def verification_message(
        self,
        identity_key: str,
        code: str,
        context: Mapping[str, Any],
        ttl_minutes: int,
    ) -> MailMessage:
        name = (context.get("name") or "").strip() or identity_key.split("@", 1)[0]
        purpose = context.get("purpose") or "signup"
        html, text = self._render_pair(
            "verification_code",
            {"name": name, "code": code, "ttl_minutes": ttl_minutes, "purpose": purpose},
        )
        return MailMessage(
            to=identity_key,
            subject=f"Verify your {self.brand_name} Account - OTP",
            html=html,
            text=text,
        )

    def announcement_message(self, recipient: Recipient, group: GroupInfo, announcement: Any) -> MailMessage:
        """``announcement`` needs ``title``, ``content`` and ``files`` (name, url, is_downloadable)."""

        title = getattr(announcement, "title", "") or "New Announcement"
        html, text = self._render_pair(
            "announcement",
            {
                "name": recipient.display_name,
                "group_name": group.name,
                "title": title,
                "content": getattr(announcement, "content", ""),
                "files": list(getattr(announcement, "files", None) or []),
            },
        )
        return MailMessage(
            to=recipient.email,
            subject=f"New Announcement: {title} - {self.brand_name}",
            html=html,
            text=text,
        )

    def group_activity_message(self, recipient: Recipient, group: GroupInfo, summary: str = "") -> MailMessage:
        html, text = self._render_pair(
            "group_activity",
            {"name": recipient.display_name, "group_name": group.name, "summary": summary},
        )
        return MailMessage(
            to=recipient.email,
            subject=f"New activity in {group.name} - {self.brand_name}",
            html=html,
            text=text,
        )
