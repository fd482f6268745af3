"""Check SMTP settings by connecting (and logging in) without sending mail."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from classnotify.config import get_settings
from classnotify.logging_config import configure_logging
from classnotify.services.mailer import SmtpMailer


logger = logging.getLogger("check_mail")


async def check() -> bool:
    settings = get_settings()
    if not settings.mail_configured:
        logger.error("SMTP_HOST and MAIL_FROM_EMAIL (or SMTP_USERNAME) must be set")
        return False

    ok = await SmtpMailer(settings).verify()
    if ok:
        logger.info("Connected to %s:%d as %s", settings.smtp_host, settings.smtp_port, settings.smtp_username)
    return ok


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args()

    configure_logging("DEBUG" if args.verbose else None)
    sys.exit(0 if asyncio.run(check()) else 1)
