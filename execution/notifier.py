"""
Report E-mail Notifier
======================

Sends the finished analysis summary with every generated PDF attached.
smtplib is blocking, so the SMTP exchange runs in a worker thread.
"""

import asyncio
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from html import escape
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from config.settings import SMTPSettings
from core.enums import ReportStage, RequiredStage
from core.exceptions import NotificationError
from core.models import PipelineResult

REPORT_LABELS = {
    ReportStage.PROFESSIONAL.value: "Professional Content Analysis Report",
    ReportStage.CRAWLABILITY.value: "Crawlability & Technical Report",
    ReportStage.META_TAGS.value: "Meta Tags & GEO Report",
    ReportStage.STRUCTURED_DATA.value: "Structured Data Report",
    ReportStage.FAQ.value: "FAQ Schema Report",
}

SUBJECT = "Your Complete AI GEO Visibility Report is Ready!"


class EmailNotifier:
    """
    SMTP delivery of analysis results.

    Raises ``NotificationError`` on any delivery failure; the caller decides
    what that means for the task.
    """

    def __init__(self, smtp_settings: SMTPSettings):
        self.settings = smtp_settings

    async def send_analysis_report(
        self,
        to: str,
        url: str,
        report_directory: Optional[str],
        analysis_results: PipelineResult,
    ) -> Dict[str, Any]:
        if not self.settings.host:
            raise NotificationError("SMTP host is not configured", recipient=to)

        attachments = self.collect_attachments(analysis_results)
        message = self.build_message(to, url, analysis_results, attachments)

        try:
            refused = await asyncio.to_thread(self._send, message, to)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Failed to send report e-mail: {e}", recipient=to, cause=e) from e

        if to in refused:
            raise NotificationError(f"Recipient refused: {refused[to]}", recipient=to)

        logger.info(f"Report e-mail sent to {to} | attachments={len(attachments)} | dir={report_directory}")
        return {"message_id": message["Message-ID"], "accepted": [to], "attachments": [a[0] for a in attachments]}

    @staticmethod
    def collect_attachments(results: PipelineResult) -> List[Tuple[str, Path]]:
        """Successful report files that actually exist on disk."""
        attachments = []
        for stage in REPORT_LABELS:
            step = results.steps.get(stage) or {}
            if not step.get("success") or not step.get("path"):
                continue
            path = Path(step["path"])
            if path.is_file():
                attachments.append((path.name, path))
            else:
                logger.warning(f"Attachment missing, skipping: {path}")
        return attachments

    def build_message(
        self, to: str, url: str, results: PipelineResult, attachments: List[Tuple[str, Path]]
    ) -> MIMEMultipart:
        message = MIMEMultipart()
        message["From"] = self.settings.from_address
        message["To"] = to
        message["Subject"] = SUBJECT
        message["Message-ID"] = make_msgid()
        message.attach(MIMEText(self.render_html(url, results), "html", "utf-8"))

        for filename, path in attachments:
            part = MIMEApplication(path.read_bytes(), _subtype="pdf")
            part.add_header("Content-Disposition", "attachment", filename=filename)
            message.attach(part)
        return message

    @staticmethod
    def render_html(url: str, results: PipelineResult) -> str:
        scoring = (results.steps.get(RequiredStage.SCORING.value) or {}).get("data") or {}
        score = scoring.get("site_score")

        stage_items = "".join(
            f"<li>{escape(stage.value.replace('_', ' ').title())}: "
            f"{'Complete' if (results.steps.get(stage.value) or {}).get('success') else 'Failed'}</li>"
            for stage in RequiredStage
        )
        report_items = "".join(
            f"<li>{escape(label)}</li>"
            for stage, label in REPORT_LABELS.items()
            if (results.steps.get(stage) or {}).get("success")
        )
        score_block = f"<p>Overall AI Findability Score: <strong>{score}/100</strong></p>" if score is not None else ""

        return (
            '<div style="font-family: Arial, sans-serif; color: #222;">'
            f"<h2>Your AI GEO Visibility Report is ready</h2>"
            f"<p>Complete analysis for: {escape(url)}</p>"
            f"{score_block}"
            f"<h3>Analysis components</h3><ul>{stage_items}</ul>"
            f"<h3>Attached reports</h3><ul>{report_items or '<li>No reports could be generated.</li>'}</ul>"
            "</div>"
        )

    def _send(self, message: MIMEMultipart, to: str) -> Dict[str, Any]:
        smtp_class = smtplib.SMTP_SSL if self.settings.use_ssl else smtplib.SMTP
        with smtp_class(self.settings.host, self.settings.port, timeout=self.settings.timeout) as server:
            if not self.settings.use_ssl:
                server.starttls()
            if self.settings.username and self.settings.password:
                server.login(self.settings.username, self.settings.password.get_secret_value())
            return server.sendmail(self.settings.from_address, [to], message.as_string())
