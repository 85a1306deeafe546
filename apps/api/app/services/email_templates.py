"""Rendering for outbox email templates.

Payload values are HTML-escaped before interpolation; links are only
rendered when they are http(s).
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Any, Callable

from app.db.enums import OutboxTemplate


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


class UnknownTemplateError(ValueError):
    """Outbox row references a template this service cannot render."""


def _s(payload: dict[str, Any], key: str, default: str = "") -> str:
    value = payload.get(key)
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _safe_link(payload: dict[str, Any]) -> str:
    link = _s(payload, "link")
    if not link.lower().startswith(("http://", "https://")):
        return ""
    return link


def _render_request_link(payload: dict[str, Any]) -> RenderedEmail:
    client_name = _s(payload, "clientName", "your client")
    link = _safe_link(payload)
    due_on = _s(payload, "dueOn")
    due_line = f"<p>Please upload them by <strong>{html.escape(due_on)}</strong>.</p>" if due_on else ""
    return RenderedEmail(
        subject=f"Document request for {client_name}",
        html=(
            "<p>Hello,</p>"
            "<p>Please upload the requested documents using this link:</p>"
            f'<p><a href="{html.escape(link, quote=True)}">{html.escape(link)}</a></p>'
            f"{due_line}"
            "<p>Thanks.</p>"
        ),
        text=f"Please upload the requested documents here: {link}"
        + (f" (due {due_on})" if due_on else ""),
    )


def _render_replacement_link(payload: dict[str, Any]) -> RenderedEmail:
    client_name = _s(payload, "clientName", "your client")
    link = _safe_link(payload)
    return RenderedEmail(
        subject=f"Replacement documents requested for {client_name}",
        html=(
            "<p>Hello,</p>"
            "<p>Some documents were declined and need replacement.</p>"
            "<p>Please upload replacements using this link:</p>"
            f'<p><a href="{html.escape(link, quote=True)}">{html.escape(link)}</a></p>'
            "<p>Thanks.</p>"
        ),
        text=f"Please upload replacement documents here: {link}",
    )


def _render_all_docs_accepted(payload: dict[str, Any]) -> RenderedEmail:
    client_name = _s(payload, "clientName", "your docs")
    return RenderedEmail(
        subject=f"Documents received: {client_name}",
        html=(
            "<p>Hello,</p>"
            "<p>Thanks, we have received and accepted all your requested documents for:</p>"
            f"<p><strong>{html.escape(client_name)}</strong></p>"
            "<p>You don't need to do anything else.</p>"
        ),
        text=f"Thanks, we have received and accepted all your requested documents for: {client_name}.",
    )


def _render_session_finalized(payload: dict[str, Any]) -> RenderedEmail:
    client_name = _s(payload, "clientName", "Client")
    session_id = _s(payload, "sessionId")
    link = _safe_link(payload)
    return RenderedEmail(
        subject=f"Ready for review: {client_name}",
        html=(
            "<p>All requested documents have been uploaded for:</p>"
            f"<p><strong>{html.escape(client_name)}</strong></p>"
            f"<p>Session: <code>{html.escape(session_id)}</code></p>"
            f'<p><a href="{html.escape(link, quote=True)}">Open review session</a></p>'
        ),
        text=f"All documents uploaded for {client_name}. Review: {link}",
    )


def _render_due_reminder(payload: dict[str, Any]) -> RenderedEmail:
    client_name = _s(payload, "clientName", "your client")
    link = _safe_link(payload)
    due_on = _s(payload, "dueOn", "soon")
    return RenderedEmail(
        subject=f"Reminder: documents due {due_on}",
        html=(
            f"<p>Hello {html.escape(client_name)},</p>"
            f"<p>This is a reminder that your documents are due on <strong>{html.escape(due_on)}</strong>.</p>"
            "<p>Please upload anything still outstanding using this link:</p>"
            f'<p><a href="{html.escape(link, quote=True)}">{html.escape(link)}</a></p>'
            "<p>Thanks.</p>"
        ),
        text=f"Reminder: your documents are due on {due_on}. Upload here: {link}",
    )


_RENDERERS: dict[str, Callable[[dict[str, Any]], RenderedEmail]] = {
    OutboxTemplate.MANUAL_REQUEST_LINK.value: _render_request_link,
    OutboxTemplate.REPLACEMENT_LINK.value: _render_replacement_link,
    OutboxTemplate.ALL_DOCS_ACCEPTED.value: _render_all_docs_accepted,
    OutboxTemplate.SESSION_FINALIZED_NOTIFY.value: _render_session_finalized,
    OutboxTemplate.DUE_REMINDER_14D.value: _render_due_reminder,
}


def render_template(name: str, payload: dict[str, Any] | None) -> RenderedEmail:
    renderer = _RENDERERS.get(name)
    if renderer is None:
        raise UnknownTemplateError(f"Unknown email template: {name}")
    return renderer(payload or {})
