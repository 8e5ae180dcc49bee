"""Google Chat notification relay using an incoming webhook.

Sends card messages for new submissions, status changes, inbound applicant
messages and staff activity. Just a webhook POST via httpx; delivery problems
are logged and never raised to the caller.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from models import DriverApplication
from services.status_view import applicant_name

logger = logging.getLogger(__name__)

CARD_IMAGE_URL = "https://cdn-icons-png.flaticon.com/512/3097/3097170.png"

DOCUMENT_LABELS = {
    "badge_document_url": "Badge Document",
    "driving_license_document_url": "Driving License",
    "insurance_document_url": "Insurance Certificate",
    "v5c_document_url": "Vehicle Logbook (V5C)",
    "phv_licence_document_url": "PHV Licence",
}


def is_new_submission(
    old_status: Optional[str],
    old_partial: Optional[bool],
    new_status: str,
    new_partial: bool,
    existed: bool,
) -> bool:
    """New non-partial submission, status moved to Submitted, or a partial completed."""
    if new_partial or new_status != "Submitted":
        return False
    if not existed:
        return True
    if old_status != "Submitted":
        return True
    return old_partial is True


def _text(top_label: str, text: str, icon: Optional[str] = None) -> dict[str, Any]:
    widget: dict[str, Any] = {"decoratedText": {"topLabel": top_label, "text": text or "N/A"}}
    if icon:
        widget["decoratedText"]["startIcon"] = {"knownIcon": icon}
    return widget


def build_submission_card(app: DriverApplication) -> dict[str, Any]:
    name = applicant_name(app)
    sections: list[dict[str, Any]] = [
        {
            "header": "Applicant Details",
            "collapsible": False,
            "widgets": [
                _text("Name", name, "PERSON"),
                _text("Email", app.email, "EMAIL"),
                _text("Phone", app.phone, "PHONE"),
                _text("Area / City", app.area, "MAP_PIN"),
                _text("Licensed Driver", "Yes" if app.is_licensed_driver else "No"),
            ],
        }
    ]
    if app.is_licensed_driver:
        details = app.licensed_details or {}
        vehicle = (
            f"{details.get('vehicle_make') or ''} {details.get('vehicle_model') or ''} "
            f"({details.get('vehicle_reg') or 'N/A'})"
        ).strip()
        sections.append(
            {
                "header": "License Details",
                "collapsible": True,
                "widgets": [
                    _text("Badge Number", details.get("badge_number")),
                    _text("Badge Expiry", details.get("badge_expiry")),
                    _text("Issuing Council", details.get("issuing_council")),
                    _text("License Number", details.get("driving_license_number")),
                    _text("Vehicle", vehicle if app.has_own_vehicle else "Fleet / no own vehicle"),
                ],
            }
        )
        doc_widgets = [
            {
                "decoratedText": {
                    "text": label,
                    "button": {"text": "View", "onClick": {"openLink": {"url": (app.documents or {})[key]}}},
                }
            }
            for key, label in DOCUMENT_LABELS.items()
            if (app.documents or {}).get(key)
        ]
        if doc_widgets:
            sections.append({"header": "Documents", "collapsible": True, "widgets": doc_widgets})
    return {
        "text": "*New Driver Application Submitted*",
        "cardsV2": [
            {
                "cardId": f"application-{app.id}",
                "card": {
                    "header": {
                        "title": "New Driver Application",
                        "subtitle": name,
                        "imageUrl": CARD_IMAGE_URL,
                        "imageType": "CIRCLE",
                    },
                    "sections": sections,
                },
            }
        ],
    }


def build_event_message(title: str, app: DriverApplication, lines: list[tuple[str, str]]) -> dict[str, Any]:
    return {
        "text": f"*{title}*",
        "cardsV2": [
            {
                "cardId": f"event-{app.id}",
                "card": {
                    "header": {"title": title, "subtitle": applicant_name(app), "imageUrl": CARD_IMAGE_URL},
                    "sections": [{"widgets": [_text(label, value) for label, value in lines]}],
                },
            }
        ],
    }


class ChatNotifier:
    """Chat webhook adapter."""

    def __init__(self, webhook_url: str = "", timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._client = client

    @property
    def is_enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send(self, payload: dict[str, Any]) -> bool:
        if not self.is_enabled:
            logger.debug("Chat webhook URL not configured, skipping notification")
            return False
        try:
            if self._client is not None:
                resp = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await self._post(client, payload)
            if resp.status_code >= 400:
                logger.error("Chat webhook returned: %s %s", resp.status_code, resp.text)
                return False
            logger.info("Chat notification sent")
            return True
        except Exception as e:
            logger.error("Chat notification failed: %s", e)
            return False

    async def _post(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> httpx.Response:
        return await client.post(
            self.webhook_url,
            json=payload,
            headers={"Content-Type": "application/json; charset=UTF-8"},
        )

    async def notify_submission(self, app: DriverApplication) -> bool:
        return await self.send(build_submission_card(app))

    async def notify_status_change(self, app: DriverApplication, previous: Optional[str], actor: str) -> bool:
        return await self.send(
            build_event_message(
                "Application Status Changed",
                app,
                [("From", previous or "N/A"), ("To", app.status), ("Changed By", actor)],
            )
        )

    async def notify_inbound_message(self, app: DriverApplication, text: str) -> bool:
        preview = text if len(text) <= 200 else text[:197] + "..."
        return await self.send(build_event_message("New Message From Applicant", app, [("Message", preview)]))

    async def notify_activity(self, app: DriverApplication, details: str, actor: str) -> bool:
        return await self.send(build_event_message("Applicant Activity", app, [("Activity", details), ("By", actor)]))
