"""Email notification of the next participant through EmailJS."""

from __future__ import annotations

from typing import Optional, Protocol

import httpx

from ..config import EmailJSConfig
from ..models import Document, Workflow
from .package import OutboundPackage


class EmailSender(Protocol):
    async def send(
        self,
        document: Document,
        workflow: Workflow,
        package: OutboundPackage,
        hosted_url: Optional[str] = None,
    ) -> None:
        """Notify the package's participant."""


class EmailJSSender:
    """Sends template emails with the EmailJS REST API."""

    def __init__(
        self,
        config: EmailJSConfig,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not config.is_configured:
            raise ValueError("EmailJS service, template and public key are required")
        self._config = config
        self._timeout = timeout
        self._client = client

    def build_payload(
        self,
        document: Document,
        workflow: Workflow,
        package: OutboundPackage,
        hosted_url: Optional[str] = None,
    ) -> dict:
        step = workflow.steps[package.step_index]
        return {
            "service_id": self._config.service_id,
            "template_id": self._config.template_id,
            "user_id": self._config.public_key,
            "template_params": {
                "to_email": package.participant.email,
                "to_name": package.participant.name,
                "from_name": workflow.owner.name,
                "reply_to": workflow.owner.email,
                "document_name": document.name,
                "workflow_name": workflow.name,
                "role": step.role.value,
                "instructions": step.instructions or "",
                "package_url": hosted_url or "",
                "deadline": workflow.deadline.date().isoformat() if workflow.deadline else "",
            },
        }

    async def send(
        self,
        document: Document,
        workflow: Workflow,
        package: OutboundPackage,
        hosted_url: Optional[str] = None,
    ) -> None:
        payload = self.build_payload(document, workflow, package, hosted_url)
        if self._client is not None:
            resp = await self._client.post(self._config.api_url, json=payload)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._config.api_url, json=payload)
        resp.raise_for_status()
