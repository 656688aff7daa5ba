"""Upload a validated profile to the management server.

Submission is "optimistic create, fallback update": the profile is POSTed
as a new resource, and only when the server answers ``409 Conflict`` (a
profile with that name exists) is the same body PUT to the by-name
resource. A first submission therefore costs one round trip, a
resubmission two, and both end in the same remote state.

There is no existence check and no retry. A 401 on either call surfaces as
:class:`~mdmforge.exceptions.SessionExpired` so the caller knows to log in
again rather than fix the profile.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Optional
from urllib.parse import quote
from xml.sax.saxutils import escape

import httpx

from mdmforge.client.async_client import ApiClient, describe_status
from mdmforge.exceptions import SessionExpired, SubmissionError
from mdmforge.models import (
    Document,
    NetworkConfig,
    Session,
    SubmissionOutcome,
    SubmissionResult,
)
from mdmforge.profile.serializer import serialize
from mdmforge.profile.validator import ensure_valid, validate

logger = logging.getLogger(__name__)

PROFILES_RESOURCE = "JSSResource/osxconfigurationprofiles"
CREATE_PATH = f"{PROFILES_RESOURCE}/id/0"
DISTRIBUTION_METHOD = "Install Automatically"

_XML_HEADERS = {"Content-Type": "application/xml", "Accept": "application/xml"}


def update_path(name: str) -> str:
    """By-name resource path for an existing profile."""
    return f"{PROFILES_RESOURCE}/name/{quote(name, safe='')}"


def build_envelope(document: Document) -> str:
    """Wrap the XML property list of *document* in the upload envelope."""
    plist = serialize(document, "xml").decode("utf-8")
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<os_x_configuration_profile>"
        "<general>"
        f"<name>{escape(document.name)}</name>"
        f"<description>{escape(document.description)}</description>"
        f"<distribution_method>{DISTRIBUTION_METHOD}</distribution_method>"
        f"<payloads>{escape(plist)}</payloads>"
        "</general>"
        "</os_x_configuration_profile>"
    )


def parse_remote_id(response: httpx.Response) -> Optional[int]:
    """Return the ``<id>`` from a create/update response body, if present."""
    try:
        root = ET.fromstring(response.text)
    except ET.ParseError:
        return None
    node = root if root.tag == "id" else root.find(".//id")
    if node is None or node.text is None:
        return None
    try:
        return int(node.text.strip())
    except ValueError:
        return None


class SubmissionPipeline:
    """Validate, serialize, and upload documents.

    Args:
        network: Timeouts and TLS settings.
        platform: Platform passed to the validator.
        transport: Optional httpx transport, used by tests to stub the
            server.
    """

    def __init__(
        self,
        network: Optional[NetworkConfig] = None,
        platform: str = "macOS",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._network = network or NetworkConfig()
        self._platform = platform
        self._transport = transport

    async def submit(self, document: Document, session: Session) -> SubmissionResult:
        """Create *document* on the server, or update it if the name exists.

        Args:
            document: A freshly built document.
            session: An authenticated session.

        Returns:
            The :class:`~mdmforge.models.SubmissionResult`.

        Raises:
            ValidationError: If the document has blocking errors. Nothing is
                sent.
            SessionExpired: If the session has expired or the server
                answers 401.
            ConnectivityError: On network failure.
            SubmissionError: On any other non-2xx response.
        """
        ensure_valid(validate(document, platform=self._platform))
        if session.is_expired():
            raise SessionExpired("The session has expired. Log in again to continue.")

        body = build_envelope(document)
        async with ApiClient(
            session,
            timeout=self._network.submit_timeout,
            verify_ssl=self._network.verify_ssl,
            transport=self._transport,
        ) as client:
            response = await client.post(CREATE_PATH, headers=_XML_HEADERS, content=body)
            if response.status_code == 409:
                logger.info("Profile '%s' already exists; updating", document.name)
                response = await client.put(update_path(document.name), headers=_XML_HEADERS, content=body)
                outcome = SubmissionOutcome.UPDATED
            else:
                outcome = SubmissionOutcome.CREATED

        if not response.is_success:
            raise SubmissionError(
                f"Uploading '{document.name}' failed ({describe_status(response)})",
                status_code=response.status_code,
            )

        result = SubmissionResult(
            outcome=outcome,
            name=document.name,
            status_code=response.status_code,
            remote_id=parse_remote_id(response),
        )
        logger.info("Profile '%s' %s (HTTP %d)", document.name, outcome.value, response.status_code)
        return result
