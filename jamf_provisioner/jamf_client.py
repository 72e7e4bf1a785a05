"""
Jamf Pro Classic API client.

Performs authenticated create/read/update/delete calls against the
JSSResource endpoints and decodes XML responses.

Usage:
    from jamf_provisioner.jamf_client import Credential, JamfClient
    from jamf_provisioner.resources import ResourceType

    client = JamfClient("https://my.jamf.pro", Credential("admin", "secret"))
    record = client.create(ResourceType.SCRIPT, script_xml, name="Cleanup")
    client.delete(ResourceType.SCRIPT, record.resource_id)

Every call is written to the audit log before it is sent, and again once
its outcome is known.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Union
from urllib.parse import quote
from xml.etree.ElementTree import Element

import defusedxml.ElementTree as ET
import requests
from requests.exceptions import ConnectionError, RequestException, Timeout

from jamf_provisioner.audit_log import audit
from jamf_provisioner.errors import ExitCode, ProvisionerError
from jamf_provisioner.resources import ResourceRecord, ResourceType

logger = logging.getLogger(__name__)

API_PREFIX = "/JSSResource"

# Jamf's HTML error pages carry the reason in lines like <p>Error: ...</p>
_ERROR_LINE = re.compile(r"<p>\s*(Error[^<]*)</p>", re.IGNORECASE)


class JamfClientError(ProvisionerError):
    """Base exception for Jamf API errors."""
    exit_code = ExitCode.ERROR


class JamfAuthError(JamfClientError):
    """Credentials rejected by the server."""
    exit_code = ExitCode.UNAUTHORIZED


class JamfTransportError(JamfClientError):
    """Cannot reach the Jamf Pro server."""
    exit_code = ExitCode.ROLLED_BACK


class JamfCreationError(JamfClientError):
    """A create call produced no object identifier."""
    exit_code = ExitCode.ROLLED_BACK


class JamfPropagationError(JamfCreationError):
    """A created object never became readable on the server."""


@dataclass
class Credential:
    """Jamf Pro account used for every call. Never persisted."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class Created:
    """Decoded create response carrying the new identifier."""

    resource_id: int


@dataclass(frozen=True)
class Failed:
    """Decoded create response with no usable identifier."""

    message: str


CreateResult = Union[Created, Failed]


def parse_document(body: Union[str, bytes]) -> Element:
    """
    Parse an XML response body.

    Raises:
        ET.ParseError: Body is not well-formed XML
    """
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    return ET.fromstring(body.strip())


def extract_error_text(body: str) -> Optional[str]:
    """Pull the human-readable error out of a server error page."""
    lines = [m.strip() for m in _ERROR_LINE.findall(body or "")]
    return "; ".join(lines) if lines else None


def decode_create_response(
    resource_type: ResourceType,
    body: Union[str, bytes],
    status_code: int = 201,
) -> CreateResult:
    """
    Decode the response to a create call.

    Success is a document rooted at the type's object name whose
    ``/<object>/id`` is a positive integer. Anything else is a failure,
    described by the server's embedded error text when present.

    Args:
        resource_type: Type that was created
        body: Raw response body
        status_code: HTTP status of the response

    Returns:
        Created or Failed
    """
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")

    if status_code < 400:
        try:
            root = parse_document(body)
        except ET.ParseError:
            root = None

        if root is not None and root.tag == resource_type.object_name:
            id_text = (root.findtext("id") or "").strip()
            if id_text.isdigit() and int(id_text) > 0:
                return Created(int(id_text))

    message = extract_error_text(body)
    if not message:
        message = f"HTTP {status_code}: no {resource_type.label} id in response"
    return Failed(message)


class JamfClient:
    """
    Jamf Pro Classic API client.

    Attributes:
        server_url: Base server URL (e.g. https://my.jamf.pro)
        credential: Account used for basic auth
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        server_url: str,
        credential: Credential,
        timeout: int = 30,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Jamf client.

        Args:
            server_url: Server URL without the /JSSResource suffix
            credential: Account used for every call
            timeout: Request timeout in seconds
            verify_ssl: Verify the server's TLS certificate
            session: Optional pre-built session (tests)
        """
        self.server_url = server_url.rstrip("/")
        self.base_url = f"{self.server_url}{API_PREFIX}"
        self.credential = credential
        self.timeout = timeout

        self.session = session or requests.Session()
        self.session.auth = (credential.username, credential.password)
        self.session.verify = verify_ssl
        self.session.headers.update({"Accept": "text/xml"})

    def _send(self, method: str, path: str, payload: Optional[str] = None) -> requests.Response:
        """
        Send one request, translating transport failures.

        Raises:
            JamfTransportError: Cannot connect or timed out
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {"Content-Type": "text/xml"} if payload is not None else None

        audit("%s %s", method, path)
        logger.debug(f"Jamf {method} {path}")

        try:
            return self.session.request(
                method=method,
                url=url,
                data=payload.encode("utf-8") if payload is not None else None,
                headers=headers,
                timeout=self.timeout,
            )
        except ConnectionError as e:
            audit("Network error on %s %s: %s", method, path, e)
            raise JamfTransportError(f"Cannot connect to Jamf Pro at {self.server_url}: {e}")
        except Timeout:
            audit("Timeout on %s %s", method, path)
            raise JamfTransportError(
                f"Connection to Jamf Pro timed out after {self.timeout}s"
            )
        except RequestException as e:
            audit("Request failed on %s %s: %s", method, path, e)
            raise JamfTransportError(f"Request failed: {e}")

    def _object_path(self, resource_type: ResourceType, resource_id: int) -> str:
        return f"{resource_type.endpoint}/id/{resource_id}"

    # =========================================================================
    # CRUD
    # =========================================================================

    def read(self, path: str) -> Element:
        """
        GET a resource document.

        Args:
            path: Path below /JSSResource (e.g. "sites")

        Returns:
            Parsed XML root element

        Raises:
            JamfAuthError: Credentials rejected
            JamfClientError: Error status or unparseable body
            JamfTransportError: Network failure
        """
        response = self._send("GET", path)

        if response.status_code == 401:
            audit("Authentication rejected for %s", path)
            raise JamfAuthError(
                f"Invalid credentials for user '{self.credential.username}'"
            )

        if response.status_code >= 400:
            message = extract_error_text(response.text) or f"API error {response.status_code}"
            audit("Error reading %s: %s", path, message)
            raise JamfClientError(f"GET {path} failed: {message}")

        try:
            return parse_document(response.content)
        except ET.ParseError as e:
            audit("Unreadable response for %s", path)
            raise JamfClientError(f"GET {path} returned malformed XML: {e}")

    def create(self, resource_type: ResourceType, payload: str, name: str = "") -> ResourceRecord:
        """
        Create an object by POSTing to its collection placeholder id.

        Args:
            resource_type: Type of object to create
            payload: Serialized XML object description
            name: Display name, kept on the returned record

        Returns:
            ResourceRecord for the new object

        Raises:
            JamfCreationError: Response has no usable identifier
            JamfTransportError: Network failure
        """
        audit("Creating %s...", resource_type.object_name)
        response = self._send("POST", self._object_path(resource_type, 0), payload)

        result = decode_create_response(resource_type, response.content, response.status_code)
        if isinstance(result, Failed):
            audit("An error occurred creating %s", resource_type.object_name)
            audit("ERROR: %s", result.message)
            raise JamfCreationError(
                f"Failed to create {resource_type.label} '{name}': {result.message}"
            )

        audit("%s created with ID number %d", resource_type.object_name, result.resource_id)
        logger.info(f"Created {resource_type.label} {result.resource_id} ({name})")
        return ResourceRecord(resource_type=resource_type, resource_id=result.resource_id, name=name)

    def update(self, resource_type: ResourceType, resource_id: int, payload: str) -> bool:
        """
        PUT a partial object description.

        Returns:
            True if the server accepted the update. Failures are logged,
            never raised.
        """
        try:
            response = self._send("PUT", self._object_path(resource_type, resource_id), payload)
        except JamfTransportError as e:
            logger.warning(f"Update of {resource_type.label} {resource_id} failed: {e}")
            return False

        if response.status_code >= 400:
            message = extract_error_text(response.text) or f"API error {response.status_code}"
            audit("Update of %s %d failed: %s", resource_type.object_name, resource_id, message)
            logger.warning(f"Update of {resource_type.label} {resource_id} failed: {message}")
            return False

        audit("%s with ID %d updated", resource_type.object_name, resource_id)
        return True

    def delete(self, resource_type: ResourceType, resource_id: int) -> bool:
        """
        DELETE an object.

        Returns:
            True if the server confirmed the delete. Failures are logged,
            never raised.
        """
        try:
            response = self._send("DELETE", self._object_path(resource_type, resource_id))
        except JamfTransportError as e:
            logger.warning(f"Delete of {resource_type.label} {resource_id} failed: {e}")
            return False

        if response.status_code >= 400:
            message = extract_error_text(response.text) or f"API error {response.status_code}"
            audit("Delete of %s %d failed: %s", resource_type.object_name, resource_id, message)
            logger.warning(f"Delete of {resource_type.label} {resource_id} failed: {message}")
            return False

        audit("%s with ID %d deleted...", resource_type.object_name, resource_id)
        return True

    # =========================================================================
    # Convenience reads
    # =========================================================================

    def get_account(self, username: str) -> Element:
        """Read the account record for a username."""
        return self.read(f"accounts/username/{quote(username, safe='')}")

    def close(self) -> None:
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
