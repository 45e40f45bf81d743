"""
CloudKit Web Services wrapper for contact synchronization and sharing.

Provides a high-level interface to the CloudKit REST API for:
- Creating and listing record zones
- Paging through a zone's change feed with sync tokens
- Saving records atomically and looking them up by name
- Creating, resolving and accepting shares
- Exponential backoff retry logic for throttling and server errors
"""

import logging
import time
import uuid
from collections.abc import Callable, Iterable
from typing import Any

import requests

from contact_share.api.records import (
    SHARE_RECORD_TYPE,
    AcceptShareResult,
    ChangePage,
    DatabaseScope,
    Record,
    SavePolicy,
    Share,
    ShareMetadata,
    ZoneID,
)
from contact_share.auth.cloudkit_auth import CloudKitCredentials

# CloudKit Web Services endpoint
DEFAULT_BASE_URL = "https://api.apple-cloudkit.com"

# Web services protocol version
API_VERSION = "1"

# Container environments
ENVIRONMENT_DEVELOPMENT = "development"
ENVIRONMENT_PRODUCTION = "production"
VALID_ENVIRONMENTS = (ENVIRONMENT_DEVELOPMENT, ENVIRONMENT_PRODUCTION)

# Maximum records per change page (server caps at 200)
DEFAULT_PAGE_SIZE = 200

# Retry configuration defaults
DEFAULT_MAX_RETRIES = 5
DEFAULT_INITIAL_RETRY_DELAY = 1.0  # seconds
DEFAULT_MAX_RETRY_DELAY = 60.0  # seconds

# HTTP timeout per request
DEFAULT_TIMEOUT = 30  # seconds

# Server error codes meaning the addressed item does not exist
NOT_FOUND_CODES = frozenset({"NOT_FOUND", "UNKNOWN_ITEM", "ZONE_NOT_FOUND"})

# Server error codes meaning the request should be retried later
THROTTLE_CODES = frozenset({"THROTTLED", "TRY_AGAIN_LATER"})

# Operation type per save policy (records/modify)
SAVE_OPERATIONS = {
    SavePolicy.ALL_KEYS: "forceReplace",
    SavePolicy.CHANGED_KEYS: "forceUpdate",
}

logger = logging.getLogger(__name__)


class CloudKitAPIError(Exception):
    """
    Raised when a CloudKit operation fails.

    Attributes:
        server_error_code: CloudKit error code (e.g. "QUOTA_EXCEEDED"), if any
        reason: Server-provided explanation, if any
        status_code: HTTP status of the failed response, if any
    """

    def __init__(
        self,
        message: str,
        server_error_code: str | None = None,
        reason: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.server_error_code = server_error_code
        self.reason = reason
        self.status_code = status_code


class RateLimitError(CloudKitAPIError):
    """Raised when throttling persists and retries are exhausted."""

    pass


class RecordNotFoundError(CloudKitAPIError):
    """Raised when an addressed record or zone does not exist."""

    pass


class AuthenticationRequiredError(CloudKitAPIError):
    """
    Raised when the request needs a signed-in user.

    Attributes:
        redirect_url: Sign-in page returned by the server, if any
    """

    def __init__(self, message: str, redirect_url: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.redirect_url = redirect_url


def error_from_payload(
    operation_name: str, payload: dict[str, Any], status_code: int | None = None
) -> CloudKitAPIError:
    """
    Build the matching exception for a CloudKit error payload.

    Works for both whole-response errors and per-item errors embedded in
    ``records`` / ``zones`` / ``results`` arrays.
    """
    code = payload.get("serverErrorCode")
    reason = payload.get("reason")
    subject = payload.get("recordName") or (payload.get("zoneID") or {}).get(
        "zoneName"
    )
    message = f"{operation_name} failed: {code or status_code}"
    if subject:
        message += f" ({subject})"
    if reason:
        message += f": {reason}"

    if status_code == 421 or code == "AUTHENTICATION_REQUIRED":
        return AuthenticationRequiredError(
            message,
            redirect_url=payload.get("redirectURL"),
            server_error_code=code,
            reason=reason,
            status_code=status_code,
        )
    if code in NOT_FOUND_CODES:
        return RecordNotFoundError(
            message, server_error_code=code, reason=reason, status_code=status_code
        )
    return CloudKitAPIError(
        message, server_error_code=code, reason=reason, status_code=status_code
    )


class CloudKitAPI:
    """
    CloudKit Web Services wrapper implementing the record store interface.

    Attributes:
        container_identifier: CloudKit container (e.g. "iCloud.com.example.app")
        credentials: API token and web auth token
        environment: "development" or "production"

    Usage:
        api = CloudKitAPI("iCloud.com.example.app", credentials)

        # Create the custom zone
        api.create_zone(ZoneID("Contacts"))

        # Page through changes
        page = api.fetch_change_page(DatabaseScope.PRIVATE, ZoneID("Contacts"))
        while page.more_coming:
            page = api.fetch_change_page(
                DatabaseScope.PRIVATE, ZoneID("Contacts"), page.sync_token
            )

        # Save a record
        saved = api.save_record(record, SavePolicy.ALL_KEYS)
    """

    def __init__(
        self,
        container_identifier: str,
        credentials: CloudKitCredentials,
        environment: str = ENVIRONMENT_DEVELOPMENT,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_retry_delay: float = DEFAULT_INITIAL_RETRY_DELAY,
        max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY,
        timeout: int = DEFAULT_TIMEOUT,
        base_url: str = DEFAULT_BASE_URL,
    ):
        """
        Initialize the CloudKit wrapper.

        Args:
            container_identifier: CloudKit container identifier
            credentials: API token and optional web auth token
            environment: Container environment (default "development")
            page_size: Records per change page (default 200, server max 200)
            max_retries: Maximum attempts for failed requests (default 5)
            initial_retry_delay: Initial backoff delay in seconds (default 1.0)
            max_retry_delay: Maximum backoff delay in seconds (default 60.0)
            timeout: HTTP timeout per request in seconds (default 30)
            base_url: Web services host, overridable for testing

        Raises:
            ValueError: If environment is not recognised
        """
        if environment not in VALID_ENVIRONMENTS:
            raise ValueError(
                f"Invalid environment '{environment}'. "
                f"Must be one of: {', '.join(VALID_ENVIRONMENTS)}"
            )

        self.container_identifier = container_identifier
        self.credentials = credentials
        self.environment = environment
        self.page_size = min(page_size, DEFAULT_PAGE_SIZE)
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self.max_retry_delay = max_retry_delay
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._session: requests.Session | None = None

    @property
    def session(self) -> requests.Session:
        """Get or create the HTTP session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"Content-Type": "application/json"})
            logger.debug("Created CloudKit HTTP session")
        return self._session

    def _url(self, scope: DatabaseScope, path: str) -> str:
        return (
            f"{self.base_url}/database/{API_VERSION}/{self.container_identifier}/"
            f"{self.environment}/{scope.value}/{path}"
        )

    def _auth_params(self) -> dict[str, str]:
        params = {"ckAPIToken": self.credentials.api_token}
        if self.credentials.web_auth_token:
            params["ckWebAuthToken"] = self.credentials.web_auth_token
        return params

    @staticmethod
    def _json(response: requests.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    def _retry_with_backoff(
        self, operation: Callable[[], requests.Response], operation_name: str
    ) -> dict[str, Any]:
        """
        Execute a request with exponential backoff retry.

        Args:
            operation: Callable performing the HTTP request
            operation_name: Name for logging purposes

        Returns:
            Decoded JSON body of the successful response

        Raises:
            RateLimitError: If retries are exhausted due to throttling
            CloudKitAPIError: For other failures
        """
        delay = self.initial_retry_delay

        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1

            try:
                response = operation()
            except requests.RequestException as e:
                if not last_attempt:
                    logger.warning(
                        f"{operation_name} network error ({e}), retrying in "
                        f"{delay:.1f}s (attempt {attempt + 1}/{self.max_retries})"
                    )
                    time.sleep(delay)
                    delay = min(delay * 2, self.max_retry_delay)
                    continue
                raise CloudKitAPIError(
                    f"{operation_name} failed: {e}", server_error_code="NETWORK_ERROR"
                ) from e

            status_code = response.status_code
            if status_code < 400:
                return self._json(response)

            payload = self._json(response)
            code = payload.get("serverErrorCode")

            # Throttled - honour retryAfter when the server sends one
            if status_code in (429, 503) or code in THROTTLE_CODES:
                if not last_attempt:
                    wait = max(delay, float(payload.get("retryAfter") or 0))
                    logger.warning(
                        f"{operation_name} throttled, retrying in "
                        f"{wait:.1f}s (attempt {attempt + 1}/{self.max_retries})"
                    )
                    time.sleep(wait)
                    delay = min(delay * 2, self.max_retry_delay)
                    continue
                raise RateLimitError(
                    f"Rate limit exceeded for {operation_name} "
                    f"after {self.max_retries} retries",
                    server_error_code=code,
                    reason=payload.get("reason"),
                    status_code=status_code,
                )

            if status_code >= 500 and not last_attempt:
                logger.warning(
                    f"{operation_name} server error ({status_code}), "
                    f"retrying in {delay:.1f}s"
                )
                time.sleep(delay)
                delay = min(delay * 2, self.max_retry_delay)
                continue

            error = error_from_payload(operation_name, payload, status_code)
            logger.error(f"{operation_name} failed with status {status_code}: {error}")
            raise error

        raise CloudKitAPIError(f"{operation_name} failed after all retries")

    def _post(
        self, scope: DatabaseScope, path: str, body: dict[str, Any], operation_name: str
    ) -> dict[str, Any]:
        url = self._url(scope, path)

        def execute() -> requests.Response:
            return self.session.post(
                url, params=self._auth_params(), json=body, timeout=self.timeout
            )

        return self._retry_with_backoff(execute, operation_name)

    def _get(
        self, scope: DatabaseScope, path: str, operation_name: str
    ) -> dict[str, Any]:
        url = self._url(scope, path)

        def execute() -> requests.Response:
            return self.session.get(url, params=self._auth_params(), timeout=self.timeout)

        return self._retry_with_backoff(execute, operation_name)

    # ========== Zones ==========

    def create_zone(self, zone_id: ZoneID) -> None:
        """
        Create a record zone in the private database.

        A zone that already exists is treated as created.

        Raises:
            CloudKitAPIError: If creation fails
        """
        logger.debug(f"Creating zone: {zone_id}")

        body = {
            "operations": [
                {"operationType": "create", "zone": {"zoneID": zone_id.to_api_format()}}
            ]
        }
        response = self._post(
            DatabaseScope.PRIVATE, "zones/modify", body, f"create_zone({zone_id})"
        )

        for item in response.get("zones", []):
            code = item.get("serverErrorCode")
            if code == "EXISTS":
                logger.debug(f"Zone already exists: {zone_id}")
            elif code:
                raise error_from_payload(f"create_zone({zone_id})", item)

        logger.info(f"Created zone: {zone_id}")

    def list_zones(self, scope: DatabaseScope) -> list[ZoneID]:
        """
        List all zones in a database scope.

        Returns:
            Zone identifiers, empty if none are visible

        Raises:
            CloudKitAPIError: If listing fails
        """
        logger.debug(f"Listing zones in {scope.value} database")

        response = self._get(scope, "zones/list", f"list_zones({scope.value})")
        zones = [
            ZoneID.from_api_response(item["zoneID"])
            for item in response.get("zones", [])
            if item.get("zoneID")
        ]

        logger.debug(f"Listed {len(zones)} zones in {scope.value} database")
        return zones

    # ========== Changes ==========

    def fetch_change_page(
        self, scope: DatabaseScope, zone_id: ZoneID, sync_token: str | None = None
    ) -> ChangePage:
        """
        Fetch one page of a zone's change feed.

        Args:
            scope: Database scope holding the zone
            zone_id: Zone to read
            sync_token: Cursor from the previous page; None starts from the beginning

        Returns:
            ChangePage with records, ``more_coming`` and the next cursor

        Raises:
            CloudKitAPIError: If the request or the zone fails
        """
        zone_request: dict[str, Any] = {
            "zoneID": zone_id.to_api_format(),
            "resultsLimit": self.page_size,
        }
        if sync_token:
            zone_request["syncToken"] = sync_token

        response = self._post(
            scope,
            "changes/zone",
            {"zones": [zone_request]},
            f"fetch_changes({zone_id})",
        )

        zones = response.get("zones", [])
        if not zones:
            raise CloudKitAPIError(f"fetch_changes({zone_id}) returned no zone result")

        zone_result = zones[0]
        if zone_result.get("serverErrorCode"):
            raise error_from_payload(f"fetch_changes({zone_id})", zone_result)

        page = ChangePage.from_api_response(zone_result)
        logger.debug(
            f"Fetched {len(page.records)} changed records from {zone_id} "
            f"(more_coming={page.more_coming})"
        )
        return page

    # ========== Records ==========

    def _operation_for(self, record: Record, save_policy: SavePolicy) -> dict[str, Any]:
        operation_type = SAVE_OPERATIONS.get(save_policy)
        if operation_type is None:
            operation_type = "update" if record.is_saved else "create"

        record_data = record.to_api_format()
        if record.record_type == SHARE_RECORD_TYPE and not record.short_guid:
            record_data["createShortGUID"] = True

        return {"operationType": operation_type, "record": record_data}

    def save_records(
        self,
        records: list[Record],
        deletions: Iterable[str] = (),
        save_policy: SavePolicy = SavePolicy.IF_SERVER_RECORD_UNCHANGED,
        scope: DatabaseScope = DatabaseScope.PRIVATE,
    ) -> list[Record]:
        """
        Save and delete records in a single atomic request.

        Saved records are updated in place with their new change tag.

        Args:
            records: Records to save; all must live in the same zone
            deletions: Names of records to delete from that zone
            save_policy: How to treat fields already on the server
            scope: Database scope to write to

        Returns:
            Server copies of the saved records

        Raises:
            ValueError: If the records span several zones
            CloudKitAPIError: If any operation fails (nothing is written)
        """
        deletions = list(deletions)
        if not records and not deletions:
            return []

        zone_ids = {record.zone_id for record in records}
        if len(zone_ids) > 1:
            raise ValueError("save_records requires all records to share one zone")
        if not zone_ids:
            raise ValueError("save_records needs at least one record to address a zone")
        zone_id = zone_ids.pop()

        logger.debug(
            f"Saving {len(records)} records and deleting {len(deletions)} in {zone_id}"
        )

        operations = [self._operation_for(record, save_policy) for record in records]
        operations.extend(
            {"operationType": "forceDelete", "record": {"recordName": name}}
            for name in deletions
        )
        body = {
            "operations": operations,
            "zoneID": zone_id.to_api_format(),
            "atomic": True,
        }

        response = self._post(scope, "records/modify", body, "save_records")

        saved: list[Record] = []
        for item in response.get("records", []):
            if item.get("serverErrorCode"):
                raise error_from_payload("save_records", item)
            if item.get("deleted"):
                continue
            saved.append(Record.from_api_response(item, zone_id))

        by_name = {record.record_name: record for record in saved}
        for record in records:
            server_copy = by_name.get(record.record_name)
            if server_copy is not None:
                record.change_tag = server_copy.change_tag
                record.short_guid = server_copy.short_guid or record.short_guid

        logger.info(f"Saved {len(saved)} records in {zone_id}")
        return saved

    def save_record(
        self,
        record: Record,
        save_policy: SavePolicy = SavePolicy.IF_SERVER_RECORD_UNCHANGED,
        scope: DatabaseScope = DatabaseScope.PRIVATE,
    ) -> Record:
        """
        Save a single record.

        Returns:
            Server copy of the record

        Raises:
            CloudKitAPIError: If the save fails
        """
        saved = self.save_records([record], save_policy=save_policy, scope=scope)
        return saved[0] if saved else record

    def fetch_record(
        self,
        record_name: str,
        zone_id: ZoneID,
        scope: DatabaseScope = DatabaseScope.PRIVATE,
    ) -> Record:
        """
        Fetch a single record by name.

        Raises:
            RecordNotFoundError: If the record does not exist
            CloudKitAPIError: If the lookup fails
        """
        logger.debug(f"Fetching record: {record_name} in {zone_id}")

        body = {
            "records": [{"recordName": record_name}],
            "zoneID": zone_id.to_api_format(),
        }
        response = self._post(scope, "records/lookup", body, f"fetch_record({record_name})")

        items = response.get("records", [])
        if not items:
            raise RecordNotFoundError(
                f"Record not found: {record_name}", server_error_code="NOT_FOUND"
            )
        item = items[0]
        if item.get("serverErrorCode"):
            raise error_from_payload(f"fetch_record({record_name})", item)

        return Record.from_api_response(item, zone_id)

    # ========== Shares ==========

    def create_share(self, root_record: Record, title: str) -> Share:
        """
        Build a share for a root record without saving it.

        The root record is linked to the new share; save both together
        with save_records() to make the share durable.
        """
        share = Share(
            record_name=f"Share-{uuid.uuid4()}",
            zone_id=root_record.zone_id,
            root_record_name=root_record.record_name,
            title=title,
        )
        root_record.share = share.reference()
        return share

    def resolve_share(self, short_guid: str) -> ShareMetadata:
        """
        Resolve a share link identifier to its metadata.

        Raises:
            RecordNotFoundError: If no share uses this identifier
            CloudKitAPIError: If the request fails
        """
        logger.debug(f"Resolving share: {short_guid}")

        body = {"shortGUIDs": [{"value": short_guid}]}
        response = self._post(
            DatabaseScope.PUBLIC, "records/resolve", body, f"resolve_share({short_guid})"
        )

        results = response.get("results", [])
        if not results:
            raise RecordNotFoundError(
                f"Share not found: {short_guid}", server_error_code="NOT_FOUND"
            )
        result = results[0]
        if result.get("serverErrorCode"):
            raise error_from_payload(f"resolve_share({short_guid})", result)

        metadata = ShareMetadata.from_api_response(result)
        if not metadata.short_guid:
            metadata.short_guid = short_guid
        return metadata

    def accept_shares(self, metadatas: list[ShareMetadata]) -> list[AcceptShareResult]:
        """
        Accept shares on behalf of the signed-in user.

        Returns:
            One result per share, in request order; failed shares carry an error

        Raises:
            CloudKitAPIError: If the request as a whole fails
        """
        if not metadatas:
            return []

        logger.debug(f"Accepting {len(metadatas)} shares")

        body = {"shortGUIDs": [{"value": metadata.short_guid} for metadata in metadatas]}
        response = self._post(DatabaseScope.PUBLIC, "records/accept", body, "accept_shares")

        results: list[AcceptShareResult] = []
        items = response.get("results", [])
        for index, metadata in enumerate(metadatas):
            item = items[index] if index < len(items) else {}
            error = None
            if item.get("serverErrorCode"):
                error = error_from_payload(
                    f"accept_share({metadata.short_guid})", item
                )
            elif not item:
                error = CloudKitAPIError(
                    f"accept_share({metadata.short_guid}) returned no result"
                )
            results.append(AcceptShareResult(metadata=metadata, error=error))

        return results

    # ========== Users ==========

    def get_current_user(self) -> dict[str, Any]:
        """
        Return the signed-in user's identity.

        Raises:
            AuthenticationRequiredError: If no user is signed in
        """
        return self._get(DatabaseScope.PUBLIC, "users/current", "get_current_user")

    def get_sign_in_url(self) -> str | None:
        """
        Return the sign-in page URL, or None if a user is already signed in.
        """
        try:
            self.get_current_user()
        except AuthenticationRequiredError as e:
            return e.redirect_url
        return None
