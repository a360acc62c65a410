"""
Azure Log Analytics HTTP Data Collector client
"""
# pylint: disable=logging-fstring-interpolation
import base64
import binascii
import dataclasses
import hashlib
import hmac
import json
import logging
import math
import re
import types
import typing
import uuid
from collections.abc import Mapping
from datetime import date, datetime, timezone
from email.utils import format_datetime
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

API_VERSION = "2016-04-01"
AZURE_COMMERCIAL_ENDPOINT = "ods.opinsights.azure.com"
RESOURCE = "/api/logs"
CONTENT_TYPE = "application/json"
MAX_LOG_TYPE_LENGTH = 100
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1

# datetime is a subclass of date, bool of int
ALLOWED_TYPES = (str, bool, float, int, datetime, date, uuid.UUID)
ALLOWED_TYPE_NAMES = "String, Boolean, Double, Integer, DateTime, Date and UUID"

BASE64_PATTERN = re.compile(r"[a-zA-Z0-9+/]*={0,3}")
LOG_TYPE_PATTERN = re.compile(r"[a-zA-Z0-9_]+")

# Failures from the transport are never wrapped, this only names what callers catch
TransportFailure = httpx.HTTPError


class InvalidArgument(ValueError):
    """
    A required argument is missing or empty.
    """


class InvalidFormat(InvalidArgument):
    """
    The shared key is not a valid base64 string.
    """


class OutOfRange(ValueError):
    """
    A log type or record field falls outside what the Data Collector API accepts.
    """


def is_base64(text: str) -> bool:
    "Syntax check only, length must be a multiple of 4 with at most 3 trailing pad characters"
    text = text.strip()
    return len(text) % 4 == 0 and BASE64_PATTERN.fullmatch(text) is not None


def is_alphanum_underscore(text: str) -> bool:
    return LOG_TYPE_PATTERN.fullmatch(text) is not None


def rfc1123date(now: Optional[datetime] = None) -> str:
    """
    Format a timestamp for the x-ms-date header, e.g. `Tue, 03 Jun 2025 12:00:00 GMT`.

    Args:
        now (datetime, optional): timestamp to format, naive values are taken as UTC.
            Defaults to the current time.

    Returns:
        str: RFC 1123 date string
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return format_datetime(now.astimezone(timezone.utc), usegmt=True)


def build_signature(
    customer_id: str,
    shared_key: str,
    date: str,  # pylint: disable=redefined-outer-name
    content_length: int,
    method: str = "POST",
    content_type: str = CONTENT_TYPE,
    resource: str = RESOURCE,
) -> str:
    """
    Build the authorization header for the Log Analytics Data Collector API.

    Args:
        customer_id (str): The workspace ID.
        shared_key (str): The primary or the secondary Connected Sources client authentication key.
        date (str): The request date in RFC1123 format.
        content_length (int): The length of the request body in UTF-8 bytes.
        method (str, optional): The HTTP method. Defaults to "POST".
        content_type (str, optional): The content type of the request. Defaults to "application/json".
        resource (str, optional): The resource URI. Defaults to "/api/logs".

    Returns:
        str: The `SharedKey {customer_id}:{signature}` header value.
    """
    x_headers = "x-ms-date:" + date
    string_to_hash = "\n".join([method, str(content_length), content_type, x_headers, resource])
    bytes_to_hash = bytes(string_to_hash, encoding="utf-8")
    decoded_key = base64.b64decode(shared_key)
    encoded_hash = base64.b64encode(
        hmac.new(decoded_key, bytes_to_hash, digestmod=hashlib.sha256).digest()
    ).decode()
    return f"SharedKey {customer_id}:{encoded_hash}"


def _allowed_value(value) -> bool:
    if value is None or isinstance(value, bool):
        return True
    if isinstance(value, int):
        return INT64_MIN <= value <= INT64_MAX
    if isinstance(value, float):
        # NaN and Infinity have no json representation
        return math.isfinite(value)
    return isinstance(value, ALLOWED_TYPES)


def _allowed_annotation(annotation) -> bool:
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        # only Optional[T] of an allowed T
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        return len(args) == 1 and _allowed_annotation(args[0])
    if typing.get_origin(annotation) is not None:
        # list[str], tuple[int, ...] and friends
        return False
    return isinstance(annotation, type) and issubclass(annotation, ALLOWED_TYPES)


def _field_error(name: str, entity) -> OutOfRange:
    return OutOfRange(
        f"Property '{name}' of entity with type '{type(entity).__qualname__}' "
        f"is not one of the valid properties: {ALLOWED_TYPE_NAMES}."
    )


def validate_record(entity) -> None:
    """
    Check every field of a record holds a type the Data Collector API accepts.

    Mappings are checked by the runtime type of their values, dataclass instances by
    their declared field types as well.

    Raises:
        OutOfRange: naming the first offending field and the record type
    """
    if dataclasses.is_dataclass(entity) and not isinstance(entity, type):
        hints = typing.get_type_hints(type(entity))
        for field in dataclasses.fields(entity):
            if not _allowed_annotation(hints[field.name]):
                raise _field_error(field.name, entity)
            if not _allowed_value(getattr(entity, field.name)):
                raise _field_error(field.name, entity)
    elif isinstance(entity, Mapping):
        for name, value in entity.items():
            if not isinstance(name, str):
                raise OutOfRange(
                    f"Field {name!r} of entity with type '{type(entity).__qualname__}' must be named by a string."
                )
            if not _allowed_value(value):
                raise _field_error(name, entity)
    else:
        raise OutOfRange(
            f"Entity with type '{type(entity).__qualname__}' must be a mapping or a dataclass instance."
        )


def _record_dict(entity) -> dict:
    if dataclasses.is_dataclass(entity):
        items = ((field.name, getattr(entity, field.name)) for field in dataclasses.fields(entity))
    else:
        items = entity.items()
    return {name: value for name, value in items if value is not None}


def _json_default(value):
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize(entities: list) -> str:
    """
    Dump a batch of records as a compact json array, dropping fields that are None.
    """
    return json.dumps(
        [_record_dict(entity) for entity in entities],
        default=_json_default,
        ensure_ascii=False,
        allow_nan=False,
        separators=(",", ":"),
    )


def validate_log_type(log_type: str) -> None:
    """
    Log types name the custom table ({log_type}_CL) the records land in.

    Raises:
        InvalidArgument: if log_type is None or empty
        OutOfRange: if log_type is longer than 100 characters or not alphanumeric/underscore
    """
    if not log_type:
        raise InvalidArgument("parameter 'log_type' cannot be None, and must be a string.")
    if len(log_type) > MAX_LOG_TYPE_LENGTH:
        raise OutOfRange(
            f"log_type is {len(log_type)} characters, the size limit is {MAX_LOG_TYPE_LENGTH} characters."
        )
    if not is_alphanum_underscore(log_type):
        raise OutOfRange(
            f"log_type {log_type!r} can only contain letters, numbers, and underscore."
        )


class _ClientBase:
    """
    Credentials, validation and request building shared by the sync and async clients.
    """

    def __init__(self, workspace_id: str, shared_key: str, endpoint: Optional[str] = None):
        if not workspace_id or not workspace_id.strip():
            raise InvalidArgument("workspace_id cannot be None or empty")
        if not shared_key or not shared_key.strip():
            raise InvalidArgument("shared_key cannot be None or empty")
        if not is_base64(shared_key):
            raise InvalidFormat("shared_key must be a valid Base64 encoded string")
        shared_key = shared_key.strip()
        try:
            base64.b64decode(shared_key, validate=True)
        except binascii.Error as exc:
            raise InvalidFormat("shared_key must be a valid Base64 encoded string") from exc
        self._workspace_id = workspace_id
        self._shared_key = shared_key
        self._request_url = (
            f"https://{workspace_id}.{endpoint or AZURE_COMMERCIAL_ENDPOINT}"
            f"{RESOURCE}?api-version={API_VERSION}"
        )

    @property
    def workspace_id(self) -> str:
        return self._workspace_id

    @property
    def request_url(self) -> str:
        return self._request_url

    def compute_signature(self, body: str, date: str) -> str:  # pylint: disable=redefined-outer-name
        """
        Sign a serialized body for the given x-ms-date value with this client's credentials.
        """
        return build_signature(self._workspace_id, self._shared_key, date, len(body.encode("utf-8")))

    def _check_entry(self, entity, log_type: str) -> None:
        if entity is None:
            raise InvalidArgument("parameter 'entity' cannot be None")
        validate_log_type(log_type)
        validate_record(entity)

    def _prepare(
        self,
        entities,
        log_type: str,
        resource_id: Optional[str] = None,
        time_generated_field: Optional[str] = None,
    ) -> Optional[tuple]:
        """
        Validate a batch and build the request body and headers.

        Returns:
            tuple (bytes, dict): body and headers, or None if there is nothing to upload
        """
        if entities is None:
            raise InvalidArgument("parameter 'entities' cannot be None")
        if isinstance(entities, Mapping):
            raise InvalidArgument("parameter 'entities' must be a sequence of records, use log_entry for one")
        validate_log_type(log_type)
        entities = list(entities)
        if not entities:
            logger.debug(f"Nothing to upload to {log_type}_CL")
            return None
        for entity in entities:
            validate_record(entity)

        body = serialize(entities)
        rfc1123 = rfc1123date()
        headers = {
            "content-type": CONTENT_TYPE,
            "Authorization": self.compute_signature(body, rfc1123),
            "Log-Type": log_type,
            "x-ms-date": rfc1123,
        }
        if time_generated_field and time_generated_field.strip():
            headers["time-generated-field"] = time_generated_field
        if resource_id and resource_id.strip():
            headers["x-ms-AzureResourceId"] = resource_id
        content = body.encode("utf-8")
        logger.info(f"Uploading {len(content)} bytes to {log_type}_CL")
        logger.debug(
            f"POST {self._request_url} "
            + str({key: value for key, value in headers.items() if key != "Authorization"})
        )
        return content, headers

    @staticmethod
    def _check_response(response: httpx.Response) -> httpx.Response:
        if not response.is_success:
            logger.warning(f"Log Analytics upload failed: {response.status_code} {response.text}")
        response.raise_for_status()
        return response


class LogAnalyticsClient(_ClientBase):
    """
    Sends records to a Log Analytics workspace through the HTTP Data Collector API.

    One POST per call, no retries: validation errors are raised before any request is
    made and httpx errors propagate unchanged.

    Usage:
        with LogAnalyticsClient(workspace_id, shared_key) as client:
            client.log_entry({"Message": "hello", "Severity": "Info"}, "AppLog")
    """

    def __init__(
        self,
        workspace_id: str,
        shared_key: str,
        endpoint: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Args:
            workspace_id (str): workspace (customer) id
            shared_key (str): base64 primary or secondary workspace key
            endpoint (str, optional): endpoint suffix. Defaults to "ods.opinsights.azure.com".
            http_client (httpx.Client, optional): transport, closed along with this client.
                Defaults to a new httpx.Client.

        Raises:
            InvalidArgument: if workspace_id or shared_key is empty
            InvalidFormat: if shared_key is not base64
        """
        super().__init__(workspace_id, shared_key, endpoint)
        self._http_client = http_client if http_client is not None else httpx.Client(timeout=None)

    def log_entry(
        self,
        entity,
        log_type: str,
        resource_id: Optional[str] = None,
        time_generated_field: Optional[str] = None,
    ) -> httpx.Response:
        """
        Upload a single record into table {log_type}_CL.

        Args:
            entity (dict | dataclass): record to upload
            log_type (str): custom log name, letters, digits and underscore, at most 100 characters
            resource_id (str, optional): Azure resource id to associate the record with
            time_generated_field (str, optional): name of the field holding the TimeGenerated value

        Returns:
            httpx.Response: the successful response
        """
        self._check_entry(entity, log_type)
        return self.log_entries([entity], log_type, resource_id, time_generated_field)

    def log_entries(
        self,
        entities,
        log_type: str,
        resource_id: Optional[str] = None,
        time_generated_field: Optional[str] = None,
    ) -> Optional[httpx.Response]:
        """
        Upload a batch of same-shaped records into table {log_type}_CL as one request.
        An empty batch sends nothing and returns None.
        """
        prepared = self._prepare(entities, log_type, resource_id, time_generated_field)
        if prepared is None:
            return None
        content, headers = prepared
        response = self._http_client.post(self._request_url, content=content, headers=headers)
        return self._check_response(response)

    def close(self) -> None:
        self._http_client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class AsyncLogAnalyticsClient(_ClientBase):
    """
    asyncio flavour of LogAnalyticsClient backed by httpx.AsyncClient.
    """

    def __init__(
        self,
        workspace_id: str,
        shared_key: str,
        endpoint: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(workspace_id, shared_key, endpoint)
        self._http_client = (
            http_client if http_client is not None else httpx.AsyncClient(timeout=None)
        )

    async def log_entry(
        self,
        entity,
        log_type: str,
        resource_id: Optional[str] = None,
        time_generated_field: Optional[str] = None,
    ) -> httpx.Response:
        self._check_entry(entity, log_type)
        return await self.log_entries([entity], log_type, resource_id, time_generated_field)

    async def log_entries(
        self,
        entities,
        log_type: str,
        resource_id: Optional[str] = None,
        time_generated_field: Optional[str] = None,
    ) -> Optional[httpx.Response]:
        prepared = self._prepare(entities, log_type, resource_id, time_generated_field)
        if prepared is None:
            return None
        content, headers = prepared
        response = await self._http_client.post(self._request_url, content=content, headers=headers)
        return self._check_response(response)

    async def aclose(self) -> None:
        await self._http_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
