"""
Client for the Azure Log Analytics HTTP Data Collector API, and the CLI entry point
"""
import importlib.metadata
import json
import logging
import os
import socket
from dataclasses import dataclass

from fire import Fire

from .client import (
    AsyncLogAnalyticsClient,
    InvalidArgument,
    InvalidFormat,
    LogAnalyticsClient,
    OutOfRange,
    TransportFailure,
    build_signature,
    rfc1123date,
    serialize,
    validate_record,
)
from .config import check_credentials, client_from_env, logger, settings

__all__ = [
    "AsyncLogAnalyticsClient",
    "InvalidArgument",
    "InvalidFormat",
    "LogAnalyticsClient",
    "OutOfRange",
    "TransportFailure",
    "build_signature",
    "check_credentials",
    "client_from_env",
    "rfc1123date",
    "serialize",
    "validate_record",
]
__version__ = importlib.metadata.version(__package__)


@dataclass
class DemoEntry:
    """
    Sample record with a string and an integer column
    """

    X: str
    Y: int


def send(log_type: str, *records, resource_id: str = None, time_generated_field: str = None):
    """
    Send records to {log_type}_CL in the workspace configured by WORKSPACE_ID and SHARED_KEY.

    Args:
        log_type (str): custom log name
        *records: dicts or json object strings, e.g. '{"Message": "hello", "Severity": "Info"}'
        resource_id (str, optional): Azure resource id to associate the records with
        time_generated_field (str, optional): field holding the TimeGenerated value

    Returns:
        int: http status code, or None if there was nothing to send
    """
    entries = [json.loads(record) if isinstance(record, str) else record for record in records]
    with client_from_env() as client:
        response = client.log_entries(
            entries, log_type, resource_id=resource_id, time_generated_field=time_generated_field
        )
    if response is None:
        logger.info("Nothing to upload")
        return None
    return response.status_code


def demo(log_type: str = "TuplesLog"):
    """
    Send two sample records, first on their own then as a batch.

    Args:
        log_type (str, optional): custom log name. Defaults to "TuplesLog".
    """
    logger.info("BEGIN")
    hostname = socket.gethostname()
    entries = [DemoEntry(X=f"Test1 Console {hostname}", Y=1), DemoEntry(X=f"Test2 Console {hostname}", Y=2)]
    with client_from_env() as client:
        client.log_entry(entries[0], log_type)
        client.log_entries(entries, log_type)
    logger.info("END")


def check_env() -> str:
    """
    Validate WORKSPACE_ID and SHARED_KEY from the environment (or .env)

    Raises:
        InvalidArgument: listing every problem found
    """
    problems = check_credentials(os.environ.get("WORKSPACE_ID"), os.environ.get("SHARED_KEY"))
    if problems:
        raise InvalidArgument("; ".join(problems))
    return "WORKSPACE_ID and SHARED_KEY look valid"


def signature(body: str, date: str = None) -> str:
    """
    Print the Authorization header value for a request body, useful when debugging 403s.

    Args:
        body (str): serialized json body exactly as sent
        date (str, optional): x-ms-date value. Defaults to now.
    """
    if not isinstance(body, str):
        # fire parses json arguments into python objects
        body = json.dumps(body, ensure_ascii=False, separators=(",", ":"))
    return build_signature(
        settings("workspace_id"),
        settings("shared_key"),
        date or rfc1123date(),
        len(body.encode("utf-8")),
    )


def cli():
    """
    Entry point for the CLI to send records to Log Analytics
    """
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    Fire(
        {
            "send": send,
            "demo": demo,
            "checkEnv": check_env,
            "signature": signature,
        }
    )
