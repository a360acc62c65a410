"""
Environment configuration and package logging
"""
import logging
import os
import re
from pathlib import Path

from dotenv import load_dotenv

from .client import InvalidArgument, LogAnalyticsClient, is_base64

local_env = Path(".env")
if local_env.exists():
    load_dotenv(dotenv_path=local_env)


logger = logging.getLogger(__package__)
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

WORKSPACE_ID_LENGTH = 36
SHARED_KEY_LENGTH = 88
GUID_PATTERN = re.compile(r"[0-9a-fA-F]{8}(-[0-9a-fA-F]{4}){3}-[0-9a-fA-F]{12}")

app_state = {"bootstrapped": False}


def bootstrap(_app_state: dict):
    """
    Load app state from env vars or dotenv

    Args:
        _app_state (dict): app state

    Raises:
        InvalidArgument: if WORKSPACE_ID or SHARED_KEY are not set
    """
    try:
        workspace_id, shared_key = os.environ["WORKSPACE_ID"], os.environ["SHARED_KEY"]
    except KeyError as exc:
        raise InvalidArgument("Please set WORKSPACE_ID and SHARED_KEY env vars") from exc
    _app_state.update(
        {
            "workspace_id": workspace_id,
            "shared_key": shared_key,
            "endpoint": os.environ.get("LOG_ANALYTICS_ENDPOINT") or None,
            "bootstrapped": True,
        }
    )


def settings(key: str):
    """
    Get a setting from the app state, bootstrapping from the environment on first use.

    Args:
        key (str): setting key, one of workspace_id, shared_key, endpoint

    Returns:
        setting value
    """
    if not app_state["bootstrapped"]:
        bootstrap(app_state)
    return app_state[key]


def check_credentials(workspace_id: str, shared_key: str) -> list[str]:
    """
    Sanity check the credential shapes the Azure portal hands out: a 36 character
    workspace GUID and an 88 character base64 key.

    Returns:
        list[str]: problems found, empty if the credentials look usable
    """
    problems = []
    if not workspace_id:
        problems.append("WORKSPACE_ID is not set")
    elif len(workspace_id) != WORKSPACE_ID_LENGTH or not GUID_PATTERN.fullmatch(workspace_id):
        problems.append(f"WORKSPACE_ID should be a {WORKSPACE_ID_LENGTH} character GUID")
    if not shared_key:
        problems.append("SHARED_KEY is not set")
    else:
        if len(shared_key) != SHARED_KEY_LENGTH:
            problems.append(
                f"SHARED_KEY should be {SHARED_KEY_LENGTH} characters, got {len(shared_key)}"
            )
        if not is_base64(shared_key):
            problems.append("SHARED_KEY is not a valid base64 string")
    return problems


def client_from_env(**kwargs) -> LogAnalyticsClient:
    """
    Create a LogAnalyticsClient for the workspace configured in the environment.

    Args:
        **kwargs: passed through to LogAnalyticsClient (e.g. http_client)

    Returns:
        LogAnalyticsClient: client, close it or use it as a context manager
    """
    kwargs.setdefault("endpoint", settings("endpoint"))
    return LogAnalyticsClient(settings("workspace_id"), settings("shared_key"), **kwargs)
