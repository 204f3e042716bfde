"""Decoder for signal-cli JSON output.

`signal-cli -o json` output is not stable across versions: some commands print
a single JSON document, others one JSON object per line, and field names drift
between releases. Decoding is therefore a layered fallback chain:

1. Whole-document parse.
2. JSON-per-line parse (any undecodable line fails the whole invocation).
3. Per-field optional lookups that return None instead of raising.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from loguru import logger

from messaging.models import (
    UNKNOWN_CONVERSATION_KEY,
    IncomingMessage,
    contact_key,
    group_key,
)

from .exceptions import ProtocolParseError


@dataclass(frozen=True)
class Contact:
    """An entry from `listContacts`."""

    number: str
    name: Optional[str] = None


@dataclass(frozen=True)
class Group:
    """An entry from `listGroups`."""

    id: str
    name: Optional[str] = None


def decode_json_output(text: str) -> Optional[Any]:
    """
    Decode raw signal-cli stdout into a JSON value.

    Args:
        text: Raw stdout of one invocation

    Returns:
        None for empty output, the parsed value when the whole text is one
        JSON document, otherwise a list with one item per non-empty line.

    Raises:
        ProtocolParseError: if a line is not valid JSON either.
    """
    s = text.strip()
    if not s:
        return None

    try:
        return json.loads(s)
    except json.JSONDecodeError:
        pass

    items: List[Any] = []
    for line in s.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            items.append(json.loads(line))
        except json.JSONDecodeError as e:
            raise ProtocolParseError(
                f"failed to parse JSON line from signal-cli: {line[:200]}"
            ) from e
    return items


# ==================== Optional field lookups ====================


def _as_dict(value: Any) -> Optional[Dict[str, Any]]:
    return value if isinstance(value, dict) else None


def _get_dict(obj: Optional[Dict[str, Any]], key: str) -> Optional[Dict[str, Any]]:
    if obj is None:
        return None
    return _as_dict(obj.get(key))


def _get_str(obj: Optional[Dict[str, Any]], key: str) -> Optional[str]:
    if obj is None:
        return None
    value = obj.get(key)
    return value if isinstance(value, str) else None


def _get_int(obj: Optional[Dict[str, Any]], key: str) -> Optional[int]:
    if obj is None:
        return None
    value = obj.get(key)
    # bool is an int subclass but never a timestamp
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _first_str(obj: Optional[Dict[str, Any]], *keys: str) -> Optional[str]:
    for key in keys:
        value = _get_str(obj, key)
        if value is not None:
            return value
    return None


def _clean_name(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    name = name.strip()
    return name or None


# ==================== receive ====================


def extract_timestamp(item: Dict[str, Any]) -> Optional[int]:
    envelope = _get_dict(item, "envelope")
    ts = _get_int(envelope, "timestamp")
    if ts is None:
        ts = _get_int(item, "timestamp")
    return ts


def extract_source(item: Dict[str, Any]) -> Optional[str]:
    return _first_str(_get_dict(item, "envelope"), "sourceNumber", "source")


def extract_data_message(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    data = _get_dict(_get_dict(item, "envelope"), "dataMessage")
    if data is None:
        data = _get_dict(item, "dataMessage")
    return data


def extract_group_id(data_message: Optional[Dict[str, Any]]) -> Optional[str]:
    return _first_str(_get_dict(data_message, "groupInfo"), "groupId", "group_id")


def conversation_key_for(group_id: Optional[str], source: Optional[str]) -> str:
    """Group membership takes precedence over the direct sender."""
    if group_id is not None:
        return group_key(group_id)
    if source is not None:
        return contact_key(source)
    return UNKNOWN_CONVERSATION_KEY


def parse_receive_item(item: Any) -> Optional[IncomingMessage]:
    """
    Normalize one receive item.

    Returns None for anything that is not a text message (typing indicators,
    receipts, sync events, non-object items).
    """
    obj = _as_dict(item)
    if obj is None:
        return None

    data_message = extract_data_message(obj)
    body = _get_str(data_message, "message") or ""
    if not body:
        return None

    source = extract_source(obj)
    return IncomingMessage(
        conversation_key=conversation_key_for(extract_group_id(data_message), source),
        body=body,
        source=source,
        timestamp_ms=extract_timestamp(obj),
    )


def parse_receive_value(value: Any) -> List[IncomingMessage]:
    """Normalize a decoded receive value, preserving item order."""
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]

    messages: List[IncomingMessage] = []
    for item in items:
        msg = parse_receive_item(item)
        if msg is not None:
            messages.append(msg)

    skipped = len(items) - len(messages)
    if skipped:
        logger.debug(f"SIGNAL_PROTOCOL: Skipped {skipped} non-text receive item(s)")
    return messages


def parse_receive_output(text: str) -> List[IncomingMessage]:
    """
    Turn the stdout of one `receive` invocation into incoming messages.

    Raises:
        ProtocolParseError: if the output is neither one JSON document nor
            JSON-per-line.
    """
    return parse_receive_value(decode_json_output(text))


# ==================== listings ====================


def _require_list(value: Any, command: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ProtocolParseError(f"{command} JSON was not an array")
    return value


def parse_accounts(value: Any) -> List[str]:
    """Account numbers from `listAccounts`."""
    accounts: List[str] = []
    for item in _require_list(value, "listAccounts"):
        number = _get_str(_as_dict(item), "number")
        if number:
            accounts.append(number)
    return accounts


def parse_contacts(value: Any) -> List[Contact]:
    """Contacts from `listContacts`; entries without a number are skipped."""
    contacts: List[Contact] = []
    for item in _require_list(value, "listContacts"):
        obj = _as_dict(item)
        number = _get_str(obj, "number")
        if not number:
            continue
        contacts.append(Contact(number=number, name=_clean_name(_get_str(obj, "name"))))
    return contacts


def parse_groups(value: Any) -> List[Group]:
    """Groups from `listGroups`; the id field name varies across versions."""
    groups: List[Group] = []
    for item in _require_list(value, "listGroups"):
        obj = _as_dict(item)
        group_id = _first_str(obj, "id", "groupId", "group_id")
        if group_id is None:
            continue
        groups.append(Group(id=group_id, name=_clean_name(_get_str(obj, "name"))))
    return groups
