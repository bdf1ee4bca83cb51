"""
Data File Ingestion

Turns an uploaded JSON file into the list of raw documents for one
collection. The top-level shape is classified once, then dispatched:

- ARRAY               one document per element
- OBJECT_OF_OBJECTS   one document per key; the key becomes the document id
- SINGLE_OBJECT       the object itself is the only document
- EMPTY_OBJECT        rejected
- INVALID             rejected (strings, numbers, booleans, null)

The collection name is the file name without its extension.
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import PurePath
from typing import Any

import structlog

from firestore_transfer.firestore.errors import InputFormatError
from firestore_transfer.models import RESERVED_ID_KEY, DataFile

logger = structlog.get_logger()


class JsonShape(str, Enum):
    """Top-level shape of a data file."""
    ARRAY = "array"
    OBJECT_OF_OBJECTS = "object_of_objects"
    SINGLE_OBJECT = "single_object"
    EMPTY_OBJECT = "empty_object"
    INVALID = "invalid"


def classify(payload: Any) -> JsonShape:
    """Classify the top-level shape of a parsed JSON payload."""
    if isinstance(payload, list):
        return JsonShape.ARRAY
    if isinstance(payload, dict):
        if not payload:
            return JsonShape.EMPTY_OBJECT
        if all(isinstance(value, dict) for value in payload.values()):
            return JsonShape.OBJECT_OF_OBJECTS
        return JsonShape.SINGLE_OBJECT
    return JsonShape.INVALID


def normalize(payload: Any, file_name: str | None = None) -> list[dict[str, Any]]:
    """
    Convert a parsed payload into raw documents.

    Documents keyed by an object-of-objects carry their key under ``_id``;
    the writer strips it again before encoding. Input values are copied,
    never mutated.

    Args:
        payload: Parsed JSON value
        file_name: Source file name, used in error messages

    Returns:
        List of document dicts

    Raises:
        InputFormatError: If the payload cannot be turned into documents
    """
    shape = classify(payload)

    if shape is JsonShape.ARRAY:
        documents = []
        for index, element in enumerate(payload):
            if not isinstance(element, dict):
                raise InputFormatError(
                    "Invalid JSON structure. Array elements must be objects",
                    file_name=file_name,
                    details=f"Element {index} is {_json_type(element)}",
                )
            documents.append(dict(element))
        return documents

    if shape is JsonShape.OBJECT_OF_OBJECTS:
        return [{**value, RESERVED_ID_KEY: key} for key, value in payload.items()]

    if shape is JsonShape.SINGLE_OBJECT:
        return [dict(payload)]

    if shape is JsonShape.EMPTY_OBJECT:
        raise InputFormatError("Empty JSON object", file_name=file_name)

    raise InputFormatError(
        "Invalid JSON structure. Must be an object or array",
        file_name=file_name,
        details=f"Top level is {_json_type(payload)}",
    )


def collection_name_for(file_name: str) -> str:
    """Collection name for a data file: its base name without extension."""
    return PurePath(file_name).stem


def parse_data_file(data_file: DataFile) -> tuple[str, list[dict[str, Any]]]:
    """
    Parse a data file into its collection name and raw documents.

    Raises:
        InputFormatError: On non-UTF-8 bytes, malformed JSON or an unusable
            top-level shape
    """
    collection = collection_name_for(data_file.filename)
    content = data_file.content
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InputFormatError(
                "Invalid file encoding. Data files must be UTF-8",
                file_name=data_file.filename,
                details=str(e),
            ) from e

    try:
        payload = json.loads(content)
    except json.JSONDecodeError as e:
        raise InputFormatError(
            "Invalid JSON format",
            file_name=data_file.filename,
            details=str(e),
        ) from e

    documents = normalize(payload, file_name=data_file.filename)
    logger.debug(
        "data_file_parsed",
        file_name=data_file.filename,
        collection=collection,
        shape=classify(payload).value,
        documents=len(documents),
    )
    return collection, documents


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "a boolean"
    if isinstance(value, (int, float)):
        return "a number"
    if isinstance(value, str):
        return "a string"
    if isinstance(value, list):
        return "an array"
    return "an object"
