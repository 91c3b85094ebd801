"""
Type-safe JSON conversion helpers.

JsonHandler converts between raw JSON structures and typed objects, logging
each step through the LogHandler so that partial failures are visible while
debugging policy files.
"""

import json
import traceback
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar

from policy_engine.exceptions import JsonParseError, JsonSerializeError
from policy_engine.utils.log_handler import LogHandler, get_log_handler

T = TypeVar("T")

_PREVIEW_LENGTH = 100
_FAILED_KEYS_SHOWN = 5


def is_valid_json_map(value: Any) -> bool:
    """Return True if value is a dict whose keys are all strings."""
    return isinstance(value, dict) and all(isinstance(key, str) for key in value)


class JsonHandler:
    """
    JSON parsing and serialization with diagnostic logging.

    Args:
        log_handler: LogHandler to report through (defaults to the shared one)
    """

    def __init__(self, log_handler: Optional[LogHandler] = None) -> None:
        self._log = log_handler

    @property
    def log(self) -> LogHandler:
        return self._log if self._log is not None else get_log_handler()

    def parse_map(
        self,
        json_map: Mapping[str, Any],
        from_json: Callable[[Dict[str, Any]], T],
        context: Optional[str] = None,
        allow_partial_success: bool = True,
    ) -> Dict[str, T]:
        """
        Convert every value of a JSON object with from_json.

        Args:
            json_map: Mapping of keys to JSON objects
            from_json: Constructor applied to each JSON object
            context: Label included in log entries
            allow_partial_success: Skip failing items instead of raising

        Returns:
            Mapping of keys to successfully converted items

        Raises:
            JsonParseError: If an item fails and partial success is not allowed
        """
        label = context or "unknown"
        result: Dict[str, T] = {}
        errors: Dict[str, str] = {}

        self.log.debug(
            "Starting JSON map parsing",
            context={
                "total_items": len(json_map),
                "context": label,
                "allow_partial_success": allow_partial_success,
            },
            operation="json_parse_map",
        )

        for key, value in json_map.items():
            try:
                if not is_valid_json_map(value):
                    raise TypeError(
                        f"expected a JSON object, got {type(value).__name__}"
                    )
                result[key] = from_json(value)
                self.log.debug(
                    "Successfully parsed item",
                    context={"key": key},
                    operation="json_parse_item",
                )
            except Exception as e:
                error_message = f'Failed to parse item with key "{key}": {e}'
                errors[key] = error_message

                self.log.error(
                    error_message,
                    error=e,
                    stack_trace=traceback.format_exc(),
                    context={
                        "key": key,
                        "value_type": type(value).__name__,
                        "expected_type": "dict",
                        "context": label,
                    },
                    operation="json_parse_error",
                )

                if not allow_partial_success:
                    raise JsonParseError(
                        f'Failed to parse item "{key}": {e}',
                        key=key,
                        original_error=e,
                    ) from e

        self.log.info(
            "JSON map parsing completed",
            context={
                "total_items": len(json_map),
                "successful_items": len(result),
                "failed_items": len(errors),
                "context": label,
            },
            operation="json_parse_complete",
        )

        if errors:
            self.log.warning(
                "Some items failed to parse",
                context={
                    "failed_count": len(errors),
                    "failed_keys": list(errors)[:_FAILED_KEYS_SHOWN],
                    "context": label,
                },
                operation="json_parse_partial_failure",
            )

        return result

    def map_to_json(
        self,
        items: Mapping[str, T],
        to_json: Callable[[T], Dict[str, Any]],
        context: Optional[str] = None,
        allow_partial_success: bool = True,
    ) -> Dict[str, Any]:
        """
        Serialize every value of a mapping with to_json.

        Args:
            items: Mapping of keys to typed items
            to_json: Serializer applied to each item
            context: Label included in log entries
            allow_partial_success: Skip failing items instead of raising

        Returns:
            Mapping of keys to JSON-compatible values

        Raises:
            JsonSerializeError: If an item fails and partial success is not allowed
        """
        label = context or "unknown"
        result: Dict[str, Any] = {}
        errors: Dict[str, str] = {}

        self.log.debug(
            "Starting JSON map serialization",
            context={
                "total_items": len(items),
                "context": label,
                "allow_partial_success": allow_partial_success,
            },
            operation="json_serialize_map",
        )

        for key, value in items.items():
            try:
                result[key] = to_json(value)
                self.log.debug(
                    "Successfully serialized item",
                    context={"key": key},
                    operation="json_serialize_item",
                )
            except Exception as e:
                error_message = f'Failed to serialize item with key "{key}": {e}'
                errors[key] = error_message

                self.log.error(
                    error_message,
                    error=e,
                    stack_trace=traceback.format_exc(),
                    context={
                        "key": key,
                        "value_type": type(value).__name__,
                        "context": label,
                    },
                    operation="json_serialize_error",
                )

                if not allow_partial_success:
                    raise JsonSerializeError(
                        f'Failed to serialize item "{key}": {e}',
                        key=key,
                        original_error=e,
                    ) from e

        self.log.info(
            "JSON map serialization completed",
            context={
                "total_items": len(items),
                "successful_items": len(result),
                "failed_items": len(errors),
                "context": label,
            },
            operation="json_serialize_complete",
        )

        if errors:
            self.log.warning(
                "Some items failed to serialize",
                context={
                    "failed_count": len(errors),
                    "failed_keys": list(errors)[:_FAILED_KEYS_SHOWN],
                    "context": label,
                },
                operation="json_serialize_partial_failure",
            )

        return result

    def try_parse(
        self,
        data: Dict[str, Any],
        from_json: Callable[[Dict[str, Any]], T],
        context: Optional[str] = None,
    ) -> Optional[T]:
        """Parse a single JSON object, returning None if from_json fails."""
        try:
            result = from_json(data)
        except Exception as e:
            self.log.error(
                "Failed to parse single item",
                error=e,
                stack_trace=traceback.format_exc(),
                context={"context": context or "unknown"},
                operation="json_parse_single_error",
            )
            return None

        self.log.debug(
            "Successfully parsed single item",
            context={"context": context or "unknown"},
            operation="json_parse_single",
        )
        return result

    def parse_json_string(
        self,
        json_string: str,
        context: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Parse a JSON string that must contain an object.

        Args:
            json_string: JSON text
            context: Label included in log entries

        Returns:
            The parsed object

        Raises:
            JsonParseError: If the text is empty, is not valid JSON, or does
                not contain a JSON object
        """
        label = context or "unknown"

        self.log.debug(
            "Starting JSON string parsing",
            context={"input_length": len(json_string), "context": label},
            operation="json_parse_string",
        )

        try:
            if not json_string:
                raise JsonParseError("Cannot parse empty JSON string")

            parsed = json.loads(json_string)

            if not isinstance(parsed, dict):
                raise JsonParseError(
                    "JSON string does not represent a valid object. "
                    f"Expected dict, got {type(parsed).__name__}"
                )
        except (JsonParseError, ValueError) as e:
            error_message = f"Failed to parse JSON string: {e}"
            preview = json_string
            if len(json_string) > _PREVIEW_LENGTH:
                preview = json_string[:_PREVIEW_LENGTH] + "..."

            self.log.error(
                error_message,
                error=e,
                stack_trace=traceback.format_exc(),
                context={
                    "input_length": len(json_string),
                    "input_preview": preview,
                    "context": label,
                },
                operation="json_parse_string_error",
            )

            if isinstance(e, JsonParseError):
                raise
            raise JsonParseError(error_message, original_error=e) from e

        self.log.debug(
            "Successfully parsed JSON string",
            context={"parsed_keys_count": len(parsed), "context": label},
            operation="json_parse_string_success",
        )
        return parsed
