from typing import TypedDict, Optional, Any, Dict, Union
from typing_extensions import NotRequired  # For Python < 3.11 compatibility
from datetime import datetime
import numbers
from uuid import UUID

ID_TYPES = Union[numbers.Number, str, UUID, int]

# isinstance() friendly form of ID_TYPES
ID_CLASSES = (numbers.Number, str, UUID)


class OptionalCaptureArgs(TypedDict):
    """Optional arguments for the capture method.

    Args:
        distinct_id: Unique identifier for the person associated with this event. Required.
        properties: Dictionary of properties to track with the event
        timestamp: When the event occurred (defaults to current time)
        uuid: Unique identifier for this specific event. If not provided, one is generated.
        groups: Group identifiers to associate with this event (format: {group_type: group_key})
    """

    distinct_id: NotRequired[Optional[ID_TYPES]]
    properties: NotRequired[Optional[Dict[str, Any]]]
    timestamp: NotRequired[Optional[Union[datetime, str]]]
    uuid: NotRequired[Optional[str]]
    groups: NotRequired[Optional[Dict[str, str]]]


class OptionalIdentifyArgs(TypedDict):
    """Optional arguments for identify, alias and group_identify.

    Args:
        properties: Dictionary of properties to set
        timestamp: When the call happened (defaults to current time)
        uuid: Unique identifier for this operation. If not provided, one is generated.
    """

    properties: NotRequired[Optional[Dict[str, Any]]]
    timestamp: NotRequired[Optional[Union[datetime, str]]]
    uuid: NotRequired[Optional[str]]
