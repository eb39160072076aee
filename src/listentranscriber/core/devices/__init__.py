from .directory import (
    SELECTION_RULES,
    AudioDevice,
    SelectionRule,
    find_device,
    find_device_by_index,
    parse_device_listing,
    select_preferred,
    selection_message,
)

__all__ = [
    "AudioDevice",
    "SelectionRule",
    "SELECTION_RULES",
    "parse_device_listing",
    "find_device",
    "find_device_by_index",
    "select_preferred",
    "selection_message",
]
