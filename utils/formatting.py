"""
Formatting utilities.
"""


def format_value(value: str, empty: str = "(empty)") -> str:
    """
    Format a field value for display in a message.

    Args:
        value: The normalised text value.
        empty: Placeholder shown for an empty value.

    Returns:
        Display string.
    """
    return value if value else empty


def format_change_message(label: str, old_value: str, new_value: str, author: str) -> str:
    """
    Format a single field change for a notification.

    Args:
        label: Human-readable field name.
        old_value: Previous value as text.
        new_value: New value as text.
        author: Display name of the person who made the change.

    Returns:
        Formatted message string.
    """
    return (
        f'Updated {label} from "{format_value(old_value)}" '
        f'to "{format_value(new_value)}" by {author}'
    )


def format_status_message(record_id: str, status_label: str) -> str:
    """
    Format a derived status change for a notification.

    Args:
        record_id: External key of the record.
        status_label: The new derived status label.

    Returns:
        Formatted message string.
    """
    return f"{record_id}: {status_label}"
