"""
Update normalization.

Turns the accepted input shapes into an ordered list of serialized
``<Method>`` descriptors before anything is batched.
"""

from collections.abc import Mapping
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union
from xml.sax.saxutils import escape, quoteattr

import structlog

from listbatcher.config import UpdateCommand
from listbatcher.core.operation import OperationDescriptor

logger = structlog.get_logger(__name__)

FieldPair = Tuple[str, Any]
Updates = Union[str, Sequence[str], Sequence[Mapping], Sequence[Sequence[Any]], None]


def _is_pair(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) >= 2


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    return escape(str(value))


def build_field(name: str, value: Any) -> str:
    """Serialize one field assignment."""
    return f"<Field Name={quoteattr(str(name))}>{_format_value(value)}</Field>"


def build_method(method_id: int, command: UpdateCommand, fields: Iterable[FieldPair]) -> Optional[str]:
    """
    Serialize one ``<Method>``.

    Returns:
        The method, or None when there are no fields
    """
    body = "".join(build_field(name, value) for name, value in fields)
    if not body:
        return None
    return f'<Method ID="{method_id}" Cmd="{UpdateCommand(command).value}">{body}</Method>'


class _MethodWriter:
    """Numbers methods sequentially, starting at 1."""

    def __init__(self, command: UpdateCommand):
        self.command = UpdateCommand(command)
        self.counter = 1
        self.methods: List[OperationDescriptor] = []

    def add(self, fields: Iterable[FieldPair]) -> None:
        method = build_method(self.counter, self.command, fields)
        if method is not None:
            self.methods.append(method)
            self.counter += 1


def normalize_updates(
    updates: Updates = None,
    update_type: UpdateCommand = UpdateCommand.UPDATE,
    item_id: Optional[Any] = None,
    valuepairs: Optional[Sequence[FieldPair]] = None,
) -> List[OperationDescriptor]:
    """
    Normalize updates into method descriptors.

    Accepted shapes:
    - a string: one pre-serialized descriptor, kept as is
    - a sequence of strings: kept as is, in order
    - a sequence of mappings: one method per non-empty mapping
    - a sequence of ``(name, value)`` pairs: a single method
    - no updates but ``item_id`` and ``valuepairs``: a single method
      with the pairs plus ``("ID", item_id)``

    Args:
        updates: Updates in any accepted shape
        update_type: Command for generated methods
        item_id: Item ID for the legacy ``valuepairs`` form
        valuepairs: Field pairs for the legacy form

    Returns:
        Ordered list of descriptors (empty for unsupported input)
    """
    writer = _MethodWriter(update_type)
    descriptors: List[OperationDescriptor] = []

    if not updates and item_id is not None and valuepairs:
        pairs = [tuple(p[:2]) for p in valuepairs if _is_pair(p)]
        pairs.append(("ID", item_id))
        writer.add(pairs)
        descriptors = writer.methods

    elif isinstance(updates, str):
        if updates:
            descriptors = [updates]

    elif isinstance(updates, (list, tuple)) and updates:
        first = updates[0]

        if isinstance(first, Mapping):
            for update in updates:
                if isinstance(update, Mapping):
                    writer.add(update.items())
            descriptors = writer.methods

        elif isinstance(first, str):
            descriptors = [u for u in updates if isinstance(u, str)]

        elif _is_pair(first):
            writer.add(tuple(p[:2]) for p in updates if _is_pair(p))
            descriptors = writer.methods

    logger.debug(
        "updates_normalized",
        input_type=type(updates).__name__,
        descriptors=len(descriptors),
    )
    return descriptors
