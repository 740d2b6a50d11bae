"""JSON projection of result objects for the caller-facing payload."""

import dataclasses
from enum import Enum


def camel_case(name):
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def to_payload(value):
    """Recursively convert dataclasses to camelCase dicts and enums to their values.

    Objects with their own ``to_dict`` (the judge review) keep that shape.
    Plain dict keys are passed through untouched.
    """
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            camel_case(f.name): to_payload(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    if isinstance(value, dict):
        return {key: to_payload(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_payload(item) for item in value]
    return value
