"""JSON envelope codec.

Every request and response body of the public API wraps its payload under
a "data" key. Decoding comes in two flavors:

- decode_envelope(body, T): typed unwrapping when the payload shape is
  statically known.
- decode_raw(body) followed by decode_variant(...): when the payload has to
  be inspected before choosing the concrete model (tagged variants).
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class EnvelopeDecodeError(ValueError):
    """Raised when a body is not a valid envelope or its payload is malformed."""

    pass


class Envelope(BaseModel, Generic[T]):
    """The {"data": ...} wrapper used around every payload."""

    data: T


class RawEnvelope(BaseModel):
    """Envelope whose payload is left as untyped JSON."""

    data: Any


def wrap(value: T) -> Envelope[T]:
    """Wrap a payload for sending."""
    return Envelope[type(value)](data=value)  # type: ignore[misc]


def encode_body(value: Any) -> bytes | None:
    """Serialize a request value to JSON bytes.

    Pydantic models are dumped by alias with unset optional fields omitted.
    Returns None when there is nothing to send.
    """
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")
    return json.dumps(value).encode("utf-8")


def decode_envelope(body: bytes | str, target_type: type[T]) -> T:
    """Decode an envelope and validate its payload as ``target_type``.

    Raises:
        EnvelopeDecodeError: If the body is not an envelope of that type.
    """
    try:
        envelope = Envelope[target_type].model_validate_json(body)  # type: ignore[valid-type]
    except ValidationError as e:
        raise EnvelopeDecodeError(_format_validation_error(e)) from e
    return envelope.data


def decode_raw(body: bytes | str) -> Any:
    """Decode an envelope, leaving the payload as untyped JSON.

    Raises:
        EnvelopeDecodeError: If the body is not a JSON object with a "data" key.
    """
    try:
        envelope = RawEnvelope.model_validate_json(body)
    except ValidationError as e:
        raise EnvelopeDecodeError(_format_validation_error(e)) from e
    return envelope.data


def decode_variant(
    data: Any,
    discriminator: Callable[[Any], str],
    variants: Mapping[str, type[M]],
) -> M:
    """Decode an untyped payload into the variant chosen by ``discriminator``.

    Args:
        data: Payload returned by decode_raw().
        discriminator: Maps the payload to a variant tag.
        variants: Tag to model mapping.

    Raises:
        EnvelopeDecodeError: If the tag is unknown or validation fails.
    """
    tag = discriminator(data)
    model = variants.get(tag)
    if model is None:
        raise EnvelopeDecodeError(
            f"unknown payload variant {tag!r}, expected one of {sorted(variants)}"
        )
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise EnvelopeDecodeError(_format_validation_error(e)) from e


def _format_validation_error(error: ValidationError) -> str:
    errors = []
    for detail in error.errors():
        loc = ".".join(str(x) for x in detail["loc"])
        errors.append(f"{loc}: {detail['msg']}" if loc else detail["msg"])
    return "invalid response payload: " + "; ".join(errors)
