"""
Wire format of the device link.

Every message is one UTF-8 JSON object:

    push:    {"codeInfos": [<snapshot>, ...]}
    control: {"action": "requestUpdate"}
             {"action": "incrementCounter", "secretId": "<credential id>"}

decode_message() returns None for anything else, including malformed JSON
and a push whose batch fails validation. A batch is accepted or rejected as
a whole; a partial batch is never delivered.
"""

import json
import logging
from typing import Annotated, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from codesync.snapshots import CodeSnapshot

logger = logging.getLogger(__name__)

ACTION_REQUEST_UPDATE = "requestUpdate"
ACTION_INCREMENT_COUNTER = "incrementCounter"


class PushBatch(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    code_infos: List[CodeSnapshot] = Field(alias="codeInfos")


class RequestUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Literal["requestUpdate"] = ACTION_REQUEST_UPDATE


class IncrementCounter(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    action: Literal["incrementCounter"] = ACTION_INCREMENT_COUNTER
    secret_id: str = Field(alias="secretId")


ControlMessage = Annotated[Union[RequestUpdate, IncrementCounter], Field(discriminator="action")]
Message = Union[PushBatch, RequestUpdate, IncrementCounter]

_control_adapter = TypeAdapter(ControlMessage)


def _dumps(payload: dict) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def encode_push(snapshots: Sequence[CodeSnapshot]) -> bytes:
    return _dumps({"codeInfos": [s.to_wire() for s in snapshots]})


def encode_request_update() -> bytes:
    return _dumps({"action": ACTION_REQUEST_UPDATE})


def encode_increment_counter(secret_id: str) -> bytes:
    return _dumps({"action": ACTION_INCREMENT_COUNTER, "secretId": secret_id})


def decode_message(payload: bytes) -> Optional[Message]:
    """Parse one link payload; None when it is not a recognized, valid message."""
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        logger.warning("Dropping undecodable link payload: %s", e)
        return None
    if not isinstance(data, dict):
        logger.debug("Dropping non-object link payload")
        return None

    try:
        if "codeInfos" in data:
            return PushBatch.model_validate(data)
        if "action" in data:
            return _control_adapter.validate_python(data)
    except ValidationError as e:
        logger.warning("Dropping invalid link message: %d validation error(s)", e.error_count())
        return None

    logger.debug("Dropping unrecognized link message with keys %s", sorted(data))
    return None
