"""
Wire format of the coordination service.

Requests and responses are ``google.protobuf.Struct`` messages, so the service
needs no generated stubs. Method paths follow the usual gRPC
``/<service>/<method>`` layout and can be called from any generic gRPC client.
Numbers travel as doubles; callers convert counters back to ``int``.
"""

from typing import Any

from google.protobuf import json_format, struct_pb2

SERVICE_NAME = "harness.coordination.Coordination"

PING = "Ping"
PUT = "Put"
GET = "Get"
DELETE = "Delete"
LIST = "List"

METHODS = (PING, PUT, GET, DELETE, LIST)


def method_path(method: str) -> str:
    return f"/{SERVICE_NAME}/{method}"


def encode(message: dict[str, Any]) -> bytes:
    struct = struct_pb2.Struct()
    struct.update(message)
    return struct.SerializeToString(deterministic=True)


def decode(payload: bytes) -> dict[str, Any]:
    if not payload:
        return {}
    return json_format.MessageToDict(struct_pb2.Struct.FromString(payload))
