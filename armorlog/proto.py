"""Protobuf message classes for the relay's ``feeder.LogService``.

The classes are built at import time from a descriptor rather than from
generated ``_pb2`` modules. Only the fields the observer reads are declared;
unknown fields sent by newer relays are preserved by protobuf and ignored.
"""

from __future__ import annotations

from typing import Any

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.descriptor_pb2 import FieldDescriptorProto

PACKAGE = "feeder"
SERVICE = f"/{PACKAGE}.LogService"

_STRING = FieldDescriptorProto.TYPE_STRING
_INT32 = FieldDescriptorProto.TYPE_INT32
_INT64 = FieldDescriptorProto.TYPE_INT64

# Fields shared by alerts and logs
_EVENT_FIELDS = [
    ("Timestamp", 1, _INT64),
    ("UpdatedTime", 2, _STRING),
    ("ClusterName", 3, _STRING),
    ("HostName", 4, _STRING),
    ("NamespaceName", 5, _STRING),
    ("PodName", 6, _STRING),
    ("ContainerID", 7, _STRING),
    ("ContainerName", 8, _STRING),
    ("HostPID", 9, _INT32),
    ("PPID", 10, _INT32),
    ("PID", 11, _INT32),
    ("UID", 12, _INT32),
    ("PolicyName", 13, _STRING),
    ("Severity", 14, _STRING),
    ("Tags", 15, _STRING),
    ("Message", 16, _STRING),
    ("Type", 17, _STRING),
    ("Source", 18, _STRING),
    ("Operation", 19, _STRING),
    ("Resource", 20, _STRING),
    ("Data", 21, _STRING),
    ("Result", 23, _STRING),
    ("ContainerImage", 24, _STRING),
    ("ParentProcessName", 25, _STRING),
    ("ProcessName", 26, _STRING),
    ("HostPPID", 27, _INT32),
    ("Labels", 29, _STRING),
]

_MESSAGES: dict[str, list[tuple[str, int, int]]] = {
    "NonceMessage": [("nonce", 1, _INT32)],
    "ReplyMessage": [("Retval", 1, _INT32)],
    "RequestMessage": [("Filter", 1, _STRING)],
    "Message": [
        ("Timestamp", 1, _INT64),
        ("UpdatedTime", 2, _STRING),
        ("ClusterName", 3, _STRING),
        ("HostName", 4, _STRING),
        ("HostIP", 5, _STRING),
        ("Type", 6, _STRING),
        ("Level", 7, _STRING),
        ("Message", 8, _STRING),
    ],
    "Alert": _EVENT_FIELDS + [("Action", 22, _STRING), ("Enforcer", 28, _STRING)],
    "Log": list(_EVENT_FIELDS),
}


def _build_pool() -> descriptor_pool.DescriptorPool:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="armorlog/feeder.proto", package=PACKAGE, syntax="proto3"
    )
    for message_name, fields in _MESSAGES.items():
        message = file_proto.message_type.add(name=message_name)
        for field_name, number, field_type in fields:
            message.field.add(
                name=field_name,
                number=number,
                type=field_type,
                label=FieldDescriptorProto.LABEL_OPTIONAL,
            )
    pool = descriptor_pool.DescriptorPool()
    pool.Add(file_proto)
    return pool


_POOL = _build_pool()


def _message_class(name: str) -> type:
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{PACKAGE}.{name}"))


NonceMessage = _message_class("NonceMessage")
ReplyMessage = _message_class("ReplyMessage")
RequestMessage = _message_class("RequestMessage")
Message = _message_class("Message")
Alert = _message_class("Alert")
Log = _message_class("Log")


def message_to_dict(message: Any) -> dict[str, Any]:
    """Convert a relay message into a plain dict keyed by field name."""
    return {field.name: getattr(message, field.name) for field in message.DESCRIPTOR.fields}
