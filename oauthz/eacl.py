"""
Extended ACL (eACL) values: an ordered table of allow/deny records for one container.
Records are evaluated first-match-wins by the storage network, so their order is part
of the value. Everything here is immutable and serializes to plain dicts.
"""
from dataclasses import dataclass
from enum import Enum

# Well-known object header keys
ATTRIBUTE_CONTENT_TYPE = "ContentType"
ATTRIBUTE_EXPIRATION_EPOCH = "__NEOFS__EXPIRATION_EPOCH"
FILTER_PAYLOAD_LENGTH = "$Object:payloadLength"


class Action(str, Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"


class Operation(str, Enum):
    PUT = "PUT"


class Role(str, Enum):
    OTHERS = "OTHERS"


class HeaderType(str, Enum):
    OBJECT = "OBJECT"


class Match(str, Enum):
    STRING_EQUAL = "STRING_EQUAL"
    STRING_NOT_EQUAL = "STRING_NOT_EQUAL"
    NUM_LE = "NUM_LE"
    NOT_PRESENT = "NOT_PRESENT"


@dataclass(frozen=True)
class Filter:
    matcher: Match
    key: str
    value: str = ""
    header_type: HeaderType = HeaderType.OBJECT

    def to_dict(self) -> dict:
        return {
            "headerType": self.header_type.value,
            "matchType": self.matcher.value,
            "key": self.key,
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Filter":
        return cls(
            matcher=Match(data["matchType"]),
            key=data["key"],
            value=data.get("value", ""),
            header_type=HeaderType(data.get("headerType", HeaderType.OBJECT.value)),
        )


@dataclass(frozen=True)
class Record:
    """One rule: action + operation for a set of target roles, guarded by all filters."""

    action: Action
    operation: Operation
    targets: tuple[Role, ...] = (Role.OTHERS,)
    filters: tuple[Filter, ...] = ()

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "operation": self.operation.value,
            "targets": [role.value for role in self.targets],
            "filters": [f.to_dict() for f in self.filters],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Record":
        return cls(
            action=Action(data["action"]),
            operation=Operation(data["operation"]),
            targets=tuple(Role(r) for r in data.get("targets", ())),
            filters=tuple(Filter.from_dict(f) for f in data.get("filters", ())),
        )


@dataclass(frozen=True)
class Table:
    """Access policy bound to one container."""

    container_id: str
    records: tuple[Record, ...] = ()

    def to_dict(self) -> dict:
        return {
            "containerID": self.container_id,
            "records": [r.to_dict() for r in self.records],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Table":
        return cls(
            container_id=data["containerID"],
            records=tuple(Record.from_dict(r) for r in data.get("records", ())),
        )
