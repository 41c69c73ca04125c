"""Protection System Specific Header ('pssh') boxes.

Box layout (ISO/IEC 23001-7):

    size(4) 'pssh'(4) version(1) flags(3) system_id(16)
    [version 1: kid_count(4) kid(16) * kid_count]
    data_size(4) data(data_size)
"""

import struct
import uuid
from dataclasses import dataclass, field

from .base import MalformedInputError

WIDEVINE_SYSTEM_ID = uuid.UUID("edef8ba9-79d6-4ace-a3c8-27dcd51d21ed").bytes
PLAYREADY_SYSTEM_ID = uuid.UUID("9a04f079-9840-4286-ab92-e65be0885f95").bytes
COMMON_SYSTEM_ID = uuid.UUID("1077efec-c0b2-4d02-ace3-3c1e52e2fb4b").bytes

_BOX_HEADER = struct.Struct(">I4sB3s")
_KEY_ID_SIZE = 16


@dataclass
class ProtectionSystemInfo:
    """Contents of one pssh box."""
    system_id: bytes
    version: int = 0
    key_ids: list[bytes] = field(default_factory=list)
    data: bytes = b""

    def to_box(self) -> bytes:
        """Serialize to a complete pssh box."""
        body = bytearray(self.system_id)
        if self.version > 0:
            body += struct.pack(">I", len(self.key_ids))
            for key_id in self.key_ids:
                body += key_id
        body += struct.pack(">I", len(self.data))
        body += self.data

        size = _BOX_HEADER.size + len(body)
        return _BOX_HEADER.pack(size, b"pssh", self.version, b"\x00\x00\x00") + bytes(body)

    @classmethod
    def parse_boxes(cls, data: bytes) -> list["ProtectionSystemInfo"]:
        """Parse a concatenation of pssh boxes.

        Raises:
            MalformedInputError: If the data is not a sequence of valid pssh boxes
        """
        boxes = []
        offset = 0
        while offset < len(data):
            if len(data) - offset < _BOX_HEADER.size:
                raise MalformedInputError("Truncated pssh box header")
            size, box_type, version, _flags = _BOX_HEADER.unpack_from(data, offset)
            if box_type != b"pssh":
                raise MalformedInputError(f"Expected pssh box, found {box_type!r}")
            if size < _BOX_HEADER.size + 20 or offset + size > len(data):
                raise MalformedInputError(f"Invalid pssh box size {size}")
            if version > 1:
                raise MalformedInputError(f"Unsupported pssh box version {version}")

            box = data[offset + _BOX_HEADER.size:offset + size]
            boxes.append(cls._parse_body(box, version))
            offset += size
        return boxes

    @classmethod
    def _parse_body(cls, body: bytes, version: int) -> "ProtectionSystemInfo":
        system_id = body[:16]
        pos = 16
        key_ids = []
        try:
            if version == 1:
                (count,) = struct.unpack_from(">I", body, pos)
                pos += 4
                for _ in range(count):
                    key_id = body[pos:pos + _KEY_ID_SIZE]
                    if len(key_id) != _KEY_ID_SIZE:
                        raise MalformedInputError("Truncated pssh key id list")
                    key_ids.append(key_id)
                    pos += _KEY_ID_SIZE
            (data_size,) = struct.unpack_from(">I", body, pos)
        except struct.error:
            raise MalformedInputError("Truncated pssh box body")
        pos += 4
        if pos + data_size != len(body):
            raise MalformedInputError("pssh data size does not match box size")

        return cls(
            system_id=system_id,
            version=version,
            key_ids=key_ids,
            data=body[pos:pos + data_size],
        )


def common_system_info(key_ids: list[bytes]) -> ProtectionSystemInfo:
    """Build a version 1 Common-system pssh listing the given key ids."""
    return ProtectionSystemInfo(
        system_id=COMMON_SYSTEM_ID,
        version=1,
        key_ids=list(key_ids),
    )
