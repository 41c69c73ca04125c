"""Tests for the fixed key source."""

import pytest

from keyresolver.core.keys.base import KeyFetchError, KeySourceType, MalformedInputError, TrackType
from keyresolver.core.keys.fixed import FixedKeySource
from keyresolver.core.keys.pssh import COMMON_SYSTEM_ID, WIDEVINE_SYSTEM_ID, ProtectionSystemInfo

KEY_ID_HEX = "00" * 16
KEY_HEX = "11" * 16
IV_HEX = "ab" * 16


class TestCreateFromHexStrings:
    """Tests for building a fixed key source from options."""

    def test_all_fields(self):
        pssh = ProtectionSystemInfo(system_id=WIDEVINE_SYSTEM_ID, data=b"wv")

        source = FixedKeySource.create_from_hex_strings(
            KEY_ID_HEX, KEY_HEX, pssh.to_box().hex(), IV_HEX
        )
        key = source.get_key(TrackType.HD)

        assert source.source_type == KeySourceType.FIXED
        assert key.key_id == bytes(16)
        assert key.key == b"\x11" * 16
        assert key.iv == b"\xab" * 16
        assert key.key_system_info == [pssh]

    def test_common_pssh_generated_when_empty(self):
        source = FixedKeySource.create_from_hex_strings(KEY_ID_HEX, KEY_HEX, "", "")
        key = source.get_key(TrackType.SD)

        assert key.iv == b""
        assert len(key.key_system_info) == 1
        info = key.key_system_info[0]
        assert info.system_id == COMMON_SYSTEM_ID
        assert info.version == 1
        assert info.key_ids == [bytes(16)]

    def test_same_key_for_every_track(self):
        source = FixedKeySource.create_from_hex_strings(KEY_ID_HEX, KEY_HEX, "", IV_HEX)

        assert source.get_key(TrackType.AUDIO) is source.get_key(TrackType.UHD2)

    def test_eight_byte_iv(self):
        source = FixedKeySource.create_from_hex_strings(KEY_ID_HEX, KEY_HEX, "", "ab" * 8)

        assert source.get_key(TrackType.SD).iv == b"\xab" * 8

    @pytest.mark.parametrize(
        "key_id, key, pssh, iv",
        [
            ("zz" * 16, KEY_HEX, "", ""),
            (KEY_ID_HEX, "1" * 31, "", ""),
            (KEY_ID_HEX, KEY_HEX, "not hex", ""),
            (KEY_ID_HEX, KEY_HEX, "", "xyz"),
            ("00" * 8, KEY_HEX, "", ""),
            (KEY_ID_HEX, KEY_HEX, "", "ab" * 12),
            (KEY_ID_HEX, KEY_HEX, "0011", ""),
        ],
    )
    def test_malformed_fields_rejected(self, key_id, key, pssh, iv):
        with pytest.raises(MalformedInputError):
            FixedKeySource.create_from_hex_strings(key_id, key, pssh, iv)


class TestGetKeyById:
    """Tests for key lookup by id."""

    def test_known_key_id(self):
        source = FixedKeySource.create_from_hex_strings(KEY_ID_HEX, KEY_HEX, "", "")

        assert source.get_key_by_id(bytes(16)).key == b"\x11" * 16

    def test_unknown_key_id(self):
        source = FixedKeySource.create_from_hex_strings(KEY_ID_HEX, KEY_HEX, "", "")

        with pytest.raises(KeyFetchError):
            source.get_key_by_id(b"\x01" * 16)
