"""
Tests for token metadata, pay-to-contract keys and color ids.
"""

import pytest
from pydantic import ValidationError

from tapwallet.crypto import derive_public_key, sha256
from tapwallet.errors import InvalidColorIdError, InvalidMetadataError, KeyDerivationError
from tapwallet.wallet.address import pubkey_to_p2pkh_script
from tapwallet.wallet.color import (
    ColorId,
    Metadata,
    OutPoint,
    TokenType,
    commitment,
    derive_color_id,
    p2c_private_key,
    p2c_public_key,
    parse_metadata,
)

from conftest import make_txid


class TestMetadata:
    def test_canonical_json(self):
        metadata = Metadata(name=" Tok ", symbol="tk", token_type="reissuable")
        assert metadata.canonical_json() == (
            b'{"name":"Tok","symbol":"TK","token_type":"reissuable","version":"1.0"}'
        )
        assert metadata.digest() == sha256(metadata.canonical_json())

    def test_canonical_json_is_utf8(self):
        metadata = Metadata(name="トークン", symbol="JP", token_type="reissuable")
        assert "トークン".encode() in metadata.canonical_json()

    def test_camel_case_token_type(self):
        metadata = parse_metadata({"name": "N", "symbol": "S", "tokenType": "nft"})
        assert metadata.token_type is TokenType.NFT

    def test_field_order_does_not_matter(self):
        a = parse_metadata({"name": "N", "symbol": "S", "token_type": "reissuable", "decimals": 2})
        b = parse_metadata({"decimals": 2, "token_type": "reissuable", "symbol": "S", "name": "N"})
        assert a.canonical_json() == b.canonical_json()

    @pytest.mark.parametrize(
        "data",
        [
            {"symbol": "S", "token_type": "reissuable"},
            {"name": "", "symbol": "S", "token_type": "reissuable"},
            {"name": "N" * 65, "symbol": "S", "token_type": "reissuable"},
            {"name": "N", "symbol": "S" * 13, "token_type": "reissuable"},
            {"name": "N", "symbol": "S", "token_type": "unknown"},
            {"name": "N", "symbol": "S", "token_type": "reissuable", "decimals": 19},
            {"name": "N", "symbol": "S", "token_type": "nft", "decimals": 2},
            {"name": "N", "symbol": "S", "token_type": "reissuable", "icon": "javascript:x"},
            {"name": "N", "symbol": "S", "token_type": "nft", "image": "data:text/html,x"},
            {"name": "N", "symbol": "S", "token_type": "reissuable", "color": "red"},
        ],
    )
    def test_invalid(self, data):
        with pytest.raises(InvalidMetadataError):
            parse_metadata(data)

    def test_bare_host_urls_normalised(self):
        metadata = parse_metadata(
            {"name": "N", "symbol": "S", "token_type": "reissuable", "website": "example.com"}
        )
        assert metadata.website == "https://example.com"

    def test_immutable(self, reissuable_metadata):
        with pytest.raises(ValidationError):
            reissuable_metadata.name = "changed"


class TestP2C:
    def test_private_key_matches_public_key(self, keys, reissuable_metadata):
        priv = p2c_private_key(keys.private_key, reissuable_metadata)
        assert derive_public_key(bytes(priv)) == p2c_public_key(
            keys.public_key, reissuable_metadata
        )

    def test_tweak_differs_from_base(self, keys, reissuable_metadata):
        assert p2c_public_key(keys.public_key, reissuable_metadata) != keys.public_key

    def test_commitment_binds_metadata(self, keys, reissuable_metadata, non_reissuable_metadata):
        assert commitment(keys.public_key, reissuable_metadata) != commitment(
            keys.public_key, non_reissuable_metadata
        )

    def test_commitment_rejects_bad_key(self, reissuable_metadata):
        with pytest.raises(KeyDerivationError):
            commitment(b"\x02" * 32, reissuable_metadata)

    def test_private_key_rejects_invalid_base(self, reissuable_metadata):
        with pytest.raises(KeyDerivationError):
            p2c_private_key(bytearray(32), reissuable_metadata)


class TestColorId:
    def test_reissuable_stable(self, keys, reissuable_metadata):
        a = derive_color_id(TokenType.REISSUABLE, reissuable_metadata, keys.public_key)
        b = derive_color_id(TokenType.REISSUABLE, reissuable_metadata, keys.public_key)
        assert a == b
        assert a.hex().startswith("c1")
        assert len(a.hex()) == 66

    def test_reissuable_payload(self, keys, reissuable_metadata):
        color = derive_color_id(TokenType.REISSUABLE, reissuable_metadata, keys.public_key)
        script = pubkey_to_p2pkh_script(p2c_public_key(keys.public_key, reissuable_metadata))
        assert color.raw == b"\xc1" + sha256(script)

    def test_reissuable_depends_on_metadata(self, keys):
        a = Metadata(name="A", symbol="A", token_type="reissuable")
        b = Metadata(name="B", symbol="A", token_type="reissuable")
        assert derive_color_id(TokenType.REISSUABLE, a, keys.public_key) != derive_color_id(
            TokenType.REISSUABLE, b, keys.public_key
        )

    def test_out_point_classes_unique_per_out_point(self):
        first = OutPoint(make_txid("funding-1"), 0)
        second = OutPoint(make_txid("funding-2"), 0)
        assert derive_color_id(TokenType.NON_REISSUABLE, out_point=first) != derive_color_id(
            TokenType.NON_REISSUABLE, out_point=second
        )

    def test_nft_tagged_c3(self):
        out_point = OutPoint(make_txid("funding"), 0)
        c2 = derive_color_id(TokenType.NON_REISSUABLE, out_point=out_point)
        c3 = derive_color_id(TokenType.NFT, out_point=out_point)
        assert c2.hex().startswith("c2")
        assert c3.hex().startswith("c3")
        assert c2.raw[1:] == c3.raw[1:] == sha256(out_point.serialize())

    def test_out_point_required(self):
        with pytest.raises(ValueError):
            derive_color_id(TokenType.NFT)

    def test_from_hex(self):
        color = ColorId.from_hex("c2" + "11" * 32)
        assert color.token_type is TokenType.NON_REISSUABLE
        assert str(color) == "c2" + "11" * 32

    @pytest.mark.parametrize("value", ["c1" + "11" * 31, "c4" + "11" * 32, "zz" * 33, ""])
    def test_from_hex_invalid(self, value):
        with pytest.raises(InvalidColorIdError):
            ColorId.from_hex(value)


class TestOutPoint:
    def test_serialize(self):
        txid = "00" * 31 + "ff"
        assert OutPoint(txid, 1).serialize() == bytes.fromhex(txid)[::-1] + b"\x01\x00\x00\x00"

    def test_parse(self):
        txid = make_txid("x")
        out_point = OutPoint.parse(f"{txid}:3")
        assert out_point == OutPoint(txid, 3)
        assert str(out_point) == f"{txid}:3"

    @pytest.mark.parametrize("value", ["nocolon", f"{'ab' * 32}:-1", "xyz:0"])
    def test_parse_invalid(self, value):
        with pytest.raises(ValueError):
            OutPoint.parse(value)
