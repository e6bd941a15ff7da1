import zlib
from datetime import datetime, timezone

from callwatch.reporting.codec import PayloadCodec, codec


def test_encode_is_compact_json():
    assert codec.encode({"metric": "db", "values": [1, 2]}) == b'{"metric":"db","values":[1,2]}'


def test_encode_falls_back_for_non_json_values():
    when = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    assert codec.encode({"at": when}) == b'{"at":"2024-01-15T10:30:00Z"}'
    assert codec.encode({"tags": ("a", "b")}) == b'{"tags":["a","b"]}'
    assert codec.encode({"path": Marker()}) == b'{"path":"marker"}'


class Marker:
    def __str__(self):
        return "marker"


def test_pack_is_zlib_deflated_json():
    blob = codec.pack([{"metric": "db", "value": 0.5}])

    assert zlib.decompress(blob) == b'[{"metric":"db","value":0.5}]'
    assert codec.unpack(blob) == [{"metric": "db", "value": 0.5}]


def test_compression_level_is_configurable():
    data = {"payload": "x" * 1000}
    assert len(PayloadCodec(level=9).pack(data)) < len(PayloadCodec(level=0).pack(data))
