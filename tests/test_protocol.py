from __future__ import annotations

import pytest

from mode_control.errors import ProtocolError
from mode_control.modes import Mode
from mode_control.protocol import decode_line, encode_request, parse_request


@pytest.mark.parametrize(
    "line, expected",
    [
        ("mode:turbo", Mode.TURBO),
        ("MODE:Silent", Mode.SILENT),
        ("mode:performance\r\n", Mode.BALANCED),
    ],
)
def test_parse_request_accepts_known_tokens(line, expected):
    assert parse_request(line) is expected


@pytest.mark.parametrize("line", ["mode: turbo", "mode:turbo ", " mode:turbo", "mode:\tsilent", "mode:", "", None])
def test_parse_request_rejects_padding_and_empty_tokens(line):
    with pytest.raises(ProtocolError):
        parse_request(line)


def test_request_encoding_matches_parser():
    assert encode_request("turbo") == b"mode:turbo\n"
    assert parse_request(decode_line(encode_request("silent"))) is Mode.SILENT
