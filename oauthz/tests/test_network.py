"""Tests for the REST gateway epoch client."""
from unittest.mock import patch

import httpx
import pytest

from oauthz.errors import EpochQueryFailed
from oauthz.network import RestGatewayClient


def test_current_epoch():
    client = RestGatewayClient("http://gate.example/", timeout=2)
    with patch(
        "oauthz.network.httpx.get",
        return_value=httpx.Response(200, json={"currentEpoch": 4242, "msPerBlock": 15000}),
    ) as get:
        assert client.current_epoch() == 4242
    args, kwargs = get.call_args
    assert args[0] == "http://gate.example/v1/network-info"
    assert kwargs["timeout"] == 2


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="unavailable"),
        httpx.Response(200, json={"msPerBlock": 15000}),
        httpx.Response(200, json={"currentEpoch": "12"}),
        httpx.Response(200, json={"currentEpoch": -1}),
        httpx.Response(200, json={"currentEpoch": True}),
        httpx.Response(200, content=b"<html>"),
    ],
)
def test_bad_responses(response):
    with patch("oauthz.network.httpx.get", return_value=response):
        with pytest.raises(EpochQueryFailed):
            RestGatewayClient("http://gate.example").current_epoch()


def test_transport_error():
    with patch("oauthz.network.httpx.get", side_effect=httpx.ConnectError("refused")):
        with pytest.raises(EpochQueryFailed):
            RestGatewayClient("http://gate.example").current_epoch()
