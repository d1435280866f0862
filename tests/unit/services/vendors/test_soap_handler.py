from datetime import datetime

import httpx
import pytest

from catalog_sync.core.exceptions import TransientVendorError, VendorAuthenticationError, VendorError
from catalog_sync.services.feed_parser import parse_xml
from catalog_sync.services.vendors.definitions import SPORTS_SOUTH
from catalog_sync.services.vendors.soap import SOAPHandler

CREDENTIALS = {"customer_number": "12345", "username": "dealer", "password": "p&ss<1>", "source": "SRC"}

RESPONSE = b"""<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
  <soap:Body>
    <DailyItemUpdateResponse xmlns="http://webservices.theshootingwarehouse.com/smart/Inventory.asmx">
      <DailyItemUpdateResult>
        <diffgr:diffgram xmlns:diffgr="urn:schemas-microsoft-com:xml-diffgram-v1">
          <NewDataSet>
            <Table><ITEMNO>1001</ITEMNO><ITUPC>012345678905</ITUPC><IDESC>Widget</IDESC></Table>
          </NewDataSet>
        </diffgr:diffgram>
      </DailyItemUpdateResult>
    </DailyItemUpdateResponse>
  </soap:Body>
</soap:Envelope>"""


def _fault(text):
    return f"""<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
  <soap:Body>
    <soap:Fault><faultcode>soap:Server</faultcode><faultstring>{text}</faultstring></soap:Fault>
  </soap:Body>
</soap:Envelope>""".encode()


@pytest.mark.asyncio
async def test_fetch_full_feed():
    """Test a full pull posts the envelope and returns the XML body"""
    captured = []

    def respond(request: httpx.Request):
        captured.append(request)
        return httpx.Response(200, content=RESPONSE)

    handler = SOAPHandler(SPORTS_SOUTH, transport=httpx.MockTransport(respond))
    payload = await handler.fetch_feed(CREDENTIALS)

    request = captured[0]
    body = request.content.decode()
    assert request.method == "POST"
    assert request.headers["SOAPAction"].endswith('DailyItemUpdate"')
    assert "<ss:CustomerNumber>12345</ss:CustomerNumber>" in body
    assert "<ss:Password>p&amp;ss&lt;1&gt;</ss:Password>" in body
    assert "<ss:LastUpdate>1/1/1990</ss:LastUpdate>" in body
    assert payload.is_complete is True

    records = parse_xml(payload.data, record_path=handler.record_path).records
    assert records == [{"ITEMNO": "1001", "ITUPC": "012345678905", "IDESC": "Widget"}]


@pytest.mark.asyncio
async def test_fetch_incremental_feed():
    bodies = []

    def respond(request: httpx.Request):
        bodies.append(request.content.decode())
        return httpx.Response(200, content=RESPONSE)

    handler = SOAPHandler(SPORTS_SOUTH, transport=httpx.MockTransport(respond))
    payload = await handler.fetch_feed(CREDENTIALS, since=datetime(2024, 1, 2))

    assert "<ss:LastUpdate>01/02/2024</ss:LastUpdate>" in bodies[0]
    assert payload.is_complete is False


@pytest.mark.asyncio
async def test_authentication_fault():
    """Test a login fault is classified before the HTTP 500 status"""
    handler = SOAPHandler(
        SPORTS_SOUTH,
        transport=httpx.MockTransport(lambda request: httpx.Response(500, content=_fault("Invalid login or password"))),
    )
    with pytest.raises(VendorAuthenticationError):
        await handler.fetch_feed(CREDENTIALS)


@pytest.mark.asyncio
async def test_other_fault():
    handler = SOAPHandler(
        SPORTS_SOUTH,
        transport=httpx.MockTransport(lambda request: httpx.Response(500, content=_fault("Object reference not set"))),
    )
    with pytest.raises(VendorError) as exc_info:
        await handler.fetch_feed(CREDENTIALS)
    assert not isinstance(exc_info.value, VendorAuthenticationError)
    assert "Object reference not set" in str(exc_info.value)


@pytest.mark.asyncio
async def test_unavailable_is_transient():
    handler = SOAPHandler(
        SPORTS_SOUTH,
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="Service Unavailable")),
    )
    with pytest.raises(TransientVendorError):
        await handler.fetch_feed(CREDENTIALS)


@pytest.mark.asyncio
async def test_connection_check():
    ok = SOAPHandler(SPORTS_SOUTH, transport=httpx.MockTransport(lambda request: httpx.Response(200, content=RESPONSE)))
    assert (await ok.test_connection(CREDENTIALS)).success is True

    rejected = SOAPHandler(
        SPORTS_SOUTH,
        transport=httpx.MockTransport(lambda request: httpx.Response(500, content=_fault("Authentication failed"))),
    )
    result = await rejected.test_connection(CREDENTIALS)
    assert result.success is False
