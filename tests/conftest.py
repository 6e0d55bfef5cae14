import pytest

from fake_plc import FakePLC
from s7comm import Client

ip = '127.0.0.1'
tcpport = 102


def pytest_configure(config):
    for marker in ('address', 'item', 'protocol', 'batch', 'control', 'connection', 'client', 'util', 'cli'):
        config.addinivalue_line('markers', f'{marker}: {marker} tests')


@pytest.fixture
def plc():
    return FakePLC()


@pytest.fixture
def testclient(plc):
    client = Client(ip, port=tcpport, socket_factory=plc.factory)
    yield client
    client.disconnect()
