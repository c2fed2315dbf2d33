import io
import stat
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

import azuredsvm.dsvm as dsvm

PUBKEY = 'ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQC7 dsvmuser@local'


class FakeChannel:
    def __init__(self, status):
        self.status = status

    def recv_exit_status(self):
        return self.status


class FakeStream:
    def __init__(self, text, status=0):
        self._buf = io.StringIO(text)
        self.channel = FakeChannel(status)

    def readline(self, size=-1):
        return self._buf.readline(size)

    def readlines(self):
        return self._buf.readlines()


class FakeSFTP:
    def __init__(self, client):
        self.client = client

    def mkdir(self, path):
        raise OSError('exists')

    def put(self, local, remote):
        with open(local) as f:
            self.client.remote_files[remote] = f.read()

    def get(self, remote, local):
        with open(local, 'w') as f:
            f.write(self.client.remote_files[remote])

    def lstat(self, path):
        if path not in self.client.remote_files:
            raise FileNotFoundError(path)
        return SimpleNamespace(st_mode=stat.S_IFREG | 0o644)

    def close(self):
        pass


class FakeSSHClient:
    """Stands in for paramiko.SSHClient, with canned command responses and
    an in-memory remote file system."""

    def __init__(self, responses=None, remote_files=None):
        self.responses = responses or {}
        self.remote_files = remote_files or {}
        self.calls = []
        self.closed = False

    def exec_command(self, call):
        self.calls.append(call)
        out, err, status = self.responses.get(call, ('', '', 0))
        return None, FakeStream(out, status), FakeStream(err, status)

    def open_sftp(self):
        return FakeSFTP(self)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_client():
    return FakeSSHClient


@pytest.fixture
def azure(monkeypatch):
    """Replace the Azure credential and management clients with mocks."""
    mocks = {
        'credential': MagicMock(name='ClientSecretCredential'),
        'resource': MagicMock(name='ResourceManagementClient'),
        'compute': MagicMock(name='ComputeManagementClient'),
        'network': MagicMock(name='NetworkManagementClient'),
    }
    monkeypatch.setattr(dsvm, 'ClientSecretCredential', mocks['credential'])
    monkeypatch.setattr(dsvm, 'ResourceManagementClient', mocks['resource'])
    monkeypatch.setattr(dsvm, 'ComputeManagementClient', mocks['compute'])
    monkeypatch.setattr(dsvm, 'NetworkManagementClient', mocks['network'])
    return mocks


@pytest.fixture
def key_path(tmp_path):
    key = tmp_path / 'id_rsa'
    key.write_text('not read by these tests')
    (tmp_path / 'id_rsa.pub').write_text(PUBKEY + '\n')
    return str(key)


@pytest.fixture
def cluster(azure, key_path):
    return dsvm.DSVMCluster('tenant', 'client', 'secret', 'subscription',
                            'southeastasia', 'dsvmrg', key_path=key_path)


@pytest.fixture
def pubkey():
    return PUBKEY
