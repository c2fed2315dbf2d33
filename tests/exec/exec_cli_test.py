import azuredsvm as adsvm
from azuredsvm import __exec__


def test_keys(monkeypatch, capsys):
    seen = {}

    def key_distribution(location, hostnames, usernames, dns_labels=None,
                         key_path=None):
        seen.update(location=location, hostnames=hostnames,
                    usernames=usernames, key_path=key_path)
        return [adsvm.Node(h, usernames, adsvm.fqdn(h, location))
                for h in hostnames]

    monkeypatch.setattr(adsvm, 'key_distribution', key_distribution)
    __exec__.keys(['-l', 'eastus', '-u', 'dsvmuser', '-k', 'id_rsa',
                   'node1', 'node2'])
    assert seen == {'location': 'eastus', 'hostnames': ['node1', 'node2'],
                    'usernames': 'dsvmuser', 'key_path': 'id_rsa'}
    out = capsys.readouterr().out
    assert 'node2\tdsvmuser@node2.eastus.cloudapp.azure.com' in out


def test_terminate(cluster, monkeypatch, tmp_path):
    fn = str(tmp_path / 'conf.json')
    cluster.write_config(fn)
    cluster.resource_client.resource_groups.check_existence.return_value = \
        True
    __exec__.terminate(['-c', fn])
    cluster.resource_client.resource_groups.begin_delete \
        .assert_called_once_with('dsvmrg')


def test_sizes(cluster, monkeypatch, capsys):
    monkeypatch.setattr(adsvm.DSVMCluster, 'from_config',
                        staticmethod(lambda fn: cluster))
    monkeypatch.setattr(adsvm.DSVMCluster, 'vm_sizes',
                        lambda self, location: [
                            {'name': 'Standard_D2s_v3', 'cores': 2,
                             'memory_mb': 8192}])
    __exec__.sizes(['-c', 'unused.json'])
    assert capsys.readouterr().out == 'Standard_D2s_v3\t2\t8192\n'
