import json

import azuredsvm as adsvm
from azuredsvm import dsvm


def test_clients_share_credential(cluster, azure, pubkey):
    azure['credential'].assert_called_once_with(tenant_id='tenant',
                                                client_id='client',
                                                client_secret='secret')
    credential = azure['credential'].return_value
    azure['resource'].assert_called_once_with(credential, 'subscription')
    azure['compute'].assert_called_once_with(credential, 'subscription')
    assert cluster.pubkey == pubkey


def test_vm_conf_defaults(azure, key_path):
    cl = dsvm.DSVMCluster('t', 'c', 's', 'sub', 'eastus', 'rg',
                          vm_conf={'size': 'Standard_F4s'},
                          key_path=key_path)
    assert cl.vm_conf == {'size': 'Standard_F4s', 'os': 'Ubuntu',
                          'authen': 'Key'}


def test_config_tracks_attributes(cluster):
    cluster.location = 'westeurope'
    assert cluster._config['location'] == 'westeurope'
    assert 'purge' not in cluster._config
    assert 'pubkey' not in cluster._config


def test_repr_hides_secret(cluster):
    text = repr(cluster)
    assert text.startswith('DSVMCluster class object')
    assert "'secret'" not in text
    assert "'***'" in text


def test_write_then_load(cluster, tmp_path, monkeypatch):
    fn = str(tmp_path / 'conf.json')
    cluster.write_config(fn)
    with open(fn) as f:
        assert json.load(f)['resource_group'] == 'dsvmrg'
    loaded = dsvm.DSVMCluster.from_config(fn, resource_group='otherrg')
    assert loaded.resource_group == 'otherrg'
    assert loaded.key_path == cluster.key_path
    assert loaded.ver == adsvm.__ver__


def test_load_prompts_for_missing(azure, key_path, tmp_path, monkeypatch):
    fn = tmp_path / 'conf.json'
    fn.write_text(json.dumps({
        'tenant_id': None, 'client_id': 'c', 'client_secret': None,
        'subscription_id': 's', 'location': 'eastus', 'resource_group': 'rg',
        'key_path': key_path}))
    prompts = []
    monkeypatch.setattr('builtins.input',
                        lambda prompt: prompts.append(prompt) or 'typed')
    loaded = dsvm.DSVMCluster.from_config(str(fn))
    assert prompts == ['client_secret: ', 'tenant_id: ']
    assert loaded.tenant_id == 'typed'


def test_generates_key_pair(azure, tmp_path, monkeypatch):
    pem = str(tmp_path / 'generated.pem')
    monkeypatch.setattr(adsvm, '_set_data', lambda ext: pem)
    cl = dsvm.DSVMCluster('t', 'c', 's', 'sub', 'eastus', 'rg')
    assert cl.key_path == pem
    with open(pem + '.pub') as pub:
        assert pub.read().startswith('ssh-rsa ')
    assert cl.pubkey.startswith('ssh-rsa ')


def test_purge_deletes_tagged_groups(azure, key_path):
    groups = azure['resource'].return_value.resource_groups
    old = type('RG', (), {'name': 'oldrg'})
    groups.list.return_value = [old]
    dsvm.DSVMCluster('t', 'c', 's', 'sub', 'eastus', 'rg', key_path=key_path,
                     ver='test', purge=True)
    groups.list.assert_called_once_with(
        filter="tagName eq 'azuredsvm' and tagValue eq 'test'")
    groups.begin_delete.assert_called_once_with('oldrg')
    groups.begin_delete.return_value.result.assert_called_once_with()
