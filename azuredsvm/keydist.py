"""
:mod:`~azuredsvm.keydist` exchanges SSH keys among a set of Linux DSVMs so
that every node can reach every other node without a password prompt, as
needed by socket-based (PSOCK) R clusters.
"""
import os
import shutil
import tempfile
from collections import namedtuple
from logging import getLogger

import azuredsvm as adsvm

Node = namedtuple('Node', ['hostname', 'username', 'fqdn'])

_KEYGEN = ('test -f ~/.ssh/id_rsa || '
           'ssh-keygen -q -t rsa -N "" -f ~/.ssh/id_rsa')


def fqdn(dns_label, location):
    """Public DNS name Azure assigns to a public IP with a DNS label."""
    return '.'.join([dns_label, location, 'cloudapp.azure.com'])


def _config_script(location):
    """Shell script run on each node to install the collected keys."""
    host = 'Host *.{0}.cloudapp.azure.com'.format(location)
    return '\n'.join([
        '#!/bin/sh',
        'touch .ssh/authorized_keys',
        'while read -r key; do',
        '  [ -z "$key" ] && continue',
        '  grep -qxF "$key" .ssh/authorized_keys || '
        'echo "$key" >> .ssh/authorized_keys',
        'done < .ssh/pub_keys',
        'chmod 600 .ssh/authorized_keys',
        'touch .ssh/config',
        'grep -qxF "{0}" .ssh/config || '
        'printf "\\n{0}\\n  StrictHostKeyChecking no\\n'
        '  UserKnownHostsFile /dev/null\\n" >> .ssh/config'.format(host),
        'chmod 600 .ssh/config',
        'rm -f .ssh/pub_keys',
        ''
    ])


def _expand(value, count, name):
    if isinstance(value, str):
        return [value] * count
    value = list(value)
    if len(value) < count:
        raise ValueError('{0} names {1} hosts, expected {2}'.format(
            name, len(value), count))
    return value[:count]


def key_distribution(location, hostnames, usernames, count=None,
                     dns_labels=None, key_path=None, password=None):
    """Distribute public keys across nodes.

    Each node generates its own key pair. The public keys are collected into
    a local staging file, which is then sent to every node and appended to
    its ``authorized_keys``. Each node also gets an SSH config entry that
    switches off host key checking within the cluster's domain.

    :param location: Azure location of the nodes, e.g. ``southeastasia``
    :param hostnames: List of node host names
    :param usernames: Login name for each node, or one name for all nodes
    :param count: Number of nodes to include (default: all hostnames)
    :param dns_labels: DNS label of each node's public IP (default: the
        host names)
    :param key_path: Private key used to log in to the nodes
    :param password: Password used to log in to the nodes, when no key
    :return: list of :class:`Node`
    """
    log = getLogger(__name__)
    if isinstance(hostnames, str):
        hostnames = [hostnames]
    if count is None:
        count = len(hostnames)
    hostnames = _expand(hostnames, count, 'hostnames')
    usernames = _expand(usernames, count, 'usernames')
    dns_labels = _expand(dns_labels if dns_labels is not None else hostnames,
                         count, 'dns_labels')
    nodes = [Node(host, user, fqdn(label, location))
             for host, user, label in zip(hostnames, usernames, dns_labels)]

    staging = tempfile.mkdtemp(prefix='azuredsvm_')
    clients = []
    try:
        auth_keys = []
        for node in nodes:
            log.info('Generating key pair on %s', node.fqdn)
            client = adsvm.pmk_connect(node.fqdn, key_path,
                                       username=node.username,
                                       password=password)
            clients.append(client)
            adsvm.pmk_cmd(client, _KEYGEN)
            tmpkey = os.path.join(staging, 'pubkey_' + node.hostname)
            adsvm.pmk_get_file(client, '.ssh/id_rsa.pub', tmpkey)
            with open(tmpkey) as key_file:
                auth_keys.append(key_file.read().strip())
            os.remove(tmpkey)

        tmpkeys = os.path.join(staging, 'pub_keys')
        with open(tmpkeys, 'w', newline='\n') as out:
            out.write('\n'.join(auth_keys) + '\n')
        tmpscript = os.path.join(staging, 'shell_script')
        with open(tmpscript, 'w', newline='\n') as out:
            out.write(_config_script(location))

        for node, client in zip(nodes, clients):
            log.info('Distributing %d public keys to %s', len(auth_keys),
                     node.fqdn)
            adsvm.pmk_put_file(client, tmpkeys, '.ssh/pub_keys')
            adsvm.pmk_put_file(client, tmpscript, '.ssh/shell_script')
            adsvm.pmk_cmd(client, 'chmod +x .ssh/shell_script')
            adsvm.pmk_cmd(client, '.ssh/shell_script')
    finally:
        for client in clients:
            client.close()
        shutil.rmtree(staging, ignore_errors=True)
    return nodes
