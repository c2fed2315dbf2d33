import os
import re
import json
from inspect import signature
from pprint import PrettyPrinter
from threading import Thread, Lock
from logging import getLogger

import paramiko
from azure.identity import ClientSecretCredential
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.resource import ResourceManagementClient

import azuredsvm as adsvm

# (publisher, offer, sku) of the Data Science Virtual Machine images
IMAGES = {
    'Ubuntu': ('microsoft-dsvm', 'ubuntu-2004', '2004-gen2'),
    'CentOS': ('microsoft-ads', 'linux-data-science-vm', 'linuxdsvm'),
    'Windows': ('microsoft-dsvm', 'dsvm-win-2019', 'winserver-2019'),
}
AUTHEN = ('Key', 'Password')
OPERATIONS = {
    'start': 'begin_start',
    'stop': 'begin_power_off',
    'restart': 'begin_restart',
    'deallocate': 'begin_deallocate',
}
_HOSTNAME = re.compile(r'^[a-z][a-z0-9]{2,14}$')
_TAG = 'azuredsvm'


class DSVMCluster:
    """DSVMCluster class object

    Organizes the information for Azure management clients authenticated
    with a service principal, a consistent SSH key for the deployed DSVMs,
    deployment of DSVMs from ARM templates into a single resource group, and
    networking those DSVMs into an R cluster.

    .. automethod:: __repr__
    .. automethod:: __setattr__
    """

    def __init__(self, tenant_id, client_id, client_secret, subscription_id,
                 location, resource_group, username='dsvmuser', vm_conf=None,
                 key_path=None, ver=adsvm.__ver__, purge=False):
        """Initialize the DSVMCluster object.

        :param tenant_id: Azure Active Directory tenant of the service
            principal
        :param client_id: Application (client) ID of the service principal
        :param client_secret: Secret of the service principal
        :param subscription_id: Azure subscription used for all resources
        :param location: Azure location, e.g. ``southeastasia``
        :param resource_group: Resource group holding the DSVMs
        :param username: Default administrator name on deployed DSVMs
        :param vm_conf: Dictionary of deployment defaults: ``size``, ``os``
            and ``authen``
        :param key_path: The path to the private key used to log in to the
            DSVMs; a key pair is generated if omitted
        :param ver: Stamped on resource groups created by this object
        :param purge: Delete resource groups previously stamped with ver
        """
        self._kwargs = list(signature(DSVMCluster).parameters.keys())
        self._kwargs.remove('purge')
        self._config = {}
        self._log = getLogger(__name__)
        self.credential = ClientSecretCredential(
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret=client_secret
        )
        self.resource_client = ResourceManagementClient(self.credential,
                                                        subscription_id)
        self.compute_client = ComputeManagementClient(self.credential,
                                                      subscription_id)
        self.network_client = NetworkManagementClient(self.credential,
                                                      subscription_id)
        if purge:
            _rg_purge(self.resource_client, ver)

        if not key_path:
            key_path = adsvm._set_data('pem')
            if not os.path.exists(key_path):
                _create_key_pair(key_path)
        self.pubkey = _read_public_key(key_path)

        conf = {'size': 'Standard_D2s_v3', 'os': 'Ubuntu', 'authen': 'Key'}
        conf.update(vm_conf or {})
        vm_conf = conf

        for key in self._kwargs:
            self.__setattr__(key, locals()[key])

    def __repr__(self):
        """Indicates DSVMCluster and pretty prints the _config dictionary"""
        shown = dict(self._config, client_secret='***')
        return 'DSVMCluster class object\n' + PrettyPrinter().pformat(shown)

    def __setattr__(self, key, value):
        """
        Redefined to keep an updated version of the
        :class:`~azuredsvm.DSVMCluster` configuration options saved. Allows
        for easy exporting, duplication, and modification of configurations.

        See :meth:`~.dsvm.DSVMCluster.from_config` and
        :meth:`~.dsvm.DSVMCluster.write_config`
        """
        if '_config' in self.__dict__ and key in self._kwargs:
            self._log.debug('Setting configuration attribute %s', key)
            self._config[key] = value
        super().__setattr__(key, value)

    def write_config(self, fn):
        """Write out DSVMCluster configuration data as JSON.

        :param fn: The filename to be written, will overwrite previous file
        """
        with open(fn, 'w') as out:
            json.dump(self._config, out, indent=2, sort_keys=True)

    @staticmethod
    def from_config(fn, **kwargs):
        """
        Use DSVMCluster JSON configuration to create DSVMCluster object.
        Prompts the user to input mandatory configuration values that are
        missing (i.e., service principal credentials).

        :param fn: The filename containing DSVMCluster configuration data
        :param kwargs: Alternate or supplement DSVMCluster configuration; will
            override the content of fn
        """
        with open(fn, 'r') as out:
            dic = json.load(out)
        dic.update(kwargs)
        for key in sorted(dic):
            if dic[key] is None and key != 'key_path':
                dic[key] = input(key + ': ')
        return DSVMCluster(**dic)

    # Resource groups

    def create_resource_group(self):
        """Create (or update) the resource group, tagged with ver."""
        self._log.info('Creating resource group %s in %s',
                       self.resource_group, self.location)
        return self.resource_client.resource_groups.create_or_update(
            self.resource_group,
            {'location': self.location, 'tags': {_TAG: self.ver}}
        )

    def resource_group_exists(self):
        return self.resource_client.resource_groups.check_existence(
            self.resource_group)

    def delete_resource_group(self, wait=True):
        """Delete the resource group and everything deployed into it."""
        if not self.resource_group_exists():
            self._log.info('Resource group %s does not exist',
                           self.resource_group)
            return
        self._log.info('Deleting resource group %s', self.resource_group)
        poller = self.resource_client.resource_groups.begin_delete(
            self.resource_group)
        if wait:
            poller.result()

    def list_resource_groups(self):
        return [rg.name for rg in
                self.resource_client.resource_groups.list()]

    # Virtual machines

    def vm_sizes(self, location=None):
        """
        List VM sizes available in a location.

        :param location: Azure location, defaults to the cluster's
        :return: list of dictionaries, one per size
        """
        sizes = self.compute_client.virtual_machine_sizes.list(
            location or self.location)
        return [{'name': size.name,
                 'cores': size.number_of_cores,
                 'memory_mb': size.memory_in_mb,
                 'os_disk_mb': size.os_disk_size_in_mb,
                 'resource_disk_mb': size.resource_disk_size_in_mb,
                 'max_data_disks': size.max_data_disk_count}
                for size in sizes]

    def deploy_dsvm(self, hostname, username=None, size=None, os=None,
                    authen=None, password=None, dns_label=None, wait=True):
        """
        Deploy a DSVM from the bundled ARM template.

        :param hostname: Name of the VM; 3 to 15 lowercase letters and
            digits, starting with a letter
        :param username: Administrator name, defaults to the cluster's
        :param size: VM size, defaults to ``vm_conf['size']``
        :param os: ``Ubuntu``, ``CentOS`` or ``Windows``
        :param authen: ``Key`` or ``Password``
        :param password: Administrator password for Password authentication
        :param dns_label: DNS label of the public IP, defaults to hostname
        :param wait: Block until the deployment completes
        :return: the DSVM's fully qualified domain name
        """
        username = username or self.username
        size = size or self.vm_conf['size']
        os = os or self.vm_conf['os']
        authen = authen or self.vm_conf['authen']
        dns_label = dns_label or hostname
        _validate(hostname, os, authen, password)

        publisher, offer, sku = IMAGES[os]
        params = {
            'location': self.location,
            'vmName': hostname,
            'vmSize': size,
            'adminUsername': username,
            'dnsLabelPrefix': dns_label,
            'imagePublisher': publisher,
            'imageOffer': offer,
            'imageSku': sku,
        }
        if os == 'Windows':
            template_fn = 'template_windows.json'
            params['adminPassword'] = password
        else:
            template_fn = 'template_linux.json'
            if authen == 'Key':
                params['authenticationType'] = 'sshPublicKey'
                params['adminPasswordOrKey'] = self.pubkey
            else:
                params['authenticationType'] = 'password'
                params['adminPasswordOrKey'] = password
        with open(adsvm._get_data(template_fn), 'r') as template_file:
            template = json.load(template_file)

        self._log.info('Deploying %s DSVM %s (%s) in %s', os, hostname, size,
                       self.resource_group)
        poller = self.resource_client.deployments.begin_create_or_update(
            self.resource_group,
            _TAG + '-' + hostname,
            {'properties': {
                'mode': 'Incremental',
                'template': template,
                'parameters': {k: {'value': v} for k, v in params.items()}
            }}
        )
        if wait:
            poller.result()
            self._log.info('Deployment of %s complete', hostname)
        return adsvm.fqdn(dns_label, self.location)

    def deploy_dsvm_cluster(self, hostnames, usernames=None, count=1,
                            size=None, os=None, authen=None, password=None,
                            dns_labels=None, cluster=False):
        """
        Deploy a set of DSVMs, and optionally network them into a cluster
        reachable by passwordless SSH.

        :param hostnames: List of host names, or a single base name that is
            numbered when count is above 1
        :param usernames: Login name for each DSVM, or one for all
        :param count: Number of DSVMs to deploy
        :param dns_labels: DNS label for each DSVM, defaults to the host
            names
        :param cluster: Distribute keys among the DSVMs after deployment
        :return: list of :class:`~azuredsvm.keydist.Node`
        """
        if isinstance(hostnames, str):
            if count > 1:
                hostnames = ['{0}{1:03d}'.format(hostnames, i)
                             for i in range(1, count + 1)]
            else:
                hostnames = [hostnames]
        expand = adsvm.keydist._expand
        hostnames = expand(hostnames, count, 'hostnames')
        usernames = expand(usernames or self.username, count, 'usernames')
        dns_labels = expand(dns_labels or hostnames, count, 'dns_labels')
        if cluster and ((os or self.vm_conf['os']) == 'Windows' or
                        (authen or self.vm_conf['authen']) != 'Key'):
            raise ValueError('Clustering requires Linux DSVMs with Key '
                             'authentication')
        for hostname, username, dns_label in zip(hostnames, usernames,
                                                 dns_labels):
            _validate(hostname, os or self.vm_conf['os'],
                      authen or self.vm_conf['authen'], password)

        nodes = []
        for hostname, username, dns_label in zip(hostnames, usernames,
                                                 dns_labels):
            fqdn = self.deploy_dsvm(hostname, username, size, os, authen,
                                    password, dns_label)
            nodes.append(adsvm.Node(hostname, username, fqdn))
        if cluster:
            nodes = adsvm.key_distribution(self.location, hostnames,
                                           usernames, count, dns_labels,
                                           key_path=self.key_path)
        return nodes

    def delete_dsvm(self, hostname, wait=True):
        """
        Delete a DSVM and the network resources deployed with it. The
        boot-diagnostics storage account is left to the resource group.

        :param wait: Block until the public IP, NSG and VNet are deleted.
            Deleting the VM and its NIC always blocks, since the other
            network resources cannot go while the NIC references them.
        """
        self._log.info('Deleting DSVM %s', hostname)
        self.compute_client.virtual_machines.begin_delete(
            self.resource_group, hostname).result()
        net = self.network_client
        # The NIC holds references to the other network resources
        net.network_interfaces.begin_delete(self.resource_group,
                                            hostname + 'NIC').result()
        pollers = [
            net.public_ip_addresses.begin_delete(self.resource_group,
                                                 hostname + 'IP'),
            net.network_security_groups.begin_delete(self.resource_group,
                                                     hostname + 'NSG'),
            net.virtual_networks.begin_delete(self.resource_group,
                                              hostname + 'VNET'),
        ]
        if wait:
            for poller in pollers:
                poller.result()

    def operate_dsvm(self, hostname, operation, wait=True):
        """
        Start, stop, restart, or deallocate a DSVM.

        :param operation: One of ``start``, ``stop``, ``restart``,
            ``deallocate``
        """
        if operation not in OPERATIONS:
            raise ValueError('Unknown operation {0!r}, expected one of {1}'
                             .format(operation, ', '.join(sorted(OPERATIONS))))
        self._log.info('%s DSVM %s', operation.capitalize(), hostname)
        method = getattr(self.compute_client.virtual_machines,
                         OPERATIONS[operation])
        poller = method(self.resource_group, hostname)
        if wait:
            poller.result()

    def dsvm_status(self, hostname):
        """Return the power state of a DSVM, e.g. ``VM running``."""
        view = self.compute_client.virtual_machines.instance_view(
            self.resource_group, hostname)
        for status in view.statuses:
            if status.code.startswith('PowerState/'):
                return status.display_status
        return None

    def list_dsvms(self):
        """List the DSVMs in the resource group."""
        dsvms = []
        for vm in self.compute_client.virtual_machines.list(
                self.resource_group):
            ip = self.network_client.public_ip_addresses.get(
                self.resource_group, vm.name + 'IP')
            os_type = vm.storage_profile.os_disk.os_type
            dsvms.append({
                'name': vm.name,
                'size': vm.hardware_profile.vm_size,
                'location': vm.location,
                'os': getattr(os_type, 'value', os_type),
                'fqdn': ip.dns_settings.fqdn if ip.dns_settings else None
            })
        return dsvms

    # SSH access

    def connect(self, fqdn, username=None):
        """
        Create SSH connection to a DSVM as paramiko.client.

        :param fqdn: The DSVM's fully qualified domain name
        :param username: Login name, defaults to the cluster's
        """
        return adsvm.pmk_connect(fqdn, self.key_path,
                                 username=username or self.username)

    def hostfile(self, nodes):
        """
        Build a hostfile listing each node's FQDN once per CPU.

        :param nodes: list of :class:`~azuredsvm.keydist.Node`
        """
        counts = {}
        counts_lock = Lock()
        threads = []
        for node in nodes:
            thread = Thread(target=self._count_cpus,
                            kwargs={"node": node, "counts": counts,
                                    "counts_lock": counts_lock})
            thread.start()
            threads.append(thread)
        for thread in threads:
            thread.join()
        missing = [node.fqdn for node in nodes if node.fqdn not in counts]
        if missing:
            raise RuntimeError('Could not count CPUs on ' +
                               ', '.join(missing))
        return ''.join((node.fqdn + '\n') * counts[node.fqdn]
                       for node in nodes)

    def _count_cpus(self, node, counts, counts_lock):
        self._log.debug('Counting CPUs on %s', node.fqdn)
        client = self.connect(node.fqdn, node.username)
        try:
            cpus = adsvm.cpu_count(client)
        finally:
            client.close()
        with counts_lock:
            counts[node.fqdn] = cpus

    def put_data(self, client, sources, target='.', threaded=True):
        """Copy local files or directories to a DSVM."""
        adsvm.pmk_put(client, sources, target, threaded=threaded)

    def get_data(self, client, sources, target='.', threaded=True):
        """Copy remote files or directories from a DSVM."""
        adsvm.pmk_get(client, sources, target, threaded=threaded)

    def issue_cmd(self, client, call):
        """Run a shell command on a DSVM, returning its stdout lines."""
        return adsvm.pmk_cmd(client, call)


def _validate(hostname, os, authen, password):
    if not _HOSTNAME.match(hostname):
        raise ValueError('Invalid hostname {0!r}: use 3 to 15 lowercase '
                         'letters and digits, starting with a letter'
                         .format(hostname))
    if os not in IMAGES:
        raise ValueError('Unknown os {0!r}, expected one of {1}'.format(
            os, ', '.join(sorted(IMAGES))))
    if authen not in AUTHEN:
        raise ValueError('Unknown authen {0!r}, expected Key or Password'
                         .format(authen))
    if os == 'Windows' and authen != 'Password':
        raise ValueError('Windows DSVMs require Password authentication')
    if authen == 'Password' and not password:
        raise ValueError('Password authentication requires a password')


def _create_key_pair(key_path, bits=2048):
    """Generate an RSA key pair at key_path and key_path + '.pub'."""
    log = getLogger(__name__)
    log.info('Generating key pair %s', key_path)
    key = paramiko.RSAKey.generate(bits)
    key.write_private_key_file(key_path)
    with open(key_path + '.pub', 'w') as out:
        out.write('{0} {1} {2}\n'.format(key.get_name(), key.get_base64(),
                                         adsvm.__title__))


def _read_public_key(key_path):
    """Public half of key_path in OpenSSH format."""
    if os.path.exists(key_path + '.pub'):
        with open(key_path + '.pub', 'r') as pub:
            return pub.read().strip()
    key = paramiko.PKey.from_path(key_path)
    return '{0} {1}'.format(key.get_name(), key.get_base64())


def _rg_purge(resource_client, ver):
    """
    Utility to clear an Azure subscription of previous DSVMCluster resource
    groups (useful for development). Deletes every resource group tagged
    ``azuredsvm`` with value ver, along with all resources in them.

    :param resource_client: An azure.mgmt.resource.ResourceManagementClient
    :param ver: The "version" to delete
    """
    log = getLogger(__name__)
    log.info('Purging %s resource groups', ver)
    groups = resource_client.resource_groups.list(
        filter="tagName eq '{0}' and tagValue eq '{1}'".format(_TAG, ver))
    pollers = [resource_client.resource_groups.begin_delete(rg.name)
               for rg in groups]
    for poller in pollers:
        poller.result()
