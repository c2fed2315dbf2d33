"""
:mod:`azuredsvm.__exec__` provides command line utilities for using basic
:class:`.dsvm.DSVMCluster` features:

* Populate a configuration file with your Azure service principal
* Deploy a set of DSVMs, optionally networked into a cluster
* Distribute SSH keys among existing DSVMs
* List the VM sizes available in a location
* Run an R script on a DSVM
* Delete the resource group holding the DSVMs
"""

import argparse
import logging

import azuredsvm as adsvm


def _parser():
    parser = argparse.ArgumentParser()
    parser.add_argument('-d', '--debug',
                        help="Print lots of debugging statements",
                        action="store_const", dest="loglevel",
                        const=logging.DEBUG, default=logging.WARNING)
    parser.add_argument('-v', '--verbose', help="Be verbose",
                        action="store_const", dest="loglevel",
                        const=logging.INFO)
    return parser


def _add_config(arg_parser):
    arg_parser.add_argument('-c', '--config', type=str,
                            default=adsvm._set_data('json'),
                            help='The JSON DSVMCluster configuration file.')


def _load(config_fn):
    log = logging.getLogger()
    try:
        return adsvm.DSVMCluster.from_config(config_fn)
    except FileNotFoundError:
        log.error('Run `azuredsvm-config`, first, to generate your own config '
                  'file with the minimum necessary data to deploy DSVMs.')
        raise


def main(argv=None):
    """Deploy DSVMs using the information saved to a configuration file"""
    parser = _parser()
    parser.add_argument('-n', '--count', type=int, default=1,
                        help='The number of DSVMs to deploy.')
    parser.add_argument('-s', '--size', type=str, default=None,
                        help='The VM size to use.')
    parser.add_argument('--cluster', action='store_true',
                        help='Distribute SSH keys among the DSVMs.')
    parser.add_argument('hostname', type=str,
                        help='Host name, numbered when deploying several.')
    _add_config(parser)
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.loglevel)

    cluster = _load(args.config)
    if not cluster.resource_group_exists():
        cluster.create_resource_group()
    nodes = cluster.deploy_dsvm_cluster(args.hostname, count=args.count,
                                        size=args.size, cluster=args.cluster)
    for node in nodes:
        print('{0}\t{1}@{2}'.format(node.hostname, node.username, node.fqdn))
    term = ''
    while term not in ('y', 'n'):
        term = input("""
        Type 'y' to delete the resource group and exit.
        Type 'n' to exit without deleting the DSVMs.
        You can always delete your resource group by running
        `azuredsvm-terminate` from the command line.
        """).strip()
    if term == 'y':
        cluster.delete_resource_group()


def config(argv=None):
    """
    Configure DSVMCluster and the Azure resource group.
    Prompts user for service principal credentials, generates a key pair,
    creates the resource group, and saves out the configuration file to a
    hidden folder in the user's home directory.
    """
    parser = _parser()
    parser.add_argument('-o', '--outfile', type=str,
                        default=adsvm._set_data('json'),
                        help='The file in which to save the DSVMCluster ' +
                             'configuration data (stored in JSON format)')
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.loglevel)

    setup_cl = adsvm.DSVMCluster.from_config(adsvm._get_data('config.json'))
    setup_cl.create_resource_group()
    setup_cl.write_config(args.outfile)


def keys(argv=None):
    """
    Distribute SSH keys among existing Linux DSVMs, so that each can reach
    every other without a password.
    """
    parser = _parser()
    parser.add_argument('-l', '--location', type=str, required=True,
                        help='Azure location of the DSVMs.')
    parser.add_argument('-u', '--users', type=str, nargs='+', required=True,
                        help='Login name on each DSVM, or one for all.')
    parser.add_argument('-k', '--key', type=str,
                        default=adsvm._set_data('pem'),
                        help='Private key used to log in to the DSVMs.')
    parser.add_argument('--dns', type=str, nargs='+', default=None,
                        help='DNS label of each DSVM (default: host names).')
    parser.add_argument('hostnames', type=str, nargs='+',
                        help='The DSVM host names.')
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.loglevel)

    users = args.users[0] if len(args.users) == 1 else args.users
    nodes = adsvm.key_distribution(args.location, args.hostnames, users,
                                   dns_labels=args.dns, key_path=args.key)
    for node in nodes:
        print('{0}\t{1}@{2}'.format(node.hostname, node.username, node.fqdn))


def sizes(argv=None):
    """Print the VM sizes available in the configured location."""
    parser = _parser()
    parser.add_argument('-l', '--location', type=str, default=None,
                        help='Azure location (default: configured).')
    _add_config(parser)
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.loglevel)

    cluster = _load(args.config)
    for size in cluster.vm_sizes(args.location):
        print('{name}\t{cores}\t{memory_mb}'.format(**size))


def run(argv=None):
    """Run an R script on a DSVM within a compute context."""
    parser = _parser()
    parser.add_argument('-r', '--remote', type=str, required=True,
                        help='FQDN of the DSVM.')
    parser.add_argument('-u', '--user', type=str, required=True,
                        help='Login name on the DSVM.')
    parser.add_argument('-k', '--key', type=str,
                        default=adsvm._set_data('pem'),
                        help='Private key used to log in to the DSVM.')
    parser.add_argument('--context', type=str, default='localParallel',
                        choices=adsvm.compute.CONTEXTS,
                        help='The compute context of the script.')
    parser.add_argument('--slaves', type=str, nargs='*', default=[],
                        help='FQDNs of worker DSVMs.')
    parser.add_argument('--data', type=str, default='',
                        help='Location of the data the script reads.')
    parser.add_argument('--results', type=str, nargs='*', default=[],
                        help='Files to fetch after the script finishes.')
    parser.add_argument('script', type=str, help='The R script to run.')
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.loglevel)

    ci = adsvm.ComputeInterface(args.remote, args.user, args.script,
                                {'machines': [args.remote.split('.')[0]],
                                 'master': args.remote,
                                 'slaves': args.slaves,
                                 'data': args.data,
                                 'context': args.context})
    for line in ci.execute(key_path=args.key, results=args.results):
        print(line, end='')


def terminate(argv=None):
    """
    Delete the resource group, and every DSVM in it, associated with the
    specified DSVMCluster configuration file.
    """
    parser = _parser()
    _add_config(parser)
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.loglevel)

    cluster = _load(args.config)
    cluster.delete_resource_group()
