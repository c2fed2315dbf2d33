"""
:mod:`~azuredsvm.compute` prepares R analytics scripts for a compute context
on deployed DSVMs and runs them remotely.

A script is prepared by inserting a header that defines the machines, users,
and data it runs against (``CI_*`` variables) and sets the RevoScaleR compute
context. The script is then uploaded to the remote DSVM and run with
``Rscript``.
"""
import os
from logging import getLogger
from pprint import PrettyPrinter

import azuredsvm as adsvm

HEADER_START = '# THIS IS A HEADER ADDED BY COMPUTE INTERFACE'
HEADER_END = '# END OF THE HEADER ADDED BY COMPUTE INTERFACE'
_RULE = '# ' + '-' * 75

_CONTEXTS = {
    'localParallel': [
        'library(RevoScaleR)',
        'library(doParallel)',
        '# --------- Set compute context',
        'rxSetComputeContext(RxLocalParallel())',
    ],
    'clusterParallel': [
        'library(RevoScaleR)',
        'library(doParallel)',
        '# --------- Set compute context',
        'cl <- makePSOCKcluster(names=CI_SLAVES, master=CI_MASTER, '
        'user=CI_VMUSER[1])',
        'registerDoParallel(cl)',
        'rxSetComputeContext(RxForeachDoPar())',
    ],
    'Spark': [
        'library(RevoScaleR)',
        '# --------- Set compute context',
        'rxSparkConnect(reset=TRUE)',
        'rxSetComputeContext(RxSpark())',
    ],
    'Hadoop': [
        'library(RevoScaleR)',
        '# --------- Set compute context',
        'rxSetComputeContext(RxHadoopMR())',
    ],
}

CONTEXTS = sorted(_CONTEXTS)


def _r_string(value):
    """Quote value as an R string literal."""
    value = str(value).replace('\\', '\\\\').replace('"', '\\"')
    return '"' + value + '"'


def _r_vector(values):
    """Render a list of strings as an R character vector."""
    if isinstance(values, str):
        values = [values]
    return 'c( ' + ', '.join(_r_string(v) for v in values) + ' )'


def compute_header(machines, dns, users, master='', slaves=(), data='',
                   context='localParallel'):
    """
    Build the R header block describing the compute environment.

    :param machines: DSVM host names
    :param dns: FQDN of each DSVM
    :param users: Login name on each DSVM
    :param master: FQDN of the master node
    :param slaves: FQDNs of the worker nodes
    :param data: Location of the data the script reads, if any
    :param context: One of ``localParallel``, ``clusterParallel``,
        ``Spark``, ``Hadoop``
    """
    if context not in _CONTEXTS:
        raise ValueError('Unknown compute context {0!r}, expected one of {1}'
                         .format(context, ', '.join(CONTEXTS)))
    lines = [
        _RULE,
        HEADER_START,
        _RULE,
        'CI_MACHINES <- ' + _r_vector(machines),
        'CI_DNS <- ' + _r_vector(dns),
        'CI_VMUSER <- ' + _r_vector(users),
        'CI_MASTER <- ' + _r_vector(master),
        'CI_SLAVES <- ' + _r_vector(list(slaves) or ['']),
        'CI_DATA <- ' + _r_string(data),
        'CI_CONTEXT <- ' + _r_string(context),
        '',
    ]
    lines += _CONTEXTS[context]
    lines += [_RULE, HEADER_END, _RULE, '']
    return '\n'.join(lines)


def _strip_header(text):
    """Remove a previously inserted header, if there is one."""
    lines = text.split('\n')
    if HEADER_START not in lines or HEADER_END not in lines:
        return text
    start = lines.index(HEADER_START)
    end = lines.index(HEADER_END)
    # Rules wrapping the markers belong to the header
    if start > 0 and lines[start - 1] == _RULE:
        start -= 1
    if end + 1 < len(lines) and lines[end + 1] == _RULE:
        end += 1
    return '\n'.join(lines[:start] + lines[end + 1:])


def update_script(path, header):
    """
    Insert header at the top of the script at path, replacing any header
    inserted before.
    """
    with open(path, 'r') as script:
        body = _strip_header(script.read())
    with open(path, 'w', newline='\n') as script:
        script.write(header + body.lstrip('\n'))


class ComputeInterface:
    """Remote R script execution on a DSVM.

    :param remote: FQDN of the DSVM the script runs on
    :param user: Login name on the DSVM
    :param script: Local path of the R script
    :param config: Dictionary of :func:`compute_header` arguments
    """

    def __init__(self, remote, user, script, config=None):
        self.remote = remote
        self.user = user
        self.script = script
        self.config = {}
        self._log = getLogger(__name__)
        self.set_config(**(config or {}))

    def __repr__(self):
        return 'ComputeInterface class object\n' + PrettyPrinter().pformat(
            {'remote': self.remote, 'user': self.user, 'script': self.script,
             'config': self.config})

    def set_config(self, machines=None, dns=None, users=None, master=None,
                   slaves=None, data=None, context=None):
        """Update the compute configuration; unspecified values are kept."""
        defaults = {'machines': [], 'dns': [self.remote],
                    'users': [self.user], 'master': self.remote,
                    'slaves': [], 'data': '', 'context': 'localParallel'}
        for key, default in defaults.items():
            value = locals()[key]
            if value is not None:
                self.config[key] = value
            elif key not in self.config:
                self.config[key] = default
        if self.config['context'] not in _CONTEXTS:
            raise ValueError('Unknown compute context {0!r}'.format(
                self.config['context']))

    def update_script(self):
        """Write the header for the current configuration into the script."""
        self._log.debug('Updating %s for context %s', self.script,
                        self.config['context'])
        update_script(self.script, compute_header(**self.config))

    def execute(self, client=None, key_path=None, password=None,
                results=(), local_dir='.', remote_dir='azuredsvm'):
        """
        Upload the script, run it with ``Rscript``, and fetch results.

        :param client: Open :py:class:`paramiko.client.SSHClient`; one is
            opened to the remote if omitted
        :param key_path: Private key used when opening a connection
        :param password: Password used when opening a connection
        :param results: Files (relative to remote_dir) to fetch afterwards
        :param local_dir: Where fetched results are written
        :param remote_dir: Remote working directory of the script
        :return: lines written to stdout by the script
        """
        self.update_script()
        own_client = client is None
        if own_client:
            client = adsvm.pmk_connect(self.remote, key_path,
                                       username=self.user, password=password)
        try:
            adsvm.pmk_cmd(client, 'mkdir -p ' + remote_dir)
            adsvm.pmk_put(client, self.script, remote_dir, threaded=False)
            name = os.path.basename(self.script)
            self._log.info('Running %s on %s', name, self.remote)
            output = adsvm.pmk_cmd(
                client, 'cd {0} && Rscript {1}'.format(remote_dir, name))
            if results:
                adsvm.pmk_get(client,
                              [adsvm.pmkutils._unix_path(remote_dir, fn)
                               for fn in results],
                              local_dir, threaded=False)
        finally:
            if own_client:
                client.close()
        return output
