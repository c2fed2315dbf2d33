"""
`azuredsvm` is a utility for deploying, clustering, and running R scripts on
Azure Data Science Virtual Machines (DSVMs).

:class:`~.dsvm.DSVMCluster` is the primary interface when used procedurally
within a Python script.

Command line tools include:

* ``azuredsvm-config`` (:func:`.__exec__.config`)
* ``azuredsvm`` (:func:`.__exec__.main`)
* ``azuredsvm-keys`` (:func:`.__exec__.keys`)
* ``azuredsvm-sizes`` (:func:`.__exec__.sizes`)
* ``azuredsvm-run`` (:func:`.__exec__.run`)
* ``azuredsvm-terminate`` (:func:`.__exec__.terminate`)
"""

import os
import logging

__title__ = 'azuredsvm'
__ver__ = '0.1.0'

# Add logging (defaults to null, but can be picked up by any logger)
logging.getLogger(__name__).addHandler(logging.NullHandler())

# Identify user's home directory, create hidden folder
_OUTDIR = os.path.join(os.path.expanduser('~'), '.azuredsvm')
os.makedirs(_OUTDIR, exist_ok=True)

# Identify location of azuredsvm installation
_ROOT = os.path.abspath(os.path.dirname(__file__))


def _set_data(ext):
    """
    Return path to save a file to hidden ``.azuredsvm`` folder in user
    directory.

    :param ext: The extension to give the output file. (All outputs are given
        the same filename, based on the configuration version.)
    """
    return os.path.join(_OUTDIR, __ver__ + '.' + ext)


def _get_data(fn):
    """Inputs are sourced from the azuredsvm installation directory

    :param fn: The data file name to retrieve from the `azuredsvm`
        installation.
    """
    return os.path.join(_ROOT, 'data', fn)


from .pmkutils import PmkCmdError, pmk_connect, pmk_cmd, cpu_count, \
    pmk_walk, pmk_put, pmk_put_file, pmk_get, pmk_get_file
from .keydist import Node, fqdn, key_distribution
from .compute import ComputeInterface, compute_header, update_script
from .dsvm import DSVMCluster
