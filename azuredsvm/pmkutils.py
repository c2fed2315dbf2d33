"""
:mod:`~azuredsvm.pmkutils` collects the functions used to interact with remote
DSVMs using :py:class:`paramiko.client.SSHClient` and
:py:class:`paramiko.sftp_client.SFTPClient` objects.
"""
import os
import stat
import paramiko
from time import sleep
from threading import Thread
from logging import getLogger


class PmkCmdError(Exception):
    """A remote command exited with a non-zero status."""

    def __init__(self, call, exit_status, stderr):
        self.call = call
        self.exit_status = exit_status
        self.stderr = stderr
        super().__init__('"{0}" exited with status {1}: {2}'.format(
            call, exit_status, stderr.strip()))


def _unix_path(*args):
    """Most handle UNIX pathing, not vice versa, enforce standard"""
    return os.path.join(*args).replace('\\', '/')


def _walk_files(gen):
    """
    Take a generator yielding root, dirs, files (as from os.walk()) and return a
    list of all files (with fully qualified paths).

    :param gen: Generator yielding root, dirs, files (as from os.walk())
    :type gen: generator
    """
    all_files = []
    for root, dirs, files in gen:
        for fn in files:
            all_files.append(_unix_path(root, fn))
    return all_files


def _open_sftp(client, retries=30):
    """
    Open and return an SFTP session. If the session is denied due to too many
    active channels, pause and try again.
    """
    try:
        return client.open_sftp()
    except paramiko.ssh_exception.ChannelException as e:
        if 'Administratively prohibited' in str(e) and retries > 0:
            sleep(1)
            return _open_sftp(client, retries - 1)
        raise


def pmk_connect(host, key_path=None, username='dsvmuser', password=None,
                retries=20, pause=15):
    """
    Create SSH connection to host, retrying on failure.

    :param host: The address of the remote server
    :param key_path: The location of the private key file
    :param username: The username to access on the remote server
    :param password: Password for DSVMs deployed with password authentication
    :param retries: Connection attempts left before giving up
    :param pause: Seconds between attempts
    """
    log = getLogger(__name__)
    log.debug('Connecting to %s@%s using key %s', username, host, key_path)
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.client.AutoAddPolicy())
    # Fall back to the local agent and default keys when given neither
    defaults = key_path is None and password is None
    try:
        client.connect(hostname=host, username=username,
                       key_filename=key_path, password=password,
                       look_for_keys=defaults, allow_agent=defaults)
        return client
    except (TimeoutError, ConnectionRefusedError,
            paramiko.ssh_exception.NoValidConnectionsError) as err:
        if retries <= 0:
            log.error('Giving up on %s: %s', host, err)
            raise
        log.debug('OS error: %s', err)
        sleep(pause)
        return pmk_connect(host, key_path, username, password,
                           retries - 1, pause)


def pmk_cmd(client, call):
    """Issue command over SSH, treat execution failure as program failure.

    :param client: :py:class:`paramiko.client.SSHClient` class object
    :param call: String of shell command to be executed
    :return: list of lines written to stdout
    """
    log = getLogger(__name__)
    log.debug('Issuing "%s"', call)
    stdin, stdout, stderr = client.exec_command(call)
    lines = []
    for line in iter(lambda: stdout.readline(2048), ""):
        log.debug(line.rstrip('\n'))
        lines.append(line)
    exit_status = stdout.channel.recv_exit_status()
    if exit_status:
        text = ''.join(stderr.readlines())
        log.error(text)
        raise PmkCmdError(call, exit_status, text)
    return lines


def cpu_count(client):
    """
    Given a :py:class:`paramiko.client.SSHClient` object, return the remote's
    CPU count.
    """
    cpus = pmk_cmd(client, r'grep -c ^processor /proc/cpuinfo')
    return int(cpus[0].strip())  # original format: ['2\n']


def pmk_walk(sftp_conn, root):
    """paramiko os.walk() equivalent.

    :param sftp_conn: :py:class:`paramiko.sftp_client.SFTPClient` object
    :param root: Remote directory targeted
    """
    files = []
    dirs = []
    for f in sftp_conn.listdir_attr(root):
        if stat.S_ISDIR(f.st_mode):
            dirs.append(f.filename)
        else:
            files.append(f.filename)
    yield root, dirs, files
    for folder in dirs:
        for x in pmk_walk(sftp_conn, _unix_path(root, folder)):
            yield x


def _pmk_mover(func, client, file_tuples, threaded=True, thread_cap=10):
    """
    Apply func to each (source, target) pair, using up to thread_cap threads
    at once when threaded.
    """
    if not threaded:
        for source_fn, target_fn in file_tuples:
            func(client, source_fn, target_fn)
        return
    pending = list(file_tuples)
    while pending:
        jobs = []
        for source_fn, target_fn in pending[:thread_cap]:
            job = Thread(target=func, kwargs={"client": client,
                                              "source_fn": source_fn,
                                              "target_fn": target_fn})
            job.start()
            jobs.append(job)
        for job in jobs:
            job.join()
        pending = pending[thread_cap:]


def pmk_put(client, sources, target, threaded=True, thread_cap=10):
    """
    Copy local files to remote target. Directories are copied recursively when
    provided as the source. Will do nothing if source does not exist.

    :param client: :py:class:`paramiko.client.SSHClient` object
    :param sources: The local data source
    :param target: The remote data destination
    :param threaded: Copy files concurrently
    """
    send_files = []
    if not isinstance(sources, list):
        sources = [sources]
    for source in sources:
        if os.path.isfile(source):
            target_fn = _unix_path(target, os.path.basename(source))
            send_files.append((source, target_fn))
        if os.path.isdir(source):
            for source_fn in _walk_files(os.walk(source)):
                target_fn = _unix_path(target,
                                       os.path.relpath(source_fn, source))
                send_files.append((source_fn, target_fn))
    _pmk_mover(pmk_put_file, client=client, file_tuples=send_files,
               threaded=threaded, thread_cap=thread_cap)


def pmk_put_file(client, source_fn, target_fn):
    """Copy a single local file to the remote host."""
    log = getLogger(__name__)
    sftp_conn = _open_sftp(client)
    try:
        target_dir = os.path.dirname(target_fn)
        if target_dir:
            try:
                sftp_conn.mkdir(target_dir)
            except OSError:
                pass
        log.debug("Sending %s to %s", source_fn, target_fn)
        sftp_conn.put(source_fn, target_fn)
    finally:
        sftp_conn.close()


def pmk_get(client, sources, target, threaded=True, thread_cap=10):
    """
    Copy remote files to local target. Directories are copied recursively when
    provided as the source.

    :param client: :py:class:`paramiko.client.SSHClient` object
    :param sources: The remote data source
    :param target: The local data destination
    :param threaded: Copy files concurrently
    """
    sftp_conn = _open_sftp(client)
    get_files = []
    if not isinstance(sources, list):
        sources = [sources]
    try:
        for source in sources:
            if stat.S_ISDIR(sftp_conn.lstat(source).st_mode):
                for source_fn in _walk_files(pmk_walk(sftp_conn, source)):
                    target_fn = os.path.join(
                        target, os.path.relpath(source_fn, source))
                    get_files.append((source_fn, target_fn))
            else:
                target_fn = os.path.join(target,
                                         os.path.basename(source))
                get_files.append((source, target_fn))
    finally:
        sftp_conn.close()
    _pmk_mover(pmk_get_file, client=client, file_tuples=get_files,
               threaded=threaded, thread_cap=thread_cap)


def pmk_get_file(client, source_fn, target_fn):
    """Copy a single remote file to the local machine."""
    log = getLogger(__name__)
    sftp_conn = _open_sftp(client)
    try:
        target_dir = os.path.dirname(target_fn)
        if target_dir:
            os.makedirs(target_dir, exist_ok=True)
        log.debug("Receiving %s as %s", source_fn, target_fn)
        sftp_conn.get(source_fn, target_fn)
    finally:
        sftp_conn.close()
