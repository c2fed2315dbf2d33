import pytest

from azuredsvm.compute import HEADER_START, HEADER_END, compute_header, \
    update_script

SCRIPT = 'library(dplyr)\nx <- 1\n'


def test_local_parallel_header():
    header = compute_header(['mytbmm'], ['', ''], ['zhle'])
    lines = header.split('\n')
    assert lines[1] == HEADER_START
    assert 'CI_MACHINES <- c( "mytbmm" )' in lines
    assert 'CI_DNS <- c( "", "" )' in lines
    assert 'CI_VMUSER <- c( "zhle" )' in lines
    assert 'CI_MASTER <- c( "" )' in lines
    assert 'CI_SLAVES <- c( "" )' in lines
    assert 'CI_DATA <- ""' in lines
    assert 'CI_CONTEXT <- "localParallel"' in lines
    assert 'rxSetComputeContext(RxLocalParallel())' in lines
    assert HEADER_END in lines


def test_cluster_parallel_header():
    header = compute_header(['m', 's'], ['m.example', 's.example'],
                            ['u', 'u'], master='m.example',
                            slaves=['s.example'], context='clusterParallel')
    assert 'CI_SLAVES <- c( "s.example" )' in header
    assert 'registerDoParallel(cl)' in header
    assert 'rxSetComputeContext(RxForeachDoPar())' in header


def test_unknown_context():
    with pytest.raises(ValueError):
        compute_header(['m'], ['m.example'], ['u'], context='Kubernetes')


def test_update_replaces_previous_header(tmp_path):
    script = tmp_path / 'analysis.R'
    script.write_text(SCRIPT)
    update_script(str(script), compute_header(['a'], ['a.x'], ['u']))
    update_script(str(script), compute_header(['b'], ['b.x'], ['u'],
                                              context='Spark'))
    text = script.read_text()
    assert text.count(HEADER_START) == 1
    assert 'CI_MACHINES <- c( "b" )' in text
    assert '"a"' not in text
    assert text.endswith(SCRIPT)


def test_quotes_and_backslashes_are_escaped():
    header = compute_header(['m'], ['m.example'], ['u'],
                            data='C:\\data\\"big".csv')
    assert 'CI_DATA <- "C:\\\\data\\\\\\"big\\".csv"' in header.split('\n')
    vector = compute_header(['say "hi"'], ['m.example'], ['u'])
    assert 'CI_MACHINES <- c( "say \\"hi\\"" )' in vector.split('\n')
