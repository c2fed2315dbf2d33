import pytest

from azuredsvm.pmkutils import _unix_path

val = "home/dsvmuser/.ssh/pub_keys"


def test_valid():
    assert _unix_path(val) == val


def test_windows():
    assert _unix_path("home\\dsvmuser\\.ssh\\pub_keys") == val


def test_mix():
    assert _unix_path("home\\dsvmuser/.ssh", "pub_keys") == val


def test_none():
    with pytest.raises(TypeError):
        _unix_path(None)
