import pytest

from trustchain_core.actions import add_account, add_operator
from trustchain_core.context import Context
from trustchain_core.keystore import KeyStore
from trustchain_core.params import AddAccountParams, AddOperatorParams
from trustchain_core.storage import DirectoryStorage


@pytest.fixture
def keystore(tmp_path):
    return KeyStore(str(tmp_path / "keys"))


@pytest.fixture
def provider(tmp_path):
    return DirectoryStorage(str(tmp_path / "store"))


@pytest.fixture
def ctx(provider, keystore):
    """A store holding operator "O", selected as the current operator."""
    add_operator(provider, keystore, AddOperatorParams(name="O"))
    return Context.load(config={"keys_dir": keystore.root}, provider=provider)


@pytest.fixture
def account_a(ctx):
    add_account(ctx, AddAccountParams(name="A"))
    return ctx.store.read_account("A")
