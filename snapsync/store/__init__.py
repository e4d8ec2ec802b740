from .abstract import *
from .localfile import LocalDirRemoteStore
from .mem import InMemRemoteStore
from .xrpc import AtprotoRemoteStore, raise_for_xrpc_status
