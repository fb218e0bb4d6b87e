from .auth import Account
from .storage import LocalStorageEntry, RemoteDocument

__all__ = [
    'Account',
    'LocalStorageEntry', 'RemoteDocument',
]
