"""
Flat-file record store
"""
from messbook.store.codec import FieldKind, FieldValue, Record, classify, decode, encode
from messbook.store.collection import CollectionStore, Storage
from messbook.store.locks import CollectionLockManager

__all__ = [
    "FieldKind",
    "FieldValue",
    "Record",
    "classify",
    "decode",
    "encode",
    "CollectionStore",
    "Storage",
    "CollectionLockManager",
]
