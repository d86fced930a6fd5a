from sharpcrm.persistence.memory import InMemoryAttributeStore
from sharpcrm.persistence.store import AttributeStore, StoreError, TableSchema

__all__ = [
    "AttributeStore",
    "InMemoryAttributeStore",
    "StoreError",
    "TableSchema",
]
