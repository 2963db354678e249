from .key import ExtendedKey
from .psbt import PsbtRecord
from .descriptor import Descriptor

__all__ = [
    "ExtendedKey",
    "PsbtRecord",
    "Descriptor"
]
