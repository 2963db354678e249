from .key import ExtendedKeySerializer, KeyMatchSerializer
from .psbt import (
    PsbtRecordSerializer,
    PsbtUploadSerializer,
    PsbtUpdateSerializer,
    PsbtNotesSerializer,
    PsbtInspectSerializer,
    SignatureInfoSerializer,
    EndpointResultSerializer,
)
from .descriptor import DescriptorSerializer, DescriptorCreateSerializer
from .address import AddressRequestSerializer, DerivedAddressSerializer

__all__ = [
    "ExtendedKeySerializer",
    "KeyMatchSerializer",
    "PsbtRecordSerializer",
    "PsbtUploadSerializer",
    "PsbtUpdateSerializer",
    "PsbtNotesSerializer",
    "PsbtInspectSerializer",
    "SignatureInfoSerializer",
    "EndpointResultSerializer",
    "DescriptorSerializer",
    "DescriptorCreateSerializer",
    "AddressRequestSerializer",
    "DerivedAddressSerializer",
]
