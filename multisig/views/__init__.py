from .key import XpubListCreateView, XpubDetailView
from .address import AddressDeriveView
from .descriptor import DescriptorListCreateView, DescriptorDetailView
from .psbt import (
    PsbtListCreateView,
    PsbtDetailView,
    PsbtNotesView,
    PsbtSignersView,
    PsbtBroadcastView,
    PsbtInspectView,
)

__all__ = [
    "XpubListCreateView",
    "XpubDetailView",
    "AddressDeriveView",
    "DescriptorListCreateView",
    "DescriptorDetailView",
    "PsbtListCreateView",
    "PsbtDetailView",
    "PsbtNotesView",
    "PsbtSignersView",
    "PsbtBroadcastView",
    "PsbtInspectView",
]
